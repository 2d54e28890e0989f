from contextlib import contextmanager
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from . import models
from .exceptions import RepositoryFailure

@contextmanager
def _unit_of_work(db: Session, operation: str):
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise RepositoryFailure(operation, e) from e

def _newest_first(query):
    return query.order_by(models.Clip.upload_date.desc(), models.Clip.id.desc())

def insert_clip(db: Session, clip: models.Clip) -> int:
    with _unit_of_work(db, "insert"):
        db.add(clip)
        db.commit()
        db.refresh(clip)
    return clip.id

def get_clip(db: Session, clip_id: int) -> Optional[models.Clip]:
    with _unit_of_work(db, "select"):
        return db.query(models.Clip).populate_existing().filter(models.Clip.id == clip_id).first()

def get_clip_by_hash(db: Session, video_hash: str) -> Optional[models.Clip]:
    with _unit_of_work(db, "select"):
        return db.query(models.Clip).populate_existing().filter(models.Clip.video_hash == video_hash).first()

def list_clips_by_owner(db: Session, owner_id: int, include_private: bool) -> List[models.Clip]:
    with _unit_of_work(db, "select"):
        query = db.query(models.Clip).populate_existing().filter(models.Clip.owner_id == owner_id)
        if not include_private:
            query = query.filter(models.Clip.is_private.is_(False))
        return _newest_first(query).all()

def list_public_recent(db: Session, limit: int) -> List[models.Clip]:
    with _unit_of_work(db, "select"):
        query = db.query(models.Clip).populate_existing().filter(models.Clip.is_private.is_(False))
        return _newest_first(query).limit(limit).all()

def update_privacy(db: Session, clip_id: int, is_private: bool) -> int:
    with _unit_of_work(db, "update"):
        affected = (
            db.query(models.Clip)
            .filter(models.Clip.id == clip_id)
            .update({models.Clip.is_private: is_private}, synchronize_session=False)
        )
        db.commit()
        # Bulk UPDATE bypasses the identity map
        db.expire_all()
    return affected

def increment_views(db: Session, clip_id: Optional[int] = None, video_hash: Optional[str] = None,
                    value: int = 1) -> int:
    """Add `value` to views in a single UPDATE so concurrent viewers never lose counts"""
    if (clip_id is None) == (video_hash is None):
        raise ValueError("match by exactly one of clip_id or video_hash")

    if clip_id is not None:
        match = models.Clip.id == clip_id
    else:
        match = models.Clip.video_hash == video_hash

    with _unit_of_work(db, "update"):
        affected = (
            db.query(models.Clip)
            .filter(match)
            .update({models.Clip.views: models.Clip.views + value}, synchronize_session=False)
        )
        db.commit()
        # Bulk UPDATE bypasses the identity map
        db.expire_all()
    return affected

def delete_clip(db: Session, clip_id: int) -> Optional[models.Clip]:
    with _unit_of_work(db, "delete"):
        db_clip = db.query(models.Clip).populate_existing().filter(models.Clip.id == clip_id).first()
        if db_clip:
            db.delete(db_clip)
            db.commit()
    return db_clip

def get_stats(db: Session) -> Tuple[int, int]:
    with _unit_of_work(db, "select"):
        count, total_views = db.query(
            func.count(models.Clip.id), func.coalesce(func.sum(models.Clip.views), 0)
        ).one()
    return count, total_views
