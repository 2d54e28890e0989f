"""
Clip service - orchestrates blob storage and the clip repository and
applies the visibility policy.

The service holds no state between requests: it is built per request around
that request's database session and always re-reads rows from the database.
"""

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .config import Settings
from .exceptions import (
    Forbidden,
    InvalidInput,
    NotFound,
    RepositoryFailure,
    StorageFailure,
    UnsupportedMediaType,
)
from .storage import BlobStore

logger = logging.getLogger(__name__)

HASH_ALPHABET = string.ascii_letters + string.digits


def generate_video_hash(length: int) -> str:
    """
    Random share token. The first character is always a letter so a hash can
    never be mistaken for a numeric clip id.
    """
    return secrets.choice(string.ascii_letters) + "".join(
        secrets.choice(HASH_ALPHABET) for _ in range(length - 1)
    )


def looks_like_hash(id_or_hash: str) -> bool:
    return any(ch.isalpha() for ch in id_or_hash)


class ClipService:
    def __init__(self, db: Session, store: BlobStore, settings: Settings):
        self.db = db
        self.store = store
        self.settings = settings

    def upload(self, metadata: schemas.ClipCreate, fileobj: Optional[BinaryIO],
               filename: Optional[str], content_type: Optional[str]) -> models.Clip:
        """
        Store the file and create its clip row. New clips are always private.

        Raises:
            InvalidInput: title, game or file missing, or the file is not a video
            StorageFailure / RepositoryFailure: disk or database errors
        """
        if fileobj is None or not filename:
            raise InvalidInput("No video file uploaded")
        if not metadata.title.strip():
            raise InvalidInput("Title is required")
        if not metadata.game.strip():
            raise InvalidInput("Game is required")
        if not self.store.is_allowed(filename, content_type):
            raise UnsupportedMediaType(filename, content_type or "")

        video_hash = generate_video_hash(self.settings.video_hash_length)
        file_path = self.store.save(fileobj, filename, content_type)

        clip = models.Clip(
            title=metadata.title.strip(),
            subtitle=metadata.subtitle or "",
            game=metadata.game.strip(),
            duration=metadata.duration or "",
            file_path=file_path,
            owner_id=metadata.owner_id if metadata.owner_id is not None else self.settings.default_owner_id,
            upload_date=datetime.now(timezone.utc),
            video_hash=video_hash,
            is_private=True,
            views=0,
        )

        try:
            crud.insert_clip(self.db, clip)
        except RepositoryFailure:
            logger.error(f"❌ Insert failed after storing {file_path}, removing blob")
            try:
                self.store.delete(file_path)
            except StorageFailure as e:
                logger.error(f"⚠️ Orphaned blob {file_path}: {e}")
            raise

        logger.info(f"🎬 Clip uploaded: id={clip.id} hash={video_hash} file={file_path}")
        return clip

    def get_by_hash(self, video_hash: str, caller_is_privileged: bool) -> models.Clip:
        clip = crud.get_clip_by_hash(self.db, video_hash)
        if clip is None:
            raise NotFound("Clip", video_hash)
        if clip.is_private and not caller_is_privileged:
            raise Forbidden()
        return clip

    def list_for_owner(self, owner_id: int, caller_is_privileged: bool) -> List[models.Clip]:
        return crud.list_clips_by_owner(self.db, owner_id, include_private=caller_is_privileged)

    def list_recent_public(self, limit: Optional[int] = None) -> List[models.Clip]:
        if limit is None:
            limit = self.settings.recent_clips_limit
        if limit < 0:
            raise InvalidInput("limit must not be negative")
        if limit == 0:
            return []
        return crud.list_public_recent(self.db, min(limit, self.settings.max_recent_limit))

    def set_privacy(self, clip_id: int, is_private: bool) -> None:
        if crud.update_privacy(self.db, clip_id, is_private) == 0:
            raise NotFound("Clip", clip_id)
        logger.info(f"🔒 Clip privacy updated: id={clip_id} is_private={is_private}")

    def record_view(self, id_or_hash: str) -> models.Clip:
        """Count one view. Every call counts; there is no per-viewer dedup."""
        id_or_hash = id_or_hash.strip()
        if looks_like_hash(id_or_hash):
            affected = crud.increment_views(self.db, video_hash=id_or_hash)
        else:
            try:
                clip_id = int(id_or_hash)
            except ValueError:
                raise NotFound("Clip", id_or_hash)
            affected = crud.increment_views(self.db, clip_id=clip_id)

        if affected == 0:
            raise NotFound("Clip", id_or_hash)

        if looks_like_hash(id_or_hash):
            clip = crud.get_clip_by_hash(self.db, id_or_hash)
        else:
            clip = crud.get_clip(self.db, clip_id)
        if clip is None:
            # Deleted between the increment and the read
            raise NotFound("Clip", id_or_hash)
        return clip

    def delete_clip(self, clip_id: int) -> None:
        """
        Remove the row, then the blob. The row is authoritative: a blob that
        cannot be removed is logged as orphaned and the delete still succeeds.
        """
        removed = crud.delete_clip(self.db, clip_id)
        if removed is None:
            raise NotFound("Clip", clip_id)

        try:
            self.store.delete(removed.file_path)
        except StorageFailure as e:
            logger.error(f"⚠️ Orphaned blob {removed.file_path} after deleting clip {clip_id}: {e}")

        logger.info(f"🗑️ Clip deleted: id={clip_id}")
