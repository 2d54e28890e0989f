"""
Tests for the clip repository
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from clipshare import crud, models
from clipshare.exceptions import RepositoryFailure

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_clip(n: int, owner_id: int = 1, is_private: bool = False, **overrides) -> models.Clip:
    fields = dict(
        title=f"Clip {n}",
        subtitle="",
        game="Valorant",
        duration="00:30",
        file_path=f"videos/{n}.mp4",
        owner_id=owner_id,
        upload_date=BASE_TIME + timedelta(minutes=n),
        video_hash=f"hash{n:020d}",
        is_private=is_private,
        views=0,
    )
    fields.update(overrides)
    return models.Clip(**fields)


class TestInsertAndLookup:

    def test_insert_assigns_id(self, db):
        clip_id = crud.insert_clip(db, make_clip(1))
        assert isinstance(clip_id, int)
        assert crud.get_clip(db, clip_id).title == "Clip 1"

    def test_get_by_hash(self, db):
        crud.insert_clip(db, make_clip(1))
        assert crud.get_clip_by_hash(db, "hash" + "1".zfill(20)).title == "Clip 1"
        assert crud.get_clip_by_hash(db, "unknown") is None

    def test_unknown_id(self, db):
        assert crud.get_clip(db, 999) is None

    def test_duplicate_hash_is_repository_failure(self, db):
        crud.insert_clip(db, make_clip(1))
        with pytest.raises(RepositoryFailure):
            crud.insert_clip(db, make_clip(2, video_hash=make_clip(1).video_hash))


class TestListing:

    def test_owner_listing_newest_first(self, db):
        for n in (1, 3, 2):
            crud.insert_clip(db, make_clip(n, is_private=(n == 2)))
        crud.insert_clip(db, make_clip(4, owner_id=2))

        everything = crud.list_clips_by_owner(db, 1, include_private=True)
        public = crud.list_clips_by_owner(db, 1, include_private=False)

        assert [c.title for c in everything] == ["Clip 3", "Clip 2", "Clip 1"]
        assert [c.title for c in public] == ["Clip 3", "Clip 1"]

    def test_public_recent_limit_and_order(self, db):
        for n in range(1, 8):
            crud.insert_clip(db, make_clip(n, is_private=(n % 2 == 0)))

        recent = crud.list_public_recent(db, 2)

        assert [c.title for c in recent] == ["Clip 7", "Clip 5"]
        assert all(not c.is_private for c in crud.list_public_recent(db, 100))


class TestUpdates:

    def test_update_privacy(self, db):
        clip_id = crud.insert_clip(db, make_clip(1, is_private=True))
        assert crud.update_privacy(db, clip_id, False) == 1
        assert crud.get_clip(db, clip_id).is_private is False

    def test_update_privacy_unknown(self, db):
        assert crud.update_privacy(db, 42, True) == 0

    def test_increment_by_id_and_hash(self, db):
        clip = make_clip(1)
        clip_id = crud.insert_clip(db, clip)

        assert crud.increment_views(db, clip_id=clip_id) == 1
        assert crud.increment_views(db, video_hash=clip.video_hash, value=3) == 1
        assert crud.get_clip(db, clip_id).views == 4

    def test_increment_requires_one_match(self, db):
        with pytest.raises(ValueError):
            crud.increment_views(db)
        with pytest.raises(ValueError):
            crud.increment_views(db, clip_id=1, video_hash="abc")

    def test_concurrent_increments_are_not_lost(self, db, session_factory):
        clip_id = crud.insert_clip(db, make_clip(1))

        def bump(_):
            session = session_factory()
            try:
                return crud.increment_views(session, clip_id=clip_id)
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(bump, range(40)))

        assert results == [1] * 40
        assert crud.get_clip(db, clip_id).views == 40


class TestDelete:

    def test_delete_returns_removed_row(self, db):
        clip_id = crud.insert_clip(db, make_clip(1))

        removed = crud.delete_clip(db, clip_id)

        assert removed.file_path == "videos/1.mp4"
        assert crud.get_clip(db, clip_id) is None

    def test_delete_unknown(self, db):
        assert crud.delete_clip(db, 5) is None

    def test_stats(self, db):
        assert crud.get_stats(db) == (0, 0)
        crud.insert_clip(db, make_clip(1, views=3))
        crud.insert_clip(db, make_clip(2, views=4))
        assert crud.get_stats(db) == (2, 7)
