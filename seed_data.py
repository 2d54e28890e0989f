import argparse
import sys
from pathlib import Path

from clipshare import models, schemas
from clipshare.config import get_settings
from clipshare.database import create_database_engine, create_session_factory
from clipshare.exceptions import ClipsException
from clipshare.service import ClipService
from clipshare.storage import BlobStore

def import_clips(source_dir: str, game: str, owner_id=None, settings=None):
    """Import every video file in `source_dir` as a private clip. Returns the new clips."""
    settings = settings or get_settings()
    print(f"🌱 Importing clips from {source_dir} into {settings.database_url.split('@')[-1]}")

    engine = create_database_engine(settings)
    models.Base.metadata.create_all(bind=engine)

    db = create_session_factory(engine)()
    store = BlobStore(settings.storage_root, chunk_size=settings.stream_chunk_size)
    service = ClipService(db, store, settings)

    created = []
    try:
        for path in sorted(Path(source_dir).iterdir()):
            ext = path.suffix.lower()
            if not path.is_file() or ext not in BlobStore.ALLOWED_EXTENSIONS:
                continue

            metadata = schemas.ClipCreate(
                title=path.stem.replace("_", " "),
                game=game,
                owner_id=owner_id,
            )
            with open(path, "rb") as f:
                clip = service.upload(metadata, f, path.name, BlobStore.CONTENT_TYPES[ext])
            created.append(clip)
            print(f"  ➕ {path.name} -> id={clip.id} hash={clip.video_hash}")

        print(f"✅ Imported {len(created)} clips (all private)")
        return created

    except ClipsException as e:
        print(f"❌ Error importing clips: {e.message}")
        raise
    finally:
        db.close()
        engine.dispose()

def main(argv=None):
    parser = argparse.ArgumentParser(description="Import a folder of video files as private clips")
    parser.add_argument("source_dir")
    parser.add_argument("--game", required=True)
    parser.add_argument("--owner-id", type=int, default=None)
    args = parser.parse_args(argv)

    try:
        import_clips(args.source_dir, args.game, args.owner_id)
    except ClipsException:
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
