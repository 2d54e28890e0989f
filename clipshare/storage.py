"""
Blob storage for uploaded video files.
Files live on a local tree under the storage root and are addressed by
root-relative POSIX paths, which is what gets persisted in clip metadata.
"""

import logging
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional

from .exceptions import NotFound, RangeNotSatisfiable, StorageFailure, UnsupportedMediaType

logger = logging.getLogger(__name__)


@dataclass
class BlobSlice:
    """A byte range of a stored file, inclusive on both ends."""
    path: Path
    start: int
    end: int
    size: int
    content_type: str
    partial: bool

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


class BlobStore:
    """Local file-tree store for clip video bytes."""

    ALLOWED_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
    ALLOWED_CONTENT_TYPES = {
        "video/mp4",
        "video/quicktime",
        "video/x-msvideo",
        "video/avi",
        "video/msvideo",
        "video/x-matroska",
        "video/webm",
    }
    CONTENT_TYPES = {
        ".mp4": "video/mp4",
        ".mov": "video/quicktime",
        ".avi": "video/x-msvideo",
        ".mkv": "video/x-matroska",
        ".webm": "video/webm",
    }
    DEFAULT_CONTENT_TYPE = "video/mp4"
    VIDEO_DIR = "videos"

    def __init__(self, root: str, chunk_size: int = 64 * 1024):
        self.root = Path(root).resolve()
        self.chunk_size = chunk_size

    def is_allowed(self, filename: str, content_type: Optional[str]) -> bool:
        ext = Path(filename).suffix.lower()
        mime = (content_type or "").split(";")[0].strip().lower()
        return ext in self.ALLOWED_EXTENSIONS and mime in self.ALLOWED_CONTENT_TYPES

    @classmethod
    def content_type_for(cls, storage_path: str) -> str:
        return cls.CONTENT_TYPES.get(PurePosixPath(storage_path).suffix.lower(), cls.DEFAULT_CONTENT_TYPE)

    def _unique_name(self, ext: str) -> str:
        return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"

    def save(self, fileobj: BinaryIO, filename: str, content_type: Optional[str]) -> str:
        """
        Store an uploaded file under a generated name.

        Returns:
            Path relative to the storage root, e.g. "videos/1700000000000-42.mp4"
        """
        if not self.is_allowed(filename, content_type):
            raise UnsupportedMediaType(filename, content_type or "")

        ext = Path(filename).suffix.lower()
        target_dir = self.root / self.VIDEO_DIR

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            while True:
                name = self._unique_name(ext)
                try:
                    # Exclusive create, never overwrite another writer's file
                    with open(target_dir / name, "xb") as out:
                        shutil.copyfileobj(fileobj, out, self.chunk_size)
                    break
                except FileExistsError:
                    continue
        except OSError as e:
            logger.error(f"❌ Failed to store upload {filename}: {e}")
            raise StorageFailure("write", e) from e

        storage_path = f"{self.VIDEO_DIR}/{name}"
        logger.info(f"💾 Stored blob {storage_path}")
        return storage_path

    def resolve(self, storage_path: str) -> Path:
        """Map a stored relative path to a file inside the root."""
        candidate = (self.root / storage_path.lstrip("/")).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise NotFound("File", storage_path)
        if not candidate.is_file():
            raise NotFound("File", storage_path)
        return candidate

    def delete(self, storage_path: str) -> None:
        """Remove a blob; a file that is already gone is fine."""
        try:
            path = self.resolve(storage_path)
        except NotFound:
            return

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure("delete", e) from e
        logger.info(f"🗑️ Deleted blob {storage_path}")

    def open_range(self, storage_path: str, range_header: Optional[str] = None) -> BlobSlice:
        path = self.resolve(storage_path)
        try:
            size = path.stat().st_size
        except FileNotFoundError as e:
            raise NotFound("File", storage_path) from e
        except OSError as e:
            raise StorageFailure("stat", e) from e

        content_type = self.content_type_for(storage_path)

        if not range_header:
            return BlobSlice(path, 0, max(size - 1, 0), size, content_type, partial=False)

        parsed = parse_range(range_header, size)
        if parsed is None:
            return BlobSlice(path, 0, max(size - 1, 0), size, content_type, partial=False)

        start, end = parsed
        return BlobSlice(path, start, end, size, content_type, partial=True)

    def iter_bytes(self, blob: BlobSlice) -> Iterator[bytes]:
        """Yield the slice in chunks from a handle owned by this generator."""
        if blob.size == 0:
            return
        with open(blob.path, "rb") as f:
            f.seek(blob.start)
            remaining = blob.length
            while remaining:
                chunk = f.read(min(self.chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk


def parse_range(range_header: str, size: int):
    """
    Parse a single "bytes=" range against a file of `size` bytes.

    Supports "a-b", "a-" and the suffix form "-n". Multiple ranges are not
    supported; the first one is served.

    Returns:
        (start, end) inclusive, or None when the unit is not "bytes"
    """
    unit, _, ranges = range_header.partition("=")
    if unit.strip().lower() != "bytes":
        # Unknown range units are ignored and the whole file is served
        return None
    if not ranges:
        raise RangeNotSatisfiable(size)

    first = ranges.split(",")[0].strip()
    start_text, sep, end_text = first.partition("-")
    if not sep:
        raise RangeNotSatisfiable(size)

    try:
        if start_text == "":
            suffix = int(end_text)
            if suffix <= 0:
                raise RangeNotSatisfiable(size)
            start = max(size - suffix, 0)
            end = size - 1
        else:
            start = int(start_text)
            end = int(end_text) if end_text else size - 1
    except ValueError:
        raise RangeNotSatisfiable(size)

    end = min(end, size - 1)
    if start < 0 or start >= size or end < start:
        raise RangeNotSatisfiable(size)

    return start, end
