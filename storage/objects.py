from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import re
import time

logger = logging.getLogger(__name__)


class UploadError(RuntimeError):
    """Raised when the object write fails; nothing was persisted."""


@dataclass(frozen=True)
class StorageConfig:
    base_dir: Path
    bucket: str


def load_storage_config() -> StorageConfig:
    base_dir = Path(os.getenv("STORAGE_BASE_DIR", "out/storage")).expanduser().resolve()
    bucket = os.getenv("RAW_VIDEO_BUCKET", "contest-videos").strip() or "contest-videos"
    return StorageConfig(base_dir=base_dir, bucket=bucket)


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9.-]", "-", name or "")
    return cleaned or "video.mp4"


def build_object_path(
    *,
    user_id: str,
    filename: str,
    contest_id: str | None = None,
    now_ms: int | None = None,
) -> str:
    prefix = contest_id or "general"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}/{user_id}/{stamp}-{sanitize_filename(filename)}"


class LocalObjectStore:
    """Bucketed object store backed by a directory tree.

    Objects live at ``<base_dir>/<bucket>/<path>``. Writes refuse to overwrite
    an existing object.
    """

    def __init__(self, config: StorageConfig | None = None) -> None:
        self.config = config or load_storage_config()

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def _resolve(self, path: str) -> Path:
        root = (self.config.base_dir / self.config.bucket).resolve()
        target = (root / path).resolve()
        try:
            target.relative_to(root)
        except ValueError:
            raise UploadError(f"object path escapes bucket: {path}")
        return target

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        if target.exists():
            raise UploadError(f"object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise UploadError(f"failed to write object {path}: {exc}") from exc
        logger.info("[storage] put bucket=%s path=%s bytes=%s", self.bucket, path, len(data))
        return path

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        target.unlink()
        logger.info("[storage] delete bucket=%s path=%s", self.bucket, path)
        return True

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
