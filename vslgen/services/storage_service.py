"""Local volume storage for uploads, generated videos and job workspaces.

Layout under ``storage_base_path``:

    uploads/                 intro and secondary videos
    videos/{lead}.mp4        final videos
    videos/previews/         {lead}_preview.mp4
    videos/thumbnails/       {lead}.jpg
    videos/backgrounds/      {lead}.png (raw screenshot)
    temp/{lead}/             per-job workspace

Records store storage keys (paths relative to the base path) so the volume
can be remounted elsewhere.
"""

import logging
import os
import shutil
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from vslgen.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Record attribute -> artifact kind
ARTIFACT_FIELDS = {
    "video_path": "video",
    "preview_path": "preview",
    "thumbnail_path": "thumbnail",
    "background_path": "background",
}


class StorageService:
    """Filesystem storage rooted at a single base directory."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.storage_base_path)
        self.uploads_dir = self.base_path / "uploads"
        self.videos_dir = self.base_path / "videos"
        self.previews_dir = self.videos_dir / "previews"
        self.thumbnails_dir = self.videos_dir / "thumbnails"
        self.backgrounds_dir = self.videos_dir / "backgrounds"
        self.temp_dir = self.base_path / "temp"

    def ensure_dirs(self) -> None:
        for directory in (
            self.uploads_dir,
            self.videos_dir,
            self.previews_dir,
            self.thumbnails_dir,
            self.backgrounds_dir,
            self.temp_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------------------------------
    # Directories
    # -------------------------------------------------------------------------

    def resolve_output_dir(self) -> Path:
        self.videos_dir.mkdir(parents=True, exist_ok=True)
        return self.videos_dir

    def resolve_preview_dir(self) -> Path:
        self.previews_dir.mkdir(parents=True, exist_ok=True)
        return self.previews_dir

    def resolve_thumbnail_dir(self) -> Path:
        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)
        return self.thumbnails_dir

    def resolve_background_dir(self) -> Path:
        self.backgrounds_dir.mkdir(parents=True, exist_ok=True)
        return self.backgrounds_dir

    def resolve_temp_dir(self, lead_id: str) -> Path:
        """Fresh, empty workspace for one job. Leftovers from a crashed run are removed."""
        workspace = self.temp_dir / str(lead_id)
        if workspace.exists():
            logger.warning(f"[STORAGE] Removing stale workspace: {workspace}")
            shutil.rmtree(workspace)
        workspace.mkdir(parents=True)
        return workspace

    # -------------------------------------------------------------------------
    # Artifact paths
    # -------------------------------------------------------------------------

    def video_path(self, lead_id: str) -> Path:
        return self.resolve_output_dir() / f"{lead_id}.mp4"

    def preview_path(self, lead_id: str) -> Path:
        return self.resolve_preview_dir() / f"{lead_id}_preview.mp4"

    def thumbnail_path(self, lead_id: str) -> Path:
        return self.resolve_thumbnail_dir() / f"{lead_id}.jpg"

    def background_path(self, lead_id: str) -> Path:
        return self.resolve_background_dir() / f"{lead_id}.png"

    def to_storage_key(self, path: Path | str) -> str:
        """Relative key for a path inside the base directory."""
        return Path(path).resolve().relative_to(self.base_path.resolve()).as_posix()

    def get_file_path(self, storage_key: str) -> Path:
        """Absolute path for a storage key.

        Keys may carry a leading slash ("/uploads/intro.mp4"); paths already
        inside the base directory pass through unchanged.
        """
        path = Path(storage_key)
        if path.is_absolute() and path.is_relative_to(self.base_path):
            return path
        return self.base_path / storage_key.lstrip("/")

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def file_size(self, storage_key: Optional[str]) -> int:
        if not storage_key:
            return 0
        path = self.get_file_path(storage_key)
        return path.stat().st_size if path.is_file() else 0

    def delete_file(self, storage_key: str) -> bool:
        """Delete file."""
        full_path = self.get_file_path(storage_key)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    def record_size(self, record: Any) -> int:
        """Bytes on disk for every artifact a record points to."""
        return sum(self.file_size(getattr(record, attr, None)) for attr in ARTIFACT_FIELDS)

    def delete_files_for_record(self, record: Any) -> list[str]:
        """Delete a record's artifacts. Returns the kinds actually removed."""
        deleted = []
        for attr, kind in ARTIFACT_FIELDS.items():
            storage_key = getattr(record, attr, None)
            if storage_key and self.delete_file(storage_key):
                deleted.append(kind)
        return deleted

    def get_storage_usage(self) -> int:
        """Total bytes under the videos directory."""
        total = 0
        if not self.videos_dir.exists():
            return 0
        for root, _dirs, files in os.walk(self.videos_dir):
            for name in files:
                try:
                    total += (Path(root) / name).stat().st_size
                except FileNotFoundError:
                    continue
        return total

    def get_storage_stats(self) -> dict:
        """Usage summary for logging."""
        used = self.get_storage_usage()
        limit = self.settings.max_storage_mb * 1024 * 1024
        return {
            "used_bytes": used,
            "used_mb": round(used / (1024 * 1024), 2),
            "limit_mb": self.settings.max_storage_mb,
            "percent": round(used / limit * 100, 2) if limit else 0.0,
        }


@lru_cache
def get_storage_service() -> StorageService:
    return StorageService()
