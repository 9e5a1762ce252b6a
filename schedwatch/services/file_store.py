"""
Stores retrieved file snapshots on disk, one directory per file node.
"""
import logging
import mimetypes
import os
import re
import time
from typing import Iterable, List, Optional

from schedwatch.config import DOWNLOAD_DIR
from schedwatch.services.tree import PATH_SEPARATOR, File

# Types the platform mime table may not know about
_KNOWN_EXTENSIONS = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel": ".xls",
    "application/pdf": ".pdf",
}


def _safe_segment(name: str) -> str:
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f]', "_", name).strip()
    if name in ("", ".", ".."):
        return "_"
    return name


def extension_for(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    mime = content_type.split(";")[0].strip().lower()
    return _KNOWN_EXTENSIONS.get(mime) or mimetypes.guess_extension(mime) or ""


class FileStore:
    """Saves snapshots as ``<base>/<path segments>/<capture millis><ext>``."""

    def __init__(self, base_dir: str = DOWNLOAD_DIR):
        self.base_dir = base_dir

    def directory_for(self, file: File) -> str:
        segments = [_safe_segment(s) for s in file.path.split(PATH_SEPARATOR) if s]
        return os.path.join(self.base_dir, *segments)

    def resolve(self, file: File, snapshot: str) -> str:
        return os.path.join(self.directory_for(file), snapshot)

    def exists(self, file: File, snapshot: str) -> bool:
        return os.path.isfile(self.resolve(file, snapshot))

    def save(self, file: File, chunks: Iterable[bytes], content_type: Optional[str] = None) -> str:
        """Writes one snapshot and returns its identifier. Does not touch ``file.saves``."""
        directory = self.directory_for(file)
        os.makedirs(directory, exist_ok=True)
        extension = extension_for(content_type)

        stamp = int(time.time() * 1000)
        while os.path.exists(os.path.join(directory, f"{stamp}{extension}")):
            stamp += 1
        snapshot = f"{stamp}{extension}"

        with open(os.path.join(directory, snapshot), "wb") as f:
            for chunk in chunks:
                if chunk:
                    f.write(chunk)
        logging.info(f"Stored snapshot {snapshot} for {file.id} ({file.display_path()!r})")
        return snapshot

    def prune(self, file: File) -> List[str]:
        """Drops history entries whose artifact no longer exists; returns the dropped ones."""
        kept, dropped = [], []
        for snapshot in file.saves:
            if self.exists(file, snapshot):
                kept.append(snapshot)
            else:
                logging.warning(f"404 {self.resolve(file, snapshot)}")
                dropped.append(snapshot)
        file.saves = kept
        return dropped
