"""Photo storage for price submissions."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from werkzeug.utils import secure_filename

_LOGGER = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.heic', '.webp'}


class PhotoStore:
    """Stores uploaded photos in a local directory served at /uploads."""

    def __init__(self, upload_dir: str, url_prefix: str = '/uploads'):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip('/')

    def save(self, file) -> Optional[str]:
        """Save an uploaded file and return its URL, or None on failure.

        A failed upload never blocks the price submission it came with.
        """
        if file is None or not file.filename:
            return None

        suffix = Path(secure_filename(file.filename)).suffix.lower()
        if suffix not in ALLOWED_EXTENSIONS:
            _LOGGER.warning("Rejected photo upload with extension %r", suffix)
            return None

        name = f"{uuid.uuid4().hex}{suffix}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            file.save(self.upload_dir / name)
        except OSError as exc:
            _LOGGER.error("Failed to store photo: %s", exc)
            return None

        _LOGGER.info("Stored photo %s", name)
        return f"{self.url_prefix}/{name}"

    def discard(self, url: Optional[str]):
        """Remove a photo saved for a submission that was then rejected."""
        if not url or not url.startswith(f"{self.url_prefix}/"):
            return
        path = self.upload_dir / Path(url).name
        try:
            path.unlink()
        except FileNotFoundError:
            return
        _LOGGER.info("Discarded photo %s", path.name)
