"""
Blob storage for generated illustrations.

Images are stored under a durable key derived from ``(story_id, page_index)``
so a retried upload for the same page overwrites instead of duplicating.
"""

import base64
import binascii
import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

_EXT_BY_MIME = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
_MIME_BY_EXT = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def _ext_from_mime(mime_type: str) -> str:
    return _EXT_BY_MIME.get((mime_type or "").lower(), ".bin")


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """
    Decode a base64 ``data:`` URL.

    Returns:
        Tuple of (bytes, mime_type)

    Raises:
        ValueError: If the value is not a base64 data URL
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise ValueError("Not a base64 data URL")
    try:
        return base64.b64decode(match.group("data"), validate=True), match.group("mime")
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload in data URL: {e}")


class BlobStore(ABC):
    """Durable storage for story images."""

    @abstractmethod
    def upload(
        self,
        data: Union[bytes, str],
        story_id: str,
        page_index: int,
        mime_type: str = "image/png",
    ) -> str:
        """
        Store an image and return its durable URL.

        Args:
            data: Raw image bytes or a base64 data URL
            story_id: Owning story
            page_index: Page the image belongs to
            mime_type: MIME type of raw bytes (ignored for data URLs)
        """

    @abstractmethod
    def read(self, url: str) -> Optional[Tuple[bytes, str]]:
        """Return (bytes, mime_type) for a URL this store issued, else None."""

    @abstractmethod
    def delete_story_images(self, story_id: str) -> int:
        """Remove every image stored for a story; returns the number removed."""


class LocalBlobStore(BlobStore):
    """
    Filesystem blob store.

    Writes ``<root_dir>/<story_id>/page-<index><ext>`` and returns
    ``<url_prefix>/<story_id>/page-<index><ext>``; the web app serves
    ``root_dir`` under the prefix.
    """

    def __init__(self, root_dir: str, url_prefix: str):
        self.root_dir = root_dir
        self.url_prefix = url_prefix.rstrip("/")

    def _story_dir(self, story_id: str) -> str:
        if not story_id or "/" in story_id or "\\" in story_id or story_id.startswith("."):
            raise ValueError(f"Invalid story id: {story_id!r}")
        return os.path.join(self.root_dir, story_id)

    def upload(self, data, story_id, page_index, mime_type="image/png"):
        if isinstance(data, str):
            data, mime_type = decode_data_url(data)

        story_dir = self._story_dir(story_id)
        os.makedirs(story_dir, exist_ok=True)

        filename = f"page-{int(page_index)}{_ext_from_mime(mime_type)}"
        file_path = os.path.join(story_dir, filename)
        with open(file_path, "wb") as f:
            f.write(data)

        url = f"{self.url_prefix}/{story_id}/{filename}"
        logger.debug(f"Stored image for story {story_id} page {page_index} at {file_path}")
        return url

    def read(self, url):
        if not url or not url.startswith(self.url_prefix + "/"):
            return None
        relative = url[len(self.url_prefix) + 1:].split("?", 1)[0]
        parts = relative.split("/")
        if len(parts) != 2 or any(p in ("", ".", "..") for p in parts):
            return None
        file_path = os.path.join(self.root_dir, *parts)
        try:
            with open(file_path, "rb") as f:
                data = f.read()
        except OSError:
            return None
        ext = os.path.splitext(file_path)[1].lower()
        return data, _MIME_BY_EXT.get(ext, "application/octet-stream")

    def delete_story_images(self, story_id):
        story_dir = self._story_dir(story_id)
        if not os.path.isdir(story_dir):
            return 0
        count = len(os.listdir(story_dir))
        shutil.rmtree(story_dir)
        logger.info(f"Deleted {count} image(s) for story {story_id}")
        return count


_default_blob_store: Optional[BlobStore] = None


def get_default_blob_store() -> BlobStore:
    global _default_blob_store
    if _default_blob_store is None:
        from ..config import get_config
        config = get_config()
        _default_blob_store = LocalBlobStore(config.BLOB_DIR, config.BLOB_BASE_URL)
    return _default_blob_store


def reset_default_blob_store() -> None:
    global _default_blob_store
    _default_blob_store = None
