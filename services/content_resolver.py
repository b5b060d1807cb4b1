import io
import mimetypes
import os
import posixpath
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
from flask import current_app
from PIL import Image, UnidentifiedImageError

from services.errors import FileNotFoundInStore, MetadataStoreError
from services.metadata_store import MetadataStore
from services.object_store import ObjectStore

TEXT_EXTENSIONS = ('.txt',)
IMAGE_EXTENSIONS = ('.jpeg', '.jpg', '.png')

# Pillow format name -> (extension, content type)
_SNIFFED_IMAGE_TYPES = {
    'PNG': ('.png', 'image/png'),
    'JPEG': ('.jpeg', 'image/jpeg'),
}


def sniff_image_format(data: bytes) -> Optional[str]:
    """Return 'PNG' or 'JPEG' when the bytes are one of those, else None."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    return fmt if fmt in _SNIFFED_IMAGE_TYPES else None


def sniff_extension(data: bytes, declared_name: Optional[str] = None, default: str = '') -> str:
    """
    Pick the storage extension for an uploaded payload.

    PNG and JPEG are recognised from the bytes. Anything else keeps the
    extension of the name the sender declared, or `default` when there is none.
    """
    fmt = sniff_image_format(data)
    if fmt:
        return _SNIFFED_IMAGE_TYPES[fmt][0]
    if declared_name:
        _, ext = os.path.splitext(declared_name)
        if ext:
            return ext
    return default


def content_type_for(key: str, data: bytes) -> str:
    fmt = sniff_image_format(data)
    if fmt:
        return _SNIFFED_IMAGE_TYPES[fmt][1]
    if key.lower().endswith(TEXT_EXTENSIONS):
        return 'text/plain; charset=utf-8'
    guessed, _ = mimetypes.guess_type(key)
    return guessed or 'application/octet-stream'


def classify(url: str) -> str:
    """'text', 'image' or 'unsupported', by the extension of the URL's last path segment."""
    name = unquote(posixpath.basename(urlparse(url or "").path)).strip().lower()
    if name.endswith(TEXT_EXTENSIONS):
        return 'text'
    if name.endswith(IMAGE_EXTENSIONS):
        return 'image'
    return 'unsupported'


class ContentResolver:
    """
    Resolves file names to content URLs.

    The metadata table is authoritative. When it has no URL the bucket is
    scanned for a key starting with the file name; this covers records whose
    URL was never written and names stored without their extension.
    """

    def __init__(self, metadata: MetadataStore, objects: ObjectStore, fetch_timeout: float = 10.0) -> None:
        self._metadata = metadata
        self._objects = objects
        self._fetch_timeout = fetch_timeout

    def resolve(self, file_name: str) -> str:
        try:
            url = self._metadata.get_content_url(file_name)
        except MetadataStoreError as e:
            current_app.logger.warning(f"Metadata lookup for '{file_name}' failed, scanning bucket instead: {e}")
            url = None
        if url:
            return url
        return self._resolve_from_bucket(file_name)

    def _resolve_from_bucket(self, file_name: str) -> str:
        # Degraded mode: O(objects in bucket) per lookup.
        keys = self._objects.list_all_keys()
        key = self._match_key(file_name, keys)
        if key is None:
            raise FileNotFoundInStore(file_name)

        url = self._objects.public_url(key)
        current_app.logger.warning(
            f"No stored URL for '{file_name}'; matched bucket key '{key}' by prefix scan. "
            "Metadata and object storage have diverged."
        )
        try:
            self._metadata.update_content_url(file_name, url)
        except MetadataStoreError as e:
            current_app.logger.warning(f"Could not back-fill URL for '{file_name}': {e}")
        return url

    @staticmethod
    def _match_key(file_name: str, keys) -> Optional[str]:
        """Prefer `name` or `name.<ext>`; otherwise the first key with the name as prefix."""
        prefixed = [k for k in keys if k.startswith(file_name)]
        for key in prefixed:
            if key == file_name or os.path.splitext(key)[0] == file_name:
                return key
        return prefixed[0] if prefixed else None

    def fetch_text(self, url: str) -> str:
        """Download a text file from its public URL."""
        response = requests.get(url, timeout=self._fetch_timeout)
        response.raise_for_status()
        return response.content.decode('utf-8', errors='replace')
