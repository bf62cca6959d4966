"""
Asset Mirror
============

Copies remote images into owned object storage under deterministic keys.

Keys:
- main image: ``<prefix><ext>``, e.g. ``news/khabaronline/4821.jpg``
- inline image: ``<prefix>/inline-<n><ext>`` with ``n`` counted from 1

Every failure here is soft. ``mirror`` logs it and returns None so the caller
keeps the original reference and carries on with the item.
"""

import re
from typing import Dict, Iterable, Optional

import requests

from ..ingestion.http_client import HttpFetcher, IMAGE_ACCEPT
from ..storage.object_storage import ObjectStorage
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import AssetMirrorError, ErrorCode

DEFAULT_EXTENSION = ".jpg"

CONTENT_TYPE_EXTENSIONS = (
    ("image/webp", ".webp"),
    ("image/png", ".png"),
    ("image/jpeg", ".jpg"),
    ("image/jpg", ".jpg"),
    ("image/gif", ".gif"),
)

URL_EXTENSION_PATTERN = re.compile(r"\.(webp|png|jpe?g|gif)(?:\?|$)", re.IGNORECASE)


def resolve_image_extension(url: str, content_type: Optional[str]) -> str:
    """Pick a file extension: content-type first, then the URL, then ``.jpg``."""
    normalized_type = (content_type or "").lower()
    for media_type, extension in CONTENT_TYPE_EXTENSIONS:
        if media_type in normalized_type:
            return extension

    match = URL_EXTENSION_PATTERN.search(url or "")
    if match:
        return f".{match.group(1).lower()}"

    return DEFAULT_EXTENSION


def build_asset_key(key_prefix: str, extension: str, index: Optional[int] = None) -> str:
    """Storage key of a main (``index`` None) or inline image."""
    key_prefix = key_prefix.strip("/")
    if index is None:
        return f"{key_prefix}{extension}"
    return f"{key_prefix}/inline-{index}{extension}"


class AssetMirror:
    """Downloads images and stores them in object storage."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        storage: ObjectStorage,
        max_bytes: Optional[int] = None,
    ):
        """Initialize asset mirror.

        Args:
            fetcher: HTTP client used to download images
            storage: Object storage receiving the copies
            max_bytes: Images larger than this are not mirrored
        """
        self.fetcher = fetcher
        self.storage = storage
        self.max_bytes = max_bytes
        self.logger = get_logger_for_component("asset_mirror")

    def mirror(self, url: Optional[str], key_prefix: str, index: Optional[int] = None) -> Optional[str]:
        """Mirror one image.

        Args:
            url: Absolute image URL
            key_prefix: Deterministic key prefix for the article
            index: 1-based inline position, None for the main image

        Returns:
            Public URL of the stored copy, or None if mirroring failed
        """
        if not url:
            return None

        try:
            return self._mirror(url, key_prefix, index)
        except AssetMirrorError as e:
            self.logger.warning(
                f"Failed to mirror image {url}: {e}", extra=e.to_dict()
            )
            return None

    def _mirror(self, url: str, key_prefix: str, index: Optional[int]) -> str:
        try:
            response = self.fetcher.get(url, accept=IMAGE_ACCEPT)
        except requests.RequestException as e:
            raise AssetMirrorError(
                f"Download failed: {e}",
                asset_url=url,
                error_code=ErrorCode.ASSET_DOWNLOAD_FAILED,
            ) from e

        body = response.content
        if self.max_bytes is not None and len(body) > self.max_bytes:
            raise AssetMirrorError(
                f"Image is {len(body)} bytes, limit is {self.max_bytes}",
                asset_url=url,
                error_code=ErrorCode.ASSET_TOO_LARGE,
            )

        content_type = response.content_type or None
        key = build_asset_key(key_prefix, resolve_image_extension(url, content_type), index)
        stored = self.storage.upload(key, body, content_type=content_type, length=len(body))

        self.logger.debug(f"Mirrored {url} -> {key}")
        return stored.url

    def mirror_inline(self, images: Iterable[str], key_prefix: str) -> Dict[str, str]:
        """Mirror inline images in order.

        The index of an image is its 1-based position in ``images``, so a
        failed image leaves a gap instead of shifting the keys of the rest.

        Returns:
            Mapping of original URL to mirrored URL for the images that were
            stored
        """
        replacements: Dict[str, str] = {}
        for index, url in enumerate(images, start=1):
            if url in replacements:
                continue
            stored_url = self.mirror(url, key_prefix, index=index)
            if stored_url:
                replacements[url] = stored_url

        if replacements:
            self.logger.info(f"Mirrored {len(replacements)} inline images under {key_prefix}")
        return replacements
