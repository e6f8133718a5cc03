# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Artwork normalization and caching.

Raw image bytes from the device (or a preset's station logo) are re-encoded
as a bounded JPEG in a worker thread and cached by URL, so the same cover is
only fetched and converted once per process.
"""

import asyncio
import base64
import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

from PIL import Image, UnidentifiedImageError

log = logging.getLogger(__name__)

MAX_ARTWORK_SIZE = 500 * 1024  # 500 KB limit for JPEG output
ARTWORK_CACHE_SIZE = 50        # number of artworks to cache

# Shared thread pool for CPU-bound image processing
_artwork_executor = ThreadPoolExecutor(max_workers=2)


class ArtworkCache:
    """Simple LRU cache for artwork data (URL -> processed artwork dict)."""

    def __init__(self, max_size=ARTWORK_CACHE_SIZE):
        self.max_size = max_size
        self._cache: OrderedDict[str, dict] = OrderedDict()

    def get(self, url: str) -> dict | None:
        data = self._cache.get(url)
        if data is not None:
            self._cache.move_to_end(url)
        return data

    def put(self, url: str, data: dict):
        self._cache[url] = data
        self._cache.move_to_end(url)
        while len(self._cache) > self.max_size:
            self._cache.popitem(last=False)

    def __contains__(self, url: str):
        return url in self._cache

    def __len__(self):
        return len(self._cache)


def process_image(image_bytes: bytes) -> dict | None:
    """Convert raw image bytes to ``{'jpeg': bytes, 'base64': str, 'size': (w, h)}``.

    CPU-bound; run it through ``process_image_async``.  Returns None when the
    bytes are not a readable image.
    """
    try:
        image = Image.open(BytesIO(image_bytes))
        if image.mode in ("RGBA", "LA", "P"):
            image = image.convert("RGB")

        buf = BytesIO()
        image.save(buf, "JPEG", quality=85)
        if buf.tell() > MAX_ARTWORK_SIZE:
            buf = BytesIO()
            image.save(buf, "JPEG", quality=60)

        jpeg = buf.getvalue()
        return {
            "jpeg": jpeg,
            "base64": base64.b64encode(jpeg).decode("utf-8"),
            "size": image.size,
        }
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.warning("Error processing image: %s", e)
        return None


async def process_image_async(image_bytes: bytes) -> dict | None:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_artwork_executor, process_image, image_bytes)
