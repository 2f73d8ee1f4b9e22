"""
Image Preloader - Loads every working-set image before a run begins

Images are read and resized in a thread pool (PIL only, which is thread
safe) and handed back as PNG data URIs. Progress is reported on the
calling thread as each load completes. An image that cannot be loaded is
not fatal: the error is logged and the original reference is used.
"""

import base64
import io
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from PIL import Image

from catalog import Item, SorterError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

DEFAULT_MAX_SIZE = 700


class ResourceLoadFailure(SorterError):
    """An item's image could not be loaded."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Failed to load image: {source} ({reason})")
        self.source = source


def resolve_source(image_ref: str, image_root: str = '') -> str:
    """Path of an item image relative to the image root."""
    if not image_root or Path(image_ref).is_absolute():
        return image_ref
    return str(Path(image_root) / image_ref)


def load_image_data_uri(source: str, max_size: int = DEFAULT_MAX_SIZE) -> str:
    """
    Load an image, shrink it to fit max_size and encode it as a data URI.

    Raises:
        ResourceLoadFailure: the file is missing or not an image
    """
    try:
        with Image.open(source) as pil_img:
            if pil_img.mode not in ('RGB', 'L', 'RGBA'):
                pil_img = pil_img.convert('RGBA')

            ratio = min(max_size / pil_img.width, max_size / pil_img.height)
            if ratio < 1:
                new_size = (max(1, int(pil_img.width * ratio)), max(1, int(pil_img.height * ratio)))
                pil_img = pil_img.resize(new_size, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            pil_img.save(buffer, format='PNG')
    except (OSError, ValueError) as e:
        raise ResourceLoadFailure(source, str(e)) from e

    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f"data:image/png;base64,{encoded}"


class ImagePreloader:
    """Loads the images of a working set in parallel."""

    def __init__(self, image_root: str = '', max_size: int = DEFAULT_MAX_SIZE, max_workers: int = 4):
        self.image_root = image_root
        self.max_size = max_size
        self.max_workers = max_workers

    def _load(self, item: Item) -> str:
        return load_image_data_uri(resolve_source(item.image_ref, self.image_root), self.max_size)

    def preload(self, items: Sequence[Item], progress: Optional[ProgressCallback] = None) -> Dict[int, str]:
        """
        Load every item image.

        Args:
            items: Working set to load
            progress: Called with ("Loading Image k", percent) per finished load

        Returns:
            Mapping of working-set index to a data URI, or to the original
            reference when loading failed
        """
        total = len(items)
        resolved: Dict[int, str] = {}
        failures = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._load, item): index for index, item in enumerate(items)}

            for loaded, future in enumerate(as_completed(futures), 1):
                index = futures[future]
                try:
                    resolved[index] = future.result()
                except ResourceLoadFailure as e:
                    logger.error(str(e))
                    resolved[index] = items[index].image_ref
                    failures += 1

                if progress:
                    progress(f"Loading Image {loaded}", loaded * 100 // total)

        logger.info(f"Preloaded {total - failures}/{total} images ({failures} fallback)")
        return resolved
