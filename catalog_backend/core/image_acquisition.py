"""Image Acquisition: turn a row's comma-separated image URLs into durable URLs.

Never raises. A single bad URL lands in ImageBatch.errors; a blob store outage
sets failed_outright and the row continues with no images.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional

from catalog_backend.core.blob_store import BlobStore
from catalog_backend.core.config import settings
from catalog_backend.core.errors import ImageAcquisitionError, StorageConnectionError

logger = logging.getLogger(__name__)


@dataclass
class ImageBatch:
    urls: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failed_outright: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.errors) and not self.failed_outright


def split_image_urls(raw: Optional[str]) -> list[str]:
    """'a.jpg, , b.jpg ' -> ['a.jpg', 'b.jpg']"""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class ImageAcquirer:
    def __init__(
        self,
        blob_store: BlobStore,
        bucket: Optional[str] = None,
        max_workers: Optional[int] = None,
    ):
        self.blob_store = blob_store
        self.bucket = bucket or settings.storage_bucket_name
        self.max_workers = max_workers or settings.image_max_workers

    def acquire(self, raw: Optional[str]) -> ImageBatch:
        sources = split_image_urls(raw)
        if not sources:
            return ImageBatch()

        try:
            return self._acquire_all(sources)
        except Exception as e:
            logger.error(f"Image acquisition failed outright: {e}")
            return ImageBatch(errors=[str(e)], failed_outright=True)

    def _acquire_all(self, sources: list[str]) -> ImageBatch:
        stored: dict[int, str] = {}
        errors: dict[int, str] = {}

        workers = max(1, min(self.max_workers, len(sources)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.blob_store.fetch_and_store, url, self.bucket): i
                for i, url in enumerate(sources)
            }
            for future in as_completed(futures):
                i = futures[future]
                try:
                    stored[i] = future.result()
                except StorageConnectionError:
                    raise
                except ImageAcquisitionError as e:
                    logger.warning(f"Image {sources[i]} skipped: {e}")
                    errors[i] = f"{sources[i]}: {e}"
                except Exception as e:
                    logger.error(f"Image {sources[i]} failed unexpectedly: {e}", exc_info=True)
                    errors[i] = f"{sources[i]}: {e}"

        # Input order, not completion order.
        urls = [stored[i] for i in sorted(stored)]
        return ImageBatch(urls=urls, errors=[errors[i] for i in sorted(errors)])
