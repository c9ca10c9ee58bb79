"""
Classification Cache
Bounded, advisory cache for category classification results keyed by product
identity plus extraction goal.

The cache is an explicit object handed to each run instead of a module-level
map. It is backed by diskcache, which is safe for concurrent readers and
writers across threads and processes. Every failure is treated as a miss:
losing entries only costs a repeated LLM call.
"""

import hashlib
import json
import logging
import shutil
import tempfile
from typing import Any, Dict, Optional

import diskcache

from .models import Product

logger = logging.getLogger(__name__)


def classification_cache_key(product: Product, goal: str) -> str:
    """md5(title, url, price)[:8] + md5(goal)[:8]"""
    identity = json.dumps(
        {'title': product.title, 'url': product.url, 'price': product.price},
        sort_keys=True
    )
    product_hash = hashlib.md5(identity.encode()).hexdigest()[:8]
    goal_hash = hashlib.md5((goal or '').encode()).hexdigest()[:8]
    return f"{product_hash}:{goal_hash}"


class ClassificationCache:
    """LRU-evicting classification result cache"""

    def __init__(
        self,
        directory: Optional[str] = None,
        size_limit: int = 16 * 1024 * 1024,
        ttl: Optional[int] = None
    ):
        """
        Initialize Classification Cache

        Args:
            directory: Cache directory; a private temp dir is used when omitted
            size_limit: Maximum on-disk size in bytes before LRU culling
            ttl: Optional expiry per entry in seconds
        """
        self._owns_directory = directory is None
        self.directory = directory or tempfile.mkdtemp(prefix='fetchpilot-cls-')
        self.ttl = ttl
        self.cache = diskcache.Cache(
            self.directory,
            size_limit=size_limit,
            eviction_policy='least-recently-used'
        )
        logger.debug(f" Classification cache at {self.directory} (limit {size_limit:,} bytes)")

    def get(self, product: Product, goal: str) -> Optional[Dict[str, Any]]:
        try:
            return self.cache.get(classification_cache_key(product, goal))
        except Exception as e:
            logger.warning(f" Classification cache get failed: {e}")
            return None

    def set(self, product: Product, goal: str, result: Dict[str, Any]) -> bool:
        try:
            return bool(self.cache.set(classification_cache_key(product, goal), result, expire=self.ttl))
        except Exception as e:
            logger.warning(f" Classification cache set failed: {e}")
            return False

    def clear(self) -> None:
        try:
            self.cache.clear()
        except Exception as e:
            logger.warning(f" Classification cache clear failed: {e}")

    def close(self) -> None:
        self.cache.close()
        if self._owns_directory:
            shutil.rmtree(self.directory, ignore_errors=True)

    def __len__(self) -> int:
        return len(self.cache)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
