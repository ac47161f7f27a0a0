"""
Parameter-hash keyed cache.

Caches values derived from an object's parameters (a kernel matrix, a
normalisation constant) and drops them when the object's combined parameter
hash changes, so dependent objects do not recompute on every access.
"""

from typing import TypeVar, Generic, Optional, Callable, Tuple, Any, Dict
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class CacheKey:
    """Immutable cache key that can include multiple components."""
    components: Tuple[Any, ...]

    @classmethod
    def from_args(cls, *args) -> 'CacheKey':
        """Create cache key from variable arguments."""
        return cls(components=args)


class ParameterHashCache(Generic[T]):
    """
    Cache invalidated whenever the watched object's parameters change.

    Example:
        cache = ParameterHashCache(kernel)
        matrix = cache.get_or_compute(
            key=CacheKey.from_args('train', n),
            compute_fn=lambda: kernel.compute(features),
        )
        kernel.put('width', 3.0)   # next access recomputes
    """

    def __init__(self, obj, hash_provider: Optional[Callable[[], int]] = None):
        """
        Args:
            obj: BaseObject whose parameters the cached values depend on
            hash_provider: Override for obj.hash (e.g. a cheaper partial hash)
        """
        self._obj = obj
        self._hash_provider = hash_provider or obj.hash
        self._cache: Dict[CacheKey, T] = {}
        self._last_hash: Optional[int] = None

    def _validate(self) -> None:
        current = self._hash_provider()
        if current != self._last_hash:
            if self._cache:
                logger.debug(f"Parameters of {self._obj.get_name()} changed, dropping {len(self._cache)} cached values")
            self._cache.clear()
            self._last_hash = current

    def get_or_compute(self, key: CacheKey, compute_fn: Callable[[], T]) -> T:
        """
        Get cached value or compute and cache it.

        Args:
            key: Cache key
            compute_fn: Function to compute value if cache miss

        Returns:
            Cached or computed value
        """
        self._validate()
        if key in self._cache:
            return self._cache[key]
        value = compute_fn()
        self._cache[key] = value
        return value

    def get(self, key: CacheKey) -> Optional[T]:
        """Cached value, or None if missing or the parameters changed."""
        self._validate()
        return self._cache.get(key)

    def put(self, key: CacheKey, value: T) -> None:
        """Store a value computed from the current parameters."""
        self._validate()
        self._cache[key] = value

    def invalidate(self) -> None:
        """Manually invalidate the entire cache."""
        self._cache.clear()
        self._last_hash = None

    def __len__(self) -> int:
        return len(self._cache)
