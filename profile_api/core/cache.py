import hashlib
import time
from typing import Callable
from cachetools import TTLCache
import redis.asyncio as redis
from .config import settings
from .utils import normalize_address

KEY_PREFIX = "profile:"

def profile_cache_key(address: str, radius_m: int, language: str = "fr") -> str:
    """Hash of normalized address text + radius (+ language, since warnings are localized)."""
    raw = f"{normalize_address(address)}|{int(radius_m)}|{language}"
    return KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()

class ProfileCache:
    """
    Snapshot store for assembled profiles, keyed by (address, radius, language).

    Values are the serialized profile exactly as it was sent, so a hit
    replays the same bytes (warnings and provenance included). Entries are
    never updated in place: a write replaces the whole snapshot, last writer
    wins. Expiry is lazy; an entry past its TTL reads as absent.

    In-process TTLCache by default; Redis (asyncio client) when a backend is
    given. The clock is injectable so tests control expiry.
    """
    def __init__(
        self,
        ttl_seconds: float = settings.CACHE_TTL_SECONDS,
        maxsize: int = settings.CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        backend: "redis.Redis | None" = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.backend = backend
        self._local = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)

    async def get(self, address: str, radius_m: int, language: str = "fr") -> str | None:
        key = profile_cache_key(address, radius_m, language)
        if self.backend is not None:
            return await self.backend.get(key)
        return self._local.get(key)

    async def set(self, address: str, radius_m: int, snapshot: str, language: str = "fr") -> None:
        key = profile_cache_key(address, radius_m, language)
        if self.backend is not None:
            await self.backend.setex(key, int(self.ttl_seconds), snapshot)
        else:
            self._local[key] = snapshot

    async def clear(self) -> None:
        """Drops every profile snapshot, in Redis too (other keys are left alone)."""
        self._local.clear()
        if self.backend is not None:
            keys = [k async for k in self.backend.scan_iter(match=KEY_PREFIX + "*")]
            if keys:
                await self.backend.delete(*keys)

def build_cache() -> ProfileCache:
    """One instance per process; the app factory passes it to the service."""
    backend = None
    if settings.USE_REDIS:
        backend = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return ProfileCache(backend=backend)
