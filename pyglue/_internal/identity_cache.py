"""Identity-preserving cache of proxy instances.

Re-wrapping the same embedded value must return the same host object. The
cache maps ``(proxy type, handle key)`` to the proxy built for it and has a
single, lock-guarded insertion point so concurrent wrappers of one handle
observe one winning proxy.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable, Generator, MutableMapping
from contextlib import contextmanager
from typing import Any, TypeVar

from .foreign_handle import ForeignHandle

logger = logging.getLogger(__name__)

P = TypeVar("P")

_CacheKey = tuple[type, tuple[str, Any]]


class IdentityCache:
    """Process-scoped ``(proxy type, handle) -> proxy`` registry.

    Lifecycle: populated on first use, cleared only at runtime teardown.
    With ``weak=True`` entries are held through weak references and vanish
    together with the last host reference to the proxy; the default keeps
    every entry for the life of the process. Exception proxies are always held
    weakly, whatever the mode.
    """

    _instance: IdentityCache | None = None
    _instance_lock = threading.Lock()

    def __init__(self, weak: bool = False) -> None:
        self.weak = weak
        self._entries: MutableMapping[_CacheKey, Any] = (
            weakref.WeakValueDictionary() if weak else {}
        )
        self._exceptions: MutableMapping[_CacheKey, Any] = weakref.WeakValueDictionary()
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> IdentityCache:
        """Return the process instance, creating a strong cache if necessary."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def set_instance(cls, cache: IdentityCache | None) -> None:
        """Inject the process instance (``None`` resets to lazy creation)."""
        with cls._instance_lock:
            cls._instance = cache

    def get_or_create(
        self,
        proxy_type: type[P],
        handle: ForeignHandle,
        factory: Callable[[], P],
    ) -> P:
        """Return the proxy for *handle*, building it with *factory* on a miss."""
        key = (proxy_type, handle.key)
        entries = self._store_for(proxy_type)
        existing = entries.get(key)
        if existing is not None:
            return existing  # type: ignore[no-any-return]

        with self._lock:
            existing = entries.get(key)
            if existing is not None:
                return existing  # type: ignore[no-any-return]
            created = factory()
            entries[key] = created
            logger.debug("Published %s proxy for %r", proxy_type.__name__, handle)
            return created

    def publish(self, proxy_type: type, handle: ForeignHandle, proxy: Any) -> Any:
        """Register a freshly constructed proxy; an existing entry wins."""
        return self.get_or_create(proxy_type, handle, lambda: proxy)

    def lookup(self, proxy_type: type[P], handle: ForeignHandle) -> P | None:
        return self._store_for(proxy_type).get((proxy_type, handle.key))  # type: ignore[no-any-return]

    def __len__(self) -> int:
        return len(self._entries) + len(self._exceptions)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._exceptions.clear()

    def _store_for(self, proxy_type: type) -> MutableMapping[_CacheKey, Any]:
        return self._exceptions if issubclass(proxy_type, BaseException) else self._entries


@contextmanager
def identity_scope(weak: bool = False) -> Generator[IdentityCache, None, None]:
    """Install a fresh process IdentityCache for the duration of the block.

    The previous instance is restored on exit, so proxies created inside the
    scope never leak into later lookups. Intended for test isolation.
    """
    previous = IdentityCache._instance
    scoped = IdentityCache(weak=weak)
    IdentityCache.set_instance(scoped)
    try:
        yield scoped
    finally:
        scoped.clear()
        IdentityCache.set_instance(previous)
