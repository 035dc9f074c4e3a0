"""Class descriptor resolution and caching."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from ..errors import DescriptorResolutionError
from .foreign_handle import ForeignHandle

if TYPE_CHECKING:
    from ..interfaces import EmbeddedRuntime

logger = logging.getLogger(__name__)


class ForeignClass(NamedTuple):
    """Address of an exported embedded class: ``(module, name)``."""

    module: str
    name: str

    @classmethod
    def parse(cls, target: str) -> ForeignClass:
        """Parse ``module:Name`` targets."""
        module, sep, name = target.partition(":")
        if not sep or not module.strip() or not name.strip():
            raise ValueError(f"Target must use module:ClassName format, got {target!r}")
        return cls(module.strip(), name.strip())

    def __str__(self) -> str:
        return f"{self.module}:{self.name}"


@dataclass(frozen=True)
class ClassDescriptor:
    """Resolved, immutable reference to an exported embedded class."""

    module: str
    name: str
    handle: ForeignHandle


def normalize_module(module: str) -> str:
    """Strip a trailing ``.py`` so file names and module names share a key."""
    return module[:-3] if module.endswith(".py") else module


class DescriptorCache:
    """Process-wide, lazily populated ``(module, name) -> ClassDescriptor`` map.

    The first resolution of a key crosses into the runtime; every later call
    returns the cached descriptor. Resolution failures are fatal: they raise
    DescriptorResolutionError and nothing is cached.
    """

    def __init__(self, runtime: EmbeddedRuntime) -> None:
        self._runtime = runtime
        self._descriptors: dict[ForeignClass, ClassDescriptor] = {}
        self._lock = threading.Lock()

    def resolve(self, module: str, name: str) -> ClassDescriptor:
        key = ForeignClass(normalize_module(module), name)
        cached = self._descriptors.get(key)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._descriptors.get(key)
            if cached is not None:
                return cached
            try:
                handle = self._runtime.resolve_export(key.module, key.name)
            except LookupError as exc:
                raise DescriptorResolutionError(key.module, key.name, str(exc)) from exc
            if handle.is_null():
                raise DescriptorResolutionError(key.module, key.name, "export resolved to null")
            descriptor = ClassDescriptor(key.module, key.name, handle)
            self._descriptors[key] = descriptor
            logger.debug("Resolved foreign class %s -> %r", key, handle)
            return descriptor

    def preload(self, targets: list[ForeignClass]) -> None:
        """Resolve every target eagerly so deployment defects fail at start-up."""
        for target in targets:
            self.resolve(target.module, target.name)

    def __contains__(self, key: object) -> bool:
        return key in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def clear(self) -> None:
        """Drop every cached descriptor (runtime teardown)."""
        with self._lock:
            self._descriptors.clear()
