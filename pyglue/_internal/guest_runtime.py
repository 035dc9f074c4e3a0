"""In-process guest runtime.

GuestRuntime is the reference implementation of the embedded-runtime
boundary. Guest source files are loaded from the configured source
directories into private modules (never under their own names in
``sys.modules``), every value leaves the runtime as a ForeignHandle and every
guest exception comes back as a raw ``"TypeName: message"`` failure signal.
"""
from __future__ import annotations

import importlib.util
import logging
import os
import sys
import threading
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import ModuleType
from typing import Any

from ..errors import GlueError, MarshalingError
from .descriptor_cache import normalize_module
from .error_translator import FailureSignal
from .foreign_handle import ForeignHandle

logger = logging.getLogger(__name__)

_PRIVATE_PREFIX = "_pyglue_guest"


class GuestRuntime:
    """Embedded runtime whose guest code is Python source loaded by path."""

    def __init__(
        self,
        source_paths: Sequence[str | os.PathLike[str]],
        identifier: str | None = None,
    ) -> None:
        if not source_paths:
            raise ValueError("GuestRuntime requires at least one source path")
        self._identifier = identifier or f"guest-{uuid.uuid4().hex[:8]}"
        self._source_paths = [Path(p) for p in source_paths]
        self._modules: dict[str, ModuleType] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def source_paths(self) -> list[Path]:
        return list(self._source_paths)

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"<GuestRuntime {self._identifier} paths={[str(p) for p in self._source_paths]}>"

    # ------------------------------------------------------------------
    # Module loading
    # ------------------------------------------------------------------

    def _locate(self, module: str) -> Path:
        relative = Path(*module.split(".")).with_suffix(".py")
        for root in self._source_paths:
            candidate = root / relative
            if candidate.is_file():
                return candidate
        searched = ", ".join(str(p) for p in self._source_paths)
        raise LookupError(f"Guest module {module!r} not found in: {searched}")

    def _load_module(self, module: str) -> ModuleType:
        module = normalize_module(module)
        with self._lock:
            loaded = self._modules.get(module)
            if loaded is not None:
                return loaded

            path = self._locate(module)
            private_name = f"{_PRIVATE_PREFIX}.{self._identifier.replace('-', '_')}.{module}"
            spec = importlib.util.spec_from_file_location(private_name, path)
            if spec is None or spec.loader is None:
                raise LookupError(f"Cannot build import spec for guest module {path}")
            guest = importlib.util.module_from_spec(spec)
            # Registered so dataclasses/pickling inside guest code can find it.
            sys.modules[private_name] = guest
            try:
                spec.loader.exec_module(guest)
            except Exception as exc:
                sys.modules.pop(private_name, None)
                raise LookupError(f"Guest module {module!r} failed to load: {exc}") from exc
            self._modules[module] = guest
            logger.debug("Loaded guest module %s from %s", module, path)
            return guest

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------

    def resolve_export(self, module: str, name: str) -> ForeignHandle:
        self._ensure_open()
        value: Any = self._load_module(module)
        for part in name.split("."):
            try:
                value = getattr(value, part)
            except AttributeError:
                raise LookupError(f"Guest module {module!r} has no export {name!r}") from None
        if not callable(value):
            raise LookupError(f"Guest export {module}:{name} is not constructible")
        return self._wrap(value)

    def construct(self, descriptor: ForeignHandle, args: Sequence[Any]) -> Any:
        self._ensure_open()
        factory = self._lower(descriptor)
        lowered = [self._lower(arg) for arg in args]
        try:
            return self._wrap(factory(*lowered))
        except Exception as exc:
            return self._signal(exc)

    def invoke(self, handle: ForeignHandle, name: str, args: Sequence[Any]) -> Any:
        self._ensure_open()
        target = self._lower(handle)
        lowered = [self._lower(arg) for arg in args]
        try:
            member = getattr(target, name)
            if not callable(member):
                raise TypeError(f"{type(target).__qualname__}.{name} is not callable")
            return self._wrap(member(*lowered))
        except Exception as exc:
            return self._signal(exc)

    def is_failure(self, value: Any) -> bool:
        return isinstance(value, FailureSignal)

    def failure_message(self, value: Any) -> str:
        if not isinstance(value, FailureSignal):
            raise TypeError(f"Not a failure signal: {value!r}")
        return value.raw

    def failure_handle(self, value: Any) -> ForeignHandle | None:
        if not isinstance(value, FailureSignal):
            raise TypeError(f"Not a failure signal: {value!r}")
        return None if value.error is None else self._wrap(value.error)

    def is_null(self, handle: ForeignHandle) -> bool:
        self._check_owner(handle)
        return handle.is_null()

    def as_bool(self, handle: ForeignHandle) -> bool:
        value = self._lower(handle)
        if not isinstance(value, bool):
            raise TypeError(f"guest value of type {type(value).__name__} is not a boolean")
        return value

    def as_int(self, handle: ForeignHandle) -> int:
        value = self._lower(handle)
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"guest value of type {type(value).__name__} is not an integer")
        return value

    def as_str(self, handle: ForeignHandle) -> str:
        value = self._lower(handle)
        if not isinstance(value, str):
            raise TypeError(f"guest value of type {type(value).__name__} is not a string")
        return value

    def as_sequence(self, handle: ForeignHandle) -> list[ForeignHandle]:
        value = self._lower(handle)
        if not isinstance(value, (list, tuple)):
            raise TypeError(f"guest value of type {type(value).__name__} is not an ordered container")
        return [self._wrap(item) for item in value]

    def as_mapping(self, handle: ForeignHandle) -> list[tuple[str, ForeignHandle]]:
        value = self._lower(handle)
        if not isinstance(value, Mapping):
            raise TypeError(f"guest value of type {type(value).__name__} is not a keyed container")
        return [(key, self._wrap(item)) for key, item in value.items()]

    def close(self) -> None:
        """Unload guest modules; handles issued earlier must not be used again."""
        with self._lock:
            if self._closed:
                return
            for guest in self._modules.values():
                sys.modules.pop(guest.__name__, None)
            self._modules.clear()
            self._closed = True
        logger.debug("Guest runtime %s closed", self._identifier)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise GlueError(f"Guest runtime {self._identifier} is closed")

    def _check_owner(self, handle: ForeignHandle) -> None:
        if handle.runtime_id != self._identifier:
            raise MarshalingError(
                f"Handle {handle!r} belongs to runtime {handle.runtime_id}, not {self._identifier}"
            )

    def _wrap(self, value: Any) -> ForeignHandle:
        if value is None:
            return ForeignHandle.null(self._identifier)
        return ForeignHandle(self._identifier, id(value), type(value).__qualname__, value)

    def _lower(self, value: Any) -> Any:
        if isinstance(value, ForeignHandle):
            self._check_owner(value)
            return None if value.is_null() else value._payload
        if isinstance(value, (list, tuple)):
            return [self._lower(item) for item in value]
        if isinstance(value, dict):
            return {key: self._lower(item) for key, item in value.items()}
        return value

    @staticmethod
    def _signal(exc: Exception) -> FailureSignal:
        raw = f"{type(exc).__name__}: {exc}"
        logger.debug("Guest operation failed: %s", raw)
        return FailureSignal(raw, exc)
