"""
Marshaling Engine & Value Shapes.

This module contains:
1. Shapes: the declared contract of every argument and result that crosses
   the boundary (scalars, nullable values, ordered containers, proxies)
2. ProxyRegistry: name lookup for proxy shapes declared before their class
3. MarshalingEngine: host -> foreign and foreign -> host conversion

Conversions are exact. Integers are range-checked against their declared
width, never truncated; ``bool`` is never accepted where an integer is
declared; sequences and mappings keep their iteration order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import InvalidArgumentError, MarshalingError
from .foreign_handle import ForeignHandle

if TYPE_CHECKING:
    from ..interfaces import EmbeddedRuntime

logger = logging.getLogger(__name__)

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

class ShapeKind(Enum):
    VOID = "void"
    BOOL = "bool"
    INT32 = "int32"
    INT64 = "int64"
    STR = "str"
    OPAQUE = "opaque"
    HANDLE = "handle"
    NULLABLE = "nullable"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    PROXY = "proxy"


_COMPOUND_KINDS = frozenset({ShapeKind.NULLABLE, ShapeKind.SEQUENCE, ShapeKind.MAPPING})


@dataclass(frozen=True)
class Shape:
    kind: ShapeKind
    inner: Shape | None = None
    target: type | str | None = None

    def __post_init__(self) -> None:
        if self.kind in _COMPOUND_KINDS:
            if not isinstance(self.inner, Shape):
                raise TypeError(f"{self.kind.value} shape requires an inner shape")
            if self.inner.kind is ShapeKind.VOID:
                raise TypeError(f"{self.kind.value} shape cannot wrap void")
        elif self.inner is not None:
            raise TypeError(f"{self.kind.value} shape takes no inner shape")
        if self.kind is ShapeKind.PROXY:
            if not isinstance(self.target, (type, str)) or not self.target:
                raise TypeError("proxy shape requires a proxy class or registered name")
        elif self.target is not None:
            raise TypeError(f"{self.kind.value} shape takes no target")

    def __repr__(self) -> str:
        if self.inner is not None:
            return f"{self.kind.value}[{self.inner!r}]"
        if self.target is not None:
            name = self.target if isinstance(self.target, str) else self.target.__name__
            return f"proxy[{name}]"
        return self.kind.value


VOID = Shape(ShapeKind.VOID)
BOOL = Shape(ShapeKind.BOOL)
INT32 = Shape(ShapeKind.INT32)
INT64 = Shape(ShapeKind.INT64)
STR = Shape(ShapeKind.STR)
OPAQUE = Shape(ShapeKind.OPAQUE)
HANDLE = Shape(ShapeKind.HANDLE)


def nullable(inner: Shape) -> Shape:
    return Shape(ShapeKind.NULLABLE, inner)


def sequence_of(inner: Shape) -> Shape:
    return Shape(ShapeKind.SEQUENCE, inner)


def mapping_of(inner: Shape) -> Shape:
    """String-keyed mapping whose values have shape *inner*."""
    return Shape(ShapeKind.MAPPING, inner)


def proxy_of(target: type | str) -> Shape:
    """Identity-bearing foreign object wrapped as proxy class *target*.

    *target* may be the class itself or the name it registers under, for
    classes declared later in the module.
    """
    return Shape(ShapeKind.PROXY, target=target)


# ---------------------------------------------------------------------------
# Proxy Registry
# ---------------------------------------------------------------------------

class ProxyRegistry:
    """Singleton name -> proxy class registry used to resolve ``proxy_of("Name")``."""

    _instance: ProxyRegistry | None = None

    def __init__(self) -> None:
        self._types: dict[str, type] = {}

    @classmethod
    def get_instance(cls) -> ProxyRegistry:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, proxy_type: type) -> None:
        name = proxy_type.__name__
        if name in self._types and self._types[name] is not proxy_type:
            logger.debug("Overwriting existing proxy registration for %s", name)
        self._types[name] = proxy_type

    def get(self, name: str) -> type:
        try:
            return self._types[name]
        except KeyError:
            raise TypeError(f"No proxy class registered as {name!r}") from None


def resolve_target(shape: Shape) -> type:
    """Return the proxy class a PROXY shape refers to."""
    target = shape.target
    if isinstance(target, str):
        return ProxyRegistry.get_instance().get(target)
    if not isinstance(target, type):
        raise TypeError(f"proxy_of target must be a proxy class or registered name, got {target!r}")
    return target


def handle_of(value: Any) -> ForeignHandle | None:
    """Return the foreign handle carried by a proxy (or a bare handle)."""
    if isinstance(value, ForeignHandle):
        return value
    handle = getattr(value, "__foreign_handle__", None)
    return handle if isinstance(handle, ForeignHandle) else None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

ProxyBinder = Callable[[type, ForeignHandle], Any]


class MarshalingEngine:
    """Bidirectional value conversion driven by declared shapes.

    ``binder`` turns a non-null handle into the proxy of a given type and is
    expected to go through the Identity Cache; the engine never builds
    proxies itself.
    """

    def __init__(self, runtime: EmbeddedRuntime, binder: ProxyBinder) -> None:
        self._runtime = runtime
        self._binder = binder

    # host -> foreign ------------------------------------------------------

    def to_foreign(self, shape: Shape, value: Any) -> Any:
        kind = shape.kind
        if kind is ShapeKind.NULLABLE:
            return None if value is None else self.to_foreign(shape.inner, value)  # type: ignore[arg-type]
        if kind is ShapeKind.VOID:
            raise MarshalingError("void is not a valid argument shape")
        if value is None:
            raise MarshalingError(f"None is not a valid {shape!r} value; declare it nullable")
        if kind is ShapeKind.BOOL:
            if not isinstance(value, bool):
                raise MarshalingError(f"Expected bool, got {type(value).__name__}")
            return value
        if kind is ShapeKind.INT32:
            return self._check_int(value, INT32_MIN, INT32_MAX, "32-bit")
        if kind is ShapeKind.INT64:
            return self._check_int(value, INT64_MIN, INT64_MAX, "64-bit")
        if kind is ShapeKind.STR:
            if not isinstance(value, str):
                raise MarshalingError(f"Expected str, got {type(value).__name__}")
            return value
        if kind is ShapeKind.SEQUENCE:
            if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
                raise MarshalingError(f"Expected list or tuple, got {type(value).__name__}")
            return [self.to_foreign(shape.inner, item) for item in value]  # type: ignore[arg-type]
        if kind is ShapeKind.MAPPING:
            if not isinstance(value, Mapping):
                raise MarshalingError(f"Expected mapping, got {type(value).__name__}")
            converted: dict[str, Any] = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise MarshalingError(f"Mapping keys must be str, got {type(key).__name__}")
                converted[key] = self.to_foreign(shape.inner, item)  # type: ignore[arg-type]
            return converted
        if kind is ShapeKind.PROXY:
            target = resolve_target(shape)
            if not isinstance(value, target):
                raise MarshalingError(f"Expected {target.__name__}, got {type(value).__name__}")
            return handle_of(value)
        if kind is ShapeKind.HANDLE:
            if not isinstance(value, ForeignHandle):
                raise MarshalingError(f"Expected ForeignHandle, got {type(value).__name__}")
            return value
        # OPAQUE: streams, files and other values the embedded side consumes as-is.
        handle = handle_of(value)
        return handle if handle is not None else value

    def accepts(self, shape: Shape, value: Any) -> bool:
        """Return True if *value* can be marshaled as *shape*."""
        try:
            self.to_foreign(shape, value)
        except (MarshalingError, InvalidArgumentError):
            return False
        return True

    @staticmethod
    def _check_int(value: Any, low: int, high: int, width: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MarshalingError(f"Expected int, got {type(value).__name__}")
        if not low <= value <= high:
            raise InvalidArgumentError(f"{value} is outside the {width} integer range")
        return value

    # foreign -> host ------------------------------------------------------

    def from_foreign(self, shape: Shape, handle: ForeignHandle) -> Any:
        kind = shape.kind
        if kind is ShapeKind.VOID:
            return None
        if kind in (ShapeKind.HANDLE, ShapeKind.OPAQUE):
            return handle
        is_null = self._runtime.is_null(handle)
        if kind is ShapeKind.NULLABLE:
            return None if is_null else self.from_foreign(shape.inner, handle)  # type: ignore[arg-type]
        if kind is ShapeKind.PROXY:
            if is_null:
                return None
            return self._binder(resolve_target(shape), handle)
        if is_null:
            raise MarshalingError(f"Embedded runtime returned null for non-nullable {shape!r}")

        try:
            if kind is ShapeKind.BOOL:
                return self._runtime.as_bool(handle)
            if kind is ShapeKind.INT32:
                return self._narrow(self._runtime.as_int(handle), INT32_MIN, INT32_MAX, "32-bit")
            if kind is ShapeKind.INT64:
                return self._narrow(self._runtime.as_int(handle), INT64_MIN, INT64_MAX, "64-bit")
            if kind is ShapeKind.STR:
                return self._runtime.as_str(handle)
            if kind is ShapeKind.SEQUENCE:
                items = self._runtime.as_sequence(handle)
                return [self.from_foreign(shape.inner, item) for item in items]  # type: ignore[arg-type]
            if kind is ShapeKind.MAPPING:
                result: dict[str, Any] = {}
                for key, item in self._runtime.as_mapping(handle):
                    if not isinstance(key, str):
                        raise MarshalingError(f"Mapping keys must be str, got {type(key).__name__}")
                    result[key] = self.from_foreign(shape.inner, item)  # type: ignore[arg-type]
                return result
        except TypeError as exc:
            if isinstance(exc, MarshalingError):
                raise
            raise MarshalingError(f"Cannot read {handle!r} as {shape!r}: {exc}") from exc
        raise MarshalingError(f"Unsupported result shape {shape!r}")

    @staticmethod
    def _narrow(value: int, low: int, high: int, width: str) -> int:
        if not low <= value <= high:
            raise MarshalingError(f"Embedded value {value} does not fit a {width} integer")
        return value
