"""Proxy instances and table-driven dispatch.

Every host class that fronts an embedded class derives from ForeignProxy and
declares, once, what it forwards:

    class HelpFormatter(ForeignProxy):
        __foreign__ = ForeignClass("help_formatter", "HelpFormatter")
        __operations__ = OperationTable(
            Operation("get_width", result=INT32),
            Operation("set_width", (INT32,)),
        )

        def get_width(self) -> int:
            return self._invoke("get_width")

The table is validated when the class is created; calls are checked against
it at the marshaling boundary before anything crosses.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal, TypeVar

from ..errors import MarshalingError, NullHandleError
from .context import get_active_context
from .descriptor_cache import ClassDescriptor, ForeignClass
from .error_translator import ErrorSignal
from .foreign_handle import ForeignHandle
from .marshaling import VOID, ProxyRegistry, Shape, ShapeKind

if TYPE_CHECKING:
    from .context import GlueContext

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="ForeignProxy")

FailurePolicy = Literal["translate", "io"]


def _check_arg_shapes(owner: str, args: Sequence[Shape]) -> tuple[Shape, ...]:
    shapes = tuple(args)
    for shape in shapes:
        if not isinstance(shape, Shape):
            raise TypeError(f"{owner}: argument shapes must be Shape instances, got {shape!r}")
        if shape.kind is ShapeKind.VOID:
            raise TypeError(f"{owner}: void is not a valid argument shape")
    return shapes


@dataclass(frozen=True)
class Operation:
    """One embedded operation: name, argument shapes, result shape, failure policy.

    ``on_failure="io"`` marks resource operations whose every failure surfaces
    as ForeignIOError.
    """

    name: str
    args: tuple[Shape, ...] = ()
    result: Shape = VOID
    on_failure: FailurePolicy = "translate"

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise TypeError(f"Operation name must be a non-empty string, got {self.name!r}")
        object.__setattr__(self, "args", _check_arg_shapes(self.name, self.args))
        if not isinstance(self.result, Shape):
            raise TypeError(f"{self.name}: result shape must be a Shape, got {self.result!r}")
        if self.on_failure not in ("translate", "io"):
            raise TypeError(f"{self.name}: unknown failure policy {self.on_failure!r}")


@dataclass(frozen=True)
class Constructor:
    """One embedded constructor signature."""

    args: tuple[Shape, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", _check_arg_shapes("constructor", self.args))


class OperationTable(Mapping[str, Operation]):
    """Immutable, ordered name -> Operation table.

    ``base`` lets a subclass table extend its parent's; entries with the same
    name replace the inherited ones.
    """

    def __init__(self, *operations: Operation, base: OperationTable | None = None) -> None:
        entries: dict[str, Operation] = dict(base._entries) if base is not None else {}
        seen: set[str] = set()
        for operation in operations:
            if not isinstance(operation, Operation):
                raise TypeError(f"OperationTable entries must be Operation, got {operation!r}")
            if operation.name in seen:
                raise TypeError(f"Duplicate operation {operation.name!r} in table")
            seen.add(operation.name)
            entries[operation.name] = operation
        self._entries = entries

    def __getitem__(self, name: str) -> Operation:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"OperationTable({', '.join(self._entries)})"


class ForeignProxy:
    """Host object holding exactly one Foreign Handle and its Class Descriptor.

    Two ways in:
    - ``ProxyType(*args)`` (fresh construction) allocates a new embedded object
      and publishes the proxy in the Identity Cache.
    - ``ProxyType.wrap(handle)`` (adoption) returns the cached proxy for the
      handle, building one only on a miss, and ``None`` for a null handle.
    """

    __foreign__: ClassVar[ForeignClass | None] = None
    __constructors__: ClassVar[tuple[Constructor, ...]] = (Constructor(),)
    __operations__: ClassVar[OperationTable] = OperationTable()

    _handle: ForeignHandle
    _descriptor: ClassDescriptor
    _context: GlueContext

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        foreign = cls.__dict__.get("__foreign__")
        if isinstance(foreign, str):
            cls.__foreign__ = ForeignClass.parse(foreign)
        elif isinstance(foreign, tuple) and not isinstance(foreign, ForeignClass):
            cls.__foreign__ = ForeignClass(*foreign)
        if not isinstance(cls.__operations__, OperationTable):
            raise TypeError(f"{cls.__name__}.__operations__ must be an OperationTable")
        constructors = tuple(cls.__constructors__)
        if not all(isinstance(ctor, Constructor) for ctor in constructors):
            raise TypeError(f"{cls.__name__}.__constructors__ must contain Constructor entries")
        cls.__constructors__ = constructors
        ProxyRegistry.get_instance().register(cls)

    def __init__(self, *args: Any) -> None:
        self._construct(*args)

    # Construction ---------------------------------------------------------

    def _construct(self, *args: Any) -> None:
        cls = type(self)
        if cls.__foreign__ is None:
            raise TypeError(f"{cls.__name__} does not declare a foreign class")
        context = get_active_context()
        # Resolution failures abort here, before anything is allocated.
        descriptor = context.descriptor_for(cls)
        constructor = cls._select_constructor(context, args)
        lowered = [context.marshaler.to_foreign(shape, arg) for shape, arg in zip(constructor.args, args)]
        outcome = context.construct(descriptor, lowered)
        if isinstance(outcome, ErrorSignal):
            context.raise_signal(outcome)
        self._attach(outcome, descriptor, context)
        context.identity.publish(cls, outcome, self)

    @classmethod
    def _select_constructor(cls, context: GlueContext, args: Sequence[Any]) -> Constructor:
        candidates = [ctor for ctor in cls.__constructors__ if len(ctor.args) == len(args)]
        for constructor in candidates:
            if all(context.marshaler.accepts(shape, arg) for shape, arg in zip(constructor.args, args)):
                return constructor
        if len(candidates) == 1:
            # Re-run the conversion so the caller sees the precise mismatch.
            for shape, arg in zip(candidates[0].args, args):
                context.marshaler.to_foreign(shape, arg)
        arities = sorted({len(ctor.args) for ctor in cls.__constructors__})
        raise TypeError(
            f"No {cls.__name__} constructor accepts {len(args)} argument(s) of types "
            f"{[type(arg).__name__ for arg in args]}; declared arities: {arities}"
        )

    @classmethod
    def _bind(cls: type[P], handle: ForeignHandle, context: GlueContext) -> P:
        """Build a proxy over an existing handle. Only the Identity Cache calls this."""
        if handle.is_null():
            raise NullHandleError(f"Refusing to bind {cls.__name__} to a null handle")
        descriptor = context.descriptor_for(cls)
        instance = cls.__new__(cls)
        instance._attach(handle, descriptor, context)
        return instance

    def _attach(self, handle: ForeignHandle, descriptor: ClassDescriptor, context: GlueContext) -> None:
        self._handle = handle
        self._descriptor = descriptor
        self._context = context

    @classmethod
    def wrap(cls: type[P], handle: ForeignHandle | None) -> P | None:
        """Adopt *handle* as a *cls* proxy; ``None`` for a missing or null handle."""
        if handle is None:
            return None
        return get_active_context().adopt(cls, handle)  # type: ignore[no-any-return]

    # Dispatch -------------------------------------------------------------

    @property
    def __foreign_handle__(self) -> ForeignHandle:
        return self._handle

    @property
    def descriptor(self) -> ClassDescriptor:
        return self._descriptor

    def _operation(self, name: str) -> Operation:
        try:
            return type(self).__operations__[name]
        except KeyError:
            raise TypeError(f"{type(self).__name__} declares no operation {name!r}") from None

    def _invoke(self, name: str, *args: Any) -> Any:
        operation = self._operation(name)
        if len(args) != len(operation.args):
            raise TypeError(
                f"{type(self).__name__}.{name} takes {len(operation.args)} argument(s), got {len(args)}"
            )
        context = self._context
        try:
            lowered = [context.marshaler.to_foreign(shape, arg) for shape, arg in zip(operation.args, args)]
        except MarshalingError as exc:
            raise MarshalingError(f"{type(self).__name__}.{name}: {exc}") from exc
        outcome = context.cross(self._handle, operation.name, lowered, operation.result)
        if isinstance(outcome, ErrorSignal):
            context.raise_signal(outcome, resource=operation.on_failure == "io")
        return outcome

    def __repr__(self) -> str:
        handle = getattr(self, "_handle", None)
        return f"<{type(self).__name__} {handle!r}>"
