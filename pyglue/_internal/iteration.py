"""Iteration bridge between embedded iterators and Python's iterator protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from .dispatch import ForeignProxy
from .error_translator import ErrorSignal

if TYPE_CHECKING:
    from .context import GlueContext
    from .descriptor_cache import ClassDescriptor
    from .foreign_handle import ForeignHandle

logger = logging.getLogger(__name__)


class IterationState(Enum):
    READY = "ready"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class IterationResult:
    """Outcome of one step: ``has_value``, ``exhausted`` or ``failed``."""

    status: Literal["has_value", "exhausted", "failed"]
    value: Any = None
    error: BaseException | None = None

    @classmethod
    def of(cls, value: Any) -> IterationResult:
        return cls("has_value", value=value)

    @classmethod
    def end(cls) -> IterationResult:
        return cls("exhausted")

    @classmethod
    def failure(cls, error: BaseException) -> IterationResult:
        return cls("failed", error=error)

    @property
    def has_value(self) -> bool:
        return self.status == "has_value"

    @property
    def exhausted(self) -> bool:
        return self.status == "exhausted"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class ForeignIterator(ForeignProxy):
    """Proxy over an embedded iterator object.

    Subclasses name the embedded predicate and producer through
    ``__has_more__`` / ``__produce_next__`` and declare both in their
    operation table; the producer's result shape is the element shape.

    READY -> EXHAUSTED happens on the embedded end-of-sequence signal and is
    terminal: further calls report exhaustion without crossing. A bridge is
    not restartable; ask the source proxy for a fresh one instead.
    """

    __has_more__: ClassVar[str] = "has_next"
    __produce_next__: ClassVar[str] = "__next__"

    _state: IterationState

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__foreign__ is None:
            return
        for name in (cls.__has_more__, cls.__produce_next__):
            if name not in cls.__operations__:
                raise TypeError(f"{cls.__name__} must declare iteration operation {name!r}")

    def _attach(self, handle: ForeignHandle, descriptor: ClassDescriptor, context: GlueContext) -> None:
        super()._attach(handle, descriptor, context)
        self._state = IterationState.READY

    @property
    def state(self) -> IterationState:
        return self._state

    def has_more(self) -> bool:
        """Ask the embedded iterator whether elements remain, without consuming one."""
        if self._state is IterationState.EXHAUSTED:
            return False
        return bool(self._invoke(self.__has_more__))

    def step(self) -> IterationResult:
        """Advance once and report the outcome without raising for exhaustion."""
        if self._state is IterationState.EXHAUSTED:
            return IterationResult.end()
        operation = self._operation(self.__produce_next__)
        context = self._context
        outcome = context.cross(self._handle, operation.name, [], operation.result)
        if isinstance(outcome, ErrorSignal):
            if outcome.is_end_of_sequence:
                self._state = IterationState.EXHAUSTED
                logger.debug("%r exhausted", self)
                return IterationResult.end()
            return IterationResult.failure(context.translator.translate(outcome))
        return IterationResult.of(outcome)

    def produce_next(self) -> Any:
        result = self.step()
        if result.has_value:
            return result.value
        if result.error is not None:
            raise result.error
        raise StopIteration

    def __iter__(self) -> ForeignIterator:
        return self

    def __next__(self) -> Any:
        return self.produce_next()
