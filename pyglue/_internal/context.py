"""
Glue Context & Crossing Logic.

This module contains:
- GlueContext (one embedded runtime bound to its caches, marshaler and translator)
- the crossing primitive every proxy operation goes through
- global active-context accessors
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any, NoReturn

from ..errors import NullHandleError, RuntimeNotInstalledError
from .descriptor_cache import ClassDescriptor, DescriptorCache, ForeignClass
from .error_translator import ErrorSignal, ErrorTranslator
from .foreign_handle import ForeignHandle
from .identity_cache import IdentityCache
from .marshaling import VOID, MarshalingEngine, Shape

if TYPE_CHECKING:
    from ..interfaces import EmbeddedRuntime

logger = logging.getLogger(__name__)

# Verbose per-crossing tracing (set via PYGLUE_DEBUG_CROSSINGS=1)
debug_all_crossings = os.environ.get("PYGLUE_DEBUG_CROSSINGS") == "1"


class GlueContext:
    """One embedded runtime plus everything needed to cross into it.

    All crossings hold a single re-entrant lock: the embedded runtime is
    treated as one logical execution context with no internal parallelism.
    """

    def __init__(
        self,
        runtime: EmbeddedRuntime,
        *,
        identity_cache: IdentityCache | None = None,
        translator: ErrorTranslator | None = None,
        debug_crossings: bool | None = None,
    ) -> None:
        self.runtime = runtime
        self.descriptors = DescriptorCache(runtime)
        self.identity = identity_cache if identity_cache is not None else IdentityCache.get_instance()
        self.translator = translator if translator is not None else ErrorTranslator()
        self.marshaler = MarshalingEngine(runtime, self.adopt)
        self.debug_crossings = debug_all_crossings if debug_crossings is None else debug_crossings
        self._crossing_lock = threading.RLock()

    def __repr__(self) -> str:
        return f"<GlueContext runtime={self.runtime.identifier}>"

    # Descriptors & proxies ------------------------------------------------
    # Lock order is crossing lock, then descriptor or identity lock; never the reverse.

    def descriptor_for(self, proxy_type: type) -> ClassDescriptor:
        foreign: ForeignClass = proxy_type.__foreign__  # type: ignore[attr-defined]
        with self._crossing_lock:
            return self.descriptors.resolve(foreign.module, foreign.name)

    def preload(self, targets: list[ForeignClass]) -> None:
        """Resolve *targets* eagerly; the first failure aborts."""
        with self._crossing_lock:
            self.descriptors.preload(targets)

    def adopt(self, proxy_type: type, handle: ForeignHandle) -> Any:
        """Return the proxy of *proxy_type* for *handle* via the Identity Cache, or None if null."""
        with self._crossing_lock:
            if self.runtime.is_null(handle):
                return None
            return self.identity.get_or_create(
                proxy_type, handle, lambda: proxy_type._bind(handle, self)  # type: ignore[attr-defined]
            )

    # Crossings ------------------------------------------------------------

    def construct(self, descriptor: ClassDescriptor, args: Sequence[Any]) -> ForeignHandle | ErrorSignal:
        """Construct an embedded instance; returns its handle or the parsed failure.

        Raises:
            NullHandleError: The embedded constructor produced null.
        """
        with self._crossing_lock:
            result = self.runtime.construct(descriptor.handle, args)
            outcome = self._settle(result, f"{descriptor.module}:{descriptor.name}()")
            if not isinstance(outcome, ErrorSignal) and self.runtime.is_null(outcome):
                raise NullHandleError(f"{descriptor.name} constructor returned a null handle")
            return outcome

    def cross(self, handle: ForeignHandle, name: str, args: Sequence[Any], result: Shape = VOID) -> Any:
        """Invoke *name* on *handle*.

        The result is unmarshaled as *result* before the crossing lock is
        released. Returns the host value, or the parsed ErrorSignal on failure.
        """
        with self._crossing_lock:
            raw = self.runtime.invoke(handle, name, args)
            outcome = self._settle(raw, f"{handle.type_name}.{name}")
            if isinstance(outcome, ErrorSignal):
                return outcome
            return self.marshaler.from_foreign(result, outcome)

    def raise_signal(self, signal: ErrorSignal, *, resource: bool = False) -> NoReturn:
        raise self.translator.translate(signal, resource=resource)

    def _settle(self, result: Any, label: str) -> ForeignHandle | ErrorSignal:
        if self.runtime.is_failure(result):
            signal = self.translator.parse(self.runtime.failure_message(result))
            raised = self.runtime.failure_handle(result)
            if raised is not None:
                signal = replace(signal, handle=raised)
            if self.debug_crossings:
                logger.debug("crossing %s failed: %s: %s", label, signal.kind, signal.message)
            return signal
        if self.debug_crossings:
            logger.debug("crossing %s -> %r", label, result)
        return result  # type: ignore[no-any-return]

    def close(self) -> None:
        """Tear down the runtime. The Identity Cache is process-scoped and kept."""
        with self._crossing_lock:
            self.descriptors.clear()
            self.runtime.close()


# ---------------------------------------------------------------------------
# Globals & Accessors
# ---------------------------------------------------------------------------

_active_context: GlueContext | None = None
_active_lock = threading.Lock()


def set_active_context(context: GlueContext | None) -> None:
    """Set the process-wide context used by proxies."""
    global _active_context
    with _active_lock:
        _active_context = context


def get_active_context() -> GlueContext:
    """Return the active context, or raise if no runtime is installed."""
    context = _active_context
    if context is None:
        raise RuntimeNotInstalledError(
            "No embedded runtime installed. Call pyglue.install_runtime() before using proxies."
        )
    return context


def peek_active_context() -> GlueContext | None:
    return _active_context


@contextmanager
def context_scope(context: GlueContext) -> Generator[GlueContext, None, None]:
    """Make *context* active for the block and restore the previous one on exit."""
    previous = _active_context
    set_active_context(context)
    try:
        yield context
    finally:
        set_active_context(previous)
