"""
pyglue - Python proxies for objects living in an embedded runtime.

pyglue lets host code use parser, formatter, exception and record-set classes
whose implementation runs inside a separate embedded runtime. Every host
class is a thin proxy: it declares the embedded class it fronts and a table of
operations, and pyglue takes care of the crossing itself.

Key Features:
    - Class descriptors resolved once and cached
    - Object identity preserved across repeated crossings
    - Exact, shape-driven marshaling (integers, strings, ordered containers)
    - Embedded failures translated into a closed host error taxonomy
    - Embedded iterators bridged onto Python's iterator protocol

Basic Usage:
    >>> import pyglue
    >>> from pyglue.records import CSVFormat, CSVParser
    >>> pyglue.install_runtime(config={"source_paths": ["./guest"]})
    >>> with CSVParser.parse("a,b\\nc,d\\n", CSVFormat()) as parser:
    ...     for record in parser:
    ...         print(record.values())
    >>> pyglue.uninstall_runtime()
"""

from typing import TYPE_CHECKING

from ._internal.context import GlueContext, context_scope, get_active_context
from ._internal.descriptor_cache import ClassDescriptor, ForeignClass
from ._internal.dispatch import Constructor, ForeignProxy, Operation, OperationTable
from ._internal.error_translator import ErrorSignal, SignalKindRegistry
from ._internal.foreign_handle import ForeignHandle
from ._internal.guest_runtime import GuestRuntime
from ._internal.identity_cache import IdentityCache, identity_scope
from ._internal.iteration import ForeignIterator, IterationResult, IterationState
from ._internal.marshaling import (
    BOOL,
    HANDLE,
    INT32,
    INT64,
    OPAQUE,
    STR,
    VOID,
    Shape,
    mapping_of,
    nullable,
    proxy_of,
    sequence_of,
)
from .config import GlueConfig, load_config
from .errors import (
    DescriptorResolutionError,
    ForeignIOError,
    ForeignRuntimeError,
    GlueError,
    InvalidArgumentError,
    MarshalingError,
)
from .host import install_runtime, uninstall_runtime

if TYPE_CHECKING:
    from ._internal.error_translator import SignalFactory

__version__ = "0.1.0"

__all__ = [
    "install_runtime",
    "uninstall_runtime",
    "get_active_context",
    "context_scope",
    "GlueContext",
    "GlueConfig",
    "load_config",
    "GuestRuntime",
    "ForeignHandle",
    "ForeignClass",
    "ClassDescriptor",
    "ForeignProxy",
    "ForeignIterator",
    "IterationResult",
    "IterationState",
    "Operation",
    "OperationTable",
    "Constructor",
    "Shape",
    "VOID",
    "BOOL",
    "INT32",
    "INT64",
    "STR",
    "OPAQUE",
    "HANDLE",
    "nullable",
    "sequence_of",
    "mapping_of",
    "proxy_of",
    "IdentityCache",
    "identity_scope",
    "ErrorSignal",
    "SignalKindRegistry",
    "register_signal_kind",
    "GlueError",
    "InvalidArgumentError",
    "ForeignIOError",
    "ForeignRuntimeError",
    "DescriptorResolutionError",
    "MarshalingError",
]


def register_signal_kind(kind: str, factory: "SignalFactory") -> None:
    """Map an embedded failure kind tag onto a host exception factory."""
    SignalKindRegistry.get_instance().register(kind, factory)
