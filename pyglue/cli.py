"""Command-line proxies: options, the GNU-style parser, help formatting and
parse exceptions.

Tokenizing, parsing and text wrapping run inside the embedded runtime. The
help formatter composes its output on the host side: it sorts options with a
host key function, asks the embedded formatter to render each block and
writes the result to a text stream.

Importing this module registers the ``ParseException`` and
``MissingArgumentException`` kind tags, so embedded parse failures surface as
the proxies below.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, TextIO

from typing_extensions import override

from ._internal.descriptor_cache import ForeignClass
from ._internal.dispatch import Constructor, ForeignProxy, Operation, OperationTable
from ._internal.error_translator import ErrorSignal, SignalKindRegistry
from ._internal.foreign_handle import ForeignHandle
from ._internal.marshaling import (
    BOOL,
    INT32,
    STR,
    nullable,
    proxy_of,
    sequence_of,
)
from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from ._internal.context import GlueContext
    from ._internal.descriptor_cache import ClassDescriptor

__all__ = [
    "Option",
    "Options",
    "CommandLine",
    "GnuParser",
    "HelpFormatter",
    "ParseException",
    "MissingArgumentException",
]

logger = logging.getLogger(__name__)

OptionKey = Callable[["Option"], Any]


class Option(ForeignProxy):
    """A single command-line option.

    Constructors mirror the embedded ones:
        Option(opt, description)
        Option(opt, has_arg, description)
        Option(opt, long_opt, has_arg, description)
    """

    __foreign__ = ForeignClass("option", "Option")
    __constructors__ = (
        Constructor((nullable(STR), nullable(STR))),
        Constructor((nullable(STR), BOOL, nullable(STR))),
        Constructor((nullable(STR), nullable(STR), BOOL, nullable(STR))),
    )
    __operations__ = OperationTable(
        Operation("get_opt", result=nullable(STR)),
        Operation("get_long_opt", result=nullable(STR)),
        Operation("get_key", result=STR),
        Operation("has_long_opt", result=BOOL),
        Operation("has_arg", result=BOOL),
        Operation("get_description", result=nullable(STR)),
        Operation("set_description", (nullable(STR),)),
        Operation("get_arg_name", result=nullable(STR)),
        Operation("set_arg_name", (nullable(STR),)),
        Operation("has_arg_name", result=BOOL),
        Operation("is_required", result=BOOL),
        Operation("set_required", (BOOL,)),
    )

    def get_opt(self) -> str | None:
        return self._invoke("get_opt")

    def get_long_opt(self) -> str | None:
        return self._invoke("get_long_opt")

    def get_key(self) -> str:
        """Short name if present, otherwise the long name."""
        return self._invoke("get_key")

    def has_long_opt(self) -> bool:
        return self._invoke("has_long_opt")

    def has_arg(self) -> bool:
        return self._invoke("has_arg")

    def get_description(self) -> str | None:
        return self._invoke("get_description")

    def set_description(self, description: str | None) -> None:
        self._invoke("set_description", description)

    def get_arg_name(self) -> str | None:
        return self._invoke("get_arg_name")

    def set_arg_name(self, arg_name: str | None) -> None:
        self._invoke("set_arg_name", arg_name)

    def has_arg_name(self) -> bool:
        return self._invoke("has_arg_name")

    def is_required(self) -> bool:
        return self._invoke("is_required")

    def set_required(self, required: bool) -> None:
        self._invoke("set_required", required)


class Options(ForeignProxy):
    """Ordered collection of options."""

    __foreign__ = ForeignClass("options", "Options")
    __operations__ = OperationTable(
        Operation("add_option", (proxy_of(Option),), proxy_of("Options")),
        Operation("get_options", result=sequence_of(proxy_of(Option))),
        Operation("help_options", result=sequence_of(proxy_of(Option))),
        Operation("get_option", (STR,), nullable(proxy_of(Option))),
        Operation("has_option", (STR,), BOOL),
        Operation("has_long_option", (STR,), BOOL),
        Operation("has_short_option", (STR,), BOOL),
        Operation("get_required_options", result=sequence_of(STR)),
        Operation("get_matching_options", (STR,), sequence_of(STR)),
    )

    def add_option(self, option: Option) -> Options:
        """Add *option* and return this collection (the same proxy) for chaining."""
        return self._invoke("add_option", option)

    def add(
        self,
        opt: str | None,
        long_opt: str | None = None,
        has_arg: bool = False,
        description: str | None = None,
    ) -> Options:
        return self.add_option(Option(opt, long_opt, has_arg, description))

    def get_options(self) -> list[Option]:
        return self._invoke("get_options")

    def help_options(self) -> list[Option]:
        return self._invoke("help_options")

    def get_option(self, opt: str) -> Option | None:
        """Look an option up by short or long name (leading hyphens ignored)."""
        return self._invoke("get_option", opt)

    def has_option(self, opt: str) -> bool:
        return self._invoke("has_option", opt)

    def has_long_option(self, opt: str) -> bool:
        return self._invoke("has_long_option", opt)

    def has_short_option(self, opt: str) -> bool:
        return self._invoke("has_short_option", opt)

    def get_required_options(self) -> list[str]:
        return self._invoke("get_required_options")

    def get_matching_options(self, opt: str) -> list[str]:
        return self._invoke("get_matching_options", opt)

    def __contains__(self, opt: object) -> bool:
        return isinstance(opt, str) and self.has_option(opt)

    def __iter__(self) -> Iterator[Option]:
        return iter(self.get_options())


class CommandLine(ForeignProxy):
    """Result of a parse: recognized options with their values plus leftover arguments."""

    __foreign__ = ForeignClass("gnu_parser", "CommandLine")
    __constructors__ = ()
    __operations__ = OperationTable(
        Operation("has_option", (STR,), BOOL),
        Operation("get_option_value", (STR,), nullable(STR)),
        Operation("get_option_values", (STR,), nullable(sequence_of(STR))),
        Operation("get_args", result=sequence_of(STR)),
        Operation("get_options", result=sequence_of(proxy_of(Option))),
    )

    def has_option(self, opt: str) -> bool:
        return self._invoke("has_option", opt)

    def get_option_value(self, opt: str, default: str | None = None) -> str | None:
        value = self._invoke("get_option_value", opt)
        return default if value is None else value

    def get_option_values(self, opt: str) -> list[str] | None:
        return self._invoke("get_option_values", opt)

    def get_args(self) -> list[str]:
        return self._invoke("get_args")

    def get_options(self) -> list[Option]:
        return self._invoke("get_options")

    def __contains__(self, opt: object) -> bool:
        return isinstance(opt, str) and self.has_option(opt)

    def __iter__(self) -> Iterator[Option]:
        return iter(self.get_options())


class GnuParser(ForeignProxy):
    """GNU-style parser: ``--name=value`` and ``-Dkey=value`` are split into
    separate tokens before parsing."""

    __foreign__ = ForeignClass("gnu_parser", "GnuParser")
    __operations__ = OperationTable(
        Operation("flatten", (proxy_of(Options), sequence_of(STR), BOOL), sequence_of(STR)),
        Operation("parse", (proxy_of(Options), sequence_of(STR), BOOL), proxy_of(CommandLine)),
    )

    @classmethod
    def create(cls, handle: ForeignHandle | None) -> GnuParser | None:
        """Adopt an embedded parser; the same handle always yields the same proxy."""
        return cls.wrap(handle)

    def flatten(self, options: Options, arguments: Sequence[str], stop_at_non_option: bool = False) -> list[str]:
        return self._invoke("flatten", options, list(arguments), stop_at_non_option)

    def parse(self, options: Options, arguments: Sequence[str], stop_at_non_option: bool = False) -> CommandLine:
        """Parse *arguments* against *options*.

        Raises:
            MissingArgumentException: An option that takes a value got none.
            ParseException: Unrecognized or missing required options.
        """
        return self._invoke("parse", options, list(arguments), stop_at_non_option)


class ParseException(ForeignProxy, Exception):
    """Base of the embedded parse failures."""

    __foreign__ = ForeignClass("parse_exception", "ParseException")
    __constructors__ = (Constructor((STR,)),)
    __operations__ = OperationTable(
        Operation("get_message", result=STR),
    )

    def get_message(self) -> str:
        return self._invoke("get_message")

    @override
    def __str__(self) -> str:
        return self.get_message()


class MissingArgumentException(ParseException):
    """An option that requires a value was given none.

    Built either from the offending Option (the message is derived from its
    key) or from a plain message, in which case ``get_option()`` is None.
    Failures raised by the parser are adopted, so ``get_option()`` returns
    the proxy of the option that was declared.
    """

    __foreign__ = ForeignClass("missing_argument_exception", "MissingArgumentException")
    __constructors__ = (
        Constructor((proxy_of(Option),)),
        Constructor((STR,)),
    )
    __operations__ = OperationTable(
        Operation("get_option", result=nullable(proxy_of(Option))),
        base=ParseException.__operations__,
    )

    def get_option(self) -> Option | None:
        return self._invoke("get_option")


class HelpFormatter(ForeignProxy):
    """Formats usage and help text for a set of options."""

    DEFAULT_WIDTH = 74
    DEFAULT_LEFT_PAD = 1
    DEFAULT_DESC_PAD = 3
    DEFAULT_SYNTAX_PREFIX = "usage: "
    DEFAULT_OPT_PREFIX = "-"
    DEFAULT_LONG_OPT_PREFIX = "--"
    DEFAULT_LONG_OPT_SEPARATOR = " "
    DEFAULT_ARG_NAME = "arg"

    __foreign__ = ForeignClass("help_formatter", "HelpFormatter")
    __operations__ = OperationTable(
        Operation("create_padding", (INT32,), STR),
        Operation("find_wrap_pos", (STR, INT32, INT32), INT32),
        Operation("rtrim", (nullable(STR),), nullable(STR)),
        Operation("render_options", (INT32, sequence_of(proxy_of(Option)), INT32, INT32), STR),
        Operation("render_wrapped_text", (INT32, INT32, STR), STR),
        Operation("render_wrapped_text_block", (INT32, INT32, STR), STR),
        Operation("print_usage", (INT32, STR, sequence_of(proxy_of(Option))), STR),
        Operation("get_arg_name", result=STR),
        Operation("set_arg_name", (STR,)),
        Operation("get_desc_padding", result=INT32),
        Operation("set_desc_padding", (INT32,)),
        Operation("get_left_padding", result=INT32),
        Operation("set_left_padding", (INT32,)),
        Operation("get_long_opt_prefix", result=STR),
        Operation("set_long_opt_prefix", (STR,)),
        Operation("get_long_opt_separator", result=STR),
        Operation("set_long_opt_separator", (STR,)),
        Operation("get_new_line", result=STR),
        Operation("set_new_line", (STR,)),
        Operation("get_opt_prefix", result=STR),
        Operation("set_opt_prefix", (STR,)),
        Operation("get_syntax_prefix", result=STR),
        Operation("set_syntax_prefix", (STR,)),
        Operation("get_width", result=INT32),
        Operation("set_width", (INT32,)),
    )

    _option_key: OptionKey | None

    @override
    def _attach(self, handle: ForeignHandle, descriptor: ClassDescriptor, context: GlueContext) -> None:
        super()._attach(handle, descriptor, context)
        self._option_key = _case_insensitive_key

    # Settings ---------------------------------------------------------------

    def get_arg_name(self) -> str:
        return self._invoke("get_arg_name")

    def set_arg_name(self, name: str) -> None:
        self._invoke("set_arg_name", name)

    def get_desc_padding(self) -> int:
        return self._invoke("get_desc_padding")

    def set_desc_padding(self, padding: int) -> None:
        self._invoke("set_desc_padding", padding)

    def get_left_padding(self) -> int:
        return self._invoke("get_left_padding")

    def set_left_padding(self, padding: int) -> None:
        self._invoke("set_left_padding", padding)

    def get_long_opt_prefix(self) -> str:
        return self._invoke("get_long_opt_prefix")

    def set_long_opt_prefix(self, prefix: str) -> None:
        self._invoke("set_long_opt_prefix", prefix)

    def get_long_opt_separator(self) -> str:
        return self._invoke("get_long_opt_separator")

    def set_long_opt_separator(self, separator: str) -> None:
        self._invoke("set_long_opt_separator", separator)

    def get_new_line(self) -> str:
        return self._invoke("get_new_line")

    def set_new_line(self, new_line: str) -> None:
        self._invoke("set_new_line", new_line)

    def get_opt_prefix(self) -> str:
        return self._invoke("get_opt_prefix")

    def set_opt_prefix(self, prefix: str) -> None:
        self._invoke("set_opt_prefix", prefix)

    def get_syntax_prefix(self) -> str:
        return self._invoke("get_syntax_prefix")

    def set_syntax_prefix(self, prefix: str) -> None:
        self._invoke("set_syntax_prefix", prefix)

    def get_width(self) -> int:
        return self._invoke("get_width")

    def set_width(self, width: int) -> None:
        """Raises InvalidArgumentError for a non-positive width."""
        self._invoke("set_width", width)

    def get_option_comparator(self) -> OptionKey | None:
        return self._option_key

    def set_option_comparator(self, key: OptionKey | None) -> None:
        """Sort key applied to options before rendering; None keeps declaration order."""
        self._option_key = key

    # Rendering primitives -----------------------------------------------------

    def create_padding(self, length: int) -> str:
        return self._invoke("create_padding", length)

    def find_wrap_pos(self, text: str, width: int, start_pos: int) -> int:
        """Position to wrap *text* at, or -1 if it fits in *width*."""
        return self._invoke("find_wrap_pos", text, width, start_pos)

    def rtrim(self, text: str | None) -> str | None:
        return self._invoke("rtrim", text)

    def render_options(self, width: int, options: Options, left_pad: int, desc_pad: int) -> str:
        return self._invoke("render_options", width, self._sorted(options.help_options()), left_pad, desc_pad)

    def render_wrapped_text(self, width: int, next_line_tab_stop: int, text: str) -> str:
        return self._invoke("render_wrapped_text", width, next_line_tab_stop, text)

    def _sorted(self, options: list[Option]) -> list[Option]:
        if self._option_key is None:
            return options
        return sorted(options, key=self._option_key)

    # Output -------------------------------------------------------------------

    def print_help(
        self,
        cmd_line_syntax: str,
        options: Options,
        *,
        header: str | None = None,
        footer: str | None = None,
        width: int | None = None,
        left_pad: int | None = None,
        desc_pad: int | None = None,
        auto_usage: bool = False,
        file: TextIO | None = None,
    ) -> None:
        """Write usage, header, option table and footer to *file* (stdout by default)."""
        if not cmd_line_syntax:
            raise InvalidArgumentError("cmdLineSyntax not provided")
        out = file if file is not None else sys.stdout
        width = self.get_width() if width is None else width
        left_pad = self.get_left_padding() if left_pad is None else left_pad
        desc_pad = self.get_desc_padding() if desc_pad is None else desc_pad

        if auto_usage:
            self.print_usage(out, width, cmd_line_syntax, options)
        else:
            self.print_usage(out, width, cmd_line_syntax)
        if header:
            self.print_wrapped(out, width, header)
        self.print_options(out, width, options, left_pad, desc_pad)
        if footer:
            self.print_wrapped(out, width, footer)

    def print_usage(self, file: TextIO, width: int, cmd_line_syntax: str, options: Options | None = None) -> None:
        """Write the usage line; with *options*, list them after the application name."""
        if options is None:
            syntax_prefix = self.get_syntax_prefix()
            arg_pos = cmd_line_syntax.find(" ") + 1
            self.print_wrapped(file, width, syntax_prefix + cmd_line_syntax, len(syntax_prefix) + arg_pos)
            return
        usage = self._invoke("print_usage", width, cmd_line_syntax, self._sorted(options.get_options()))
        self.print_wrapped(file, width, usage, usage.find(" ") + 1)

    def print_options(self, file: TextIO, width: int, options: Options, left_pad: int, desc_pad: int) -> None:
        print(self.render_options(width, options, left_pad, desc_pad), file=file)

    def print_wrapped(self, file: TextIO, width: int, text: str, next_line_tab_stop: int = 0) -> None:
        print(self._invoke("render_wrapped_text_block", width, next_line_tab_stop, text), file=file)


def _case_insensitive_key(option: Option) -> str:
    return option.get_key().lower()


def _raised(proxy_type: type[ParseException], signal: ErrorSignal) -> ParseException:
    """Adopt the raised embedded exception, or build one from the message if the runtime kept none."""
    if signal.handle is not None:
        adopted = proxy_type.wrap(signal.handle)
        if adopted is not None:
            return adopted
    return proxy_type(signal.message)


def _parse_exception_from(signal: ErrorSignal) -> BaseException:
    return _raised(ParseException, signal)


def _missing_argument_from(signal: ErrorSignal) -> BaseException:
    return _raised(MissingArgumentException, signal)


_registry = SignalKindRegistry.get_instance()
_registry.register("ParseException", _parse_exception_from)
_registry.register("MissingArgumentException", _missing_argument_from)
