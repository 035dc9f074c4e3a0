"""Record-set proxies: CSV formats, parsers, records and the record iterator.

Parsing itself runs inside the embedded runtime (``csv_format`` and
``csv_parser`` guest modules); these classes only forward operations.

    >>> with CSVParser.parse("name,qty\\napple,2\\n", CSVFormat().with_first_record_as_header()) as parser:
    ...     [record.get_by_name("qty") for record in parser]
    ['2']
"""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Iterator
from typing import IO, Any, overload

from ._internal.descriptor_cache import ForeignClass
from ._internal.dispatch import Constructor, ForeignProxy, Operation, OperationTable
from ._internal.iteration import ForeignIterator
from ._internal.marshaling import (
    BOOL,
    INT32,
    INT64,
    OPAQUE,
    STR,
    mapping_of,
    nullable,
    proxy_of,
    sequence_of,
)

__all__ = ["CSVFormat", "CSVParser", "CSVRecord", "CSVRecordIterator"]

logger = logging.getLogger(__name__)


class CSVFormat(ForeignProxy):
    """Immutable CSV dialect. Every ``with_*`` call returns a new format."""

    __foreign__ = ForeignClass("csv_format", "CSVFormat")
    __constructors__ = (
        Constructor(),
        Constructor((STR,)),
        Constructor((STR, STR)),
    )
    __operations__ = OperationTable(
        Operation("get_delimiter", result=STR),
        Operation("get_quote_char", result=nullable(STR)),
        Operation("get_header", result=nullable(sequence_of(STR))),
        Operation("get_skip_header_record", result=BOOL),
        Operation("get_ignore_empty_lines", result=BOOL),
        Operation("get_ignore_surrounding_spaces", result=BOOL),
        Operation("with_delimiter", (STR,), proxy_of("CSVFormat")),
        Operation("with_quote", (nullable(STR),), proxy_of("CSVFormat")),
        Operation("with_header", (sequence_of(STR),), proxy_of("CSVFormat")),
        Operation("with_first_record_as_header", result=proxy_of("CSVFormat")),
        Operation("with_skip_header_record", (BOOL,), proxy_of("CSVFormat")),
        Operation("with_ignore_empty_lines", (BOOL,), proxy_of("CSVFormat")),
        Operation("with_ignore_surrounding_spaces", (BOOL,), proxy_of("CSVFormat")),
    )

    @classmethod
    def default(cls) -> CSVFormat:
        return cls()

    @classmethod
    def rfc4180(cls) -> CSVFormat:
        return cls().with_ignore_empty_lines(False)

    @classmethod
    def tdf(cls) -> CSVFormat:
        """Tab-delimited format."""
        return cls("\t").with_ignore_surrounding_spaces(True)

    def get_delimiter(self) -> str:
        return self._invoke("get_delimiter")

    def get_quote_char(self) -> str | None:
        return self._invoke("get_quote_char")

    def get_header(self) -> list[str] | None:
        return self._invoke("get_header")

    def get_skip_header_record(self) -> bool:
        return self._invoke("get_skip_header_record")

    def get_ignore_empty_lines(self) -> bool:
        return self._invoke("get_ignore_empty_lines")

    def get_ignore_surrounding_spaces(self) -> bool:
        return self._invoke("get_ignore_surrounding_spaces")

    def with_delimiter(self, delimiter: str) -> CSVFormat:
        return self._invoke("with_delimiter", delimiter)

    def with_quote(self, quote_char: str | None) -> CSVFormat:
        return self._invoke("with_quote", quote_char)

    def with_header(self, *names: str) -> CSVFormat:
        return self._invoke("with_header", list(names))

    def with_first_record_as_header(self) -> CSVFormat:
        return self._invoke("with_first_record_as_header")

    def with_skip_header_record(self, skip: bool = True) -> CSVFormat:
        return self._invoke("with_skip_header_record", skip)

    def with_ignore_empty_lines(self, ignore: bool = True) -> CSVFormat:
        return self._invoke("with_ignore_empty_lines", ignore)

    def with_ignore_surrounding_spaces(self, ignore: bool = True) -> CSVFormat:
        return self._invoke("with_ignore_surrounding_spaces", ignore)


class CSVRecord(ForeignProxy):
    """A single parsed row. Supports ``len()``, indexing by position or header
    name, and iteration over its values."""

    __foreign__ = ForeignClass("csv_parser", "CSVRecord")
    __constructors__ = ()
    __operations__ = OperationTable(
        Operation("get", (INT32,), STR),
        Operation("get_by_name", (STR,), STR),
        Operation("size", result=INT32),
        Operation("values", result=sequence_of(STR)),
        Operation("to_map", result=mapping_of(STR)),
        Operation("get_record_number", result=INT64),
        Operation("get_character_position", result=INT64),
        Operation("get_comment", result=nullable(STR)),
        Operation("is_consistent", result=BOOL),
        Operation("is_mapped", (STR,), BOOL),
        Operation("is_set", (STR,), BOOL),
    )

    def get(self, index: int) -> str:
        return self._invoke("get", index)

    def get_by_name(self, name: str) -> str:
        """Return the value in the column mapped to *name*.

        Raises:
            InvalidArgumentError: If the parser has no header or *name* is not in it.
        """
        return self._invoke("get_by_name", name)

    def size(self) -> int:
        return self._invoke("size")

    def values(self) -> list[str]:
        return self._invoke("values")

    def to_map(self) -> dict[str, str]:
        """Header name -> value, in column order."""
        return self._invoke("to_map")

    def get_record_number(self) -> int:
        return self._invoke("get_record_number")

    def get_character_position(self) -> int:
        return self._invoke("get_character_position")

    def get_comment(self) -> str | None:
        return self._invoke("get_comment")

    def is_consistent(self) -> bool:
        return self._invoke("is_consistent")

    def is_mapped(self, name: str) -> bool:
        return self._invoke("is_mapped", name)

    def is_set(self, name: str) -> bool:
        return self._invoke("is_set", name)

    def __len__(self) -> int:
        return self.size()

    @overload
    def __getitem__(self, key: int) -> str: ...

    @overload
    def __getitem__(self, key: str) -> str: ...

    def __getitem__(self, key: int | str) -> str:
        if isinstance(key, str):
            return self.get_by_name(key)
        size = self.size()
        if key < 0:
            key += size
        if not 0 <= key < size:
            raise IndexError(f"record index {key} out of range for {size} values")
        return self.get(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.values())


class CSVRecordIterator(ForeignIterator):
    """Bridge over the embedded parser's record iterator.

    Not restartable; ``CSVParser.iterator()`` builds a new one per call.
    """

    __foreign__ = ForeignClass("csv_parser", "CSVParser.CSVRecordIterator")
    __constructors__ = (Constructor((proxy_of("CSVParser"),)),)
    __operations__ = OperationTable(
        Operation("has_next", result=BOOL),
        Operation("__next__", result=proxy_of(CSVRecord)),
    )


class CSVParser(ForeignProxy):
    """Record-wise CSV parser over a text stream.

    Records are read forward only; once drained (by ``get_records()`` or
    iteration) a parser yields nothing more. Closing the parser closes the
    underlying stream, and any failure while closing surfaces as
    ForeignIOError.
    """

    __foreign__ = ForeignClass("csv_parser", "CSVParser")
    __constructors__ = (
        Constructor((OPAQUE, proxy_of(CSVFormat))),
        Constructor((OPAQUE, proxy_of(CSVFormat), INT64, INT64)),
    )
    __operations__ = OperationTable(
        Operation("close", on_failure="io"),
        Operation("get_current_line_number", result=INT64),
        Operation("get_first_end_of_line", result=nullable(STR)),
        Operation("get_header_map", result=nullable(mapping_of(INT32))),
        Operation("get_header_names", result=sequence_of(STR)),
        Operation("get_record_number", result=INT64),
        Operation("is_closed", result=BOOL),
        Operation("next_record", result=nullable(proxy_of(CSVRecord))),
    )

    @classmethod
    def parse(cls, string: str, fmt: CSVFormat) -> CSVParser:
        """Create a parser over an in-memory CSV string."""
        if not isinstance(string, str):
            raise TypeError(f"CSVParser.parse() expects str, got {type(string).__name__}")
        return cls(io.StringIO(string), fmt)

    @classmethod
    def parse_reader(cls, reader: IO[str], fmt: CSVFormat) -> CSVParser:
        return cls(reader, fmt)

    @classmethod
    def parse_path(
        cls, path: str | os.PathLike[str], fmt: CSVFormat, encoding: str = "utf-8"
    ) -> CSVParser:
        """Create a parser over a file; the parser owns and closes the file."""
        stream = open(path, encoding=encoding, newline="")  # noqa: SIM115
        try:
            return cls(stream, fmt)
        except BaseException:
            stream.close()
            raise

    def close(self) -> None:
        self._invoke("close")

    def get_current_line_number(self) -> int:
        return self._invoke("get_current_line_number")

    def get_first_end_of_line(self) -> str | None:
        return self._invoke("get_first_end_of_line")

    def get_header_map(self) -> dict[str, int] | None:
        """Column name -> 0-based index in column order, or None without a header."""
        return self._invoke("get_header_map")

    def get_header_names(self) -> list[str]:
        return self._invoke("get_header_names")

    def get_record_number(self) -> int:
        return self._invoke("get_record_number")

    def is_closed(self) -> bool:
        return self._invoke("is_closed")

    def next_record(self) -> CSVRecord | None:
        """Parse the next record, or return None at the end of input."""
        return self._invoke("next_record")

    def get_records(self) -> list[CSVRecord]:
        """Drain the remaining input into a list of records."""
        records: list[CSVRecord] = []
        while (record := self.next_record()) is not None:
            records.append(record)
        logger.debug("%r drained %d records", self, len(records))
        return records

    def iterator(self) -> CSVRecordIterator:
        return CSVRecordIterator(self)

    def __iter__(self) -> CSVRecordIterator:
        return self.iterator()

    def __enter__(self) -> CSVParser:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
