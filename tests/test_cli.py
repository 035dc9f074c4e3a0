"""Command-line proxy tests (options, GNU parser, help formatter, parse exceptions)."""

import gc
import io

import pytest

from pyglue import InvalidArgumentError, MarshalingError
from pyglue.cli import (
    CommandLine,
    GnuParser,
    HelpFormatter,
    MissingArgumentException,
    Option,
    Options,
    ParseException,
)


@pytest.fixture
def options(glue):
    return Options().add("b", "bravo", True, "second").add("A", "alpha", False, "first")


class TestOption:
    def test_two_argument_constructor(self, glue):
        option = Option("a", "all things")
        assert option.get_opt() == "a"
        assert option.get_long_opt() is None
        assert not option.has_arg()
        assert option.get_description() == "all things"

    def test_three_argument_constructor(self, glue):
        option = Option("f", True, "input file")
        assert option.has_arg()
        assert option.get_key() == "f"

    def test_four_argument_constructor(self, glue):
        option = Option(None, "verbose", False, "be loud")
        assert option.get_opt() is None
        assert option.get_key() == "verbose"
        assert option.has_long_opt()

    def test_setters(self, glue):
        option = Option("f", True, "input file")
        option.set_arg_name("path")
        option.set_required(True)
        option.set_description(None)
        assert option.get_arg_name() == "path"
        assert option.has_arg_name()
        assert option.is_required()
        assert option.get_description() is None

    def test_name_required(self, glue):
        with pytest.raises(InvalidArgumentError, match="Either opt or longOpt"):
            Option(None, None)

    def test_illegal_name(self, glue):
        with pytest.raises(InvalidArgumentError, match="Illegal option name"):
            Option("!", "bang")

    def test_argument_shapes_checked(self, glue):
        with pytest.raises(MarshalingError):
            Option("a", "b", "c")


class TestOptions:
    def test_add_option_returns_same_proxy(self, glue):
        options = Options()
        assert options.add_option(Option("a", "all")) is options

    def test_get_options_returns_same_proxies(self, glue):
        first = Option("a", "all")
        second = Option("b", "both")
        options = Options().add_option(first).add_option(second)
        listed = options.get_options()
        assert listed[0] is first
        assert listed[1] is second
        assert list(options) == listed

    def test_lookup(self, options):
        assert options.has_option("-A")
        assert options.has_option("--bravo")
        assert options.has_long_option("alpha")
        assert not options.has_short_option("alpha")
        assert "b" in options
        assert 5 not in options
        assert options.get_option("bravo").get_opt() == "b"
        assert options.get_matching_options("br") == ["bravo"]

    def test_unknown_option_lookup_is_none(self, options):
        assert options.get_option("zzz") is None

    def test_required_options(self, glue):
        option = Option("f", True, "input file")
        option.set_required(True)
        assert Options().add_option(option).get_required_options() == ["f"]

    def test_empty_options_is_truthy(self, glue):
        assert Options()


class TestGnuParser:
    @pytest.fixture
    def parser_options(self, glue):
        return Options().add("v", "verbose", False, "be loud").add("f", "file", True, "input file").add(
            "D", None, True, "property"
        )

    def test_flatten_splits_assignments(self, parser_options):
        parser = GnuParser()
        tokens = parser.flatten(parser_options, ["--file=in.txt", "-Dkey=value", "-v", "rest"])
        assert tokens == ["--file", "in.txt", "-D", "key=value", "-v", "rest"]

    def test_flatten_double_dash(self, parser_options):
        tokens = GnuParser().flatten(parser_options, ["-v", "--", "-f", "x"])
        assert tokens == ["-v", "--", "-f", "x"]

    def test_parse(self, parser_options):
        line = GnuParser().parse(parser_options, ["-v", "--file=in.txt", "rest"])
        assert isinstance(line, CommandLine)
        assert line.has_option("v")
        assert "file" in line
        assert line.get_option_value("f") == "in.txt"
        assert line.get_option_values("file") == ["in.txt"]
        assert line.get_args() == ["rest"]

    def test_parsed_options_are_the_declared_proxies(self, parser_options):
        line = GnuParser().parse(parser_options, ["-v"])
        assert line.get_options() == [parser_options.get_option("v")]
        assert list(line)[0] is parser_options.get_option("verbose")

    def test_option_value_default(self, parser_options):
        line = GnuParser().parse(parser_options, [])
        assert line.get_option_value("f") is None
        assert line.get_option_value("f", "default.txt") == "default.txt"
        assert line.get_option_values("f") is None

    def test_stop_at_non_option(self, parser_options):
        line = GnuParser().parse(parser_options, ["-v", "foo", "-x"], stop_at_non_option=True)
        assert line.has_option("v")
        assert line.get_args() == ["foo", "-x"]

    def test_unrecognized_option(self, parser_options):
        with pytest.raises(ParseException, match="Unrecognized option: -x") as exc_info:
            GnuParser().parse(parser_options, ["-x"])
        assert type(exc_info.value) is ParseException

    def test_missing_argument(self, parser_options):
        with pytest.raises(MissingArgumentException) as exc_info:
            GnuParser().parse(parser_options, ["-f"])
        assert str(exc_info.value) == "Missing argument for option: f"
        assert exc_info.value.get_option() is parser_options.get_option("f")

    def test_failures_do_not_accumulate_in_identity_cache(self, glue, parser_options):
        parser = GnuParser()
        baseline = len(glue.identity)
        for _ in range(5):
            with pytest.raises(ParseException):
                parser.parse(parser_options, ["-x"])
        gc.collect()
        assert len(glue.identity) == baseline

    def test_missing_required_option(self, glue):
        option = Option("f", True, "input file")
        option.set_required(True)
        with pytest.raises(ParseException, match="Missing required option: f"):
            GnuParser().parse(Options().add_option(option), [])

    def test_create_adopts_handle(self, glue):
        parser = GnuParser()
        assert GnuParser.create(parser.__foreign_handle__) is parser
        assert GnuParser.create(None) is None


class TestParseExceptions:
    def test_parse_exception(self, glue):
        exc = ParseException("bad input")
        assert isinstance(exc, Exception)
        assert exc.get_message() == "bad input"
        assert str(exc) == "bad input"

    def test_missing_argument_from_option(self, glue):
        option = Option("x", True, "needs a value")
        exc = MissingArgumentException(option)
        assert isinstance(exc, ParseException)
        assert exc.get_message() == "Missing argument for option: x"
        assert exc.get_option() is option

    def test_missing_argument_from_message(self, glue):
        exc = MissingArgumentException("no value")
        assert str(exc) == "no value"
        assert exc.get_option() is None

    def test_can_be_raised(self, glue):
        with pytest.raises(ParseException, match="bad input"):
            raise ParseException("bad input")


class TestHelpFormatterSettings:
    def test_defaults(self, glue):
        formatter = HelpFormatter()
        assert formatter.get_width() == HelpFormatter.DEFAULT_WIDTH
        assert formatter.get_left_padding() == HelpFormatter.DEFAULT_LEFT_PAD
        assert formatter.get_desc_padding() == HelpFormatter.DEFAULT_DESC_PAD
        assert formatter.get_syntax_prefix() == HelpFormatter.DEFAULT_SYNTAX_PREFIX
        assert formatter.get_opt_prefix() == HelpFormatter.DEFAULT_OPT_PREFIX
        assert formatter.get_long_opt_prefix() == HelpFormatter.DEFAULT_LONG_OPT_PREFIX
        assert formatter.get_long_opt_separator() == HelpFormatter.DEFAULT_LONG_OPT_SEPARATOR
        assert formatter.get_arg_name() == HelpFormatter.DEFAULT_ARG_NAME
        assert formatter.get_new_line() == "\n"
        assert formatter.get_option_comparator() is not None

    def test_setters(self, glue):
        formatter = HelpFormatter()
        formatter.set_width(40)
        formatter.set_arg_name("value")
        formatter.set_syntax_prefix("Usage: ")
        assert formatter.get_width() == 40
        assert formatter.get_arg_name() == "value"
        assert formatter.get_syntax_prefix() == "Usage: "

    def test_bad_width(self, glue):
        with pytest.raises(InvalidArgumentError, match="bad width"):
            HelpFormatter().set_width(0)


class TestHelpFormatterRendering:
    def test_find_wrap_pos(self, glue):
        formatter = HelpFormatter()
        assert formatter.find_wrap_pos("hello world", 5, 0) == 5
        assert formatter.find_wrap_pos("short", 10, 0) == -1
        assert formatter.find_wrap_pos("a\nb", 10, 0) == 2

    def test_rtrim(self, glue):
        formatter = HelpFormatter()
        assert formatter.rtrim("abc  ") == "abc"
        assert formatter.rtrim("") == ""
        assert formatter.rtrim(None) is None

    def test_create_padding(self, glue):
        assert HelpFormatter().create_padding(3) == "   "

    def test_render_wrapped_text(self, glue):
        assert HelpFormatter().render_wrapped_text(10, 2, "aaaa bbbb cccc") == "aaaa bbbb\n  cccc"

    def test_print_help_sorted(self, options):
        out = io.StringIO()
        HelpFormatter().print_help("app", options, file=out)
        assert out.getvalue() == (
            "usage: app\n"
            " -A,--alpha         first\n"
            " -b,--bravo <arg>   second\n"
        )

    def test_print_help_declaration_order(self, options):
        formatter = HelpFormatter()
        formatter.set_option_comparator(None)
        out = io.StringIO()
        formatter.print_help("app", options, header="Options:", footer="bye", file=out)
        assert out.getvalue() == (
            "usage: app\n"
            "Options:\n"
            " -b,--bravo <arg>   second\n"
            " -A,--alpha         first\n"
            "bye\n"
        )

    def test_print_help_auto_usage(self, options):
        out = io.StringIO()
        HelpFormatter().print_help("app", options, auto_usage=True, file=out)
        assert out.getvalue().splitlines()[0] == "usage: app [-A] [-b <arg>]"

    def test_print_help_requires_syntax(self, options):
        with pytest.raises(InvalidArgumentError, match="cmdLineSyntax not provided"):
            HelpFormatter().print_help("", options, file=io.StringIO())

    def test_custom_comparator(self, options):
        formatter = HelpFormatter()
        formatter.set_option_comparator(lambda option: option.get_long_opt())
        rendered = formatter.render_options(74, options, 0, 1)
        assert rendered.splitlines()[0].startswith("-A,--alpha")
