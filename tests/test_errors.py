"""Tests for mission_toolkit.errors module."""

import pytest

from mission_toolkit.errors import (
    Err,
    ErrorKind,
    MissionError,
    MissionException,
    Ok,
    conflict,
    err,
    format_error,
    invalid_argument,
    io_error,
    malformed,
    not_found,
    ok,
)


class TestResult:
    """Tests for Ok/Err."""

    def test_ok_accessors(self):
        """Ok exposes its value and reports success."""
        result = ok(42)

        assert result.ok
        assert result.is_ok()
        assert not result.is_err()
        assert result.value == 42
        assert result.error is None
        assert result.unwrap() == 42

    def test_err_accessors(self):
        """Err exposes its error and reports failure."""
        error = not_found("missing")
        result = err(error)

        assert not result.ok
        assert result.is_err()
        assert result.value is None
        assert result.error is error
        assert result.unwrap_err() is error

    def test_unwrap_err_on_ok_raises(self):
        with pytest.raises(ValueError):
            Ok(1).unwrap_err()

    def test_unwrap_on_err_raises_mission_exception(self):
        """unwrap() on an Err carries the error in the exception."""
        error = invalid_argument("bad input")

        with pytest.raises(MissionException) as exc_info:
            Err(error).unwrap()

        assert exc_info.value.error is error
        assert "bad input" in str(exc_info.value)


class TestMissionError:
    """Tests for MissionError construction and chaining."""

    @pytest.mark.parametrize(
        "factory,kind",
        [
            (invalid_argument, ErrorKind.INVALID_ARGUMENT),
            (not_found, ErrorKind.NOT_FOUND),
            (malformed, ErrorKind.MALFORMED),
            (io_error, ErrorKind.IO_ERROR),
            (conflict, ErrorKind.CONFLICT),
        ],
    )
    def test_constructors_set_kind(self, factory, kind):
        error = factory("message", key="value")

        assert error.code == kind
        assert error.context == {"key": "value"}
        assert kind in ErrorKind.ALL

    def test_wrap_keeps_kind_and_links_cause(self):
        """wrap() keeps the kind and points back at the original error."""
        inner = malformed("unterminated frontmatter")
        outer = inner.wrap("reading backlog", path="x")

        assert outer.code == ErrorKind.MALFORMED
        assert outer.cause is inner
        assert outer.root() is inner
        assert outer.chain() == [outer, inner]

    def test_errors_are_immutable(self):
        error = not_found("x")

        with pytest.raises(AttributeError):
            error.message = "y"


class TestFormatError:
    """Tests for format_error()."""

    def test_single_error(self):
        assert format_error(not_found("item not found: x")) == "item not found: x"

    def test_chain_renders_on_one_line(self):
        """Wrapped errors render outermost first, joined by ': '."""
        error = io_error("permission denied").wrap("writing backlog").wrap("adding item")

        assert format_error(error) == "adding item: writing backlog: permission denied"
        assert str(error) == format_error(error)

    def test_custom_error_formats(self):
        error = MissionError(code=ErrorKind.CONFLICT, message="duplicate")
        assert "\n" not in format_error(error)
