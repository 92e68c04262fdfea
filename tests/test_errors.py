"""Tests for the load error taxonomy."""

import pytest

from errors import ErrorType, LoadError, SegmentKind, describe_code, error_code, error_message


@pytest.mark.parametrize(
    "error,variable_code,code_code",
    [
        (ErrorType.ALL_OK, 0, 0),
        (ErrorType.NO_SEGMENT, 1, 2),
        (ErrorType.MALFORMED_ASSIGNMENT, 3, 4),
        (ErrorType.NOT_CHRONOLOGICAL, 5, 6),
        (ErrorType.MALFORMED_SEGMENT, 7, 8),
    ],
)
def test_codes_depend_on_segment_kind(error, variable_code, code_code):
    assert error_code(SegmentKind.VARIABLE, error) == variable_code
    assert error_code(SegmentKind.CODE, error) == code_code


def test_every_failure_code_is_distinct():
    codes = [
        error_code(kind, error)
        for kind in SegmentKind
        for error in ErrorType
        if error is not ErrorType.ALL_OK
    ]
    assert len(codes) == len(set(codes))


def test_messages_name_the_segment():
    assert "register" in error_message(5).lower()
    assert "code" in error_message(6).lower()
    assert error_message(0) == "OK"


def test_unknown_code_has_a_message():
    assert error_message(99) == "Unknown load error code 99"


def test_describe_code_inverts_error_code():
    for kind in SegmentKind:
        for error in ErrorType:
            if error is ErrorType.ALL_OK:
                continue
            assert describe_code(error_code(kind, error)) == (kind, error)
    assert describe_code(0) == (None, ErrorType.ALL_OK)
    assert describe_code(42) == (None, None)


def test_load_error_from_condition():
    error = LoadError.from_condition(SegmentKind.CODE, ErrorType.NOT_CHRONOLOGICAL)
    assert error.code == 6
    assert error.kind is SegmentKind.CODE
    assert error.error_type is ErrorType.NOT_CHRONOLOGICAL
    assert str(error) == error_message(6)


def test_framing_error_has_no_code():
    error = LoadError("No code segment found")
    assert error.code is None
    assert error.error_type is None
    assert str(error) == "No code segment found"


def test_load_error_with_unknown_code():
    error = LoadError(code=42)
    assert str(error) == "Unknown load error code 42"
    assert error.error_type is None
