from __future__ import annotations
from enum import Enum
from typing import Dict, Optional, Tuple


class SegError(Exception):
    """Base class for interpreter errors."""


class ErrorType(Enum):
    NO_SEGMENT = "NoSegment"
    ALL_OK = "AllOk"
    MALFORMED_ASSIGNMENT = "MalformedAssignment"
    NOT_CHRONOLOGICAL = "NotChronological"
    MALFORMED_SEGMENT = "MalformedSegment"


class SegmentKind(Enum):
    VARIABLE = "register"
    CODE = "code"


# Register segment codes are odd, code segment codes are even. AllOk is 0 for both.
_CODES: Dict[SegmentKind, Dict[ErrorType, int]] = {
    SegmentKind.VARIABLE: {
        ErrorType.ALL_OK: 0,
        ErrorType.NO_SEGMENT: 1,
        ErrorType.MALFORMED_ASSIGNMENT: 3,
        ErrorType.NOT_CHRONOLOGICAL: 5,
        ErrorType.MALFORMED_SEGMENT: 7,
    },
    SegmentKind.CODE: {
        ErrorType.ALL_OK: 0,
        ErrorType.NO_SEGMENT: 2,
        ErrorType.MALFORMED_ASSIGNMENT: 4,
        ErrorType.NOT_CHRONOLOGICAL: 6,
        ErrorType.MALFORMED_SEGMENT: 8,
    },
}

MESSAGES: Dict[int, str] = {
    0: "OK",
    1: "No register segment found",
    2: "No code segment found",
    3: "Malformed register declaration: expected 'index value'",
    4: "Malformed code line: expected 'index statement'",
    5: "Register declarations are not in chronological order",
    6: "Code lines are not in chronological order",
    7: "Malformed register segment",
    8: "Malformed code segment",
}


def error_code(kind: SegmentKind, error: ErrorType) -> int:
    return _CODES[kind][error]


def error_message(code: int) -> str:
    message = MESSAGES.get(code)
    if message is None:
        return f"Unknown load error code {code}"
    return message


def describe_code(code: int) -> Tuple[Optional[SegmentKind], Optional[ErrorType]]:
    """Map a numeric code back to the segment kind and condition that produced it.

    AllOk is shared by both kinds, so its kind is reported as None. A code
    that no condition produces maps to (None, None).
    """
    if code == 0:
        return None, ErrorType.ALL_OK
    for kind, table in _CODES.items():
        for error, value in table.items():
            if value == code:
                return kind, error
    return None, None


class LoadError(SegError):
    """Raised when a program file cannot be loaded.

    Framing errors carry a plain message and no code. Line grammar and
    ordering errors carry the numeric code for the segment they occurred in.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[int] = None,
        kind: Optional[SegmentKind] = None,
    ) -> None:
        if message is None:
            message = error_message(code) if code is not None else "Load failed"
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind

    @classmethod
    def from_condition(cls, kind: SegmentKind, error: ErrorType) -> "LoadError":
        return cls(code=error_code(kind, error), kind=kind)

    @property
    def error_type(self) -> Optional[ErrorType]:
        if self.code is None:
            return None
        return describe_code(self.code)[1]
