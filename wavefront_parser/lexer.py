"""Token-level reading shared by the .obj and .mtl parsers.

Each input line is split on runs of whitespace into non-empty tokens. The
first token is the directive; the remaining tokens are consumed left to right
by exactly one field reader:

    read_vec3   three floats, nothing else on the line
    read_float  one float, nothing else on the line
    read_int    one signed integer, nothing else on the line
    read_rest   every remaining token joined by single spaces

``read_rest`` exists because texture paths and names may contain spaces:
``map_Kd  a   file.png`` reads back as ``"a file.png"``.
"""

from __future__ import annotations

import io
import re
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple, Type

import numpy as np

Vec3 = Tuple[float, float, float]

_INT_RE = re.compile(r"[+-]?[0-9]+\Z")


# ------------------------------------------------------------------ Enum ----
class ErrorKind(Enum):
    IO = 0
    INVALID_INSTRUCTION = 1
    INVALID_VALUE = 2
    MISSING_VALUE = 3
    MISSING_MATERIAL_NAME = 4
    LINE_HAS_NORMAL_INDEX = 5


class MissingType(Enum):
    INT = "integer"
    FLOAT = "float"
    STRING = "string"


# ---------------------------------------------------------------- Errors ----
class WavefrontError(Exception):
    """A fatal parse failure.

    ``value`` is the offending token(s), the unknown instruction, or the
    ``MissingType`` of the absent value depending on ``kind``.
    """

    def __init__(self, kind: ErrorKind, value=None, line_number: Optional[int] = None):
        self.kind = kind
        self.value = value
        self.line_number = line_number
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.kind == ErrorKind.IO:
            msg = "I/O error: {}".format(self.value)
        elif self.kind == ErrorKind.INVALID_INSTRUCTION:
            msg = "unsupported instruction: {}".format(self.value)
        elif self.kind == ErrorKind.INVALID_VALUE:
            msg = "attempted to parse the value {!r} but failed".format(self.value)
        elif self.kind == ErrorKind.MISSING_VALUE:
            msg = "instruction is missing a value of type {}".format(self.value.value)
        elif self.kind == ErrorKind.MISSING_MATERIAL_NAME:
            msg = "newmtl issued, but no name provided"
        else:
            msg = "line primitive has a normal index"
        if self.line_number is not None:
            return "line {}: {}".format(self.line_number, msg)
        return msg


class MtlError(WavefrontError):
    pass


class ObjError(WavefrontError):
    pass


# --------------------------------------------------------------- Scalars ----
def parse_float(token: str) -> float:
    """Parse ``token`` at single precision; ValueError if it is not a float."""
    if "_" in token:
        raise ValueError(token)
    with np.errstate(over="ignore"):
        return float(np.float32(float(token)))


def parse_int(token: str) -> int:
    if not _INT_RE.match(token):
        raise ValueError(token)
    return int(token)


def format_float(value: float) -> str:
    """Shortest text that reads back to the same single precision value."""
    return np.format_float_positional(np.float32(value), trim="-")


# ------------------------------------------------------------ Token line ----
class TokenLine:
    """The tokens of one source line, consumed once from the left."""

    def __init__(self, text: str, line_number: int, error: Type[WavefrontError] = WavefrontError):
        self.line_number = line_number
        self._error = error
        self._tokens = text.split()
        self._pos = 0

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        tok = self.next()
        if tok is None:
            raise StopIteration
        return tok

    def next(self) -> Optional[str]:
        if self._pos >= len(self._tokens):
            return None
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def remaining(self) -> List[str]:
        rest = self._tokens[self._pos:]
        self._pos = len(self._tokens)
        return rest

    def fail(self, kind: ErrorKind, value=None) -> WavefrontError:
        return self._error(kind, value, self.line_number)

    def finish(self) -> None:
        """Reject leftover tokens of a fixed-arity directive."""
        rest = self.remaining()
        if rest:
            raise self.fail(ErrorKind.INVALID_VALUE, " ".join(rest))

    # -- field readers
    def read_vec3(self) -> Vec3:
        raw = [self.next(), self.next(), self.next()]
        extra = self.remaining()
        if None in raw or extra:
            shown = [tok for tok in raw if tok is not None] + extra
            raise self.fail(ErrorKind.INVALID_VALUE, " ".join(shown))
        try:
            x, y, z = (parse_float(tok) for tok in raw)
        except ValueError:
            raise self.fail(ErrorKind.INVALID_VALUE, " ".join(raw)) from None
        return (x, y, z)

    def read_float(self) -> float:
        tok = self.next()
        if tok is None:
            raise self.fail(ErrorKind.MISSING_VALUE, MissingType.FLOAT)
        try:
            value = parse_float(tok)
        except ValueError:
            raise self.fail(ErrorKind.INVALID_VALUE, tok) from None
        self.finish()
        return value

    def read_int(self) -> int:
        tok = self.next()
        if tok is None:
            raise self.fail(ErrorKind.MISSING_VALUE, MissingType.INT)
        try:
            value = parse_int(tok)
        except ValueError:
            raise self.fail(ErrorKind.INVALID_VALUE, tok) from None
        self.finish()
        return value

    def read_rest(self) -> str:
        rest = self.remaining()
        if not rest:
            raise self.fail(ErrorKind.MISSING_VALUE, MissingType.STRING)
        return " ".join(rest)


def iter_lines(stream: Iterable, error: Type[WavefrontError]) -> Iterator[Tuple[int, str]]:
    """Yield ``(line_number, text)`` pairs, 1-based, wrapping read failures.

    A plain ``str`` is taken as the whole document rather than as lines.
    """
    if isinstance(stream, str):
        stream = io.StringIO(stream)
    it = iter(stream)
    line_number = 0
    while True:
        try:
            raw = next(it)
        except StopIteration:
            return
        except (OSError, UnicodeDecodeError) as err:
            raise error(ErrorKind.IO, err, line_number + 1) from err
        line_number += 1
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as err:
                raise error(ErrorKind.IO, err, line_number) from err
        yield line_number, raw
