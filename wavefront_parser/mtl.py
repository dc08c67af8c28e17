"""Reading and writing of .mtl material libraries.

See http://paulbourke.net/dataformats/mtl/ for the format.

Parsing:
    * ``newmtl <name>`` opens a material; the previous one (if any) is
      flushed. Materials keep file order and duplicate names are kept.
    * Field directives fill the open material. Before the first ``newmtl``
      they are still parsed (bad values are errors) but the value is dropped.
    * ``#`` comments and blank lines are ignored, any other directive is an
      ``INVALID_INSTRUCTION`` error.

Fields never written in the file stay ``None``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, TextIO, Tuple

from .lexer import (ErrorKind, MtlError, TokenLine, Vec3, format_float,
                    iter_lines)

logger = logging.getLogger(__name__)

WRITER_HEADER = "# Generated by wavefront_parser."

# directive -> (Material field, TokenLine reader)
MTL_FIELDS: Dict[str, Tuple[str, str]] = {
    'Ka': ('ka', 'read_vec3'),
    'Kd': ('kd', 'read_vec3'),
    'Ks': ('ks', 'read_vec3'),
    'Ke': ('ke', 'read_vec3'),
    'Tf': ('tf', 'read_vec3'),
    'Km': ('km', 'read_float'),
    'Ns': ('ns', 'read_float'),
    'Ni': ('ni', 'read_float'),
    'd': ('d', 'read_float'),
    'Tr': ('tr', 'read_float'),
    'illum': ('illum', 'read_int'),
    'map_Ka': ('map_ka', 'read_rest'),
    'map_Kd': ('map_kd', 'read_rest'),
    'map_Ks': ('map_ks', 'read_rest'),
    'map_Ke': ('map_ke', 'read_rest'),
    'map_Ns': ('map_ns', 'read_rest'),
    'map_d': ('map_d', 'read_rest'),
    'map_refl': ('map_refl', 'read_rest'),
    'map_Bump': ('map_bump', 'read_rest'),
    'map_bump': ('map_bump', 'read_rest'),
    'bump': ('map_bump', 'read_rest'),
}

# field -> directive used when writing, in output order
_WRITE_ORDER: Tuple[Tuple[str, str], ...] = (
    ('ka', 'Ka'),
    ('kd', 'Kd'),
    ('ks', 'Ks'),
    ('ke', 'Ke'),
    ('tf', 'Tf'),
    ('km', 'Km'),
    ('ns', 'Ns'),
    ('ni', 'Ni'),
    ('d', 'd'),
    ('tr', 'Tr'),
    ('illum', 'illum'),
    ('map_ka', 'map_Ka'),
    ('map_kd', 'map_Kd'),
    ('map_ks', 'map_Ks'),
    ('map_ke', 'map_Ke'),
    ('map_ns', 'map_Ns'),
    ('map_d', 'map_d'),
    ('map_bump', 'map_Bump'),
    ('map_refl', 'map_refl'),
)


# ------------------------------------------------------------ Data model ----
@dataclass(frozen=True)
class Material:
    name: str
    # color and illumination
    ka: Optional[Vec3] = None
    kd: Optional[Vec3] = None
    ks: Optional[Vec3] = None
    ke: Optional[Vec3] = None
    km: Optional[float] = None
    tf: Optional[Vec3] = None
    ns: Optional[float] = None
    ni: Optional[float] = None
    tr: Optional[float] = None
    d: Optional[float] = None
    illum: Optional[int] = None
    # texture and reflection maps
    map_ka: Optional[str] = None
    map_kd: Optional[str] = None
    map_ks: Optional[str] = None
    map_ke: Optional[str] = None
    map_ns: Optional[str] = None
    map_d: Optional[str] = None
    map_bump: Optional[str] = None
    map_refl: Optional[str] = None


@dataclass(frozen=True)
class MaterialSet:
    materials: Tuple[Material, ...] = tuple()

    def __iter__(self) -> Iterator[Material]:
        return iter(self.materials)

    def __len__(self) -> int:
        return len(self.materials)

    def __getitem__(self, index: int) -> Material:
        return self.materials[index]

    def find(self, name: str) -> Optional[Material]:
        """First material called ``name``, or None."""
        for m in self.materials:
            if m.name == name:
                return m
        return None


# --------------------------------------------------------------- Builder ----
@dataclass
class _MaterialDraft:
    name: str
    fields: Dict[str, object] = field(default_factory=dict)

    def build(self) -> Material:
        return Material(name=self.name, **self.fields)


class MaterialBuilder:
    """Collects materials line by line; ``None`` draft means no ``newmtl`` yet."""

    def __init__(self):
        self._done = []
        self._draft: Optional[_MaterialDraft] = None

    def feed(self, line: TokenLine) -> None:
        directive = line.next()
        if directive is None or directive.startswith('#'):
            return
        if directive == 'newmtl':
            name = line.next()
            if name is None:
                raise line.fail(ErrorKind.MISSING_MATERIAL_NAME)
            self._flush()
            self._draft = _MaterialDraft(name)
            return
        if directive not in MTL_FIELDS:
            raise line.fail(ErrorKind.INVALID_INSTRUCTION, directive)
        attr, reader = MTL_FIELDS[directive]
        value = getattr(line, reader)()
        if self._draft is not None:
            self._draft.fields[attr] = value

    def _flush(self) -> None:
        if self._draft is not None:
            self._done.append(self._draft.build())
            self._draft = None

    def finish(self) -> MaterialSet:
        self._flush()
        return MaterialSet(materials=tuple(self._done))


# ------------------------------------------------------------------ Load ----
def load_materials(stream: Iterable) -> MaterialSet:
    """Parse a material library from an iterable of text (or UTF-8 byte) lines.

    Raises ``MtlError`` on the first malformed line.
    """
    builder = MaterialBuilder()
    for line_number, text in iter_lines(stream, MtlError):
        builder.feed(TokenLine(text, line_number, MtlError))
    result = builder.finish()
    logger.debug("loaded %d materials", len(result))
    return result


def load_materials_file(path: str | Path) -> MaterialSet:
    path = Path(path)
    try:
        f = path.open("r", encoding="utf-8")
    except OSError as err:
        raise MtlError(ErrorKind.IO, err) from err
    with f:
        return load_materials(f)


# ----------------------------------------------------------------- Write ----
def _format_value(value) -> str:
    if isinstance(value, tuple):
        return " ".join(format_float(v) for v in value)
    if isinstance(value, float):
        return format_float(value)
    return str(value)


def write_materials(materials: Iterable[Material], sink: TextIO) -> None:
    """Write ``materials`` as .mtl text; only set fields are written."""
    sink.write(WRITER_HEADER + "\n")
    for i, m in enumerate(materials):
        if i:
            sink.write("\n")
        sink.write("newmtl {}\n".format(m.name))
        for attr, directive in _WRITE_ORDER:
            value = getattr(m, attr)
            if value is not None:
                sink.write("{} {}\n".format(directive, _format_value(value)))


def dumps_materials(materials: Iterable[Material]) -> str:
    buf = io.StringIO()
    write_materials(materials, buf)
    return buf.getvalue()
