"""wavefront_parser.obj: .obj geometry reader / writer.

Format summary (http://paulbourke.net/dataformats/obj/):
--------------------------------------------------------
Vertex data (global, indexed from 1 in file order):
    v  x y z [w]      position, optional homogeneous w is read and dropped
    vt u v [w]        texture coordinate (2 or 3 components)
    vn x y z          normal

Hierarchy:
    o <name...>       starts a new object
    g [name...]       starts a new group inside the current object
    usemtl <name...>  material of the current group
    mtllib <name...>  material library referenced by the document
    s <value>         smoothing group, accepted and ignored

Primitives (appended to the current group):
    f r r r [r...]    polygon, references ``p``, ``p/t``, ``p//n`` or ``p/t/n``
    l r r [r...]      polyline, references ``p`` or ``p/t``

Reference resolution:
    * Positive values are 1-based: ``v`` -> ``v - 1``.
    * Negative values count back from the end of the attribute array *as read
      so far*: ``-1`` is the latest vertex at the time the primitive is read.
    * ``0`` and negative values reaching before the start are errors.

Objects and groups that are used before being named get ``DEFAULT_NAME``.
Groups holding no primitives and objects holding no groups are not kept.

All results are frozen dataclasses; ``write_geometry`` renders them back
into text that re-parses to an equal ``GeometryData``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, TextIO, Tuple

import numpy as np

from .lexer import (ErrorKind, ObjError, TokenLine, Vec3, format_float,
                    iter_lines, parse_float, parse_int)
from .mtl import Material, MaterialSet, load_materials_file

logger = logging.getLogger(__name__)

WRITER_HEADER = "# Generated by wavefront_parser."
DEFAULT_NAME = "default"

obj_commands = {
    'v': 'parse_position',
    'vt': 'parse_texcoord',
    'vn': 'parse_normal',
    'o': 'parse_object',
    'g': 'parse_group',
    'f': 'parse_face',
    'l': 'parse_line',
    'usemtl': 'parse_usemtl',
    'mtllib': 'parse_mtllib',
    's': 'parse_smoothing',
}


# ------------------------------------------------------------ Data model ----
class VertexRef(NamedTuple):
    """Zero-based indices into the position / texcoord / normal arrays."""
    position: int
    texcoord: Optional[int] = None
    normal: Optional[int] = None

    def __str__(self) -> str:
        out = str(self.position + 1)
        if self.texcoord is not None:
            out += "/{}".format(self.texcoord + 1)
        if self.normal is not None:
            out += "/" if self.texcoord is not None else "//"
            out += str(self.normal + 1)
        return out


@dataclass(frozen=True)
class Face:
    refs: Tuple[VertexRef, ...]

    def __str__(self) -> str:
        return "f " + " ".join(str(r) for r in self.refs)


@dataclass(frozen=True)
class Line:
    refs: Tuple[VertexRef, ...]  # normal is always None

    def __str__(self) -> str:
        return "l " + " ".join(str(VertexRef(r.position, r.texcoord)) for r in self.refs)

@dataclass(frozen=True)
class Group:
    name: str
    # > 0 when a usemtl switch split this group off a same-named predecessor
    index: int = 0
    material: Optional[str] = None
    faces: Tuple[Face, ...] = tuple()
    lines: Tuple[Line, ...] = tuple()


@dataclass(frozen=True)
class Object:
    name: str
    groups: Tuple[Group, ...] = tuple()


@dataclass(frozen=True)
class GeometryData:
    position: Tuple[Vec3, ...] = tuple()
    texture: Tuple[Tuple[float, ...], ...] = tuple()
    normal: Tuple[Vec3, ...] = tuple()
    objects: Tuple[Object, ...] = tuple()
    material_libs: Tuple[str, ...] = tuple()

    # numpy views
    def getPositions(self) -> np.ndarray:
        return np.array(self.position, dtype=np.float32).reshape(-1, 3)

    def getNormals(self) -> np.ndarray:
        return np.array(self.normal, dtype=np.float32).reshape(-1, 3)

    def getTexcoords(self) -> np.ndarray:
        """(N, 2) array, or (N, 3) if any coordinate has a w (others get 0)."""
        width = max((len(t) for t in self.texture), default=2)
        out = np.zeros((len(self.texture), width), dtype=np.float32)
        for i, t in enumerate(self.texture):
            out[i, :len(t)] = t
        return out

    def getFaces(self) -> List[Face]:
        return [f for o in self.objects for g in o.groups for f in g.faces]

    def getLines(self) -> List[Line]:
        return [ln for o in self.objects for g in o.groups for ln in g.lines]

    def object(self, name: str) -> Optional[Object]:
        for o in self.objects:
            if o.name == name:
                return o
        return None


# --------------------------------------------------------------- Builder ----
@dataclass
class _GroupDraft:
    name: str
    index: int = 0
    material: Optional[str] = None
    faces: List[Face] = field(default_factory=list)
    lines: List[Line] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.faces and not self.lines

    def build(self) -> Group:
        return Group(name=self.name, index=self.index, material=self.material,
                     faces=tuple(self.faces), lines=tuple(self.lines))


@dataclass
class _ObjectDraft:
    name: str
    groups: List[Group] = field(default_factory=list)


class GeometryBuilder:
    """Single forward pass over .obj lines.

    Owns the growing attribute arrays, so negative references resolve
    against what has been read up to the current line.
    """

    def __init__(self):
        self.__position: List[Vec3] = []
        self.__texture: List[Tuple[float, ...]] = []
        self.__normal: List[Vec3] = []
        self.__objects: List[Object] = []
        self.__material_libs: List[str] = []
        self.__object: Optional[_ObjectDraft] = None
        self.__group: Optional[_GroupDraft] = None

    def feed(self, line: TokenLine) -> None:
        directive = line.next()
        if directive is None or directive.startswith('#'):
            return
        if directive not in obj_commands:
            raise line.fail(ErrorKind.INVALID_INSTRUCTION, directive)
        getattr(self, obj_commands[directive])(line)

    def finish(self) -> GeometryData:
        self._flush_object()
        return GeometryData(
            position=tuple(self.__position),
            texture=tuple(self.__texture),
            normal=tuple(self.__normal),
            objects=tuple(self.__objects),
            material_libs=tuple(self.__material_libs),
        )

    # -- hierarchy
    def _current_object(self) -> _ObjectDraft:
        if self.__object is None:
            self.__object = _ObjectDraft(DEFAULT_NAME)
        return self.__object

    def _current_group(self) -> _GroupDraft:
        if self.__group is None:
            self._current_object()
            self.__group = _GroupDraft(DEFAULT_NAME)
        return self.__group

    def _flush_group(self) -> None:
        if self.__group is not None and not self.__group.is_empty():
            self._current_object().groups.append(self.__group.build())
        self.__group = None

    def _flush_object(self) -> None:
        self._flush_group()
        if self.__object is not None and self.__object.groups:
            self.__objects.append(Object(name=self.__object.name,
                                         groups=tuple(self.__object.groups)))
        self.__object = None

    # -- vertex data
    def _floats(self, line: TokenLine, tokens: List[str]) -> Tuple[float, ...]:
        try:
            return tuple(parse_float(tok) for tok in tokens)
        except ValueError:
            raise line.fail(ErrorKind.INVALID_VALUE, " ".join(tokens)) from None

    def parse_position(self, line: TokenLine) -> None:
        tokens = line.remaining()
        if len(tokens) not in (3, 4):
            raise line.fail(ErrorKind.INVALID_VALUE, " ".join(tokens))
        x, y, z = self._floats(line, tokens)[:3]
        self.__position.append((x, y, z))

    def parse_texcoord(self, line: TokenLine) -> None:
        tokens = line.remaining()
        if len(tokens) not in (2, 3):
            raise line.fail(ErrorKind.INVALID_VALUE, " ".join(tokens))
        self.__texture.append(self._floats(line, tokens))

    def parse_normal(self, line: TokenLine) -> None:
        self.__normal.append(line.read_vec3())

    # -- hierarchy directives
    def parse_object(self, line: TokenLine) -> None:
        name = line.read_rest()
        self._flush_object()
        self.__object = _ObjectDraft(name)

    def parse_group(self, line: TokenLine) -> None:
        rest = line.remaining()
        name = " ".join(rest) if rest else DEFAULT_NAME
        self._current_object()
        self._flush_group()
        self.__group = _GroupDraft(name)

    def parse_usemtl(self, line: TokenLine) -> None:
        name = line.read_rest()
        group = self._current_group()
        if group.is_empty() and group.index > 0 and self._reopen_previous(group, name):
            return
        if group.material != name and not group.is_empty():
            self._flush_group()
            self.__group = _GroupDraft(group.name, group.index + 1, name)
        else:
            group.material = name

    def _reopen_previous(self, group: _GroupDraft, name: str) -> bool:
        """Switching back to the material of the group just split off resumes it."""
        groups = self._current_object().groups
        if not groups:
            return False
        prev = groups[-1]
        if (prev.name, prev.index, prev.material) != (group.name, group.index - 1, name):
            return False
        groups.pop()
        self.__group = _GroupDraft(prev.name, prev.index, prev.material,
                                   list(prev.faces), list(prev.lines))
        return True

    def parse_mtllib(self, line: TokenLine) -> None:
        self.__material_libs.append(line.read_rest())

    def parse_smoothing(self, line: TokenLine) -> None:
        line.read_rest()

    # -- primitives
    def _resolve(self, line: TokenLine, raw: str, array: list) -> int:
        try:
            value = parse_int(raw)
        except ValueError:
            raise line.fail(ErrorKind.INVALID_VALUE, raw) from None
        if value > 0:
            return value - 1
        if value < 0 and len(array) + value >= 0:
            return len(array) + value
        raise line.fail(ErrorKind.INVALID_VALUE, raw)

    def _split_ref(self, line: TokenLine, token: str) -> List[str]:
        parts = token.split('/')
        if len(parts) > 3 or not parts[0]:
            raise line.fail(ErrorKind.INVALID_VALUE, token)
        return parts + [''] * (3 - len(parts))

    def _vertex_ref(self, line: TokenLine, parts: List[str]) -> VertexRef:
        p, t, n = parts
        return VertexRef(
            self._resolve(line, p, self.__position),
            self._resolve(line, t, self.__texture) if t else None,
            self._resolve(line, n, self.__normal) if n else None,
        )

    def parse_face(self, line: TokenLine) -> None:
        tokens = line.remaining()
        if len(tokens) < 3:
            raise line.fail(ErrorKind.INVALID_VALUE, " ".join(tokens))
        refs = tuple(self._vertex_ref(line, self._split_ref(line, tok)) for tok in tokens)
        self._current_group().faces.append(Face(refs))

    def parse_line(self, line: TokenLine) -> None:
        tokens = line.remaining()
        if len(tokens) < 2:
            raise line.fail(ErrorKind.INVALID_VALUE, " ".join(tokens))
        refs = []
        for tok in tokens:
            parts = self._split_ref(line, tok)
            if parts[2]:
                raise line.fail(ErrorKind.LINE_HAS_NORMAL_INDEX, tok)
            refs.append(self._vertex_ref(line, parts))
        self._current_group().lines.append(Line(tuple(refs)))


# ------------------------------------------------------------------ Load ----
def load_geometry(stream: Iterable) -> GeometryData:
    """Parse .obj text from an iterable of text (or UTF-8 byte) lines.

    Raises ``ObjError`` on the first malformed line; nothing partial is kept.
    """
    builder = GeometryBuilder()
    for line_number, text in iter_lines(stream, ObjError):
        builder.feed(TokenLine(text, line_number, ObjError))
    data = builder.finish()
    logger.debug("loaded %d positions, %d texcoords, %d normals, %d objects",
                 len(data.position), len(data.texture), len(data.normal), len(data.objects))
    return data


def load_geometry_file(path: str | Path) -> GeometryData:
    path = Path(path)
    try:
        f = path.open("r", encoding="utf-8")
    except OSError as err:
        raise ObjError(ErrorKind.IO, err) from err
    with f:
        return load_geometry(f)


@dataclass
class ObjFile:
    """A .obj file on disk together with the material libraries it names."""
    path: Path
    data: GeometryData
    # key = mtllib string as written in the .obj file
    materials: Dict[str, MaterialSet] = field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path, with_materials: bool = True) -> "ObjFile":
        path = Path(path).resolve()
        obj = cls(path=path, data=load_geometry_file(path))
        if with_materials:
            for lib in obj.data.material_libs:
                if lib in obj.materials:
                    continue
                chosen = obj._find_library(lib)
                if chosen is None:
                    logger.warning("material library %s is not found", lib)
                    continue
                obj.materials[lib] = load_materials_file(chosen)
        return obj

    def _candidates(self, lib: str) -> List[Path]:
        p = Path(lib)
        if p.is_absolute():
            return [p]
        return [self.path.parent / p]

    def _find_library(self, lib: str) -> Optional[Path]:
        for c in self._candidates(lib):
            if c.is_file():
                return c
        return None

    def material(self, name: str) -> Optional[Material]:
        """First material called ``name`` across the libraries, in mtllib order."""
        for lib in self.data.material_libs:
            mset = self.materials.get(lib)
            found = mset.find(name) if mset is not None else None
            if found is not None:
                return found
        return None


# ----------------------------------------------------------------- Write ----
def _vector(tag: str, values: Iterable[float]) -> str:
    return tag + " " + " ".join(format_float(v) for v in values)


def iter_geometry_lines(data: GeometryData) -> Iterator[str]:
    """The lines of ``write_geometry`` output, without newlines."""
    yield WRITER_HEADER
    for lib in data.material_libs:
        yield "mtllib " + lib
    for v in data.position:
        yield _vector("v", v)
    for vt in data.texture:
        yield _vector("vt", vt)
    for vn in data.normal:
        yield _vector("vn", vn)
    for o in data.objects:
        yield "o " + o.name
        for g in o.groups:
            if g.index == 0:
                yield "g " + g.name
            if g.material is not None:
                yield "usemtl " + g.material
            for ln in g.lines:
                yield str(ln)
            for f in g.faces:
                yield str(f)


def write_geometry(data: GeometryData, sink: TextIO) -> None:
    """Write ``data`` to the text sink; sink errors propagate unchanged."""
    for text in iter_geometry_lines(data):
        sink.write(text + "\n")


def dumps_geometry(data: GeometryData) -> str:
    buf = io.StringIO()
    write_geometry(data, buf)
    return buf.getvalue()
