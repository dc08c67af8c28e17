import io
import logging

import numpy as np
import pytest

from wavefront_parser.lexer import ErrorKind, MissingType, ObjError
from wavefront_parser.obj import (DEFAULT_NAME, Face, GeometryData, Group,
                                  Line, ObjFile, Object, VertexRef,
                                  load_geometry, load_geometry_file)


def load(text):
    return load_geometry(io.StringIO(text))


SQUARE = """
v 0 1 0
v 0 0 0
v 1 0 0
v 1 1 0
f 1 2 3 4
"""

CUBE = """
v 0 1 1
v 0 0 1
v 1 0 1
v 1 1 1
v 0 1 0
v 0 0 0
v 1 0 0
v 1 1 0
# 8 vertices

o cube
g front cube
f 1 2 3 4
g back cube
f 8 7 6 5
g right cube
f 4 3 7 8
g top cube
f 5 1 4 8
g left cube
f 5 6 2 1
g bottom cube
f 2 6 7 3
# 6 elements
"""

CUBE_NEGATIVE = """
v 0 1 1
v 0 0 1
v 1 0 1
v 1 1 1
f -4 -3 -2 -1

v 1 1 0
v 1 0 0
v 0 0 0
v 0 1 0
f -4 -3 -2 -1

v 1 1 1
v 1 0 1
v 1 0 0
v 1 1 0
f -4 -3 -2 -1
"""


def test_load_square():
    obj = load(SQUARE)
    assert obj.position == ((0.0, 1.0, 0.0), (0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0))
    assert len(obj.objects) == 1
    group = obj.objects[0].groups[0]
    assert group.faces == (Face((VertexRef(0), VertexRef(1), VertexRef(2), VertexRef(3))),)
    assert group.lines == ()


def test_load_cube():
    obj = load(CUBE)
    assert len(obj.position) == 8
    assert [o.name for o in obj.objects] == ["cube"]
    names = [g.name for g in obj.objects[0].groups]
    assert names == ["front cube", "back cube", "right cube", "top cube", "left cube", "bottom cube"]
    back = obj.objects[0].groups[1]
    assert back.faces[0].refs == (VertexRef(7), VertexRef(6), VertexRef(5), VertexRef(4))


def test_load_cube_negative():
    obj = load(CUBE_NEGATIVE)
    faces = obj.getFaces()
    assert len(faces) == 3
    for k, face in enumerate(faces):
        assert face.refs == tuple(VertexRef(4 * k + i) for i in range(4))


def test_negative_matches_positive():
    verts = "v 0 0 0\nv 1 0 0\nv 1 1 0\nv 0 1 0\n"
    assert load(verts + "f -4 -3 -2 -1\n") == load(verts + "f 1 2 3 4\n")
    assert load(verts + "l -4 -1\n") == load(verts + "l 1 4\n")


def test_negative_resolves_against_vertices_read_so_far():
    obj = load("v 0 0 0\nv 1 0 0\nv 1 1 0\nf -3 -2 -1\nv 0 1 0\nf -1 -2 -3\n")
    first, second = obj.getFaces()
    assert first.refs == (VertexRef(0), VertexRef(1), VertexRef(2))
    assert second.refs == (VertexRef(3), VertexRef(2), VertexRef(1))


def test_negative_texcoord_and_normal():
    obj = load("""
v 0 0 0
v 1 0 0
v 1 1 0
vt 0 0
vt 1 1
vn 0 0 1
f -3/-2/-1 -2/-1/-1 -1/-1/-1
""")
    assert obj.getFaces()[0].refs == (VertexRef(0, 0, 0), VertexRef(1, 1, 0), VertexRef(2, 1, 0))


@pytest.mark.parametrize("face", ["f 0 1 2", "f -4 1 2", "f 1 2 x", "f 1/1/1/1 2 3", "f /1 2 3"])
def test_bad_references(face):
    with pytest.raises(ObjError) as exc:
        load("v 0 0 0\nv 1 0 0\nv 1 1 0\nvt 0 0\n" + face + "\n")
    assert exc.value.kind == ErrorKind.INVALID_VALUE
    assert exc.value.line_number == 5


def test_reference_forms():
    obj = load("""
v 0 0 0
v 1 0 0
v 1 1 0
vt 0 0
vn 0 0 1
f 1/1/1 2//1 3/1
""")
    assert obj.getFaces()[0].refs == (VertexRef(0, 0, 0), VertexRef(1, None, 1), VertexRef(2, 0, None))


def test_positive_references_are_not_range_checked():
    obj = load("v 0 0 0\nf 1 2 3\n")
    assert obj.getFaces()[0].refs == (VertexRef(0), VertexRef(1), VertexRef(2))


def test_load_line():
    obj = load("""
    v 0 0 0
    v 0 1 0
    v 1 1 0
    v 1 0 0
    l 1 2 3 4 1
    """)
    group = obj.objects[0].groups[0]
    assert group.lines == (Line((VertexRef(0), VertexRef(1), VertexRef(2), VertexRef(3), VertexRef(0))),)
    assert group.faces == ()


def test_line_with_texcoords():
    obj = load("v 0 0 0\nv 1 0 0\nvt 0 0\nl 1/1 2/1\n")
    assert obj.getLines()[0].refs == (VertexRef(0, 0), VertexRef(1, 0))


def test_line_with_normal():
    text = "v 0 0 0\nv 1 0 0\nvt 0 0\nvn 0 0 0\nl 1/1/1 2/1/1\n"
    with pytest.raises(ObjError) as exc:
        load(text)
    assert exc.value.kind == ErrorKind.LINE_HAS_NORMAL_INDEX
    assert exc.value.line_number == 5


def test_primitive_arity():
    with pytest.raises(ObjError) as exc:
        load("v 0 0 0\nv 1 0 0\nf 1 2\n")
    assert exc.value.kind == ErrorKind.INVALID_VALUE
    with pytest.raises(ObjError) as exc:
        load("v 0 0 0\nl 1\n")
    assert exc.value.kind == ErrorKind.INVALID_VALUE


def test_vertex_arity():
    obj = load("v 1 2 3 1\nvt 0.5 0.5\nvt 0 1 0\nvn 0 1 0\n")
    assert obj.position == ((1.0, 2.0, 3.0),)
    assert obj.texture == ((0.5, 0.5), (0.0, 1.0, 0.0))
    assert obj.normal == ((0.0, 1.0, 0.0),)
    for bad in ("v 1 2", "v 1 2 3 4 5", "v 1 2 3 w", "vt 1", "vt 1 2 3 4", "vn 1 2", "vn 1 2 3 4"):
        with pytest.raises(ObjError) as exc:
            load(bad + "\n")
        assert exc.value.kind == ErrorKind.INVALID_VALUE


def test_invalid_instruction():
    with pytest.raises(ObjError) as exc:
        load("v 0 0 0\n# fine\n\nxyz 1 2\n")
    assert exc.value.kind == ErrorKind.INVALID_INSTRUCTION
    assert exc.value.value == "xyz"
    assert exc.value.line_number == 4


def test_comments_and_blank_lines_only():
    assert load("# just a comment\n\n   \n#another\n") == GeometryData()


def test_implicit_object_and_group():
    obj = load(SQUARE)
    assert obj.objects[0].name == DEFAULT_NAME
    assert obj.objects[0].groups[0].name == DEFAULT_NAME


def test_empty_groups_and_objects_are_dropped():
    obj = load("v 0 0 0\no first\ng unused\no second\ng\nf 1 1 1\n")
    assert obj.objects == (Object("second", (Group(DEFAULT_NAME, faces=(Face((VertexRef(0),) * 3),)),)),)


def test_object_requires_name():
    with pytest.raises(ObjError) as exc:
        load("o\n")
    assert exc.value.kind == ErrorKind.MISSING_VALUE
    assert exc.value.value == MissingType.STRING


def test_group_before_object():
    obj = load("v 0 0 0\ng  wheel   left\nf 1 1 1\n")
    assert obj.objects[0].name == DEFAULT_NAME
    assert obj.objects[0].groups[0].name == "wheel left"


def test_materials_and_smoothing():
    obj = load("""
mtllib my  scene.mtl
v 0 0 0
o car
g body
usemtl red
s off
f 1 1 1
usemtl blue
f 1 1 1
g glass
usemtl clear
l 1 1
""")
    assert obj.material_libs == ("my scene.mtl",)
    groups = obj.object("car").groups
    assert [(g.name, g.index, g.material) for g in groups] == [
        ("body", 0, "red"),
        ("body", 1, "blue"),
        ("glass", 0, "clear"),
    ]
    assert obj.object("bike") is None


def test_usemtl_before_primitives_does_not_split():
    obj = load("v 0 0 0\ng a\nusemtl red\nusemtl blue\nf 1 1 1\nusemtl blue\nf 1 1 1\n")
    groups = obj.objects[0].groups
    assert len(groups) == 1
    assert groups[0].material == "blue"
    assert len(groups[0].faces) == 2


def test_numpy_views():
    obj = load(SQUARE + "vt 0 0\nvt 1 0 0.5\nvn 0 0 1\n")
    pos = obj.getPositions()
    assert pos.dtype == np.float32
    assert pos.shape == (4, 3)
    np.testing.assert_array_equal(pos[0], [0, 1, 0])
    np.testing.assert_array_equal(obj.getTexcoords(), [[0, 0, 0], [1, 0, 0.5]])
    assert obj.getNormals().shape == (1, 3)
    assert GeometryData().getPositions().shape == (0, 3)
    assert GeometryData().getTexcoords().shape == (0, 2)


def test_byte_lines():
    obj = load_geometry([b"v 0 0 0\n", b"v 1 0 0\n", b"l 1 2\n"])
    assert len(obj.getLines()) == 1


def test_load_geometry_file(tmp_path):
    path = tmp_path / "square.obj"
    path.write_text(SQUARE, encoding="utf-8")
    assert load_geometry_file(path) == load(SQUARE)
    with pytest.raises(ObjError) as exc:
        load_geometry_file(tmp_path / "missing.obj")
    assert exc.value.kind == ErrorKind.IO


def test_obj_file_loads_material_libraries(tmp_path):
    (tmp_path / "scene.mtl").write_text("newmtl red\nKd 1 0 0\n", encoding="utf-8")
    (tmp_path / "scene.obj").write_text(
        "mtllib scene.mtl\nv 0 0 0\nusemtl red\nf 1 1 1\n", encoding="utf-8")
    scene = ObjFile.load(tmp_path / "scene.obj")
    assert list(scene.materials) == ["scene.mtl"]
    assert scene.material("red").kd == (1.0, 0.0, 0.0)
    assert scene.material("blue") is None
    assert scene.data.objects[0].groups[0].material == "red"


def test_obj_file_missing_library_warns(tmp_path, caplog):
    (tmp_path / "scene.obj").write_text("mtllib gone.mtl\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="wavefront_parser.obj"):
        scene = ObjFile.load(tmp_path / "scene.obj")
    assert scene.materials == {}
    assert "gone.mtl" in caplog.text


def test_obj_file_without_materials(tmp_path):
    (tmp_path / "scene.obj").write_text("mtllib gone.mtl\n", encoding="utf-8")
    scene = ObjFile.load(tmp_path / "scene.obj", with_materials=False)
    assert scene.materials == {}
