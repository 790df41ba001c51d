"""Test converting planes into renderable geometry."""
from io import BytesIO

from dirty_equals import IsApprox
import pytest

from powerslave import CorruptGeometry, Vec
from powerslave.const import PlaneFlags
from powerslave.geometry import (
    WIREFRAME_COLOR, DrawMode, draw_order, plane_center, plane_distance, plane_faces,
    plane_geometry, plane_normal, quad_normal, sector_centroid, toggle_planes, triangulate,
    vertex_color, wireframe, world_pos,
)
from powerslave.level import Map, Sector, Vertex

from helpers import UNIT_SQUARE, build_level, make_map, make_plane, pack_plane, pack_sector, pack_vertex


# Stored coordinates of a wall facing away from +Z in world space, once Y and Z are swapped.
WALL = [
    (0, 0, 0, 16),
    (10, 0, 0, 16),
    (10, 0, 10, 16),
    (0, 0, 10, 16),
]


def verts(*points: tuple) -> list:
    return [Vertex(x, y, z, 16) for x, y, z in points]


def test_world_pos() -> None:
    """Positions are scaled, and swapped to Y-up."""
    assert world_pos(Vertex(10, 20, 30, 0)) == Vec(1, 3, 2)
    assert world_pos(Vertex(-5, 0, 7, 0)) == Vec(-0.5, 0.7, 0)


def test_plane_normal() -> None:
    """Fixed point normals are decoded and swapped to Y-up."""
    assert plane_normal(make_plane((0, 0, 32767))) == Vec(0, 1, 0)
    assert plane_normal(make_plane((0, -32767, 0))) == Vec(0, 0, -1)
    norm = plane_normal(make_plane((16384, 0, 0)))
    assert norm.x == IsApprox(0.5, delta=1e-4)


def test_triangulate() -> None:
    """A quad with 4 distinct points produces two triangles."""
    a, b, c, d = verts((0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0))
    assert triangulate([a, b, c, d]) == [a, b, c, c, d, a]


def test_triangulate_degenerate() -> None:
    """Triangles with repeated corners are dropped."""
    a, b, c, d = verts((0, 0, 0), (1, 0, 0), (1, 1, 0), (1, 1, 0))
    assert triangulate([a, b, c, d]) == [a, b, c]
    a, b, c, d = verts((0, 0, 0), (0, 0, 0), (1, 1, 0), (0, 1, 0))
    assert triangulate([a, b, c, d]) == [c, d, a]
    a, b, c, d = verts((5, 5, 5), (5, 5, 5), (5, 5, 5), (5, 5, 5))
    assert triangulate([a, b, c, d]) == []
    # Only positions matter, not light levels.
    assert triangulate([Vertex(0, 0, 0, 1), Vertex(0, 0, 0, 2), b, c]) == []


def test_triangulate_not_quad() -> None:
    with pytest.raises(ValueError):
        triangulate(verts((0, 0, 0), (1, 0, 0), (1, 1, 0)))


def test_wireframe() -> None:
    """Wireframes produce each edge, looping back to the start."""
    a, b, c, d = verts((0, 0, 0), (1, 0, 0), (1, 1, 0), (1, 1, 0))
    assert wireframe([a, b, c, d]) == [a, b, b, c, c, d, d, a]
    assert wireframe([a, b, c]) == [a, b, b, c, c, a]


def test_quad_normal() -> None:
    """The normal is computed from the first three distinct points."""
    square = [Vec(0, 0, 0), Vec(10, 0, 0), Vec(10, 10, 0), Vec(0, 10, 0)]
    assert quad_normal(square) == Vec(0, 0, -1)
    assert quad_normal(square[::-1]) == Vec(0, 0, 1)
    # Duplicates are skipped.
    assert quad_normal([(0, 0, 0), (0.001, 0, 0), (10, 0, 0), (10, 10, 0)]) == Vec(0, 0, -1)


@pytest.mark.parametrize('points', [
    [],
    [(0, 0, 0)] * 4,
    [(0, 0, 0), (0, 0, 0), (5, 0, 0), (5, 0.001, 0)],
], ids=['empty', 'point', 'line'])
def test_quad_normal_degenerate(points: list) -> None:
    """If there aren't three distinct points, the normal is zero."""
    assert quad_normal(points) == Vec(0, 0, 0)


@pytest.mark.parametrize('light', [16, 32, 255])
def test_color_water(light: int) -> None:
    """Water is tinted and translucent, light levels are clamped."""
    assert vertex_color(PlaneFlags.WATER, light) == (0.2, 0.4, 1.0, 0.5)


def test_colors() -> None:
    """Test each of the colour rules."""
    assert vertex_color(PlaneFlags.NONE, 8) == (0.5, 0.5, 0.5, 1.0)
    assert vertex_color(PlaneFlags.SOLID, 0) == (0.0, 0.0, 0.0, 1.0)
    assert vertex_color(PlaneFlags.WATER, 8) == (0.1, 0.2, 0.5, 0.5)
    assert vertex_color(PlaneFlags.LAVA, 3) == (0.7, 0.2, 0.2, 1.0)
    assert vertex_color(PlaneFlags.SKY, 3) == (0.0, 0.3, 1.0, 1.0)
    assert vertex_color(PlaneFlags.BREAKABLE, 16) == (1.0, 1.0, 0.2, 1.0)
    assert vertex_color(PlaneFlags.SOLID | PlaneFlags.TRIGGER, 20) == (1.0, 1.0, 1.0, 1.0)


def test_color_priority() -> None:
    """Water takes priority over lava, then sky, then breakable."""
    assert vertex_color(PlaneFlags.WATER | PlaneFlags.LAVA, 16)[3] == 0.5
    assert vertex_color(PlaneFlags.LAVA | PlaneFlags.SKY, 16) == (0.7, 0.2, 0.2, 1.0)
    assert vertex_color(PlaneFlags.SKY | PlaneFlags.BREAKABLE, 16) == (0.0, 0.3, 1.0, 1.0)


def test_direct_plane() -> None:
    """Untiled planes use their own vertices, without any correction."""
    plane = make_plane(normal=(0, 32767, 0), poly_vert=(3, 2, 1, 0))
    level = make_map([plane], WALL)
    assert plane_faces(level, plane) == [list(level.vertices[::-1])]


@pytest.mark.parametrize('normal, flipped', [
    ((0, 32767, 0), True),
    ((0, -32767, 0), False),
])
def test_winding(normal: tuple, flipped: bool) -> None:
    """Quads facing away from the plane normal are reversed."""
    plane = make_plane(normal=normal, poly_start=0, poly_end=0)
    level = make_map([plane], WALL, [(0, 1, 2, 3)])
    # Plane normal is +Z, quad normal is -Z.
    assert plane_normal(plane) == Vec(0, 0, 1 if flipped else -1)
    assert quad_normal([world_pos(vert) for vert in level.vertices]) == Vec(0, 0, -1)
    [face] = plane_faces(level, plane)
    if flipped:
        assert face == list(level.vertices[::-1])
    else:
        assert face == list(level.vertices)
    tris = plane_geometry(level, plane)
    assert len(tris) == 6
    if flipped:
        assert [vert.position for vert in tris[:3]] == [Vec(0, 1, 0), Vec(1, 1, 0), Vec(1, 0, 0)]


def test_degenerate_quad_not_flipped() -> None:
    """A degenerate quad has no normal, so it keeps its order."""
    plane = make_plane(normal=(0, 32767, 0), poly_start=0, poly_end=0)
    level = make_map([plane], [(0, 0, 0, 0)] * 4, [(0, 1, 2, 3)])
    assert plane_faces(level, plane) == [list(level.vertices)]
    assert plane_geometry(level, plane) == []


def test_tiled_plane() -> None:
    """Quads are offset by the vertex start, and the range may be backwards."""
    plane = make_plane(normal=(0, -32767, 0), poly_start=2, poly_end=1, vertex_start=2)
    level = make_map(
        [plane],
        [(99, 99, 99, 0), (98, 98, 98, 0), *WALL],
        [(9, 9, 9, 9), (0, 1, 2, 3), (3, 3, 2, 1)],
    )
    faces = plane_faces(level, plane)
    assert faces == [
        [level.vertices[2], level.vertices[3], level.vertices[4], level.vertices[5]],
        # Wound the opposite way, so it is reversed.
        [level.vertices[3], level.vertices[4], level.vertices[5], level.vertices[5]],
    ]
    # The second face is a single triangle.
    assert len(plane_geometry(level, plane)) == 9
    # Ignoring tiles uses the direct vertices.
    assert plane_faces(level, plane, ignore_tiled=True) == [list(level.vertices[:4])]


def test_tiled_plane_corrupt() -> None:
    """Out of range quad or vertex indexes raise an error."""
    plane = make_plane(poly_start=0, poly_end=0, vertex_start=2)
    level = make_map([plane], WALL, [(0, 1, 2, 3)])
    with pytest.raises(CorruptGeometry):
        plane_faces(level, plane)
    plane = make_plane(poly_start=0, poly_end=1)
    level = make_map([plane], WALL, [(0, 1, 2, 3)])
    with pytest.raises(CorruptGeometry):
        plane_geometry(level, plane)
    plane = make_plane(poly_vert=(0, 1, 2, 4))
    with pytest.raises(CorruptGeometry):
        plane_geometry(make_map([plane], WALL), plane)


def test_plane_geometry_modes() -> None:
    """Lines are white, triangles are coloured by light level."""
    plane = make_plane(flags=PlaneFlags.WATER)
    level = make_map([plane], [(x, y, z, 8) for x, y, z, _ in UNIT_SQUARE])

    lines = plane_geometry(level, plane, DrawMode.LINES)
    assert len(lines) == 8
    assert all(vert.color == WIREFRAME_COLOR for vert in lines)
    assert lines[0].position == lines[7].position == Vec(0, 0, 0)

    tris = plane_geometry(level, plane, DrawMode.TRIANGLES)
    assert len(tris) == 6
    assert all(vert.color == (0.1, 0.2, 0.5, 0.5) for vert in tris)


def test_load_and_triangulate() -> None:
    """Load a minimal level, then produce triangles from it."""
    data = build_level(
        sectors=[pack_sector(0, 0)],
        planes=[pack_plane()],
        vertices=[pack_vertex(*vert) for vert in UNIT_SQUARE],
    )
    with Map.read(BytesIO(data)) as level:
        [plane] = level.planes
        tris = plane_geometry(level, plane)
    assert [vert.position for vert in tris] == [
        Vec(0, 0, 0), Vec(1, 0, 0), Vec(1, 0, 1),
        Vec(1, 0, 1), Vec(0, 0, 1), Vec(0, 0, 0),
    ]
    assert [vert.color for vert in tris] == [(1.0, 1.0, 1.0, 1.0)] * 6


def test_plane_center() -> None:
    """The centre is truncated towards zero."""
    plane = make_plane()
    level = make_map([plane], [(0, 0, 0, 0), (20, -25, 1, 0), (20, -25, 1, 0), (0, 0, 1, 0)])
    assert plane_center(level, plane) == (10, -12, 0)
    # Centre in world units is (1, 0, -1.2).
    assert plane_distance(level, plane, (11.0, 0.0, -1.2)) == 100
    assert plane_distance(level, plane, (1.0, 0.0, -1.2)) == 0


def test_draw_order() -> None:
    """Portals and invisible planes are skipped, water is drawn last, then far to near."""
    def square(offset: int) -> list:
        return [(x + offset, y, z, 16) for x, y, z, _ in UNIT_SQUARE]

    near = make_plane(poly_vert=(0, 1, 2, 3))
    far = make_plane(poly_vert=(4, 5, 6, 7))
    mid = make_plane(poly_vert=(8, 9, 10, 11), flags=PlaneFlags.SOLID | PlaneFlags.TOGGLE)
    near_water = make_plane(poly_vert=(0, 1, 2, 3), flags=PlaneFlags.WATER)
    far_water = make_plane(poly_vert=(4, 5, 6, 7), flags=PlaneFlags.WATER)
    portal = make_plane(poly_vert=(4, 5, 6, 7), flags=PlaneFlags.PORTAL)
    invisible = make_plane(poly_vert=(4, 5, 6, 7), flags=PlaneFlags.INVISIBLE | PlaneFlags.SOLID)
    level = make_map(
        [near_water, near, portal, far_water, mid, invisible, far],
        [*square(0), *square(1000), *square(500)],
    )
    assert draw_order(level, (0, 0, 0)) == [far, mid, near, far_water, near_water]
    assert toggle_planes(level) == [mid]


def test_sector_centroid() -> None:
    """The centroid is the average of the direct vertices of each plane."""
    planes = [
        make_plane(poly_vert=(0, 1, 2, 3)),
        make_plane(poly_vert=(4, 5, 6, 7)),
    ]
    level = Map(
        'test.lev',
        (Sector(0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0), Sector(0, 0, 0, 0, 0, 0, 2, 2, 0, 0, 0, 0)),
        tuple(planes),
        tuple(
            Vertex(x + off, y, z, 0)
            for off in [0, 20]
            for x, y, z, _ in UNIT_SQUARE
        ),
        (),
    )
    assert sector_centroid(level, level.sectors[0]) == Vec(1.5, 0, 0.5)
    with pytest.raises(CorruptGeometry):
        sector_centroid(level, level.sectors[1])
    # A sector without any planes has no centre.
    empty = Sector(0, 0, 0, 0, 0, 0, -1, -1, 0, 0, 0, 0)
    assert sector_centroid(level, empty) is None
