"""Convert planes in a loaded map into vertices ready for rendering.

All the functions here are pure, so they can be used from multiple threads as long as the
map isn't closed at the same time. Positions are converted to a Y-up coordinate system,
and scaled down by :py:data:`~powerslave.const.COORD_SCALE`.
"""
from typing import Final, List, Optional, Sequence, Tuple
from enum import Enum

import attrs

from powerslave.const import COORD_SCALE, MAX_LIGHT, NORMAL_SCALE, PlaneFlags
from powerslave.level import Map, Plane, Sector, Vertex
from powerslave.math import AnyVec, Vec


__all__ = [
    'Color', 'DrawMode', 'RenderVertex', 'WIREFRAME_COLOR',
    'world_pos', 'plane_normal', 'quad_normal', 'vertex_color',
    'triangulate', 'wireframe', 'plane_faces', 'plane_geometry',
    'plane_center', 'plane_distance', 'draw_order', 'toggle_planes', 'sector_centroid',
]

Color = Tuple[float, float, float, float]
WIREFRAME_COLOR: Final[Color] = (1.0, 1.0, 1.0, 1.0)
# Points closer than this are treated as identical when computing normals.
NORMAL_EPSILON: Final = 0.01


class DrawMode(Enum):
    """How faces are converted into vertices."""
    TRIANGLES = 'triangles'  #: A triangle list, with degenerate triangles removed.
    LINES = 'lines'  #: A line list of each edge, for wireframes.


@attrs.frozen
class RenderVertex:
    """A vertex to pass to the renderer."""
    position: Vec
    color: Color


def world_pos(vertex: Vertex) -> Vec:
    """Convert a vertex into a scaled, Y-up position."""
    return Vec(vertex.x / COORD_SCALE, vertex.z / COORD_SCALE, vertex.y / COORD_SCALE)


def plane_normal(plane: Plane) -> Vec:
    """Decode the fixed-point normal of a plane, swapping to Y-up."""
    norm = plane.normal
    return Vec(norm.x / NORMAL_SCALE, norm.z / NORMAL_SCALE, norm.y / NORMAL_SCALE)


def quad_normal(points: Sequence[AnyVec]) -> Vec:
    """Compute the normal of a polygon from its winding order.

    This picks the first three points which are distinct from each other. If there are not
    three of those, the polygon is degenerate and the zero vector is returned.
    """
    if not points:
        return Vec()
    origin = Vec(*points[0])
    second: Optional[Vec] = None
    for point in points:
        if (Vec(*point) - origin).mag() > NORMAL_EPSILON:
            second = Vec(*point)
            break
    else:
        return Vec()
    for point in points:
        if (
            (Vec(*point) - origin).mag() > NORMAL_EPSILON
            and (Vec(*point) - second).mag() > NORMAL_EPSILON
        ):
            third = Vec(*point)
            break
    else:
        return Vec()
    return Vec.cross(third - origin, second - origin).norm()


def vertex_color(flags: PlaneFlags, light: int) -> Color:
    """Compute the colour of a vertex, from its light level and the flags of its plane."""
    brightness = min(light, MAX_LIGHT) / float(MAX_LIGHT)
    if PlaneFlags.WATER in flags:
        return (brightness * 0.2, brightness * 0.4, brightness * 1.0, 0.5)
    elif PlaneFlags.LAVA in flags:
        return (0.7, 0.2, 0.2, 1.0)
    elif PlaneFlags.SKY in flags:
        return (0.0, 0.3, 1.0, 1.0)
    elif PlaneFlags.BREAKABLE in flags:
        return (brightness, brightness, brightness * 0.2, 1.0)
    else:
        return (brightness, brightness, brightness, 1.0)


def triangulate(face: Sequence[Vertex]) -> List[Vertex]:
    """Split a quad into two triangles, returned as a flat list.

    If two corners of a triangle are in the same position it's dropped, since many
    quads are really triangles.
    """
    if len(face) != 4:
        raise ValueError(f'Can only triangulate quads, not {len(face)} vertices!')
    result: List[Vertex] = []
    for tri in [(face[0], face[1], face[2]), (face[2], face[3], face[0])]:
        if len({vert.coords for vert in tri}) == 3:
            result.extend(tri)
    return result


def wireframe(face: Sequence[Vertex]) -> List[Vertex]:
    """Produce each edge of the face as a pair of vertices, for a line list."""
    count = len(face)
    result: List[Vertex] = []
    for i, vert in enumerate(face):
        result.append(vert)
        result.append(face[(i + 1) % count])
    return result


def plane_faces(level: Map, plane: Plane, ignore_tiled: bool = False) -> List[List[Vertex]]:
    """Find the vertices for each face in a plane.

    Untiled planes (or all planes if ``ignore_tiled`` is set) produce their own 4 vertices.
    Otherwise, each quad in the plane's range is produced, reversed if it faces away from the
    plane's normal.

    :raises CorruptGeometry: If any index is out of range.
    """
    if ignore_tiled or not plane.is_tiled:
        return [[level.vertex(ind) for ind in plane.poly_vert]]

    normal = plane_normal(plane)
    faces = []
    for quad in level.plane_quads(plane):
        face = [level.vertex(plane.vertex_start + ind) for ind in quad.indices]
        geo_normal = quad_normal([(vert.x, vert.z, vert.y) for vert in face])
        if normal.dot(geo_normal) < 0.0:
            # Rotated incorrectly, might be used to flip the texture.
            face.reverse()
        faces.append(face)
    return faces


def plane_geometry(
    level: Map,
    plane: Plane,
    mode: DrawMode = DrawMode.TRIANGLES,
    ignore_tiled: bool = False,
) -> List[RenderVertex]:
    """Produce the vertices required to draw a plane, in order.

    In triangle mode this is a triangle list, coloured by the light level. In line mode
    this is a list of white lines.
    """
    result: List[RenderVertex] = []
    for face in plane_faces(level, plane, ignore_tiled):
        if mode is DrawMode.LINES:
            result += [
                RenderVertex(world_pos(vert), WIREFRAME_COLOR)
                for vert in wireframe(face)
            ]
        else:
            result += [
                RenderVertex(world_pos(vert), vertex_color(plane.flags, vert.light))
                for vert in triangulate(face)
            ]
    return result


def plane_center(level: Map, plane: Plane) -> Tuple[int, int, int]:
    """Compute the centre of the plane's own vertices, in integer level coordinates."""
    verts = [level.vertex(ind) for ind in plane.poly_vert]
    count = len(verts)
    # Truncate towards zero.
    return (
        int(sum(vert.x for vert in verts) / count),
        int(sum(vert.y for vert in verts) / count),
        int(sum(vert.z for vert in verts) / count),
    )


def plane_distance(level: Map, plane: Plane, viewer: AnyVec) -> int:
    """Compute the squared distance from the viewer (in world space) to the plane's centre."""
    x, y, z = plane_center(level, plane)
    return int(
        (viewer[0] - x / COORD_SCALE) ** 2
        + (viewer[1] - z / COORD_SCALE) ** 2
        + (viewer[2] - y / COORD_SCALE) ** 2
    )


def draw_order(level: Map, viewer: AnyVec) -> List[Plane]:
    """Sort the visible planes into the order they should be drawn.

    Portals and invisible planes are skipped. Solid planes are drawn first, then water so it
    blends correctly. Within each, the furthest planes are drawn first.
    """
    return sorted(
        [
            plane for plane in level.planes
            if not plane.flags & (PlaneFlags.PORTAL | PlaneFlags.INVISIBLE)
        ],
        key=lambda plane: (
            PlaneFlags.WATER in plane.flags,
            -plane_distance(level, plane, viewer),
        ),
    )


def toggle_planes(level: Map) -> List[Plane]:
    """Find the planes which should be overlaid as wireframes.

    These are mostly the edges of triggers, and are missing light levels.
    """
    return [plane for plane in level.planes if PlaneFlags.TOGGLE in plane.flags]


def sector_centroid(level: Map, sector: Sector) -> Optional[Vec]:
    """Compute the average position of the vertices of a sector's planes.

    This is a good starting position for a camera. If the sector has no planes (a negative
    face range), this returns None.
    """
    points = [
        world_pos(level.vertex(ind))
        for plane in level.sector_planes(sector)
        for ind in plane.poly_vert
    ]
    if not points:
        return None
    total = Vec()
    for point in points:
        total += point
    return total / len(points)
