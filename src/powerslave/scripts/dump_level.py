"""Print information about a PowerSlave level, and optionally export the sky."""
from typing import List, Optional
import argparse
import sys

from powerslave import geometry
from powerslave.level import MAX_RECORDS, Map
from powerslave.logger import init_logging


def describe_planes(level: Map) -> None:
    """Print a line for each plane."""
    for i, plane in enumerate(level.planes):
        tris = len(geometry.plane_geometry(level, plane)) // 3
        kind = f'quads {plane.quad_range.start}-{plane.quad_range.stop - 1}' if plane.is_tiled else 'direct'
        print(f'  Plane {i}: {plane.flags!r}, {kind}, {tris} triangles')


def describe_sectors(level: Map) -> None:
    """Print a line for each sector."""
    for i, sector in enumerate(level.sectors):
        centre = geometry.sector_centroid(level, sector)
        print(
            f'  Sector {i}: planes {sector.face_start}-{sector.face_end}, '
            f'floor={sector.floor_height}, ceiling={sector.ceiling_height}, centre=({centre})'
        )


def main(args: Optional[List[str]] = None) -> None:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "level",
        help="The .LEV file to read.",
    )
    parser.add_argument(
        "--sky",
        help="Save the sky image to this file. Requires Pillow.",
        metavar='image',
    )
    parser.add_argument(
        "--planes",
        help="List every plane.",
        action='store_true',
    )
    parser.add_argument(
        "--sectors",
        help="List every sector.",
        action='store_true',
    )
    parser.add_argument(
        "--max-records",
        help="Refuse to load levels with more than this many of any record.",
        type=int,
        default=MAX_RECORDS,
    )
    parser.add_argument(
        "--log",
        help="Also write logs to this file.",
        metavar='file',
    )
    result = parser.parse_args(args)

    log = init_logging(result.log, 'dump_level')
    log.debug('Arguments: {}', result)

    with Map.load(result.level, max_records=result.max_records) as level:
        print(f'{level.filename}:')
        print(f'  {len(level.sectors)} sectors')
        print(f'  {len(level.planes)} planes')
        print(f'  {len(level.vertices)} vertices')
        print(f'  {len(level.quads)} quads')
        if result.sectors:
            describe_sectors(level)
        if result.planes:
            describe_planes(level)
        if result.sky and level.sky is not None:
            level.sky.to_PIL().save(result.sky)
            print(f'Saved sky to {result.sky}')


if __name__ == '__main__':
    main(sys.argv[1:])
