#!/usr/bin/env python
"""
Ragnarok Online map converter: GND/RSW/GAT -> JSON, GND -> glTF binary.

Dumps decoded map files as human-readable JSON, or rebuilds the terrain
mesh (walls, batching, baked lightmaps) and writes it as a .glb file.

Usage:
  python map_converter.py gnd2json <input.gnd> [-o output.json] [--cells]
  python map_converter.py rsw2json <input.rsw> [-o output.json]
  python map_converter.py gat2json <input.gat> [-o output.json] [--cells]
  python map_converter.py gnd2glb <input.gnd> [-o output.glb]
                          [--data-root <client data folder>] [--workers N]
"""

import argparse
import json
import logging
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from map_builder import convert_gnd_to_glb, folder_lookup
from map_builder.errors import MapFormatError, UnknownObjectTypeError
from map_builder.format_versions import format_version
from map_builder.gat_reader import CELL_TYPE_NAMES, read_gat
from map_builder.gnd_reader import read_gnd
from map_builder.rsw_reader import read_rsw

log = logging.getLogger('map_converter')


# ===================================================================
# JSON conversion
# ===================================================================

def _vec(v):
    return [float(c) for c in v]


def gnd_to_json(data, include_cells=False):
    """Convert GND bytes to a JSON-serialisable dict."""
    model = read_gnd(data)
    out = {
        'version': format_version(model.version),
        'width': model.width,
        'height': model.height,
        'tile_scale': model.tile_scale,
        'complete': model.complete,
        'truncated_section': model.truncated_section,
        'textures': [{'file': t.filename, 'name': t.name}
                     for t in model.textures],
        'lightmaps': None,
        'surfaces': [{
            'u': _vec(s.u),
            'v': _vec(s.v),
            'texture_index': s.texture_index,
            'lightmap_index': s.lightmap_index,
            'color_bgra': list(s.color),
        } for s in model.surfaces],
        'water': model.water._asdict() if model.water else None,
    }
    if model.lightmaps is not None:
        lm = model.lightmaps
        out['lightmaps'] = {'count': lm.count, 'cell_width': lm.cell_width,
                            'cell_height': lm.cell_height,
                            'grid_size': lm.grid_size}
    if include_cells:
        out['cells'] = [{
            'heights': _vec(c.heights),
            'top': c.top_surface,
            'east': c.east_surface,
            'south': c.south_surface,
        } for c in model.cells]
    return out


def _object_to_json(obj):
    d = {'type': type(obj).__name__}
    for field, value in obj._asdict().items():
        if isinstance(value, bytes):
            value = value.hex()
        elif isinstance(value, tuple):
            value = _vec(value)
        d[field] = value
    return d


def rsw_to_json(data):
    """Convert RSW bytes to a JSON-serialisable dict.

    An unknown object type still produces output for the objects decoded
    before it, with the error recorded under '_error'.
    """
    error = None
    try:
        scene = read_rsw(data)
    except UnknownObjectTypeError as exc:
        scene = exc.partial
        error = str(exc)

    out = {
        'version': format_version(scene.version),
        'build_number': scene.build_number,
        'opaque_int': scene.opaque_int,
        'ini_file': scene.ini_file,
        'gnd_file': scene.gnd_file,
        'gat_file': scene.gat_file,
        'source_file': scene.source_file,
        'water': scene.water._asdict() if scene.water else None,
        'lighting': None,
        'bounding_box': (scene.bounding_box._asdict()
                         if scene.bounding_box else None),
        'object_count': scene.object_count,
        'objects': [_object_to_json(o) for o in scene.objects],
    }
    if scene.lighting is not None:
        light = scene.lighting
        out['lighting'] = {
            'longitude': light.longitude,
            'latitude': light.latitude,
            'diffuse': _vec(light.diffuse),
            'ambient': _vec(light.ambient),
            'shadow_opacity': light.shadow_opacity,
        }
    if error:
        out['_error'] = error
    return out


def gat_to_json(data, include_cells=False):
    """Convert GAT bytes to a JSON-serialisable dict."""
    model = read_gat(data)
    counts = model.type_counts()
    out = {
        'version': format_version(model.version),
        'width': model.width,
        'height': model.height,
        'type_counts': dict(
            (CELL_TYPE_NAMES.get(t, str(t)), n) for t, n in counts.items()),
    }
    if include_cells:
        out['cells'] = [[float(h) for h in rec['heights']] + [int(rec['type'])]
                        for rec in model.cells]
    return out


def _write_json(obj, output):
    with open(output, 'w', encoding='utf-8') as jf:
        json.dump(obj, jf, indent=2, ensure_ascii=False)


def _read_file(path):
    with open(path, 'rb') as f:
        return f.read()


# ===================================================================
# CLI
# ===================================================================

def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Ragnarok Online GND/RSW/GAT map converter')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging')
    subparsers = parser.add_subparsers(dest='command')

    # -- gnd2json -------------------------------------------------------
    p_g2j = subparsers.add_parser('gnd2json', help='Convert GND to JSON')
    p_g2j.add_argument('input', help='Input .gnd file')
    p_g2j.add_argument('-o', '--output', help='Output .json file')
    p_g2j.add_argument('--cells', action='store_true',
                       help='Include the full cell grid')

    # -- rsw2json -------------------------------------------------------
    p_r2j = subparsers.add_parser('rsw2json', help='Convert RSW to JSON')
    p_r2j.add_argument('input', help='Input .rsw file')
    p_r2j.add_argument('-o', '--output', help='Output .json file')

    # -- gat2json -------------------------------------------------------
    p_a2j = subparsers.add_parser('gat2json', help='Convert GAT to JSON')
    p_a2j.add_argument('input', help='Input .gat file')
    p_a2j.add_argument('-o', '--output', help='Output .json file')
    p_a2j.add_argument('--cells', action='store_true',
                       help='Include the full cell grid')

    # -- gnd2glb --------------------------------------------------------
    p_glb = subparsers.add_parser('gnd2glb',
                                  help='Build terrain mesh and write .glb')
    p_glb.add_argument('input', help='Input .gnd file')
    p_glb.add_argument('-o', '--output', help='Output .glb file')
    p_glb.add_argument('--data-root',
                       help='Extracted client folder holding data/texture')
    p_glb.add_argument('--workers', type=int, default=None,
                       help='Bake worker threads (default: CPU count)')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s')

    try:
        if args.command in ('gnd2json', 'rsw2json', 'gat2json'):
            data = _read_file(args.input)
            output = args.output or os.path.splitext(args.input)[0] + '.json'
            if args.command == 'gnd2json':
                obj = gnd_to_json(data, include_cells=args.cells)
                summary = "{}x{}, {} surfaces".format(
                    obj['width'], obj['height'], len(obj['surfaces']))
            elif args.command == 'rsw2json':
                obj = rsw_to_json(data)
                summary = "{} objects".format(len(obj['objects']))
                if '_error' in obj:
                    print("WARNING: {}".format(obj['_error']))
            else:
                obj = gat_to_json(data, include_cells=args.cells)
                summary = "{}x{}".format(obj['width'], obj['height'])
            _write_json(obj, output)
            print("{} -> {} ({})".format(args.input, output, summary))

        elif args.command == 'gnd2glb':
            data = _read_file(args.input)
            output = args.output or os.path.splitext(args.input)[0] + '.glb'
            lookup = folder_lookup(args.data_root) if args.data_root else None
            mesh = convert_gnd_to_glb(data, output, lookup=lookup,
                                      workers=args.workers)
            print("{} -> {} ({} batches, {} triangles, {} walls)".format(
                args.input, output, len(mesh.batches), mesh.triangle_count,
                mesh.wall_faces))

        else:
            parser.print_help()
            return 1
    except MapFormatError as exc:
        print("ERROR {}: {}".format(args.input, exc))
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
