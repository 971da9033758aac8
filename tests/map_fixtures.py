"""
In-memory GND/RSW/GAT fixtures for the test suite, plus the small
pass/fail runner every test module uses when run as a script.

Buffers are assembled with struct following the on-disk layouts, so the
tests never need game data.
"""

import os
import struct
import sys
import traceback

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def run_suite(title, tests):
    """Run (name, fn) pairs, print PASS/FAIL lines, return an exit code."""
    passed = 0
    errors = []

    print("=" * 70)
    print(title)
    print("=" * 70)
    for name, fn in tests:
        try:
            fn()
            passed += 1
            print("  PASS  {}".format(name))
        except Exception as e:
            errors.append((name, e))
            print("  FAIL  {} -- {}".format(name, e))
            traceback.print_exc()

    print("\nResults: {} passed, {} failed".format(passed, len(errors)))
    if errors:
        print("\nFailures:")
        for name, err in errors:
            print("  {} -- {}".format(name, err))
    print("=" * 70)
    return 0 if not errors else 1


def collect_tests(namespace):
    """(name, fn) for every test_* function in a module namespace."""
    return [(name[5:], fn) for name, fn in sorted(namespace.items())
            if name.startswith('test_') and callable(fn)]


# ---------------------------------------------------------------------------
# Primitive encoders
# ---------------------------------------------------------------------------

def fixed(text, size):
    """NUL-padded fixed-width name field."""
    raw = text.encode('cp949') if isinstance(text, str) else text
    return raw[:size].ljust(size, b'\x00')


def vec3(v):
    return struct.pack('<3f', *v)


# ---------------------------------------------------------------------------
# GND
# ---------------------------------------------------------------------------

FULL_UV = ((0.0, 1.0, 0.0, 1.0), (0.0, 0.0, 1.0, 1.0))
WHITE_BGRA = (255, 255, 255, 255)
DEFAULT_WATER = (0.0, 0, 1.0, 2.0, 50.0, 3)


def make_surface(texture_index=0, lightmap_index=0, tint_bgra=WHITE_BGRA,
                 uv=FULL_UV):
    return (uv[0], uv[1], texture_index, lightmap_index, tint_bgra)


def make_cell(heights=(0.0, 0.0, 0.0, 0.0), top=0, east=-1, south=-1):
    return (heights, top, east, south)


def lightmap_entry(shadow, rgb, cell_w=8, cell_h=8):
    """One lightmap entry: shadow plane then RGB plane."""
    pixels = cell_w * cell_h
    if isinstance(shadow, int):
        shadow = [shadow] * pixels
    if isinstance(rgb, tuple):
        rgb = [rgb] * pixels
    out = bytearray(shadow)
    for r, g, b in rgb:
        out.extend((r, g, b))
    return bytes(out)


def _encode_surface(s):
    (u, v, tex, lm, tint) = s
    return struct.pack('<8fhH4B', *(tuple(u) + tuple(v) + (tex, lm)
                                   + tuple(tint)))


def _encode_cell(c, wide):
    heights, top, east, south = c
    h = struct.pack('<4f', *heights)
    # file order: top, front (south wall), side (east wall)
    if wide:
        return h + struct.pack('<3i', top, south, east)
    return h + struct.pack('<3hh', top, south, east, 0)


def build_gnd(version=0x0107, width=1, height=1, tile_scale=10.0,
              textures=(), lightmap=(0, 8, 8, 1, b''), surfaces=None,
              cells=None, water=DEFAULT_WATER, texture_name_length=80,
              magic=b'GRGN'):
    """
    Assemble a GND buffer.

    ``lightmap`` is (count, cell_w, cell_h, grid, blob); ``water`` None
    omits the water block even for versions that carry one.
    """
    if surfaces is None:
        surfaces = [make_surface()]
    if cells is None:
        cells = [make_cell() for _ in range(width * height)]

    out = bytearray(magic)
    out.extend((version >> 8, version & 0xFF))
    if version == 0:
        out += struct.pack('<iii', len(textures), width, height)
    else:
        out += struct.pack('<iifii', width, height, tile_scale,
                           len(textures), texture_name_length)
    for filename, name in textures:
        out += fixed(filename, 40) + fixed(name, 40)
    if version > 0:
        count, cw, ch, grid, blob = lightmap
        out += struct.pack('<iiii', count, cw, ch, grid)
        out += blob
    out += struct.pack('<i', len(surfaces))
    for s in surfaces:
        out += _encode_surface(s)
    wide = version >= 0x0106
    for c in cells:
        out += _encode_cell(c, wide)
    if version >= 0x0107 and water is not None:
        out += struct.pack('<fifffi', *water)
    return bytes(out)


def minimal_gnd():
    """1x1 terrain, one white textured surface on a flat cell at height 0."""
    return build_gnd()


def gnd_offsets(version=0x0107, texture_count=0, lightmap_bytes=0,
                surface_count=1):
    """Byte offsets of the sections of a build_gnd() buffer."""
    header = 6 + (12 if version == 0 else 20)
    textures = header
    lightmaps = textures + texture_count * 80
    surfaces = lightmaps + (16 + lightmap_bytes if version > 0 else 0)
    cells = surfaces + 4 + surface_count * 40
    return {'textures': textures, 'lightmaps': lightmaps,
            'surfaces': surfaces, 'cells': cells}


# ---------------------------------------------------------------------------
# RSW
# ---------------------------------------------------------------------------

def model_record(version, build=None, name='tree', filename='tree01.rsm',
                 node_name='', position=(1.0, 2.0, 3.0),
                 rotation=(0.0, 90.0, 0.0), scale=(1.0, 1.0, 1.0),
                 animation=(0, 1.0, 0), reserved=7):
    out = struct.pack('<i', 1) + fixed(name, 40)
    if version >= 0x0103:
        out += struct.pack('<ifi', *animation)
    if version >= 0x0206 and build is not None and build > 161:
        out += struct.pack('<B', reserved)
    out += fixed(filename, 80) + fixed(node_name, 80)
    out += vec3(position) + vec3(rotation) + vec3(scale)
    return out


def light_record(name='lamp', position=(0.0, -10.0, 0.0),
                 reserved=tuple(float(i) for i in range(10)),
                 color=(1.0, 0.5, 0.25), light_range=40.0):
    return (struct.pack('<i', 2) + fixed(name, 40) + vec3(position)
            + struct.pack('<10f', *reserved) + vec3(color)
            + struct.pack('<f', light_range))


def sound_record(name='birds', wave_file='birds.wav',
                 position=(5.0, 0.0, -5.0), volume=0.75, width=10,
                 height=12, sound_range=100.0):
    return (struct.pack('<i', 3) + fixed(name, 80) + fixed(wave_file, 80)
            + struct.pack('<2f', 0.5, 0.25)
            + vec3((0.0, 0.0, 0.0)) + vec3((1.0, 1.0, 1.0))
            + b'\x01\x02\x03\x04\x05\x06\x07\x08'
            + vec3(position)
            + struct.pack('<fiif', volume, width, height, sound_range))


def effect_record(name='torch', position=(0.0, 0.0, 0.0), effect_id=47,
                  emit_speed=1.5, params=(1.0, 2.0, 3.0, 4.0, 5.0)):
    return (struct.pack('<i', 4) + fixed(name, 80) + vec3(position)
            + struct.pack('<if', effect_id, emit_speed)
            + struct.pack('<5f', *params))


def rsw_header(version=0x0206, build=162, opaque=0x1234, gnd='test.gnd',
               gat='test.gat', water=(1.5, 2, 1.0, 2.0, 50.0, 3),
               lighting=(45, 60, (1.0, 1.0, 1.0), (0.25, 0.25, 0.25), 0.5),
               bbox=(-100, 100, 100, -100)):
    out = bytearray(b'GRSW')
    out.extend((version >> 8, version & 0xFF))
    if version >= 0x0202:
        out += struct.pack('<B', build)
    if version >= 0x0205:
        out += struct.pack('<i', opaque)
    out += fixed('test.ini', 40) + fixed(gnd, 40)
    if version > 0x0104:
        out += fixed(gat, 40)
    out += fixed('source.ini', 40)
    if version < 0x0206:
        out += struct.pack('<f', water[0])
        if version >= 0x0108:
            out += struct.pack('<ifff', *water[1:5])
        if version >= 0x0109:
            out += struct.pack('<i', water[5])
    if version >= 0x0105:
        lon, lat, diffuse, ambient, shadow = lighting
        out += struct.pack('<ii', lon, lat) + vec3(diffuse) + vec3(ambient)
        if version >= 0x0107:
            out += struct.pack('<f', shadow)
    if version >= 0x0106:
        out += struct.pack('<4i', *bbox)
    return bytes(out)


def build_rsw(objects=(), version=0x0206, build=162, object_count=None,
              **header):
    if object_count is None:
        object_count = len(objects)
    return (rsw_header(version=version, build=build, **header)
            + struct.pack('<i', object_count) + b''.join(objects))


# ---------------------------------------------------------------------------
# GAT
# ---------------------------------------------------------------------------

def build_gat(width=2, height=2, cells=None, major=1, minor=2):
    if cells is None:
        cells = [(0.0, 0.0, 0.0, 0.0, 0)] * (width * height)
    out = bytearray(b'GRAT')
    out.extend((major, minor))
    out += struct.pack('<ii', width, height)
    for h1, h2, h3, h4, cell_type in cells:
        out += struct.pack('<4fi', h1, h2, h3, h4, cell_type)
    return bytes(out)


def png_bytes(size=(4, 4), color=(255, 255, 255, 255)):
    """A small solid PNG, for texture lookups."""
    import io
    from PIL import Image
    buf = io.BytesIO()
    Image.new('RGBA', size, color).save(buf, format='PNG')
    return buf.getvalue()
