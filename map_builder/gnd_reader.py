"""
GND (ground) terrain decoder for Ragnarok Online maps.

GND file structure (all little-endian):
  1. Magic 'GRGN'                                   4 bytes
  2. Version: major, minor                          2 bytes (u8 each)
  3. Header
       modern (version > 0):
         width i32, height i32, tileScale f32,
         textureCount i32, textureNameLength i32 (80)
       legacy (version == 0):
         textureCount i32, width i32, height i32
  4. textureCount x (file name 40 bytes + display name 40 bytes)
  5. Lightmaps (version > 0)
       count i32, cellWidth i32, cellHeight i32, gridSizeCell i32
       count x (cellWidth*cellHeight shadow bytes
                + cellWidth*cellHeight*3 RGB bytes)
  6. surfaceCount i32, then surfaceCount x 40-byte surface records
       u1 u2 u3 u4 v1 v2 v3 v4 f32, textureIndex i16,
       lightmapIndex u16, tint B G R A u8
  7. width*height cell records, row-major
       h1 h2 h3 h4 f32, then surface indices top, front, side
       version >= 1.6: i32 each                     28 bytes
       older:          i16 each + i16 padding       24 bytes
  8. Water (version >= 1.7)
       height f32, type i32, amplitude f32, waveSpeed f32,
       wavePitch f32, animationSpeed i32

Textures, lightmaps and surfaces are recoverable: if the buffer ends inside
one of them the decoder stops and returns what it has, flagged incomplete.
The cell grid is not; a truncated grid raises TruncatedDataError.
"""

import logging
import struct
from collections import namedtuple

from .binary_reader import BinaryReader
from .errors import (BadMagicError, InvalidCountError, InvalidDimensionError,
                     TruncatedDataError)
from .format_versions import (VersionRule, VersionTable, format_version,
                              pack_version)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GND_MAGIC = b'GRGN'

DEFAULT_TILE_SCALE = 10.0
MAX_GRID_DIMENSION = 4096
MAX_TEXTURE_COUNT = 10000
MAX_LIGHTMAP_COUNT = 4000000
MAX_LIGHTMAP_CELL = 64
MAX_SURFACE_COUNT = 16000000

_TEXTURE_FIELD = 40
_DEFAULT_TEXTURE_NAME_LENGTH = 80
_DEFAULT_LIGHTMAP_CELL = 8

VERSIONS = VersionTable('GND', [
    VersionRule('legacy_header', '==', 0x0000),
    VersionRule('lightmaps', '>', 0x0000),
    VersionRule('wide_surface_indices', '>=', 0x0106),
    VersionRule('water', '>=', 0x0107),
])

_MODERN_HEADER = struct.Struct('<iifii')
_LEGACY_HEADER = struct.Struct('<iii')
_LIGHTMAP_HEADER = struct.Struct('<iiii')
_SURFACE = struct.Struct('<8fhH4B')
_CELL_WIDE = struct.Struct('<4f3i')
_CELL_LEGACY = struct.Struct('<4f3hh')
_WATER = struct.Struct('<fifffi')


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

TextureRef = namedtuple('TextureRef', ['filename', 'name'])

WaterInfo = namedtuple('WaterInfo', [
    'height', 'type', 'amplitude', 'wave_speed', 'wave_pitch',
    'animation_speed'])


class Tint(namedtuple('Tint', ['b', 'g', 'r', 'a'])):
    """Per-surface vertex colour, kept in the file's B, G, R, A order."""
    __slots__ = ()

    @property
    def rgba(self):
        return (self.r, self.g, self.b, self.a)

    def as_floats(self):
        """(r, g, b, a) scaled to 0..1"""
        return (self.r / 255.0, self.g / 255.0, self.b / 255.0,
                self.a / 255.0)


class SurfaceTile(namedtuple('SurfaceTile', [
        'u', 'v', 'texture_index', 'lightmap_index', 'color'])):
    """
    Reusable UV + texture + lightmap + tint record.

    ``u`` and ``v`` hold the four corner coordinates in BrowEdit order
    (corner 1..4 matches cell heights h1..h4).  ``texture_index`` is -1
    for an untextured face.
    """
    __slots__ = ()

    @property
    def uvs(self):
        return tuple(zip(self.u, self.v))

    @property
    def has_texture(self):
        return self.texture_index >= 0


class Cell(namedtuple('Cell', [
        'h1', 'h2', 'h3', 'h4', 'top_surface', 'east_surface',
        'south_surface'])):
    """
    One terrain cell.

    Corner heights are stored positive-down as in the file:
      h1 bottom-left   grid line (x,   y)
      h2 bottom-right  grid line (x+1, y)
      h3 top-left      grid line (x,   y+1)
      h4 top-right     grid line (x+1, y+1)

    Surface references are indices into TerrainModel.surfaces or -1.
    """
    __slots__ = ()

    @property
    def heights(self):
        return (self.h1, self.h2, self.h3, self.h4)

    @property
    def average_height(self):
        return (self.h1 + self.h2 + self.h3 + self.h4) / 4.0


class LightmapBlock(object):
    """
    Raw lightmap storage.

    Each entry is ``pixels_per_cell`` shadow bytes followed by
    ``pixels_per_cell * 3`` RGB bytes, so an entry is
    ``pixels_per_cell * 4`` bytes long.  It is NOT interleaved RGBA.
    """

    def __init__(self, count, cell_width, cell_height, grid_size, data):
        self.count = count
        self.cell_width = cell_width
        self.cell_height = cell_height
        self.grid_size = grid_size
        self.data = data

    @property
    def pixels_per_cell(self):
        return self.cell_width * self.cell_height

    @property
    def entry_size(self):
        return self.pixels_per_cell * 4

    def entry(self, index):
        """Raw bytes of lightmap ``index`` or None when out of range."""
        if index < 0 or index >= self.count:
            return None
        start = index * self.entry_size
        end = start + self.entry_size
        if end > len(self.data):
            return None
        return self.data[start:end]

    def _key(self):
        return (self.count, self.cell_width, self.cell_height,
                self.grid_size, self.data)

    def __eq__(self, other):
        return isinstance(other, LightmapBlock) and self._key() == other._key()

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "LightmapBlock(count={}, cell={}x{})".format(
            self.count, self.cell_width, self.cell_height)


class TerrainModel(object):
    """
    Decoded GND file.  Read-only by convention once returned by read_gnd.

    ``cells`` is a flat row-major tuple; use ``index(x, y)`` or
    ``cell(x, y)`` to address it.  ``complete`` is False when an optional
    section was cut short, in which case ``truncated_section`` names it and
    the cell grid is empty.
    """

    def __init__(self, version, width, height, tile_scale, textures,
                 lightmaps, surfaces, cells, water=None,
                 texture_name_length=_DEFAULT_TEXTURE_NAME_LENGTH,
                 truncated_section=None):
        self.version = version
        self.width = width
        self.height = height
        self.tile_scale = tile_scale
        self.texture_name_length = texture_name_length
        self.textures = tuple(textures)
        self.lightmaps = lightmaps
        self.surfaces = tuple(surfaces)
        self.cells = tuple(cells)
        self.water = water
        self.truncated_section = truncated_section

    @property
    def complete(self):
        return self.truncated_section is None

    @property
    def tile_count(self):
        return self.width * self.height

    def index(self, x, y):
        return y * self.width + x

    def in_bounds(self, x, y):
        return 0 <= x < self.width and 0 <= y < self.height

    def cell(self, x, y):
        """Cell at (x, y), or None outside the grid or on a partial model."""
        if not self.in_bounds(x, y):
            return None
        i = self.index(x, y)
        if i >= len(self.cells):
            return None
        return self.cells[i]

    def surface(self, index):
        if 0 <= index < len(self.surfaces):
            return self.surfaces[index]
        return None

    def texture_name(self, index):
        if 0 <= index < len(self.textures):
            return self.textures[index].filename
        return None

    def _key(self):
        return (self.version, self.width, self.height, self.tile_scale,
                self.texture_name_length, self.textures, self.lightmaps,
                self.surfaces, self.cells, self.water,
                self.truncated_section)

    def __eq__(self, other):
        return isinstance(other, TerrainModel) and self._key() == other._key()

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "TerrainModel(v{} {}x{} textures={} surfaces={}{})".format(
            format_version(self.version), self.width, self.height,
            len(self.textures), len(self.surfaces),
            '' if self.complete else
            ' truncated@{}'.format(self.truncated_section))


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _check_dimensions(width, height, offset):
    if (width <= 0 or height <= 0
            or width > MAX_GRID_DIMENSION or height > MAX_GRID_DIMENSION):
        raise InvalidDimensionError(
            'header', offset,
            "invalid grid size {}x{} (max {})".format(
                width, height, MAX_GRID_DIMENSION))


def _check_count(section, count, ceiling, offset):
    if count < 0 or count > ceiling:
        raise InvalidCountError(
            section, offset,
            "invalid {} count {} (max {})".format(section, count, ceiling))


# ---------------------------------------------------------------------------
# Section readers
# ---------------------------------------------------------------------------

def _read_textures(reader, count, textures):
    reader.section = 'textures'
    for _ in range(count):
        filename = reader.read_string(_TEXTURE_FIELD)
        name = reader.read_string(_TEXTURE_FIELD)
        textures.append(TextureRef(filename, name))


def _read_lightmaps(reader, skip_lightmaps):
    reader.section = 'lightmaps'
    offset = reader.tell()
    count, cell_w, cell_h, grid = reader.read_struct(_LIGHTMAP_HEADER)
    _check_count('lightmaps', count, MAX_LIGHTMAP_COUNT, offset)

    if cell_w <= 0 or cell_h <= 0:
        log.warning("GND lightmap cell %dx%d is invalid, assuming 8x8",
                    cell_w, cell_h)
        cell_w = cell_h = _DEFAULT_LIGHTMAP_CELL
    if grid <= 0:
        log.warning("GND lightmap grid %d is invalid, assuming 1", grid)
        grid = 1
    if cell_w > MAX_LIGHTMAP_CELL or cell_h > MAX_LIGHTMAP_CELL:
        raise InvalidDimensionError(
            'lightmaps', offset,
            "lightmap cell {}x{} exceeds {}".format(
                cell_w, cell_h, MAX_LIGHTMAP_CELL))

    size = count * cell_w * cell_h * 4
    if skip_lightmaps:
        reader.skip(size)
        log.debug("Skipped %d lightmaps (%d bytes)", count, size)
        return None

    blob = reader.read_bytes(size)
    log.debug("Read %d lightmaps of %dx%d", count, cell_w, cell_h)
    return LightmapBlock(count, cell_w, cell_h, grid, blob)


def _read_surfaces(reader, surfaces):
    reader.section = 'surfaces'
    offset = reader.tell()
    count = reader.read_i32()
    _check_count('surfaces', count, MAX_SURFACE_COUNT, offset)
    for _ in range(count):
        rec = reader.read_struct(_SURFACE)
        surfaces.append(SurfaceTile(
            u=rec[0:4],
            v=rec[4:8],
            texture_index=rec[8],
            lightmap_index=rec[9],
            color=Tint(rec[10], rec[11], rec[12], rec[13]),
        ))


def _read_cells(reader, width, height, wide, surface_count):
    reader.section = 'cells'
    fmt = _CELL_WIDE if wide else _CELL_LEGACY
    total = width * height
    needed = total * fmt.size
    if not reader.can_read(needed):
        raise TruncatedDataError('cells', reader.tell(), needed,
                                 reader.remaining)

    raw = reader.read_bytes(needed)
    cells = []
    dropped = 0
    for rec in fmt.iter_unpack(raw):
        # file order is top, front (south wall), side (east wall)
        refs = [rec[4], rec[5], rec[6]]
        for i, ref in enumerate(refs):
            if ref < -1 or ref >= surface_count:
                refs[i] = -1
                dropped += 1
        cells.append(Cell(rec[0], rec[1], rec[2], rec[3],
                          top_surface=refs[0],
                          east_surface=refs[2],
                          south_surface=refs[1]))
    if dropped:
        log.warning("GND: %d cell surface references out of range "
                    "(%d surfaces), treated as absent",
                    dropped, surface_count)
    return cells


def _read_water(reader):
    reader.section = 'water'
    try:
        return WaterInfo(*reader.read_struct(_WATER))
    except TruncatedDataError as exc:
        log.warning("GND water block truncated at 0x%X, ignoring it",
                    exc.offset)
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def is_gnd_file(data):
    """True if ``data`` starts with the GND magic."""
    return data is not None and bytes(data[:4]) == GND_MAGIC


def read_gnd(data, skip_lightmaps=False):
    """
    Decode a GND terrain file.

    Args:
        data: Complete file contents (bytes-like).
        skip_lightmaps: Skip over the lightmap blob without keeping it
            (preview decoding; ``lightmaps`` will be None).

    Returns:
        TerrainModel

    Raises:
        BadMagicError: Signature is not 'GRGN'.
        InvalidDimensionError, InvalidCountError: Corrupt header sizes.
        TruncatedDataError: Buffer ends inside the header or cell grid.
    """
    reader = BinaryReader(data)

    magic = reader.read_bytes(4)
    if magic != GND_MAGIC:
        raise BadMagicError(GND_MAGIC, magic)

    major = reader.read_u8()
    minor = reader.read_u8()
    version = pack_version(major, minor)
    features = VERSIONS.features(version)

    offset = reader.tell()
    if 'legacy_header' in features:
        texture_count, width, height = reader.read_struct(_LEGACY_HEADER)
        tile_scale = DEFAULT_TILE_SCALE
        name_length = _DEFAULT_TEXTURE_NAME_LENGTH
    else:
        width, height, tile_scale, texture_count, name_length = \
            reader.read_struct(_MODERN_HEADER)
    _check_dimensions(width, height, offset)
    _check_count('textures', texture_count, MAX_TEXTURE_COUNT, offset)

    textures = []
    surfaces = []
    lightmaps = None

    def build(cells, water=None, truncated_section=None):
        return TerrainModel(
            version, width, height, tile_scale, textures, lightmaps,
            surfaces, cells, water=water, texture_name_length=name_length,
            truncated_section=truncated_section)

    try:
        _read_textures(reader, texture_count, textures)
        if 'lightmaps' in features:
            lightmaps = _read_lightmaps(reader, skip_lightmaps)
        _read_surfaces(reader, surfaces)
    except TruncatedDataError as exc:
        log.warning("GND v%s truncated in %s at 0x%X (%s); returning "
                    "partial model without cell grid",
                    format_version(version), exc.section, exc.offset,
                    exc.detail)
        return build((), truncated_section=exc.section)

    cells = _read_cells(reader, width, height,
                        'wide_surface_indices' in features, len(surfaces))

    water = None
    if 'water' in features:
        water = _read_water(reader)

    if reader.remaining:
        log.debug("GND: %d trailing bytes not decoded", reader.remaining)

    model = build(cells, water=water)
    log.info("Read GND v%s %dx%d: %d textures, %d surfaces, %s lightmaps",
             format_version(version), width, height, len(textures),
             len(surfaces), lightmaps.count if lightmaps else 'no')
    return model
