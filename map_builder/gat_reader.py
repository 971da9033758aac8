"""
GAT (ground altitude) walkability grid reader and writer.

GAT file structure (all little-endian):
  1. Magic 'GRAT'                                   4 bytes
  2. Version: major, minor                          2 bytes (u8 each)
  3. width i32, height i32                          8 bytes
  4. width*height cell records, row-major          20 bytes each
       h1 h2 h3 h4 f32   corner heights (SW, SE, NW, NE), positive-down
       type i32          0 walkable, 1 blocked, 2 water, 3 cliff, ...

A GAT cell is half a GND tile, so the grid is twice as wide and high as
the matching ground grid.

Cells are kept as a numpy structured array built straight from the file
bytes; write_gat() emits the same bytes back, including any float bit
patterns (NaN payloads) that a float round trip would not preserve, and
any bytes that follow the grid.
"""

import logging
import struct
from collections import namedtuple

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for gat_reader. "
        "Install it with: pip install numpy"
    )

from .binary_reader import BinaryReader
from .coordinates import grid_to_world
from .errors import BadMagicError, InvalidDimensionError, TruncatedDataError
from .format_versions import format_version, pack_version

log = logging.getLogger(__name__)


GAT_MAGIC = b'GRAT'

MAX_GRID_DIMENSION = 4096
DEFAULT_CELL_SIZE = 5.0

CELL_WALKABLE = 0
CELL_BLOCKED = 1
CELL_WATER = 2
CELL_CLIFF = 3

CELL_TYPE_NAMES = {
    CELL_WALKABLE: 'walkable',
    CELL_BLOCKED: 'blocked',
    CELL_WATER: 'water',
    CELL_CLIFF: 'cliff',
}

CELL_DTYPE = np.dtype([('heights', '<f4', (4,)), ('type', '<i4')])

_HEADER = struct.Struct('<4sBBii')


WalkCell = namedtuple('WalkCell', ['h1', 'h2', 'h3', 'h4', 'type'])

OverlayBatch = namedtuple('OverlayBatch', ['cell_type', 'positions',
                                           'indices'])


class WalkabilityModel(object):
    """
    Decoded GAT file with row-major ``cells`` (structured ndarray).

    ``trailing`` holds any bytes after the cell grid so write_gat() can
    reproduce the input exactly.
    """

    def __init__(self, version_major, version_minor, width, height, cells,
                 trailing=b''):
        self.version_major = version_major
        self.version_minor = version_minor
        self.width = width
        self.height = height
        self.cells = cells
        self.trailing = trailing

    @property
    def version(self):
        return pack_version(self.version_major, self.version_minor)

    def index(self, x, y):
        return y * self.width + x

    def cell(self, x, y):
        if not (0 <= x < self.width and 0 <= y < self.height):
            return None
        rec = self.cells[self.index(x, y)]
        h = rec['heights']
        return WalkCell(float(h[0]), float(h[1]), float(h[2]), float(h[3]),
                        int(rec['type']))

    def type_counts(self):
        """{cell type: number of cells}"""
        types, counts = np.unique(self.cells['type'], return_counts=True)
        return dict((int(t), int(c)) for t, c in zip(types, counts))

    def __eq__(self, other):
        return (isinstance(other, WalkabilityModel)
                and self.version == other.version
                and self.width == other.width
                and self.height == other.height
                and self.cells.tobytes() == other.cells.tobytes()
                and self.trailing == other.trailing)

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "WalkabilityModel(v{} {}x{})".format(
            format_version(self.version), self.width, self.height)


def is_gat_file(data):
    """True if ``data`` starts with the GAT magic."""
    return data is not None and bytes(data[:4]) == GAT_MAGIC


def read_gat(data):
    """
    Decode a GAT file.

    Raises:
        BadMagicError: Signature is not 'GRAT'.
        InvalidDimensionError: Width/height non-positive or above 4096.
        TruncatedDataError: Fewer than width*height cell records.
    """
    reader = BinaryReader(data)
    magic = reader.read_bytes(4)
    if magic != GAT_MAGIC:
        raise BadMagicError(GAT_MAGIC, magic)

    major = reader.read_u8()
    minor = reader.read_u8()
    offset = reader.tell()
    width = reader.read_i32()
    height = reader.read_i32()
    if (width <= 0 or height <= 0
            or width > MAX_GRID_DIMENSION or height > MAX_GRID_DIMENSION):
        raise InvalidDimensionError(
            'header', offset,
            "invalid GAT size {}x{} (max {})".format(
                width, height, MAX_GRID_DIMENSION))

    reader.section = 'cells'
    count = width * height
    needed = count * CELL_DTYPE.itemsize
    if not reader.can_read(needed):
        raise TruncatedDataError('cells', reader.tell(), needed,
                                 reader.remaining)
    cells = np.frombuffer(reader.read_bytes(needed), dtype=CELL_DTYPE).copy()

    trailing = reader.read_bytes(reader.remaining)
    if trailing:
        log.debug("GAT: %d trailing bytes kept verbatim", len(trailing))

    model = WalkabilityModel(major, minor, width, height, cells, trailing)
    log.info("Read GAT v%s %dx%d", format_version(model.version),
             width, height)
    return model


def write_gat(model):
    """Encode ``model`` back to GAT bytes."""
    if len(model.cells) != model.width * model.height:
        raise ValueError("GAT cell count {} does not match {}x{}".format(
            len(model.cells), model.width, model.height))
    header = _HEADER.pack(GAT_MAGIC, model.version_major,
                          model.version_minor, model.width, model.height)
    cells = np.ascontiguousarray(model.cells, dtype=CELL_DTYPE)
    return header + cells.tobytes() + bytes(model.trailing)


def build_walkability_overlay(model, cell_size=DEFAULT_CELL_SIZE):
    """
    Build flat overlay quads, one per cell, grouped by cell type.

    Each quad sits at the cell's average corner height so the overlay can
    be drawn over the terrain.  Returns {cell_type: OverlayBatch} with
    float32 positions (4 per cell) and uint32 triangle indices.
    """
    heights = model.cells['heights'].astype(np.float64)
    avg = heights.mean(axis=1)
    types = model.cells['type']

    ys, xs = np.divmod(np.arange(model.width * model.height), model.width)
    batches = {}
    for cell_type in np.unique(types):
        sel = np.nonzero(types == cell_type)[0]
        n = len(sel)
        positions = np.empty((n, 4, 3), dtype=np.float32)
        for corner, (dx, dy) in enumerate(((0, 0), (1, 0), (0, 1), (1, 1))):
            wx, wy, wz = grid_to_world(xs[sel] + dx, avg[sel], ys[sel] + dy,
                                       model.height, cell_size)
            positions[:, corner, 0] = wx
            positions[:, corner, 1] = wy
            positions[:, corner, 2] = wz
        base = (np.arange(n, dtype=np.uint32) * 4)[:, None]
        indices = (base + np.array([0, 1, 3, 0, 3, 2], dtype=np.uint32))
        batches[int(cell_type)] = OverlayBatch(
            int(cell_type), positions.reshape(-1, 3), indices.reshape(-1))
    log.debug("Walkability overlay: %d cells in %d batches",
              len(types), len(batches))
    return batches
