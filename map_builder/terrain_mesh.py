"""
Terrain mesh builder.

Turns a TerrainModel into draw batches of indexed triangles.  Every cell
may emit up to three quads:

  top    the cell surface, corners h1..h4
  east   vertical wall on grid line x+1, from this cell's h2/h4 down (or
         up) to the east neighbour's h1/h3
  south  vertical wall on grid line y+1, from this cell's h3/h4 to the
         south neighbour's h1/h2

Walls close the cracks left by independent per-cell corner heights.  A wall
on the map edge has no neighbour and is not emitted.

Quads are grouped by BatchKey (texture index, lightmap index, tint): faces
sharing a key share one draw call and one baked texture.  Within a quad the
vertex order is [edge start, edge end, opposite start, opposite end], UV
corners 1..4 follow that order, and the triangles are (0, 1, 3), (0, 3, 2).
"""

import logging
from collections import namedtuple

from .coordinates import grid_to_world, terrain_bounds
from .errors import BuildCancelled

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for terrain_mesh. "
        "Install it with: pip install numpy"
    )


FACE_TOP = 'top'
FACE_EAST = 'east'
FACE_SOUTH = 'south'

_QUAD_INDICES = (0, 1, 3, 0, 3, 2)
_UP = (0.0, 1.0, 0.0)


BatchKey = namedtuple('BatchKey', ['texture_index', 'lightmap_index', 'tint'])

QuadSource = namedtuple('QuadSource', ['x', 'y', 'kind'])


class TerrainBatch(object):
    """
    All faces sharing one BatchKey.

    Geometry arrays (filled by build_terrain_mesh):
      positions  float32 (N, 3)
      uvs        float32 (N, 2)
      normals    float32 (N, 3), flat per quad
      colors     float32 (N, 4), surface tint as RGBA 0..1
      indices    uint32  (M,)

    ``texture`` (a PIL RGBA image) and ``use_fallback`` are set by the
    lightmap baker; ``sources`` records which cell and face kind produced
    each quad.
    """

    def __init__(self, key):
        self.key = key
        self.sources = []
        self.positions = None
        self.uvs = None
        self.normals = None
        self.colors = None
        self.indices = None
        self.texture = None
        self.use_fallback = False
        self._corners = []
        self._uvs = []

    def add_quad(self, corners, surface, source):
        self._corners.append(corners)
        self._uvs.append(surface.uvs)
        self.sources.append(source)

    @property
    def quad_count(self):
        return len(self.sources)

    @property
    def triangle_count(self):
        return self.quad_count * 2

    @property
    def vertex_count(self):
        return self.quad_count * 4

    def finalize(self):
        """Convert the collected quads to numpy buffers."""
        n = len(self._corners)
        quads = np.array(self._corners, dtype=np.float64).reshape(n, 4, 3)
        self.positions = quads.reshape(-1, 3).astype(np.float32)
        self.uvs = np.array(self._uvs, dtype=np.float32).reshape(-1, 2)
        self.normals = np.repeat(_quad_normals(quads), 4, axis=0)

        tint = self.key.tint
        self.colors = np.tile(np.array(tint.as_floats(), dtype=np.float32),
                              (n * 4, 1))

        base = (np.arange(n, dtype=np.uint32) * 4)[:, None]
        self.indices = (base + np.array(_QUAD_INDICES, dtype=np.uint32)) \
            .reshape(-1)
        self._corners = []
        self._uvs = []

    def __repr__(self):
        return "TerrainBatch(tex={} lm={} quads={})".format(
            self.key.texture_index, self.key.lightmap_index, self.quad_count)


class TerrainMesh(object):
    """Output of build_terrain_mesh: ordered batches plus face counters."""

    def __init__(self, batches, bounds, top_faces=0, east_wall_faces=0,
                 south_wall_faces=0):
        self.batches = list(batches)
        self.bounds = bounds
        self.top_faces = top_faces
        self.east_wall_faces = east_wall_faces
        self.south_wall_faces = south_wall_faces

    @property
    def wall_faces(self):
        return self.east_wall_faces + self.south_wall_faces

    @property
    def quad_count(self):
        return sum(b.quad_count for b in self.batches)

    @property
    def triangle_count(self):
        return sum(b.triangle_count for b in self.batches)

    @property
    def vertex_count(self):
        return sum(b.vertex_count for b in self.batches)

    def batch(self, key):
        for b in self.batches:
            if b.key == key:
                return b
        return None

    def __repr__(self):
        return "TerrainMesh(batches={} top={} east={} south={})".format(
            len(self.batches), self.top_faces, self.east_wall_faces,
            self.south_wall_faces)


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def _quad_normals(quads):
    """Flat unit normal per quad (n, 4, 3); degenerate quads get +Y."""
    p0, p1, p2, p3 = quads[:, 0], quads[:, 1], quads[:, 2], quads[:, 3]
    n = np.cross(p1 - p0, p3 - p0) + np.cross(p3 - p0, p2 - p0)
    length = np.linalg.norm(n, axis=1)
    good = length > 1e-9
    out = np.empty_like(n)
    out[good] = n[good] / length[good][:, None]
    out[~good] = _UP
    return out.astype(np.float32)


def batch_key(surface):
    return BatchKey(surface.texture_index, surface.lightmap_index,
                    surface.color)


def _corner(x, h, y, model):
    return grid_to_world(x, h, y, model.height, model.tile_scale)


def top_quad(model, x, y, cell):
    return (_corner(x, cell.h1, y, model),
            _corner(x + 1, cell.h2, y, model),
            _corner(x, cell.h3, y + 1, model),
            _corner(x + 1, cell.h4, y + 1, model))


def east_wall_quad(model, x, y, cell, neighbour):
    return (_corner(x + 1, cell.h2, y, model),
            _corner(x + 1, cell.h4, y + 1, model),
            _corner(x + 1, neighbour.h1, y, model),
            _corner(x + 1, neighbour.h3, y + 1, model))


def south_wall_quad(model, x, y, cell, neighbour):
    return (_corner(x, cell.h3, y + 1, model),
            _corner(x + 1, cell.h4, y + 1, model),
            _corner(x, neighbour.h1, y + 1, model),
            _corner(x + 1, neighbour.h2, y + 1, model))


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def _check_cancel(cancel_event):
    if cancel_event is not None and cancel_event.is_set():
        raise BuildCancelled("terrain mesh build cancelled")


def build_terrain_mesh(model, cancel_event=None):
    """
    Build batched terrain geometry for ``model``.

    Args:
        model: TerrainModel.  A partial model (no cells) yields an empty mesh.
        cancel_event: Optional threading.Event; checked before the cell walk
            and between batches.

    Returns:
        TerrainMesh with batches in first-use order.

    Raises:
        BuildCancelled: cancel_event was set.
    """
    _check_cancel(cancel_event)

    batches = {}
    counts = {FACE_TOP: 0, FACE_EAST: 0, FACE_SOUTH: 0}

    def emit(surface_index, corners, x, y, kind):
        surface = model.surfaces[surface_index]
        key = batch_key(surface)
        batch = batches.get(key)
        if batch is None:
            batch = batches[key] = TerrainBatch(key)
        batch.add_quad(corners, surface, QuadSource(x, y, kind))
        counts[kind] += 1

    width, height = model.width, model.height
    cells = model.cells
    if len(cells) == width * height:
        for y in range(height):
            row = y * width
            for x in range(width):
                cell = cells[row + x]
                if cell.top_surface >= 0:
                    emit(cell.top_surface, top_quad(model, x, y, cell),
                         x, y, FACE_TOP)
                if cell.east_surface >= 0 and x + 1 < width:
                    emit(cell.east_surface,
                         east_wall_quad(model, x, y, cell,
                                        cells[row + x + 1]),
                         x, y, FACE_EAST)
                if cell.south_surface >= 0 and y + 1 < height:
                    emit(cell.south_surface,
                         south_wall_quad(model, x, y, cell,
                                         cells[row + width + x]),
                         x, y, FACE_SOUTH)
    elif cells:
        raise ValueError("cell grid has {} entries, expected {}x{}".format(
            len(cells), width, height))
    else:
        log.warning("Terrain model has no cell grid (truncated in %s); "
                    "building empty mesh", model.truncated_section)

    for batch in batches.values():
        _check_cancel(cancel_event)
        batch.finalize()

    mesh = TerrainMesh(batches.values(), terrain_bounds(model),
                       top_faces=counts[FACE_TOP],
                       east_wall_faces=counts[FACE_EAST],
                       south_wall_faces=counts[FACE_SOUTH])
    log.info("Built terrain mesh: %d batches, %d top, %d east, %d south "
             "faces", len(mesh.batches), mesh.top_faces,
             mesh.east_wall_faces, mesh.south_wall_faces)
    return mesh
