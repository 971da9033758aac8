"""
Coordinate conventions shared by the GND/RSW/GAT consumers.

The world frame is right-handed with +Y up:
  - worldX grows with the grid column,
  - heights are stored positive-down in the files and are negated,
  - the grid row is flipped so +Z points at the map's northern edge.

RSW object positions are relative to the map centre; placement_to_world()
moves them into the same frame as the terrain.

All functions are pure.  grid_to_world() also accepts numpy arrays, which
the mesh builders use to transform whole corner sets at once.
"""

import math

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for coordinates. "
        "Install it with: pip install numpy"
    )

DEFAULT_TILE_SCALE = 10.0


def grid_to_world(x, height, y, map_height, tile_scale=DEFAULT_TILE_SCALE):
    """Grid line (x, y) at file ``height`` -> (worldX, worldY, worldZ)."""
    return (x * tile_scale, -height, (map_height - y) * tile_scale)


def placement_to_world(position, map_width, map_height,
                       tile_scale=DEFAULT_TILE_SCALE):
    """Centre-relative RSW object position -> world position."""
    px, py, pz = position
    return (px + map_width * tile_scale * 0.5,
            -py,
            pz + map_height * tile_scale * 0.5)


def world_to_placement(position, map_width, map_height,
                       tile_scale=DEFAULT_TILE_SCALE):
    """Inverse of placement_to_world()."""
    wx, wy, wz = position
    return (wx - map_width * tile_scale * 0.5,
            -wy,
            wz - map_height * tile_scale * 0.5)


def _rot_x(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1.0, 0.0, 0.0],
                     [0.0, c, -s],
                     [0.0, s, c]])


def _rot_y(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, 0.0, s],
                     [0.0, 1.0, 0.0],
                     [-s, 0.0, c]])


def _rot_z(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0],
                     [s, c, 0.0],
                     [0.0, 0.0, 1.0]])


def euler_degrees_to_rotation(pitch_deg, yaw_deg, roll_deg):
    """
    3x3 rotation matrix (column vectors) for an RSW rotation triple.

    Roll (about Z) is applied first, then pitch (about X), then yaw
    (about Y): ``R = Ry(yaw) @ Rx(pitch) @ Rz(roll)``.
    """
    return (_rot_y(math.radians(yaw_deg))
            .dot(_rot_x(math.radians(pitch_deg)))
            .dot(_rot_z(math.radians(roll_deg))))


def placement_matrix(placement, map_width, map_height,
                     tile_scale=DEFAULT_TILE_SCALE):
    """
    4x4 model matrix for a ModelPlacement: scale, then rotate, then
    translate to the world position.
    """
    pitch, yaw, roll = placement.rotation
    m = np.identity(4)
    m[:3, :3] = euler_degrees_to_rotation(pitch, yaw, roll).dot(
        np.diag(placement.scale))
    m[:3, 3] = placement_to_world(placement.position, map_width, map_height,
                                  tile_scale)
    return m


def light_direction(longitude, latitude):
    """Unit vector pointing toward the sun for RSW lighting angles."""
    lon = math.radians(longitude)
    lat = math.radians(latitude)
    cos_lat = math.cos(lat)
    v = np.array([cos_lat * math.sin(lon), math.sin(lat),
                  cos_lat * math.cos(lon)])
    return tuple(float(c) for c in v / np.linalg.norm(v))


def map_center(map_width, map_height, tile_scale=DEFAULT_TILE_SCALE):
    return (map_width * tile_scale * 0.5, 0.0, map_height * tile_scale * 0.5)


def terrain_bounds(model):
    """
    World-space axis-aligned bounds ((minX, minY, minZ), (maxX, maxY, maxZ))
    of a TerrainModel's grid.  A model without cells has zero height.
    """
    if model.cells:
        heights = np.array([c[:4] for c in model.cells], dtype=np.float64)
        low, high = float(heights.min()), float(heights.max())
    else:
        low = high = 0.0
    return ((0.0, -high, 0.0),
            (model.width * model.tile_scale, -low,
             model.height * model.tile_scale))
