"""
Whole-map loading: RSW -> GND (+ GAT) -> terrain mesh -> baked textures.

load_map() reads ``data\\<name>.rsw`` through the lookup collaborator and
follows the ground and walkability file names it references.  Problems a
caller can live with (missing or corrupt RSW/GAT, a corrupt GND, missing
textures, a partial GND) are collected as warning strings on the result
instead of aborting the load.  An RSW that stops at an unknown object
type still supplies its header and the objects before it.  BuildCancelled
is not a warning and propagates.
"""

import logging
import time

from .coordinates import map_center
from .errors import MapFormatError, UnknownObjectTypeError
from .gat_reader import is_gat_file, read_gat
from .gnd_reader import is_gnd_file, read_gnd
from .lightmap_baker import BAKE_RESOLUTION, bake_batches
from .rsw_reader import is_rsw_file, read_rsw
from .terrain_mesh import build_terrain_mesh
from .texture_lookup import TextureResolver

log = logging.getLogger(__name__)

DATA_PREFIX = 'data\\'


class LoadedMap(object):
    """Everything load_map() produced for one map."""

    def __init__(self, name, scene=None, terrain=None, walkability=None,
                 mesh=None, warnings=(), load_time=0.0):
        self.name = name
        self.scene = scene
        self.terrain = terrain
        self.walkability = walkability
        self.mesh = mesh
        self.warnings = list(warnings)
        self.load_time = load_time

    @property
    def width(self):
        return self.terrain.width if self.terrain else 0

    @property
    def height(self):
        return self.terrain.height if self.terrain else 0

    @property
    def tile_scale(self):
        return self.terrain.tile_scale if self.terrain else 10.0

    @property
    def water(self):
        """Water settings from the GND (>= 1.7) or else the RSW header."""
        if self.terrain is not None and self.terrain.water is not None:
            return self.terrain.water
        if self.scene is not None:
            return self.scene.water
        return None

    @property
    def bounds(self):
        if self.mesh is not None:
            return self.mesh.bounds
        return None

    @property
    def center(self):
        return map_center(self.width, self.height, self.tile_scale)

    def __repr__(self):
        return "LoadedMap({!r} {}x{} warnings={} {:.2f}s)".format(
            self.name, self.width, self.height, len(self.warnings),
            self.load_time)


def _read(lookup, path, sniff, reader, label, warnings, **kwargs):
    data = lookup(path)
    if data is None or not sniff(data):
        warnings.append("{} file {} not found or invalid".format(label, path))
        return None
    try:
        return reader(data, **kwargs)
    except UnknownObjectTypeError as exc:
        # header and earlier objects are complete; keep them
        warnings.append("{} parse error in {}: {}; keeping {} of {} objects"
                        .format(label, path, exc, len(exc.partial.objects),
                                exc.partial.object_count))
        return exc.partial
    except MapFormatError as exc:
        warnings.append("{} parse error in {}: {}".format(label, path, exc))
        return None


def load_map(name, lookup, load_walkability=True, build_mesh=True, bake=True,
             skip_lightmaps=False, resolution=BAKE_RESOLUTION, workers=None,
             cancel_event=None):
    """
    Load map ``name`` (e.g. 'prontera') through ``lookup``.

    Args:
        name: Map name without extension.
        lookup: ``path -> bytes or None`` collaborator.
        load_walkability: Also read the GAT file.
        build_mesh: Build the terrain mesh.
        bake: Bake batch textures (requires build_mesh).
        skip_lightmaps: Decode the GND without its lightmap blob.
        resolution, workers: Passed to bake_batches().
        cancel_event: Optional threading.Event for the mesh/bake stages.

    Returns:
        LoadedMap
    """
    start = time.time()
    warnings = []

    rsw_path = '{}{}.rsw'.format(DATA_PREFIX, name)
    scene = _read(lookup, rsw_path, is_rsw_file, read_rsw, 'RSW', warnings)

    gnd_name = scene.gnd_file if scene and scene.gnd_file else \
        '{}.gnd'.format(name)
    terrain = _read(lookup, DATA_PREFIX + gnd_name, is_gnd_file, read_gnd,
                    'GND', warnings, skip_lightmaps=skip_lightmaps)
    if terrain is not None and not terrain.complete:
        warnings.append("GND {} is truncated in {}; terrain has no cells"
                        .format(gnd_name, terrain.truncated_section))

    walkability = None
    if load_walkability:
        gat_name = scene.gat_file if scene and scene.gat_file else \
            '{}.gat'.format(name)
        # Older RSW files store the GND name in the GAT slot.
        if gat_name.lower().endswith('.gnd'):
            gat_name = gat_name[:-4] + '.gat'
        walkability = _read(lookup, DATA_PREFIX + gat_name, is_gat_file,
                            read_gat, 'GAT', warnings)

    mesh = None
    if build_mesh and terrain is not None:
        mesh = build_terrain_mesh(terrain, cancel_event=cancel_event)
        if bake:
            resolver = TextureResolver(lookup)
            bake_batches(mesh.batches, terrain.lightmaps,
                         resolver.for_model(terrain), resolution=resolution,
                         workers=workers, cancel_event=cancel_event)
            for missing in resolver.misses:
                warnings.append("Texture {} not found".format(missing))

    loaded = LoadedMap(name, scene=scene, terrain=terrain,
                       walkability=walkability, mesh=mesh, warnings=warnings,
                       load_time=time.time() - start)
    for w in warnings:
        log.warning("%s: %s", name, w)
    log.info("Loaded map %s in %.2fs", name, loaded.load_time)
    return loaded
