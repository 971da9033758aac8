"""
Map Builder - Ragnarok Online map decoding and terrain reconstruction

Decodes the three map formats (GND terrain, RSW world objects, GAT
walkability), rebuilds the terrain as batched, gap-free triangle geometry
with inferred wall faces, and bakes lightmaps into per-batch textures.

The mesh can be exported as glTF binary via TerrainGltfWriter.
"""

from .errors import (MapFormatError, BadMagicError, TruncatedDataError,
                     InvalidDimensionError, InvalidCountError,
                     UnsupportedVersionError, UnknownObjectTypeError,
                     BuildCancelled)
from .binary_reader import BinaryReader
from .format_versions import VersionRule, VersionTable, format_version
from .gnd_reader import (TerrainModel, Cell, SurfaceTile, TextureRef, Tint,
                         LightmapBlock, WaterInfo, read_gnd, is_gnd_file)
from .rsw_reader import (SceneModel, ModelPlacement, LightSource,
                         SoundEmitter, EffectEmitter, read_rsw, is_rsw_file)
from .gat_reader import (WalkabilityModel, WalkCell, read_gat, write_gat,
                         is_gat_file, build_walkability_overlay)
from .coordinates import (grid_to_world, placement_to_world,
                          euler_degrees_to_rotation, light_direction,
                          map_center, terrain_bounds)
from .terrain_mesh import (BatchKey, TerrainBatch, TerrainMesh,
                           build_terrain_mesh)
from .lightmap_baker import (extract_lightmap, blend_lightmap, bake_lightmap,
                             bake_batches, BAKE_RESOLUTION)
from .texture_lookup import TextureResolver, texture_candidates, folder_lookup
from .map_loader import LoadedMap, load_map
from .gltf_export import TerrainGltfWriter


def convert_gnd_to_glb(gnd_data, output_path, lookup=None,
                       resolution=BAKE_RESOLUTION, workers=None,
                       cancel_event=None):
    """
    High-level API: decode a GND file and write its terrain as .glb.

    Args:
        gnd_data: GND file bytes.
        output_path: Where to write the .glb file.
        lookup: Optional ``path -> bytes or None`` texture collaborator.
            Without it every batch is written with its vertex tint only.
        resolution: Baked texture size.
        workers: Bake thread count (None = CPU count).
        cancel_event: Optional threading.Event.

    Returns:
        The TerrainMesh that was written.
    """
    model = read_gnd(gnd_data)
    mesh = build_terrain_mesh(model, cancel_event=cancel_event)
    if lookup is not None:
        resolver = TextureResolver(lookup)
        bake_batches(mesh.batches, model.lightmaps,
                     resolver.for_model(model), resolution=resolution,
                     workers=workers, cancel_event=cancel_event)
    names = [t.filename for t in model.textures]
    TerrainGltfWriter(output_path).write(mesh, texture_names=names)
    return mesh
