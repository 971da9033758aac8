"""
glTF 2.0 binary (.glb) export of a TerrainMesh.

One node and mesh named 'terrain', one primitive per batch.  Materials:
  - baked batches reference their baked texture, embedded as PNG,
  - fallback batches get a flat magenta base colour,
  - batches that were never baked use their per-vertex tint (COLOR_0).

Batch keys are kept in primitive extras so a reader can map primitives
back to (texture, lightmap, tint).
"""

import io
import logging
import os

from .lightmap_baker import FALLBACK_COLOR

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for glTF export. "
        "Install it with: pip install numpy"
    )

try:
    import pygltflib
    _HAS_GLTFLIB = True
except ImportError:
    _HAS_GLTFLIB = False


_SAMPLER_LINEAR = 9729
_SAMPLER_REPEAT = 10497


def _pad(blob):
    while len(blob) % 4 != 0:
        blob.append(0)


class TerrainGltfWriter(object):
    """
    Writes a TerrainMesh as a .glb file.

    Usage:
        TerrainGltfWriter('out/prontera.glb').write(mesh, texture_names)
    """

    def __init__(self, output_path):
        if not _HAS_GLTFLIB:
            raise ImportError("pygltflib is required for glTF export. "
                              "Install it with: pip install pygltflib")
        self.output_path = output_path

    def write(self, mesh, texture_names=None, name='terrain'):
        """
        Args:
            mesh: TerrainMesh (batches finalized, optionally baked).
            texture_names: Optional sequence mapping texture index to name,
                stored on materials for reference.
            name: Node and mesh name.
        """
        gltf = pygltflib.GLTF2(
            asset=pygltflib.Asset(version="2.0", generator="pyromap"),
            scene=0,
            scenes=[pygltflib.Scene(nodes=[0])],
            nodes=[pygltflib.Node(name=name)],
        )
        gltf.samplers = [pygltflib.Sampler(
            magFilter=_SAMPLER_LINEAR, minFilter=_SAMPLER_LINEAR,
            wrapS=_SAMPLER_REPEAT, wrapT=_SAMPLER_REPEAT)]

        blob = bytearray()
        primitives = []
        fallback_material = None

        for batch in mesh.batches:
            key = batch.key
            if batch.texture is not None:
                material = self._textured_material(
                    gltf, blob, batch, texture_names)
            elif batch.use_fallback:
                if fallback_material is None:
                    fallback_material = self._flat_material(
                        gltf, '__missing_texture__',
                        [c / 255.0 for c in FALLBACK_COLOR])
                material = fallback_material
            else:
                material = None

            attributes = pygltflib.Attributes()
            attributes.POSITION = self._add_accessor(
                gltf, blob, batch.positions, pygltflib.VEC3,
                with_bounds=True)
            attributes.NORMAL = self._add_accessor(
                gltf, blob, batch.normals, pygltflib.VEC3)
            attributes.TEXCOORD_0 = self._add_accessor(
                gltf, blob, batch.uvs, pygltflib.VEC2)
            if material is None:
                attributes.COLOR_0 = self._add_accessor(
                    gltf, blob, batch.colors, pygltflib.VEC4)
                material = self._vertex_color_material(gltf)

            primitives.append(pygltflib.Primitive(
                attributes=attributes,
                indices=self._add_indices(gltf, blob, batch.indices),
                material=material,
                mode=pygltflib.TRIANGLES,
                extras={
                    'texture_index': key.texture_index,
                    'lightmap_index': key.lightmap_index,
                    'tint_bgra': list(key.tint),
                },
            ))

        if primitives:
            gltf.meshes = [pygltflib.Mesh(name=name, primitives=primitives)]
            gltf.nodes[0].mesh = 0
        else:
            # a glTF mesh needs at least one primitive
            log.warning("Terrain mesh %r has no batches; writing an empty "
                        "node", name)
        gltf.buffers = [pygltflib.Buffer(byteLength=len(blob))]
        gltf.set_binary_blob(bytes(blob))

        parent = os.path.dirname(self.output_path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent)
        gltf.save_binary(self.output_path)

        log.info("Wrote glTF binary: %s (%d primitives, %d bytes)",
                 self.output_path, len(primitives), len(blob))

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def _add_view(self, gltf, blob, data, target=None):
        offset = len(blob)
        blob.extend(data)
        view = len(gltf.bufferViews)
        gltf.bufferViews.append(pygltflib.BufferView(
            buffer=0, byteOffset=offset, byteLength=len(data),
            target=target))
        _pad(blob)
        return view

    def _add_accessor(self, gltf, blob, array, kind, with_bounds=False):
        array = np.ascontiguousarray(array, dtype='<f4')
        view = self._add_view(gltf, blob, array.tobytes(),
                              pygltflib.ARRAY_BUFFER)
        accessor = pygltflib.Accessor(
            bufferView=view,
            componentType=pygltflib.FLOAT,
            count=len(array),
            type=kind,
        )
        if with_bounds and len(array):
            accessor.min = [float(v) for v in array.min(axis=0)]
            accessor.max = [float(v) for v in array.max(axis=0)]
        gltf.accessors.append(accessor)
        return len(gltf.accessors) - 1

    def _add_indices(self, gltf, blob, indices):
        max_idx = int(indices.max()) if len(indices) else 0
        if max_idx <= 65535:
            data = np.ascontiguousarray(indices, dtype='<u2')
            component = pygltflib.UNSIGNED_SHORT
        else:
            data = np.ascontiguousarray(indices, dtype='<u4')
            component = pygltflib.UNSIGNED_INT
        view = self._add_view(gltf, blob, data.tobytes(),
                              pygltflib.ELEMENT_ARRAY_BUFFER)
        gltf.accessors.append(pygltflib.Accessor(
            bufferView=view,
            componentType=component,
            count=len(data),
            type=pygltflib.SCALAR,
            max=[max_idx],
            min=[int(indices.min()) if len(indices) else 0],
        ))
        return len(gltf.accessors) - 1

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------

    def _textured_material(self, gltf, blob, batch, texture_names):
        png = io.BytesIO()
        batch.texture.save(png, format='PNG')
        view = self._add_view(gltf, blob, png.getvalue())

        gltf.images.append(pygltflib.Image(bufferView=view,
                                           mimeType='image/png'))
        gltf.textures.append(pygltflib.Texture(
            sampler=0, source=len(gltf.images) - 1))

        key = batch.key
        name = 'tex{}_lm{}'.format(key.texture_index, key.lightmap_index)
        if texture_names and 0 <= key.texture_index < len(texture_names):
            name = '{}#lm{}'.format(texture_names[key.texture_index],
                                    key.lightmap_index)
        gltf.materials.append(pygltflib.Material(
            name=name,
            doubleSided=True,
            pbrMetallicRoughness=pygltflib.PbrMetallicRoughness(
                baseColorTexture=pygltflib.TextureInfo(
                    index=len(gltf.textures) - 1),
                metallicFactor=0.0,
                roughnessFactor=1.0,
            ),
        ))
        return len(gltf.materials) - 1

    def _flat_material(self, gltf, name, color):
        gltf.materials.append(pygltflib.Material(
            name=name,
            doubleSided=True,
            pbrMetallicRoughness=pygltflib.PbrMetallicRoughness(
                baseColorFactor=list(color),
                metallicFactor=0.0,
                roughnessFactor=1.0,
            ),
        ))
        return len(gltf.materials) - 1

    def _vertex_color_material(self, gltf):
        for i, mat in enumerate(gltf.materials):
            if mat.name == '__vertex_color__':
                return i
        return self._flat_material(gltf, '__vertex_color__',
                                   [1.0, 1.0, 1.0, 1.0])
