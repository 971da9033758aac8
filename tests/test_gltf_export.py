"""
Tests for the glTF binary terrain writer, reading files back with pygltflib.
"""

import io
import os
import shutil
import sys
import tempfile

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import numpy as np
import pygltflib
from PIL import Image

from map_builder import convert_gnd_to_glb
from map_builder.gltf_export import TerrainGltfWriter
from map_builder.gnd_reader import read_gnd
from map_builder.lightmap_baker import bake_batches
from map_builder.terrain_mesh import build_terrain_mesh

from map_fixtures import (build_gnd, collect_tests, make_cell, make_surface,
                          png_bytes, run_suite)


def _model():
    surfaces = [make_surface(texture_index=0), make_surface(texture_index=-1)]
    cells = [make_cell(top=0), make_cell(top=1)]
    return read_gnd(build_gnd(width=2, height=1, surfaces=surfaces,
                              cells=cells, textures=[('grass.bmp', 'g')]))


def _write(mesh, **kwargs):
    root = tempfile.mkdtemp(prefix="pyromap_test_")
    path = os.path.join(root, 'out', 'terrain.glb')
    try:
        TerrainGltfWriter(path).write(mesh, **kwargs)
        return pygltflib.GLTF2.load_binary(path)
    finally:
        shutil.rmtree(root)


def _view_bytes(gltf, view_index):
    view = gltf.bufferViews[view_index]
    blob = gltf.binary_blob()
    return blob[view.byteOffset:view.byteOffset + view.byteLength]


def _accessor_array(gltf, index, dtype, width):
    acc = gltf.accessors[index]
    data = _view_bytes(gltf, acc.bufferView)
    return np.frombuffer(data, dtype=dtype).reshape(acc.count, width)


def test_unbaked_mesh_uses_vertex_colours():
    mesh = build_terrain_mesh(_model())
    gltf = _write(mesh)
    prims = gltf.meshes[0].primitives
    assert len(prims) == 2
    for prim in prims:
        assert prim.attributes.COLOR_0 is not None
        assert gltf.materials[prim.material].name == '__vertex_color__'
    assert len(gltf.materials) == 1
    assert gltf.images == []


def test_positions_and_indices_round_trip():
    mesh = build_terrain_mesh(_model())
    gltf = _write(mesh)
    prim = gltf.meshes[0].primitives[0]
    positions = _accessor_array(gltf, prim.attributes.POSITION, '<f4', 3)
    assert np.array_equal(positions, mesh.batches[0].positions)

    acc = gltf.accessors[prim.indices]
    assert acc.componentType == pygltflib.UNSIGNED_SHORT
    indices = np.frombuffer(_view_bytes(gltf, acc.bufferView), dtype='<u2')
    assert list(indices) == [0, 1, 3, 0, 3, 2]

    pos_acc = gltf.accessors[prim.attributes.POSITION]
    assert pos_acc.min == [0.0, 0.0, 0.0]
    assert pos_acc.max == [10.0, 0.0, 10.0]


def test_baked_and_fallback_materials():
    model = _model()
    mesh = build_terrain_mesh(model)
    white = Image.open(io.BytesIO(png_bytes()))
    assert bake_batches(mesh.batches, model.lightmaps,
                        lambda i: white if i == 0 else None,
                        resolution=8, workers=1) == 1
    gltf = _write(mesh, texture_names=['grass.bmp'])
    baked, fallback = gltf.meshes[0].primitives

    mat = gltf.materials[baked.material]
    assert mat.name == 'grass.bmp#lm0'
    tex = gltf.textures[mat.pbrMetallicRoughness.baseColorTexture.index]
    image = gltf.images[tex.source]
    assert image.mimeType == 'image/png'
    png = Image.open(io.BytesIO(_view_bytes(gltf, image.bufferView)))
    assert png.size == (8, 8)
    assert baked.attributes.COLOR_0 is None

    mat = gltf.materials[fallback.material]
    assert mat.name == '__missing_texture__'
    assert mat.pbrMetallicRoughness.baseColorFactor == [1.0, 0.0, 1.0, 1.0]


def test_batch_keys_in_extras():
    mesh = build_terrain_mesh(_model())
    gltf = _write(mesh)
    extras = [p.extras for p in gltf.meshes[0].primitives]
    assert extras[0]['texture_index'] == 0
    assert extras[1]['texture_index'] == -1
    assert extras[0]['tint_bgra'] == [255, 255, 255, 255]


def test_mesh_without_batches_writes_node_only():
    model = read_gnd(build_gnd(width=2, height=2)[:50])
    mesh = build_terrain_mesh(model)
    assert mesh.batches == []
    gltf = _write(mesh)
    assert gltf.meshes == []
    assert gltf.nodes[0].name == 'terrain'
    assert gltf.nodes[0].mesh is None
    assert gltf.accessors == []


def test_convert_gnd_to_glb():
    root = tempfile.mkdtemp(prefix="pyromap_test_")
    try:
        path = os.path.join(root, 'map.glb')
        files = {'data\\texture\\grass.bmp': png_bytes()}
        data = build_gnd(width=2, height=1,
                         textures=[('grass.bmp', 'g')])
        mesh = convert_gnd_to_glb(data, path, lookup=files.get,
                                  resolution=8, workers=1)
        assert os.path.exists(path)
        assert mesh.top_faces == 2
        gltf = pygltflib.GLTF2.load_binary(path)
        assert len(gltf.images) == 1
        assert gltf.nodes[0].name == 'terrain'
    finally:
        shutil.rmtree(root)


def main():
    return run_suite("glTF export", collect_tests(globals()))


if __name__ == '__main__':
    sys.exit(main())
