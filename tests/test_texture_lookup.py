"""
Tests for texture path candidates, the caching resolver and folder lookup.
"""

import os
import shutil
import sys
import tempfile

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from map_builder.gnd_reader import read_gnd
from map_builder.texture_lookup import (TextureResolver, decode_texture,
                                        folder_lookup, texture_candidates)

from map_fixtures import build_gnd, collect_tests, png_bytes, run_suite


def test_candidates_order():
    assert texture_candidates('grass') == [
        'data\\texture\\grass',
        'data\\texture\\grass.bmp',
        'data\\texture\\grass.tga',
        'data\\texture\\grass.png',
        'data\\texture\\grass.jpg',
        'grass',
    ]


def test_candidates_for_blank_name():
    assert texture_candidates('') == []
    assert texture_candidates('   ') == []


def test_decode_rejects_garbage():
    assert decode_texture(b'not an image', 'x.bmp') is None
    assert decode_texture(b'') is None
    assert decode_texture(png_bytes()).size == (4, 4)


def test_resolver_tries_candidates_in_order():
    seen = []

    def lookup(path):
        seen.append(path)
        if path == 'data\\texture\\rock.png':
            return png_bytes((2, 2))
        return None

    resolver = TextureResolver(lookup)
    img = resolver.load('rock')
    assert img is not None and img.size == (2, 2)
    assert seen == texture_candidates('rock')[:4]


def test_resolver_caches_case_insensitively():
    calls = []

    def lookup(path):
        calls.append(path)
        return png_bytes()

    resolver = TextureResolver(lookup)
    a = resolver.load('Grass.bmp')
    b = resolver.load('GRASS.BMP')
    assert a is b
    assert len(calls) == 1
    assert len(resolver) == 1


def test_resolver_records_misses_once():
    resolver = TextureResolver(lambda path: None)
    assert resolver.load('missing.bmp') is None
    assert resolver.load('missing.bmp') is None
    assert resolver.misses == ['missing.bmp']


def test_resolver_for_model():
    model = read_gnd(build_gnd(textures=[('a.bmp', 'a'), ('', 'empty')]))
    resolver = TextureResolver(lambda path: png_bytes())
    texture_for = resolver.for_model(model)
    assert texture_for(0) is not None
    assert texture_for(1) is None
    assert texture_for(5) is None


def test_folder_lookup():
    root = tempfile.mkdtemp(prefix="pyromap_test_")
    try:
        tex_dir = os.path.join(root, 'Data', 'Texture', 'Dungeon')
        os.makedirs(tex_dir)
        with open(os.path.join(tex_dir, 'Floor.BMP'), 'wb') as f:
            f.write(b'floor')
        lookup = folder_lookup(root)
        assert lookup('data\\texture\\dungeon\\floor.bmp') == b'floor'
        assert lookup('data/texture/DUNGEON/floor.bmp') == b'floor'
        # unknown directory, same base name
        assert lookup('data\\texture\\elsewhere\\floor.bmp') == b'floor'
        assert lookup('data\\texture\\dungeon\\wall.bmp') is None
    finally:
        shutil.rmtree(root)


def main():
    return run_suite("Texture lookup", collect_tests(globals()))


if __name__ == '__main__':
    sys.exit(main())
