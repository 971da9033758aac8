"""
Texture lookup for the terrain builder.

The host supplies a lookup collaborator: a callable mapping a logical path
(``data\\texture\\...``) to file bytes, or None when it has no such file.
TextureResolver tries a fixed list of path variants for each GND texture
name, decodes the first hit with Pillow and caches the result per name.

folder_lookup() builds such a collaborator over an extracted data folder.
"""

import io
import logging
import os

log = logging.getLogger(__name__)

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for texture decoding.  Install with: pip install Pillow"
    )


TEXTURE_PREFIX = 'data\\texture\\'
TEXTURE_EXTENSIONS = ('.bmp', '.tga', '.png', '.jpg')


def texture_candidates(name):
    """
    Logical paths tried for a GND texture ``name``, in order: the name under
    the texture directory, the same with each image extension appended, and
    finally the raw name.
    """
    if not name or not name.strip():
        return []
    name = name.strip()
    prefixed = TEXTURE_PREFIX + name
    out = [prefixed]
    out.extend(prefixed + ext for ext in TEXTURE_EXTENSIONS)
    out.append(name)
    return out


def decode_texture(data, hint=''):
    """Decode image bytes to a loaded PIL image, or None if Pillow can't."""
    if not data:
        return None
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError) as exc:
        log.warning("Cannot decode texture %s: %s", hint, exc)
        return None
    return img


class TextureResolver(object):
    """
    Resolve and cache GND textures through a lookup callable.

    Args:
        lookup: ``path -> bytes or None``.  Called synchronously; may block.
    """

    def __init__(self, lookup):
        self.lookup = lookup
        self._cache = {}
        self.misses = []

    def load(self, name):
        """Decoded image for texture ``name``, or None if nothing resolves."""
        key = name.lower()
        if key in self._cache:
            return self._cache[key]

        image = None
        for path in texture_candidates(name):
            data = self.lookup(path)
            if data is None:
                continue
            image = decode_texture(data, path)
            if image is not None:
                log.debug("Texture %r -> %s (%dx%d)", name, path,
                          image.size[0], image.size[1])
                break
        if image is None:
            log.warning("Texture %r not found", name)
            self.misses.append(name)
        self._cache[key] = image
        return image

    def for_model(self, model):
        """Callable ``texture_index -> image or None`` bound to ``model``."""
        def texture_for(index):
            name = model.texture_name(index)
            if not name:
                return None
            return self.load(name)
        return texture_for

    def __len__(self):
        return len(self._cache)


def _normalize(path):
    path = path.replace('\\', '/').lower()
    while path.startswith('./'):
        path = path[2:]
    return path.lstrip('/')


def folder_lookup(root):
    """
    Lookup collaborator over an extracted client folder.

    Paths are matched case-insensitively with either separator, relative to
    ``root``; a path that does not match falls back to the first file with
    the same base name.
    """
    by_path = {}
    by_name = {}
    for dirpath, _dirs, files in os.walk(root):
        for fname in files:
            full = os.path.join(dirpath, fname)
            rel = _normalize(os.path.relpath(full, root))
            by_path[rel] = full
            by_name.setdefault(fname.lower(), full)
    log.debug("Indexed %d files under %s", len(by_path), root)

    def lookup(path):
        key = _normalize(path)
        full = by_path.get(key)
        if full is None:
            full = by_name.get(key.rsplit('/', 1)[-1])
        if full is None:
            return None
        with open(full, 'rb') as f:
            return f.read()

    return lookup
