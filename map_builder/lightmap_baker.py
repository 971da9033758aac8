"""
Lightmap baking for terrain batches.

GND lightmaps are stored per entry as a shadow plane followed by an RGB
plane (see gnd_reader.LightmapBlock).  Each terrain batch uses one base
texture, one lightmap entry and one tint, so its texture is baked once:

    final.rgb = clamp(base.rgb * tint.rgb * shadow + lightmap.rgb, 0, 1)
    final.a   = base.a * tint.a

Shadow multiplies, lightmap colour adds; the order is fixed.  The base
texture is resampled to a square working resolution and the lightmap is
sampled nearest-neighbour (lmX = x * lmW // outW).

bake_batches() runs the per-batch bakes on a thread pool.  Base textures
are fetched up front on the calling thread so the lookup collaborator is
never called concurrently.

Dependencies:
    Pillow  -- texture resampling and baked image output
    NumPy   -- per-pixel blend
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import BuildCancelled

log = logging.getLogger(__name__)

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for lightmap baking.  Install with: pip install Pillow"
    )

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "NumPy is required for lightmap baking.  Install with: pip install numpy"
    )


BAKE_RESOLUTION = 64
FALLBACK_COLOR = (255, 0, 255, 255)


# ---------------------------------------------------------------------------
# Lightmap access
# ---------------------------------------------------------------------------

def extract_lightmap(lightmaps, index):
    """
    Split lightmap ``index`` into its two planes.

    Returns:
        (shadow, rgb) float32 arrays of shape (cellH, cellW) and
        (cellH, cellW, 3) scaled to 0..1, or None when the block is missing,
        the index is out of range or the entry runs past the blob.
    """
    if lightmaps is None:
        return None
    raw = lightmaps.entry(index)
    if raw is None:
        return None
    w, h = lightmaps.cell_width, lightmaps.cell_height
    pixels = w * h
    buf = np.frombuffer(raw, dtype=np.uint8)
    shadow = buf[:pixels].reshape(h, w).astype(np.float32) / 255.0
    rgb = buf[pixels:pixels * 4].reshape(h, w, 3).astype(np.float32) / 255.0
    return shadow, rgb


def identity_lightmap(width=1, height=1):
    """Full light, no added colour: leaves only the tint in effect."""
    return (np.ones((height, width), dtype=np.float32),
            np.zeros((height, width, 3), dtype=np.float32))


def _nearest(plane, out_w, out_h):
    h, w = plane.shape[:2]
    xs = np.minimum((np.arange(out_w) * w) // out_w, w - 1)
    ys = np.minimum((np.arange(out_h) * h) // out_h, h - 1)
    return plane[ys][:, xs]


# ---------------------------------------------------------------------------
# Blend
# ---------------------------------------------------------------------------

def blend_lightmap(base, tint, shadow, rgb):
    """
    Apply the terrain blend to a float RGBA image.

    Args:
        base: float array (H, W, 4) in 0..1.
        tint: (r, g, b, a) in 0..1.
        shadow: float array (h, w) in 0..1, any size; sampled nearest.
        rgb: float array (h, w, 3) in 0..1, same size as ``shadow``.

    Returns:
        float32 array (H, W, 4), every channel in [0, 1].
    """
    base = np.asarray(base, dtype=np.float32)
    out_h, out_w = base.shape[:2]
    shadow = _nearest(np.asarray(shadow, dtype=np.float32), out_w, out_h)
    rgb = _nearest(np.asarray(rgb, dtype=np.float32), out_w, out_h)
    tint = np.asarray(tint, dtype=np.float32)

    out = np.empty_like(base)
    out[..., :3] = np.clip(
        base[..., :3] * tint[:3] * shadow[..., None] + rgb, 0.0, 1.0)
    out[..., 3] = np.clip(base[..., 3] * tint[3], 0.0, 1.0)
    return out


def prepare_base_texture(base_image, resolution=BAKE_RESOLUTION):
    """
    RGBA float32 pixels (resolution, resolution, 4) in 0..1 for a base
    texture, bilinearly resampled.  Computed once per texture and shared
    read-only by every batch that uses it.
    """
    base = base_image.convert('RGBA')
    if base.size != (resolution, resolution):
        base = base.resize((resolution, resolution), Image.BILINEAR)
    base_px = np.asarray(base, dtype=np.float32) / 255.0
    base_px.setflags(write=False)
    return base_px


def _bake_pixels(base_px, lightmaps, index, tint):
    planes = extract_lightmap(lightmaps, index)
    if planes is None:
        planes = identity_lightmap()
    shadow, rgb = planes

    out = blend_lightmap(base_px, tint.as_floats(), shadow, rgb)
    return Image.fromarray((out * 255.0).astype(np.uint8), 'RGBA')


def bake_lightmap(base_image, lightmaps, index, tint,
                  resolution=BAKE_RESOLUTION):
    """
    Bake one batch texture.

    Args:
        base_image: PIL image of the base texture.
        lightmaps: LightmapBlock or None.
        index: Lightmap entry index.
        tint: gnd_reader.Tint (B, G, R, A bytes).
        resolution: Side of the square output image.

    Returns:
        PIL RGBA image of ``resolution`` x ``resolution``.  A missing
        lightmap entry bakes with full light and no added colour.
    """
    return _bake_pixels(prepare_base_texture(base_image, resolution),
                        lightmaps, index, tint)


def fallback_texture(resolution=BAKE_RESOLUTION):
    """Solid placeholder image in FALLBACK_COLOR."""
    return Image.new('RGBA', (resolution, resolution), FALLBACK_COLOR)


# ---------------------------------------------------------------------------
# Batch baking
# ---------------------------------------------------------------------------

def _check_cancel(cancel_event):
    if cancel_event is not None and cancel_event.is_set():
        raise BuildCancelled("lightmap bake cancelled")


def bake_batches(batches, lightmaps, texture_for, resolution=BAKE_RESOLUTION,
                 workers=None, cancel_event=None):
    """
    Bake a texture for every batch in place.

    Args:
        batches: Iterable of TerrainBatch.
        lightmaps: The model's LightmapBlock (may be None).
        texture_for: Callable ``texture_index -> PIL image or None``.
        resolution: Working resolution of baked textures.
        workers: Thread pool size; defaults to the CPU count.  1 bakes on
            the calling thread.
        cancel_event: Optional threading.Event, checked between batches.

    Returns:
        Number of batches that fell back to the placeholder colour.

    Raises:
        BuildCancelled: cancel_event was set before every batch finished.
    """
    batches = list(batches)
    _check_cancel(cancel_event)

    bases = {}
    for batch in batches:
        tex = batch.key.texture_index
        if tex not in bases:
            image = texture_for(tex) if tex >= 0 else None
            bases[tex] = (prepare_base_texture(image, resolution)
                          if image is not None else None)

    jobs = []
    fallbacks = 0
    for batch in batches:
        base = bases[batch.key.texture_index]
        if base is None:
            batch.texture = None
            batch.use_fallback = True
            fallbacks += 1
        else:
            jobs.append((batch, base))

    def bake(batch, base):
        _check_cancel(cancel_event)
        key = batch.key
        batch.texture = _bake_pixels(base, lightmaps, key.lightmap_index,
                                     key.tint)
        batch.use_fallback = False
        return batch

    if workers is None:
        workers = os.cpu_count() or 1
    workers = max(1, int(workers))

    if workers == 1 or len(jobs) <= 1:
        for batch, base in jobs:
            bake(batch, base)
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(bake, batch, base)
                       for batch, base in jobs]
            try:
                for future in as_completed(futures):
                    future.result()
            except BuildCancelled:
                for future in futures:
                    future.cancel()
                raise

    _check_cancel(cancel_event)
    log.info("Baked %d batch textures at %dx%d (%d fallback, %d workers)",
             len(jobs), resolution, resolution, fallbacks, workers)
    return fallbacks
