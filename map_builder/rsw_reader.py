"""
RSW (resource world) decoder for Ragnarok Online maps.

RSW file structure (all little-endian):
  1. Magic 'GRSW'                                   4 bytes
  2. Version: major, minor                          2 bytes (u8 each,
     NOT one u16; reading it as a short swaps the bytes and misaligns
     every later field)
  3. Build number                    u8     version >= 2.2
  4. Opaque int                      i32    version >= 2.5
  5. File names, 40 bytes each: ini, gnd, gat (version > 1.4), source ini
  6. Water                                         version < 2.6
       height f32
       type i32, amplitude f32, waveSpeed f32, wavePitch f32  >= 1.8
       animationSpeed i32                                     >= 1.9
  7. Lighting                                      version >= 1.5
       longitude i32, latitude i32, diffuse 3f, ambient 3f
       shadowOpacity f32                                      >= 1.7
  8. Bounding box left, top, right, bottom i32     version >= 1.6
  9. objectCount i32, then objectCount type-tagged records:
       1 model   name 40, [animType i32, animSpeed f32, blockType i32]
                 (>= 1.3), [reserved u8] (>= 2.6 and build > 161),
                 file 80, node 80, position 3f, rotation 3f, scale 3f
       2 light   name 40, position 3f, 10 reserved f32, color 3f,
                 range f32
       3 sound   name 80, wave file 80, 2 reserved f32, rotation 3f,
                 scale 3f, 8 reserved bytes, position 3f, volume f32,
                 width i32, height i32, range f32
       4 effect  name 80, position 3f, effectId i32, emitSpeed f32,
                 5 parameter f32

An unknown type tag aborts the decode: skipping it would misread every
record that follows.
"""

import logging
import struct
from collections import namedtuple

from .binary_reader import BinaryReader
from .errors import (BadMagicError, InvalidCountError,
                     UnknownObjectTypeError, UnsupportedVersionError)
from .format_versions import (VersionRule, VersionTable, format_version,
                              pack_version)
from .gnd_reader import WaterInfo

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RSW_MAGIC = b'GRSW'

MAX_OBJECT_COUNT = 500000
MAX_SUPPORTED_VERSION = 0x0206

OBJECT_MODEL = 1
OBJECT_LIGHT = 2
OBJECT_SOUND = 3
OBJECT_EFFECT = 4

_PATH_FIELD = 40
_SHORT_NAME = 40
_LONG_NAME = 80
_LIGHT_RESERVED_FLOATS = 10
_EFFECT_PARAM_FLOATS = 5

# Values used when an older file predates the field.
DEFAULT_WATER = WaterInfo(height=0.0, type=0, amplitude=1.0,
                          wave_speed=2.0, wave_pitch=50.0,
                          animation_speed=3)
DEFAULT_SHADOW_OPACITY = 1.0

VERSIONS = VersionTable('RSW', [
    VersionRule('build_number', '>=', 0x0202),
    VersionRule('opaque_int', '>=', 0x0205),
    VersionRule('gat_file', '>', 0x0104),
    VersionRule('water', '<', 0x0206),
    VersionRule('water_waves', '>=', 0x0108),
    VersionRule('water_animation', '>=', 0x0109),
    VersionRule('lighting', '>=', 0x0105),
    VersionRule('shadow_opacity', '>=', 0x0107),
    VersionRule('bounding_box', '>=', 0x0106),
    VersionRule('model_animation', '>=', 0x0103),
    VersionRule('model_reserved_byte', '>=', 0x0206, build_above=161),
])

_LIGHTING = struct.Struct('<ii3f3f')
_WATER_WAVES = struct.Struct('<ifff')
_BBOX = struct.Struct('<iiii')
_MODEL_ANIMATION = struct.Struct('<ifi')
_SOUND_TAIL = struct.Struct('<fiif')
_EFFECT_HEAD = struct.Struct('<if')


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

LightingInfo = namedtuple('LightingInfo', [
    'longitude', 'latitude', 'diffuse', 'ambient', 'shadow_opacity'])

BoundingBox = namedtuple('BoundingBox', ['left', 'top', 'right', 'bottom'])


class ModelPlacement(namedtuple('ModelPlacement', [
        'name', 'animation_type', 'animation_speed', 'block_type',
        'reserved', 'filename', 'node_name', 'position', 'rotation',
        'scale'])):
    """Placed RSM model.  ``rotation`` is in degrees, ``position`` is
    relative to the map centre (see coordinates.placement_to_world)."""
    __slots__ = ()
    object_type = OBJECT_MODEL


class LightSource(namedtuple('LightSource', [
        'name', 'position', 'reserved', 'color', 'range'])):
    """Point light.  ``reserved`` keeps the ten uninterpreted floats."""
    __slots__ = ()
    object_type = OBJECT_LIGHT


class SoundEmitter(namedtuple('SoundEmitter', [
        'name', 'wave_file', 'reserved_floats', 'rotation', 'scale',
        'reserved_bytes', 'position', 'volume', 'width', 'height',
        'range'])):
    __slots__ = ()
    object_type = OBJECT_SOUND


class EffectEmitter(namedtuple('EffectEmitter', [
        'name', 'position', 'effect_id', 'emit_speed', 'params'])):
    __slots__ = ()
    object_type = OBJECT_EFFECT


class SceneModel(object):
    """
    Decoded RSW file.

    ``gat_file`` equals ``gnd_file`` for versions that predate the
    walkability file name field.  ``water`` is None from version 2.6 on,
    where the water block moved into the GND file.
    """

    def __init__(self, version, build_number=None, opaque_int=None,
                 ini_file='', gnd_file='', gat_file='', source_file='',
                 water=None, lighting=None, bounding_box=None,
                 objects=(), object_count=None):
        self.version = version
        self.build_number = build_number
        self.opaque_int = opaque_int
        self.ini_file = ini_file
        self.gnd_file = gnd_file
        self.gat_file = gat_file
        self.source_file = source_file
        self.water = water
        self.lighting = lighting
        self.bounding_box = bounding_box
        self.objects = tuple(objects)
        if object_count is None:
            object_count = len(self.objects)
        self.object_count = object_count

    def _of_type(self, object_type):
        return [o for o in self.objects if o.object_type == object_type]

    @property
    def models(self):
        return self._of_type(OBJECT_MODEL)

    @property
    def lights(self):
        return self._of_type(OBJECT_LIGHT)

    @property
    def sounds(self):
        return self._of_type(OBJECT_SOUND)

    @property
    def effects(self):
        return self._of_type(OBJECT_EFFECT)

    def _key(self):
        return (self.version, self.build_number, self.opaque_int,
                self.ini_file, self.gnd_file, self.gat_file,
                self.source_file, self.water, self.lighting,
                self.bounding_box, self.objects, self.object_count)

    def __eq__(self, other):
        return isinstance(other, SceneModel) and self._key() == other._key()

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "SceneModel(v{} gnd={!r} objects={}/{})".format(
            format_version(self.version), self.gnd_file,
            len(self.objects), self.object_count)


# ---------------------------------------------------------------------------
# Object records
# ---------------------------------------------------------------------------

def _read_model(reader, features):
    name = reader.read_string(_SHORT_NAME)
    if 'model_animation' in features:
        anim_type, anim_speed, block_type = reader.read_struct(
            _MODEL_ANIMATION)
    else:
        anim_type, anim_speed, block_type = 0, 1.0, 0
    reserved = None
    if 'model_reserved_byte' in features:
        reserved = reader.read_u8()
    filename = reader.read_string(_LONG_NAME)
    node_name = reader.read_string(_LONG_NAME)
    position = reader.read_vec3()
    rotation = reader.read_vec3()
    scale = reader.read_vec3()
    return ModelPlacement(name, anim_type, anim_speed, block_type, reserved,
                          filename, node_name, position, rotation, scale)


def _read_light(reader, features):
    name = reader.read_string(_SHORT_NAME)
    position = reader.read_vec3()
    reserved = reader.read_floats(_LIGHT_RESERVED_FLOATS)
    color = reader.read_vec3()
    light_range = reader.read_f32()
    return LightSource(name, position, reserved, color, light_range)


def _read_sound(reader, features):
    name = reader.read_string(_LONG_NAME)
    wave_file = reader.read_string(_LONG_NAME)
    reserved_floats = reader.read_floats(2)
    rotation = reader.read_vec3()
    scale = reader.read_vec3()
    reserved_bytes = reader.read_bytes(8)
    position = reader.read_vec3()
    volume, width, height, sound_range = reader.read_struct(_SOUND_TAIL)
    return SoundEmitter(name, wave_file, reserved_floats, rotation, scale,
                        reserved_bytes, position, volume, width, height,
                        sound_range)


def _read_effect(reader, features):
    name = reader.read_string(_LONG_NAME)
    position = reader.read_vec3()
    effect_id, emit_speed = reader.read_struct(_EFFECT_HEAD)
    params = reader.read_floats(_EFFECT_PARAM_FLOATS)
    return EffectEmitter(name, position, effect_id, emit_speed, params)


_OBJECT_READERS = {
    OBJECT_MODEL: _read_model,
    OBJECT_LIGHT: _read_light,
    OBJECT_SOUND: _read_sound,
    OBJECT_EFFECT: _read_effect,
}


# ---------------------------------------------------------------------------
# Header blocks
# ---------------------------------------------------------------------------

def _read_water(reader, features):
    reader.section = 'water'
    height = reader.read_f32()
    water_type = DEFAULT_WATER.type
    amplitude = DEFAULT_WATER.amplitude
    wave_speed = DEFAULT_WATER.wave_speed
    wave_pitch = DEFAULT_WATER.wave_pitch
    animation_speed = DEFAULT_WATER.animation_speed
    if 'water_waves' in features:
        water_type, amplitude, wave_speed, wave_pitch = reader.read_struct(
            _WATER_WAVES)
    if 'water_animation' in features:
        animation_speed = reader.read_i32()
    return WaterInfo(height, water_type, amplitude, wave_speed, wave_pitch,
                     animation_speed)


def _read_lighting(reader, features):
    reader.section = 'lighting'
    rec = reader.read_struct(_LIGHTING)
    shadow_opacity = DEFAULT_SHADOW_OPACITY
    if 'shadow_opacity' in features:
        shadow_opacity = reader.read_f32()
    return LightingInfo(longitude=rec[0], latitude=rec[1],
                        diffuse=rec[2:5], ambient=rec[5:8],
                        shadow_opacity=shadow_opacity)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def is_rsw_file(data):
    """True if ``data`` starts with the RSW magic."""
    return data is not None and bytes(data[:4]) == RSW_MAGIC


def read_rsw(data):
    """
    Decode an RSW world file.

    Returns:
        SceneModel

    Raises:
        BadMagicError: Signature is not 'GRSW'.
        UnsupportedVersionError: Version newer than MAX_SUPPORTED_VERSION.
        InvalidCountError: Object count negative or above MAX_OBJECT_COUNT.
        UnknownObjectTypeError: Type tag outside 1..4; ``err.partial``
            holds the objects decoded before it.
        TruncatedDataError: Buffer ends inside any required field.
    """
    reader = BinaryReader(data)

    magic = reader.read_bytes(4)
    if magic != RSW_MAGIC:
        raise BadMagicError(RSW_MAGIC, magic)

    offset = reader.tell()
    major = reader.read_u8()
    minor = reader.read_u8()
    version = pack_version(major, minor)
    if version > MAX_SUPPORTED_VERSION:
        raise UnsupportedVersionError(
            'header', offset,
            "RSW version {} is newer than the supported {}".format(
                format_version(version),
                format_version(MAX_SUPPORTED_VERSION)))

    build_number = None
    if 'build_number' in VERSIONS.features(version):
        build_number = reader.read_u8()
    features = VERSIONS.features(version, build_number)

    opaque_int = None
    if 'opaque_int' in features:
        opaque_int = reader.read_i32()

    reader.section = 'files'
    ini_file = reader.read_string(_PATH_FIELD)
    gnd_file = reader.read_string(_PATH_FIELD)
    if 'gat_file' in features:
        gat_file = reader.read_string(_PATH_FIELD)
    else:
        gat_file = gnd_file
    source_file = reader.read_string(_PATH_FIELD)

    water = _read_water(reader, features) if 'water' in features else None
    lighting = None
    if 'lighting' in features:
        lighting = _read_lighting(reader, features)
    bounding_box = None
    if 'bounding_box' in features:
        reader.section = 'bounding_box'
        bounding_box = BoundingBox(*reader.read_struct(_BBOX))

    reader.section = 'objects'
    offset = reader.tell()
    object_count = reader.read_i32()
    if object_count < 0 or object_count > MAX_OBJECT_COUNT:
        raise InvalidCountError(
            'objects', offset,
            "invalid object count {} (max {}, version {})".format(
                object_count, MAX_OBJECT_COUNT, format_version(version)))

    def build(objects):
        return SceneModel(
            version, build_number=build_number, opaque_int=opaque_int,
            ini_file=ini_file, gnd_file=gnd_file, gat_file=gat_file,
            source_file=source_file, water=water, lighting=lighting,
            bounding_box=bounding_box, objects=objects,
            object_count=object_count)

    objects = []
    for index in range(object_count):
        tag_offset = reader.tell()
        object_type = reader.read_i32()
        read_object = _OBJECT_READERS.get(object_type)
        if read_object is None:
            raise UnknownObjectTypeError(tag_offset, object_type, index,
                                         build(objects))
        objects.append(read_object(reader, features))

    scene = build(objects)
    log.info("Read RSW v%s (build %s): gnd=%r gat=%r, %d objects",
             format_version(version), build_number, gnd_file, gat_file,
             len(objects))
    return scene
