"""
Bounds-checked little-endian cursor over an immutable byte buffer.

All Ragnarok Online map formats share the same primitive encoding:
  - integers and floats are little-endian
  - floats are IEEE-754 binary32 (struct '<f' reinterprets the raw bits)
  - names are fixed-width fields, NUL-padded, in the legacy Korean code
    page (CP949)

Every read either advances the cursor and returns a value or raises
TruncatedDataError naming the current section and the offset of the
failed read.  Nothing is read past the end of the buffer.
"""

import codecs
import struct

from .errors import TruncatedDataError

LEGACY_ENCODING = 'cp949'
FALLBACK_ENCODING = 'latin-1'

try:
    codecs.lookup(LEGACY_ENCODING)
    _HAS_LEGACY_CODEC = True
except LookupError:
    _HAS_LEGACY_CODEC = False

_U8 = struct.Struct('<B')
_U16 = struct.Struct('<H')
_I16 = struct.Struct('<h')
_I32 = struct.Struct('<i')
_U32 = struct.Struct('<I')
_F32 = struct.Struct('<f')
_VEC3 = struct.Struct('<3f')


def decode_legacy_string(raw):
    """
    Decode a fixed-width name field.

    The field is cut at the first NUL (or kept whole when none is present)
    and decoded as CP949.  Bytes that are not valid CP949, or a Python
    build without the codec, fall back to latin-1 so no byte is lost.
    """
    end = raw.find(b'\x00')
    if end >= 0:
        raw = raw[:end]
    if _HAS_LEGACY_CODEC:
        try:
            return raw.decode(LEGACY_ENCODING)
        except UnicodeDecodeError:
            pass
    return raw.decode(FALLBACK_ENCODING)


class BinaryReader(object):
    """
    Position-tracking reader.

    ``section`` is a free-form label set by the decoder before each part of
    the file; it is copied into any TruncatedDataError raised while it is
    current.
    """

    def __init__(self, data, offset=0):
        self.data = bytes(data)
        self.pos = offset
        self.section = 'header'

    def __len__(self):
        return len(self.data)

    @property
    def remaining(self):
        return len(self.data) - self.pos

    def tell(self):
        return self.pos

    def can_read(self, size):
        return 0 <= size <= self.remaining

    def _require(self, size):
        if size < 0 or size > self.remaining:
            raise TruncatedDataError(self.section, self.pos, size,
                                     max(self.remaining, 0))

    def _unpack(self, fmt):
        self._require(fmt.size)
        value = fmt.unpack_from(self.data, self.pos)
        self.pos += fmt.size
        return value

    # ------------------------------------------------------------------
    # Primitive reads
    # ------------------------------------------------------------------

    def read_u8(self):
        return self._unpack(_U8)[0]

    def read_u16(self):
        return self._unpack(_U16)[0]

    def read_i16(self):
        return self._unpack(_I16)[0]

    def read_i32(self):
        return self._unpack(_I32)[0]

    def read_u32(self):
        return self._unpack(_U32)[0]

    def read_f32(self):
        return self._unpack(_F32)[0]

    def read_vec3(self):
        return self._unpack(_VEC3)

    def read_floats(self, count):
        return self._unpack(struct.Struct('<{}f'.format(count)))

    def read_struct(self, fmt):
        """Unpack a precompiled struct.Struct at the cursor."""
        return self._unpack(fmt)

    def read_bytes(self, size):
        self._require(size)
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def skip(self, size):
        self._require(size)
        self.pos += size

    def read_string(self, size):
        """Read a fixed-width legacy name field of ``size`` bytes."""
        return decode_legacy_string(self.read_bytes(size))
