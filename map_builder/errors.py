"""
Exception taxonomy for the map format decoders.

Every decode failure derives from MapFormatError, itself a ValueError, and
records which section of the file was being read and the byte offset at
which the failing read started.  Format and version mismatches are the
dominant real-world failure, so both are always part of the message:

    cells @ 0x1A4C: need 28 bytes, 12 available
"""


class MapFormatError(ValueError):
    """Base class for all GND/RSW/GAT decode failures."""

    def __init__(self, section, offset, detail):
        self.section = section
        self.offset = offset
        self.detail = detail
        super(MapFormatError, self).__init__(
            "{} @ 0x{:X}: {}".format(section, offset, detail))


class BadMagicError(MapFormatError):
    """File signature does not match the expected 4-byte magic."""

    def __init__(self, expected, found):
        self.expected = expected
        self.found = found
        super(BadMagicError, self).__init__(
            'header', 0,
            "bad magic: expected {!r}, got {!r}".format(expected, found))


class TruncatedDataError(MapFormatError):
    """A read would run past the end of the buffer."""

    def __init__(self, section, offset, needed, available):
        self.needed = needed
        self.available = available
        super(TruncatedDataError, self).__init__(
            section, offset,
            "need {} bytes, {} available".format(needed, available))


class InvalidDimensionError(MapFormatError):
    """A declared grid or cell dimension is non-positive or too large."""


class InvalidCountError(MapFormatError):
    """A declared element count is negative or above its sanity ceiling."""


class UnsupportedVersionError(MapFormatError):
    """The file declares a version whose layout is not known exactly."""


class UnknownObjectTypeError(MapFormatError):
    """
    A world object record carries a type tag outside 1..4.

    Decoding stops at the record; ``partial`` is a SceneModel holding every
    object decoded before it.
    """

    def __init__(self, offset, object_type, index, partial):
        self.object_type = object_type
        self.index = index
        self.partial = partial
        super(UnknownObjectTypeError, self).__init__(
            'objects', offset,
            "unknown object type {} at index {}".format(object_type, index))


class BuildCancelled(Exception):
    """Raised by the mesh/bake pipeline when its cancel event is set."""
