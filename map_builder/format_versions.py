"""
Version-gated field tables.

Each format declares, once, which optional fields exist at which version
instead of scattering comparisons through the decoder.  A decoder resolves
the table to a feature set at the start of a decode and then only asks
``'water' in features``.

Versions are packed as (major << 8) | minor, e.g. 0x0107 for 1.7.
"""

import operator

_OPS = {
    '>=': operator.ge,
    '>': operator.gt,
    '<': operator.lt,
    '<=': operator.le,
    '==': operator.eq,
}


def pack_version(major, minor):
    return ((major & 0xFF) << 8) | (minor & 0xFF)


def format_version(version):
    """0x0107 -> '1.7'"""
    return "{}.{}".format(version >> 8, version & 0xFF)


class VersionRule(object):
    """
    One row of a version table.

    Args:
        feature: Name of the field group the rule enables.
        op: Comparison applied as ``version <op> threshold``.
        threshold: Packed version the comparison is made against.
        build_above: Optional; additionally require build number > this.
    """

    def __init__(self, feature, op, threshold, build_above=None):
        if op not in _OPS:
            raise ValueError("Unknown version comparison: {}".format(op))
        self.feature = feature
        self.op = op
        self.threshold = threshold
        self.build_above = build_above

    def applies(self, version, build=None):
        if not _OPS[self.op](version, self.threshold):
            return False
        if self.build_above is not None:
            return build is not None and build > self.build_above
        return True

    def __repr__(self):
        cond = "version {} 0x{:04X}".format(self.op, self.threshold)
        if self.build_above is not None:
            cond += " and build > {}".format(self.build_above)
        return "VersionRule({!r}: {})".format(self.feature, cond)


class VersionTable(object):
    """Ordered collection of VersionRules for one file format."""

    def __init__(self, name, rules):
        self.name = name
        self.rules = list(rules)
        seen = set()
        for rule in self.rules:
            if rule.feature in seen:
                raise ValueError("Duplicate feature {!r} in {} table".format(
                    rule.feature, name))
            seen.add(rule.feature)

    def features(self, version, build=None):
        """Return the frozenset of feature names enabled at this version."""
        return frozenset(rule.feature for rule in self.rules
                         if rule.applies(version, build))

    def rule(self, feature):
        for r in self.rules:
            if r.feature == feature:
                return r
        raise KeyError(feature)

    def __iter__(self):
        return iter(self.rules)
