"""Requirement-string helpers for cargo dependency declarations."""

from packaging import version as pkg_version

WILDCARD = '*'

# Longest operators first so '>=' is not read as '>'
_OPERATORS = ('>=', '<=', '^', '~', '=', '>', '<')


def normalize_requirement(req):
    """
    Normalize a cargo version requirement for writing back into a manifest.

    cargo reports the manifest requirement "1.0" as "^1.0", so a single caret
    comparator is written back in its bare form. Anything else is kept as is.

    Args:
        req: Requirement string (e.g., "^1.0", ">=1, <2", "*") or None

    Returns:
        Normalized requirement string, "*" when absent
    """
    if req is None:
        return WILDCARD

    req = str(req).strip()
    if not req:
        return WILDCARD

    if req.startswith('^') and ',' not in req:
        return req[1:].strip()

    return req


def canonicalize_version(ver_str):
    """
    Parse a bare version (no operator) into a packaging Version.

    "2.0" and "2.0.0" canonicalize to equal objects.

    Returns:
        packaging.version.Version object or None if parsing fails
    """
    if not ver_str or ver_str == WILDCARD:
        return None

    ver_str = str(ver_str).strip().strip('"')

    try:
        return pkg_version.parse(ver_str)
    except (pkg_version.InvalidVersion, ValueError):
        return None


def _split_operator(comparator):
    for op in _OPERATORS:
        if comparator.startswith(op):
            return op, comparator[len(op):].strip()
    # bare versions are caret requirements in cargo
    return '^', comparator


def requirement_key(req):
    """
    Build a comparison key for a requirement string.

    Each comparator becomes (operator, canonical version); comparators whose
    version does not parse keep their raw text. "1.0" and "^1.0.0" share a key.
    """
    req = normalize_requirement(req)
    if req == WILDCARD:
        return ((WILDCARD, None),)

    key = []
    for comparator in req.split(','):
        comparator = comparator.strip()
        if not comparator:
            continue
        op, ver = _split_operator(comparator)
        parsed = canonicalize_version(ver)
        key.append((op, parsed if parsed is not None else ver))

    return tuple(sorted(key, key=str))


def requirements_diverge(reqs):
    """True if the requirements do not all describe the same constraint."""
    return len({requirement_key(req) for req in reqs}) > 1
