"""
The `rustsec_osv` APIs.
"""

from ._version import __version__
from ._version_ranges import (
    AffectedRange,
    Bound,
    Exclusive,
    Inclusive,
    SafeRange,
    Unbounded,
    VersionRangeError,
    affected_ranges,
    increment,
    normalize_requirement,
    ranges_for_advisory,
)

__all__ = [
    "__version__",
    "AffectedRange",
    "Bound",
    "Exclusive",
    "Inclusive",
    "SafeRange",
    "Unbounded",
    "VersionRangeError",
    "affected_ranges",
    "increment",
    "normalize_requirement",
    "ranges_for_advisory",
]
