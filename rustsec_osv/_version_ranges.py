"""
Transforms advisory version requirements into `[start, end)` ranges of
affected versions, where the start version is always inclusive and the end
version is always exclusive.

Advisories declare which versions are *not* affected (their "patched" and
"unaffected" requirements); OSV wants the versions that *are*. This module
normalizes each requirement into a `SafeRange`, checks that the safe ranges
are disjoint, and emits their complement as a list of `AffectedRange`s.

Pre-release versions are ordered with full SemVer 2.0 precedence, which is
why the exclusive/inclusive conversions go through `increment` rather than
through requirement matching.
"""

from __future__ import annotations

import enum
import itertools
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence, Union

from semantic_version import Version  # type: ignore[import-untyped]

from rustsec_osv._semver import SemVerError, is_prerelease, make_version, strip_build
from rustsec_osv._util import assert_never

if TYPE_CHECKING:  # pragma: no cover
    from rustsec_osv._advisory import Advisory

logger = logging.getLogger(__name__)


class VersionRangeError(Exception):
    """
    Raised when version ranges cannot be computed for an advisory.

    Every failure in this module is a specialization of this exception; none
    of them is transient.
    """

    pass


class MalformedRequirementError(VersionRangeError):
    """
    Raised when a version requirement has a shape that cannot be turned into
    a single contiguous range.
    """

    pass


class ConflictingBoundError(MalformedRequirementError):
    """
    Raised when a requirement declares more than one lower or more than one
    upper bound.
    """

    pass


class UnsupportedComparatorError(MalformedRequirementError):
    """
    Raised when a requirement uses a comparator that is not supported in
    "patched" or "unaffected" declarations, such as `=` or a wildcard.
    """

    pass


class InvalidRangeError(VersionRangeError):
    """
    Raised when a range's start lies after its end.
    """

    pass


class OverlappingRangesError(VersionRangeError):
    """
    Raised when two safe ranges of the same advisory overlap.
    """

    pass


class EmptyRangeSetError(VersionRangeError):
    """
    Raised when the affected ranges of an empty set of safe ranges are requested.
    """

    pass


class UnsupportedIncrementError(VersionRangeError):
    """
    Raised when the successor of a pre-release version is requested.
    """

    pass


@dataclass(frozen=True)
class Bound:
    """
    One edge of a version range.

    This class cannot be constructed directly: use `Unbounded`, `Inclusive`
    or `Exclusive`, or `Bound.at`.
    """

    def __init__(self, *_args: Any, **_kwargs: Any) -> None:
        """
        A stub constructor that always fails.
        """
        raise NotImplementedError

    @staticmethod
    def at(version: Version | None, inclusive: bool) -> Bound:
        """
        Returns the bound at `version`, or `UNBOUNDED` if `version` is `None`.
        """
        if version is None:
            return UNBOUNDED
        return Inclusive(version) if inclusive else Exclusive(version)

    def position(self) -> Version | None:
        """
        The version this bound sits at, ignoring inclusivity, or `None` if unbounded.
        """
        return None

    def is_unbounded(self) -> bool:
        return self.position() is None

    def is_inclusive(self) -> bool:
        return self.__class__ is Inclusive


@dataclass(frozen=True)
class Unbounded(Bound):
    """
    No constraint in this direction.
    """

    def __str__(self) -> str:
        return "*"


@dataclass(frozen=True)
class _Positioned(Bound):
    version: Version

    def __post_init__(self) -> None:
        # Build metadata never takes part in precedence, but `Version.__eq__`
        # still compares it, so it is dropped here once and for all.
        object.__setattr__(self, "version", strip_build(self.version))

    def position(self) -> Version:
        return self.version


@dataclass(frozen=True)
class Inclusive(_Positioned):
    """
    A bound that includes its version.
    """

    def __str__(self) -> str:
        return f"={self.version}"


@dataclass(frozen=True)
class Exclusive(_Positioned):
    """
    A bound that excludes its version.
    """

    def __str__(self) -> str:
        return f"!{self.version}"


UNBOUNDED = Unbounded()


def _less_or_equal(a: Bound, b: Bound) -> bool:
    # Open bounds touching at the same point do not overlap; only two
    # inclusive bounds share their point.
    a_version, b_version = a.position(), b.position()
    if a_version is None or b_version is None:
        return True
    if a_version == b_version:
        return a.is_inclusive() and b.is_inclusive()
    return bool(a_version < b_version)


@dataclass(frozen=True)
class SafeRange:
    """
    A contiguous range of versions that are *not* affected by a vulnerability,
    as declared by an advisory's "patched" or "unaffected" requirements.

    Bounds may be inclusive or exclusive.
    """

    start: Bound = UNBOUNDED
    """
    The lower edge of the range.
    """

    end: Bound = UNBOUNDED
    """
    The upper edge of the range.
    """

    def is_valid(self) -> bool:
        """
        Returns whether the range is well-formed, i.e. its start does not lie
        after its end. A single-version range (equal positions) is valid as
        long as at least one side includes that version.
        """
        start, end = self.start.position(), self.end.position()
        if start is None or end is None:
            return True
        if start < end:
            return True
        if start == end:
            return self.start.is_inclusive() or self.end.is_inclusive()
        return False

    def overlaps(self, other: SafeRange) -> bool:
        """
        Returns whether this range shares at least one point with `other`.

        Raises an `InvalidRangeError` if either range is not valid.
        """
        for r in (self, other):
            if not r.is_valid():
                raise InvalidRangeError(f"invalid range: {r}")

        return _less_or_equal(self.start, other.end) and _less_or_equal(other.start, self.end)

    def contains(self, version: Version) -> bool:
        """
        Returns whether `version` lies within this range.
        """
        version = strip_build(version)
        start, end = self.start.position(), self.end.position()
        if start is not None:
            if version < start or (version == start and not self.start.is_inclusive()):
                return False
        if end is not None:
            if version > end or (version == end and not self.end.is_inclusive()):
                return False
        return True

    def __str__(self) -> str:
        start, end = self.start.position(), self.end.position()
        left = "(*" if start is None else f"({start}"
        if self.start.is_inclusive():
            left = f"[{start}"
        right = "*)" if end is None else f"{end})"
        if self.end.is_inclusive():
            right = f"{end}]"
        return f"{left}, {right}"


@dataclass(frozen=True)
class AffectedRange:
    """
    A range of affected versions, in OSV form: every version `v` with
    `start <= v < end` is affected.

    If either bound is `None`, all versions in that direction are affected.
    """

    start: Version | None = None
    """
    The first affected version (inclusive).
    """

    end: Version | None = None
    """
    The first version past the range (exclusive).
    """

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", strip_build(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", strip_build(self.end))

    def is_empty(self) -> bool:
        """
        Returns whether no version can lie within this range.
        """
        return self.start is not None and self.end is not None and self.start >= self.end

    def contains(self, version: Version) -> bool:
        """
        Returns whether `version` lies within this range.
        """
        version = strip_build(version)
        if self.start is not None and version < self.start:
            return False
        if self.end is not None and version >= self.end:
            return False
        return True

    def __str__(self) -> str:
        start = "*" if self.start is None else str(self.start)
        end = "*" if self.end is None else str(self.end)
        return f"[{start}, {end})"


@enum.unique
class Op(str, enum.Enum):
    """
    Comparison operators understood in version requirements.
    """

    Exact = "="
    Greater = ">"
    GreaterEq = ">="
    Less = "<"
    LessEq = "<="
    Tilde = "~"
    Caret = "^"
    Wildcard = "*"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Comparator:
    """
    A single clause of a version requirement, such as `>= 1.2`.

    `minor` and `patch` are `None` when the clause leaves them out.
    """

    op: Op
    major: int
    minor: int | None = None
    patch: int | None = None
    pre: tuple[str, ...] = ()

    def to_version(self) -> Version:
        """
        Strips the operator and returns the clause's version, with omitted
        components filled in as zero and build metadata discarded.

        Raises a `MalformedRequirementError` if the pre-release identifiers are
        not valid SemVer.
        """
        try:
            return make_version(self.major, self.minor or 0, self.patch or 0, self.pre)
        except SemVerError as exc:
            raise MalformedRequirementError(f"invalid version in comparator {self}") from exc

    def __str__(self) -> str:
        parts = [str(self.major)]
        if self.minor is not None:
            parts.append(str(self.minor))
        if self.patch is not None:
            parts.append(str(self.patch))
        version = ".".join(parts)
        if self.pre:
            version += "-" + ".".join(self.pre)
        if self.op is Op.Wildcard:
            return f"{version}.*"
        return f"{self.op} {version}"


_COMPARATOR_RE = re.compile(
    r"""
    ^(?P<op>>=|<=|>|<|=|~|\^)?\s*
    (?P<major>\d+|[*xX])
    (?:\.(?P<minor>\d+|[*xX]))?
    (?:\.(?P<patch>\d+|[*xX]))?
    (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$
    """,
    re.VERBOSE,
)

_WILDCARDS = {"*", "x", "X"}


def parse_comparator(clause: str) -> Comparator:
    """
    Parse a single requirement clause, such as `>= 1.2.3` or `^0.4`.

    A clause without an operator is a caret clause, as in Cargo.

    Raises a `MalformedRequirementError` if `clause` cannot be parsed.
    """
    match = _COMPARATOR_RE.match(clause.strip())
    if match is None:
        raise MalformedRequirementError(f"unparsable version comparator: {clause!r}")

    components = [match.group("major"), match.group("minor"), match.group("patch")]
    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()

    if any(c in _WILDCARDS for c in components if c is not None):
        if match.group("op") not in (None, "=") or pre:
            raise MalformedRequirementError(f"unparsable version comparator: {clause!r}")
        # Everything up to the first wildcard is significant.
        numbers: list[int | None] = []
        for c in components:
            if c is None or c in _WILDCARDS:
                break
            numbers.append(int(c))
        if not numbers:
            return Comparator(Op.Wildcard, 0)
        numbers += [None] * (3 - len(numbers))
        return Comparator(Op.Wildcard, numbers[0], numbers[1], numbers[2])  # type: ignore[arg-type]

    op = Op(match.group("op")) if match.group("op") else Op.Caret
    minor = int(components[1]) if components[1] is not None else None
    patch = int(components[2]) if components[2] is not None else None
    return Comparator(op, int(components[0]), minor, patch, pre)


def parse_requirement(requirement: str) -> list[Comparator]:
    """
    Parse a comma-separated version requirement, such as `>= 1.2.3, < 1.5`,
    into its comparator clauses.

    Raises a `MalformedRequirementError` if the requirement is empty, uses
    `||` alternation, or contains an unparsable clause.
    """
    if "||" in requirement:
        raise MalformedRequirementError(
            f"alternations are not supported in a single requirement: {requirement!r}"
        )
    clauses = [c.strip() for c in requirement.split(",")]
    if not any(clauses):
        raise MalformedRequirementError("empty version requirement")
    return [parse_comparator(c) for c in clauses]


def _expand(comparator: Comparator) -> list[tuple[Op, Version]]:
    """
    Resolve a comparator into plain lower/upper bound clauses, expanding
    caret and tilde clauses the way Cargo does.
    """
    op = comparator.op
    if op in (Op.Greater, Op.GreaterEq, Op.Less, Op.LessEq):
        return [(op, comparator.to_version())]
    if op is Op.Exact:
        # Declaring a single unaffected version is not something advisories do.
        raise UnsupportedComparatorError(f"exact version comparator is not supported: {comparator}")
    if op is Op.Wildcard:
        raise UnsupportedComparatorError(f"wildcard comparator is not supported: {comparator}")

    major, minor, patch = comparator.major, comparator.minor, comparator.patch
    lower = comparator.to_version()
    if op is Op.Tilde:
        if minor is None:
            upper = make_version(major + 1)
        else:
            upper = make_version(major, minor + 1)
    elif op is Op.Caret:
        if major > 0 or minor is None:
            upper = make_version(major + 1)
        elif minor > 0 or patch is None:
            upper = make_version(0, minor + 1)
        else:
            upper = make_version(0, 0, patch + 1)
    else:
        assert_never(op)  # pragma: no cover
    return [(Op.GreaterEq, lower), (Op.Less, upper)]


Requirement = Union[str, Sequence[Comparator]]


def normalize_requirement(requirement: Requirement) -> SafeRange:
    """
    Convert a single "patched" or "unaffected" requirement into a `SafeRange`.

    To keep the conversion simple, requirements are restricted to:

    1. At most two comparator clauses. Unions of ranges are expressed in
       advisories as separate requirements, not within one.
    2. At most one lower and at most one upper bound. Stuff like
       `>= 1.0, >= 2.0` is nonsense.

    Raises a `MalformedRequirementError` (or one of its specializations) if
    these restrictions are violated, and an `InvalidRangeError` if the
    resulting range is empty.
    """
    comparators = parse_requirement(requirement) if isinstance(requirement, str) else requirement
    described = ", ".join(str(c) for c in comparators)
    if len(comparators) > 2:
        raise MalformedRequirementError(
            f"unsupported version requirement, too many comparators: {described}"
        )

    start: Bound = UNBOUNDED
    end: Bound = UNBOUNDED
    for comparator in comparators:
        for op, version in _expand(comparator):
            if op in (Op.Greater, Op.GreaterEq):
                if not start.is_unbounded():
                    raise ConflictingBoundError(
                        f"more than one lower bound in the same requirement: {described}"
                    )
                start = Bound.at(version, inclusive=op is Op.GreaterEq)
            else:
                if not end.is_unbounded():
                    raise ConflictingBoundError(
                        f"more than one upper bound in the same requirement: {described}"
                    )
                end = Bound.at(version, inclusive=op is Op.LessEq)

    result = SafeRange(start, end)
    if not result.is_valid():
        raise InvalidRangeError(f"requirement {described} describes an empty range {result}")
    return result


def validate_safe_ranges(ranges: Sequence[SafeRange]) -> None:
    """
    Check that every range is valid and that no two ranges overlap.

    The check is quadratic, which is fine for the handful of ranges a single
    advisory declares.

    Raises an `InvalidRangeError` or an `OverlappingRangesError`.
    """
    for r in ranges:
        if not r.is_valid():
            raise InvalidRangeError(f"invalid range: {r}")

    for a, b in itertools.combinations(ranges, 2):
        if a.overlaps(b):
            raise OverlappingRangesError(f"ranges {a} and {b} overlap")


def increment(version: Version) -> Version:
    """
    Returns the lowest version that is strictly greater than `version`.

    For a release version this bumps the patch component and adds `0` as the
    pre-release identifier, e.g. `1.2.3` becomes `1.2.4-0`: every pre-release
    of `1.2.4` sorts below `1.2.4`, and `0` is the lowest pre-release there is.

    Raises an `UnsupportedIncrementError` for pre-release versions.
    """
    if is_prerelease(version):
        # TODO: bump the trailing numeric identifier (or append `.0`) instead.
        raise UnsupportedIncrementError(
            f"cannot compute the successor of pre-release version {version}"
        )
    return make_version(version.major, version.minor, version.patch + 1, ("0",))


def _affected_end(bound: Bound) -> Version:
    # The start of a safe range becomes the exclusive end of the affected
    # range right below it.
    if isinstance(bound, Inclusive):
        return bound.version
    elif isinstance(bound, Exclusive):
        return increment(bound.version)
    raise AssertionError(f"unbounded start after the first range: {bound}")  # pragma: no cover


def _affected_start(bound: Bound) -> Version:
    # The end of a safe range becomes the inclusive start of the affected
    # range right above it.
    if isinstance(bound, Exclusive):
        return bound.version
    elif isinstance(bound, Inclusive):
        return increment(bound.version)
    raise AssertionError(f"unbounded end before the last range: {bound}")  # pragma: no cover


def _start_key(r: SafeRange) -> tuple:
    position = r.start.position()
    if position is None:
        return (0,)
    return (1, position, 0 if r.start.is_inclusive() else 1)


def _coalesce(ranges: list[AffectedRange]) -> list[AffectedRange]:
    result: list[AffectedRange] = []
    for r in ranges:
        if r.is_empty():
            logger.debug(f"dropping empty affected range {r}")
            continue
        if result and result[-1].end is not None and result[-1].end == r.start:
            logger.debug(f"merging contiguous affected ranges {result[-1]} and {r}")
            result[-1] = AffectedRange(result[-1].start, r.end)
        else:
            result.append(r)
    return result


def affected_ranges(
    safe_ranges: Sequence[SafeRange], *, coalesce: bool = True
) -> list[AffectedRange]:
    """
    Converts a list of safe ranges into the list of ranges they leave uncovered.

    Since affected ranges are the negation of the safe ranges, all of an
    advisory's safe ranges (both "patched" and "unaffected") have to be passed
    at once.

    Safe ranges that meet back to back (one bound inclusive, the other
    exclusive, at the same version) leave an empty gap, and a safe range with
    no versions inside it leaves two contiguous affected ranges. With
    `coalesce` (the default) empty ranges are dropped and contiguous ranges
    are merged; without it the raw, non-coalesced gaps are returned.

    Raises an `EmptyRangeSetError` if `safe_ranges` is empty, and an
    `InvalidRangeError` or `OverlappingRangesError` if the safe ranges are not
    valid and pairwise disjoint.
    """
    if not safe_ranges:
        raise EmptyRangeSetError("at least one safe range is required")

    validate_safe_ranges(safe_ranges)

    # Disjoint ranges ordered by their starts are also ordered by their ends.
    ordered = sorted(safe_ranges, key=_start_key)

    result: list[AffectedRange] = []

    first = ordered[0].start
    if not first.is_unbounded():
        result.append(AffectedRange(None, _affected_end(first)))

    for lower, upper in zip(ordered, ordered[1:]):
        result.append(AffectedRange(_affected_start(lower.end), _affected_end(upper.start)))

    last = ordered[-1].end
    if not last.is_unbounded():
        result.append(AffectedRange(_affected_start(last), None))

    if coalesce:
        result = _coalesce(result)
    return result


def ranges_for_advisory(
    advisory: Advisory, *, coalesce: bool = True
) -> list[AffectedRange]:
    """
    Returns the OSV ranges of all affected versions in the given advisory.

    An advisory that declares neither "unaffected" nor "patched" versions
    affects every version.
    """
    safe = [normalize_requirement(req) for req in advisory.unaffected]
    safe += [normalize_requirement(req) for req in advisory.patched]
    if not safe:
        logger.debug(f"{advisory.id}: no patched or unaffected versions, all versions affected")
        return [AffectedRange()]
    return affected_ranges(safe, coalesce=coalesce)
