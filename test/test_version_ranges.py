"""Tests for safe range validation and affected range generation."""

import pytest

from rustsec_osv._advisory import Advisory
from rustsec_osv._version_ranges import (
    UNBOUNDED,
    AffectedRange,
    Bound,
    EmptyRangeSetError,
    Exclusive,
    Inclusive,
    InvalidRangeError,
    OverlappingRangesError,
    SafeRange,
    UnsupportedIncrementError,
    affected_ranges,
    increment,
    normalize_requirement,
    ranges_for_advisory,
    validate_safe_ranges,
)


class TestBound:
    def test_bound_cannot_be_constructed(self):
        with pytest.raises(NotImplementedError):
            Bound()

    def test_positions(self, version):
        assert UNBOUNDED.position() is None
        assert UNBOUNDED.is_unbounded()
        assert Inclusive(version("1.0.0")).position() == version("1.0.0")
        assert Exclusive(version("1.0.0")).position() == version("1.0.0")
        assert not Exclusive(version("1.0.0")).is_unbounded()

    def test_inclusivity(self, version):
        assert Inclusive(version("1.0.0")).is_inclusive()
        assert not Exclusive(version("1.0.0")).is_inclusive()
        assert not UNBOUNDED.is_inclusive()

    def test_at(self, version):
        assert Bound.at(None, inclusive=True) is UNBOUNDED
        assert Bound.at(None, inclusive=False) is UNBOUNDED
        assert Bound.at(version("1.0.0"), inclusive=True) == Inclusive(version("1.0.0"))
        assert Bound.at(version("1.0.0"), inclusive=False) == Exclusive(version("1.0.0"))

    def test_build_metadata_dropped(self, version):
        bound = Inclusive(version("1.0.0+sha.5114f85"))
        assert bound == Inclusive(version("1.0.0"))
        assert not bound.position().build
        assert Exclusive(version("1.0.0+a")) == Exclusive(version("1.0.0+b"))
        assert str(bound) == "=1.0.0"


class TestSafeRange:
    def test_defaults_to_everything(self, version):
        r = SafeRange()
        assert r.start == UNBOUNDED
        assert r.end == UNBOUNDED
        assert r.is_valid()
        assert r.contains(version("0.0.0"))
        assert r.contains(version("99.0.0-alpha"))

    @pytest.mark.parametrize(
        "start, end, valid",
        [
            (Inclusive, Inclusive, True),
            (Inclusive, Exclusive, True),
            (Exclusive, Inclusive, True),
            (Exclusive, Exclusive, False),
        ],
    )
    def test_single_point_validity(self, version, start, end, valid):
        v = version("1.0.0")
        assert SafeRange(start(v), end(v)).is_valid() == valid

    def test_reversed_is_invalid(self, version):
        assert not SafeRange(Inclusive(version("2.0.0")), Inclusive(version("1.0.0"))).is_valid()

    def test_contains(self, version):
        r = SafeRange(Exclusive(version("1.0.0")), Inclusive(version("2.0.0")))
        assert not r.contains(version("1.0.0"))
        assert r.contains(version("1.0.1-0"))
        assert r.contains(version("2.0.0-rc.1"))
        assert r.contains(version("2.0.0"))
        assert not r.contains(version("2.0.1-0"))

    def test_build_metadata_ignored(self, version):
        assert SafeRange(Inclusive(version("1.0.0+b")), Inclusive(version("1.0.0"))).is_valid()
        r = SafeRange(Exclusive(version("1.0.0")), Inclusive(version("2.0.0")))
        assert not r.contains(version("1.0.0+build.5"))
        assert r.contains(version("2.0.0+build.5"))

    def test_str(self, version):
        assert str(SafeRange()) == "(*, *)"
        assert (
            str(SafeRange(Inclusive(version("1.0.0")), Exclusive(version("2.0.0"))))
            == "[1.0.0, 2.0.0)"
        )
        assert str(SafeRange(Exclusive(version("1.0.0")))) == "(1.0.0, *)"


class TestOverlaps:
    def test_both_unbounded(self):
        assert SafeRange().overlaps(SafeRange())

    def test_barely_not_overlapping(self, version):
        a = SafeRange(UNBOUNDED, Exclusive(version("1.0.0")))
        b = SafeRange(Inclusive(version("1.0.0")), UNBOUNDED)
        assert not a.overlaps(b)
        assert not b.overlaps(a)

    def test_barely_overlapping(self, version):
        a = SafeRange(UNBOUNDED, Inclusive(version("1.0.0")))
        b = SafeRange(Inclusive(version("1.0.0")), UNBOUNDED)
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_overlapping_despite_build_metadata(self, version):
        a = SafeRange(Inclusive(version("1.0.0+a")), UNBOUNDED)
        b = SafeRange(UNBOUNDED, Inclusive(version("1.0.0")))
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_clearly_not_overlapping(self, version):
        a = SafeRange(UNBOUNDED, Exclusive(version("1.0.0")))
        b = SafeRange(Inclusive(version("2.0.0")), UNBOUNDED)
        assert not a.overlaps(b)

    def test_clearly_overlapping(self, version):
        a = SafeRange(Inclusive(version("1.0.0")), Exclusive(version("3.0.0")))
        b = SafeRange(Inclusive(version("2.0.0")), Exclusive(version("4.0.0")))
        assert a.overlaps(b)

    def test_invalid_range_rejected(self, version):
        invalid = SafeRange(Inclusive(version("2.0.0")), Inclusive(version("1.0.0")))
        with pytest.raises(InvalidRangeError):
            SafeRange().overlaps(invalid)
        with pytest.raises(InvalidRangeError):
            invalid.overlaps(SafeRange())


class TestValidateSafeRanges:
    def test_disjoint(self, version):
        validate_safe_ranges(
            [
                SafeRange(UNBOUNDED, Exclusive(version("1.0.0"))),
                SafeRange(Inclusive(version("1.0.0")), UNBOUNDED),
            ]
        )

    def test_overlap(self, version):
        with pytest.raises(OverlappingRangesError):
            validate_safe_ranges(
                [
                    SafeRange(Inclusive(version("0.1.0")), Inclusive(version("1.1.0"))),
                    SafeRange(Inclusive(version("0.2.0")), Inclusive(version("1.3.0"))),
                ]
            )

    def test_overlap_at_build_variant(self, version):
        safe = [
            SafeRange(UNBOUNDED, Inclusive(version("1.0.0"))),
            SafeRange(Inclusive(version("1.0.0+a")), UNBOUNDED),
        ]
        with pytest.raises(OverlappingRangesError):
            validate_safe_ranges(safe)
        with pytest.raises(OverlappingRangesError):
            affected_ranges(safe)

    def test_invalid(self, version):
        with pytest.raises(InvalidRangeError):
            validate_safe_ranges(
                [SafeRange(Exclusive(version("1.0.0")), Exclusive(version("1.0.0")))]
            )


class TestIncrement:
    def test_release(self, version):
        assert increment(version("1.2.3")) == version("1.2.4-0")

    def test_zero(self, version):
        assert increment(version("0.0.0")) == version("0.0.1-0")

    def test_successor_is_tight(self, version):
        v = version("1.2.3")
        assert v < version("1.2.4-0") == increment(v)
        assert increment(v) < version("1.2.4-alpha")
        assert increment(v) < version("1.2.4")

    def test_prerelease_unsupported(self, version):
        with pytest.raises(UnsupportedIncrementError):
            increment(version("1.2.3-alpha.1"))


class TestAffectedRanges:
    def test_patched_from(self, version):
        safe = [normalize_requirement(">= 1.2.3")]
        assert safe == [SafeRange(Inclusive(version("1.2.3")), UNBOUNDED)]
        assert affected_ranges(safe) == [AffectedRange(None, version("1.2.3"))]

    def test_unaffected_before(self, version):
        safe = [normalize_requirement("< 2.0.0")]
        assert safe == [SafeRange(UNBOUNDED, Exclusive(version("2.0.0")))]
        assert affected_ranges(safe) == [AffectedRange(version("2.0.0"), None)]

    def test_inclusive_gaps(self, version):
        safe = [
            SafeRange(Inclusive(version("0.1.0")), Inclusive(version("0.3.0"))),
            SafeRange(Inclusive(version("1.1.0")), Inclusive(version("1.3.0"))),
        ]
        assert affected_ranges(safe) == [
            AffectedRange(None, version("0.1.0")),
            AffectedRange(version("0.3.1-0"), version("1.1.0")),
            AffectedRange(version("1.3.1-0"), None),
        ]
        # The raw gaps use the same conversions; only the closing pass is skipped.
        raw = affected_ranges(safe, coalesce=False)
        assert raw == affected_ranges(safe)
        assert AffectedRange(version("0.3.0"), version("1.1.1-0")) not in raw

    def test_exclusive_gaps(self, version):
        safe = [
            SafeRange(Exclusive(version("0.1.0")), Exclusive(version("0.3.0"))),
            SafeRange(Exclusive(version("1.1.0")), Exclusive(version("1.3.0"))),
        ]
        assert affected_ranges(safe) == [
            AffectedRange(None, version("0.1.1-0")),
            AffectedRange(version("0.3.0"), version("1.1.1-0")),
            AffectedRange(version("1.3.0"), None),
        ]

    def test_input_order_irrelevant(self, version):
        safe = [
            SafeRange(Inclusive(version("1.1.0")), Inclusive(version("1.3.0"))),
            SafeRange(Inclusive(version("0.1.0")), Inclusive(version("0.3.0"))),
        ]
        assert affected_ranges(safe) == affected_ranges(list(reversed(safe)))

    def test_overlapping(self, version):
        safe = [
            SafeRange(Inclusive(version("0.1.0")), Inclusive(version("1.1.0"))),
            SafeRange(Inclusive(version("0.2.0")), Inclusive(version("1.3.0"))),
        ]
        with pytest.raises(OverlappingRangesError):
            affected_ranges(safe)

    def test_fully_unbounded(self):
        assert affected_ranges([SafeRange()]) == []

    def test_empty_input(self):
        with pytest.raises(EmptyRangeSetError):
            affected_ranges([])

    def test_prerelease_bound_needs_increment(self, version):
        with pytest.raises(UnsupportedIncrementError):
            affected_ranges([SafeRange(Exclusive(version("1.0.0-alpha")), UNBOUNDED)])

    def test_equal_starts(self, version):
        point = SafeRange(Inclusive(version("1.0.0")), Inclusive(version("1.0.0")))
        after = SafeRange(Exclusive(version("1.0.0")), Exclusive(version("2.0.0")))
        expected = [
            AffectedRange(None, version("1.0.0")),
            AffectedRange(version("2.0.0"), None),
        ]
        assert affected_ranges([point, after]) == expected
        assert affected_ranges([after, point]) == expected

    def test_prerelease_positions(self, version):
        safe = [SafeRange(Inclusive(version("1.0.0-rc.1")), Exclusive(version("1.0.0")))]
        assert affected_ranges(safe) == [
            AffectedRange(None, version("1.0.0-rc.1")),
            AffectedRange(version("1.0.0"), None),
        ]


class TestCoalescing:
    def test_back_to_back_inclusive_end(self, version):
        safe = [
            SafeRange(UNBOUNDED, Inclusive(version("1.0.0"))),
            SafeRange(Exclusive(version("1.0.0")), UNBOUNDED),
        ]
        assert affected_ranges(safe, coalesce=False) == [
            AffectedRange(version("1.0.1-0"), version("1.0.1-0"))
        ]
        assert affected_ranges(safe) == []

    def test_back_to_back_exclusive_end(self, version):
        safe = [
            SafeRange(UNBOUNDED, Exclusive(version("1.0.0"))),
            SafeRange(Inclusive(version("1.0.0")), UNBOUNDED),
        ]
        assert affected_ranges(safe, coalesce=False) == [
            AffectedRange(version("1.0.0"), version("1.0.0"))
        ]
        assert affected_ranges(safe) == []

    def test_range_without_versions(self, version):
        # Nothing lies strictly between 1.0.0 and its successor.
        safe = [SafeRange(Exclusive(version("1.0.0")), Exclusive(version("1.0.1-0")))]
        assert affected_ranges(safe, coalesce=False) == [
            AffectedRange(None, version("1.0.1-0")),
            AffectedRange(version("1.0.1-0"), None),
        ]
        assert affected_ranges(safe) == [AffectedRange()]

    def test_partial_merge(self, version):
        safe = [
            SafeRange(UNBOUNDED, Exclusive(version("1.0.0"))),
            SafeRange(Exclusive(version("2.0.0")), Exclusive(version("2.0.1-0"))),
            SafeRange(Inclusive(version("3.0.0")), UNBOUNDED),
        ]
        assert affected_ranges(safe) == [AffectedRange(version("1.0.0"), version("3.0.0"))]


class TestAffectedRange:
    def test_is_empty(self, version):
        assert not AffectedRange().is_empty()
        assert not AffectedRange(version("1.0.0"), None).is_empty()
        assert AffectedRange(version("1.0.0"), version("1.0.0")).is_empty()
        assert AffectedRange(version("2.0.0"), version("1.0.0")).is_empty()

    def test_contains(self, version):
        r = AffectedRange(version("1.0.0"), version("2.0.0"))
        assert r.contains(version("1.0.0"))
        assert r.contains(version("2.0.0-alpha"))
        assert not r.contains(version("2.0.0"))
        assert not r.contains(version("1.0.0-rc.1"))
        assert not r.contains(version("2.0.0+build.5"))

    def test_build_metadata_dropped(self, version):
        r = AffectedRange(version("1.0.0+a"), version("1.0.0+b"))
        assert r == AffectedRange(version("1.0.0"), version("1.0.0"))
        assert r.is_empty()

    def test_str(self, version):
        assert str(AffectedRange()) == "[*, *)"
        assert str(AffectedRange(None, version("1.2.3"))) == "[*, 1.2.3)"


class TestRangesForAdvisory:
    def test_patched_and_unaffected(self, version):
        advisory = Advisory(
            id="RUSTSEC-2019-0001",
            package="ammonia",
            patched=[">= 2.1.0"],
            unaffected=["< 1.0.0"],
        )
        assert ranges_for_advisory(advisory) == [AffectedRange(version("1.0.0"), version("2.1.0"))]

    def test_caret_patches(self, version):
        advisory = Advisory(
            id="RUSTSEC-2021-0003",
            package="smallvec",
            patched=["^0.6.14", ">= 1.6.1"],
        )
        assert ranges_for_advisory(advisory) == [
            AffectedRange(None, version("0.6.14")),
            AffectedRange(version("0.7.0"), version("1.6.1")),
        ]

    def test_no_requirements(self):
        advisory = Advisory(id="RUSTSEC-2020-0001", package="everything")
        assert ranges_for_advisory(advisory) == [AffectedRange()]

    def test_contradictory(self):
        advisory = Advisory(
            id="RUSTSEC-2020-0002",
            package="broken",
            patched=[">= 1.0.0"],
            unaffected=["< 1.5.0"],
        )
        with pytest.raises(OverlappingRangesError):
            ranges_for_advisory(advisory)
