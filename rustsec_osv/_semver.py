"""
Thin helpers around `semantic_version`, which provides SemVer 2.0 precedence
(including pre-release ordering) for every version handled by `rustsec-osv`.
"""

from __future__ import annotations

from semantic_version import Version  # type: ignore[import-untyped]


class SemVerError(ValueError):
    """
    Raised when a string is not a valid semantic version.
    """

    pass


def make_version(
    major: int, minor: int = 0, patch: int = 0, prerelease: tuple[str, ...] = ()
) -> Version:
    """
    Construct a `Version` from its components, without build metadata.

    Raises a `SemVerError` if the pre-release identifiers are invalid
    (e.g. empty, or numeric with a leading zero).
    """
    try:
        return Version(major=major, minor=minor, patch=patch, prerelease=prerelease)
    except ValueError as exc:
        raise SemVerError(
            f"invalid semantic version: {major}.{minor}.{patch}"
            + (f"-{'.'.join(prerelease)}" if prerelease else "")
        ) from exc


def strip_build(version: Version) -> Version:
    """
    Return `version` without its build metadata, which never takes part in
    precedence.
    """
    if not version.build:
        return version
    return Version(
        major=version.major,
        minor=version.minor,
        patch=version.patch,
        prerelease=version.prerelease,
    )


def is_prerelease(version: Version) -> bool:
    return bool(version.prerelease)
