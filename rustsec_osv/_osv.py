"""
Construction and serialization of [OSV](https://ossf.github.io/osv-schema/)
records from RustSec advisories.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from rustsec_osv._advisory import Advisory
from rustsec_osv._git import GitModificationTimes, GitPath
from rustsec_osv._util import rfc3339
from rustsec_osv._version_ranges import AffectedRange, ranges_for_advisory

ECOSYSTEM = "crates.io"

ADVISORY_URL = "https://rustsec.org/advisories/{id}.html"

CRATE_URL = "https://crates.io/crates/{package}"

SOURCE_URL = "https://github.com/rustsec/advisory-db/blob/main/{path}"


@dataclass(frozen=True)
class OsvReference:
    """
    A link to further information about a vulnerability.
    """

    kind: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "url": self.url}


def range_to_dict(r: AffectedRange) -> dict[str, str]:
    """
    Serialize an affected range as an OSV `SEMVER` range, omitting unbounded sides.
    """
    range_json = {"type": "SEMVER"}
    if r.start is not None:
        range_json["introduced"] = str(r.start)
    if r.end is not None:
        range_json["fixed"] = str(r.end)
    return range_json


@dataclass(frozen=True)
class OsvAdvisory:
    """
    A single advisory in OSV format.
    """

    id: str
    modified: datetime
    published: datetime | None
    package: str
    summary: str
    details: str
    ranges: list[AffectedRange]
    source: GitPath
    withdrawn: datetime | None = None
    aliases: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)
    references: list[OsvReference] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    cvss: str | None = None
    informational: str | None = None
    arch: list[str] = field(default_factory=list)
    os: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)

    @classmethod
    def from_advisory(
        cls, advisory: Advisory, mod_times: GitModificationTimes, path: GitPath
    ) -> OsvAdvisory:
        """
        Convert `advisory`, stored at `path` in the advisory repository, into an
        OSV record.

        Raises a `VersionRangeError` if the advisory's version requirements don't
        describe valid, disjoint ranges, and a `GitError` if `path` has no
        modification time.
        """
        references = [
            OsvReference("PACKAGE", CRATE_URL.format(package=advisory.package)),
            OsvReference("ADVISORY", ADVISORY_URL.format(id=advisory.id)),
        ]
        if advisory.url is not None:
            references.append(OsvReference("WEB", advisory.url))

        return cls(
            id=advisory.id,
            modified=mod_times.for_path(path),
            published=_noon(advisory.date),
            withdrawn=_noon(advisory.withdrawn),
            package=advisory.package,
            summary=advisory.title,
            details=advisory.description,
            ranges=ranges_for_advisory(advisory),
            source=path,
            aliases=list(advisory.aliases),
            related=list(advisory.related),
            references=references,
            categories=list(advisory.categories),
            cvss=advisory.cvss,
            informational=advisory.informational,
            arch=list(advisory.arch),
            os=list(advisory.os),
            functions=sorted(advisory.functions),
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to a dictionary for JSON serialization.
        """
        osv_json: dict[str, Any] = {
            "id": self.id,
            "modified": rfc3339(self.modified),
        }
        if self.published is not None:
            osv_json["published"] = rfc3339(self.published)
        if self.withdrawn is not None:
            osv_json["withdrawn"] = rfc3339(self.withdrawn)
        osv_json.update(
            {
                "aliases": self.aliases,
                "related": self.related,
                "package": {"ecosystem": ECOSYSTEM, "name": self.package},
                "summary": self.summary,
                "details": self.details,
                "affects": {
                    "ranges": [range_to_dict(r) for r in self.ranges],
                    "versions": [],
                },
                "references": [ref.to_dict() for ref in self.references],
                "ecosystem_specific": {
                    "affects": {
                        "arch": self.arch,
                        "os": self.os,
                        "functions": self.functions,
                    },
                },
                "database_specific": {
                    "categories": self.categories,
                    "cvss": self.cvss,
                    "informational": self.informational,
                    "source": SOURCE_URL.format(path=self.source.as_posix()),
                },
            }
        )
        return osv_json

    def to_json(self) -> str:
        """
        Serialize this record as pretty-printed JSON.
        """
        return json.dumps(self.to_dict(), indent=2)


def _noon(day: date | None) -> datetime | None:
    # Advisories only record a date; OSV wants a timestamp.
    if day is None:
        return None
    return datetime(day.year, day.month, day.day, 12, 0, 0)
