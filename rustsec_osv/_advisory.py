"""
Loading of RustSec advisory files.

Advisories come in two formats: Markdown files (`.md`) with the advisory
metadata in a leading TOML code block, and legacy TOML files (`.toml`) that
carry the title and description as metadata fields.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import toml

logger = logging.getLogger(__name__)

_FRONT_MATTER_RE = re.compile(
    r"\A\s*```toml\s*\n(?P<toml>.*?)\n```[ \t]*\n?(?P<body>.*)\Z", re.DOTALL
)

_TITLE_RE = re.compile(r"^#[ \t]+(?P<title>.+?)[ \t]*$", re.MULTILINE)


class AdvisoryError(Exception):
    """
    Raised when an advisory file cannot be read or is malformed.
    """

    pass


@dataclass(frozen=True)
class Advisory:
    """
    A single security advisory, as loaded from the advisory database.

    Only the fields needed for the OSV export are kept.
    """

    id: str
    """
    The advisory's identifier, e.g. `RUSTSEC-2019-0001`.
    """

    package: str
    """
    The name of the affected crate.
    """

    title: str = ""
    description: str = ""
    date: datetime.date | None = None
    url: str | None = None
    cvss: str | None = None
    informational: str | None = None
    withdrawn: datetime.date | None = None
    aliases: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    patched: list[str] = field(default_factory=list)
    """
    Requirements for versions in which the vulnerability has been fixed.
    """

    unaffected: list[str] = field(default_factory=list)
    """
    Requirements for versions that were never affected.
    """

    functions: dict[str, list[str]] = field(default_factory=dict)
    """
    Affected function paths, mapped to the requirements of the versions in
    which each one is affected.
    """

    arch: list[str] = field(default_factory=list)
    os: list[str] = field(default_factory=list)

    path: Path | None = None
    """
    The file this advisory was loaded from, if any.
    """


def _parse_date(value: Any, key: str) -> datetime.date | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError as exc:
        raise AdvisoryError(f"invalid `{key}` date: {value!r}") from exc


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise AdvisoryError(f"`{key}` must be a table")
    return value


def _string(table: dict[str, Any], key: str) -> str | None:
    value = table.get(key)
    if value is not None and not isinstance(value, str):
        raise AdvisoryError(f"`{key}` must be a string")
    return value


def _string_list(table: dict[str, Any], key: str) -> list[str]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise AdvisoryError(f"`{key}` must be a list of strings")
    return value


def _split_markdown(body: str) -> tuple[str, str]:
    """
    Split an advisory's Markdown body into its title (the first level-one
    heading) and the description that follows it.
    """
    match = _TITLE_RE.search(body)
    if match is None:
        return "", body.strip()
    return match.group("title"), body[match.end() :].strip()


def parse_advisory(text: str, *, markdown: bool = True) -> Advisory:
    """
    Parse the contents of an advisory file.

    `markdown` selects between the Markdown format (TOML front matter followed
    by a Markdown title and description) and the legacy TOML format.

    Raises an `AdvisoryError` on any malformed input, including fields and
    tables of the wrong type.
    """
    title = description = ""
    if markdown:
        match = _FRONT_MATTER_RE.match(text)
        if match is None:
            raise AdvisoryError("missing TOML front matter")
        front_matter = match.group("toml")
        title, description = _split_markdown(match.group("body"))
    else:
        front_matter = text

    try:
        data = toml.loads(front_matter)
    except toml.TomlDecodeError as e:
        raise AdvisoryError(f"invalid TOML: {e}") from e

    metadata = data.get("advisory")
    if not isinstance(metadata, dict):
        raise AdvisoryError("missing `[advisory]` table")
    for key in ("id", "package"):
        if not isinstance(metadata.get(key), str):
            raise AdvisoryError(f"missing `{key}` in `[advisory]` table")

    if not markdown:
        title = _string(metadata, "title") or ""
        description = (_string(metadata, "description") or "").strip()

    if "versions" in data:
        versions = _table(data, "versions")
        patched = _string_list(versions, "patched")
        unaffected = _string_list(versions, "unaffected")
    else:
        # Legacy advisories keep their requirements in the metadata table.
        patched = _string_list(metadata, "patched_versions")
        unaffected = _string_list(metadata, "unaffected_versions")

    affected = _table(data, "affected")
    functions = affected.get("functions", {})
    if not isinstance(functions, dict):
        raise AdvisoryError("`affected.functions` must be a table")

    return Advisory(
        id=metadata["id"],
        package=metadata["package"],
        title=title,
        description=description,
        date=_parse_date(metadata.get("date"), "date"),
        url=_string(metadata, "url"),
        cvss=_string(metadata, "cvss"),
        informational=_string(metadata, "informational"),
        withdrawn=_parse_date(metadata.get("withdrawn"), "withdrawn"),
        aliases=_string_list(metadata, "aliases"),
        related=_string_list(metadata, "related"),
        categories=_string_list(metadata, "categories"),
        keywords=_string_list(metadata, "keywords"),
        patched=patched,
        unaffected=unaffected,
        functions={name: list(_string_list(functions, name)) for name in functions},
        arch=_string_list(affected, "arch"),
        os=_string_list(affected, "os"),
    )


def load_advisory(path: Path) -> Advisory:
    """
    Load the advisory at `path`, whose suffix selects the file format.

    Raises an `AdvisoryError` if the file cannot be read or parsed. Its
    message does not repeat `path`.
    """
    if path.suffix not in (".md", ".toml"):
        raise AdvisoryError("unknown advisory file format")

    logger.debug(f"loading advisory from {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise AdvisoryError(f"cannot read advisory: {e.strerror or e}") from e

    advisory = parse_advisory(text, markdown=path.suffix == ".md")
    return replace(advisory, path=path)
