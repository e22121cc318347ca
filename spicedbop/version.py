"""Version strings for usage output."""

from __future__ import annotations

import re
from importlib import metadata
from typing import Iterator

DEVEL_VERSION = "(devel)"
MODULE_PATH = "spicedbop"

_REQUIREMENT_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


def _installed_version() -> str:
    try:
        return metadata.version(MODULE_PATH)
    except metadata.PackageNotFoundError:
        return DEVEL_VERSION


def _dependencies() -> Iterator[tuple[str, str]]:
    try:
        requirements = metadata.requires(MODULE_PATH) or []
    except metadata.PackageNotFoundError:
        return
    for requirement in requirements:
        if "extra ==" in requirement:
            continue
        match = _REQUIREMENT_NAME.match(requirement)
        if match is None:
            continue
        name = match.group(0)
        try:
            yield name, metadata.version(name)
        except metadata.PackageNotFoundError:
            continue


def usage_version(include_deps: bool = False, version: str | None = None) -> str:
    """Describe this program's version, optionally with its dependencies."""
    version = version or _installed_version()

    if not include_deps:
        if version == DEVEL_VERSION:
            return "spicedb-operator development build (unknown exact version)"
        return "spicedb-operator " + version

    lines = [f"{MODULE_PATH} {version}"]
    lines.extend(f"\t{name} {dep_version}" for name, dep_version in _dependencies())
    return "\n".join(lines)