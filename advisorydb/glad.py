"""GitLab Advisory Database (community edition) advisories."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from advisorydb.bucket import new_conan
from advisorydb.model import (
    Advisory,
    DataSource,
    Severity,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)

logger = logging.getLogger(__name__)

GLAD_DIR = "glad"

SUPPORTED_ID_PREFIXES = ("CVE", "GHSA", "GMS")

SOURCE = DataSource(
    id="glad",
    name="GitLab Advisory Database Community",
    url="https://gitlab.com/gitlab-org/advisories-community",
)

# Package types (the first part of a package slug) and their bucket factories.
PACKAGE_TYPES: dict[str, Callable[[DataSource], Any]] = {
    "conan": new_conan,
}


@dataclass
class GladAdvisory:
    """One advisory file of the GitLab Advisory Database."""

    identifier: str = ""
    package_slug: str = ""
    title: str = ""
    description: str = ""
    date: str = ""
    pubdate: str = ""
    affected_range: str = ""
    fixed_versions: list[str] = field(default_factory=list)
    affected_versions: str = ""
    not_impacted: str = ""
    solution: str = ""
    urls: list[str] = field(default_factory=list)
    cvss_v2: str = ""
    cvss_v3: str = ""
    uuid: str = ""


def _wrap(message: str, exc: BaseException) -> VulnSrcError:
    return VulnSrcError(f"{message}: {exc}")


def _lookup(raw: dict[str, Any], key: str) -> Any:
    if key in raw:
        return raw[key]
    folded = key.casefold()
    for name, value in raw.items():
        if name.casefold() == folded:
            return value
    return None


def _string(raw: dict[str, Any], key: str) -> str:
    value = _lookup(raw, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"cannot unmarshal {key}: expected string")
    return value


def _strings(raw: dict[str, Any], key: str) -> list[str]:
    value = _lookup(raw, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"cannot unmarshal {key}: expected array")
    if any(item is not None and not isinstance(item, str) for item in value):
        raise ValueError(f"cannot unmarshal {key}: expected string items")
    return ["" if item is None else item for item in value]


def _decode(value: Any) -> GladAdvisory:
    if value is None:
        return GladAdvisory()
    if not isinstance(value, dict):
        raise ValueError("cannot unmarshal advisory: expected object")
    return GladAdvisory(
        identifier=_string(value, "Identifier"),
        package_slug=_string(value, "PackageSlug"),
        title=_string(value, "Title"),
        description=_string(value, "Description"),
        date=_string(value, "Date"),
        pubdate=_string(value, "Pubdate"),
        affected_range=_string(value, "AffectedRange"),
        fixed_versions=_strings(value, "FixedVersions"),
        affected_versions=_string(value, "AffectedVersions"),
        not_impacted=_string(value, "NotImpacted"),
        solution=_string(value, "Solution"),
        urls=_strings(value, "Urls"),
        cvss_v2=_string(value, "CvssV2"),
        cvss_v3=_string(value, "CvssV3"),
        uuid=_string(value, "UUID"),
    )


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield regular files below ``root`` in lexical order."""
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        if entry.is_dir():
            yield from _walk_files(Path(entry.path))
        elif entry.is_file():
            yield Path(entry.path)


def _read_json(path: Path) -> Any:
    text = path.read_bytes().decode("utf-8", errors="replace")
    return json.JSONDecoder().raw_decode(text.lstrip())[0]


def is_supported_id(file_name: str) -> bool:
    """Tell whether a file name starts with a supported advisory ID prefix."""
    return file_name.startswith(SUPPORTED_ID_PREFIXES)


class VulnSrc:
    """Loads GitLab advisories into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read ``vuln-list/glad/<type>`` below ``directory`` for each package type."""
        for pkg_type in PACKAGE_TYPES:
            logger.info("Updating GitLab Advisory Database (%s)", pkg_type.title())
            root = Path(directory, "vuln-list", GLAD_DIR, pkg_type)
            try:
                self._update(pkg_type, root)
            except VulnSrcError as exc:
                raise _wrap(f"update error ({root})", exc) from exc

    def _update(self, pkg_type: str, root: Path) -> None:
        advisories: list[GladAdvisory] = []
        try:
            for path in _walk_files(root):
                if not is_supported_id(path.name):
                    continue
                try:
                    advisories.append(_decode(_read_json(path)))
                except ValueError as exc:
                    raise _wrap(f"json decode error ({path})", exc) from exc
        except (OSError, VulnSrcError) as exc:
            raise _wrap(f"walk error ({pkg_type})", exc) from exc

        try:
            self._save(pkg_type, advisories)
        except VulnSrcError as exc:
            raise _wrap("save error", exc) from exc

    def _save(self, pkg_type: str, advisories: list[GladAdvisory]) -> None:
        try:
            with self.store.batch():
                self._commit(pkg_type, advisories)
        except VulnSrcError as exc:
            raise _wrap("batch update error", exc) from exc

    def _commit(self, pkg_type: str, advisories: list[GladAdvisory]) -> None:
        for glad in advisories:
            where = f"{glad.identifier}, {glad.package_slug}"
            # e.g. "conan/gsoap" => "conan", "gsoap"
            parts = glad.package_slug.split("/", 1)
            if len(parts) < 2:
                raise VulnSrcError(f"failed to parse package slug ({where})")
            pkg_name = parts[1]

            factory = PACKAGE_TYPES.get(pkg_type)
            if factory is None:
                raise VulnSrcError(f"failed to get ecosystem: {pkg_type} ({where})")
            bucket_name = factory(SOURCE).name

            self.store.put_data_source(bucket_name, SOURCE)

            advisory = Advisory(
                vulnerable_versions=[glad.affected_range],
                patched_versions=list(glad.fixed_versions),
            )
            try:
                self.store.put_advisory_detail(
                    glad.identifier, pkg_name, [bucket_name], advisory
                )
            except VulnSrcError as exc:
                raise _wrap(f"failed to save advisory ({where})", exc) from exc

            # CVSS scores come from NVD, so only text is stored here.
            detail = VulnerabilityDetail(
                id=glad.identifier,
                severity=Severity.UNKNOWN,
                references=list(glad.urls),
                title=glad.title,
                description=glad.description,
            )
            try:
                self.store.put_vulnerability_detail(glad.identifier, SOURCE.id, detail)
            except VulnSrcError as exc:
                raise _wrap(f"failed to save vulnerability detail ({where})", exc) from exc

            try:
                self.store.put_vulnerability_id(glad.identifier)
            except VulnSrcError as exc:
                raise _wrap(f"failed to save vulnerability ID ({where})", exc) from exc