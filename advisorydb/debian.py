"""Debian Security Tracker advisories."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable

from advisorydb.bucket import new_debian
from advisorydb.debversion import parse_version
from advisorydb.model import (
    Advisory,
    DataSource,
    Severity,
    Status,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)

logger = logging.getLogger(__name__)

DEBIAN_DIR = "vuln-list-debian"

PACKAGE_TYPE = "package"
XREF_TYPE = "xref"

DISTRIBUTIONS_FILE = "distributions.json"
SOURCES_DIR = "source"
UPDATE_SOURCES_DIR = "updates-source"
CVE_DIR = "CVE"
DLA_DIR = "DLA"
DSA_DIR = "DSA"

# "removed" must not be treated as "not-affected".
SKIP_STATUSES = frozenset({"not-affected", "undetermined"})

SOURCE = DataSource(
    id="debian",
    name="Debian Security Tracker",
    url="https://salsa.debian.org/security-tracker-team/security-tracker",
)


@dataclass
class DebianAdvisory:
    """An advisory as gathered from the tracker, before it is stored."""

    vulnerability_id: str = ""
    platform: str = ""
    pkg_name: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    state: str = ""
    severity: str = ""
    fixed_version: str = ""
    title: str = ""


PutFunc = Callable[[Store, Any], None]


@dataclass(frozen=True)
class _Key:
    code_name: str = ""
    pkg_name: str = ""
    vuln_id: str = ""
    severity: str = ""


@dataclass
class _Annotation:
    type: str
    release: str
    package: str
    kind: str
    version: str
    severity: str
    bugs: list[str]


@dataclass
class _Bug:
    id: str
    description: str
    annotations: list[_Annotation]


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


def _as_object(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot decode {where}: expected object")
    return value


def _string(raw: dict[str, Any], key: str) -> str:
    value = _lookup(raw, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"cannot decode {key}: expected string")
    return value


def _strings(raw: dict[str, Any], key: str) -> list[str]:
    value = _lookup(raw, key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"cannot decode {key}: expected array")
    items = []
    for item in value:
        if item is None:
            items.append("")
        elif isinstance(item, str):
            items.append(item)
        else:
            raise ValueError(f"cannot decode {key}: expected string items")
    return items


def _first_json_value(text: str) -> Any:
    return json.JSONDecoder().raw_decode(text.lstrip())[0]


def _read_json(path: Path) -> Any:
    return _first_json_value(path.read_text(encoding="utf-8"))


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield regular files below ``root`` in lexical order."""
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        if entry.is_dir():
            yield from _walk_files(Path(entry.path))
        elif entry.is_file():
            yield Path(entry.path)


def _decode_bug(value: Any) -> _Bug:
    raw = _as_object(value, "bug")
    header = _as_object(_lookup(raw, "Header"), "Header")
    annotations_raw = _lookup(raw, "Annotations")
    if annotations_raw is None:
        annotations_raw = []
    if not isinstance(annotations_raw, list):
        raise ValueError("cannot decode Annotations: expected array")
    annotations = []
    for item in annotations_raw:
        ann = _as_object(item, "annotation")
        annotations.append(
            _Annotation(
                type=_string(ann, "Type"),
                release=_string(ann, "Release"),
                package=_string(ann, "Package"),
                kind=_string(ann, "Kind"),
                version=_string(ann, "Version"),
                severity=_string(ann, "Severity"),
                bugs=_strings(ann, "Bugs"),
            )
        )
    return _Bug(
        id=_string(header, "ID"),
        description=_string(header, "Description"),
        annotations=annotations,
    )


def severity_from_urgency(urgency: str) -> Severity:
    """Map a tracker urgency to a severity."""
    if urgency in ("unimportant", "low", "low*", "low**"):
        return Severity.LOW
    if urgency in ("medium", "medium*", "medium**"):
        return Severity.MEDIUM
    if urgency in ("high", "high*", "high**"):
        return Severity.HIGH
    return Severity.UNKNOWN


def new_status(state: str) -> Status:
    """Map a tracker state such as ``no-dsa`` to a status."""
    state = state.lower()
    # "end-of-life" is still considered vulnerable.
    if state in ("no-dsa", "unfixed"):
        return Status.AFFECTED
    if state == "ignored":
        return Status.WILL_NOT_FIX
    if state == "postponed":
        return Status.FIX_DEFERRED
    if state == "end-of-life":
        return Status.END_OF_LIFE
    return Status.UNKNOWN


def compare_versions(v1: str, v2: str) -> int:
    """Compare two Debian versions; an empty version sorts first."""
    if not v1 and not v2:
        return 0
    if not v1:
        return -1
    if not v2:
        return 1
    try:
        return parse_version(v1).compare(parse_version(v2))
    except VulnSrcError as exc:
        raise _wrap("version error", exc) from exc


def has_fixed_version(sid_ver: str, code_ver: str) -> bool:
    """Tell whether a release's latest version already holds the sid fix.

    With no fix in sid the release is unfixed; otherwise it is fixed when its
    latest version is at least the sid fixed version.
    """
    if not sid_ver:
        return False
    try:
        return compare_versions(code_ver, sid_ver) >= 0
    except VulnSrcError as exc:
        raise _wrap(
            f"version comparison error (sid {sid_ver!r}, release {code_ver!r})", exc
        ) from exc


def default_put(store: Store, advisory: Any) -> None:
    """Store a Debian advisory, its detail, its ID and the data source."""
    if not isinstance(advisory, DebianAdvisory):
        raise VulnSrcError("unknown type")

    detail = Advisory(
        vendor_ids=list(advisory.vendor_ids),
        status=new_status(advisory.state),
        severity=severity_from_urgency(advisory.severity),
        fixed_version=advisory.fixed_version,
    )
    store.put_advisory_detail(
        advisory.vulnerability_id, advisory.pkg_name, [advisory.platform], detail
    )
    store.put_vulnerability_detail(
        advisory.vulnerability_id, SOURCE.id, VulnerabilityDetail(title=advisory.title)
    )
    store.put_vulnerability_id(advisory.vulnerability_id)
    store.put_data_source(advisory.platform, SOURCE)


class VulnSrc:
    """Loads the Debian Security Tracker data into a store and reads it back."""

    def __init__(self, store: Store | None = None, put: PutFunc | None = None) -> None:
        self.store = store if store is not None else Store()
        self.put = put if put is not None else default_put
        # codename -> major version, e.g. "buster" -> "10"
        self._distributions: dict[str, str] = {}
        # vulnerability or advisory ID -> description
        self._details: dict[str, str] = {}
        # (codename, package) -> latest version in that release
        self._pkg_versions: dict[_Key, str] = {}
        # (package, vuln ID, severity) -> fixed version in sid, "" if unfixed
        self._sid_fixed_versions: dict[_Key, str] = {}
        # (codename, package, vuln ID) -> advisory
        self._advisories: dict[_Key, DebianAdvisory] = {}
        self._not_affected: set[_Key] = set()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Parse the tracker data below ``directory`` and store it."""
        try:
            self._parse(Path(directory))
        except VulnSrcError as exc:
            raise _wrap("parse error", exc) from exc
        try:
            self._save()
        except VulnSrcError as exc:
            raise _wrap("save error", exc) from exc

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package in a Debian release."""
        platform = new_debian(release).name
        try:
            return self.store.get_advisories(platform, pkg_name)
        except VulnSrcError as exc:
            raise _wrap("failed to get advisories", exc) from exc

    def _parse(self, directory: Path) -> None:
        root = directory / DEBIAN_DIR / "tracker"
        steps: list[tuple[str, Callable[[], None]]] = [
            ("distributions error", lambda: self._parse_distributions(root)),
            ("source parse error", lambda: self._parse_sources(root / SOURCES_DIR)),
            (
                "updates-source parse error",
                lambda: self._parse_sources(root / UPDATE_SOURCES_DIR),
            ),
            ("CVE error", lambda: self._parse_cve(root)),
            ("DLA error", lambda: self._parse_vendor_advisories(root / DLA_DIR, "DLA")),
            ("DSA error", lambda: self._parse_vendor_advisories(root / DSA_DIR, "DSA")),
        ]
        for message, step in steps:
            try:
                step()
            except VulnSrcError as exc:
                raise _wrap(message, exc) from exc

    def _parse_distributions(self, root: Path) -> None:
        logger.info("Parsing distributions...")
        path = root / DISTRIBUTIONS_FILE
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise _wrap("failed to open file", exc) from exc
        try:
            parsed = _as_object(_first_json_value(text), "distributions")
            for dist, value in parsed.items():
                major = _string(_as_object(value, dist), "major-version")
                # An empty major version belongs to sid.
                if major:
                    self._distributions[dist] = major
        except ValueError as exc:
            raise _wrap(f"json decode error ({path})", exc) from exc

    def _parse_sources(self, directory: Path) -> None:
        for code in self._distributions:
            code_path = directory / code
            if not code_path.exists():
                continue
            logger.info("Parsing sources for %s...", code)
            try:
                for path in _walk_files(code_path):
                    self._parse_source_file(code, path)
            except (OSError, VulnSrcError) as exc:
                raise _wrap(f"walk error ({code})", exc) from exc

    def _parse_source_file(self, code: str, path: Path) -> None:
        try:
            raw = _as_object(_read_json(path), "Sources")
            packages = _strings(raw, "Package")
            versions = _strings(raw, "Version")
        except ValueError as exc:
            raise _wrap(f"json decode error ({path})", exc) from exc
        if not packages or not versions:
            return

        key = _Key(code_name=code, pkg_name=packages[0])
        version = versions[0]
        stored = self._pkg_versions.get(key)
        if stored is not None:
            try:
                if compare_versions(stored, version) >= 0:
                    return
            except VulnSrcError as exc:
                raise _wrap(f"version comparison error ({path})", exc) from exc
        self._pkg_versions[key] = version

    def _walk_bugs(self, directory: Path, handle: Callable[[_Bug], None]) -> None:
        try:
            for path in _walk_files(directory):
                try:
                    bug = _decode_bug(_read_json(path))
                except ValueError as exc:
                    raise _wrap(f"json decode error ({path})", exc) from exc
                try:
                    handle(bug)
                except VulnSrcError as exc:
                    raise _wrap(f"parse debian bug error ({path})", exc) from exc
        except (OSError, VulnSrcError) as exc:
            raise _wrap(f"walk error ({directory})", exc) from exc

    def _parse_cve(self, root: Path) -> None:
        logger.info("Parsing CVE JSON files...")
        try:
            self._walk_bugs(root / CVE_DIR, self._handle_cve)
        except VulnSrcError as exc:
            raise _wrap("CVE parse error", exc) from exc

    def _handle_cve(self, bug: _Bug) -> None:
        severities: dict[str, str] = {}
        cve_id = bug.id
        self._details[cve_id] = bug.description.strip("()")

        for ann in bug.annotations:
            if ann.type != PACKAGE_TYPE:
                continue

            # The release is empty for sid.
            key = _Key(code_name=ann.release, pkg_name=ann.package, vuln_id=cve_id)
            if ann.kind in SKIP_STATUSES:
                self._not_affected.add(key)
                continue

            if not ann.release:
                severity = ""
                if ann.severity:
                    severities[ann.package] = ann.severity
                    severity = ann.severity
                sid_key = _Key(pkg_name=ann.package, vuln_id=cve_id, severity=severity)
                self._sid_fixed_versions[sid_key] = ann.version
                continue

            fixed_version = ann.version
            kind = ann.kind
            latest = self._pkg_versions.get(_Key(code_name=ann.release, pkg_name=ann.package))
            if latest is not None:
                # A fix that has not been released yet leaves the package unfixed.
                try:
                    unreleased = compare_versions(latest, fixed_version) < 0
                except VulnSrcError:
                    unreleased = False
                if unreleased:
                    fixed_version = ""
                    if kind == "fixed":
                        kind = "unfixed"

            advisory = DebianAdvisory(
                fixed_version=fixed_version,
                severity=severities.get(ann.package, ""),
            )
            if not fixed_version:
                advisory.state = kind
            # DLA/DSA data may overwrite this later.
            self._advisories[key] = advisory

    def _parse_vendor_advisories(self, directory: Path, kind: str) -> None:
        logger.info("Parsing %s JSON files...", kind)
        try:
            self._walk_bugs(directory, self._handle_vendor_advisory)
        except VulnSrcError as exc:
            raise _wrap(f"{kind} parse error", exc) from exc

    def _handle_vendor_advisory(self, bug: _Bug) -> None:
        cve_ids: list[str] = []
        advisory_id = bug.id
        self._details[advisory_id] = bug.description.strip("()")

        for ann in bug.annotations:
            if ann.type == XREF_TYPE:
                cve_ids = ann.bugs
                continue
            if ann.type != PACKAGE_TYPE:
                continue

            # Without any CVE-IDs the DLA/DSA ID stands in for them.
            vuln_ids = cve_ids or [advisory_id]
            for vuln_id in vuln_ids:
                key = _Key(code_name=ann.release, pkg_name=ann.package, vuln_id=vuln_id)
                if ann.kind in SKIP_STATUSES:
                    self._not_affected.add(key)
                    continue

                existing = self._advisories.get(key)
                if existing is None:
                    self._advisories[key] = DebianAdvisory(
                        fixed_version=ann.version, vendor_ids=[advisory_id]
                    )
                    continue

                # A later advisory for the same CVE supersedes an insufficient fix.
                try:
                    newer = compare_versions(ann.version, existing.fixed_version) > 0
                except VulnSrcError as exc:
                    raise _wrap(
                        f"version error ({vuln_id}, {ann.package}, {ann.release})", exc
                    ) from exc
                if newer:
                    existing.fixed_version = ann.version
                    existing.state = ""
                existing.vendor_ids = [*existing.vendor_ids, advisory_id]

    def _save(self) -> None:
        logger.info("Saving DB")
        try:
            with self.store.batch():
                self._commit()
        except VulnSrcError as exc:
            raise _wrap("batch update error", exc) from exc
        logger.info("Saved DB")

    def _commit(self) -> None:
        for sid_key, sid_ver in self._sid_fixed_versions.items():
            pkg_name = sid_key.pkg_name
            cve_id = sid_key.vuln_id

            if _Key(pkg_name=pkg_name, vuln_id=cve_id) in self._not_affected:
                continue

            for code in self._distributions:
                key = _Key(code_name=code, pkg_name=pkg_name, vuln_id=cve_id)
                if key in self._not_affected:
                    continue

                # An advisory with a fixed version is stored below as it is;
                # "no-dsa" or "postponed" may be wrong and are reconsidered.
                existing = self._advisories.get(key)
                if existing is not None and not existing.state:
                    continue

                code_ver = self._pkg_versions.get(_Key(code_name=code, pkg_name=pkg_name))
                if code_ver is None:
                    continue

                try:
                    fixed = has_fixed_version(sid_ver, code_ver)
                except VulnSrcError as exc:
                    raise _wrap(
                        f"version error ({pkg_name}, {cve_id}, {code})", exc
                    ) from exc

                adv = replace(existing) if existing is not None else DebianAdvisory()
                if fixed:
                    adv.fixed_version = sid_ver
                    adv.state = ""
                    self._advisories.pop(key, None)
                adv.severity = sid_key.severity

                try:
                    self._put_advisory(key, adv)
                except VulnSrcError as exc:
                    raise _wrap("put advisory error", exc) from exc

        for key, advisory in self._advisories.items():
            try:
                self._put_advisory(key, advisory)
            except VulnSrcError as exc:
                raise _wrap("put advisory error", exc) from exc

    def _put_advisory(self, key: _Key, advisory: DebianAdvisory) -> None:
        major_version = self._distributions.get(key.code_name)
        if major_version is None:
            # Stale codenames such as squeeze or sarge.
            return
        filled = replace(
            advisory,
            vulnerability_id=key.vuln_id,
            pkg_name=key.pkg_name,
            platform=new_debian(major_version).name,
            # The short Debian description serves as a title.
            title=self._details.get(key.vuln_id, ""),
        )
        try:
            self.put(self.store, filled)
        except VulnSrcError as exc:
            raise _wrap(
                f"put error ({filled.vulnerability_id}, {filled.pkg_name}, {filled.platform})",
                exc,
            ) from exc