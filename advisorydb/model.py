"""Core data types and the in-memory advisory store."""

from __future__ import annotations

import copy
import json
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"
DATA_SOURCE_BUCKET = "data-source"


class VulnSrcError(Exception):
    """Raised when a vulnerability source cannot be read or stored."""


class Ecosystem(str, Enum):
    """Package ecosystems known to the database."""

    ALMA_LINUX = "alma"
    ALPINE = "alpine"
    AMAZON_LINUX = "amazon"
    ARCH_LINUX = "archlinux"
    AZURE_LINUX = "azurelinux"
    CBL_MARINER = "cbl-mariner"
    CHAINGUARD = "chainguard"
    DEBIAN = "debian"
    ECHO = "echo"
    MINIMOS = "minimos"
    ORACLE_LINUX = "oracle"
    PHOTON_OS = "photon"
    REDHAT = "redhat"
    ROCKY = "rocky"
    SUSE = "suse"
    UBUNTU = "ubuntu"
    WOLFI = "wolfi"

    BITNAMI = "bitnami"
    CARGO = "cargo"
    COCOAPODS = "cocoapods"
    COMPOSER = "composer"
    CONAN = "conan"
    ERLANG = "erlang"
    GO = "go"
    JULIA = "julia"
    KUBERNETES = "k8s"
    MAVEN = "maven"
    NPM = "npm"
    NUGET = "nuget"
    PIP = "pip"
    PUB = "pub"
    RUBYGEMS = "rubygems"
    SWIFT = "swift"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DataSource:
    """Where a set of advisories comes from."""

    id: str = ""
    name: str = ""
    url: str = ""


class Severity(IntEnum):
    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_name(cls, name: str) -> Severity:
        """Look up a severity by its upper-case name."""
        try:
            return cls[name]
        except KeyError:
            raise VulnSrcError(f"unknown severity: {name!r}") from None


class Status(IntEnum):
    UNKNOWN = 0
    NOT_AFFECTED = 1
    AFFECTED = 2
    FIXED = 3
    UNDER_INVESTIGATION = 4
    WILL_NOT_FIX = 5
    FIX_DEFERRED = 6
    END_OF_LIFE = 7


@dataclass
class Advisory:
    """How one vulnerability affects one package on one platform."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    oses: list[str] = field(default_factory=list)
    status: Status = Status.UNKNOWN
    severity: Severity = Severity.UNKNOWN
    fixed_version: str = ""
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)


@dataclass
class VulnerabilityDetail:
    """Descriptive data about a vulnerability from one source."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    severity: Severity = Severity.UNKNOWN
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None


class _Bucket(dict):
    """A nested bucket; plain values stored in it are leaves."""


_ADVISORY_STR_FIELDS = {
    "VulnerabilityID": "vulnerability_id",
    "FixedVersion": "fixed_version",
}
_ADVISORY_LIST_FIELDS = {
    "VendorIDs": "vendor_ids",
    "Arches": "arches",
    "OSes": "oses",
    "VulnerableVersions": "vulnerable_versions",
    "PatchedVersions": "patched_versions",
    "UnaffectedVersions": "unaffected_versions",
}


def _to_bucket(data: Mapping[str, Any]) -> _Bucket:
    bucket = _Bucket()
    for key, value in data.items():
        bucket[key] = _to_bucket(value) if isinstance(value, Mapping) else value
    return bucket


def _advisory_from_json(text: str | bytes) -> Advisory:
    error = VulnSrcError("json unmarshal error")
    try:
        raw = json.loads(text)
    except (ValueError, TypeError) as exc:
        raise error from exc
    if not isinstance(raw, dict):
        raise error
    values: dict[str, Any] = {}
    try:
        for key, attr in _ADVISORY_STR_FIELDS.items():
            if key in raw:
                if not isinstance(raw[key], str):
                    raise error
                values[attr] = raw[key]
        for key, attr in _ADVISORY_LIST_FIELDS.items():
            if key in raw and raw[key] is not None:
                items = raw[key]
                if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
                    raise error
                values[attr] = list(items)
        if "Status" in raw:
            values["status"] = Status(raw["Status"])
        if "Severity" in raw:
            values["severity"] = Severity(raw["Severity"])
    except ValueError as exc:
        raise error from exc
    return Advisory(**values)


def _decode_advisory(value: Any) -> Advisory:
    if isinstance(value, Advisory):
        return copy.deepcopy(value)
    if isinstance(value, (str, bytes)):
        return _advisory_from_json(value)
    raise VulnSrcError("json unmarshal error")


class Store:
    """Nested key-value store holding advisories, details and data sources.

    ``data`` may seed the store: mappings become buckets, anything else is a
    stored value. Advisory values may also be given as JSON text.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._root = _to_bucket(data) if data else _Bucket()

    @contextmanager
    def batch(self) -> Iterator[Store]:
        """Group writes; all of them are undone if the block raises."""
        snapshot = copy.deepcopy(self._root)
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise

    def _put(self, path: list[str], key: str, value: Any) -> None:
        node = self._root
        for name in path:
            child = node.setdefault(name, _Bucket())
            if not isinstance(child, _Bucket):
                raise VulnSrcError(f"{name!r} is a value, not a bucket")
            node = child
        if isinstance(node.get(key), _Bucket):
            raise VulnSrcError(f"{key!r} is a bucket, not a value")
        node[key] = copy.deepcopy(value)

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self._put([DATA_SOURCE_BUCKET], bucket, source)

    def put_advisory_detail(
        self, vuln_id: str, pkg_name: str, buckets: list[str], advisory: Advisory
    ) -> None:
        self._put([ADVISORY_DETAIL_BUCKET, vuln_id, *buckets], pkg_name, advisory)

    def put_vulnerability_detail(
        self, vuln_id: str, source_id: str, detail: VulnerabilityDetail
    ) -> None:
        self._put([VULNERABILITY_DETAIL_BUCKET, vuln_id], source_id, detail)

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([VULNERABILITY_ID_BUCKET], vuln_id, {})

    def get_advisories(self, bucket: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package on a platform, ordered by ID."""
        node = self._root.get(bucket)
        if not isinstance(node, _Bucket):
            return []
        pkg_bucket = node.get(pkg_name)
        if not isinstance(pkg_bucket, _Bucket):
            return []
        return [
            replace(_decode_advisory(value), vulnerability_id=vuln_id)
            for vuln_id, value in sorted(pkg_bucket.items())
        ]

    def get(self, *args: str) -> Any:
        """Return the bucket or value at the given path; KeyError if absent."""
        node: Any = self._root
        for key in args:
            if not isinstance(node, _Bucket) or key not in node:
                raise KeyError(args)
            node = node[key]
        return node

    def has_bucket(self, *args: str) -> bool:
        """Tell whether anything is stored at the given path."""
        try:
            self.get(*args)
        except KeyError:
            return False
        return True