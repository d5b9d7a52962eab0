"""Source-specific adjustments applied to advisories parsed from OSV documents."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable

from advisorydb.bucket import (
    new_bitnami,
    new_cargo,
    new_cocoapods,
    new_composer,
    new_conan,
    new_erlang,
    new_go,
    new_julia,
    new_kubernetes,
    new_maven,
    new_npm,
    new_nuget,
    new_pub,
    new_pypi,
    new_rubygems,
    new_swift,
)
from advisorydb.model import DataSource, Severity, VulnSrcError

GHSA_SOURCE_ID = "ghsa"
_GHSA_PLATFORM_FORMAT = "GitHub Security Advisory {}"
_GHSA_URL_FORMAT = "https://github.com/advisories?query=type%3Areviewed+ecosystem%3A{}"

# Ecosystem name -> GHSA ecosystem name.
GHSA_ECOSYSTEMS: dict[str, str] = {
    "composer": "Composer",
    "go": "Go",
    "maven": "Maven",
    "npm": "npm",
    "nuget": "NuGet",
    "pip": "pip",
    "rubygems": "RubyGems",
    "cargo": "Rust",
    "erlang": "Erlang",
    "pub": "Pub",
    "swift": "Swift",
    "cocoapods": "Swift",  # Swift advisories are reused for CocoaPods
}

_BUCKET_FACTORIES: dict[str, Callable[[DataSource], Any]] = {
    "bitnami": new_bitnami,
    "cargo": new_cargo,
    "cocoapods": new_cocoapods,
    "conan": new_conan,
    "composer": new_composer,
    "erlang": new_erlang,
    "go": new_go,
    "julia": new_julia,
    "k8s": new_kubernetes,
    "maven": new_maven,
    "npm": new_npm,
    "nuget": new_nuget,
    "pub": new_pub,
    "pip": new_pypi,
    "rubygems": new_rubygems,
    "swift": new_swift,
}


@dataclass
class OsvAdvisory:
    """An advisory for one affected package of an OSV entry.

    ``data_source`` set to ``None`` marks an advisory that must not be stored.
    """

    vulnerability_id: str = ""
    pkg_name: str = ""
    ecosystem: str = ""
    data_source: DataSource | None = None
    aliases: list[str] = field(default_factory=list)
    vulnerable_versions: list[str] = field(default_factory=list)
    patched_versions: list[str] = field(default_factory=list)
    severity: Severity = Severity.UNKNOWN
    references: list[str] = field(default_factory=list)
    oses: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""

    @property
    def bucket_name(self) -> str | None:
        """Name of the bucket the advisory goes into, or None when skipped."""
        if self.data_source is None:
            return None
        factory = _BUCKET_FACTORIES.get(self.ecosystem)
        if factory is None:
            raise VulnSrcError(f"unsupported ecosystem: {self.ecosystem}")
        return factory(self.data_source).name


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


def _object(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot unmarshal {where}: expected object")
    return value


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
    if not isinstance(value, list) or any(
        item is not None and not isinstance(item, str) for item in value
    ):
        raise ValueError(f"cannot unmarshal {key}: expected array of strings")
    return ["" if item is None else item for item in value]


def _entry_specific(entry: dict[str, Any]) -> dict[str, Any]:
    """Return the entry's ``database_specific`` object; a missing field is an error."""
    if "database_specific" not in entry:
        raise ValueError("unexpected end of JSON input")
    return _object(entry["database_specific"], "database_specific")


def _uniq(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def ghsa_data_sources() -> dict[str, DataSource]:
    """Data sources of the GitHub Security Advisory database per ecosystem."""
    return {
        eco: DataSource(
            id=GHSA_SOURCE_ID,
            name=_GHSA_PLATFORM_FORMAT.format(ghsa_eco),
            url=_GHSA_URL_FORMAT.format(ghsa_eco.lower()),
        )
        for eco, ghsa_eco in GHSA_ECOSYSTEMS.items()
    }


def convert_bitnami_severity(severity: str) -> Severity:
    """Map a Bitnami severity, in any case, to a severity."""
    return {
        "low": Severity.LOW,
        "moderate": Severity.MEDIUM,
        "high": Severity.HIGH,
        "critical": Severity.CRITICAL,
    }.get(severity.lower(), Severity.UNKNOWN)


def convert_ghsa_severity(severity: str) -> Severity:
    """Map an upper-case GHSA severity to a severity."""
    return {
        "LOW": Severity.LOW,
        "MODERATE": Severity.MEDIUM,
        "HIGH": Severity.HIGH,
        "CRITICAL": Severity.CRITICAL,
    }.get(severity, Severity.UNKNOWN)


def parse_database_specific(advisory: OsvAdvisory, database_specific: Any) -> None:
    """Add ``last_known_affected_version_range`` to open-ended vulnerable versions.

    ``None`` means the field is absent and leaves the advisory as it is.
    """
    if database_specific is None:
        return
    try:
        specific = _object(database_specific, "database_specific")
        ver_range = _string(specific, "last_known_affected_version_range")
    except ValueError as exc:
        raise _wrap("json unmarshal error", exc) from exc

    ver_range = ver_range.replace(" ", "")
    # fixed and last_affected ranges (<, <= or =) take precedence.
    advisory.vulnerable_versions[:] = [
        version
        if "<" in version or version.startswith("=")
        else f"{version}, {ver_range}"
        for version in advisory.vulnerable_versions
    ]


class BitnamiTransformer:
    """Fills severities of Bitnami advisories."""

    def post_parse_affected(
        self, advisory: OsvAdvisory, affected: dict[str, Any]
    ) -> OsvAdvisory:
        """Return a copy of the advisory; Bitnami needs no per-package changes."""
        return replace(advisory)

    def transform_advisories(
        self, advisories: list[OsvAdvisory], entry: dict[str, Any]
    ) -> list[OsvAdvisory]:
        try:
            severity = _string(_entry_specific(entry), "severity")
        except ValueError as exc:
            raise _wrap(
                f"json decode error ({entry.get('id', '')}, {entry.get('aliases', [])})",
                exc,
            ) from exc
        converted = convert_bitnami_severity(severity)
        for advisory in advisories:
            advisory.severity = converted
        return advisories


class GhsaTransformer:
    """Adjusts GitHub Security Advisories per ecosystem."""

    def __init__(
        self,
        cocoapods_specs: dict[str, list[str]] | None = None,
        standard_go_packages: set[str] | frozenset[str] | None = None,
    ) -> None:
        # Swift git URL -> CocoaPods package names.
        self.cocoapods_specs = dict(cocoapods_specs or {})
        self.standard_go_packages = frozenset(standard_go_packages or ())

    def post_parse_affected(
        self, advisory: OsvAdvisory, affected: dict[str, Any]
    ) -> OsvAdvisory:
        specific = None
        if "database_specific" in affected:
            specific = affected["database_specific"]
            if specific is None:
                specific = {}
        try:
            parse_database_specific(advisory, specific)
        except VulnSrcError as exc:
            raise _wrap(
                f"failed to parse database specific ({advisory.ecosystem}, "
                f"{advisory.pkg_name}, {advisory.vulnerability_id})",
                exc,
            ) from exc
        return advisory

    def transform_advisories(
        self, advisories: list[OsvAdvisory], entry: dict[str, Any]
    ) -> list[OsvAdvisory]:
        try:
            severity_text = _string(_entry_specific(entry), "severity")
            origin_names: dict[str, str] = {}
            affected_list = _lookup(entry, "affected") or []
            if not isinstance(affected_list, list):
                raise ValueError("cannot unmarshal affected: expected array")
            for affected in affected_list:
                package = _object(_lookup(_object(affected, "affected"), "package"), "package")
                name = _string(package, "name")
                origin_names[name.lower()] = name
        except ValueError as exc:
            raise _wrap("json unmarshal error", exc) from exc

        severity = convert_ghsa_severity(severity_text)
        added: list[OsvAdvisory] = []
        for advisory in advisories:
            advisory.severity = severity
            if advisory.ecosystem == "swift":
                # Store Swift advisories again as CocoaPods advisories.
                if advisory.data_source is None:
                    raise VulnSrcError(
                        f"failed to create Cocoapods bucket ({advisory.pkg_name}): "
                        "data source cannot be empty"
                    )
                for pkg_name in self.cocoapods_specs.get(advisory.pkg_name, []):
                    added.append(
                        replace(advisory, ecosystem="cocoapods", pkg_name=pkg_name)
                    )
            elif advisory.ecosystem == "go":
                # Standard packages come from the Go Vulnerability Database instead.
                if advisory.pkg_name in self.standard_go_packages:
                    advisory.data_source = None
            elif advisory.ecosystem == "nuget":
                # NuGet names are case-insensitive; the original case is kept too.
                origin = origin_names.get(advisory.pkg_name)
                if origin is not None and origin != advisory.pkg_name:
                    added.append(replace(advisory, pkg_name=origin))
        return [*advisories, *added]


class GoVulnDBTransformer:
    """Keeps standard library advisories of the Go Vulnerability Database."""

    def post_parse_affected(
        self, advisory: OsvAdvisory, affected: dict[str, Any]
    ) -> OsvAdvisory:
        """Collect GOOS and GOARCH values from ``ecosystem_specific.imports``."""
        oses: list[str] = []
        arches: list[str] = []
        try:
            specific = _object(_lookup(affected, "ecosystem_specific"), "ecosystem_specific")
            imports = _lookup(specific, "imports") or []
            if not isinstance(imports, list):
                raise ValueError("cannot unmarshal imports: expected array")
            for imp in imports:
                imp = _object(imp, "import")
                oses.extend(_strings(imp, "goos"))
                arches.extend(_strings(imp, "goarch"))
        except ValueError as exc:
            raise _wrap("json decode error", exc) from exc
        advisory.oses = _uniq(oses)
        advisory.arches = _uniq(arches)
        return advisory

    def transform_advisories(
        self, advisories: list[OsvAdvisory], entry: dict[str, Any]
    ) -> list[OsvAdvisory]:
        try:
            url = _string(_entry_specific(entry), "url")
        except ValueError as exc:
            raise _wrap(
                f"json decode error ({entry.get('id', '')}, {entry.get('aliases', [])})",
                exc,
            ) from exc
        filtered = []
        for advisory in advisories:
            if advisory.pkg_name != "stdlib":
                continue
            if url:
                advisory.references = [*advisory.references, url]
            filtered.append(advisory)
        return filtered


class JuliaTransformer:
    """Keeps only JLSEC aliases, which are stored as vendor IDs."""

    def post_parse_affected(
        self, advisory: OsvAdvisory, affected: dict[str, Any]
    ) -> OsvAdvisory:
        advisory.aliases = [a for a in advisory.aliases if a.startswith("JLSEC")]
        return advisory

    def transform_advisories(
        self, advisories: list[OsvAdvisory], entry: dict[str, Any]
    ) -> list[OsvAdvisory]:
        """Return the advisories as a new list; entry-level data is not used."""
        return list(advisories)