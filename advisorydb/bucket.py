"""Bucket names for OS platforms and language ecosystems."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from advisorydb.model import DataSource, Ecosystem, VulnSrcError

SEPARATOR = "::"


@runtime_checkable
class Bucket(Protocol):
    """Anything that names a bucket and belongs to an ecosystem."""

    @property
    def name(self) -> str: ...

    @property
    def ecosystem(self) -> Ecosystem: ...


@dataclass(frozen=True)
class OSBucket:
    """Bucket of an operating-system platform.

    ``label`` replaces the ecosystem name in the bucket name; when
    ``version_optional`` is false the version is appended even if empty.
    """

    ecosystem: Ecosystem
    version: str = ""
    label: str | None = None
    version_optional: bool = True

    @property
    def name(self) -> str:
        label = self.ecosystem.value if self.label is None else self.label
        if not self.version and self.version_optional:
            return label
        return f"{label} {self.version}"


@dataclass(frozen=True)
class LangBucket:
    """Bucket of a language ecosystem fed by one data source."""

    ecosystem: Ecosystem
    data_source: DataSource

    def __post_init__(self) -> None:
        if self.data_source == DataSource():
            raise VulnSrcError(f"data source cannot be empty (ecosystem: {self.ecosystem})")

    @property
    def name(self) -> str:
        return f"{self.ecosystem.value}{SEPARATOR}{self.data_source.name}"


def new_alma(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ALMA_LINUX, version)


def new_alpine(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ALPINE, version)


def new_arch_linux(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ARCH_LINUX, version)


def new_chainguard(version: str) -> OSBucket:
    return OSBucket(Ecosystem.CHAINGUARD, version)


def new_debian(version: str) -> OSBucket:
    return OSBucket(Ecosystem.DEBIAN, version)


def new_echo(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ECHO, version)


def new_minimos(version: str) -> OSBucket:
    return OSBucket(Ecosystem.MINIMOS, version)


def new_rocky(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ROCKY, version)


def new_ubuntu(version: str) -> OSBucket:
    return OSBucket(Ecosystem.UBUNTU, version)


def new_wolfi(version: str) -> OSBucket:
    return OSBucket(Ecosystem.WOLFI, version)


def new_amazon(version: str) -> OSBucket:
    return OSBucket(Ecosystem.AMAZON_LINUX, version, "amazon linux", version_optional=False)


def new_azure_linux(version: str) -> OSBucket:
    return OSBucket(Ecosystem.AZURE_LINUX, version, "Azure Linux", version_optional=False)


def new_mariner(version: str) -> OSBucket:
    return OSBucket(Ecosystem.CBL_MARINER, version, "CBL-Mariner", version_optional=False)


def new_oracle(version: str) -> OSBucket:
    return OSBucket(Ecosystem.ORACLE_LINUX, version, "Oracle Linux", version_optional=False)


def new_redhat(version: str) -> OSBucket:
    return OSBucket(Ecosystem.REDHAT, version, "Red Hat")


def new_photon(version: str) -> OSBucket:
    return OSBucket(Ecosystem.PHOTON_OS, version, "Photon OS", version_optional=False)


def new_opensuse(version: str) -> OSBucket:
    return OSBucket(Ecosystem.SUSE, version, "openSUSE Leap", version_optional=False)


def new_opensuse_tumbleweed() -> OSBucket:
    return OSBucket(Ecosystem.SUSE, "", "openSUSE Tumbleweed")


def new_opensuse_leap_micro(version: str) -> OSBucket:
    return OSBucket(Ecosystem.SUSE, version, "openSUSE Leap Micro", version_optional=False)


def new_suse_linux_enterprise(version: str) -> OSBucket:
    return OSBucket(Ecosystem.SUSE, version, "SUSE Linux Enterprise", version_optional=False)


def new_suse_linux_enterprise_micro(version: str) -> OSBucket:
    return OSBucket(
        Ecosystem.SUSE, version, "SUSE Linux Enterprise Micro", version_optional=False
    )


def new_bitnami(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.BITNAMI, data_source)


def new_cargo(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.CARGO, data_source)


def new_cocoapods(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.COCOAPODS, data_source)


def new_conan(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.CONAN, data_source)


def new_composer(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.COMPOSER, data_source)


def new_erlang(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.ERLANG, data_source)


def new_go(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.GO, data_source)


def new_julia(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.JULIA, data_source)


def new_kubernetes(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.KUBERNETES, data_source)


def new_maven(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.MAVEN, data_source)


def new_npm(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.NPM, data_source)


def new_nuget(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.NUGET, data_source)


def new_pub(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.PUB, data_source)


def new_pypi(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.PIP, data_source)


def new_rubygems(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.RUBYGEMS, data_source)


def new_swift(data_source: DataSource) -> LangBucket:
    return LangBucket(Ecosystem.SWIFT, data_source)