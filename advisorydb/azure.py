"""Azure Linux and CBL-Mariner advisories taken from OVAL data."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from advisorydb import oval
from advisorydb.bucket import OSBucket, new_azure_linux, new_mariner
from advisorydb.model import (
    Advisory,
    DataSource,
    Severity,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)

logger = logging.getLogger(__name__)

AZURE_SOURCE = DataSource(
    id="azure",
    name="Azure Linux Vulnerability Data",
    url="https://github.com/microsoft/AzureLinuxVulnerabilityData",
)
MARINER_SOURCE = DataSource(
    id="cbl-mariner",
    name="CBL-Mariner Vulnerability Data",
    url="https://github.com/microsoft/AzureLinuxVulnerabilityData",
)


class NotSupportedError(VulnSrcError):
    """Raised for OVAL states this source cannot handle."""


class Distribution(Enum):
    AZURE = 0
    MARINER = 1


class Operator(str, Enum):
    LTE = "less than or equal"
    LT = "less than"
    GT = "greater than"


@dataclass(frozen=True)
class ResolvedTest:
    name: str
    version: str
    operator: Operator


@dataclass
class Entry:
    pkg_name: str
    version: str
    operator: Operator
    metadata: oval.Metadata


@dataclass(frozen=True)
class _Profile:
    dir_name: str
    source: DataSource
    bucket: Callable[[str], OSBucket]


_PROFILES = {
    Distribution.AZURE: _Profile("azure", AZURE_SOURCE, new_azure_linux),
    Distribution.MARINER: _Profile("mariner", MARINER_SOURCE, new_mariner),
}


def _wrap(message: str, exc: Exception) -> VulnSrcError:
    return VulnSrcError(f"{message}: {exc}")


def resolve_definitions(
    definitions: list[oval.Definition], tests: dict[str, ResolvedTest]
) -> list[Entry]:
    """Turn each criterion with a known test into an entry."""
    # A criterion list may hold several test refs, e.g. an upper and a lower bound.
    return [
        Entry(test.name, test.version, test.operator, definition.metadata)
        for definition in definitions
        for criterion in definition.criteria.criterion
        if (test := tests.get(criterion.test_ref)) is not None
    ]


def follow_test_refs(
    test: oval.RpmInfoTest,
    objects: dict[str, str],
    states: dict[str, oval.RpmInfoState],
) -> ResolvedTest | None:
    """Resolve a test's object and state; None for unsupported lower bounds."""
    if not test.object_ref:
        raise VulnSrcError("invalid test, no object ref")
    pkg_name = objects.get(test.object_ref)
    if pkg_name is None:
        raise VulnSrcError("invalid test data, can't find object ref")

    if not test.state_ref:
        raise VulnSrcError("invalid test, no state ref")
    state = states.get(test.state_ref)
    if state is None:
        raise VulnSrcError("invalid tests data, can't find ovalstate ref")

    if state.evr.datatype != "evr_string":
        raise NotSupportedError(
            f"state data type {state.evr.datatype!r}: format not supported"
        )
    if state.evr.operation == Operator.GT.value:
        return None
    if state.evr.operation not in (Operator.LTE.value, Operator.LT.value):
        raise NotSupportedError(
            f"state operation {state.evr.operation!r}: format not supported"
        )
    return ResolvedTest(pkg_name, state.evr.text, Operator(state.evr.operation))


def resolve_tests(directory: str | os.PathLike[str]) -> dict[str, ResolvedTest]:
    """Map each usable rpminfo test ID to its package and version bound."""
    try:
        objects = oval.parse_objects(directory)
    except VulnSrcError as exc:
        raise _wrap("failed to parse objects", exc) from exc
    try:
        states = oval.parse_states(directory)
    except VulnSrcError as exc:
        raise _wrap("failed to parse states", exc) from exc
    try:
        tests = oval.parse_tests(directory)
    except VulnSrcError as exc:
        raise _wrap("failed to parse tests", exc) from exc

    resolved: dict[str, ResolvedTest] = {}
    for test in tests:
        if test.check != "at least one":
            continue
        try:
            result = follow_test_refs(test, objects, states)
        except VulnSrcError as exc:
            raise _wrap("unable to follow test refs", exc) from exc
        if result is not None and result.name:
            resolved[test.id] = result
    return resolved


class VulnSrc:
    """Loads one distribution's OVAL data into a store and reads it back."""

    def __init__(
        self, distribution: Distribution = Distribution.AZURE, store: Store | None = None
    ) -> None:
        self.distribution = Distribution(distribution)
        self.store = store if store is not None else Store()
        self._profile = _PROFILES[self.distribution]

    @property
    def source(self) -> DataSource:
        return self._profile.source

    def name(self) -> str:
        return self.source.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Parse ``vuln-list/<dist>/<version>`` directories and store them."""
        root = Path(directory, "vuln-list", self._profile.dir_name)
        try:
            versions = sorted(os.listdir(root))
        except OSError as exc:
            raise _wrap("unable to list directory entries", exc) from exc

        for version in versions:
            try:
                entries = self._parse_oval(root / version)
            except VulnSrcError as exc:
                raise _wrap("failed to parse OVAL", exc) from exc
            try:
                self._save(version, entries)
            except VulnSrcError as exc:
                raise _wrap("save error", exc) from exc

    def _parse_oval(self, directory: Path) -> list[Entry]:
        logger.info("Parsing OVAL in %s", directory)
        try:
            tests = resolve_tests(directory)
        except VulnSrcError as exc:
            raise _wrap("failed to resolve tests", exc) from exc
        try:
            definitions = oval.parse_definitions(directory)
        except VulnSrcError as exc:
            raise _wrap("failed to parse definitions", exc) from exc
        return resolve_definitions(definitions, tests)

    def _save(self, major_version: str, entries: list[Entry]) -> None:
        platform = self._profile.bucket(major_version).name
        try:
            with self.store.batch():
                self.store.put_data_source(platform, self.source)
                self._commit(platform, entries)
        except VulnSrcError as exc:
            raise _wrap("batch update failed", exc) from exc

    def _commit(self, platform: str, entries: list[Entry]) -> None:
        for entry in entries:
            metadata = entry.metadata
            cve_id = metadata.reference.ref_id
            advisory = Advisory()

            # Patchable holds a boolean or "Not Applicable".
            patchable = metadata.patchable.lower()
            if patchable == "true":
                advisory.fixed_version = entry.version
            elif patchable == "not applicable":
                continue

            self.store.put_advisory_detail(cve_id, entry.pkg_name, [platform], advisory)

            try:
                severity = Severity.from_name(metadata.severity.upper())
            except VulnSrcError:
                severity = Severity.UNKNOWN
            detail = VulnerabilityDetail(
                severity=severity,
                title=metadata.title,
                description=metadata.description,
                references=[metadata.reference.ref_url],
            )
            self.store.put_vulnerability_detail(cve_id, self.source.id, detail)
            self.store.put_vulnerability_id(cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package in a release."""
        platform = self._profile.bucket(release).name
        try:
            return self.store.get_advisories(platform, pkg_name)
        except VulnSrcError as exc:
            raise _wrap("failed to get advisories", exc) from exc