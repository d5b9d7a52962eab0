"""Echo advisory data."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from advisorydb.bucket import new_echo
from advisorydb.model import Advisory, DataSource, Severity, Store, VulnSrcError

ECHO_DIR = "echo"

PLATFORM_NAME = new_echo("").name
SOURCE = DataSource(
    id="echo",
    name="Echo",
    url="https://advisory.echohq.com/data.json",
)


@dataclass(frozen=True)
class VulnInfo:
    """Fix and severity of one vulnerability in one package."""

    fixed_version: str = ""
    severity: str = ""


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


def _decode(value: Any) -> dict[str, VulnInfo]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("cannot unmarshal advisories: expected object")
    advisories = {}
    for vuln_id, info in value.items():
        if info is None:
            info = {}
        if not isinstance(info, dict):
            raise ValueError(f"cannot unmarshal {vuln_id}: expected object")
        advisories[vuln_id] = VulnInfo(
            fixed_version=_string(info, "fixed_version"),
            severity=_string(info, "severity"),
        )
    return advisories


def _stem(file_name: str) -> str:
    dot = file_name.rfind(".")
    return file_name[:dot] if dot >= 0 else file_name


def read_package_advisories(
    root_dir: str | os.PathLike[str], file_name: str
) -> tuple[str, dict[str, VulnInfo]]:
    """Read one package file; the package name is the file name without extension."""
    path = Path(root_dir, file_name)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise _wrap("failed to open file", exc) from exc
    try:
        text = data.decode("utf-8", errors="replace")
        advisories = _decode(json.JSONDecoder().raw_decode(text.lstrip())[0])
    except ValueError as exc:
        raise _wrap("json decode error", exc) from exc
    return _stem(file_name), advisories


class VulnSrc:
    """Loads Echo advisories into a store and reads them back."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read ``vuln-list/echo`` below ``directory`` and store it."""
        root = Path(directory, "vuln-list", ECHO_DIR)
        try:
            entries = sorted(os.scandir(root), key=lambda e: e.name)
        except OSError as exc:
            raise _wrap(f"failed to read directory ({root})", exc) from exc

        advisory_map: dict[str, dict[str, VulnInfo]] = {}
        for entry in entries:
            if entry.is_dir():
                continue
            try:
                pkg_name, advisories = read_package_advisories(root, entry.name)
            except VulnSrcError as exc:
                raise _wrap(
                    f"failed to read package advisories ({entry.name})", exc
                ) from exc
            advisory_map[pkg_name] = advisories

        try:
            self._save(advisory_map)
        except VulnSrcError as exc:
            raise _wrap("save error", exc) from exc

    def _save(self, advisory_map: dict[str, dict[str, VulnInfo]]) -> None:
        try:
            with self.store.batch():
                self.store.put_data_source(PLATFORM_NAME, SOURCE)
                for pkg_name, advisories in advisory_map.items():
                    self._save_advisories(pkg_name, advisories)
        except VulnSrcError as exc:
            raise _wrap("batch update failed", exc) from exc

    def _save_advisories(self, pkg_name: str, advisories: dict[str, VulnInfo]) -> None:
        for cve_id, info in advisories.items():
            advisory = Advisory(fixed_version=info.fixed_version)
            if info.severity:
                try:
                    advisory.severity = Severity.from_name(info.severity.upper())
                except VulnSrcError:
                    pass
            self.store.put_advisory_detail(cve_id, pkg_name, [PLATFORM_NAME], advisory)
            self.store.put_vulnerability_id(cve_id)

    def get(self, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package."""
        try:
            return self.store.get_advisories(PLATFORM_NAME, pkg_name)
        except VulnSrcError as exc:
            raise _wrap(f"failed to get advisories ({PLATFORM_NAME})", exc) from exc