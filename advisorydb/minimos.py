"""MinimOS security data."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from advisorydb.bucket import new_minimos
from advisorydb.model import Advisory, DataSource, Store, VulnSrcError

MINIMOS_DIR = "minimos"

PLATFORM_NAME = new_minimos("").name
SOURCE = DataSource(
    id="minimos",
    name="MinimOS Security Data",
    url="https://packages.mini.dev/advisories/secdb/security.json",
)


@dataclass
class _Advisory:
    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)


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


def _decode(value: Any) -> _Advisory:
    if value is None:
        return _Advisory()
    if not isinstance(value, dict):
        raise ValueError("cannot unmarshal advisory: expected object")
    name = _lookup(value, "name")
    if name is not None and not isinstance(name, str):
        raise ValueError("cannot unmarshal name: expected string")
    raw_fixes = _lookup(value, "secfixes")
    if raw_fixes is None:
        raw_fixes = {}
    if not isinstance(raw_fixes, dict):
        raise ValueError("cannot unmarshal secfixes: expected object")
    secfixes: dict[str, list[str]] = {}
    for version, ids in raw_fixes.items():
        if ids is None:
            ids = []
        if not isinstance(ids, list):
            raise ValueError("cannot unmarshal secfixes: expected arrays")
        if any(item is not None and not isinstance(item, str) for item in ids):
            raise ValueError("cannot unmarshal secfixes: expected string items")
        secfixes[version] = ["" if item is None else item for item in ids]
    return _Advisory(pkg_name=name or "", secfixes=secfixes)


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


class VulnSrc:
    """Loads MinimOS secfixes into a store and reads them back."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read ``vuln-list/minimos`` below ``directory`` and store it."""
        root = Path(directory, "vuln-list", MINIMOS_DIR)
        advisories: list[_Advisory] = []
        try:
            for path in _walk_files(root):
                try:
                    advisories.append(_decode(_read_json(path)))
                except ValueError as exc:
                    raise _wrap(f"json decode error ({path})", exc) from exc
        except (OSError, VulnSrcError) as exc:
            raise _wrap(f"walk error ({root})", exc) from exc

        try:
            self._save(advisories)
        except VulnSrcError as exc:
            raise _wrap("save advisories error", exc) from exc

    def _save(self, advisories: list[_Advisory]) -> None:
        try:
            with self.store.batch():
                self.store.put_data_source(PLATFORM_NAME, SOURCE)
                for adv in advisories:
                    try:
                        self._save_secfixes(adv.pkg_name, adv.secfixes)
                    except VulnSrcError as exc:
                        raise _wrap("failed to save sec fixes", exc) from exc
        except VulnSrcError as exc:
            raise _wrap("batch update failed", exc) from exc

    def _save_secfixes(self, pkg_name: str, secfixes: dict[str, list[str]]) -> None:
        for fixed_version, vuln_ids in secfixes.items():
            # "0" marks vulnerabilities the package never contained.
            if fixed_version == "0":
                continue
            advisory = Advisory(fixed_version=fixed_version)
            for vuln_id in vuln_ids:
                # Other IDs such as GHSA are aliases of the same CVEs.
                if not vuln_id.startswith("CVE-"):
                    continue
                self.store.put_advisory_detail(vuln_id, pkg_name, [PLATFORM_NAME], advisory)
                self.store.put_vulnerability_id(vuln_id)

    def get(self, pkg_name: str) -> list[Advisory]:
        """Return the stored advisories of a package."""
        try:
            return self.store.get_advisories(PLATFORM_NAME, pkg_name)
        except VulnSrcError as exc:
            raise _wrap("failed to get advisories", exc) from exc