"""PHP Security Advisories for Composer packages."""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from advisorydb.bucket import new_composer
from advisorydb.model import (
    Advisory,
    DataSource,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)

COMPOSER_DIR = "php-security-advisories"

SOURCE = DataSource(
    id="php-security-advisories",
    name="PHP Security Advisories Database",
    url="https://github.com/FriendsOfPHP/security-advisories",
)
BUCKET_NAME = new_composer(SOURCE).name

_NULLS = frozenset({"~", "null", "Null", "NULL"})


@dataclass
class _RawAdvisory:
    cve: str = ""
    title: str = ""
    link: str = ""
    reference: str = ""
    branches: dict[str, list[str]] = field(default_factory=dict)


def _wrap(message: str, exc: BaseException) -> VulnSrcError:
    return VulnSrcError(f"{message}: {exc}")


def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value in _NULLS)


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if _is_null(value) or value == "":
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot unmarshal {where}: expected a mapping")
    return value


def _scalar(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if _is_null(value):
        return ""
    if not isinstance(value, str):
        raise ValueError(f"cannot unmarshal {key}: expected a scalar")
    return value


def _sequence(raw: dict[str, Any], key: str) -> list[str]:
    value = raw.get(key)
    if _is_null(value) or value == "":
        return []
    if not isinstance(value, list):
        raise ValueError(f"cannot unmarshal {key}: expected a sequence")
    items = []
    for item in value:
        if _is_null(item):
            items.append("")
        elif isinstance(item, str):
            items.append(item)
        else:
            raise ValueError(f"cannot unmarshal {key}: expected scalar items")
    return items


def _decode(data: bytes) -> _RawAdvisory:
    raw = _mapping(yaml.load(data, Loader=yaml.BaseLoader), "advisory")
    branches = {
        name: _sequence(_mapping(branch, f"branch {name}"), "versions")
        for name, branch in _mapping(raw.get("branches"), "branches").items()
    }
    return _RawAdvisory(
        cve=_scalar(raw, "cve"),
        title=_scalar(raw, "title"),
        link=_scalar(raw, "link"),
        reference=_scalar(raw, "reference"),
        branches=branches,
    )


def _walk(root: Path) -> Iterator[os.DirEntry[str] | Path]:
    """Yield every entry below ``root`` in lexical order, directories included."""
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        yield entry
        if entry.is_dir():
            yield from _walk(Path(entry.path))


class VulnSrc:
    """Loads the PHP Security Advisories Database into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read ``php-security-advisories`` below ``directory`` and store it."""
        repo = Path(directory, COMPOSER_DIR)
        try:
            self._update(repo)
        except VulnSrcError as exc:
            raise _wrap(f"update error ({repo})", exc) from exc

    def _update(self, repo: Path) -> None:
        try:
            with self.store.batch():
                self.store.put_data_source(BUCKET_NAME, SOURCE)
                try:
                    self._walk(repo)
                except VulnSrcError as exc:
                    raise _wrap("walk error", exc) from exc
        except VulnSrcError as exc:
            raise _wrap("batch update failed", exc) from exc

    def _walk(self, root: Path) -> None:
        try:
            entries = list(_walk(root))
        except OSError as exc:
            raise _wrap(f"walk error ({root})", exc) from exc
        for entry in entries:
            if entry.is_dir() or not entry.name.startswith("CVE-"):
                continue
            self._save_file(Path(entry.path))

    def _save_file(self, path: Path) -> None:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise _wrap(f"file read error ({path})", exc) from exc
        try:
            raw = _decode(data)
        except (yaml.YAMLError, ValueError) as exc:
            raise _wrap(f"yaml unmarshal error ({path})", exc) from exc

        # e.g. CVE-2019-12139.yaml => CVE-2019-12139
        vuln_id = raw.cve or path.name.removesuffix(".yaml")

        advisory = Advisory(
            vulnerable_versions=[", ".join(versions) for versions in raw.branches.values()]
        )
        # Composer package names are case-insensitive.
        pkg_name = raw.reference.removeprefix("composer://").lower()

        try:
            self.store.put_advisory_detail(vuln_id, pkg_name, [BUCKET_NAME], advisory)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save advisory ({path})", exc) from exc

        detail = VulnerabilityDetail(id=vuln_id, references=[raw.link], title=raw.title)
        try:
            self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save vulnerability detail ({path})", exc) from exc

        try:
            self.store.put_vulnerability_id(vuln_id)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save vulnerability ID ({path})", exc) from exc