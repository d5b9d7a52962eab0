"""Ruby Advisory Database advisories for RubyGems."""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from advisorydb.bucket import new_rubygems
from advisorydb.model import (
    Advisory,
    DataSource,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)

BUNDLER_DIR = "ruby-advisory-db"

SOURCE = DataSource(
    id="ruby-advisory-db",
    name="Ruby Advisory Database",
    url="https://github.com/rubysec/ruby-advisory-db",
)
BUCKET_NAME = new_rubygems(SOURCE).name

_NULLS = frozenset({"~", "null", "Null", "NULL"})


@dataclass
class _RawAdvisory:
    gem: str = ""
    cve: str = ""
    ghsa: str = ""
    title: str = ""
    url: str = ""
    description: str = ""
    cvss_v2: float = 0.0
    cvss_v3: float = 0.0
    patched_versions: list[str] = field(default_factory=list)
    unaffected_versions: list[str] = field(default_factory=list)
    related_urls: list[str] = field(default_factory=list)


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


def _number(raw: dict[str, Any], key: str) -> float:
    text = _scalar(raw, key)
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"cannot unmarshal {key}: {text!r} is not a number") from None


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
    # Every scalar stays text, as written in the file.
    raw = _mapping(yaml.load(data, Loader=yaml.BaseLoader), "advisory")
    related = _mapping(raw.get("related"), "related")
    return _RawAdvisory(
        gem=_scalar(raw, "gem"),
        cve=_scalar(raw, "cve"),
        ghsa=_scalar(raw, "ghsa"),
        title=_scalar(raw, "title"),
        url=_scalar(raw, "url"),
        description=_scalar(raw, "description"),
        cvss_v2=_number(raw, "cvss_v2"),
        cvss_v3=_number(raw, "cvss_v3"),
        patched_versions=_sequence(raw, "patched_versions"),
        unaffected_versions=_sequence(raw, "unaffected_versions"),
        related_urls=_sequence(related, "url"),
    )


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield the non-directory entries below ``root`` in lexical order."""
    if root.is_file():
        yield root
        return
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        path = Path(entry.path)
        if entry.is_dir():
            yield from _walk_files(path)
        else:
            yield path


class VulnSrc:
    """Loads the Ruby Advisory Database into a store."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store if store is not None else Store()

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        """Read ``ruby-advisory-db/gems`` below ``directory`` and store it."""
        repo = Path(directory, BUNDLER_DIR)
        try:
            self._update(repo)
        except VulnSrcError as exc:
            raise _wrap(f"update error ({repo})", exc) from exc

    def _update(self, repo: Path) -> None:
        root = repo / "gems"
        try:
            with self.store.batch():
                self.store.put_data_source(BUCKET_NAME, SOURCE)
                try:
                    for path in _walk_files(root):
                        if path.name.upper().startswith("OSVDB"):
                            continue
                        self._save_file(path)
                except (OSError, VulnSrcError) as exc:
                    raise _wrap("walk error", exc) from exc
        except VulnSrcError as exc:
            raise _wrap("batch update failed", exc) from exc

    def _save_file(self, path: Path) -> None:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise _wrap(f"file read error ({path})", exc) from exc
        try:
            raw = _decode(data)
        except (yaml.YAMLError, ValueError) as exc:
            raise _wrap(f"yaml unmarshal error ({path})", exc) from exc

        if "osvdb.org" in raw.url.lower():
            raw.url = ""

        if raw.cve:
            vuln_id = f"CVE-{raw.cve}"
        elif raw.ghsa:
            vuln_id = f"GHSA-{raw.ghsa}"
        else:
            return

        advisory = Advisory(
            patched_versions=raw.patched_versions,
            unaffected_versions=raw.unaffected_versions,
        )
        try:
            self.store.put_advisory_detail(vuln_id, raw.gem, [BUCKET_NAME], advisory)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save advisory ({vuln_id}, {raw.gem})", exc) from exc

        detail = VulnerabilityDetail(
            cvss_score=raw.cvss_v2,
            cvss_score_v3=raw.cvss_v3,
            references=[raw.url, *raw.related_urls],
            title=raw.title,
            description=raw.description,
        )
        try:
            self.store.put_vulnerability_detail(vuln_id, SOURCE.id, detail)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save vulnerability detail ({vuln_id})", exc) from exc

        try:
            self.store.put_vulnerability_id(vuln_id)
        except VulnSrcError as exc:
            raise _wrap(f"failed to save vulnerability ID ({vuln_id})", exc) from exc