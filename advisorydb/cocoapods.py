"""Map Swift git URLs to CocoaPods package names using the CocoaPods Specs repository."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from advisorydb.model import VulnSrcError

logger = logging.getLogger(__name__)

COCOAPODS_SPEC_DIR = Path("cocoapods-specs", "Specs")


def _wrap(message: str, exc: BaseException) -> VulnSrcError:
    return VulnSrcError(f"{message}: {exc}")


def normalize_swift_url(url: str) -> str:
    """Trim the ``https://`` prefix and ``.git`` suffix of a Swift package URL."""
    return url.removeprefix("https://").removesuffix(".git")


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


def _decode(value: Any) -> tuple[str, str]:
    """Return a spec's name and git URL."""
    if value is None:
        return "", ""
    if not isinstance(value, dict):
        raise ValueError("cannot unmarshal spec: expected object")
    source = _lookup(value, "source")
    if source is None:
        source = {}
    if not isinstance(source, dict):
        raise ValueError("cannot unmarshal source: expected object")
    return _string(value, "name"), _string(source, "git")


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield regular files below ``root`` in lexical order."""
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        if entry.is_dir():
            yield from _walk_files(Path(entry.path))
        elif entry.is_file():
            yield Path(entry.path)


def walk_cocoapods_specs(root: str | os.PathLike[str]) -> dict[str, list[str]]:
    """Map each normalized git URL to the CocoaPods packages built from it."""
    logger.info("Walk CocoaPods Specs to convert Swift URLs to CocoaPods package names")
    specs: dict[str, list[str]] = {}
    spec_root = Path(root) / COCOAPODS_SPEC_DIR
    try:
        for path in _walk_files(spec_root):
            if path.suffix != ".json":
                continue
            try:
                text = path.read_bytes().decode("utf-8", errors="replace")
                name, git = _decode(json.JSONDecoder().raw_decode(text.lstrip())[0])
            except ValueError as exc:
                raise _wrap(f"json decode error ({path})", exc) from exc
            if not git:
                continue
            # Several packages or subpackages may share one repository.
            names = specs.setdefault(normalize_swift_url(git), [])
            if name not in names:
                names.append(name)
    except (OSError, VulnSrcError) as exc:
        raise _wrap(f"walk error ({root})", exc) from exc
    return specs