"""Reader for the OVAL data published as JSON for each Azure Linux release."""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, TypeVar

from advisorydb.model import VulnSrcError

T = TypeVar("T")


class OvalError(VulnSrcError):
    """Raised when OVAL files are missing or malformed."""


@dataclass
class Reference:
    ref_id: str = ""
    ref_url: str = ""
    source: str = ""


@dataclass
class Affected:
    family: str = ""
    platform: str = ""


@dataclass
class Metadata:
    title: str = ""
    affected: Affected = field(default_factory=Affected)
    reference: Reference = field(default_factory=Reference)
    patchable: str = ""
    advisory_date: str = ""
    advisory_id: str = ""
    severity: str = ""
    description: str = ""


@dataclass
class Criterion:
    comment: str = ""
    test_ref: str = ""


@dataclass
class Criteria:
    operator: str = ""
    criterion: list[Criterion] = field(default_factory=list)


@dataclass
class Definition:
    """One entry of the ``definitions`` directory."""

    class_: str = ""
    id: str = ""
    version: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    criteria: Criteria = field(default_factory=Criteria)


@dataclass
class RpmInfoTest:
    """An rpminfo test linking a package object to a version state."""

    check: str = ""
    comment: str = ""
    id: str = ""
    version: str = ""
    object_ref: str = ""
    state_ref: str = ""


@dataclass
class Evr:
    text: str = ""
    datatype: str = ""
    operation: str = ""


@dataclass
class RpmInfoState:
    id: str = ""
    version: str = ""
    evr: Evr = field(default_factory=Evr)


def _json_type(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "null"


def _lookup(raw: dict[str, Any], key: str) -> Any:
    if key in raw:
        return raw[key]
    folded = key.casefold()
    for name, value in raw.items():
        if name.casefold() == folded:
            return value
    return None


def _document(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise OvalError(f"cannot decode {where}: expected object, got {_json_type(value)}")
    return value


def _string(raw: dict[str, Any], key: str, where: str) -> str:
    value = _lookup(raw, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise OvalError(
            f"cannot decode {where}.{key}: expected string, got {_json_type(value)}"
        )
    return value


def _object(raw: dict[str, Any], key: str, where: str) -> dict[str, Any]:
    return _document(_lookup(raw, key), f"{where}.{key}")


def _elements(raw: dict[str, Any], key: str, where: str) -> Iterator[dict[str, Any]]:
    value = _lookup(raw, key)
    if value is None:
        return
    if not isinstance(value, list):
        raise OvalError(
            f"cannot decode {where}.{key}: expected array, got {_json_type(value)}"
        )
    for item in value:
        yield _document(item, f"{where}.{key}[]")


def _metadata(raw: dict[str, Any]) -> Metadata:
    affected = _object(raw, "Affected", "Metadata")
    reference = _object(raw, "Reference", "Metadata")
    return Metadata(
        title=_string(raw, "Title", "Metadata"),
        affected=Affected(
            family=_string(affected, "Family", "Affected"),
            platform=_string(affected, "Platform", "Affected"),
        ),
        reference=Reference(
            ref_id=_string(reference, "RefID", "Reference"),
            ref_url=_string(reference, "RefURL", "Reference"),
            source=_string(reference, "Source", "Reference"),
        ),
        patchable=_string(raw, "Patchable", "Metadata"),
        advisory_date=_string(raw, "AdvisoryDate", "Metadata"),
        advisory_id=_string(raw, "AdvisoryID", "Metadata"),
        severity=_string(raw, "Severity", "Metadata"),
        description=_string(raw, "Description", "Metadata"),
    )


def _definition(value: Any) -> Definition:
    raw = _document(value, "Definition")
    criteria = _object(raw, "Criteria", "Definition")
    return Definition(
        class_=_string(raw, "Class", "Definition"),
        id=_string(raw, "ID", "Definition"),
        version=_string(raw, "Version", "Definition"),
        metadata=_metadata(_object(raw, "Metadata", "Definition")),
        criteria=Criteria(
            operator=_string(criteria, "Operator", "Criteria"),
            criterion=[
                Criterion(
                    comment=_string(item, "Comment", "Criterion"),
                    test_ref=_string(item, "TestRef", "Criterion"),
                )
                for item in _elements(criteria, "Criterion", "Criteria")
            ],
        ),
    )


def _tests(value: Any) -> list[RpmInfoTest]:
    raw = _document(value, "Tests")
    return [
        RpmInfoTest(
            check=_string(item, "Check", "RpmInfoTest"),
            comment=_string(item, "Comment", "RpmInfoTest"),
            id=_string(item, "ID", "RpmInfoTest"),
            version=_string(item, "Version", "RpmInfoTest"),
            object_ref=_string(_object(item, "Object", "RpmInfoTest"), "ObjectRef", "Object"),
            state_ref=_string(_object(item, "State", "RpmInfoTest"), "StateRef", "State"),
        )
        for item in _elements(raw, "RpminfoTests", "Tests")
    ]


def _objects(value: Any) -> dict[str, str]:
    raw = _document(value, "Objects")
    return {
        _string(item, "ID", "RpmInfoObject"): _string(item, "Name", "RpmInfoObject")
        for item in _elements(raw, "RpminfoObjects", "Objects")
    }


def _states(value: Any) -> dict[str, RpmInfoState]:
    raw = _document(value, "States")
    states: dict[str, RpmInfoState] = {}
    for item in _elements(raw, "RpminfoState", "States"):
        evr = _object(item, "Evr", "RpmInfoState")
        state = RpmInfoState(
            id=_string(item, "ID", "RpmInfoState"),
            version=_string(item, "Version", "RpmInfoState"),
            evr=Evr(
                text=_string(evr, "Text", "Evr"),
                datatype=_string(evr, "Datatype", "Evr"),
                operation=_string(evr, "Operation", "Evr"),
            ),
        )
        states[state.id] = state
    return states


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield regular files below ``root`` in lexical order."""
    for entry in sorted(os.scandir(root), key=lambda e: e.name):
        if entry.is_dir():
            yield from _walk_files(Path(entry.path))
        elif entry.is_file():
            yield Path(entry.path)


def _first_json_value(text: str) -> Any:
    decoder = json.JSONDecoder()
    return decoder.raw_decode(text.lstrip())[0]


def _load_file(path: Path, decode: Callable[[Any], T]) -> T:
    try:
        return decode(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, OvalError) as exc:
        raise OvalError(f"json unmarshal error: {exc}") from exc


def parse_definitions(directory: str | os.PathLike[str]) -> list[Definition]:
    """Read every definition file below ``<directory>/definitions``."""
    root = Path(directory, "definitions")
    if not root.exists():
        raise OvalError("no definitions dir")

    definitions: list[Definition] = []
    try:
        for path in _walk_files(root):
            try:
                definitions.append(_definition(_first_json_value(path.read_text(encoding="utf-8"))))
            except (ValueError, OvalError) as exc:
                raise OvalError(f"failed to decode: {exc}") from exc
    except (OSError, OvalError) as exc:
        raise OvalError(f"walk error: {exc}") from exc
    return definitions


def parse_tests(directory: str | os.PathLike[str]) -> list[RpmInfoTest]:
    """Read ``tests/tests.json``."""
    return _load_file(Path(directory, "tests", "tests.json"), _tests)


def parse_objects(directory: str | os.PathLike[str]) -> dict[str, str]:
    """Read ``objects/objects.json`` as a map of object ID to package name."""
    return _load_file(Path(directory, "objects", "objects.json"), _objects)


def parse_states(directory: str | os.PathLike[str]) -> dict[str, RpmInfoState]:
    """Read ``states/states.json`` as a map of state ID to state."""
    return _load_file(Path(directory, "states", "states.json"), _states)