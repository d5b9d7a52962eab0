"""Parsing and ordering of Debian package versions."""

from __future__ import annotations

import functools
import re
import string
from dataclasses import dataclass

from advisorydb.model import VulnSrcError

_DIGITS = frozenset(string.digits)
_LETTERS = frozenset(string.ascii_letters)
_UPSTREAM_EXTRA = frozenset(".-+~:_")
_REVISION_EXTRA = frozenset(".+~_")
_EPOCH = re.compile(r"[+-]?\d+")


class InvalidVersionError(VulnSrcError, ValueError):
    """Raised for a string that is not a valid Debian version."""


def _order(ch: str | None) -> int:
    if ch is None or ch in _DIGITS:
        return 0
    if ch == "~":
        return -1
    if ch in _LETTERS:
        return ord(ch)
    return ord(ch) + 256


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _verrevcmp(a: str, b: str) -> int:
    i = j = 0
    la, lb = len(a), len(b)
    while i < la or j < lb:
        while (i < la and a[i] not in _DIGITS) or (j < lb and b[j] not in _DIGITS):
            ac = _order(a[i] if i < la else None)
            bc = _order(b[j] if j < lb else None)
            if ac != bc:
                return _sign(ac - bc)
            i += 1
            j += 1
        while i < la and a[i] == "0":
            i += 1
        while j < lb and b[j] == "0":
            j += 1
        first_diff = 0
        while i < la and j < lb and a[i] in _DIGITS and b[j] in _DIGITS:
            if not first_diff:
                first_diff = ord(a[i]) - ord(b[j])
            i += 1
            j += 1
        if i < la and a[i] in _DIGITS:
            return 1
        if j < lb and b[j] in _DIGITS:
            return -1
        if first_diff:
            return _sign(first_diff)
    return 0


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class DebianVersion:
    """A version of the form ``[epoch:]upstream[-revision]``."""

    epoch: int
    upstream: str
    revision: str = ""

    def compare(self, other: DebianVersion) -> int:
        """Return -1, 0 or 1 as this version is older, equal or newer."""
        if self.epoch != other.epoch:
            return _sign(self.epoch - other.epoch)
        result = _verrevcmp(self.upstream, other.upstream)
        if result:
            return result
        return _verrevcmp(self.revision, other.revision)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DebianVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: DebianVersion) -> bool:
        if not isinstance(other, DebianVersion):
            return NotImplemented
        return self.compare(other) < 0

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        text = self.upstream
        if self.epoch > 0:
            text = f"{self.epoch}:{text}"
        if self.revision:
            text = f"{text}-{self.revision}"
        return text


def parse_version(text: str) -> DebianVersion:
    """Parse a Debian version string."""
    text = text.strip()
    epoch = 0
    if ":" in text:
        epoch_text, text = text.split(":", 1)
        if not _EPOCH.fullmatch(epoch_text):
            raise InvalidVersionError(f"epoch parse error: {epoch_text!r}")
        epoch = int(epoch_text)
        if epoch < 0:
            raise InvalidVersionError("epoch is negative")

    upstream, sep, revision = text.rpartition("-")
    if not sep:
        upstream, revision = text, ""

    if not upstream:
        raise InvalidVersionError("upstream_version is empty")
    if upstream[0] not in _DIGITS:
        raise InvalidVersionError("upstream_version must start with digit")
    if any(c not in _DIGITS and c not in _LETTERS and c not in _UPSTREAM_EXTRA for c in upstream):
        raise InvalidVersionError("upstream_version includes invalid character")
    if any(c not in _DIGITS and c not in _LETTERS and c not in _REVISION_EXTRA for c in revision):
        raise InvalidVersionError("debian_revision includes invalid character")

    return DebianVersion(epoch, upstream, revision)