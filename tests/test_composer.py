from pathlib import Path

import pytest

from advisorydb.composer import BUCKET_NAME, VulnSrc
from advisorydb.model import Advisory, DataSource, Store, VulnerabilityDetail, VulnSrcError

HAPPY = """title:     Security Misconfiguration Vulnerability in the AWS SDK for PHP
link:      https://github.com/aws/aws-sdk-php/releases/tag/3.2.1
cve:       CVE-2015-5723
branches:
    3.x:
        time:     2015-08-31 12:00:00
        versions: ['>=3.0.0', '<3.2.1']
reference: composer://aws/aws-sdk-php
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _repo(tmp_path: Path) -> Path:
    return tmp_path / "php-security-advisories"


def test_name():
    assert VulnSrc().name() == "php-security-advisories"


def test_update_happy_path(tmp_path):
    _write(_repo(tmp_path) / "aws" / "aws-sdk-php" / "CVE-2015-5723.yaml", HAPPY)
    _write(_repo(tmp_path) / "README.md", "not an advisory: [")
    store = Store()
    VulnSrc(store).update(tmp_path)

    assert BUCKET_NAME == "composer::PHP Security Advisories Database"
    assert store.get("data-source", BUCKET_NAME) == DataSource(
        id="php-security-advisories",
        name="PHP Security Advisories Database",
        url="https://github.com/FriendsOfPHP/security-advisories",
    )
    assert store.get(
        "advisory-detail", "CVE-2015-5723", BUCKET_NAME, "aws/aws-sdk-php"
    ) == Advisory(vulnerable_versions=[">=3.0.0, <3.2.1"])
    assert store.get(
        "vulnerability-detail", "CVE-2015-5723", "php-security-advisories"
    ) == VulnerabilityDetail(
        id="CVE-2015-5723",
        title="Security Misconfiguration Vulnerability in the AWS SDK for PHP",
        references=["https://github.com/aws/aws-sdk-php/releases/tag/3.2.1"],
    )
    assert store.get("vulnerability-id", "CVE-2015-5723") == {}


def test_missing_directory(tmp_path):
    with pytest.raises(VulnSrcError, match="walk error") as info:
        VulnSrc().update(tmp_path / "badPath")
    cause = info.value
    while cause.__cause__ is not None:
        cause = cause.__cause__
    assert isinstance(cause, FileNotFoundError)


def test_decode_failure(tmp_path):
    _write(_repo(tmp_path) / "pkg" / "CVE-2020-0001.yaml", "title: [broken\n")
    store = Store()
    with pytest.raises(VulnSrcError, match="yaml unmarshal error"):
        VulnSrc(store).update(tmp_path)
    assert store.has_bucket("data-source") is False


def test_vuln_id_taken_from_file_name(tmp_path):
    _write(
        _repo(tmp_path) / "vendor" / "lib" / "CVE-2019-12139.yaml",
        "title: t\nlink: https://example.com/x\nreference: composer://Vendor/Lib\n"
        "branches:\n  1.x:\n    versions: ['<1.2']\n  2.x:\n    versions: ['>=2.0', '<2.1']\n",
    )
    store = Store()
    VulnSrc(store).update(tmp_path)
    assert store.get(
        "advisory-detail", "CVE-2019-12139", BUCKET_NAME, "vendor/lib"
    ) == Advisory(vulnerable_versions=["<1.2", ">=2.0, <2.1"])
    assert store.get("vulnerability-detail", "CVE-2019-12139", "php-security-advisories").id == (
        "CVE-2019-12139"
    )