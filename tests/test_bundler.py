from pathlib import Path

import pytest

from advisorydb.bundler import BUCKET_NAME, VulnSrc
from advisorydb.model import Advisory, DataSource, Store, VulnerabilityDetail, VulnSrcError

DESCRIPTION = (
    "Doorkeeper::OpenidConnect (aka the OpenID Connect extension for Doorkeeper) 1.4.x "
    "and 1.5.x before 1.5.4 has an open redirect via the redirect_uri field in an OAuth "
    "authorization request (that results in an error response) with the 'openid' scope "
    "and a prompt=none value. This allows phishing attacks against the authorization flow."
)
URL = (
    "https://github.com/doorkeeper-gem/doorkeeper-openid_connect/blob/master/"
    "CHANGELOG.md#v154-2019-02-15"
)

HAPPY = f"""---
gem: doorkeeper-openid_connect
cve: 2019-9837
url: {URL}
title: Doorkeeper::OpenidConnect Open Redirect
date: 2019-03-14
description: "{DESCRIPTION}"
cvss_v3: 6.1
unaffected_versions:
  - "< 1.4.0"
patched_versions:
  - ">= 1.5.4"
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _gems(tmp_path: Path) -> Path:
    return tmp_path / "ruby-advisory-db" / "gems"


def test_name():
    assert VulnSrc().name() == "ruby-advisory-db"


def test_update_happy_path(tmp_path):
    _write(_gems(tmp_path) / "doorkeeper-openid_connect" / "CVE-2019-9837.yml", HAPPY)
    store = Store()
    VulnSrc(store).update(tmp_path)

    assert BUCKET_NAME == "rubygems::Ruby Advisory Database"
    assert store.get("data-source", BUCKET_NAME) == DataSource(
        id="ruby-advisory-db",
        name="Ruby Advisory Database",
        url="https://github.com/rubysec/ruby-advisory-db",
    )
    assert store.get(
        "advisory-detail", "CVE-2019-9837", BUCKET_NAME, "doorkeeper-openid_connect"
    ) == Advisory(patched_versions=[">= 1.5.4"], unaffected_versions=["< 1.4.0"])
    assert store.get(
        "vulnerability-detail", "CVE-2019-9837", "ruby-advisory-db"
    ) == VulnerabilityDetail(
        cvss_score_v3=6.1,
        references=[URL],
        title="Doorkeeper::OpenidConnect Open Redirect",
        description=DESCRIPTION,
    )
    assert store.get("vulnerability-id", "CVE-2019-9837") == {}


def test_update_sad_path_rolls_back(tmp_path):
    _write(_gems(tmp_path) / "broken" / "CVE-2020-0001.yml", "gem: [unclosed\n")
    store = Store()
    with pytest.raises(VulnSrcError, match="yaml unmarshal error"):
        VulnSrc(store).update(tmp_path)
    assert store.has_bucket("data-source") is False


def test_non_mapping_document_is_an_error(tmp_path):
    _write(_gems(tmp_path) / "x" / "CVE-2020-0002.yml", "- a\n- b\n")
    with pytest.raises(VulnSrcError, match="yaml unmarshal error"):
        VulnSrc().update(tmp_path)


def test_missing_gems_dir_is_an_error(tmp_path):
    with pytest.raises(VulnSrcError, match="walk error"):
        VulnSrc().update(tmp_path)


def test_ghsa_used_without_cve_and_related_urls_appended(tmp_path):
    _write(
        _gems(tmp_path) / "rack" / "GHSA-aaaa-bbbb-cccc.yml",
        "gem: rack\nghsa: aaaa-bbbb-cccc\nurl: http://osvdb.org/show/osvdb/1\n"
        "related:\n  url:\n    - https://example.com/a\n",
    )
    store = Store()
    VulnSrc(store).update(tmp_path)
    detail = store.get("vulnerability-detail", "GHSA-aaaa-bbbb-cccc", "ruby-advisory-db")
    assert detail.references == ["", "https://example.com/a"]
    assert store.has_bucket("advisory-detail", "GHSA-aaaa-bbbb-cccc", BUCKET_NAME, "rack")


def test_osvdb_files_and_files_without_ids_are_skipped(tmp_path):
    _write(_gems(tmp_path) / "rails" / "OSVDB-1234.yml", "gem: rails\ncve: 2000-1\n")
    _write(_gems(tmp_path) / "rails" / "none.yml", "gem: rails\ntitle: nothing\n")
    store = Store()
    VulnSrc(store).update(tmp_path)
    assert store.has_bucket("advisory-detail") is False
    assert store.has_bucket("data-source", BUCKET_NAME) is True