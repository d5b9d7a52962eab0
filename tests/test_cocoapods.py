import json

import pytest

from advisorydb.cocoapods import normalize_swift_url, walk_cocoapods_specs
from advisorydb.model import VulnSrcError


def _spec(root, relative, content):
    path = root / "cocoapods-specs" / "Specs" / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content if isinstance(content, str) else json.dumps(content), encoding="utf-8")


def test_normalize_swift_url_trims_scheme_and_suffix():
    assert normalize_swift_url("https://github.com/Alamofire/Alamofire.git") == (
        "github.com/Alamofire/Alamofire"
    )


def test_normalize_swift_url_is_idempotent():
    once = normalize_swift_url("https://github.com/a/b.git")
    assert normalize_swift_url(once) == once


def test_walk_groups_names_by_repository(tmp_path):
    url = "https://github.com/Alamofire/Alamofire.git"
    _spec(tmp_path, "a/Alamofire/5.0.0/Alamofire.podspec.json",
          {"name": "Alamofire", "source": {"git": url}})
    _spec(tmp_path, "a/Alamofire/5.1.0/Alamofire.podspec.json",
          {"name": "Alamofire", "source": {"git": url}})
    _spec(tmp_path, "b/AlamofireCore/1.0.0/AlamofireCore.podspec.json",
          {"name": "AlamofireCore", "source": {"git": url}})

    specs = walk_cocoapods_specs(tmp_path)

    assert specs == {normalize_swift_url(url): ["Alamofire", "AlamofireCore"]}


def test_walk_skips_non_json_and_missing_git(tmp_path):
    _spec(tmp_path, "x/README.md", "{not json")
    _spec(tmp_path, "y/Local/1.0/Local.podspec.json", {"name": "Local", "source": {"http": "x"}})
    assert walk_cocoapods_specs(tmp_path) == {}


def test_walk_reports_broken_json(tmp_path):
    _spec(tmp_path, "z/Broken/1.0/Broken.podspec.json", "{broken")
    with pytest.raises(VulnSrcError, match="json decode error"):
        walk_cocoapods_specs(tmp_path)


def test_walk_missing_directory(tmp_path):
    with pytest.raises(VulnSrcError, match="walk error"):
        walk_cocoapods_specs(tmp_path)