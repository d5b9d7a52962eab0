import json
from pathlib import Path

import pytest

from advisorydb.debian import (
    DebianAdvisory,
    VulnSrc,
    compare_versions,
    default_put,
    has_fixed_version,
    new_status,
    severity_from_urgency,
)
from advisorydb.model import (
    Advisory,
    DataSource,
    Severity,
    Status,
    Store,
    VulnerabilityDetail,
    VulnSrcError,
)


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def _ann(type_="package", release="", package="", kind="", version="", severity="", bugs=None):
    ann = {
        "Type": type_,
        "Release": release,
        "Package": package,
        "Kind": kind,
        "Version": version,
        "Severity": severity,
    }
    if bugs is not None:
        ann["Bugs"] = bugs
    return ann


def _bug(bug_id, description, annotations):
    return {"Header": {"ID": bug_id, "Description": description}, "Annotations": annotations}


def _tracker(root: Path) -> Path:
    return root / "vuln-list-debian" / "tracker"


def _write_distributions(tracker: Path) -> None:
    _write_json(
        tracker / "distributions.json",
        {
            "jessie": {"major-version": "8"},
            "stretch": {"major-version": "9"},
            "buster": {"major-version": "10"},
            "bullseye": {"major-version": "11"},
            "sid": {"major-version": ""},
        },
    )


def _write_source(tracker: Path, kind: str, code: str, pkg: str, version: str) -> None:
    _write_json(
        tracker / kind / code / "main" / f"{pkg}.json",
        {"Package": [pkg], "Version": [version]},
    )


@pytest.fixture
def happy_dir(tmp_path: Path) -> Path:
    tracker = _tracker(tmp_path)
    _write_distributions(tracker)

    _write_source(tracker, "source", "jessie", "akonadi", "1.13.0-2+deb8u2")
    _write_source(tracker, "source", "stretch", "libgcrypt20", "1.7.6-2+deb9u3")
    _write_source(tracker, "updates-source", "stretch", "libgcrypt20", "1.7.6-2+deb9u4")
    _write_source(tracker, "source", "buster", "libgcrypt20", "1.8.4-5+deb10u1")
    _write_source(tracker, "source", "bullseye", "libgcrypt20", "1.8.7-6")
    _write_source(tracker, "source", "bullseye", "cloud-init", "20.4.1-2")
    _write_source(tracker, "source", "bullseye", "gnutls28", "3.7.1-5+deb11u3")

    cve = tracker / "CVE"
    _write_json(
        cve / "CVE-2021-33560.json",
        _bug(
            "CVE-2021-33560",
            "(Libgcrypt before 1.8.8 and 1.9.x before 1.9.3 mishandles ElGamal encry ...)",
            [
                _ann(type_="NOTE"),
                _ann(package="libgcrypt20", kind="fixed", version="1.8.7-6"),
                _ann(release="stretch", package="libgcrypt20", kind="fixed",
                     version="1.7.6-2+deb9u4"),
                _ann(release="buster", package="libgcrypt20", kind="fixed",
                     version="1.8.4-5+deb10u1"),
            ],
        ),
    )
    _write_json(
        cve / "CVE-2021-29629.json",
        _bug(
            "CVE-2021-29629",
            "In FreeBSD 13.0-STABLE before n245765-bec0d2c9c841, 12.2-STABLE before ...",
            [
                _ann(package="dacs", kind="unfixed", severity="low"),
                _ann(release="stretch", package="dacs", kind="not-affected"),
                _ann(release="buster", package="dacs", kind="ignored"),
            ],
        ),
    )
    _write_json(
        cve / "CVE-2020-8631.json",
        _bug(
            "CVE-2020-8631",
            "cloud-init through 19.4 relies on Mersenne Twister for a random passwo ...",
            [
                _ann(package="cloud-init", kind="fixed", version="19.4-2"),
                _ann(release="bullseye", package="cloud-init", kind="no-dsa"),
            ],
        ),
    )
    _write_json(
        cve / "CVE-2023-5981.json",
        _bug(
            "CVE-2023-5981",
            "A vulnerability was found that the response times to malformed ciphert ...",
            [
                _ann(package="gnutls28", kind="fixed", version="3.8.1-5"),
                _ann(release="bullseye", package="gnutls28", kind="fixed",
                     version="3.7.1-5+deb11u4"),
            ],
        ),
    )
    _write_json(
        cve / "CVE-2016-4606.json",
        _bug("CVE-2016-4606", "Apple OS X before 10.11.6 ...",
             [_ann(package="curl", kind="not-affected")]),
    )

    _write_json(
        tracker / "DLA" / "DLA-2691-1.json",
        _bug(
            "DLA-2691-1",
            "libgcrypt20 - security update",
            [
                _ann(type_="xref", bugs=["CVE-2021-33560"]),
                _ann(release="stretch", package="libgcrypt20", kind="fixed",
                     version="1.7.6-2+deb9u4"),
            ],
        ),
    )
    _write_json(
        tracker / "DSA" / "DSA-3714-1.json",
        _bug(
            "DSA-3714-1",
            "akonadi - update",
            [_ann(release="jessie", package="akonadi", kind="fixed",
                  version="1.13.0-2+deb8u2")],
        ),
    )
    return tmp_path


@pytest.fixture
def updated(happy_dir: Path) -> Store:
    store = Store()
    VulnSrc(store=store).update(happy_dir)
    return store


def test_update_data_source(updated):
    assert updated.get("data-source", "debian 9") == DataSource(
        id="debian",
        name="Debian Security Tracker",
        url="https://salsa.debian.org/security-tracker-team/security-tracker",
    )


@pytest.mark.parametrize(
    "key, want",
    [
        (
            ("CVE-2021-33560", "debian 9", "libgcrypt20"),
            Advisory(vendor_ids=["DLA-2691-1"], fixed_version="1.7.6-2+deb9u4"),
        ),
        (("CVE-2021-33560", "debian 10", "libgcrypt20"), Advisory(fixed_version="1.8.4-5+deb10u1")),
        (("CVE-2021-33560", "debian 11", "libgcrypt20"), Advisory(fixed_version="1.8.7-6")),
        (
            ("CVE-2021-29629", "debian 10", "dacs"),
            Advisory(severity=Severity.LOW, status=Status.WILL_NOT_FIX),
        ),
        (
            ("DSA-3714-1", "debian 8", "akonadi"),
            Advisory(vendor_ids=["DSA-3714-1"], fixed_version="1.13.0-2+deb8u2"),
        ),
        (("CVE-2020-8631", "debian 11", "cloud-init"), Advisory(fixed_version="19.4-2")),
        (("CVE-2023-5981", "debian 11", "gnutls28"), Advisory(status=Status.AFFECTED)),
    ],
)
def test_update_advisory_details(updated, key, want):
    assert updated.get("advisory-detail", *key) == want


@pytest.mark.parametrize(
    "vuln_id, title",
    [
        ("CVE-2021-33560",
         "Libgcrypt before 1.8.8 and 1.9.x before 1.9.3 mishandles ElGamal encry ..."),
        ("CVE-2021-29629",
         "In FreeBSD 13.0-STABLE before n245765-bec0d2c9c841, 12.2-STABLE before ..."),
        ("DSA-3714-1", "akonadi - update"),
        ("CVE-2023-5981",
         "A vulnerability was found that the response times to malformed ciphert ..."),
    ],
)
def test_update_vulnerability_details(updated, vuln_id, title):
    assert updated.get("vulnerability-detail", vuln_id, "debian") == VulnerabilityDetail(
        title=title
    )


@pytest.mark.parametrize(
    "vuln_id", ["CVE-2021-33560", "CVE-2021-29629", "DSA-3714-1", "CVE-2023-5981"]
)
def test_update_vulnerability_ids(updated, vuln_id):
    assert updated.get("vulnerability-id", vuln_id) == {}


def test_update_skips_not_affected(updated):
    assert not updated.has_bucket("advisory-detail", "CVE-2021-29629", "debian 9")
    assert not updated.has_bucket("advisory-detail", "CVE-2016-4606")


def test_update_skips_unreleased_codenames(updated):
    assert not updated.has_bucket("advisory-detail", "CVE-2021-33560", "debian 8")


def test_update_broken_distributions(tmp_path):
    tracker = _tracker(tmp_path)
    tracker.mkdir(parents=True)
    (tracker / "distributions.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(VulnSrcError, match="distributions error"):
        VulnSrc().update(tmp_path)


def test_update_broken_packages(tmp_path):
    tracker = _tracker(tmp_path)
    _write_distributions(tracker)
    path = tracker / "source" / "buster" / "main" / "bash.json"
    path.parent.mkdir(parents=True)
    path.write_text("[broken", encoding="utf-8")
    with pytest.raises(VulnSrcError, match="source parse error"):
        VulnSrc().update(tmp_path)


def test_update_broken_cve(tmp_path):
    tracker = _tracker(tmp_path)
    _write_distributions(tracker)
    path = tracker / "CVE" / "CVE-2021-0001.json"
    path.parent.mkdir(parents=True)
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(VulnSrcError, match="json decode error"):
        VulnSrc().update(tmp_path)


def test_update_custom_put(happy_dir):
    collected = []
    VulnSrc(put=lambda store, advisory: collected.append(advisory)).update(happy_dir)
    keys = {(a.vulnerability_id, a.platform, a.pkg_name) for a in collected}
    assert ("DSA-3714-1", "debian 8", "akonadi") in keys
    assert ("CVE-2020-8631", "debian 11", "cloud-init") in keys
    assert all(isinstance(a, DebianAdvisory) for a in collected)


def test_get_happy():
    store = Store(
        {
            "debian 10": {
                "alpine": {
                    "CVE-2008-5514": Advisory(fixed_version="2.02-3.1"),
                    "CVE-2021-38370": '{"Status": 2}',
                }
            }
        }
    )
    assert VulnSrc(store=store).get("10", "alpine") == [
        Advisory(vulnerability_id="CVE-2008-5514", fixed_version="2.02-3.1"),
        Advisory(vulnerability_id="CVE-2021-38370", status=Status.AFFECTED),
    ]


def test_get_broken_bucket():
    store = Store({"debian 10": {"alpine": {"CVE-2008-5514": "broken"}}})
    with pytest.raises(VulnSrcError, match="failed to get advisories"):
        VulnSrc(store=store).get("10", "alpine")


def test_name():
    assert VulnSrc().name() == "debian"


@pytest.mark.parametrize(
    "urgency, want",
    [
        ("not yet assigned", Severity.UNKNOWN),
        ("end-of-life", Severity.UNKNOWN),
        ("unimportant", Severity.LOW),
        ("low**", Severity.LOW),
        ("medium*", Severity.MEDIUM),
        ("high", Severity.HIGH),
        ("bogus", Severity.UNKNOWN),
    ],
)
def test_severity_from_urgency(urgency, want):
    assert severity_from_urgency(urgency) == want


@pytest.mark.parametrize(
    "state, want",
    [
        ("no-dsa", Status.AFFECTED),
        ("NO-DSA", Status.AFFECTED),
        ("unfixed", Status.AFFECTED),
        ("ignored", Status.WILL_NOT_FIX),
        ("postponed", Status.FIX_DEFERRED),
        ("end-of-life", Status.END_OF_LIFE),
        ("", Status.UNKNOWN),
    ],
)
def test_new_status(state, want):
    assert new_status(state) == want


@pytest.mark.parametrize(
    "v1, v2, want",
    [
        ("", "", 0),
        ("", "1.0", -1),
        ("1.0", "", 1),
        ("1.0-1", "1.0-2", -1),
        ("5.0-4", "5.0-4", 0),
        ("1:1.0", "2.0", 1),
    ],
)
def test_compare_versions(v1, v2, want):
    assert compare_versions(v1, v2) == want


def test_compare_versions_invalid():
    with pytest.raises(VulnSrcError, match="version error"):
        compare_versions("abc", "1.0")


@pytest.mark.parametrize(
    "sid_ver, code_ver, want",
    [
        ("", "5.0-4", False),
        ("5.0-2", "5.0-4", True),
        ("5.0-4", "5.0-4", True),
        ("5.0-5", "5.0-4", False),
    ],
)
def test_has_fixed_version(sid_ver, code_ver, want):
    assert has_fixed_version(sid_ver, code_ver) is want


def test_default_put_unknown_type():
    with pytest.raises(VulnSrcError, match="unknown type"):
        default_put(Store(), "not an advisory")


def test_default_put_stores_everything():
    store = Store()
    default_put(
        store,
        DebianAdvisory(
            vulnerability_id="CVE-2020-0001",
            platform="debian 10",
            pkg_name="bash",
            state="postponed",
            severity="medium",
            title="bash - issue",
        ),
    )
    assert store.get("advisory-detail", "CVE-2020-0001", "debian 10", "bash") == Advisory(
        status=Status.FIX_DEFERRED, severity=Severity.MEDIUM
    )
    assert store.get("vulnerability-detail", "CVE-2020-0001", "debian") == VulnerabilityDetail(
        title="bash - issue"
    )
    assert store.get("vulnerability-id", "CVE-2020-0001") == {}
    assert store.get("data-source", "debian 10").id == "debian"