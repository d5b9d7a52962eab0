import pytest

from advisorydb import bucket
from advisorydb.model import DataSource, Ecosystem, VulnSrcError

GHSA = DataSource(id="ghsa", name="GitHub Security Advisory", url="https://github.com/advisories")
GLAD = DataSource(id="glad", name="GitLab Advisory Database", url="https://gitlab.com/advisories")


def _ghsa(name):
    return DataSource(id="ghsa", name=name, url="https://github.com/advisories")


@pytest.mark.parametrize(
    "made, want",
    [
        (bucket.new_alpine("3.11"), "alpine 3.11"),
        (bucket.new_alpine(""), "alpine"),
        (bucket.new_redhat(""), "Red Hat"),
        (bucket.new_redhat("8"), "Red Hat 8"),
        (bucket.new_arch_linux(""), "archlinux"),
        (bucket.new_azure_linux("3.0"), "Azure Linux 3.0"),
        (bucket.new_mariner("2.0"), "CBL-Mariner 2.0"),
        (bucket.new_go(GHSA), "go::GitHub Security Advisory"),
        (bucket.new_npm(GLAD), "npm::GitLab Advisory Database"),
        (bucket.new_pypi(_ghsa("GitHub Security Advisory PyPI")), "pip::GitHub Security Advisory PyPI"),
        (
            bucket.new_composer(_ghsa("GitHub Security Advisory Composer")),
            "composer::GitHub Security Advisory Composer",
        ),
        (
            bucket.new_rubygems(_ghsa("GitHub Security Advisory RubyGems")),
            "rubygems::GitHub Security Advisory RubyGems",
        ),
        (bucket.new_cargo(_ghsa("GitHub Security Advisory Cargo")), "cargo::GitHub Security Advisory Cargo"),
    ],
)
def test_bucket_name(made, want):
    assert made.name == want


@pytest.mark.parametrize("source", [GHSA, GLAD])
def test_data_source_bucket(source):
    assert bucket.new_go(source).data_source == source
    assert bucket.new_npm(source).data_source == source


def test_special_os_names():
    assert bucket.new_debian("9").name == "debian 9"
    assert bucket.new_chainguard("").name == "chainguard"
    assert bucket.new_echo("").name == "echo"
    assert bucket.new_minimos("").name == "minimos"
    assert bucket.new_oracle("8").name == "Oracle Linux 8"
    assert bucket.new_opensuse_tumbleweed().name == "openSUSE Tumbleweed"
    assert bucket.new_opensuse("15.1").name == "openSUSE Leap 15.1"


def test_ecosystems():
    assert bucket.new_mariner("2.0").ecosystem is Ecosystem.CBL_MARINER
    assert bucket.new_suse_linux_enterprise("15").ecosystem is Ecosystem.SUSE
    assert bucket.new_kubernetes(GHSA).name == "k8s::GitHub Security Advisory"
    assert bucket.new_cocoapods(GHSA).ecosystem is Ecosystem.COCOAPODS


def test_empty_data_source_rejected():
    with pytest.raises(VulnSrcError, match="data source cannot be empty"):
        bucket.new_swift(DataSource())