# advisorydb

`advisorydb` reads security advisory feeds that have already been downloaded
to a local cache directory and normalises them into one in-memory advisory
store. The store keys advisories by bucket name, then package name, then
vulnerability ID. It also holds vulnerability details, vulnerability IDs and
the data source behind each bucket.

## Feeds

| Module                    | Feed                                                  |
|---------------------------|-------------------------------------------------------|
| `advisorydb.azure`        | Azure Linux and CBL-Mariner OVAL data                 |
| `advisorydb.debian`       | Debian Security Tracker (CVE, DLA, DSA, sources)      |
| `advisorydb.bundler`      | Ruby Advisory Database                                |
| `advisorydb.composer`     | PHP Security Advisories Database                      |
| `advisorydb.chainguard`   | Chainguard security data                              |
| `advisorydb.echo`         | Echo advisories                                       |
| `advisorydb.glad`         | GitLab Advisory Database (Conan packages)             |
| `advisorydb.minimos`      | MinimOS security data                                 |

Supporting modules:

- `advisorydb.model` holds the data types (`Advisory`, `VulnerabilityDetail`,
  `DataSource`, `Severity`, `Status`, `Ecosystem`), the `Store` and the
  `VulnSrcError` exception.
- `advisorydb.bucket` builds bucket names such as `debian 10`,
  `Azure Linux 3.0` and `go::GitHub Security Advisory`.
- `advisorydb.debversion` parses and compares Debian package versions.
- `advisorydb.oval` reads the OVAL JSON files used by `advisorydb.azure`.
- `advisorydb.cocoapods` maps Swift git URLs to CocoaPods package names.
- `advisorydb.transformers` adjusts advisories that have been parsed from OSV
  documents, for Bitnami, GitHub Security Advisories, the Go Vulnerability
  Database and Julia.

## Installation

```
pip install advisorydb
```

## Usage

Each feed source is built around a `Store`. Call `update()` with the cache
directory, then read the results back.

```python
from advisorydb.model import Store
from advisorydb import azure, debian, chainguard

store = Store()

azure.VulnSrc(azure.Distribution.AZURE, store).update("cache")
debian.VulnSrc(store).update("cache")
chainguard.VulnSrc(store).update("cache")

for advisory in debian.VulnSrc(store).get("10", "openssl"):
    print(advisory.vulnerability_id, advisory.fixed_version, advisory.status)
```

`update()` looks for each feed at a fixed place inside the cache directory,
for example:

- `vuln-list/azure/<version>/` and `vuln-list/mariner/<version>/`
- `vuln-list-debian/tracker/`
- `ruby-advisory-db/gems/`
- `php-security-advisories/`
- `vuln-list/chainguard/`, `vuln-list/echo/`, `vuln-list/minimos/`
- `vuln-list/glad/conan/`

When a feed cannot be read or is malformed, `update()` raises
`advisorydb.model.VulnSrcError`; the message names the step that failed.
Writes made by one `update()` are grouped in `Store.batch()` and are undone if
that step raises.

`Store.get_advisories(bucket, pkg_name)` returns the advisories of a package
in a bucket, ordered by vulnerability ID. `Store.get(*path)` returns whatever
is stored at a path and raises `KeyError` when nothing is there;
`Store.has_bucket(*path)` tells whether anything is.

### Buckets

```python
from advisorydb import bucket
from advisorydb.model import DataSource

bucket.new_alpine("3.11").name           # "alpine 3.11"
bucket.new_redhat("").name               # "Red Hat"
bucket.new_mariner("2.0").name           # "CBL-Mariner 2.0"

src = DataSource(id="ghsa", name="GitHub Security Advisory", url="https://example.com/advisories")
bucket.new_go(src).name                  # "go::GitHub Security Advisory"
```

A language bucket needs a data source; an empty `DataSource()` raises
`VulnSrcError`.

### Debian versions

```python
from advisorydb.debversion import parse_version

parse_version("1.8.4-5+deb10u1").compare(parse_version("1.8.7-6"))  # -1
```

An invalid version raises `InvalidVersionError`.

## What is not included

- There is no reader for OSV documents. The classes in
  `advisorydb.transformers` work on `OsvAdvisory` objects and entry
  dictionaries that the caller supplies.
- The store lives in memory only; nothing is written to disk.
- Feeds are not downloaded; they must already be in the cache directory.
- There is no command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```