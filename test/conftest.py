from datetime import datetime
from pathlib import Path

import pygit2
import pytest
from semantic_version import Version

AMMONIA_ADVISORY = '''\
```toml
[advisory]
id = "RUSTSEC-2019-0001"
package = "ammonia"
date = "2019-04-27"
url = "https://github.com/rust-ammonia/ammonia/blob/master/CHANGELOG.md#210"
categories = ["denial-of-service"]
keywords = ["stack-overflow", "crash"]
aliases = ["CVE-2019-15542"]

[affected]
arch = ["x86_64"]

[affected.functions]
"ammonia::clean" = ["< 2.1.0"]

[versions]
patched = [">= 2.1.0"]
unaffected = ["< 1.0.0"]
```

# Uncontrolled recursion leads to abort in HTML serialization

Affected versions of this crate did use recursion for serialization of HTML
DOM trees.
'''

OVERLAPPING_ADVISORY = '''\
```toml
[advisory]
id = "RUSTSEC-2020-0002"
package = "broken"
date = "2020-01-02"

[versions]
patched = [">= 1.0.0"]
unaffected = ["< 1.5.0"]
```

# Self-contradictory advisory
'''

COMMIT_DATE = "2021-05-05T12:00:00+00:00"


@pytest.fixture
def version():
    def _version(v):
        return Version(v)

    return _version


def _signature(date: str) -> pygit2.Signature:
    when = datetime.fromisoformat(date)
    offset = int(when.utcoffset().total_seconds() // 60)
    return pygit2.Signature("Test", "test@example.com", int(when.timestamp()), offset)


def commit_all(repo: Path, message: str, *, date: str = COMMIT_DATE) -> None:
    repository = pygit2.Repository(str(repo))
    repository.index.add_all()
    repository.index.write()
    tree = repository.index.write_tree()
    parents = [] if repository.head_is_unborn else [repository.head.target]
    signature = _signature(date)
    repository.create_commit("HEAD", signature, signature, message, tree, parents)


@pytest.fixture
def advisory_repo(tmp_path):
    """
    Returns a function that creates a committed advisory database from a
    mapping of repository-relative paths to file contents.
    """

    def _advisory_repo(files):
        repo = tmp_path / "advisory-db"
        repo.mkdir()
        pygit2.init_repository(str(repo))
        for name, contents in files.items():
            path = repo / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(contents)
        commit_all(repo, "advisories")
        return repo

    return _advisory_repo


@pytest.fixture
def advisory_db(advisory_repo):
    return advisory_repo({"crates/ammonia/RUSTSEC-2019-0001.md": AMMONIA_ADVISORY})


@pytest.fixture
def out_dir(tmp_path):
    out = tmp_path / "osv"
    out.mkdir()
    return out
