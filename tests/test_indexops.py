import os

import pytest

from kubeplug.environment import Paths
from kubeplug.indexops import Index, delete_index, is_valid_index_name, list_indexes


def _init_repo(path, url):
    git_dir = path / ".git"
    git_dir.mkdir(parents=True)
    (git_dir / "config").write_text(
        "[core]\n"
        "\tbare = false\n"
        '[remote "origin"]\n'
        f"\turl = {url}\n"
        "\tfetch = +refs/heads/*:refs/remotes/origin/*\n",
        encoding="utf-8",
    )


def test_list_indexes(tmp_path):
    want = [
        Index(name="custom", url="https://github.com/custom/index.git"),
        Index(name="default", url="https://github.com/default/index.git"),
    ]
    paths = Paths(str(tmp_path))
    for index in reversed(want):
        _init_repo(tmp_path / "index" / index.name, index.url)

    assert list_indexes(paths) == want


def test_list_indexes_skips_files(tmp_path):
    paths = Paths(str(tmp_path))
    _init_repo(tmp_path / "index" / "foo", "https://github.com/foo/index.git")
    (tmp_path / "index" / "stray-file").write_bytes(b"")

    assert [i.name for i in list_indexes(paths)] == ["foo"]


def test_list_indexes_without_remote_fails(tmp_path):
    (tmp_path / "index" / "broken" / ".git").mkdir(parents=True)
    (tmp_path / "index" / "broken" / ".git" / "config").write_text("[core]\n\tbare = false\n")

    with pytest.raises(ValueError, match="broken"):
        list_indexes(Paths(str(tmp_path)))


def test_list_indexes_missing_base(tmp_path):
    with pytest.raises(FileNotFoundError):
        list_indexes(Paths(str(tmp_path / "nope")))


def test_delete_index(tmp_path):
    with pytest.raises(FileNotFoundError):
        delete_index(Paths(os.path.join(str(tmp_path), "does-not-exist", "foo")), "bar")

    p = Paths(str(tmp_path))
    with pytest.raises(FileNotFoundError):
        delete_index(p, "unknown-index")

    os.makedirs(p.index_path("some-index"), 0o755)
    delete_index(p, "some-index")
    assert not os.path.exists(p.index_path("some-index"))


@pytest.mark.parametrize(
    "index, want",
    [
        ("foo bar", False),
        ("foo/bar", False),
        ("../foo", False),
        ("foo\\bar", False),
        ("foo.bar", False),
        ("foo", True),
    ],
)
def test_is_valid_index_name(index, want):
    assert is_valid_index_name(index) is want