import os
import tempfile

import pytest

from kubeplug.constants import DEFAULT_INDEX_NAME
from kubeplug.environment import Paths, must_get_krew_paths, realpath


def _p(path):
    return path.replace("/", os.sep)


def test_must_get_krew_paths_resolves_to_home_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("KREW_ROOT", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert must_get_krew_paths().base_path == os.path.join(str(tmp_path), ".krew")


def test_must_get_krew_paths_env_override(monkeypatch):
    custom = _p("/custom/krew/path")
    monkeypatch.setenv("KREW_ROOT", custom)
    assert must_get_krew_paths().base_path == custom


def test_paths():
    base = _p("/foo")
    p = Paths(base)
    assert p.base_path == base
    assert p.bin_path() == _p("/foo/bin")
    assert p.index_path(DEFAULT_INDEX_NAME) == _p("/foo/index/default")
    assert p.index_plugins_path(DEFAULT_INDEX_NAME) == _p("/foo/index/default/plugins")
    assert p.install_path() == _p("/foo/store")
    assert p.plugin_install_path("my-plugin") == _p("/foo/store/my-plugin")
    assert p.plugin_version_install_path("my-plugin", "v1") == _p("/foo/store/my-plugin/v1")
    assert p.install_receipts_path().endswith("receipts")
    assert p.plugin_install_receipt_path("my-plugin").endswith(_p("receipts/my-plugin.yaml"))
    assert p.index_base() == _p("/foo/index")


@pytest.fixture
def tree(tmp_path):
    root = str(tmp_path)
    (tmp_path / "regular-file").write_bytes(b"")
    orig = os.path.normpath(tempfile.gettempdir())
    os.symlink(orig, os.path.join(root, "symbolic-link-abs"))
    os.symlink("./another-file", os.path.join(root, "symbolic-link-rel"))
    return root, orig


def _in(root, rel):
    return os.path.normpath(os.path.join(root, _p(rel)))


def test_realpath_file_not_exists(tree):
    root, _ = tree
    with pytest.raises(OSError):
        realpath(_in(root, "not/exists"))


def test_realpath_relative_symlink(tree):
    root, _ = tree
    with pytest.raises(ValueError, match="relative"):
        realpath(_in(root, "symbolic-link-rel"))


@pytest.mark.parametrize(
    "rel, want_rel",
    [
        (".", "."),
        ("regular-file", "regular-file"),
        ("foo/..", "."),
        ("regular-file/foo/..", "regular-file"),
    ],
    ids=["directory", "regular file", "directory unclean", "regular file unclean"],
)
def test_realpath_plain_paths(tree, rel, want_rel):
    root, _ = tree
    assert realpath(_in(root, rel)) == _in(root, want_rel)


def test_realpath_absolute_symlink(tree):
    root, orig = tree
    assert realpath(_in(root, "symbolic-link-abs")) == orig