"""Locations of the plugin manager's files on disk."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass, field

from .constants import MANIFEST_EXTENSION

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Paths:
    """All important paths below the base directory."""

    base_path: str
    tmp: str = field(default_factory=tempfile.gettempdir)

    def index_base(self) -> str:
        """Directory holding the default index and custom ones."""
        return os.path.join(self.base_path, "index")

    def index_path(self, name: str) -> str:
        """Directory where the named index repository is cloned."""
        return os.path.join(self.base_path, "index", name)

    def index_plugins_path(self, name: str) -> str:
        """Plugins directory of the named index repository."""
        return os.path.join(self.index_path(name), "plugins")

    def install_receipts_path(self) -> str:
        """Directory where plugin receipts are stored."""
        return os.path.join(self.base_path, "receipts")

    def bin_path(self) -> str:
        """Directory of plugin executable links, meant to be on $PATH."""
        return os.path.join(self.base_path, "bin")

    def install_path(self) -> str:
        """Base directory for plugin installations."""
        return os.path.join(self.base_path, "store")

    def plugin_install_path(self, plugin: str) -> str:
        """Directory holding all installed versions of a plugin."""
        return os.path.join(self.install_path(), plugin)

    def plugin_install_receipt_path(self, plugin: str) -> str:
        """Path of the install receipt of a plugin."""
        return os.path.join(self.install_receipts_path(), plugin + MANIFEST_EXTENSION)

    def plugin_version_install_path(self, plugin: str, version: str) -> str:
        """Directory of one installed version of a plugin."""
        return os.path.join(self.install_path(), plugin, version)


def must_get_krew_paths() -> Paths:
    """Return paths rooted at ~/.krew, or at KREW_ROOT when it is set."""
    base = os.path.join(os.path.expanduser("~"), ".krew")
    from_env = os.environ.get("KREW_ROOT")
    if from_env:
        base = from_env
        log.debug("using environment override KREW_ROOT=%s", from_env)
    return Paths(os.path.abspath(base))


def realpath(path: str) -> str:
    """Resolve one absolute symbolic link, or return the cleaned path.

    Raises OSError if the path cannot be read and ValueError if it is a
    symbolic link with a relative target.
    """
    info = os.lstat(path)
    if stat.S_ISLNK(info.st_mode):
        path = os.readlink(path)
        if not os.path.isabs(path):
            raise ValueError(f"symbolic link is relative ({path})")
    return os.path.normpath(path)