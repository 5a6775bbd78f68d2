"""Reading plugin manifests and install receipts from disk."""

from __future__ import annotations

import logging
import os
from typing import IO

import yaml

from .constants import DEFAULT_INDEX_NAME, MANIFEST_EXTENSION
from .index import Plugin, Receipt
from .validation import ValidationError, validate_plugin

log = logging.getLogger(__name__)


def _find_plugin_manifest_files(index_dir: str) -> list[str]:
    with os.scandir(index_dir) as entries:
        names = [
            entry.name
            for entry in entries
            if entry.is_file(follow_symlinks=False)
            and os.path.splitext(entry.name)[1] == MANIFEST_EXTENSION
        ]
    return sorted(names)


def _decode(content) -> object:
    # Unknown fields are tolerated so that newer manifests remain readable.
    return yaml.safe_load(content)


def _validated(plugin: Plugin) -> Plugin:
    try:
        validate_plugin(plugin.name, plugin)
    except ValidationError as exc:
        raise ValidationError(f"plugin manifest validation error: {exc}") from exc
    return plugin


def _read_file(path: str) -> object:
    with open(path, "rb") as f:
        content = f.read()
    try:
        return _decode(content)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse yaml file {path!r}: {exc}") from exc


def load_plugin_list_from_fs(index_dir: str) -> list[Plugin]:
    """Load every valid plugin manifest in ``index_dir``; bad ones are logged and skipped."""
    index_dir = os.path.realpath(index_dir, strict=True)
    files = _find_plugin_manifest_files(index_dir)
    log.debug("found %d plugins in dir %s", len(files), index_dir)

    plugins = []
    for file in files:
        plugin_name = os.path.splitext(file)[0]
        try:
            plugins.append(load_plugin_by_name(index_dir, plugin_name))
        except (OSError, ValueError) as exc:
            log.error("failed to read or parse plugin manifest %r: %s", plugin_name, exc)
    return plugins


def load_plugin_by_name(plugins_dir: str, plugin_name: str) -> Plugin:
    """Load a plugin manifest by name; raises FileNotFoundError when missing."""
    log.debug("Reading plugin %r from %s", plugin_name, plugins_dir)
    return read_plugin_from_file(os.path.join(plugins_dir, plugin_name + MANIFEST_EXTENSION))


def read_plugin_from_file(path: str) -> Plugin:
    """Read and validate a plugin manifest; raises FileNotFoundError when missing."""
    data = _read_file(path)
    try:
        plugin = Plugin.from_dict(data)
    except ValueError as exc:
        raise ValueError(f"failed to parse yaml file {path!r}: {exc}") from exc
    return _validated(plugin)


def read_plugin(stream: IO) -> Plugin:
    """Read and validate a plugin manifest from a stream, closing it afterwards."""
    try:
        content = stream.read()
    finally:
        stream.close()
    try:
        plugin = Plugin.from_dict(_decode(content))
    except (yaml.YAMLError, ValueError) as exc:
        raise ValueError(f"failed to decode plugin manifest: {exc}") from exc
    return _validated(plugin)


def read_receipt_from_file(path: str) -> Receipt:
    """Read an install receipt; raises FileNotFoundError when missing.

    A receipt without a source index is attributed to the default index.
    """
    data = _read_file(path)
    try:
        receipt = Receipt.from_dict(data)
    except ValueError as exc:
        raise ValueError(f"failed to parse yaml file {path!r}: {exc}") from exc
    if not receipt.status.source.name:
        receipt.status.source.name = DEFAULT_INDEX_NAME
    return receipt