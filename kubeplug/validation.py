"""Structural validation of plugin manifests."""

from __future__ import annotations

import re

from .constants import CURRENT_API_VERSION, PLUGIN_KIND
from .index import FileOperation, Platform, Plugin
from .labels import LabelSelector
from .semver import VersionError, parse

SHA256_PATTERN = r"^[a-f0-9]{64}$"

_SAFE_PLUGIN_PATTERN = r"^[\w-]+$"
_SAFE_PLUGIN_RE = re.compile(r"^[\w-]+\Z", re.ASCII)
_VALID_SHA256_RE = re.compile(r"^[a-f0-9]{64}\Z")

# Device names that cannot be used as file names on Windows.
_WINDOWS_FORBIDDEN = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_SUPPORTED_SELECTOR_KEYS = frozenset({"os", "arch"})


class ValidationError(ValueError):
    """Raised when a plugin manifest is structurally invalid."""


def is_safe_plugin_name(name: str) -> bool:
    """Return whether the plugin name is safe to use as a file name."""
    if not _SAFE_PLUGIN_RE.match(name):
        return False
    return name.upper() not in _WINDOWS_FORBIDDEN


def is_supported_api_version(api_version: str) -> bool:
    """Return whether the manifest API version is the one supported."""
    return api_version == CURRENT_API_VERSION


def _is_valid_sha256(s: str) -> bool:
    return _VALID_SHA256_RE.match(s) is not None


def validate_plugin(name: str, plugin: Plugin) -> None:
    """Check the plugin manifest expected to be named ``name``."""
    if not is_supported_api_version(plugin.api_version):
        raise ValidationError(
            f"plugin manifest has apiVersion={plugin.api_version!r}, not supported in this "
            "version of krew (try updating plugin index or install a newer version of krew)"
        )
    if plugin.kind != PLUGIN_KIND:
        raise ValidationError(
            f"plugin manifest has kind={plugin.kind!r}, but only {PLUGIN_KIND!r} is supported"
        )
    if not is_safe_plugin_name(name):
        raise ValidationError(
            f"the plugin name {name!r} is not allowed, must match {_SAFE_PLUGIN_PATTERN!r}"
        )
    if plugin.name != name:
        raise ValidationError(f"plugin should be named {name!r}, not {plugin.name!r}")

    spec = plugin.spec
    if not spec.short_description:
        raise ValidationError("should have a short description")
    if "\r" in spec.short_description or "\n" in spec.short_description:
        raise ValidationError("should not have line breaks in short description")
    if not spec.platforms:
        raise ValidationError("should have a platform specified")
    if not spec.version:
        raise ValidationError("should have a version specified")
    try:
        parse(spec.version)
    except VersionError as exc:
        raise ValidationError(f"failed to parse plugin version: {exc}") from exc

    for platform in spec.platforms:
        try:
            validate_platform(platform)
        except ValidationError as exc:
            raise ValidationError(f"platform ({platform!r}) is badly constructed: {exc}") from exc


def validate_platform(platform: Platform) -> None:
    """Check a platform entry for structural validity."""
    if not platform.uri:
        raise ValidationError("`uri` has to be set")
    if not platform.sha256:
        raise ValidationError("`sha256` sum has to be set")
    if not _is_valid_sha256(platform.sha256):
        raise ValidationError(
            f"`sha256` value {platform.sha256} is not valid, must match pattern {SHA256_PATTERN}"
        )
    if not platform.bin:
        raise ValidationError("`bin` has to be set")
    try:
        validate_files(platform.files)
    except ValidationError as exc:
        raise ValidationError(f"`files` is invalid: {exc}") from exc
    try:
        validate_selector(platform.selector)
    except ValidationError as exc:
        raise ValidationError(f"invalid platform selector: {exc}") from exc


def validate_files(fops: list[FileOperation] | None) -> None:
    """Check file operations; unspecified (None) is allowed, empty is not."""
    if fops is None:
        return
    if not fops:
        raise ValidationError("`files` has to be unspecified or non-empty")
    for op in fops:
        if not op.from_:
            raise ValidationError("`from` field has to be set")
        if not op.to:
            raise ValidationError("`to` field has to be set")


def validate_selector(selector: LabelSelector | None) -> None:
    """Check that a selector is non-empty and uses only os/arch keys."""
    if selector is None:
        raise ValidationError("nil selector is not supported")
    if selector.match_labels is None and not selector.match_expressions:
        raise ValidationError("empty selector is not supported")

    keys = list(selector.match_labels or {})
    keys.extend(expr.key for expr in selector.match_expressions or [])
    for key in keys:
        if key not in _SUPPORTED_SELECTOR_KEYS:
            raise ValidationError(f"key {key!r} not supported")

    if selector.match_labels is not None and not selector.match_labels:
        raise ValidationError("`matchLabels` specified but empty")
    if selector.match_expressions is not None and not selector.match_expressions:
        raise ValidationError("`matchExpressions` specified but empty")