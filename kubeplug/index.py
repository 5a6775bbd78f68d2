"""Plugin manifest and install receipt types."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .constants import DEFAULT_INDEX_URI
from .labels import LabelSelector


def _mapping(data, what: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, got {type(data).__name__}")
    return data


def _string(data: Mapping, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


def _parse_time(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"invalid timestamp {value!r}")


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class FileOperation:
    """Copies files matching ``from_`` in the archive to ``to`` in the install dir."""

    from_: str = ""
    to: str = ""


@dataclass
class Platform:
    """How to install on, and how to recognise, one os/arch platform."""

    uri: str = ""
    sha256: str = ""
    selector: LabelSelector | None = None
    files: list[FileOperation] | None = None
    # Path to the plugin executable, relative to the installation folder.
    bin: str = ""


@dataclass
class PluginSpec:
    """The plugin specification."""

    version: str = ""
    short_description: str = ""
    description: str = ""
    caveats: str = ""
    homepage: str = ""
    platforms: list[Platform] = field(default_factory=list)


_SPEC_KEYS = (
    ("version", "version"),
    ("short_description", "shortDescription"),
    ("description", "description"),
    ("caveats", "caveats"),
    ("homepage", "homepage"),
)


def _platform_to_dict(p: Platform) -> dict:
    out: dict = {}
    if p.uri:
        out["uri"] = p.uri
    if p.sha256:
        out["sha256"] = p.sha256
    if p.selector is not None:
        out["selector"] = p.selector.to_dict()
    if p.files is None:
        out["files"] = None
    else:
        files = []
        for fo in p.files:
            item = {}
            if fo.from_:
                item["from"] = fo.from_
            if fo.to:
                item["to"] = fo.to
            files.append(item)
        out["files"] = files
    out["bin"] = p.bin
    return out


def _platform_from_dict(data) -> Platform:
    data = _mapping(data, "platform")
    selector = data.get("selector")
    files = data.get("files")
    file_ops = None
    if files is not None:
        if not isinstance(files, list):
            raise ValueError("field 'files' must be a list")
        file_ops = []
        for item in files:
            item = _mapping(item, "file operation")
            file_ops.append(FileOperation(from_=_string(item, "from"), to=_string(item, "to")))
    return Platform(
        uri=_string(data, "uri"),
        sha256=_string(data, "sha256"),
        selector=None if selector is None else LabelSelector.from_dict(selector),
        files=file_ops,
        bin=_string(data, "bin"),
    )


@dataclass
class Plugin:
    """A plugin manifest."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    creation_timestamp: datetime | None = None
    spec: PluginSpec = field(default_factory=PluginSpec)

    def to_dict(self) -> dict:
        """Return the manifest form."""
        out: dict = {}
        if self.api_version:
            out["apiVersion"] = self.api_version
        if self.kind:
            out["kind"] = self.kind
        metadata: dict = {"creationTimestamp": _format_time(self.creation_timestamp)}
        if self.name:
            metadata["name"] = self.name
        out["metadata"] = metadata

        spec: dict = {}
        for attr, key in _SPEC_KEYS:
            value = getattr(self.spec, attr)
            if value:
                spec[key] = value
        if self.spec.platforms:
            spec["platforms"] = [_platform_to_dict(p) for p in self.spec.platforms]
        out["spec"] = spec
        return out

    @classmethod
    def from_dict(cls, data) -> Plugin:
        """Build a plugin from its manifest form; unknown fields are ignored."""
        data = _mapping(data, "plugin manifest")
        metadata = _mapping(data.get("metadata"), "metadata")
        spec_data = _mapping(data.get("spec"), "spec")
        platforms = spec_data.get("platforms")
        if platforms is not None and not isinstance(platforms, list):
            raise ValueError("field 'platforms' must be a list")
        spec = PluginSpec(
            **{attr: _string(spec_data, key) for attr, key in _SPEC_KEYS},
            platforms=[_platform_from_dict(p) for p in platforms or []],
        )
        return cls(
            api_version=_string(data, "apiVersion"),
            kind=_string(data, "kind"),
            name=_string(metadata, "name"),
            creation_timestamp=_parse_time(metadata.get("creationTimestamp")),
            spec=spec,
        )


@dataclass
class SourceIndex:
    """The index a plugin was installed from."""

    name: str = ""


@dataclass
class ReceiptStatus:
    """Information about an installed plugin."""

    source: SourceIndex = field(default_factory=SourceIndex)


@dataclass
class Receipt:
    """An install receipt: the installed manifest plus its status."""

    plugin: Plugin = field(default_factory=Plugin)
    status: ReceiptStatus = field(default_factory=ReceiptStatus)

    def to_dict(self) -> dict:
        """Return the receipt file form."""
        out = self.plugin.to_dict()
        out["status"] = {"source": {"name": self.status.source.name}}
        return out

    @classmethod
    def from_dict(cls, data) -> Receipt:
        """Build a receipt from its file form."""
        data = _mapping(data, "receipt")
        status = _mapping(data.get("status"), "status")
        source = _mapping(status.get("source"), "source")
        return cls(
            plugin=Plugin.from_dict(data),
            status=ReceiptStatus(source=SourceIndex(name=_string(source, "name"))),
        )


def default_index() -> str:
    """Return the default index URI, overridable by KREW_DEFAULT_INDEX_URI."""
    return os.environ.get("KREW_DEFAULT_INDEX_URI") or DEFAULT_INDEX_URI