"""Listing and removing configured plugin indexes."""

from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass

from .environment import Paths

_VALID_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")
_ESCAPES = {"n": "\n", "t": "\t", "b": "\b"}


@dataclass(frozen=True)
class Index:
    """Name and remote URL of a configured index."""

    name: str
    url: str


def _git_dir(repo: str) -> str:
    dot_git = os.path.join(repo, ".git")
    if os.path.isfile(dot_git):
        with open(dot_git, encoding="utf-8") as f:
            line = f.readline().strip()
        if line.startswith("gitdir:"):
            target = line[len("gitdir:"):].strip()
            return target if os.path.isabs(target) else os.path.join(repo, target)
    return dot_git


def _config_value(raw: str) -> str:
    out = []
    quoted = False
    raw = raw.strip()
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == '"':
            quoted = not quoted
        elif c == "\\" and i + 1 < len(raw):
            i += 1
            out.append(_ESCAPES.get(raw[i], raw[i]))
        elif c in "#;" and not quoted:
            break
        else:
            out.append(c)
        i += 1
    return "".join(out).strip()


def _section(header: str) -> tuple[str, str]:
    name, _, sub = header.strip().partition(" ")
    sub = sub.strip()
    if sub:
        return name.lower(), sub.strip('"')
    if "." in name:
        name, sub = name.split(".", 1)
        return name.lower(), sub.lower()
    return name.lower(), ""


def _remote_origin_url(repo: str) -> str:
    config_path = os.path.join(_git_dir(repo), "config")
    with open(config_path, encoding="utf-8") as f:
        lines = f.read().splitlines()

    section: tuple[str, str] | None = None
    url = None
    for raw in lines:
        line = raw.strip()
        if not line or line[0] in "#;":
            continue
        if line.startswith("["):
            end = line.find("]")
            section = _section(line[1:end] if end != -1 else line[1:])
            continue
        if section != ("remote", "origin"):
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip().lower() == "url":
            url = _config_value(value)
    if url is None:
        raise ValueError(f"no remote.origin.url configured in {config_path!r}")
    return url


def list_indexes(paths: Paths) -> list[Index]:
    """Return the configured indexes, sorted by name."""
    with os.scandir(paths.index_base()) as it:
        names = sorted(e.name for e in it if e.is_dir(follow_symlinks=False))

    indexes = []
    for name in names:
        try:
            remote = _remote_origin_url(paths.index_path(name))
        except (OSError, ValueError) as exc:
            raise ValueError(f"failed to list the remote URL for index {name}: {exc}") from exc
        indexes.append(Index(name=name, url=remote))
    return indexes


def delete_index(paths: Paths, name: str) -> None:
    """Remove the named index; raises FileNotFoundError when it does not exist."""
    directory = paths.index_path(name)
    os.stat(directory)
    shutil.rmtree(directory)


def is_valid_index_name(name: str) -> bool:
    """Return whether an index name holds only letters, digits, '_' and '-'."""
    return _VALID_NAME_RE.fullmatch(name) is not None