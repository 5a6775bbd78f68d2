"""Storing and loading plugin install receipts."""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime

import yaml

from .index import Plugin, Receipt, ReceiptStatus, SourceIndex
from .scanner import read_receipt_from_file


def store(receipt: Receipt, dest: str) -> None:
    """Save the receipt at ``dest``; its directory must already exist."""
    content = yaml.safe_dump(receipt.to_dict(), default_flow_style=False).encode()
    fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    with os.fdopen(fd, "wb") as f:
        f.write(content)


def load(path: str) -> Receipt:
    """Read the receipt at ``path``; raises FileNotFoundError when missing."""
    return read_receipt_from_file(path)


def new(plugin: Plugin, index_name: str, timestamp: datetime | None) -> Receipt:
    """Return a receipt for ``plugin`` installed from ``index_name`` at ``timestamp``."""
    return Receipt(
        plugin=dataclasses.replace(plugin, creation_timestamp=timestamp),
        status=ReceiptStatus(source=SourceIndex(name=index_name)),
    )