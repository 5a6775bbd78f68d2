"""Plugin manager building blocks: manifests, validation, index scanning, receipts, archive download and an index statistics API."""

__version__ = "0.1.0"