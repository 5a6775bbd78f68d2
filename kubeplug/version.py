"""Build identification of the plugin manager."""

# Stamped at build time; empty when unknown.
GIT_COMMIT = ""
GIT_TAG = ""


def git_commit() -> str:
    """Return the stamped git commit, or "unknown"."""
    return GIT_COMMIT or "unknown"


def git_tag() -> str:
    """Return the stamped git tag, or "unknown"."""
    return GIT_TAG or "unknown"