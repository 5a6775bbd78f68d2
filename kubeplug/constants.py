"""Constants shared across the plugin manager."""

CURRENT_API_VERSION = "krew.googlecontainertools.github.com/v1alpha2"
PLUGIN_KIND = "Plugin"
MANIFEST_EXTENSION = ".yaml"
# Plugin name of the plugin manager itself.
KREW_PLUGIN_NAME = "krew"

# The upstream plugin index repository.
DEFAULT_INDEX_URI = "https://github.com/kubernetes-sigs/krew-index.git"
# Index name assumed for a plugin given without an index.
DEFAULT_INDEX_NAME = "default"