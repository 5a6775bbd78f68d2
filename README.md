# kubeplug

`kubeplug` holds the building blocks of a plugin manager for `kubectl`
plugins: the plugin manifest and install receipt types, manifest
validation, reading manifests from a locally cloned plugin index, storing
and loading receipts, downloading and unpacking plugin archives with a
SHA-256 check, listing and deleting configured indexes, and a small web
service that reports on the plugins in the upstream index.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Layout on disk

`kubeplug.environment.Paths(base_path)` describes the directory tree.
`must_get_krew_paths()` roots it at `~/.krew`, or at the `KREW_ROOT`
environment variable when that is set, made absolute.

| Method                                     | Location                       |
|--------------------------------------------|--------------------------------|
| `index_base()`                             | `<root>/index`                 |
| `index_path(name)`                         | `<root>/index/<name>`          |
| `index_plugins_path(name)`                 | `<root>/index/<name>/plugins`  |
| `install_receipts_path()`                  | `<root>/receipts`              |
| `plugin_install_receipt_path(name)`        | `<root>/receipts/<name>.yaml`  |
| `install_path()`                           | `<root>/store`                 |
| `plugin_install_path(name)`                | `<root>/store/<name>`          |
| `plugin_version_install_path(name, ver)`   | `<root>/store/<name>/<ver>`    |
| `bin_path()`                               | `<root>/bin`                   |

`kubeplug.environment.realpath(path)` resolves one symbolic link with an
absolute target (a relative target raises `ValueError`) or returns the
normalised path.

## Using the library

```python
from kubeplug.environment import must_get_krew_paths
from kubeplug.scanner import load_plugin_by_name, load_plugin_list_from_fs
from kubeplug.download import Downloader, HTTPFetcher, Sha256Verifier

paths = must_get_krew_paths()

# Every valid manifest in the default index; invalid ones are logged and skipped.
plugins = load_plugin_list_from_fs(paths.index_plugins_path("default"))

# One manifest, validated; FileNotFoundError if it is not there.
plugin = load_plugin_by_name(paths.index_plugins_path("default"), "ctx")

# Pick the platform entry whose selector matches the labels you give.
platform = next(
    p for p in plugin.spec.platforms
    if p.selector is not None and p.selector.matches({"os": "linux", "arch": "amd64"})
)

# Fetch the archive, check its sha256 and unpack it (zip or tar.gz).
Downloader(Sha256Verifier(platform.sha256), HTTPFetcher()).get(platform.uri, "/tmp/unpacked")
```

The modules:

- `kubeplug.index` – dataclasses `Plugin`, `PluginSpec`, `Platform`,
  `FileOperation`, `Receipt`, `ReceiptStatus` and `SourceIndex`.
  `Plugin` and `Receipt` convert to and from their YAML mapping form with
  `to_dict()` and `from_dict()`; unknown fields are ignored.
  `default_index()` returns the default index repository, or the value of
  `KREW_DEFAULT_INDEX_URI` when set.
- `kubeplug.labels` – `LabelSelector` with `match_labels` and
  `match_expressions` (`LabelSelectorRequirement` with the `In`, `NotIn`,
  `Exists` and `DoesNotExist` operators); `matches(labels)` raises
  `SelectorError` for malformed keys, values or operators.
- `kubeplug.validation` – `validate_plugin(name, plugin)`,
  `validate_platform`, `validate_files` and `validate_selector` raise
  `ValidationError`; `is_safe_plugin_name` and `is_supported_api_version`
  answer yes or no.
- `kubeplug.semver` – `parse("v1.2.3-beta.1+build")` returns a `Version`
  (raising `VersionError` for anything else, including a missing `v`),
  `less(a, b)` compares; build metadata does not affect ordering.
- `kubeplug.scanner` – `load_plugin_list_from_fs`, `load_plugin_by_name`,
  `read_plugin_from_file`, `read_plugin(stream)` and
  `read_receipt_from_file`; a receipt without a source index is attributed
  to the `default` index.
- `kubeplug.receipt` – `store(receipt, dest)`, `load(path)` and
  `new(plugin, index_name, timestamp)`.
- `kubeplug.download` – `Downloader`, `Sha256Verifier`, `HTTPFetcher`,
  `FileFetcher` (reads a local archive whatever URI is asked for),
  `download`, `extract_zip`, `extract_tar_gz`, `extract_archive` and
  `detect_mime_type`. Archive entries containing `..` or starting with
  `/` or `\` are refused (`suspicious_path`); all failures raise
  `DownloadError`.
- `kubeplug.indexops` – `list_indexes(paths)` returns `Index(name, url)`
  for each directory under `<root>/index`, sorted by name, reading the
  `remote.origin.url` from the repository's git config;
  `delete_index(paths, name)` removes one (`FileNotFoundError` if absent);
  `is_valid_index_name(name)` allows only letters, digits, `_` and `-`.
- `kubeplug.version` – `git_commit()` and `git_tag()` return the stamped
  build values or `"unknown"`.
- `kubeplug.constants` – API version, kind, manifest extension and the
  default index name and URI.

## Site API

`kubeplug.site_api` is a WSGI service with two endpoints:

- `/.netlify/functions/api/pluginCount` – `{"data": {"count": N}, "error": {}}`,
  the number of `.yaml` files in the `plugins` directory of the upstream
  index on GitHub.
- `/.netlify/functions/api/plugins` – each plugin's name, homepage, short
  description and GitHub repository (`find_repo`), with manifests fetched
  by up to 40 workers.

Successful responses carry `Cache-Control: public, max-age=3600`; failures
answer 500 with an error message. Run it with:

```
kubeplug-site-api --port 8080
```

With `--port` it serves locally and forwards every other path to
`http://localhost:1313`. Without `--port` it reads one API gateway event
as JSON from standard input and writes the response as JSON to standard
output. When `GITHUB_ACCESS_TOKEN` is set, the GitHub listing request is
sent with it as a bearer token. `make_app(list_contents, reader)` builds the
application with your own listing and manifest reader.

## What this package does not do

It does not install, upgrade or uninstall plugins: there is no code here
that chooses a platform for the running machine, moves unpacked files into
the store, links executables into `<root>/bin`, or writes receipts as part
of an installation. It does not clone, add or update index repositories,
nor migrate an older directory layout. There is no command-line plugin
manager; the only command is `kubeplug-site-api`.