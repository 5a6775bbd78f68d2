"""HTTP API serving statistics about the plugins in the upstream index."""

from __future__ import annotations

import argparse
import base64
import http
import io
import json
import logging
import os
import re
import sys
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from wsgiref.simple_server import make_server
from wsgiref.util import setup_testing_defaults

import yaml

from .constants import MANIFEST_EXTENSION
from .index import Plugin

log = logging.getLogger(__name__)

ORG_NAME = "kubernetes-sigs"
REPO_NAME = "krew-index"
PLUGINS_DIR = "plugins"

PLUGIN_FETCH_WORKERS = 40
CACHE_SECONDS = 60 * 60

COUNT_PATH = "/.netlify/functions/api/pluginCount"
PLUGINS_PATH = "/.netlify/functions/api/plugins"
SITE_ORIGIN = "http://localhost:1313"

_GITHUB_REPO_RE = re.compile(r".*github\.com/([^/]+/[^/#]+)")

_KNOWN_HOME_PAGES = {
    "https://krew.sigs.k8s.io/": "kubernetes-sigs/krew",
    "https://sigs.k8s.io/krew": "kubernetes-sigs/krew",
    "https://kubernetes.github.io/ingress-nginx/kubectl-plugin/": "kubernetes/ingress-nginx",
    "https://kudo.dev/": "kudobuilder/kudo",
    "https://kubevirt.io": "kubevirt/kubectl-virt-plugin",
    "https://popeyecli.io": "derailed/popeye",
    "https://soluble-ai.github.io/kubetap/": "soluble-ai/kubetap",
}

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

_JSON_HEADERS = [("Content-Type", "text/plain; charset=utf-8")]

Reader = Callable[[str], Plugin]
ListContents = Callable[[], list]


@dataclass(frozen=True)
class PluginInfo:
    """What the site shows for one plugin."""

    name: str = ""
    homepage: str = ""
    short_description: str = ""
    github_repo: str = ""


def _info_to_dict(info: PluginInfo) -> dict:
    fields = {
        "name": info.name,
        "homepage": info.homepage,
        "short_description": info.short_description,
        "github_repo": info.github_repo,
    }
    return {k: v for k, v in fields.items() if v}


def find_repo(home_page: str) -> str:
    """Return the "owner/repo" on GitHub for a plugin home page, or ""."""
    match = _GITHUB_REPO_RE.search(home_page)
    if match:
        return match.group(1)
    return _KNOWN_HOME_PAGES.get(home_page, "")


def filter_yamls(entries: Iterable[dict | None]) -> list[dict]:
    """Keep the directory entries that are manifest files."""
    return [
        e
        for e in entries
        if e is not None
        and e.get("type") == "file"
        and str(e.get("name", "")).endswith(MANIFEST_EXTENSION)
    ]


def _github_list_contents() -> list:
    url = f"https://api.github.com/repos/{ORG_NAME}/{REPO_NAME}/contents/{PLUGINS_DIR}"
    req = urllib.request.Request(url, headers={"Accept": "application/vnd.github.v3+json"})
    # A permission-less access token raises the rate limit.
    access_token = os.environ.get("GITHUB_ACCESS_TOKEN")
    if access_token:
        req.add_header("Authorization", f"Bearer {access_token}")
    with urllib.request.urlopen(req) as resp:
        log.info(
            "github response=%s rate: limit=%s remaining=%s",
            resp.status,
            resp.headers.get("X-RateLimit-Limit"),
            resp.headers.get("X-RateLimit-Remaining"),
        )
        data = json.load(resp)
    if not isinstance(data, list):
        raise ValueError("repository path is not a directory listing")
    return data


def read_plugin_manifest(url: str) -> Plugin:
    """Fetch and parse the plugin manifest at ``url``."""
    try:
        with urllib.request.urlopen(url) as resp:
            content = resp.read()
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise OSError(f"failed to get {url}: {exc}") from exc
    try:
        return Plugin.from_dict(yaml.safe_load(content))
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"failed to parse plugin manifest for {url}: {exc}") from exc


def fetch_plugins(
    urls: Iterable[str],
    reader: Reader = read_plugin_manifest,
    workers: int = PLUGIN_FETCH_WORKERS,
) -> list[Plugin]:
    """Read every manifest concurrently; the first failure is raised."""
    urls = list(urls)
    if not urls:
        return []
    pool = ThreadPoolExecutor(max_workers=min(workers, len(urls)))
    try:
        futures = [pool.submit(reader, url) for url in urls]
        return [f.result() for f in futures]
    except BaseException:
        pool.shutdown(wait=True, cancel_futures=True)
        raise
    finally:
        pool.shutdown(wait=True)


def plugins_response(plugins: Iterable[Plugin]) -> dict:
    """Build the body of a successful plugin list response."""
    infos = [
        PluginInfo(
            name=p.name,
            homepage=p.spec.homepage,
            short_description=p.spec.short_description,
            github_repo=find_repo(p.spec.homepage),
        )
        for p in plugins
    ]
    data = {"plugins": [_info_to_dict(i) for i in infos]} if infos else {}
    return {"data": data, "error": {}}


def plugin_count_response(entries: Iterable[dict | None]) -> dict:
    """Build the body of a successful plugin count response."""
    return {"data": {"count": len(filter_yamls(entries))}, "error": {}}


def _json_body(value: dict) -> bytes:
    return (json.dumps(value) + "\n").encode()


def _cached_headers() -> list[tuple[str, str]]:
    return [*_JSON_HEADERS, ("Cache-Control", f"public, max-age={CACHE_SECONDS}")]


def make_app(list_contents: ListContents = _github_list_contents, reader: Reader = read_plugin_manifest):
    """Return a WSGI application serving the plugin count and plugin list."""

    def count(start_response):
        try:
            entries = list_contents()
        except (OSError, ValueError) as exc:
            start_response("500 Internal Server Error", _JSON_HEADERS)
            message = f"error retrieving repo contents: {exc}"
            return [_json_body({"data": {"count": 0}, "error": {"message": message}})]
        body = plugin_count_response(entries)
        log.info("count=%d", body["data"]["count"])
        start_response("200 OK", _cached_headers())
        return [_json_body(body)]

    def plugins(start_response):
        try:
            entries = list_contents()
        except (OSError, ValueError) as exc:
            start_response("500 Internal Server Error", _JSON_HEADERS)
            message = f"error retrieving repo contents: {exc}"
            return [_json_body({"data": {}, "error": {"message": message}})]
        urls = [e.get("download_url", "") for e in filter_yamls(entries)]
        try:
            found = fetch_plugins(urls, reader)
        except (OSError, ValueError) as exc:
            start_response("500 Internal Server Error", _JSON_HEADERS)
            message = f"failed to fetch plugins: {exc}"
            return [_json_body({"data": {}, "error": {"message": message}})]
        start_response("200 OK", _cached_headers())
        return [_json_body(plugins_response(found))]

    def app(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path == COUNT_PATH:
            return count(start_response)
        if path == PLUGINS_PATH:
            return plugins(start_response)
        start_response("404 Not Found", _JSON_HEADERS)
        return [b"404 page not found\n"]

    return app


def _with_logging(app):
    def wrapped(environ, start_response):
        start = time.monotonic()
        method = environ.get("REQUEST_METHOD", "")
        path = environ.get("PATH_INFO", "")
        log.info("[req]  > method=%s path=%s", method, path)
        try:
            return app(environ, start_response)
        finally:
            log.info("[resp] < method=%s path=%s took=%.3fs", method, path,
                     time.monotonic() - start)

    return wrapped


def _with_site_proxy(app, target: str):
    def wrapped(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path in (COUNT_PATH, PLUGINS_PATH):
            return app(environ, start_response)

        url = target + urllib.parse.quote(path)
        if environ.get("QUERY_STRING"):
            url += "?" + environ["QUERY_STRING"]
        length = int(environ.get("CONTENT_LENGTH") or 0)
        body = environ["wsgi.input"].read(length) if length else None
        headers = {
            key[5:].replace("_", "-").title(): value
            for key, value in environ.items()
            if key.startswith("HTTP_") and key != "HTTP_HOST"
        }
        if environ.get("CONTENT_TYPE"):
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        req = urllib.request.Request(
            url, data=body, headers=headers, method=environ.get("REQUEST_METHOD", "GET")
        )
        try:
            resp = urllib.request.urlopen(req)
        except urllib.error.HTTPError as exc:
            resp = exc
        except (urllib.error.URLError, OSError) as exc:
            log.error("http: proxy error: %s", exc)
            start_response("502 Bad Gateway", [])
            return [b""]
        with resp:
            code = resp.getcode()
            data = resp.read()
            out_headers = [
                (k, v) for k, v in resp.headers.items() if k.lower() not in _HOP_BY_HOP
            ]
        try:
            phrase = http.HTTPStatus(code).phrase
        except ValueError:
            phrase = ""
        start_response(f"{code} {phrase}".strip(), out_headers)
        return [data]

    return wrapped


def _gateway_response(app, event: dict) -> dict:
    body = event.get("body") or ""
    raw = base64.b64decode(body) if event.get("isBase64Encoded") else body.encode()
    environ: dict = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": event.get("httpMethod") or "GET",
            "PATH_INFO": event.get("path") or "/",
            "QUERY_STRING": urllib.parse.urlencode(event.get("queryStringParameters") or {}),
            "wsgi.input": io.BytesIO(raw),
            "CONTENT_LENGTH": str(len(raw)),
        }
    )
    for key, value in (event.get("headers") or {}).items():
        environ["HTTP_" + key.upper().replace("-", "_")] = value

    captured: dict = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = headers

    result = app(environ, start_response)
    try:
        content = b"".join(result)
    finally:
        close = getattr(result, "close", None)
        if close is not None:
            close()
    return {
        "statusCode": int(captured["status"].split()[0]),
        "headers": dict(captured["headers"]),
        "body": content.decode("utf-8", "replace"),
    }


def main(argv: list[str] | None = None) -> int:
    """Serve locally with --port, or answer one gateway event read from stdin."""
    parser = argparse.ArgumentParser(description="Plugin index statistics API.")
    parser.add_argument("--port", type=int, default=-1, help="to debug locally, set a port number")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    app = make_app()
    if args.port != -1:
        handler = _with_logging(_with_site_proxy(app, SITE_ORIGIN))
        with make_server("", args.port, handler) as server:
            server.serve_forever()
        return 0

    event = json.load(sys.stdin)
    json.dump(_gateway_response(_with_logging(app), event), sys.stdout)
    sys.stdout.write("\n")
    return 0