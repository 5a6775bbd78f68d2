import io
import json
from wsgiref.util import setup_testing_defaults

import pytest

from kubeplug import site_api
from kubeplug.constants import CURRENT_API_VERSION, PLUGIN_KIND
from kubeplug.index import Plugin
from kubeplug.site_api import (
    PluginInfo,
    fetch_plugins,
    filter_yamls,
    find_repo,
    main,
    make_app,
    plugin_count_response,
    plugins_response,
    read_plugin_manifest,
)


def _manifest(name, homepage=""):
    return {
        "apiVersion": CURRENT_API_VERSION,
        "kind": PLUGIN_KIND,
        "metadata": {"name": name},
        "spec": {
            "version": "v1.0.0",
            "shortDescription": f"{name} plugin",
            "homepage": homepage,
        },
    }


def _plugin(name, homepage=""):
    return Plugin.from_dict(_manifest(name, homepage))


def _entries():
    return [
        {"type": "file", "name": "a.yaml", "download_url": "a-url"},
        {"type": "dir", "name": "sub.yaml", "download_url": "dir-url"},
        {"type": "file", "name": "README.md", "download_url": "readme-url"},
        None,
        {"type": "file", "name": "b.yaml", "download_url": "b-url"},
    ]


def _call(app, path):
    environ = {}
    setup_testing_defaults(environ)
    environ["PATH_INFO"] = path
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return captured["status"], captured["headers"], body


@pytest.mark.parametrize(
    "home_page, want",
    [
        ("https://krew.sigs.k8s.io/", "kubernetes-sigs/krew"),
        ("https://sigs.k8s.io/krew", "kubernetes-sigs/krew"),
        ("https://kudo.dev/", "kudobuilder/kudo"),
        ("https://popeyecli.io", "derailed/popeye"),
        ("https://github.com/foo/bar", "foo/bar"),
        ("https://github.com/foo/bar#readme", "foo/bar"),
        ("https://github.com/foo/bar/tree/main", "foo/bar"),
        ("https://example.com/", ""),
        ("", ""),
    ],
)
def test_find_repo(home_page, want):
    assert find_repo(home_page) == want


def test_filter_yamls_keeps_manifest_files_in_order():
    assert [e["name"] for e in filter_yamls(_entries())] == ["a.yaml", "b.yaml"]


def test_plugin_count_response():
    body = plugin_count_response(_entries())
    assert body["data"]["count"] == len(filter_yamls(_entries()))
    assert body["error"] == {}


def test_plugins_response_omits_empty_fields():
    body = plugins_response([_plugin("foo", "https://github.com/foo/bar"), _plugin("baz")])
    first, second = body["data"]["plugins"]
    assert first == {
        "name": "foo",
        "homepage": "https://github.com/foo/bar",
        "short_description": "foo plugin",
        "github_repo": "foo/bar",
    }
    assert second == {"name": "baz", "short_description": "baz plugin"}
    assert body["error"] == {}


def test_plugins_response_empty():
    assert plugins_response([]) == {"data": {}, "error": {}}


def test_plugin_info_defaults_are_empty():
    assert PluginInfo(name="x") == PluginInfo(name="x", homepage="", github_repo="")


def test_read_plugin_manifest_from_file_url(tmp_path):
    import yaml

    path = tmp_path / "foo.yaml"
    path.write_text(yaml.safe_dump(_manifest("foo", "https://github.com/foo/bar")))
    plugin = read_plugin_manifest(path.as_uri())
    assert plugin.name == "foo"
    assert plugin.spec.homepage == "https://github.com/foo/bar"


def test_read_plugin_manifest_missing(tmp_path):
    with pytest.raises(OSError):
        read_plugin_manifest((tmp_path / "missing.yaml").as_uri())


def test_fetch_plugins_keeps_order():
    urls = [f"p{i}" for i in range(10)]
    got = fetch_plugins(urls, lambda url: _plugin(url), workers=3)
    assert [p.name for p in got] == urls


def test_fetch_plugins_raises_first_error():
    def reader(url):
        if url == "bad":
            raise OSError("boom")
        return _plugin(url)

    with pytest.raises(OSError, match="boom"):
        fetch_plugins(["a", "bad", "b"], reader)


def test_fetch_plugins_empty():
    assert fetch_plugins([], lambda url: _plugin(url)) == []


def test_app_plugin_count():
    app = make_app(_entries, lambda url: _plugin(url))
    status, headers, body = _call(app, site_api.COUNT_PATH)
    assert status.startswith("200")
    assert headers["Cache-Control"] == f"public, max-age={site_api.CACHE_SECONDS}"
    assert json.loads(body) == plugin_count_response(_entries())


def test_app_plugins():
    app = make_app(_entries, lambda url: _plugin(url.replace("-url", "")))
    status, _, body = _call(app, site_api.PLUGINS_PATH)
    assert status.startswith("200")
    names = [p["name"] for p in json.loads(body)["data"]["plugins"]]
    assert names == ["a", "b"]


def test_app_listing_error():
    def failing():
        raise OSError("rate limited")

    app = make_app(failing, lambda url: _plugin(url))
    status, _, body = _call(app, site_api.COUNT_PATH)
    assert status.startswith("500")
    assert "rate limited" in json.loads(body)["error"]["message"]


def test_app_fetch_error():
    def reader(url):
        raise ValueError("broken manifest")

    app = make_app(_entries, reader)
    status, _, body = _call(app, site_api.PLUGINS_PATH)
    assert status.startswith("500")
    assert "broken manifest" in json.loads(body)["error"]["message"]


def test_app_unknown_path():
    app = make_app(_entries, lambda url: _plugin(url))
    status, _, body = _call(app, "/elsewhere")
    assert status.startswith("404")
    assert body == b"404 page not found\n"


def test_main_answers_gateway_event(monkeypatch, capsys):
    event = {"httpMethod": "GET", "path": "/elsewhere"}
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(event)))
    assert main([]) == 0
    response = json.loads(capsys.readouterr().out)
    assert response["statusCode"] == 404
    assert response["body"] == "404 page not found\n"


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit):
        main(["--port", "not-a-number"])