from __future__ import annotations

import http.client
import io
import json
import logging
import urllib.error

from buildserver.pipeline import BuildContext
from buildserver.steps import site

from conftest import FakeRunner, make_job


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _ctx(settings):
    return BuildContext.create(make_job(), settings, FakeRunner())


def test_synchronize_url() -> None:
    assert (
        site.synchronize_url("phet.colorado.edu", "foo")
        == "http://phet.colorado.edu/services/synchronize-project?projectName=html%2Ffoo"
    )


def test_successful_sync_is_logged(settings, monkeypatch, caplog) -> None:
    requested = []

    def fake_urlopen(url, timeout):
        requested.append(url)
        return _Response(json.dumps({"success": True}).encode("utf-8"))

    monkeypatch.setattr(site.urllib.request, "urlopen", fake_urlopen)
    with caplog.at_level(logging.INFO, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))

    assert requested == [site.synchronize_url("phet.colorado.edu", "foo")]
    assert "succeeded" in caplog.text


def test_rejected_sync_is_logged_not_raised(settings, monkeypatch, caplog) -> None:
    monkeypatch.setattr(
        site.urllib.request,
        "urlopen",
        lambda url, timeout: _Response(json.dumps({"success": False, "error": "no such project"}).encode("utf-8")),
    )
    with caplog.at_level(logging.ERROR, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))
    assert "no such project" in caplog.text


def test_unreachable_site_is_logged_not_raised(settings, monkeypatch, caplog) -> None:
    def fake_urlopen(url, timeout):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(site.urllib.request, "urlopen", fake_urlopen)
    with caplog.at_level(logging.ERROR, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))
    assert "connection refused" in caplog.text


def test_undecodable_body_is_logged_not_raised(settings, monkeypatch, caplog) -> None:
    monkeypatch.setattr(site.urllib.request, "urlopen", lambda url, timeout: _Response(b"\xff\xfe"))
    with caplog.at_level(logging.ERROR, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))
    assert "invalid JSON" in caplog.text


def test_malformed_status_line_is_logged_not_raised(settings, monkeypatch, caplog) -> None:
    def fake_urlopen(url, timeout):
        raise http.client.BadStatusLine("garbage")

    monkeypatch.setattr(site.urllib.request, "urlopen", fake_urlopen)
    with caplog.at_level(logging.ERROR, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))
    assert "garbage" in caplog.text


def test_truncated_body_is_logged_not_raised(settings, monkeypatch, caplog) -> None:
    class _Truncated(_Response):
        def read(self, *args):
            raise http.client.IncompleteRead(b"{", 10)

    monkeypatch.setattr(site.urllib.request, "urlopen", lambda url, timeout: _Truncated())
    with caplog.at_level(logging.ERROR, logger="buildserver.steps.site"):
        site.notify_site(_ctx(settings))
    assert "failed" in caplog.text
