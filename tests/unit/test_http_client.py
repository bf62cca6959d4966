"""
Unit Tests for the HTTP Fetcher and Process Lock
================================================
"""

import os

import pytest
from unittest.mock import Mock

import requests

from newsmirror.ingestion.http_client import FetchResponse, HttpFetcher, IMAGE_ACCEPT
from newsmirror.utils.process_lock import ProcessLock


def make_response(status=200, content=b"<rss/>", headers=None, url="https://example.com/rss"):
    response = Mock()
    response.status_code = status
    response.content = content
    response.url = url
    response.headers = headers or {"Content-Type": "application/rss+xml; charset=utf-8"}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return response


class TestHttpFetcher:
    """Test cases for HttpFetcher."""

    @pytest.fixture
    def session(self):
        session = Mock()
        session.headers = {}
        return session

    def test_user_agent_is_set(self, session):
        HttpFetcher("NewsMirror/1.0", session=session)

        assert session.headers["User-Agent"] == "NewsMirror/1.0"

    def test_get_returns_response(self, session):
        session.get.return_value = make_response()
        fetcher = HttpFetcher("ua", timeout=12, session=session)

        response = fetcher.get("https://example.com/rss")

        assert isinstance(response, FetchResponse)
        assert response.content == b"<rss/>"
        assert response.headers == {"content-type": "application/rss+xml; charset=utf-8"}
        assert response.content_type == "application/rss+xml"
        session.get.assert_called_once_with("https://example.com/rss", headers=None, timeout=12)

    def test_image_body_is_never_decoded(self, session):
        response = make_response(
            content=b"\xff\xd8\xff\xe0", headers={"Content-Type": "image/jpeg"}, url="https://example.com/a.jpg"
        )
        del response.text
        session.get.return_value = response
        fetcher = HttpFetcher("ua", session=session)

        result = fetcher.get("https://example.com/a.jpg", accept=IMAGE_ACCEPT)

        assert result.content == b"\xff\xd8\xff\xe0"
        assert not hasattr(result, "text")

    def test_accept_header(self, session):
        session.get.return_value = make_response()
        fetcher = HttpFetcher("ua", session=session)

        fetcher.get("https://example.com/a.jpg", accept=IMAGE_ACCEPT)

        assert session.get.call_args.kwargs["headers"] == {"Accept": IMAGE_ACCEPT}

    def test_http_error_raises(self, session):
        session.get.return_value = make_response(status=503)
        fetcher = HttpFetcher("ua", session=session)

        with pytest.raises(requests.HTTPError):
            fetcher.get("https://example.com/rss")

    def test_connection_error_propagates(self, session):
        session.get.side_effect = requests.ConnectionError("refused")
        fetcher = HttpFetcher("ua", session=session)

        with pytest.raises(requests.RequestException):
            fetcher.get("https://example.com/rss")

        assert session.get.call_count == 1

    def test_default_session_never_retries(self):
        fetcher = HttpFetcher("ua")

        adapter = fetcher.session.get_adapter("https://example.com")
        assert adapter.max_retries.total == 0
        fetcher.close()


class TestProcessLock:

    def test_second_lock_is_refused(self, tmp_path):
        first = ProcessLock("newsmirror-test", lock_dir=str(tmp_path))
        second = ProcessLock("newsmirror-test", lock_dir=str(tmp_path))

        assert first.acquire()
        try:
            assert not second.acquire()
            assert second.holder()["pid"] == os.getpid()
        finally:
            first.release()

        assert second.acquire()
        second.release()

    def test_context_manager(self, tmp_path):
        with ProcessLock("newsmirror-ctx", lock_dir=str(tmp_path)) as lock:
            assert lock.acquired

        assert not lock.acquired
        assert not (tmp_path / "newsmirror-ctx.lock").exists()

    def test_ensure_single_instance_exits_when_held(self, tmp_path):
        from newsmirror.utils.process_lock import ensure_single_instance

        held = ensure_single_instance("crawler-example", lock_dir=str(tmp_path))
        try:
            with pytest.raises(SystemExit):
                ensure_single_instance("crawler-example", lock_dir=str(tmp_path))
        finally:
            held.release()
