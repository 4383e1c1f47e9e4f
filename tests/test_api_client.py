"""Tests for API client with caching and retry logic."""

from unittest.mock import Mock, patch

import pytest
import requests

from virus_host_census.api_clients.base import CachedAPIClient, InvalidResponseError
from virus_host_census.config import load_config


def _response(from_cache: bool = False, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.from_cache = from_cache
    response.raise_for_status = Mock()
    response.cache_key = None
    return response


def test_client_creates_cache_dir(tmp_path):
    """Test that client creates cache directory if it doesn't exist."""
    cache_dir = tmp_path / "nonexistent_cache"
    assert not cache_dir.exists()

    CachedAPIClient(cache_dir=cache_dir)

    assert cache_dir.is_dir()


def test_client_caches_response(tmp_path):
    """Test that responses are served through the cached session."""
    client = CachedAPIClient(cache_dir=tmp_path / "cache", rate_limit=100)
    test_url = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/esearch.fcgi"

    with patch.object(client.session, "get") as mock_get:
        mock_get.return_value = _response(from_cache=False)
        assert client.get(test_url, params={"term": "x"}).status_code == 200

        mock_get.return_value = _response(from_cache=True)
        assert client.get(test_url, params={"term": "x"}).status_code == 200

        assert mock_get.call_count == 2
        assert mock_get.call_args.kwargs["params"] == {"term": "x"}
        assert mock_get.call_args.kwargs["timeout"] == 30


def test_client_from_config(tmp_path):
    """Test creating client from PipelineConfig."""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(f"""
data_dir: {tmp_path / "data"}
cache_dir: {tmp_path / "cache"}
duckdb_path: {tmp_path / "test.duckdb"}
oracle:
  rate_limit_per_second: 3
  max_retries: 3
  cache_ttl_seconds: 3600
  timeout_seconds: 60
""")

    config = load_config(config_file)
    client = CachedAPIClient.from_config(config)

    assert client.rate_limit == 3
    assert client.max_retries == 3
    assert client.timeout == 60
    assert client.cache_dir == tmp_path / "cache"


def test_rate_limit_respected(tmp_path):
    """Test that rate limiting sleeps between non-cached requests."""
    client = CachedAPIClient(cache_dir=tmp_path / "cache", rate_limit=10)

    with patch("time.sleep") as mock_sleep, patch.object(
        client.session, "get", return_value=_response(from_cache=False)
    ):
        client.get("https://api.example.com/test")

        mock_sleep.assert_called_once()
        assert mock_sleep.call_args[0][0] == pytest.approx(0.1)


def test_rate_limit_skipped_for_cached(tmp_path):
    """Test that cached requests don't trigger rate limiting sleep."""
    client = CachedAPIClient(cache_dir=tmp_path / "cache", rate_limit=10)

    with patch("time.sleep") as mock_sleep, patch.object(
        client.session, "get", return_value=_response(from_cache=True)
    ):
        client.get("https://api.example.com/test")

        mock_sleep.assert_not_called()


def test_transient_errors_are_retried(tmp_path):
    client = CachedAPIClient(
        cache_dir=tmp_path / "cache",
        rate_limit=1000,
        max_retries=3,
        backoff_min=0,
        backoff_max=0,
    )
    ok = _response()

    with patch.object(
        client.session,
        "get",
        side_effect=[requests.exceptions.ConnectionError("reset"), ok],
    ) as mock_get:
        assert client.get("https://api.example.com/test") is ok

    assert mock_get.call_count == 2


def test_retries_exhausted_reraises(tmp_path):
    client = CachedAPIClient(
        cache_dir=tmp_path / "cache",
        max_retries=2,
        backoff_min=0,
        backoff_max=0,
    )

    with patch.object(
        client.session,
        "get",
        side_effect=requests.exceptions.Timeout("slow"),
    ) as mock_get:
        with pytest.raises(requests.exceptions.Timeout):
            client.get("https://api.example.com/test")

    assert mock_get.call_count == 2


def test_unusable_payload_is_evicted_and_retried(tmp_path):
    """Test that a parser failure drops the cached copy and refetches."""
    client = CachedAPIClient(
        cache_dir=tmp_path / "cache",
        rate_limit=1000,
        max_retries=3,
        backoff_min=0,
        backoff_max=0,
    )
    bad = _response(from_cache=True)
    bad.content = b"error"
    bad.cache_key = "stale-key"
    good = _response()
    good.content = b"ok"

    def parse(response):
        if response.content == b"error":
            raise RuntimeError("Search Backend failed")
        return response.content.decode()

    with patch.object(client.session, "get", side_effect=[bad, good]) as mock_get, patch.object(
        client.session.cache, "delete"
    ) as mock_delete:
        assert client.get("https://api.example.com/test", parse=parse) == "ok"

    assert mock_get.call_count == 2
    mock_delete.assert_called_once_with("stale-key")


def test_unusable_payload_exhausts_retries(tmp_path):
    client = CachedAPIClient(
        cache_dir=tmp_path / "cache",
        max_retries=2,
        backoff_min=0,
        backoff_max=0,
    )

    def parse(response):
        raise ValueError("truncated XML")

    with patch.object(
        client.session, "get", return_value=_response(from_cache=True)
    ) as mock_get:
        with pytest.raises(InvalidResponseError, match="truncated XML"):
            client.get("https://api.example.com/test", parse=parse)

    assert mock_get.call_count == 2
