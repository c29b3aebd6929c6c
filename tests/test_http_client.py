"""Tests for outbound client construction and proxy fallback."""

import logging
import sys

import httpx
import pytest

from news_aggregator.http_client import (
    DEFAULT_PROXY_URL,
    create_http_client,
    is_domestic_site,
    resolve_proxy_url,
)
from news_aggregator.summarizer import Summarizer, SummaryConfig

CONFIG = SummaryConfig(base_url="https://api.example.com/v1", api_key="sk-test", model="test-model")


@pytest.fixture
def socks_proxy_without_support(monkeypatch):
    """A SOCKS proxy configured while the socksio extra is unavailable."""
    monkeypatch.setitem(sys.modules, "socksio", None)
    monkeypatch.setenv("HTTPS_PROXY", "socks5://127.0.0.1:1080")


def test_proxy_url_defaults_to_local_address():
    assert resolve_proxy_url() == DEFAULT_PROXY_URL


def test_proxy_url_from_environment(monkeypatch):
    monkeypatch.setenv("https_proxy", "http://proxy.internal:3128")
    assert resolve_proxy_url() == "http://proxy.internal:3128"


@pytest.mark.parametrize(
    "url, domestic",
    [
        ("https://www.oschina.net/news/rss", True),
        ("https://www.infoq.cn/feed", True),
        ("https://hnrss.org/frontpage", False),
    ],
)
def test_is_domestic_site(url, domestic):
    assert is_domestic_site(url) is domestic


def test_unsupported_socks_proxy_falls_back_to_direct(socks_proxy_without_support, caplog):
    with caplog.at_level(logging.WARNING, logger="news_aggregator.http_client"):
        client = create_http_client(True)
    client.close()

    assert "connecting directly" in caplog.text


def test_unknown_proxy_scheme_falls_back_to_direct(monkeypatch, caplog):
    monkeypatch.setenv("HTTPS_PROXY", "ftp://proxy.internal:21")

    with caplog.at_level(logging.WARNING, logger="news_aggregator.http_client"):
        client = create_http_client(True)
    client.close()

    assert "connecting directly" in caplog.text


def test_summarize_survives_unusable_proxy(socks_proxy_without_support):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Summary via direct link"}}]})

    transport = httpx.MockTransport(handler)
    summarizer = Summarizer(
        CONFIG,
        client_factory=lambda use_proxy: create_http_client(use_proxy, transport=transport),
        sleep=lambda seconds: None,
    )

    assert summarizer.summarize("Title", "content") == "Summary via direct link"
    assert len(requests) == 1
