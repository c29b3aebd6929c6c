"""Outbound HTTP client construction and proxy selection."""

import logging
import os

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PROXY_URL = "http://127.0.0.1:7897"
PROXY_ENV_VARS = ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

CLIENT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)

# Hosts reachable without going through the proxy
DOMESTIC_DOMAINS = (
    ".cn",
    "oschina.net",
    "v2ex.com",
    "leiphone.com",
    "tmtpost.com",
    "36kr.com",
    "jiqizhixin.com",
    "qbitai.com",
    "zhidx.com",
    "infoq.cn",
    "hellogithub.com",
    "csdn.net",
    "juejin.cn",
    "segmentfault.com",
)


def is_domestic_site(url: str) -> bool:
    """Check whether a URL belongs to a host that needs no proxy."""
    url_lower = url.lower()
    return any(domain in url_lower for domain in DOMESTIC_DOMAINS)


def resolve_proxy_url() -> str:
    """Proxy URL from the environment, or the local default."""
    for name in PROXY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return DEFAULT_PROXY_URL


def create_http_client(use_proxy: bool, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Create an HTTP client, optionally routed through the outbound proxy.

    Falls back to a direct client when the proxy URL cannot be configured.
    ``transport`` replaces the network layer of the direct connection.
    """
    kwargs = {
        "transport": transport,
        "timeout": CLIENT_TIMEOUT,
        "headers": {"User-Agent": USER_AGENT},
        "follow_redirects": True,
        # Proxy choice is made here, not from the environment
        "trust_env": False,
    }
    if not use_proxy:
        return httpx.Client(**kwargs)

    proxy_url = resolve_proxy_url()
    try:
        client = httpx.Client(proxy=httpx.Proxy(proxy_url), **kwargs)
    except (ImportError, ValueError, httpx.InvalidURL) as e:
        # e.g. a socks5:// URL without the socksio extra installed
        logger.warning("Failed to configure proxy '%s', connecting directly: %s", proxy_url, e)
        return httpx.Client(**kwargs)
    logger.debug("Using proxy: %s", proxy_url)
    return client
