"""Shared HTTP and OpenAI client construction with httpx>=0.28 compatibility."""
from __future__ import annotations

import atexit

import httpx
from openai import OpenAI

from brainstormer.utils.config import Settings


def build_httpx_client(timeout: float) -> httpx.Client:
    """Create an httpx client without deprecated proxy kwargs."""
    client = httpx.Client(
        timeout=httpx.Timeout(connect=10.0, read=timeout, write=timeout, pool=timeout),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        follow_redirects=True,
    )
    atexit.register(client.close)
    return client


def build_openai_client(config: Settings) -> OpenAI:
    """Return an OpenAI client wired to the compatible httpx client."""
    if not config.openai_api_key:
        raise ValueError("OPENAI_API_KEY is not set")
    client = OpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url or None,
        http_client=build_httpx_client(config.generator_timeout),
    )
    atexit.register(client.close)
    return client
