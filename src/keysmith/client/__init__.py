"""HTTP client module for keysmith.

Provides :class:`CloudClient`, a blocking client for the control-plane API
backed by :mod:`httpx`, with credential injection, deadline-bounded
request timeouts, retry with exponential backoff, and typed error mapping.

Example::

    from keysmith.client import CloudClient

    with CloudClient(profile) as client:
        key = client.get_api_key("key-123")
"""

from keysmith.client.cloud_client import CloudClient

__all__ = ["CloudClient"]
