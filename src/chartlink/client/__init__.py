"""HTTP client for the identity server and the chart tile host.

Re-exports :class:`HttpsClient` so callers can write::

    from chartlink.client import HttpsClient
"""

from chartlink.client.https_client import HttpsClient

__all__ = ["HttpsClient"]
