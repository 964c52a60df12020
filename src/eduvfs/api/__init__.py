"""Backend REST client."""

from eduvfs.api.client import ApiError, CloudClient, SignedUrl, encode_query

__all__ = [
    "ApiError",
    "CloudClient",
    "SignedUrl",
    "encode_query",
]
