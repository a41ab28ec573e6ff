"""Content fetchers for notation files held in object storage."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

import httpx

from .base import ContentFetcher, ContentUnavailableError

logger = logging.getLogger(__name__)

UrlSigner = Callable[[str, str], str]

# Storage gateways answer a missing object with an error page or a JSON
# error envelope, sometimes with a 200 status.
_ERROR_CONTENT_TYPES = ("text/html", "application/json")


class HttpContentFetcher(ContentFetcher):
    """Fetch ``{base_url}/{bucket}/{path}`` over HTTP.

    Objects in *private_buckets* are fetched through a signed URL obtained
    from *url_signer*; signing itself is not this class's job.
    """

    def __init__(
        self,
        base_url: str,
        *,
        url_signer: UrlSigner | None = None,
        private_buckets: Iterable[str] = (),
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.url_signer = url_signer
        self.private_buckets = set(private_buckets)
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None

    def url_for(self, bucket: str, path: str) -> str:
        path = path.lstrip("/")
        if bucket in self.private_buckets:
            if self.url_signer is None:
                raise ContentUnavailableError(
                    f"Bucket {bucket!r} is private and no URL signer is configured"
                )
            return self.url_signer(bucket, path)
        return f"{self.base_url}/{bucket}/{path}"

    def fetch(self, bucket: str, path: str) -> bytes:
        url = self.url_for(bucket, path)
        try:
            response = self._client.get(url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise ContentUnavailableError(f"Request for {bucket}/{path} failed: {exc}") from exc

        if not response.is_success:
            raise ContentUnavailableError(
                f"{bucket}/{path} returned HTTP {response.status_code}"
            )
        content_type = response.headers.get("content-type", "").lower()
        if content_type.startswith(_ERROR_CONTENT_TYPES):
            raise ContentUnavailableError(
                f"{bucket}/{path} returned {content_type} instead of a score"
            )
        logger.debug("Fetched %s/%s (%d bytes)", bucket, path, len(response.content))
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpContentFetcher":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class DirectoryContentFetcher(ContentFetcher):
    """Read ``{root}/{bucket}/{path}`` from the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def fetch(self, bucket: str, path: str) -> bytes:
        base = (self.root / bucket).resolve()
        target = (base / path.lstrip("/")).resolve()
        if base not in target.parents:
            raise ContentUnavailableError(f"{bucket}/{path} escapes the storage root")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise ContentUnavailableError(f"Cannot read {target}: {exc}") from exc
