"""Supabase Storage client for meal images."""

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

from meal_tracker.domain.errors import BlobNotFoundError, BlobUnavailableError


class BlobStore(Protocol):
    """Interface for reading stored meal images."""

    async def download(self, storage_path: str) -> bytes:
        """Return the bytes stored at a path."""

    def public_url(self, storage_path: str) -> str:
        """Return a retrievable URL for a stored path."""


@dataclass
class HttpxSupabaseBlobStore(BlobStore):
    """Blob store using the Supabase Storage REST API via httpx."""

    base_url: str
    service_key: str
    bucket: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, base_url: str, service_key: str, bucket: str
    ) -> "HttpxSupabaseBlobStore":
        """Create a blob store with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            service_key=service_key,
            bucket=bucket,
            http_client=httpx.AsyncClient(),
        )

    async def download(self, storage_path: str) -> bytes:
        """Download an object from the configured bucket."""
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{_quote_path(storage_path)}"
        try:
            response = await self.http_client.get(
                url,
                headers={
                    "Authorization": f"Bearer {self.service_key}",
                    "apikey": self.service_key,
                },
                timeout=20,
            )
        except httpx.HTTPError as exc:
            raise BlobUnavailableError(str(exc)) from exc
        if _is_not_found(response):
            raise BlobNotFoundError(storage_path)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BlobUnavailableError(str(exc)) from exc
        return response.content

    def public_url(self, storage_path: str) -> str:
        """Return the public object URL for a path."""
        return (
            f"{self.base_url}/storage/v1/object/public/{self.bucket}/"
            f"{_quote_path(storage_path)}"
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _quote_path(storage_path: str) -> str:
    return quote(storage_path.lstrip("/"), safe="/")


def _is_not_found(response: httpx.Response) -> bool:
    """Supabase Storage reports missing objects as 404, or 400 with a 404 body."""
    if response.status_code == httpx.codes.NOT_FOUND:
        return True
    if response.status_code != httpx.codes.BAD_REQUEST:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and (
        str(payload.get("statusCode")) == "404" or payload.get("error") == "not_found"
    )
