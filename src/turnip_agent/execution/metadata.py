"""Uploads token metadata and artwork to IPFS through PumpPortal."""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from ..config.settings import PumpPortalConfig, get_app_config
from ..models.schemas import IpfsUploadResponse, TokenMetadata
from ..monitoring.logger import get_logger
from ..utils.constants import IMAGE_CONTENT_TYPE, IMAGE_FILENAME
from .errors import ParseError, UploadFailure

DEFAULT_HEADERS = {"User-Agent": "turnip-agent/1.0"}


class MetadataUploader:
    """Packs :class:`TokenMetadata` into a multipart form and pins it.

    No retry happens here; a failed upload surfaces straight to the caller.
    """

    def __init__(
        self,
        config: Optional[PumpPortalConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or get_app_config().pumpportal
        self._client = client or httpx.AsyncClient(timeout=self._config.http_timeout)
        self._owns_client = client is None
        self._logger = get_logger(__name__)

    def _build_form(self, metadata: TokenMetadata) -> tuple[dict, dict]:
        try:
            image = metadata.image_bytes()
        except ValueError as exc:
            raise UploadFailure(str(exc)) from exc
        data = {
            "name": metadata.name,
            "symbol": metadata.symbol,
            "description": metadata.description,
            **metadata.social_links(),
            "showName": "true",
        }
        files = {"file": (IMAGE_FILENAME, image, IMAGE_CONTENT_TYPE)}
        return data, files

    async def upload(self, metadata: TokenMetadata) -> str:
        data, files = self._build_form(metadata)
        url = f"{self._config.api_root}/ipfs"
        try:
            response = await self._client.post(url, data=data, files=files, headers=DEFAULT_HEADERS)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            self._logger.warning("Metadata upload for %s failed: %s", metadata.symbol, exc)
            raise UploadFailure(f"Failed to upload metadata to IPFS: {exc}") from exc

        try:
            payload = IpfsUploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ParseError(f"Unexpected IPFS upload response: {response.text[:200]}") from exc

        if not payload.metadata_uri:
            raise UploadFailure("Failed to upload metadata to IPFS")
        self._logger.info("Pinned metadata for %s at %s", metadata.symbol, payload.metadata_uri)
        return payload.metadata_uri

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["MetadataUploader"]
