"""IPFS metadata fetcher with ordered gateway fallback and a persistent cache.

The cache is non-authoritative: entries can be evicted at any time and are
repopulated on the next fetch. Cache reads and writes run inside a savepoint
of the caller's unit of work so a cache failure never poisons the block
transaction.
"""

import json
from datetime import timedelta
from typing import Any

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from rtm_sync.core.timezone import utcnow
from rtm_sync.models.ipfs_cache import CacheStatus
from rtm_sync.services.exceptions import IPFSFetchError
from rtm_sync.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class IPFSMetadataService:
    """Fetch asset metadata JSON documents from IPFS gateways."""

    def __init__(
        self,
        gateways: list[str],
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize metadata service.

        Args:
            gateways: Gateway base URLs in fallback order (first is used for image URLs)
            timeout: Per-gateway request timeout in seconds
            client: Optional preconfigured httpx client (tests inject a MockTransport)
        """
        if not gateways:
            raise ValueError("At least one IPFS gateway is required")
        self.gateways = [gateway.rstrip("/") for gateway in gateways]
        self.timeout = timeout
        self._client = client

    @property
    def primary_gateway(self) -> str:
        return self.gateways[0]

    async def _get_json(self, gateway: str, ipfs_hash: str) -> dict[str, Any]:
        """GET one gateway; raise IPFSFetchError on any failure."""
        url = f"{gateway}/ipfs/{ipfs_hash}"
        try:
            if self._client is not None:
                response = await self._client.get(
                    url, headers={"Accept": "application/json"}, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise IPFSFetchError(f"Timeout after {self.timeout}s from {gateway}") from e
        except httpx.HTTPError as e:
            raise IPFSFetchError(f"Network error from {gateway}: {e}") from e
        except httpx.InvalidURL as e:
            raise IPFSFetchError(f"Invalid content hash for {gateway}: {e}") from e

        if not response.is_success:
            raise IPFSFetchError(f"HTTP {response.status_code} from {gateway}")

        try:
            document = response.json()
        except ValueError as e:
            raise IPFSFetchError(f"Non-JSON document from {gateway}") from e

        if not isinstance(document, dict):
            raise IPFSFetchError(f"Metadata from {gateway} is not a JSON object")
        return document

    async def get_cached_metadata(self, ipfs_hash: str, uow: UnitOfWork) -> dict[str, Any] | None:
        """Return cached metadata for a successful earlier fetch and record the hit."""
        try:
            async with uow.savepoint():
                entry = await uow.ipfs_cache.get_by_hash(ipfs_hash)
                if entry is None or entry.status != CacheStatus.SUCCESS:
                    return None
                await uow.ipfs_cache.touch(entry)
                logger.debug("ipfs.cache_hit", ipfs_hash=ipfs_hash)
                return entry.cache_metadata
        except SQLAlchemyError as e:
            logger.error("ipfs.cache_read_failed", ipfs_hash=ipfs_hash, error=str(e))
            return None

    async def cache_metadata(
        self,
        ipfs_hash: str,
        metadata: dict[str, Any],
        uow: UnitOfWork,
        status: CacheStatus = CacheStatus.SUCCESS,
    ) -> None:
        """Store a fetch outcome; failures are logged, never raised."""
        try:
            async with uow.savepoint():
                await uow.ipfs_cache.upsert(
                    ipfs_hash,
                    metadata,
                    status=status,
                    error_message=metadata.get("error") if status == CacheStatus.ERROR else None,
                    size=len(json.dumps(metadata, default=str)),
                )
        except SQLAlchemyError as e:
            logger.error("ipfs.cache_write_failed", ipfs_hash=ipfs_hash, error=str(e))

    async def fetch_metadata(self, ipfs_hash: str, uow: UnitOfWork) -> dict[str, Any] | None:
        """Fetch metadata, cache first, then each gateway in order.

        Args:
            ipfs_hash: Content hash referenced by the asset
            uow: Unit of work whose session holds the cache table

        Returns:
            Metadata document, or None when every gateway failed
        """
        cached = await self.get_cached_metadata(ipfs_hash, uow)
        if cached is not None:
            return cached

        for gateway in self.gateways:
            try:
                metadata = await self._get_json(gateway, ipfs_hash)
            except IPFSFetchError as e:
                logger.warning(
                    "ipfs.gateway_failed", gateway=gateway, ipfs_hash=ipfs_hash, error=str(e)
                )
                continue

            await self.cache_metadata(ipfs_hash, metadata, uow)
            logger.info("ipfs.fetched", gateway=gateway, ipfs_hash=ipfs_hash)
            return metadata

        error_msg = f"Failed to fetch IPFS metadata from all gateways ({', '.join(self.gateways)})"
        logger.error("ipfs.all_gateways_failed", ipfs_hash=ipfs_hash)
        await self.cache_metadata(ipfs_hash, {"error": error_msg}, uow, status=CacheStatus.ERROR)
        return None

    def resolve_image_url(
        self, metadata: dict[str, Any] | None, field: str = "image"
    ) -> str | None:
        """Turn an image reference into a browsable URL.

        - http(s) URLs are returned as-is
        - ``ipfs://<cid>`` and bare CIDv0/CIDv1 (``Qm...``, ``bafy...``) go through the
          primary gateway
        - anything else is returned unchanged
        """
        if not metadata:
            return None

        value = metadata.get(field)
        if not value or not isinstance(value, str):
            return None

        if value.startswith(("http://", "https://")):
            return value
        if value.startswith("ipfs://"):
            return f"{self.primary_gateway}/ipfs/{value.removeprefix('ipfs://')}"
        if value.startswith(("Qm", "bafy")):
            return f"{self.primary_gateway}/ipfs/{value}"
        return value

    async def cleanup_old_cache(self, uow: UnitOfWork, days_old: int = 30) -> int:
        """Evict entries not accessed within ``days_old`` days."""
        cutoff = utcnow() - timedelta(days=days_old)
        deleted = await uow.ipfs_cache.delete_not_accessed_since(cutoff)
        logger.info("ipfs.cache_cleanup", deleted=deleted, days_old=days_old)
        return deleted

    async def get_cache_stats(self, uow: UnitOfWork) -> dict[str, Any]:
        """Entry counts and success ratio."""
        counts = await uow.ipfs_cache.count_by_status()
        total = sum(counts.values())
        successful = counts.get(CacheStatus.SUCCESS, 0)
        return {
            "total": total,
            "successful": successful,
            "errors": counts.get(CacheStatus.ERROR, 0),
            "hit_rate": f"{successful / total * 100:.2f}%" if total else "0%",
        }
