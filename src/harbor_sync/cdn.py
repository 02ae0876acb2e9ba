"""CloudFront invalidation of explicitly configured asset paths."""

import logging
import uuid
from typing import TYPE_CHECKING, Any, List, Optional

from botocore.exceptions import ClientError

from harbor_sync.config import AppConfig, join_key
from harbor_sync.exceptions import InvalidationError

if TYPE_CHECKING:
    from types_aiobotocore_cloudfront.client import CloudFrontClient

logger: logging.Logger = logging.getLogger(__name__)


class CdnInvalidator:
    """Requests invalidation of the configured paths on a distribution."""

    def __init__(self, client: "CloudFrontClient", config: AppConfig) -> None:
        self._client: "CloudFrontClient" = client
        self._config: AppConfig = config

    def paths(self) -> List[str]:
        """Returns the absolute URL paths to invalidate."""
        prefix: str = self._config.prefix
        return ["/" + join_key(prefix, name) for name in self._config.invalidate]

    async def invalidate(self) -> Optional[str]:
        """
        Submits the invalidation request.

        Returns:
            Optional[str]: The invalidation id, or None when no distribution
                or no paths are configured.

        Raises:
            InvalidationError: If the request is rejected.
        """
        distribution_id: Optional[str] = self._config.cdn_distribution_id
        paths: List[str] = self.paths()
        if not distribution_id or not paths:
            return None

        logger.info("Invalidating Files")
        try:
            response: Any = await self._client.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(paths), "Items": paths},
                    "CallerReference": f"harbor-sync-{uuid.uuid4()}",
                },
            )
        except ClientError as e:
            raise InvalidationError(
                f"Invalidation of {len(paths)} path(s) on '{distribution_id}' "
                f"failed: {e}"
            ) from e
        invalidation_id: str = response["Invalidation"]["Id"]
        logger.info(f"Invalidation id: {invalidation_id}")
        return invalidation_id
