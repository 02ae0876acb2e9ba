"""Core orchestration logic for the harbor-sync pipeline."""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig

from harbor_sync.cache import RemoteFileListCache
from harbor_sync.cdn import CdnInvalidator
from harbor_sync.config import Config, RemoteFilesMode
from harbor_sync.coordinator import DeletionCoordinator, UploadCoordinator
from harbor_sync.diff import compute_deletion_set, compute_upload_set
from harbor_sync.exceptions import SyncInterruptedError
from harbor_sync.files import LocalFileSet
from harbor_sync.policy import TransferPolicy, TransferSpec
from harbor_sync.remote import RemoteIndex
from harbor_sync.storage import BucketStorage

if TYPE_CHECKING:
    from types_aiobotocore_cloudfront.client import CloudFrontClient
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """
    The outcome of a completed sync.

    Attributes:
        uploaded (List[str]): Keys uploaded, in upload order.
        deleted (List[str]): Stale keys removed from the bucket.
        invalidation_id (str, optional): The CDN invalidation id, if any.
    """

    uploaded: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    invalidation_id: Optional[str] = None


class HarborSyncPipeline:
    """Orchestrates one sync of the local assets to the bucket."""

    def __init__(
        self, config: Config, shutdown_event: Optional[asyncio.Event] = None
    ) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The application configuration.
            shutdown_event (asyncio.Event, optional): Event to signal shutdown.
        """
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._session: AioSession = get_session()

    def _cloudfront_params(self) -> Dict[str, str]:
        # CloudFront is global and never served from the custom S3 endpoint.
        params: Dict[str, str] = self._config.storage.as_boto_dict()
        params.pop("endpoint_url", None)
        params["region_name"] = "us-east-1"
        return params

    async def run(self) -> SyncResult:
        """
        Opens the provider clients and executes the sync.

        Returns:
            SyncResult: What the sync uploaded, deleted and invalidated.
        """
        boto_config: BotoConfig = BotoConfig(
            signature_version="s3v4",
            max_pool_connections=self._config.app.max_threads + 10,
            retries={"max_attempts": 5, "mode": "standard"},
        )
        async with AsyncExitStack() as stack:
            s3_client: "S3Client" = await stack.enter_async_context(
                self._session.create_client(
                    "s3", **self._config.storage.as_boto_dict(), config=boto_config
                )
            )
            storage: BucketStorage = BucketStorage(
                s3_client, self._config.storage, self._config.app.prefix
            )
            invalidator: Optional[CdnInvalidator] = None
            if self._config.app.cdn_distribution_id:
                cloudfront_client: "CloudFrontClient" = (
                    await stack.enter_async_context(
                        self._session.create_client(
                            "cloudfront", **self._cloudfront_params()
                        )
                    )
                )
                invalidator = CdnInvalidator(cloudfront_client, self._config.app)
            return await self.sync(storage, invalidator)

    async def sync(
        self,
        storage: BucketStorage,
        invalidator: Optional[CdnInvalidator] = None,
    ) -> SyncResult:
        """
        Executes the sync phases against an open bucket.

        Uploads are fully joined before stale objects are deleted and before
        the remote file list cache is written.

        Args:
            storage (BucketStorage): The target bucket.
            invalidator (CdnInvalidator, optional): Invalidates CDN paths last.

        Returns:
            SyncResult: What the sync uploaded, deleted and invalidated.

        Raises:
            BucketNotFoundError: If the bucket does not exist.
            TransferError: If an upload or deletion fails.
            SyncInterruptedError: If a shutdown was requested.
        """
        app = self._config.app
        logger.info(f"Syncing '{app.public_path}' to bucket '{storage.bucket}'.")
        await storage.ensure_exists()

        local_files: LocalFileSet = LocalFileSet(app)
        local: Set[str] = local_files.resolve()
        ignored: Set[str] = local_files.ignored()
        always_upload: Set[str] = local_files.always_upload()

        remote_index: RemoteIndex = RemoteIndex(storage, app)
        remote: Set[str] = await remote_index.resolve()

        to_upload: List[str] = sorted(
            compute_upload_set(
                local, remote, ignored, always_upload, local_files.is_file
            )
        )
        logger.info(
            f"Found {len(to_upload)} file(s) to upload "
            f"({len(local)} local, {len(remote)} remote)."
        )

        policy: TransferPolicy = TransferPolicy(self._config)
        specs: List[TransferSpec] = [
            spec for spec in map(policy.plan, to_upload) if spec is not None
        ]
        uploaded: List[str] = await UploadCoordinator(
            storage, app, self._shutdown_event
        ).execute(specs)

        deleted: List[str] = []
        if app.remote_files_mode is not RemoteFilesMode.KEEP:
            if self._shutdown_event.is_set():
                raise SyncInterruptedError("Sync interrupted before deletion.")
            logger.info("Fetching files to flag for delete")
            remote_live: Set[str] = await remote_index.live_listing()
            stale: Set[str] = compute_deletion_set(
                remote_live, local, ignored, always_upload, local_files.is_file
            )
            if app.remote_cache_key:
                stale.discard(app.remote_cache_key)
            deleted = await DeletionCoordinator(storage, app).execute(stale)

        cache: RemoteFileListCache = RemoteFileListCache(storage, app)
        if cache.persist(to_upload, remote, deleted):
            await cache.mirror()

        invalidation_id: Optional[str] = None
        if invalidator is not None:
            invalidation_id = await invalidator.invalidate()

        logger.info("Sync done.")
        return SyncResult(
            uploaded=uploaded, deleted=deleted, invalidation_id=invalidation_id
        )
