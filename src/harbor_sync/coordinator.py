"""
Execution of the upload and deletion phases.

Uploads run either sequentially or on a bounded pool of asyncio worker tasks;
the pool is fully joined before `UploadCoordinator.execute` returns, so later
phases only ever observe completed uploads. Deletions are sequential.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Set

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from harbor_sync.config import AppConfig, RemoteFilesMode
from harbor_sync.exceptions import SyncInterruptedError
from harbor_sync.policy import TransferSpec
from harbor_sync.storage import BucketStorage
from harbor_sync.worker import upload_object, upload_worker

logger: logging.Logger = logging.getLogger(__name__)

BULK_DELETE_BATCH_SIZE: int = 500


class UploadCoordinator:
    """Uploads a sequence of planned transfers, each exactly once."""

    def __init__(
        self,
        storage: BucketStorage,
        config: AppConfig,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Initializes the coordinator.

        Args:
            storage (BucketStorage): The target bucket.
            config (AppConfig): The sync configuration.
            shutdown_event (asyncio.Event, optional): Stops further uploads
                when set.
        """
        self._storage: BucketStorage = storage
        self._config: AppConfig = config
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()

    def worker_count(self, num_specs: int) -> int:
        """Returns the pool size used for `num_specs` uploads."""
        return min(self._config.max_threads, num_specs)

    async def execute(self, specs: Sequence[TransferSpec]) -> List[str]:
        """
        Uploads every spec.

        The first failure cancels the remaining work and propagates; uploads
        that already completed are not rolled back.

        Args:
            specs (Sequence[TransferSpec]): The planned uploads.

        Returns:
            List[str]: The uploaded keys.

        Raises:
            TransferError: If any upload fails.
            SyncInterruptedError: If a shutdown was requested.
        """
        if not specs:
            logger.info("Nothing to upload.")
            return []

        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            transient=True,
        )
        with progress:
            task_id: TaskID = progress.add_task("Uploading...", total=len(specs))
            if self._config.concurrent_uploads:
                await self._run_pool(specs, progress, task_id)
            else:
                for spec in specs:
                    if self._shutdown_event.is_set():
                        break
                    await upload_object(spec, self._storage)
                    progress.update(task_id, advance=1)

        if self._shutdown_event.is_set():
            raise SyncInterruptedError("Upload interrupted by shutdown signal.")
        logger.info(f"Uploaded {len(specs)} file(s).")
        return [spec.key for spec in specs]

    async def _run_pool(
        self,
        specs: Sequence[TransferSpec],
        progress: Progress,
        task_id: TaskID,
    ) -> None:
        spec_queue: "asyncio.Queue[TransferSpec]" = asyncio.Queue()
        for spec in specs:
            spec_queue.put_nowait(spec)

        num_workers: int = self.worker_count(len(specs))
        logger.info(f"Uploading {len(specs)} file(s) with {num_workers} workers.")
        worker_tasks: List["asyncio.Task[int]"] = [
            asyncio.create_task(
                upload_worker(
                    worker_id=i,
                    spec_queue=spec_queue,
                    storage=self._storage,
                    shutdown_event=self._shutdown_event,
                    progress_bar=progress,
                    progress_task_id=task_id,
                ),
                name=f"upload-worker-{i}",
            )
            for i in range(num_workers)
        ]

        done, pending = await asyncio.wait(
            worker_tasks, return_when=asyncio.FIRST_EXCEPTION
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            error: Optional[BaseException] = task.exception()
            if error is not None:
                logger.error(f"Upload worker '{task.get_name()}' failed: {error}")
                raise error


class DeletionCoordinator:
    """Removes stale objects from the bucket."""

    def __init__(self, storage: BucketStorage, config: AppConfig) -> None:
        self._storage: BucketStorage = storage
        self._config: AppConfig = config

    async def execute(self, stale_keys: Iterable[str]) -> List[str]:
        """
        Deletes `stale_keys`.

        Providers with bulk deletion get one request per batch of
        `BULK_DELETE_BATCH_SIZE` keys. Otherwise the bucket is listed again
        and each listed object in the stale set is deleted individually.
        Nothing is deleted in `keep` mode.

        Args:
            stale_keys (Iterable[str]): The keys to delete.

        Returns:
            List[str]: The deleted keys.
        """
        if self._config.remote_files_mode is RemoteFilesMode.KEEP:
            logger.info("Keeping existing remote files.")
            return []

        stale: List[str] = sorted(set(stale_keys))
        logger.info(f"Flagging {len(stale)} file(s) for deletion")
        if not stale:
            return []

        if self._storage.supports_bulk_delete:
            for start in range(0, len(stale), BULK_DELETE_BATCH_SIZE):
                batch: List[str] = stale[start : start + BULK_DELETE_BATCH_SIZE]
                await self._storage.delete_objects(batch)
                logger.info(f"Deleted {len(batch)} file(s) in bulk.")
            return stale

        stale_set: Set[str] = set(stale)
        deleted: List[str] = []
        async for key in self._storage.iter_keys():
            if key in stale_set:
                logger.info(f"Deleting: {key}")
                await self._storage.delete_object(key)
                deleted.append(key)
        return deleted
