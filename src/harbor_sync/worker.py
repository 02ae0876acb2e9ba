"""
Defines the upload worker.

A worker repeatedly takes the next `TransferSpec` from a shared, pre-filled
queue and uploads it, until the queue is drained or a shutdown is requested.
Any failure propagates out of the worker and stops it.
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from harbor_sync.exceptions import TransferError
from harbor_sync.policy import TransferSpec
from harbor_sync.storage import BucketStorage

if TYPE_CHECKING:
    from rich.progress import Progress, TaskID

logger: logging.Logger = logging.getLogger(__name__)


def _read_body(path: Path) -> bytes:
    with open(path, "rb") as f:
        return f.read()


async def upload_object(spec: TransferSpec, storage: BucketStorage) -> None:
    """
    Uploads the object described by `spec`.

    The body is read into memory first, in the default executor, so the
    request carries an exact Content-Length. The file is closed before the
    request is sent, whatever the outcome.

    Args:
        spec (TransferSpec): The planned upload.
        storage (BucketStorage): The target bucket.

    Raises:
        TransferError: If the file cannot be read or the upload is rejected.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    try:
        body: bytes = await loop.run_in_executor(None, _read_body, spec.source)
    except OSError as e:
        raise TransferError(
            f"Could not read '{spec.source}' for upload of '{spec.key}': {e}"
        ) from e
    await storage.put_object(body, **spec.as_put_params())
    logger.debug(f"Uploaded '{spec.key}' ({len(body)} bytes)")


async def upload_worker(
    worker_id: int,
    spec_queue: "asyncio.Queue[TransferSpec]",
    storage: BucketStorage,
    shutdown_event: asyncio.Event,
    progress_bar: Optional["Progress"] = None,
    progress_task_id: Optional["TaskID"] = None,
) -> int:
    """
    Uploads specs from `spec_queue` until it is empty.

    Args:
        worker_id (int): A unique identifier for this worker.
        spec_queue (asyncio.Queue[TransferSpec]): The finite work list.
        storage (BucketStorage): The target bucket.
        shutdown_event (asyncio.Event): Stops the worker before its next spec.
        progress_bar (Progress, optional): The rich Progress instance.
        progress_task_id (TaskID, optional): The TaskID of the upload bar.

    Returns:
        int: The number of objects this worker uploaded.
    """
    logger.debug(f"Worker {worker_id} started.")
    uploaded: int = 0
    while not shutdown_event.is_set():
        try:
            spec: TransferSpec = spec_queue.get_nowait()
        except asyncio.QueueEmpty:
            break
        try:
            await upload_object(spec, storage)
        finally:
            spec_queue.task_done()
        uploaded += 1
        if progress_bar is not None and progress_task_id is not None:
            progress_bar.update(progress_task_id, advance=1)
    logger.debug(f"Worker {worker_id} finished after {uploaded} uploads.")
    return uploaded
