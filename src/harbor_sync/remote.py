"""
Resolution of the remote object keys a sync compares against.

The keys come from the persisted remote-file-list cache when one is available
and readable, otherwise from a live listing of the bucket.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Set

from botocore.exceptions import ClientError

from harbor_sync.config import AppConfig, RemoteFilesMode
from harbor_sync.storage import BucketStorage

logger: logging.Logger = logging.getLogger(__name__)


class Provenance(Enum):
    """Where a resolved remote file set came from."""

    IGNORED = "ignored"
    CACHED = "cached"
    LIVE = "live"


class RemoteIndex:
    """Resolves, once per run, the set of keys believed to exist remotely."""

    def __init__(self, storage: BucketStorage, config: AppConfig) -> None:
        self._storage: BucketStorage = storage
        self._config: AppConfig = config
        self._remote_files: Optional[Set[str]] = None
        self.provenance: Optional[Provenance] = None

    async def resolve(self) -> Set[str]:
        """
        Returns the remote keys used to compute the upload set.

        In `ignore` mode the bucket is treated as empty. Otherwise a remote
        copy of the cache file is downloaded first (when configured), the
        local cache file is used if it parses as a JSON array of keys, and a
        live listing is the fallback.

        Returns:
            Set[str]: The remote keys.

        Raises:
            BucketNotFoundError: If a live listing is needed and the bucket
                does not exist.
        """
        if self._config.remote_files_mode is RemoteFilesMode.IGNORE:
            self.provenance = Provenance.IGNORED
            return set()
        if self._remote_files is not None:
            return self._remote_files

        cache_path: Optional[Path] = self._config.cache_file_path
        remote_key: Optional[str] = self._config.remote_cache_key
        if cache_path and remote_key:
            await self._download_cache(cache_path, remote_key)

        if cache_path and cache_path.is_file():
            cached: Optional[Set[str]] = self._read_cache(cache_path)
            if cached is not None:
                logger.info(f"Using remote file list cache '{cache_path}'.")
                self._remote_files = cached
                self.provenance = Provenance.CACHED
                return cached

        self._remote_files = await self.live_listing()
        self.provenance = Provenance.LIVE
        return self._remote_files

    async def live_listing(self) -> Set[str]:
        """Lists the bucket, bypassing any cache."""
        logger.info(f"Fetching remote file list from '{self._storage.bucket}'.")
        return set(await self._storage.list_keys())

    async def _download_cache(self, cache_path: Path, remote_key: str) -> None:
        logger.info("Downloading file list file from remote")
        try:
            body: Optional[bytes] = await self._storage.get_object(remote_key)
        except ClientError as e:
            # A missing key reads as AccessDenied without s3:ListBucket.
            logger.warning(f"Could not download remote file list '{remote_key}': {e}")
            return
        if body is None:
            logger.info(f"No remote file list found at '{remote_key}'.")
            return
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_bytes(body)

    def _read_cache(self, cache_path: Path) -> Optional[Set[str]]:
        try:
            data: Any = json.loads(cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to parse {cache_path} as json: {e}")
            return None
        if not isinstance(data, list) or not all(isinstance(k, str) for k in data):
            logger.warning(f"{cache_path} is not a JSON array of keys; ignoring it.")
            return None
        return set(data)
