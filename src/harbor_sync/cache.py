"""Persistence of the remote file list between runs."""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from harbor_sync.config import AppConfig, RemoteFilesMode
from harbor_sync.storage import BucketStorage

logger: logging.Logger = logging.getLogger(__name__)


class RemoteFileListCache:
    """
    Writes the post-sync remote file list as a JSON array of keys.

    The local file lets the next run skip the live listing; the optional
    remote copy lets other hosts do the same.
    """

    def __init__(self, storage: BucketStorage, config: AppConfig) -> None:
        self._storage: BucketStorage = storage
        self._config: AppConfig = config

    @property
    def _ignoring_remote(self) -> bool:
        return self._config.remote_files_mode is RemoteFilesMode.IGNORE

    def persist(
        self,
        uploaded: Iterable[str],
        previous: Iterable[str],
        deleted: Iterable[str] = (),
    ) -> bool:
        """
        Writes `(uploaded | previous) - deleted` to the local cache file.

        Skipped when no cache path is configured or remote files are ignored.

        Args:
            uploaded (Iterable[str]): Keys uploaded in this run.
            previous (Iterable[str]): Keys known remotely before this run.
            deleted (Iterable[str]): Keys deleted in this run.

        Returns:
            bool: Whether the cache file was written.
        """
        cache_path: Optional[Path] = self._config.cache_file_path
        if cache_path is None or self._ignoring_remote:
            return False

        keys: List[str] = sorted((set(uploaded) | set(previous)) - set(deleted))
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        with open(cache_path, "w", encoding="utf-8") as f:
            json.dump(keys, f)
        logger.info(f"Wrote {len(keys)} keys to remote file list cache '{cache_path}'.")
        return True

    async def mirror(self) -> bool:
        """
        Uploads the local cache file to the configured remote key.

        Returns:
            bool: Whether the cache file was uploaded.
        """
        cache_path: Optional[Path] = self._config.cache_file_path
        remote_key: Optional[str] = self._config.remote_cache_key
        if self._ignoring_remote or not remote_key or cache_path is None:
            return False

        logger.info("Updating file list file in remote")
        with open(cache_path, "rb") as f:
            body: bytes = f.read()
        await self._storage.put_object(
            body, Key=remote_key, ContentType="application/json"
        )
        return True
