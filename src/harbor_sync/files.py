"""Resolution of the local candidate files and their filter lists."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set

from harbor_sync.config import AppConfig, FileFilter
from harbor_sync.manifest import read_manifest

logger: logging.Logger = logging.getLogger(__name__)


class LocalFileSet:
    """
    Enumerates local asset keys and applies the configured file filters.

    Keys are paths relative to `public_path`, using `/` separators, which is
    also what they are called in the bucket. Results are computed once and
    reused for the rest of the run.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config: AppConfig = config
        self._files: Optional[Set[str]] = None

    @property
    def root(self) -> Path:
        return self._config.public_path

    def is_file(self, key: str) -> bool:
        """Checks that `key` is a regular file under the public path."""
        return (self.root / key).is_file()

    def resolve(self) -> Set[str]:
        """
        Lists the local candidate files.

        The manifest is preferred when configured; if it cannot be used, the
        assets directory is scanned instead.

        Returns:
            Set[str]: Keys of regular files under the public path.
        """
        if self._files is not None:
            return self._files

        candidates: Optional[List[str]] = None
        if self._config.manifest:
            if self._config.manifest_path is None:
                logger.warning("Manifest mode is on but no manifest_path is set.")
            else:
                candidates = read_manifest(
                    self._config.manifest_path, self._config.prefix
                )
        if candidates is None:
            candidates = self._scan()
        candidates = candidates + list(self._config.additional_local_file_paths)

        files: Set[str] = set()
        for key in candidates:
            if self.is_file(key):
                files.add(key)
            else:
                logger.debug(f"Skipping '{key}': not a regular file.")
        self._files = files
        return files

    def _scan(self) -> List[str]:
        search_root: Path = self.root / self._config.prefix
        logger.info(f"Using: Directory Search of {search_root}")
        if not search_root.is_dir():
            logger.warning(f"Assets directory '{search_root}' does not exist.")
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in search_root.rglob("*")
            if p.is_file()
        )

    def expand(self, filters: Iterable[FileFilter]) -> Set[str]:
        """
        Selects the local files matched by any of `filters`.

        Args:
            filters (Iterable[FileFilter]): Exact-name or pattern filters.

        Returns:
            Set[str]: The matching local keys.
        """
        filters = list(filters)
        return {key for key in self.resolve() if any(f.matches(key) for f in filters)}

    def ignored(self) -> Set[str]:
        """Returns the local files excluded from upload and deletion."""
        return self.expand(self._config.ignored_files)

    def always_upload(self) -> Set[str]:
        """
        Returns the local files uploaded regardless of the remote state.

        Includes the manifest file itself when `include_manifest` is set.
        """
        files: Set[str] = self.expand(self._config.always_upload)
        manifest_path: Optional[Path] = self._config.manifest_path
        if self._config.include_manifest and manifest_path is not None:
            try:
                files.add(
                    manifest_path.resolve().relative_to(self.root.resolve()).as_posix()
                )
            except ValueError:
                logger.warning(
                    f"Manifest '{manifest_path}' is outside '{self.root}'; "
                    "it will not be uploaded."
                )
        return files
