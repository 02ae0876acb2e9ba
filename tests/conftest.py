"""
Pytest configuration and fixtures for the harbor-sync test suite.

This module provides:
- An in-memory bucket with the same interface as `BucketStorage`, recording
  every upload and deletion it receives.
- Factories for writing local asset files and building isolated configurations
  rooted in a temporary directory.
"""

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Set

import pytest

from harbor_sync.config import AppConfig, Config, StorageConfig
from harbor_sync.exceptions import BucketNotFoundError, TransferError


class FakeBucketStorage:
    """
    An in-memory stand-in for `BucketStorage`.

    Attributes:
        objects (Dict[str, bytes]): The current bucket contents.
        puts (List[Dict[str, Any]]): PutObject parameters, in call order.
        put_tasks (List[str]): Name of the asyncio task issuing each put.
        bulk_batches (List[List[str]]): Keys of each bulk-delete request.
        deleted (List[str]): Keys deleted one at a time.
        list_calls (int): Number of live listings performed.
        fail_on (Set[str]): Keys whose upload is rejected.
    """

    def __init__(
        self,
        keys: Iterable[str] = (),
        bucket: str = "test-bucket",
        bulk: bool = True,
        exists: bool = True,
    ) -> None:
        self.objects: Dict[str, bytes] = {key: b"" for key in keys}
        self.bucket: str = bucket
        self.supports_bulk_delete: bool = bulk
        self._exists: bool = exists
        self.puts: List[Dict[str, Any]] = []
        self.put_tasks: List[str] = []
        self.bulk_batches: List[List[str]] = []
        self.deleted: List[str] = []
        self.list_calls: int = 0
        self.fail_on: Set[str] = set()

    def _not_found(self) -> BucketNotFoundError:
        return BucketNotFoundError(f"AWS Bucket: {self.bucket} not found.")

    async def exists(self) -> bool:
        return self._exists

    async def ensure_exists(self) -> None:
        if not self._exists:
            raise self._not_found()

    async def iter_keys(self) -> AsyncIterator[str]:
        if not self._exists:
            raise self._not_found()
        for key in sorted(self.objects):
            yield key

    async def list_keys(self) -> List[str]:
        self.list_calls += 1
        return [key async for key in self.iter_keys()]

    async def get_object(self, key: str) -> Optional[bytes]:
        return self.objects.get(key)

    async def put_object(self, body: bytes, **params: Any) -> None:
        key: str = params["Key"]
        await asyncio.sleep(0)
        if key in self.fail_on:
            raise TransferError(f"Failed to upload '{key}': rejected")
        task: Optional["asyncio.Task[Any]"] = asyncio.current_task()
        self.put_tasks.append(task.get_name() if task else "")
        self.objects[key] = body
        self.puts.append(dict(params, Body=body))

    async def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)

    async def delete_objects(self, keys: List[str]) -> None:
        self.bulk_batches.append(list(keys))
        for key in keys:
            self.objects.pop(key, None)

    def put_keys(self) -> List[str]:
        return [params["Key"] for params in self.puts]


@pytest.fixture(scope="function")
def public_path(tmp_path: Path) -> Path:
    """
    Provide an empty public directory with an `assets` subdirectory.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.

    Returns:
        Path: The public directory.
    """
    path: Path = tmp_path / "public"
    (path / "assets").mkdir(parents=True)
    return path


@pytest.fixture(scope="function")
def write_asset(public_path: Path) -> Callable[..., Path]:
    """
    Provide a factory writing a file under the public directory.

    Returns:
        A function taking a key relative to the public directory and the file
        content, returning the written path.
    """

    def _writer(key: str, content: Any = b"content") -> Path:
        path: Path = public_path / key
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return path

    return _writer


@pytest.fixture(scope="function")
def make_config(public_path: Path) -> Callable[..., Config]:
    """
    Provide a factory building a `Config` rooted at the public directory.

    Keyword arguments are passed as settings to `AppConfig.from_mapping`;
    `provider` selects the storage provider.
    """

    def _factory(provider: str = "AWS", **settings: Any) -> Config:
        settings.setdefault("public_path", str(public_path))
        return Config(
            storage=StorageConfig(provider=provider, bucket="test-bucket"),
            app=AppConfig.from_mapping(settings),
        )

    return _factory


@pytest.fixture(scope="function")
def fake_storage() -> FakeBucketStorage:
    """Provide an empty, existing in-memory bucket."""
    return FakeBucketStorage()


@pytest.fixture(scope="function")
def make_storage() -> Callable[..., FakeBucketStorage]:
    """Provide a factory for in-memory buckets with initial keys and options."""
    return FakeBucketStorage
