"""
harbor-sync: one-way sync of compiled static assets to object storage.

This package uploads the local files a bucket is missing, skips fingerprinted
assets that are already there, applies per-file compression and cache headers,
and removes stale remote objects, keeping a cached remote file list between runs.

The primary entry point for programmatic use is the `HarborSyncPipeline` class.
"""

from typing import List

from harbor_sync.pipeline import HarborSyncPipeline, SyncResult

__all__: List[str] = ["HarborSyncPipeline", "SyncResult"]
