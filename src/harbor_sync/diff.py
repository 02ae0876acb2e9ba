"""
Computes what to upload and what to delete.

Fingerprinted names (`<dir>/<basename>-<digest>.<ext>`) embed a content digest,
so a name that already exists remotely never needs to be uploaded again.
"""

import re
from typing import Callable, Iterable, Optional, Set

# The digest is the last dash-separated segment before the extension.
_DIGEST: str = r"[^./-]+"

_FINGERPRINTED: "re.Pattern[str]" = re.compile(
    rf"^(?:(?P<dir>.*)/)?(?P<base>[^/]+)-(?P<digest>{_DIGEST})\.(?P<ext>[^./]+)$"
)
_TRAILING_DIGEST: "re.Pattern[str]" = re.compile(rf"-{_DIGEST}$")


def non_fingerprinted(path: str) -> Optional[str]:
    """
    Returns the hash-stripped alias of a fingerprinted path.

    A basename that would still end in a dash segment after stripping is
    ambiguous (`jquery-ui-1a2b3c4d.js` could be read twice) and is not
    treated as fingerprinted, so an alias is never itself fingerprinted.

    Args:
        path (str): An object key.

    Returns:
        Optional[str]: The alias, or None when `path` is not fingerprinted.
    """
    match: Optional["re.Match[str]"] = _FINGERPRINTED.match(path)
    if match is None or _TRAILING_DIGEST.search(match["base"]):
        return None
    name: str = f"{match['base']}.{match['ext']}"
    return f"{match['dir']}/{name}" if match["dir"] is not None else name


def canonicalize(path: str) -> str:
    """Returns the fingerprint group name of `path`."""
    return non_fingerprinted(path) or path


def compute_upload_set(
    local: Iterable[str],
    remote: Iterable[str],
    ignored: Iterable[str],
    always_upload: Iterable[str],
    is_file: Callable[[str], bool],
) -> Set[str]:
    """
    Computes the keys to upload.

    `(local - ignored - remote) | always_upload`, plus the non-fingerprinted
    alias of every fingerprinted key in that set, restricted to keys that are
    regular files on disk.

    Args:
        local (Iterable[str]): Local candidate keys.
        remote (Iterable[str]): Keys believed to exist remotely.
        ignored (Iterable[str]): Keys never uploaded.
        always_upload (Iterable[str]): Keys uploaded regardless of the rest.
        is_file (Callable[[str], bool]): Whether a key is a regular local file.

    Returns:
        Set[str]: The keys to upload.
    """
    upload: Set[str] = (set(local) - set(ignored) - set(remote)) | set(always_upload)
    aliases: Set[str] = {
        alias for alias in map(non_fingerprinted, upload) if alias is not None
    }
    return {key for key in upload | aliases if is_file(key)}


def compute_deletion_set(
    remote_live: Iterable[str],
    local: Iterable[str],
    ignored: Iterable[str],
    always_upload: Iterable[str],
    is_file: Callable[[str], bool],
) -> Set[str]:
    """
    Computes the stale remote keys.

    `remote_live - local - ignored - always_upload`. The alias of a local or
    always-uploaded key is kept only when it is a regular file on disk, which
    is exactly when `compute_upload_set` could have written it. A remote alias
    with no local file is stale like any other object.

    `remote_live` must come from a live listing rather than the cache, so
    objects the cache does not know about are never judged stale by omission.

    Args:
        remote_live (Iterable[str]): Keys listed in the bucket.
        local (Iterable[str]): Local candidate keys.
        ignored (Iterable[str]): Keys never deleted.
        always_upload (Iterable[str]): Keys uploaded on every run.
        is_file (Callable[[str], bool]): Whether a key is a regular local file.

    Returns:
        Set[str]: Remote keys with no local counterpart.
    """
    keep: Set[str] = set(local) | set(always_upload)
    keep |= {
        alias
        for alias in map(non_fingerprinted, keep)
        if alias is not None and is_file(alias)
    }
    return set(remote_live) - keep - set(ignored)
