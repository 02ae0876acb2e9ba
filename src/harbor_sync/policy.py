"""
Per-file transfer planning.

`TransferPolicy.plan` turns one object key into a `TransferSpec`: which local
file supplies the body and which headers the object is stored with. Planning
only stats files; it never opens them.
"""

import logging
import mimetypes
import posixpath
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from harbor_sync.config import Config

logger: logging.Logger = logging.getLogger(__name__)

ONE_YEAR_S: int = 31557600

# Basenames ending in a long hex digest are served with far-future caching.
DEFAULT_CACHE_ASSET_REGEXP: "re.Pattern[str]" = re.compile(r"-[0-9a-fA-F]{32,}$")

MIME_TYPES: Dict[str, str] = {
    "avif": "image/avif",
    "css": "text/css",
    "eot": "application/vnd.ms-fontobject",
    "gif": "image/gif",
    "gz": "application/gzip",
    "htm": "text/html",
    "html": "text/html",
    "ico": "image/vnd.microsoft.icon",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "js": "application/javascript",
    "json": "application/json",
    "map": "application/json",
    "mjs": "application/javascript",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
    "otf": "font/otf",
    "pdf": "application/pdf",
    "png": "image/png",
    "svg": "image/svg+xml",
    "ttf": "font/ttf",
    "txt": "text/plain",
    "wasm": "application/wasm",
    "webm": "video/webm",
    "webmanifest": "application/manifest+json",
    "webp": "image/webp",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "xml": "application/xml",
}

# Custom header names that map onto a named TransferSpec field.
_SPEC_FIELDS = {
    "cache_control",
    "content_type",
    "content_encoding",
    "expires",
    "storage_class",
    "acl",
}

# Other custom header names accepted as first-class PutObject parameters.
_PUT_PARAMS: Dict[str, str] = {
    "content_disposition": "ContentDisposition",
    "content_language": "ContentLanguage",
    "website_redirect_location": "WebsiteRedirectLocation",
}


def lookup_mime(extension: str) -> Optional[str]:
    """
    Returns the media type for a file extension (without the dot).

    Args:
        extension (str): The extension, e.g. `css`.

    Returns:
        Optional[str]: The media type, or None when unknown.
    """
    if not extension:
        return None
    extension = extension.lower()
    if extension in MIME_TYPES:
        return MIME_TYPES[extension]
    return mimetypes.guess_type(f"file.{extension}", strict=False)[0]


def _extension(key: str) -> str:
    return posixpath.splitext(key)[1][1:]


@dataclass(frozen=True)
class TransferSpec:
    """
    Everything needed to upload one object.

    Attributes:
        key (str): The object key.
        source (Path): The local file supplying the body.
        content_type (str, optional): The Content-Type.
        content_encoding (str, optional): The Content-Encoding.
        cache_control (str, optional): The Cache-Control header.
        expires (datetime | str, optional): The Expires header.
        storage_class (str, optional): The storage class.
        acl (str, optional): The canned ACL.
        params (Dict[str, Any]): Other PutObject parameters.
        metadata (Dict[str, str]): User metadata (`x-amz-meta-*`).
    """

    key: str
    source: Path
    content_type: Optional[str] = None
    content_encoding: Optional[str] = None
    cache_control: Optional[str] = None
    expires: Optional[Union[datetime, str]] = None
    storage_class: Optional[str] = None
    acl: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def gzip_substituted(self) -> bool:
        return self.source.name != posixpath.basename(self.key)

    def as_put_params(self) -> Dict[str, Any]:
        """
        Returns the keyword arguments for `put_object`, minus Bucket and Body.

        Returns:
            Dict[str, Any]: The PutObject parameters.
        """
        params: Dict[str, Any] = {"Key": self.key}
        named: Dict[str, Any] = {
            "ContentType": self.content_type,
            "ContentEncoding": self.content_encoding,
            "CacheControl": self.cache_control,
            "Expires": self.expires,
            "StorageClass": self.storage_class,
            "ACL": self.acl,
        }
        params.update({k: v for k, v in named.items() if v is not None})
        params.update(self.params)
        if self.metadata:
            params["Metadata"] = dict(self.metadata)
        return params


class TransferPolicy:
    """Decides, for each key, the body and headers of its upload."""

    def __init__(
        self,
        config: Config,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """
        Initializes the policy.

        Args:
            config (Config): The application configuration.
            clock (Callable[[], datetime]): Source of the planning time, used
                for Expires headers.
        """
        self._config: Config = config
        self._clock: Callable[[], datetime] = clock
        self._cache_regexps = (DEFAULT_CACHE_ASSET_REGEXP,) + tuple(
            config.app.cache_asset_regexps
        )

    @property
    def root(self) -> Path:
        return self._config.app.public_path

    def is_cacheable(self, key: str) -> bool:
        """
        Checks whether `key` gets far-future cache headers.

        The basename, with any `.gz` and then the extension stripped, must
        match the default digest rule or one of the configured patterns.
        """
        uncompressed: str = key[:-3] if key.endswith(".gz") else key
        basename: str = posixpath.splitext(posixpath.basename(uncompressed))[0]
        return any(regex.search(basename) for regex in self._cache_regexps)

    def _acl(self) -> Optional[str]:
        app = self._config.app
        if self._config.storage.is_aws and app.aws_acl:
            return app.aws_acl
        if app.public is not None:
            return "public-read" if app.public else "private"
        return None

    def plan(self, key: str) -> Optional[TransferSpec]:
        """
        Plans the upload of `key`.

        Args:
            key (str): The object key, relative to the public path.

        Returns:
            Optional[TransferSpec]: The plan, or None when the file must not be
                uploaded (a `.gz` file in gzip mode, whose plain sibling
                carries its body instead).
        """
        app = self._config.app
        source: Path = self.root / key

        if app.gzip_compression and key.endswith(".gz"):
            logger.info(f"Ignoring: {key}")
            return None

        fields: Dict[str, Any] = {
            "content_type": lookup_mime(_extension(key)),
            "acl": self._acl(),
        }
        params: Dict[str, Any] = {}
        metadata: Dict[str, str] = {}

        if self.is_cacheable(key):
            fields["cache_control"] = f"public, max-age={ONE_YEAR_S}"
            fields["expires"] = self._clock() + timedelta(seconds=ONE_YEAR_S)

        headers, exact = app.custom_headers.lookup(key)
        if headers:
            for name, value in headers.items():
                normalized: str = name.lower().replace("-", "_")
                if normalized in _SPEC_FIELDS:
                    fields[normalized] = value
                elif normalized in _PUT_PARAMS:
                    params[_PUT_PARAMS[normalized]] = value
                else:
                    metadata[name] = str(value)
            if exact:
                logger.info(f"Overwriting {key} with custom headers {headers}")
            else:
                logger.info(
                    f"Overwriting matching file {key} with custom headers {headers}"
                )

        gzipped: Path = self.root / f"{key}.gz"
        if app.gzip_compression and gzipped.is_file():
            original_size: int = source.stat().st_size
            gzipped_size: int = gzipped.stat().st_size
            if gzipped_size < original_size:
                percentage: float = round(gzipped_size / original_size * 100, 2)
                source = gzipped
                fields["content_encoding"] = "gzip"
                logger.info(
                    f"Uploading: {gzipped} in place of {key} saving {percentage}%"
                )
            else:
                percentage = (
                    round(original_size / gzipped_size * 100, 2)
                    if gzipped_size
                    else 0.0
                )
                logger.info(
                    f"Uploading: {key} instead of {gzipped} "
                    f"(compression increases this file by {percentage}%)"
                )
        else:
            if not app.gzip_compression and key.endswith(".gz"):
                # Served as the gzip encoding of the plain asset.
                fields["content_type"] = lookup_mime(_extension(key[:-3]))
                fields["content_encoding"] = "gzip"
            logger.info(f"Uploading: {key}")

        if self._config.storage.is_aws and app.reduced_redundancy:
            fields["storage_class"] = "REDUCED_REDUNDANCY"

        return TransferSpec(
            key=key, source=source, params=params, metadata=metadata, **fields
        )
