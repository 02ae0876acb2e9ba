"""
Configuration for the harbor-sync pipeline.

This module centralizes all configuration. Credentials and the target bucket are
read from environment variables; the sync behaviour is read from an optional
YAML settings file and CLI flags, and is validated once, at load time, into
typed dataclasses used throughout the application.
"""

import logging
import os
import posixpath
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from harbor_sync.exceptions import ConfigError

logger: logging.Logger = logging.getLogger(__name__)


def _get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = os.environ.get(name, default)
    if not value:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def join_key(prefix: str, name: str) -> str:
    """Join an assets prefix and a relative name into an object key."""
    name = name.lstrip("/")
    return posixpath.join(prefix, name) if prefix else name


class RemoteFilesMode(Enum):
    """How existing remote objects take part in a sync."""

    COMPARE = "compare"
    IGNORE = "ignore"
    KEEP = "keep"

    @classmethod
    def parse(cls, value: Union[str, "RemoteFilesMode"]) -> "RemoteFilesMode":
        """
        Parses a configured mode name.

        `delete` is accepted as an alias of `compare`, since comparing is what
        enables stale-object deletion.

        Args:
            value (str | RemoteFilesMode): The configured value.

        Returns:
            RemoteFilesMode: The parsed mode.
        """
        if isinstance(value, cls):
            return value
        normalized: str = str(value).strip().lower()
        if normalized == "delete":
            return cls.COMPARE
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigError(
                f"Invalid existing_remote_files mode '{value}'. "
                "Expected one of: compare, ignore, keep."
            ) from None


@dataclass(frozen=True)
class ExactName:
    """Matches files whose basename equals `name`."""

    name: str

    def matches(self, path: str) -> bool:
        return path.rsplit("/", 1)[-1] == self.name


@dataclass(frozen=True)
class Pattern:
    """Matches files whose relative path matches `regex`."""

    regex: "re.Pattern[str]"

    def matches(self, path: str) -> bool:
        return self.regex.search(path) is not None


FileFilter = Union[ExactName, Pattern]


def _compile(expression: Any, setting: str) -> "re.Pattern[str]":
    if not isinstance(expression, str):
        raise ConfigError(f"'{setting}' expects a regular expression string.")
    try:
        return re.compile(expression)
    except re.error as e:
        raise ConfigError(f"Invalid regular expression in '{setting}': {e}") from e


def parse_file_filter(value: Any, setting: str = "filter") -> FileFilter:
    """
    Parses one configured file filter into its tagged variant.

    A plain string is an exact basename; a mapping `{pattern: "<regex>"}` is a
    regular expression matched against the relative path.

    Args:
        value (Any): The raw configured value.
        setting (str): The setting name, used in error messages.

    Returns:
        FileFilter: The parsed filter.

    Raises:
        ConfigError: If the value has any other shape.
    """
    if isinstance(value, (ExactName, Pattern)):
        return value
    if isinstance(value, str):
        return ExactName(value)
    if isinstance(value, Mapping) and set(value) == {"pattern"}:
        return Pattern(_compile(value["pattern"], setting))
    raise ConfigError(
        f"Please define '{setting}' entries as a string or a "
        f"{{pattern: <regex>}} mapping, got {value!r} ({type(value).__name__})."
    )


def _as_list(value: Any, setting: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, (str, Mapping)):
        return [value]
    raise ConfigError(f"'{setting}' must be a list.")


@dataclass(frozen=True)
class CustomHeaders:
    """
    Per-file header overrides.

    Attributes:
        exact (Dict[str, Dict[str, Any]]): Headers keyed by full object key.
        rules (Tuple[Tuple[re.Pattern, Dict[str, Any]], ...]): Ordered
            (pattern, headers) rules, consulted only when no exact key matches.
    """

    exact: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    rules: Tuple[Tuple["re.Pattern[str]", Dict[str, Any]], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], prefix: str) -> "CustomHeaders":
        """
        Builds both lookup tables from a `{name-or-regex: {header: value}}` mapping.

        Args:
            mapping (Mapping[str, Any]): The configured custom headers.
            prefix (str): The assets prefix exact names are relative to.

        Returns:
            CustomHeaders: The parsed lookup tables.
        """
        if not isinstance(mapping, Mapping):
            raise ConfigError("'custom_headers' must be a mapping.")
        exact: Dict[str, Dict[str, Any]] = {}
        rules: List[Tuple["re.Pattern[str]", Dict[str, Any]]] = []
        for name, headers in mapping.items():
            if not isinstance(headers, Mapping):
                raise ConfigError(f"Custom headers for '{name}' must be a mapping.")
            headers = {str(k): v for k, v in headers.items()}
            exact[join_key(prefix, str(name))] = headers
            try:
                rules.append((re.compile(str(name)), headers))
            except re.error:
                # Still usable as an exact path.
                logger.debug(f"Custom headers key '{name}' is not a regex.")
        return cls(exact=exact, rules=tuple(rules))

    def lookup(self, path: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Finds the headers that apply to `path`.

        Returns:
            Tuple[Optional[Dict[str, Any]], bool]: The headers (or None) and
                whether they came from an exact-path entry.
        """
        if path in self.exact:
            return self.exact[path], True
        for regex, headers in self.rules:
            if regex.search(path):
                return headers, False
        return None, False


@dataclass(frozen=True)
class StorageConfig:
    """
    Represents the configuration for the target object store.

    Attributes:
        provider (str): The storage provider name, e.g. `AWS` or `Backblaze`.
        bucket (str): The bucket name.
        region (str): The region.
        endpoint_url (str, optional): A custom S3-compatible endpoint URL.
        access_key_id (str, optional): The access key ID.
        secret_access_key (str, optional): The secret access key.
    """

    provider: str
    bucket: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Loads the storage configuration from `HARBOR_*` environment variables."""
        return cls(
            provider=_get_env_var("HARBOR_PROVIDER", "AWS"),
            bucket=_get_env_var("HARBOR_BUCKET"),
            region=_get_env_var("HARBOR_REGION", "us-east-1"),
            endpoint_url=os.environ.get("HARBOR_ENDPOINT_URL") or None,
            access_key_id=os.environ.get("HARBOR_ACCESS_KEY_ID") or None,
            secret_access_key=os.environ.get("HARBOR_SECRET_ACCESS_KEY") or None,
        )

    @property
    def is_aws(self) -> bool:
        return self.provider.lower() == "aws"

    @property
    def is_backblaze(self) -> bool:
        return self.provider.lower() == "backblaze"

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Unset values are left out so botocore falls back to its own
        credential chain.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        params: Dict[str, Optional[str]] = {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": self.region,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the sync's operational parameters.

    Attributes:
        public_path (Path): Local directory the object keys are relative to.
        prefix (str): Assets prefix, both under `public_path` and in the bucket.
        gzip_compression (bool): Substitute smaller `.gz` siblings for originals.
        concurrent_uploads (bool): Upload with a pool of workers.
        max_threads (int): Maximum number of concurrent upload workers.
        remote_files_mode (RemoteFilesMode): Compare, ignore or keep remote files.
        cache_file_path (Path, optional): Local JSON remote-file-list cache.
        remote_cache_key (str, optional): Bucket key mirroring the cache file.
        manifest (bool): Read the local file list from a manifest.
        manifest_path (Path, optional): Location of the manifest file.
        include_manifest (bool): Always upload the manifest file itself.
        ignored_files (Tuple[FileFilter, ...]): Files never uploaded or deleted.
        always_upload (Tuple[FileFilter, ...]): Files uploaded on every run.
        additional_local_file_paths (Tuple[str, ...]): Extra local keys.
        custom_headers (CustomHeaders): Per-file header overrides.
        cache_asset_regexps (Tuple[re.Pattern, ...]): Extra far-future cache rules.
        cdn_distribution_id (str, optional): CloudFront distribution to invalidate.
        invalidate (Tuple[str, ...]): Names, relative to `prefix`, to invalidate.
        reduced_redundancy (bool): Use the REDUCED_REDUNDANCY storage class on AWS.
        aws_acl (str, optional): Canned ACL applied to uploads on AWS.
        public (bool, optional): Explicit public-read flag; unset leaves ACL alone.
    """

    public_path: Path = field(default_factory=lambda: Path("public"))
    prefix: str = "assets"
    gzip_compression: bool = False
    concurrent_uploads: bool = False
    max_threads: int = 10
    remote_files_mode: RemoteFilesMode = RemoteFilesMode.COMPARE
    cache_file_path: Optional[Path] = None
    remote_cache_key: Optional[str] = None
    manifest: bool = False
    manifest_path: Optional[Path] = None
    include_manifest: bool = False
    ignored_files: Tuple[FileFilter, ...] = ()
    always_upload: Tuple[FileFilter, ...] = ()
    additional_local_file_paths: Tuple[str, ...] = ()
    custom_headers: CustomHeaders = field(default_factory=CustomHeaders)
    cache_asset_regexps: Tuple["re.Pattern[str]", ...] = ()
    cdn_distribution_id: Optional[str] = None
    invalidate: Tuple[str, ...] = ()
    reduced_redundancy: bool = False
    aws_acl: Optional[str] = None
    public: Optional[bool] = None

    @classmethod
    def from_mapping(
        cls, settings: Mapping[str, Any], **overrides: Any
    ) -> "AppConfig":
        """
        Validates raw settings into an `AppConfig`.

        Args:
            settings (Mapping[str, Any]): Settings, usually from the YAML file.
            **overrides (Any): Values that take precedence (e.g. CLI flags);
                `None` values are ignored.

        Returns:
            AppConfig: The validated configuration.

        Raises:
            ConfigError: On unknown keys or values of the wrong shape.
        """
        values: Dict[str, Any] = dict(settings)
        values.update({k: v for k, v in overrides.items() if v is not None})

        known: set = {f.name for f in fields(cls)}
        unknown: List[str] = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        prefix: str = str(values.get("prefix", cls.prefix) or "").strip("/")
        try:
            max_threads: int = int(values.get("max_threads", cls.max_threads))
        except (TypeError, ValueError) as e:
            raise ConfigError(
                f"'max_threads' must be an integer, got {values['max_threads']!r}."
            ) from e
        if max_threads < 1:
            raise ConfigError("'max_threads' must be at least 1.")

        def _path(name: str) -> Optional[Path]:
            value: Any = values.get(name)
            return Path(value) if value else None

        public: Any = values.get("public")
        return cls(
            public_path=Path(values.get("public_path", "public")),
            prefix=prefix,
            gzip_compression=bool(values.get("gzip_compression", False)),
            concurrent_uploads=bool(values.get("concurrent_uploads", False)),
            max_threads=max_threads,
            remote_files_mode=RemoteFilesMode.parse(
                values.get("remote_files_mode", RemoteFilesMode.COMPARE)
            ),
            cache_file_path=_path("cache_file_path"),
            remote_cache_key=values.get("remote_cache_key") or None,
            manifest=bool(values.get("manifest", False)),
            manifest_path=_path("manifest_path"),
            include_manifest=bool(values.get("include_manifest", False)),
            ignored_files=tuple(
                parse_file_filter(v, "ignored_files")
                for v in _as_list(values.get("ignored_files"), "ignored_files")
            ),
            always_upload=tuple(
                parse_file_filter(v, "always_upload")
                for v in _as_list(values.get("always_upload"), "always_upload")
            ),
            additional_local_file_paths=tuple(
                str(p)
                for p in _as_list(
                    values.get("additional_local_file_paths"),
                    "additional_local_file_paths",
                )
            ),
            custom_headers=CustomHeaders.from_mapping(
                values.get("custom_headers") or {}, prefix
            ),
            cache_asset_regexps=tuple(
                _compile(v, "cache_asset_regexps")
                for v in _as_list(
                    values.get("cache_asset_regexps"), "cache_asset_regexps"
                )
            ),
            cdn_distribution_id=values.get("cdn_distribution_id") or None,
            invalidate=tuple(
                str(v) for v in _as_list(values.get("invalidate"), "invalidate")
            ),
            reduced_redundancy=bool(values.get("reduced_redundancy", False)),
            aws_acl=values.get("aws_acl") or None,
            public=None if public is None else bool(public),
        )


def load_settings(path: Optional[Path]) -> Dict[str, Any]:
    """
    Reads the YAML settings file.

    Args:
        path (Path, optional): The settings file; `None` means no file.

    Returns:
        Dict[str, Any]: The raw settings mapping.
    """
    if path is None:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read settings file '{path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings file '{path}' must contain a mapping.")
    return dict(data)


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        storage (StorageConfig): Configuration for the target object store.
        app (AppConfig): Sync behaviour settings.
    """

    storage: StorageConfig = field(default_factory=StorageConfig.from_env)
    app: AppConfig = field(default_factory=AppConfig)
