"""Unit tests for configuration parsing and validation."""

import os
import re
from pathlib import Path
from unittest.mock import patch

import pytest

from harbor_sync.config import (
    AppConfig,
    CustomHeaders,
    ExactName,
    Pattern,
    RemoteFilesMode,
    StorageConfig,
    load_settings,
    parse_file_filter,
)
from harbor_sync.exceptions import ConfigError


def test_parse_file_filter_variants() -> None:
    """Tests that strings become exact names and `pattern` mappings regexes."""
    exact = parse_file_filter("robots.txt")
    pattern = parse_file_filter({"pattern": r"\.map$"})

    assert exact == ExactName("robots.txt")
    assert isinstance(pattern, Pattern)
    assert exact.matches("assets/robots.txt")
    assert not exact.matches("assets/not-robots.txt")
    assert pattern.matches("assets/app.js.map")
    assert not pattern.matches("assets/app.js")


@pytest.mark.parametrize(
    "value",
    [42, ["a.txt"], {"regex": "x"}, {"pattern": "x", "extra": 1}, {"pattern": 3}],
)
def test_parse_file_filter_rejects_other_shapes(value: object) -> None:
    """
    Tests that any other filter shape is rejected at load time.

    Args:
        value (object): A malformed filter.
    """
    with pytest.raises(ConfigError):
        parse_file_filter(value, "ignored_files")


def test_parse_file_filter_rejects_invalid_regex() -> None:
    """Tests that an invalid regular expression is a configuration error."""
    with pytest.raises(ConfigError, match="Invalid regular expression"):
        parse_file_filter({"pattern": "("}, "always_upload")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("compare", RemoteFilesMode.COMPARE),
        ("delete", RemoteFilesMode.COMPARE),
        ("IGNORE", RemoteFilesMode.IGNORE),
        (" keep ", RemoteFilesMode.KEEP),
    ],
)
def test_remote_files_mode_parse(raw: str, expected: RemoteFilesMode) -> None:
    """
    Tests the accepted spellings of the remote files mode.

    Args:
        raw (str): The configured value.
        expected (RemoteFilesMode): The parsed mode.
    """
    assert RemoteFilesMode.parse(raw) is expected


def test_remote_files_mode_rejects_unknown() -> None:
    """Tests that an unknown mode is rejected."""
    with pytest.raises(ConfigError, match="Invalid existing_remote_files mode"):
        RemoteFilesMode.parse("sometimes")


def test_custom_headers_exact_before_pattern() -> None:
    """
    Tests custom header lookup precedence.

    Arrange:
        - Two entries: a regex that matches every CSS file, and an exact name.
    Act:
        - Look up the exact file and another CSS file.
    Assert:
        - The exact entry wins for its file; the pattern applies elsewhere.
    """
    headers: CustomHeaders = CustomHeaders.from_mapping(
        {
            r".*\.css": {"cache_control": "max-age=60"},
            "app.css": {"cache_control": "no-cache"},
        },
        prefix="assets",
    )

    exact_headers, exact = headers.lookup("assets/app.css")
    pattern_headers, pattern_exact = headers.lookup("assets/site.css")
    missing, _ = headers.lookup("assets/app.js")

    assert exact_headers == {"cache_control": "no-cache"}
    assert exact is True
    assert pattern_headers == {"cache_control": "max-age=60"}
    assert pattern_exact is False
    assert missing is None


def test_app_config_from_mapping() -> None:
    """Tests a full settings mapping with CLI-style overrides applied on top."""
    config: AppConfig = AppConfig.from_mapping(
        {
            "public_path": "build",
            "prefix": "/static/",
            "gzip_compression": True,
            "max_threads": 4,
            "remote_files_mode": "keep",
            "ignored_files": ["secret.txt", {"pattern": r"\.map$"}],
            "always_upload": "robots.txt",
            "cache_asset_regexps": [r"\.[0-9a-f]{8}$"],
            "invalidate": ["index.html"],
            "public": False,
        },
        max_threads=8,
        concurrent_uploads=None,
    )

    assert config.public_path == Path("build")
    assert config.prefix == "static"
    assert config.gzip_compression is True
    assert config.concurrent_uploads is False
    assert config.max_threads == 8
    assert config.remote_files_mode is RemoteFilesMode.KEEP
    assert config.ignored_files[0] == ExactName("secret.txt")
    assert isinstance(config.ignored_files[1], Pattern)
    assert config.always_upload == (ExactName("robots.txt"),)
    assert config.cache_asset_regexps[0].pattern == r"\.[0-9a-f]{8}$"
    assert config.invalidate == ("index.html",)
    assert config.public is False


def test_app_config_rejects_unknown_keys() -> None:
    """Tests that misspelled settings are reported."""
    with pytest.raises(ConfigError, match="Unknown configuration keys: gzip"):
        AppConfig.from_mapping({"gzip": True})


@pytest.mark.parametrize("value", [0, "many", None, [4]])
def test_app_config_rejects_bad_thread_counts(value: object) -> None:
    """
    Tests that the worker pool size must be a positive integer.

    Args:
        value (object): The configured `max_threads`.
    """
    with pytest.raises(ConfigError, match="max_threads"):
        AppConfig.from_mapping({"max_threads": value})


def test_custom_headers_literal_key_that_is_not_a_regex() -> None:
    """Tests that an exact path which does not compile as a regex still applies."""
    headers: CustomHeaders = CustomHeaders.from_mapping(
        {"c[1.css": {"cache_control": "no-cache"}}, prefix="assets"
    )

    matched, exact = headers.lookup("assets/c[1.css")

    assert matched == {"cache_control": "no-cache"}
    assert exact is True
    assert headers.rules == ()


def test_load_settings(tmp_path: Path) -> None:
    """
    Tests reading a YAML settings file.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.
    """
    settings_path: Path = tmp_path / "harbor_sync.yml"
    settings_path.write_text(
        "gzip_compression: true\n"
        "ignored_files:\n"
        "  - secret.txt\n"
        "  - pattern: '\\.map$'\n"
        "custom_headers:\n"
        "  app.css:\n"
        "    cache_control: no-cache\n"
    )

    settings = load_settings(settings_path)
    config: AppConfig = AppConfig.from_mapping(settings)

    assert settings["gzip_compression"] is True
    assert config.ignored_files[1].matches("assets/app.js.map")
    assert config.custom_headers.exact["assets/app.css"] == {
        "cache_control": "no-cache"
    }


def test_load_settings_rejects_non_mapping(tmp_path: Path) -> None:
    """Tests that a settings file must hold a mapping."""
    settings_path: Path = tmp_path / "settings.yml"
    settings_path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_settings(settings_path)


def test_load_settings_without_file() -> None:
    """Tests that no settings file means no settings."""
    assert load_settings(None) == {}


def test_storage_config_from_env() -> None:
    """Tests loading storage settings from `HARBOR_*` variables."""
    env = {
        "HARBOR_PROVIDER": "Backblaze",
        "HARBOR_BUCKET": "assets-bucket",
        "HARBOR_ENDPOINT_URL": "https://s3.example.com",
    }
    with patch.dict(os.environ, env, clear=True):
        storage: StorageConfig = StorageConfig.from_env()

    assert storage.is_backblaze
    assert not storage.is_aws
    assert storage.region == "us-east-1"
    assert storage.as_boto_dict() == {
        "endpoint_url": "https://s3.example.com",
        "region_name": "us-east-1",
    }


def test_storage_config_requires_bucket() -> None:
    """Tests that the bucket variable is mandatory."""
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(
            ConfigError, match=re.escape("'HARBOR_BUCKET' must be set")
        ):
            StorageConfig.from_env()
