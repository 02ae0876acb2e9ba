"""
Reads the local asset list from an asset-compiler manifest.

Two formats are understood: a structured JSON manifest with an `assets` object
mapping logical names to compiled names, and a flat mapping (YAML or JSON) of
original name to compiled name.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml

from harbor_sync.config import join_key

logger: logging.Logger = logging.getLogger(__name__)

# Originals of these are referenced by name from stylesheets, so both are shipped.
_FONT_ORIGINAL: "re.Pattern[str]" = re.compile(r"^.+(eot|svg|ttf|woff2?)$")


def _load(manifest_path: Path) -> Any:
    with open(manifest_path, "r", encoding="utf-8") as f:
        if manifest_path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def read_manifest(manifest_path: Path, prefix: str) -> Optional[List[str]]:
    """
    Lists the object keys named by a manifest.

    Args:
        manifest_path (Path): The manifest file.
        prefix (str): The assets prefix the compiled names are relative to.

    Returns:
        Optional[List[str]]: The unique keys in manifest order, or None if the
            manifest is missing, unreadable or of an unknown shape.
    """
    if not manifest_path.is_file():
        logger.warning(f"Manifest '{manifest_path}' could not be found.")
        return None
    try:
        data: Any = _load(manifest_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning(f"Failed to read manifest '{manifest_path}': {e}")
        return None

    names: List[str] = []
    if isinstance(data, Mapping) and isinstance(data.get("assets"), Mapping):
        logger.info(f"Using: structured manifest {manifest_path}")
        names = [str(compiled) for compiled in data["assets"].values()]
    elif isinstance(data, Mapping) and all(
        isinstance(v, str) for v in data.values()
    ):
        logger.info(f"Using: manifest {manifest_path}")
        for original, compiled in data.items():
            if _FONT_ORIGINAL.match(str(original)):
                names.append(str(original))
            names.append(compiled)
    else:
        logger.warning(f"Manifest '{manifest_path}' has an unrecognised format.")
        return None

    return list(dict.fromkeys(join_key(prefix, name) for name in names))
