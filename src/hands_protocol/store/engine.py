"""JSON file helpers shared by the queue and history stores."""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def init_store_dir(path: Path) -> Path:
    """Create the store directory if needed."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json(path: Path, default=None):
    """Read a UTF-8 JSON document. Missing or corrupt files yield ``default``."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Corrupt store file %s (%s); treating as empty", path, e)
        return default


def read_json_list(path: Path) -> list:
    data = read_json(path, default=[])
    if not isinstance(data, list):
        logger.warning("Store file %s is not a JSON array; treating as empty", path)
        return []
    return data


def write_json(path: Path, data) -> None:
    """Write pretty-printed UTF-8 JSON, replacing the file in one rename."""
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)
