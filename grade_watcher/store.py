"""
Snapshot store for the Grade Watcher pipeline.

The last known grade tree is kept in a single JSON file. A missing file
means there is no baseline yet; the first run only records the tree.
"""

import json
from datetime import datetime, timezone
from typing import List, Optional

from grade_watcher.config import DEFAULT_SNAPSHOT_PATH
from grade_watcher.errors import SnapshotError
from grade_watcher.models import Branch, branches_from_dicts, branches_to_dicts
from grade_watcher.utils import get_logger, read_json, write_json_atomic


# Module logger
logger = get_logger("store")


def load_snapshot(filepath: str = DEFAULT_SNAPSHOT_PATH) -> Optional[List[Branch]]:
    """
    Load the grade tree saved by the previous run.

    Accepts both a bare list of branches and the envelope written by
    save_snapshot() with metadata.

    Args:
        filepath: Path of the snapshot file.

    Returns:
        The saved branches, or None if the file does not exist.

    Raises:
        SnapshotError: If the file is not valid JSON or not a grade tree.
    """
    logger.debug(f"Loading snapshot from {filepath}")

    try:
        data = read_json(filepath, default=None)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Invalid JSON in {filepath}: {e}", context={"path": filepath}) from e
    except OSError as e:
        raise SnapshotError(f"Cannot read {filepath}: {e}", context={"path": filepath}) from e

    if data is None:
        logger.info(f"No snapshot at {filepath}, no baseline yet")
        return None

    if isinstance(data, dict):
        data = data.get("branches")

    branches = branches_from_dicts(data)
    logger.info(f"Loaded snapshot with {len(branches)} branch(es)")

    return branches


def save_snapshot(
    branches: List[Branch],
    filepath: str = DEFAULT_SNAPSHOT_PATH,
    include_metadata: bool = True
) -> None:
    """
    Replace the snapshot with the given tree using an atomic write.

    Args:
        branches: Grade tree to persist.
        filepath: Path of the snapshot file.
        include_metadata: If True, wrap the tree with a timestamp and count.

    Raises:
        SnapshotError: If the file could not be written.
    """
    logger.debug(f"Saving {len(branches)} branch(es) to {filepath}")

    tree = branches_to_dicts(branches)

    if include_metadata:
        data = {
            "last_updated": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "count": len(tree),
            "branches": tree
        }
    else:
        data = tree

    write_json_atomic(filepath, data)

    logger.info(f"Saved snapshot with {len(branches)} branch(es) to {filepath}")
