"""Fire-and-forget publication of planning artefacts.

Failures here are logged and never interrupt planning.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.types import ToolPath

logger = logging.getLogger(__name__)


def publish_toolpath(world: BaseWorld, toolpath: ToolPath) -> bool:
    """Draw the tool path in the world and log its size."""
    try:
        world.draw_poses(list(toolpath))
    except Exception as exc:
        logger.warning("Failed to publish toolpath: %s", exc)
        return False
    logger.info("Published toolpath with %d poses", len(toolpath))
    return True


def publish_world_snapshot(
    world: BaseWorld, path: str | None = None
) -> dict[str, Any] | None:
    """
    Capture the world state and optionally write it as JSON.

    Input:
        world: World to snapshot
        path: Output JSON file (optional)
    Output:
        snapshot dict, or None if it could not be captured
    """
    try:
        snapshot = world.snapshot()
    except Exception as exc:
        logger.warning("Failed to capture world snapshot: %s", exc)
        return None

    if path is not None:
        try:
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
            with open(path, "w") as f:
                json.dump(snapshot, f, indent=2)
            logger.info(f"Wrote world snapshot to {path}")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write world snapshot to %s: %s", path, exc)

    return snapshot
