"""Versioned migrations for stored resource attributes.

Each resource type declares a ``schema_version``. When state written by an
older version is loaded, the upgraders registered for the type are applied in
order (``0 -> 1 -> 2 ...``) until the stored attributes reach the current
version. Upgraders are pure functions over the raw attribute dict.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Raised when stored attributes cannot be brought to the current version."""


class MigrationTable:
    """Mapping of ``from_version`` to the function producing ``from_version + 1``."""

    def __init__(
        self, upgraders: Mapping[int, Callable[[dict[str, Any]], dict[str, Any]]]
    ) -> None:
        self._upgraders = dict(upgraders)

    def upgrade(self, raw: Mapping[str, Any], from_version: int, to_version: int) -> dict[str, Any]:
        if from_version > to_version:
            raise MigrationError(
                f"Stored schema version {from_version} is newer than supported {to_version}"
            )
        current = dict(raw)
        for version in range(from_version, to_version):
            step = self._upgraders.get(version)
            if step is None:
                raise MigrationError(f"No upgrade registered from schema version {version}")
            logger.debug("Upgrading attributes from schema version %d", version)
            current = step(dict(current))
        return current
