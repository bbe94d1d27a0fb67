"""State management for tracking deployed resources.

The state file is JSON. Each managed CircleCI object is one
``ResourceInstance`` whose ``attributes`` mirror what the handler last read
or wrote; secrets are kept only as digests (see ``core.masking``).
"""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from circleci_provisioner.core.migrations import MigrationError

logger = logging.getLogger(__name__)

# Layout of the state file itself; per-resource layouts use ``schema_version``.
STATE_FORMAT_VERSION = 1


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's stored attributes."""
    return _sha256_hex(_canonical_json(attrs))


def _atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* so readers never see a partial file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            tmp_path.unlink()


class ResourceInstance(BaseModel):
    """A tracked resource instance in the state file.

    Attributes:
        address: Unique resource address (e.g., "circleci_context.deploy")
        resource_type: Type of the resource (e.g., "circleci_context")
        name: Resource name (e.g., "deploy")
        schema_version: Version of the attribute layout, see ``core.migrations``
        attributes: Stored attribute values; sensitive values are digests
        attributes_hash: SHA256 of ``attributes`` for change detection
        dependencies: Addresses this resource was applied after
    """

    address: str
    resource_type: str
    name: str
    schema_version: int = 0
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class State(BaseModel):
    """Terraform-style state for one CircleCI organization.

    ``serial`` increases with every write and ``lineage`` identifies the
    history a state belongs to; together with the content digest they let
    apply reject plans made against another version of the state.
    """

    version: int = STATE_FORMAT_VERSION
    organization: str | None = None
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Write the state atomically, keeping the previous file as ``<path>.backup``."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with contextlib.suppress(FileNotFoundError):
            Path(f"{path}.backup").write_bytes(path.read_bytes())

        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True)
        _atomic_write_text(path, content + "\n")
        logger.debug("State saved: serial=%d path=%s", self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        """Load state from a JSON file.

        Raises:
            MigrationError: The file was written by a newer format version.
        """
        raw = json.loads(path.read_text(encoding="utf-8"))
        version = raw.get("version", STATE_FORMAT_VERSION) if isinstance(raw, dict) else None
        if isinstance(version, int) and version > STATE_FORMAT_VERSION:
            raise MigrationError(
                f"State file {path} has format version {version}; "
                f"this release reads up to version {STATE_FORMAT_VERSION}"
            )
        state = cls.model_validate(raw)
        logger.debug("State loaded from %s", path)
        return state

    @classmethod
    def load_or_create(cls, path: Path, organization: str | None) -> "State":
        """Load existing state or start an empty one for *organization*."""
        if path.exists():
            return cls.load(path)
        logger.debug("Created new state for organization %s", organization)
        return cls(organization=organization)


def _digest_entry(address: str, inst: ResourceInstance) -> dict[str, Any]:
    # Timestamps are left out: touching a resource must not invalidate plans.
    return {
        "address": address,
        "resource_type": inst.resource_type,
        "name": inst.name,
        "schema_version": inst.schema_version,
        "attributes_hash": inst.attributes_hash,
        "dependencies": sorted(inst.dependencies),
    }


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content, used for stale-plan detection."""
    return _sha256_hex(
        _canonical_json(
            {
                "version": state.version,
                "organization": state.organization,
                "lineage": state.lineage,
                "serial": state.serial,
                "resources": [
                    _digest_entry(address, inst)
                    for address, inst in sorted(state.resources.items())
                ],
            }
        )
    )
