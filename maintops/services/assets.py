"""
Asset registry - asset types and the assets coded from their counters.

Defining an asset type provisions the counter for its prefix; every asset of
that type then draws a PREFIX-000001 style code from that counter.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from maintops.database import run_atomic
from maintops.models.audit import AuditEvent, AuditSink, LoggingAuditSink
from maintops.models.domain import Asset, AssetType
from maintops.models.enums import AuditAction, Role
from maintops.services.errors import ConflictError, NotFoundError
from maintops.services.policy import (
    Capability,
    Identity,
    require_capability,
    require_role,
    require_site_access,
)
from maintops.services.sequence import SequenceAllocator, asset_code_allocator

logger = logging.getLogger(__name__)


class AssetRegistry:
    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None,
                 allocator: Optional[SequenceAllocator] = None):
        self.db = db
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.allocator = allocator or asset_code_allocator()

    def create_asset_type(self, identity: Optional[Identity], name: str, prefix: str) -> AssetType:
        """Admin only. The prefix's counter is provisioned in the same unit."""
        identity = require_role(identity, [Role.ADMIN])
        prefix = prefix.strip().upper()
        if not prefix.isalnum():
            raise ValueError(f"Asset type prefix must be alphanumeric, got {prefix!r}")
        if self.get_asset_type_by_prefix(prefix) is not None:
            raise ConflictError(f"Asset type prefix {prefix} already exists")

        def _create() -> AssetType:
            asset_type = AssetType(name=name, prefix=prefix)
            self.db.add(asset_type)
            self.allocator.provision(self.db, prefix)
            self.db.flush()
            return asset_type

        # A prefix taken by a concurrent request fails outright
        asset_type = run_atomic(self.db, _create, name="create asset type", max_retries=0)
        logger.info("Created asset type %s (%s)", name, prefix)
        self._emit("AssetType", asset_type.id, identity, {"name": name, "prefix": prefix})
        return asset_type

    def create_asset(
        self,
        identity: Optional[Identity],
        asset_type_id: str,
        site_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> Asset:
        identity = require_capability(identity, Capability.ASSET_MODIFY)
        require_site_access(identity, site_id)

        def _create() -> Asset:
            asset_type = self.db.get(AssetType, asset_type_id)
            if asset_type is None:
                raise NotFoundError("AssetType", asset_type_id)
            asset = Asset(
                code=self.allocator.next_identifier(self.db, asset_type.prefix),
                name=name,
                asset_type_id=asset_type.id,
                site_id=site_id,
                description=description,
                created_by_id=identity.user_id,
            )
            self.db.add(asset)
            self.db.flush()
            return asset

        asset = run_atomic(self.db, _create, name="create asset")
        logger.info("Created asset %s at site %s", asset.code, site_id)
        self._emit("Asset", asset.id, identity, {
            "code": asset.code,
            "asset_type_id": asset_type_id,
            "site_id": site_id,
            "name": name,
        })
        return asset

    def get_asset_type_by_prefix(self, prefix: str) -> Optional[AssetType]:
        return self.db.execute(
            select(AssetType).where(AssetType.prefix == prefix.upper())
        ).scalar_one_or_none()

    def _emit(self, entity_type: str, entity_id: str, identity: Identity, changes: dict) -> None:
        self.audit_sink.record(AuditEvent(
            action=AuditAction.CREATE,
            entity_type=entity_type,
            entity_id=entity_id,
            acting_user_id=identity.user_id,
            changes=changes,
        ))
