"""
Role-based authorization for the maintenance core.

Every permission decision is a lookup in ROLE_CAPABILITIES through one
dispatch point, ``is_allowed``. Adding a role or an action is a change to the
table, not a new function.

Pure Python logic - no FastAPI imports, no database access.
"""
import logging
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from maintops.models.enums import Role
from maintops.services.errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """
    The acting principal for one request.

    Built once per request from a verified credential and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role
    site_ids: FrozenSet[str] = Field(default_factory=frozenset)


# ============================================================================
# Capabilities
# ============================================================================

class Capability(str, Enum):
    """Actions gated by role."""
    SITE_ACCESS_ALL = "site:access_all"
    WORK_ORDER_CREATE = "work_order:create"
    WORK_ORDER_APPROVE = "work_order:approve"
    ASSET_MODIFY = "asset:modify"
    SCHEDULE_MANAGE = "schedule:manage"
    CHECK_TEMPLATE_MANAGE = "check_template:manage"


ROLE_CAPABILITIES: dict[Role, Set[Capability]] = {
    Role.VIEWER: set(),
    Role.FITTER: {
        Capability.WORK_ORDER_CREATE,
        Capability.ASSET_MODIFY,
    },
    Role.SUPERVISOR: {
        Capability.WORK_ORDER_CREATE,
        Capability.WORK_ORDER_APPROVE,
        Capability.ASSET_MODIFY,
        Capability.SCHEDULE_MANAGE,
        Capability.CHECK_TEMPLATE_MANAGE,
    },
    Role.MANAGER: {
        # Managers see every site
        Capability.SITE_ACCESS_ALL,
        Capability.WORK_ORDER_CREATE,
        Capability.WORK_ORDER_APPROVE,
        Capability.ASSET_MODIFY,
        Capability.SCHEDULE_MANAGE,
        Capability.CHECK_TEMPLATE_MANAGE,
    },
    Role.ADMIN: set(Capability),
}


def is_allowed(identity: Identity, capability: Capability) -> bool:
    """Single dispatch point: does the identity's role carry the capability?"""
    return capability in ROLE_CAPABILITIES.get(identity.role, set())


def can_access_site(identity: Identity, site_id: str) -> bool:
    if is_allowed(identity, Capability.SITE_ACCESS_ALL):
        return True
    return site_id in identity.site_ids


def can_create_work_order(identity: Identity) -> bool:
    return is_allowed(identity, Capability.WORK_ORDER_CREATE)


def can_approve_work_order(identity: Identity) -> bool:
    return is_allowed(identity, Capability.WORK_ORDER_APPROVE)


def can_modify_asset(identity: Identity) -> bool:
    return is_allowed(identity, Capability.ASSET_MODIFY)


def can_manage_schedules(identity: Identity) -> bool:
    return is_allowed(identity, Capability.SCHEDULE_MANAGE)


def can_manage_check_templates(identity: Identity) -> bool:
    return is_allowed(identity, Capability.CHECK_TEMPLATE_MANAGE)


# ============================================================================
# Enforcement helpers (raise instead of returning False)
# ============================================================================

def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise UnauthorizedError()
    return identity


def require_role(identity: Optional[Identity], allowed_roles: Iterable[Role]) -> Identity:
    """Return the identity unchanged if its role is allowed, else ForbiddenError."""
    identity = require_identity(identity)
    if identity.role not in set(allowed_roles):
        logger.info("Role denied: user=%s role=%s", identity.user_id, identity.role.value)
        raise ForbiddenError()
    return identity


def require_capability(identity: Optional[Identity], capability: Capability) -> Identity:
    identity = require_identity(identity)
    if not is_allowed(identity, capability):
        logger.info(
            "Capability denied: user=%s role=%s capability=%s",
            identity.user_id, identity.role.value, capability.value
        )
        raise ForbiddenError()
    return identity


def require_site_access(identity: Identity, site_id: str) -> Identity:
    """
    Check access against the resource's own site_id, never a site the caller
    claims the request is about.
    """
    if not can_access_site(identity, site_id):
        logger.info("Site denied: user=%s role=%s site=%s", identity.user_id, identity.role.value, site_id)
        raise ForbiddenError()
    return identity
