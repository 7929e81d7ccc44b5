"""
Tests for the role-based authorization policy.

Every predicate is a lookup in the role capability table; these tests pin the
table's observable behaviour for each role.
"""
import pytest
from pydantic import ValidationError

from maintops.models.enums import Role
from maintops.services.errors import ForbiddenError, UnauthorizedError
from maintops.services.policy import (
    Capability,
    Identity,
    ROLE_CAPABILITIES,
    can_access_site,
    can_approve_work_order,
    can_create_work_order,
    can_manage_check_templates,
    can_manage_schedules,
    can_modify_asset,
    is_allowed,
    require_capability,
    require_identity,
    require_role,
    require_site_access,
)

ASSIGNED = "site1"
UNASSIGNED = "site2"


def identity_for(role):
    return Identity(user_id="1", role=role, site_ids=[ASSIGNED])


class TestSiteAccess:
    """canAccessSite for all five roles against an assigned and an unassigned site."""

    @pytest.mark.parametrize("role, assigned, unassigned", [
        (Role.ADMIN, True, True),
        (Role.MANAGER, True, True),
        (Role.SUPERVISOR, True, False),
        (Role.FITTER, True, False),
        (Role.VIEWER, True, False),
    ])
    def test_site_access_by_role(self, role, assigned, unassigned):
        identity = identity_for(role)

        assert can_access_site(identity, ASSIGNED) is assigned
        assert can_access_site(identity, UNASSIGNED) is unassigned

    def test_admin_with_no_sites_still_sees_everything(self):
        admin = Identity(user_id="1", role=Role.ADMIN)

        assert can_access_site(admin, "anywhere")

    def test_supervisor_with_several_sites(self):
        supervisor = Identity(user_id="1", role=Role.SUPERVISOR, site_ids=["site1", "site2"])

        assert can_access_site(supervisor, "site1")
        assert can_access_site(supervisor, "site2")
        assert not can_access_site(supervisor, "site3")

    def test_require_site_access_raises_forbidden(self):
        with pytest.raises(ForbiddenError):
            require_site_access(identity_for(Role.FITTER), UNASSIGNED)


class TestRolePredicates:
    """Each predicate carries its own allowed-role set."""

    @pytest.mark.parametrize("role, expected", [
        (Role.VIEWER, False),
        (Role.FITTER, True),
        (Role.SUPERVISOR, True),
        (Role.MANAGER, True),
        (Role.ADMIN, True),
    ])
    def test_create_work_order_and_modify_asset(self, role, expected):
        identity = identity_for(role)

        assert can_create_work_order(identity) is expected
        assert can_modify_asset(identity) is expected

    @pytest.mark.parametrize("role, expected", [
        (Role.VIEWER, False),
        (Role.FITTER, False),
        (Role.SUPERVISOR, True),
        (Role.MANAGER, True),
        (Role.ADMIN, True),
    ])
    def test_supervisory_predicates(self, role, expected):
        identity = identity_for(role)

        assert can_approve_work_order(identity) is expected
        assert can_manage_schedules(identity) is expected
        assert can_manage_check_templates(identity) is expected

    def test_every_role_has_a_table_entry(self):
        assert set(ROLE_CAPABILITIES) == set(Role)

    def test_admin_holds_every_capability(self):
        admin = identity_for(Role.ADMIN)

        assert all(is_allowed(admin, capability) for capability in Capability)


class TestEnforcement:
    """require_* helpers raise instead of returning False."""

    def test_missing_identity_is_unauthorized(self):
        with pytest.raises(UnauthorizedError):
            require_identity(None)

        with pytest.raises(UnauthorizedError):
            require_role(None, [Role.ADMIN])

    def test_require_role_returns_identity_unchanged(self):
        admin = identity_for(Role.ADMIN)

        assert require_role(admin, [Role.ADMIN, Role.MANAGER]) is admin

    def test_require_role_rejects_other_roles(self):
        with pytest.raises(ForbiddenError):
            require_role(identity_for(Role.MANAGER), [Role.ADMIN])

    def test_require_capability_rejects_viewer(self):
        with pytest.raises(ForbiddenError):
            require_capability(identity_for(Role.VIEWER), Capability.WORK_ORDER_CREATE)

    def test_identity_is_immutable(self):
        identity = identity_for(Role.FITTER)

        with pytest.raises(ValidationError):
            identity.role = Role.ADMIN

        assert identity.site_ids == frozenset({ASSIGNED})
