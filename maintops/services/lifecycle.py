"""
Work order lifecycle engine.

This is the core enforcement mechanism - every work order status change MUST go
through here. Each operation resolves the identity, runs the cheap role checks,
then loads the work order (not found before forbidden), checks site access
against the work order's own site, applies the transition and commits it as
one atomic unit. The audit event is emitted only after that commit.
"""
import logging
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from maintops import config
from maintops.database import run_atomic
from maintops.models.audit import AuditEvent, AuditSink, LoggingAuditSink
from maintops.models.domain import Asset, WorkOrder, WorkOrderNote, utcnow
from maintops.models.enums import (
    AuditAction,
    Priority,
    TERMINAL_STATUSES,
    WorkOrderStatus,
    WorkOrderType,
)
from maintops.services.errors import InvalidTransitionError, NotFoundError
from maintops.services.policy import (
    Capability,
    Identity,
    is_allowed,
    require_capability,
    require_identity,
    require_site_access,
)
from maintops.services.sequence import SequenceAllocator, work_order_key, work_order_number_allocator

logger = logging.getLogger(__name__)

ENTITY_TYPE = "WorkOrder"

S = WorkOrderStatus

# Adjacency used when ENFORCE_TRANSITION_TABLE is on
STRICT_TRANSITIONS: Dict[WorkOrderStatus, FrozenSet[WorkOrderStatus]] = {
    S.OPEN: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.OPEN, S.ASSIGNED, S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.ASSIGNED, S.WAITING_PARTS, S.WAITING_VENDOR, S.COMPLETED, S.CANCELLED}),
    S.WAITING_PARTS: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.CANCELLED}),
    S.WAITING_VENDOR: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.CANCELLED}),
    S.COMPLETED: frozenset({S.IN_PROGRESS, S.APPROVED_CLOSED}),
    S.APPROVED_CLOSED: frozenset(),
    S.CANCELLED: frozenset(),
}


class TransitionPolicy:
    """
    Which status moves are legal.

    The permissive policy lets any non-terminal status move to any status,
    subject only to the role guards. The strict policy adds an adjacency table.
    Nothing ever leaves a terminal status.
    """

    def __init__(self, allowed: Optional[Mapping[WorkOrderStatus, FrozenSet[WorkOrderStatus]]] = None):
        self.allowed = allowed

    @classmethod
    def permissive(cls) -> "TransitionPolicy":
        return cls(None)

    @classmethod
    def strict(cls) -> "TransitionPolicy":
        return cls(STRICT_TRANSITIONS)

    @classmethod
    def from_config(cls) -> "TransitionPolicy":
        return cls.strict() if config.ENFORCE_TRANSITION_TABLE else cls.permissive()

    def allows(self, current: WorkOrderStatus, new: WorkOrderStatus) -> bool:
        if current in TERMINAL_STATUSES:
            return False
        if self.allowed is None or current == new:
            return True
        return new in self.allowed.get(current, frozenset())

    def check(self, current: WorkOrderStatus, new: WorkOrderStatus) -> None:
        if not self.allows(current, new):
            raise InvalidTransitionError(current, new)


class WorkOrderLifecycle:
    """Enforces work order transitions, their authorization guards and side-effect timestamps."""

    def __init__(
        self,
        db: Session,
        audit_sink: Optional[AuditSink] = None,
        allocator: Optional[SequenceAllocator] = None,
        transition_policy: Optional[TransitionPolicy] = None,
        clock: Callable = utcnow,
        restamp_completed_at: Optional[bool] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.db = db
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.allocator = allocator or work_order_number_allocator()
        self.transition_policy = transition_policy or TransitionPolicy.from_config()
        self.clock = clock
        self.restamp_completed_at = (
            config.RESTAMP_COMPLETED_AT if restamp_completed_at is None else restamp_completed_at
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_work_order(self, identity: Optional[Identity], work_order_id: str) -> WorkOrder:
        identity = require_identity(identity)
        work_order = self.db.get(WorkOrder, work_order_id)
        if work_order is None:
            raise NotFoundError(ENTITY_TYPE, work_order_id)
        require_site_access(identity, work_order.site_id)
        return work_order

    def list_work_orders(
        self,
        identity: Optional[Identity],
        site_id: Optional[str] = None,
        status: Optional[WorkOrderStatus] = None,
        type: Optional[WorkOrderType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[WorkOrder], int]:
        """
        Page through the work orders the identity may see, newest first.

        An explicit site outside the identity's scope is forbidden; without one
        the listing is narrowed to the identity's sites unless its role sees
        every site.
        """
        identity = require_identity(identity)
        query = select(WorkOrder)
        if site_id is not None:
            require_site_access(identity, site_id)
            query = query.where(WorkOrder.site_id == site_id)
        elif not is_allowed(identity, Capability.SITE_ACCESS_ALL):
            query = query.where(WorkOrder.site_id.in_(sorted(identity.site_ids)))
        if status is not None:
            query = query.where(WorkOrder.status == status)
        if type is not None:
            query = query.where(WorkOrder.type == type)

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        items = self.db.execute(
            query.order_by(WorkOrder.created_at.desc(), WorkOrder.number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(items), total

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_work_order(
        self,
        identity: Optional[Identity],
        site_id: str,
        asset_id: str,
        type: WorkOrderType,
        title: str,
        description: Optional[str] = None,
        priority: Priority = Priority.MEDIUM,
    ) -> WorkOrder:
        """
        Create a work order in Open status with a freshly allocated number.

        The number is claimed in the same unit of work that inserts the row, so
        two concurrent creations on the same day can never share a number.
        """
        identity = require_capability(identity, Capability.WORK_ORDER_CREATE)
        require_site_access(identity, site_id)
        type = WorkOrderType(type)
        priority = Priority(priority)

        def _create() -> WorkOrder:
            asset = self.db.get(Asset, asset_id)
            if asset is None:
                raise NotFoundError("Asset", asset_id)
            if asset.site_id != site_id:
                raise ValueError(f"Asset {asset.code} is stationed at {asset.site_id}, not {site_id}")
            number = self.allocator.next_identifier(self.db, work_order_key(self.clock()))
            work_order = WorkOrder(
                number=number,
                site_id=site_id,
                asset_id=asset_id,
                type=type,
                title=title,
                description=description,
                priority=priority,
                status=WorkOrderStatus.OPEN,
                created_by_id=identity.user_id,
            )
            self.db.add(work_order)
            self.db.flush()
            return work_order

        work_order = run_atomic(self.db, _create, name="create work order", **self._retry_options())
        logger.info("Created work order %s at site %s", work_order.number, site_id)

        self._emit(AuditAction.CREATE, work_order.id, identity, {
            "number": work_order.number,
            "site_id": site_id,
            "asset_id": asset_id,
            "type": type.value,
            "title": title,
            "description": description,
            "priority": priority.value,
        })
        return work_order

    def assign(self, identity: Optional[Identity], work_order_id: str, assignee_id: str) -> WorkOrder:
        """Assign the work order to a user and move it to Assigned."""
        identity = require_capability(identity, Capability.WORK_ORDER_APPROVE)

        def _assign() -> WorkOrder:
            work_order = self._load_for_update(work_order_id)
            require_site_access(identity, work_order.site_id)
            self.transition_policy.check(work_order.status, WorkOrderStatus.ASSIGNED)
            work_order.assigned_to_id = assignee_id
            work_order.status = WorkOrderStatus.ASSIGNED
            self.db.flush()
            return work_order

        work_order = run_atomic(self.db, _assign, name="assign work order", **self._retry_options())
        self._emit(AuditAction.ASSIGN, work_order.id, identity, {"assigned_to_id": assignee_id})
        return work_order

    def transition_status(
        self,
        identity: Optional[Identity],
        work_order_id: str,
        new_status: WorkOrderStatus,
        note: Optional[str] = None,
    ) -> WorkOrder:
        """
        Move a work order to ``new_status``.

        Side effects:
        - Completed stamps completed_at (only the first time, unless re-stamping is configured)
        - ApprovedClosed stamps closed_at and approved_by_id
        - A supplied note is appended whether or not the status changed

        Re-setting a terminal status only appends the note: the closing
        stamps are kept and no audit event is emitted.
        """
        identity = require_identity(identity)
        new_status = WorkOrderStatus(new_status)

        # Role guards need no work order fields, so they run before the load
        if new_status == WorkOrderStatus.COMPLETED:
            require_capability(identity, Capability.WORK_ORDER_CREATE)
        elif new_status == WorkOrderStatus.APPROVED_CLOSED:
            require_capability(identity, Capability.WORK_ORDER_APPROVE)

        def _transition() -> Tuple[WorkOrder, WorkOrderStatus, bool]:
            work_order = self._load_for_update(work_order_id)
            require_site_access(identity, work_order.site_id)
            old_status = work_order.status
            now = self.clock()

            if old_status == new_status and old_status in TERMINAL_STATUSES:
                if note:
                    self._append_note(work_order, identity, note, now)
                self.db.flush()
                return work_order, old_status, False

            self.transition_policy.check(old_status, new_status)
            work_order.status = new_status
            if new_status == WorkOrderStatus.COMPLETED:
                if work_order.completed_at is None or self.restamp_completed_at:
                    work_order.completed_at = now
            elif new_status == WorkOrderStatus.APPROVED_CLOSED:
                work_order.closed_at = now
                work_order.approved_by_id = identity.user_id

            if note:
                self._append_note(work_order, identity, note, now)
            self.db.flush()
            return work_order, old_status, True

        work_order, old_status, changed = run_atomic(
            self.db, _transition, name="transition work order", **self._retry_options()
        )
        if not changed:
            return work_order
        logger.info(
            "Work order %s moved %s -> %s by %s",
            work_order.number, old_status.value, new_status.value, identity.user_id
        )

        action = AuditAction.APPROVE if new_status == WorkOrderStatus.APPROVED_CLOSED else AuditAction.UPDATE
        self._emit(action, work_order.id, identity, {
            "old_status": old_status.value,
            "new_status": new_status.value,
        })
        return work_order

    def add_note(self, identity: Optional[Identity], work_order_id: str, text: str) -> WorkOrderNote:
        """Append a note. Never changes status and is not audited."""
        identity = require_identity(identity)
        if not text or not text.strip():
            raise ValueError("Note text must not be empty")

        def _add_note() -> WorkOrderNote:
            work_order = self.db.get(WorkOrder, work_order_id)
            if work_order is None:
                raise NotFoundError(ENTITY_TYPE, work_order_id)
            require_site_access(identity, work_order.site_id)
            note = self._append_note(work_order, identity, text, self.clock())
            self.db.flush()
            return note

        return run_atomic(self.db, _add_note, name="add work order note", **self._retry_options())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_for_update(self, work_order_id: str) -> WorkOrder:
        work_order = self.db.get(
            WorkOrder, work_order_id, with_for_update=True, populate_existing=True
        )
        if work_order is None:
            raise NotFoundError(ENTITY_TYPE, work_order_id)
        return work_order

    def _append_note(self, work_order: WorkOrder, identity: Identity, text: str, now) -> WorkOrderNote:
        note = WorkOrderNote(
            work_order_id=work_order.id,
            note=text,
            created_by_id=identity.user_id,
            created_at=now,
        )
        self.db.add(note)
        return note

    def _retry_options(self) -> dict:
        return {"max_retries": self.max_retries, "retry_delay": self.retry_delay}

    def _emit(self, action: AuditAction, entity_id: str, identity: Identity, changes: dict) -> None:
        self.audit_sink.record(AuditEvent(
            action=action,
            entity_type=ENTITY_TYPE,
            entity_id=entity_id,
            acting_user_id=identity.user_id,
            changes=changes,
            timestamp=self.clock(),
        ))
