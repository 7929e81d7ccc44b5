"""Pytest configuration and shared fixtures."""
import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the module-level engine off the working directory during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from maintops.database import Base  # noqa: E402
from maintops.models.audit import AuditSink  # noqa: E402
from maintops.models.domain import Asset, AssetType, Counter, WorkOrder, WorkOrderNote  # noqa: E402
from maintops.models.enums import Role  # noqa: E402
from maintops.services.lifecycle import TransitionPolicy, WorkOrderLifecycle  # noqa: E402
from maintops.services.policy import Identity  # noqa: E402

SITE_A = "site-a"
SITE_B = "site-b"

FIXED_NOW = datetime(2026, 3, 14, 9, 30, 0)


class RecordingAuditSink(AuditSink):
    """Keeps every event in memory so tests can assert on them."""

    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


def make_identity(role: Role, user_id: str = None, site_ids=(SITE_A,)) -> Identity:
    return Identity(user_id=user_id or f"{role.value.lower()}-1", role=role, site_ids=frozenset(site_ids))


@pytest.fixture
def db_engine():
    """A fresh in-memory database shared across threads of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database so concurrent threads use real, separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def lifecycle(db_session, audit_sink):
    return WorkOrderLifecycle(
        db_session,
        audit_sink=audit_sink,
        transition_policy=TransitionPolicy.permissive(),
        clock=lambda: FIXED_NOW,
        restamp_completed_at=False,
        retry_delay=0,
    )


@pytest.fixture
def fitter():
    return make_identity(Role.FITTER, "fitter-1")


@pytest.fixture
def supervisor():
    return make_identity(Role.SUPERVISOR, "supervisor-1")


@pytest.fixture
def viewer():
    return make_identity(Role.VIEWER, "viewer-1")


@pytest.fixture
def admin():
    return make_identity(Role.ADMIN, "admin-1", site_ids=())


@pytest.fixture
def sample_asset(db_session):
    """An excavator at site A, coded from a provisioned counter."""
    asset_type = AssetType(name="Excavator", prefix="EXC")
    db_session.add(asset_type)
    db_session.add(Counter(key="EXC", value=1))
    db_session.flush()
    asset = Asset(
        code="EXC-000001",
        name="20t excavator",
        asset_type_id=asset_type.id,
        site_id=SITE_A,
        created_by_id="admin-1",
    )
    db_session.add(asset)
    db_session.commit()
    db_session.refresh(asset)
    return asset


@pytest.fixture
def sample_work_order(lifecycle, fitter, sample_asset, audit_sink):
    """An Open breakdown work order at site A. Its CREATE event is cleared."""
    work_order = lifecycle.create_work_order(
        fitter,
        site_id=SITE_A,
        asset_id=sample_asset.id,
        type="Breakdown",
        title="Hydraulic leak on boom",
    )
    audit_sink.events.clear()
    return work_order
