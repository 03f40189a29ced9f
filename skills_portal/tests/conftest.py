"""Shared fixtures: a controllable clock, principals and an in-memory Portal."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from skills_portal.models.enums import Role
from skills_portal.models.schemas import Capability, Principal
from skills_portal.persistence import (
    InMemoryAllocationStore,
    InMemoryCapabilityStore,
    InMemoryCategoryStore,
    InMemoryEvidenceRepository,
    InMemoryProgressStore,
    InMemorySnapshotStore,
)
from skills_portal.services import (
    ActivityLog,
    CategoryAggregator,
    EntitlementResolver,
    EvidenceCollector,
    Portal,
    SnapshotService,
    StaticEnrollmentProvider,
)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alice():
    return Principal(id="lw-alice", email="alice@example.com", external_id="lw-alice")


@pytest.fixture
def bob():
    return Principal(id="bob@example.com", email="bob@example.com")


@pytest.fixture
def admin():
    return Principal(id="root@example.com", email="root@example.com", role=Role.ADMIN)


@pytest.fixture
def capabilities():
    return InMemoryCapabilityStore([
        Capability(id="pillar-two-calculator", name="Pillar Two Calculator", category="pillar_two",
                   is_public=False, is_premium=True),
        Capability(id="tp-checker", name="TP Benchmark Checker", category="transfer_pricing",
                   is_public=False),
        Capability(id="vat-validator", name="VAT Number Validator", category="vat"),
    ])


@pytest.fixture
def enrollment():
    return StaticEnrollmentProvider()


@pytest.fixture
def portal(clock, capabilities, enrollment):
    allocations = InMemoryAllocationStore(clock=clock)
    aggregator = CategoryAggregator(InMemoryCategoryStore(), InMemoryProgressStore(), clock=clock)
    return Portal(
        allocations=allocations,
        capabilities=capabilities,
        enrollment=enrollment,
        resolver=EntitlementResolver(
            allocations, capabilities, enrollment,
            course_url_template="{school_url}/course/{course_id}",
            school_url="https://academy.example.com",
        ),
        evidence=EvidenceCollector(InMemoryEvidenceRepository(), clock=clock),
        aggregator=aggregator,
        snapshots=SnapshotService(
            aggregator, InMemorySnapshotStore(), clock=clock, base_url="https://portal.example.com"
        ),
        activity=ActivityLog(clock=clock),
    )
