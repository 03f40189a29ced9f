"""
Snapshot Service — freezes a principal's competency view into an immutable,
publicly verifiable record addressed by an unguessable token.

State machine: Created → (Viewed)* → [Expired]
"""

from __future__ import annotations

import logging
from copy import deepcopy
from datetime import datetime, timedelta
from typing import Callable, Optional

from skills_portal.errors import NotAuthenticated, NotFound
from skills_portal.models.schemas import (
    Principal,
    PublicVerification,
    VerificationSnapshot,
    utcnow,
)
from skills_portal.persistence.snapshot_store import SnapshotStore, TokenCollision
from skills_portal.services.category_aggregator import CategoryAggregator
from skills_portal.utils.hashing import generate_token

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Verification not found or expired"
MAX_TOKEN_ATTEMPTS = 5
MAX_TOKEN_LENGTH = 128


class SnapshotService:

    def __init__(
        self,
        aggregator: CategoryAggregator,
        store: SnapshotStore,
        clock: Callable[[], datetime] = utcnow,
        ttl: Optional[timedelta] = None,
        base_url: str = "",
        token_factory: Callable[[], str] = generate_token,
    ):
        self.aggregator = aggregator
        self.store = store
        self._clock = clock
        self.ttl = ttl
        self.base_url = base_url.rstrip("/")
        self._token_factory = token_factory

    def create_snapshot(
        self,
        principal: Optional[Principal],
        selected_category_ids: Optional[list[str]] = None,
        user_name: Optional[str] = None,
    ) -> VerificationSnapshot:
        """Compute, filter and store a frozen copy. Returns the stored record."""
        if principal is None:
            raise NotAuthenticated()

        snapshot = self.aggregator.compute_snapshot(principal)
        if selected_category_ids is not None:
            wanted = set(selected_category_ids)
            snapshot.categories = [c for c in snapshot.categories if c.id in wanted]

        frozen = deepcopy(snapshot.model_dump(mode="json"))
        now = self._clock()
        expires_at = now + self.ttl if self.ttl else None

        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            record = VerificationSnapshot(
                token=self._token_factory(),
                principal_id=principal.id,
                principal_email=principal.email,
                user_name=user_name or principal.display_name,
                skills_snapshot=frozen,
                selected_category_ids=list(selected_category_ids or []),
                created_at=now,
                expires_at=expires_at,
                view_count=0,
            )
            try:
                self.store.insert(record)
            except TokenCollision:
                logger.warning(f"Snapshot token collision (attempt {attempt})")
                continue
            logger.info(
                f"Snapshot created for {principal.id}: "
                f"{len(frozen['categories'])} categories"
            )
            return record
        raise RuntimeError(f"Could not allocate a unique snapshot token after {MAX_TOKEN_ATTEMPTS} attempts")

    def get_snapshot(self, token: str) -> VerificationSnapshot:
        """Return the frozen snapshot and count the view; NotFound if absent or expired."""
        if not token or len(token) > MAX_TOKEN_LENGTH:
            raise NotFound(NOT_FOUND_MESSAGE)
        snapshot = self.store.record_view(token, self._clock())
        if snapshot is None:
            raise NotFound(NOT_FOUND_MESSAGE)
        return snapshot

    def public_view(self, token: str) -> PublicVerification:
        snapshot = self.get_snapshot(token)
        return PublicVerification(
            user_name=snapshot.user_name,
            skills_snapshot=snapshot.skills_snapshot,
            created_at=snapshot.created_at,
            view_count=snapshot.view_count,
        )

    def verification_url(self, token: str) -> str:
        return f"{self.base_url}/verify/skills/{token}"

    def list_for_principal(self, principal: Principal) -> list[VerificationSnapshot]:
        return self.store.list_for_principal(principal.id)
