"""
Tests: SnapshotService — immutability, view counting, expiry, uniform not-found.

Run with:
    pytest skills_portal/tests/test_snapshots.py -v
"""

from datetime import timedelta

import pytest

from skills_portal.errors import NotAuthenticated, NotFound
from skills_portal.models.schemas import CategoryCapabilityLink, CategoryCourseLink, SkillCategory
from skills_portal.persistence import (
    InMemoryCategoryStore,
    InMemoryProgressStore,
    InMemorySnapshotStore,
)
from skills_portal.services import CategoryAggregator, SnapshotService


@pytest.fixture
def aggregator(clock):
    agg = CategoryAggregator(InMemoryCategoryStore(), InMemoryProgressStore(), clock=clock)
    agg.create_category(SkillCategory(id="pillar2", name="Pillar2", slug="pillar_two", display_order=1))
    agg.create_category(SkillCategory(id="vat", name="VAT", slug="vat", display_order=2))
    agg.link_course(CategoryCourseLink(category_id="pillar2", course_id="K9", course_name="Pillar Two Masterclass"))
    agg.link_course(CategoryCourseLink(category_id="vat", course_id="K30", course_name="EU VAT"))
    agg.link_capability(CategoryCapabilityLink(category_id="vat", capability_id="vat-validator"))
    return agg


def make_service(aggregator, clock, ttl=None, tokens=None):
    kwargs = {}
    if tokens is not None:
        kwargs["token_factory"] = lambda: next(tokens)
    return SnapshotService(
        aggregator, InMemorySnapshotStore(), clock=clock, ttl=ttl,
        base_url="https://portal.example.com/", **kwargs,
    )


class TestCreate:
    def test_token_is_long_and_url_safe(self, aggregator, clock, alice):
        service = make_service(aggregator, clock)
        snapshot = service.create_snapshot(alice)
        assert len(snapshot.token) >= 43
        assert all(ch.isalnum() or ch in "-_" for ch in snapshot.token)
        assert snapshot.view_count == 0
        assert snapshot.expires_at is None

    def test_user_name_defaults_to_email_local_part(self, aggregator, clock, alice):
        snapshot = make_service(aggregator, clock).create_snapshot(alice)
        assert snapshot.user_name == "alice"

    def test_anonymous_cannot_create(self, aggregator, clock):
        with pytest.raises(NotAuthenticated):
            make_service(aggregator, clock).create_snapshot(None)

    def test_selected_categories_filter(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        aggregator.on_course_completion(alice, "K30", 100)
        service = make_service(aggregator, clock)

        snapshot = service.create_snapshot(alice, selected_category_ids=["vat"])
        assert [c["id"] for c in snapshot.skills_snapshot["categories"]] == ["vat"]
        assert snapshot.selected_category_ids == ["vat"]

    def test_token_collision_is_retried(self, aggregator, clock, alice, bob):
        service = make_service(aggregator, clock, tokens=iter(["tok-a", "tok-a", "tok-b"]))
        assert service.create_snapshot(alice).token == "tok-a"
        assert service.create_snapshot(bob).token == "tok-b"

    def test_ttl_sets_expiry(self, aggregator, clock, alice):
        snapshot = make_service(aggregator, clock, ttl=timedelta(days=30)).create_snapshot(alice)
        assert snapshot.expires_at == clock() + timedelta(days=30)

    def test_verification_url(self, aggregator, clock):
        service = make_service(aggregator, clock)
        assert service.verification_url("abc") == "https://portal.example.com/verify/skills/abc"


class TestImmutability:
    def test_scenario_d_snapshot_survives_revocation(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        service = make_service(aggregator, clock)
        token = service.create_snapshot(alice).token

        # Access revoked and the course unlinked afterwards.
        aggregator.unlink_course("pillar2", "K9")
        aggregator.deactivate_category("pillar2")

        frozen = service.get_snapshot(token).skills_snapshot
        [category] = frozen["categories"]
        assert category["id"] == "pillar2"
        assert category["courses"][0]["course_id"] == "K9"

    def test_live_changes_do_not_leak_in(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        service = make_service(aggregator, clock)
        token = service.create_snapshot(alice).token
        before = service.get_snapshot(token).skills_snapshot

        aggregator.on_course_completion(alice, "K30", 100)
        aggregator.on_capability_saved(alice, "vat-validator")

        assert service.get_snapshot(token).skills_snapshot == before

    def test_mutating_a_returned_copy_does_not_change_storage(self, aggregator, clock, alice):
        aggregator.on_course_completion(alice, "K9", 100)
        service = make_service(aggregator, clock)
        token = service.create_snapshot(alice).token

        first = service.get_snapshot(token)
        first.skills_snapshot["categories"].clear()
        assert len(service.get_snapshot(token).skills_snapshot["categories"]) == 1

    def test_only_view_count_changes(self, aggregator, clock, alice):
        service = make_service(aggregator, clock)
        token = service.create_snapshot(alice).token
        first = service.get_snapshot(token)
        second = service.get_snapshot(token)

        assert (first.view_count, second.view_count) == (1, 2)
        assert first.model_dump(exclude={"view_count"}) == second.model_dump(exclude={"view_count"})


class TestLookup:
    @pytest.mark.parametrize("token", ["", "unknown-token", "x" * 500])
    def test_unknown_tokens_are_uniform_not_found(self, aggregator, clock, token):
        with pytest.raises(NotFound) as exc:
            make_service(aggregator, clock).get_snapshot(token)
        assert exc.value.message == "Verification not found or expired"

    def test_expired_is_indistinguishable_from_unknown(self, aggregator, clock, alice):
        service = make_service(aggregator, clock, ttl=timedelta(days=1))
        token = service.create_snapshot(alice).token
        clock.advance(days=1)

        with pytest.raises(NotFound) as expired:
            service.get_snapshot(token)
        with pytest.raises(NotFound) as unknown:
            service.get_snapshot("never-issued")
        assert expired.value.message == unknown.value.message

    def test_public_view_has_no_email(self, aggregator, clock, alice):
        service = make_service(aggregator, clock)
        token = service.create_snapshot(alice).token
        view = service.public_view(token)

        assert view.user_name == "alice"
        assert view.view_count == 1
        assert "alice@example.com" not in view.model_dump_json()

    def test_history_newest_first(self, aggregator, clock, alice, bob):
        service = make_service(aggregator, clock)
        first = service.create_snapshot(alice).token
        clock.advance(minutes=5)
        second = service.create_snapshot(alice).token
        service.create_snapshot(bob)

        assert [s.token for s in service.list_for_principal(alice)] == [second, first]
