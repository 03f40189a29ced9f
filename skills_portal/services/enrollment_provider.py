"""
Enrollment Provider — adapter over the external learning-management system.

Implementations raise SourceUnavailable on any transport or API failure;
callers decide how to degrade (the resolver fails closed, the completion
sync treats it as "no new completions").

  • LearnWorldsEnrollmentProvider — REST client (httpx, bounded timeout)
  • CachedEnrollmentProvider      — per-principal TTL cache of the accessible set
  • StaticEnrollmentProvider      — fixed answers for tests / local development
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from skills_portal.config import Settings
from skills_portal.errors import SourceUnavailable
from skills_portal.models.schemas import CourseProgress, Principal

logger = logging.getLogger(__name__)


class EnrollmentProvider(ABC):

    @abstractmethod
    def get_accessible_course_ids(self, principal: Principal) -> list[str]:
        """Course ids the principal can access via any purchase path."""

    @abstractmethod
    def get_course_completion_progress(self, principal: Principal) -> list[CourseProgress]:
        """Per-course progress and completion state."""


# ── Static (tests / local) ───────────────────────────────


class StaticEnrollmentProvider(EnrollmentProvider):
    """Answers from in-memory maps keyed by principal id."""

    def __init__(
        self,
        access: dict[str, list[str]] | None = None,
        progress: dict[str, list[CourseProgress]] | None = None,
    ):
        self._access = {k: list(v) for k, v in (access or {}).items()}
        self._progress = {k: list(v) for k, v in (progress or {}).items()}
        self.calls = 0

    def set_access(self, principal_id: str, course_ids: list[str]) -> None:
        self._access[principal_id] = list(course_ids)

    def set_progress(self, principal_id: str, rows: list[CourseProgress]) -> None:
        self._progress[principal_id] = list(rows)

    def get_accessible_course_ids(self, principal):
        self.calls += 1
        return list(self._access.get(principal.id, []))

    def get_course_completion_progress(self, principal):
        return [row.model_copy() for row in self._progress.get(principal.id, [])]



# ── LearnWorlds REST client ──────────────────────────────


def _from_unix(value: Any) -> Optional[datetime]:
    if value in (None, "", 0):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _score(row: dict[str, Any]) -> float:
    raw = row.get("score") or row.get("pct_completed") or row.get("progress") or 0
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric LearnWorlds score {raw!r}")
        return 0.0


class LearnWorldsEnrollmentProvider(EnrollmentProvider):
    """
    Talks to the LearnWorlds v2 API.

    Accessible courses come from /v2/users/{id}/courses, which covers direct
    purchases, bundles and subscriptions; /v2/users/{id}/products is the
    fallback when that endpoint fails.

    Each provider call runs against one deadline of
    `enrollment_deadline_seconds`, shared by every request it makes.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self._clock = clock
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=settings.learnworlds_api_url.rstrip("/"),
            timeout=httpx.Timeout(settings.enrollment_timeout_seconds),
        )
        self._headers = {
            "Authorization": f"Bearer {settings.learnworlds_access_token}",
            "Lw-Client": settings.learnworlds_client_id,
            "Accept": "application/json",
        }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ── Transport ────────────────────────────────────────

    def _deadline(self) -> float:
        return self._clock() + self.settings.enrollment_deadline_seconds

    def _get(self, path: str, deadline: float, params: dict[str, Any] | None = None) -> dict[str, Any]:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise SourceUnavailable(f"LearnWorlds deadline exceeded before {path}")
        timeout = httpx.Timeout(min(self.settings.enrollment_timeout_seconds, remaining))
        try:
            with self._client.stream(
                "GET", path, params=params, headers=self._headers, timeout=timeout
            ) as response:
                response.raise_for_status()
                content = bytearray()
                # The read timeout restarts on every chunk; the deadline does not.
                for chunk in response.iter_bytes():
                    content.extend(chunk)
                    if self._clock() > deadline:
                        raise SourceUnavailable(f"LearnWorlds deadline exceeded on {path}")
            body = json.loads(bytes(content))
        except httpx.TimeoutException as exc:
            raise SourceUnavailable(f"LearnWorlds timeout on {path}") from exc
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                f"LearnWorlds API error: {exc.response.status_code} on {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"LearnWorlds unreachable: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(f"LearnWorlds returned invalid JSON on {path}") from exc
        if not isinstance(body, dict):
            raise SourceUnavailable(f"LearnWorlds returned unexpected payload on {path}")
        return body

    @staticmethod
    def _rows(body: dict[str, Any]) -> list[dict[str, Any]]:
        data = body.get("data")
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict)]

    # ── User lookup ──────────────────────────────────────

    def _resolve_user_id(self, principal: Principal, deadline: float) -> Optional[str]:
        if principal.external_id:
            return principal.external_id
        email = principal.email.strip().lower()
        if not email:
            return None

        # The users endpoint does not filter by email reliably; page through.
        page = 1
        while page <= self.settings.user_lookup_max_pages:
            body = self._get("/v2/users", deadline, params={"page": page})
            for user in self._rows(body):
                if str(user.get("email", "")).strip().lower() == email and user.get("id"):
                    return str(user["id"])
            meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
            try:
                total_pages = int(meta.get("total_pages") or 1)
            except (TypeError, ValueError):
                total_pages = 1
            if page >= total_pages:
                break
            page += 1
        logger.info(f"No LearnWorlds user found for {email}")
        return None

    # ── EnrollmentProvider ───────────────────────────────

    def _user_courses(self, user_id: str, deadline: float) -> list[dict[str, Any]]:
        return self._rows(self._get(f"/v2/users/{user_id}/courses", deadline))

    @staticmethod
    def _course_of(row: dict[str, Any]) -> dict[str, Any]:
        course = row.get("course")
        return course if isinstance(course, dict) and course.get("id") else {}

    def get_accessible_course_ids(self, principal):
        deadline = self._deadline()
        user_id = self._resolve_user_id(principal, deadline)
        if user_id is None:
            return []
        try:
            rows = self._user_courses(user_id, deadline)
            return [str(self._course_of(r)["id"]) for r in rows if self._course_of(r)]
        except SourceUnavailable as exc:
            logger.warning(f"Course access lookup failed, trying products: {exc}")
            body = self._get(f"/v2/users/{user_id}/products", deadline)
            return [
                str(p["product_id"]) for p in self._rows(body)
                if p.get("product_type") == "course" and p.get("product_id")
            ]

    def get_course_completion_progress(self, principal):
        deadline = self._deadline()
        user_id = self._resolve_user_id(principal, deadline)
        if user_id is None:
            return []
        result: list[CourseProgress] = []
        for row in self._user_courses(user_id, deadline):
            course = self._course_of(row)
            if not course:
                continue
            completed = (
                row.get("completed") is True
                or row.get("is_completed") is True
                or row.get("pct_completed") == 100
            )
            result.append(CourseProgress(
                course_id=str(course["id"]),
                title=str(course.get("title") or "Unknown Course"),
                progress_score=_score(row),
                completed=completed,
                completed_at=_from_unix(row.get("completed_date")),
            ))
        return result


# ── TTL cache decorator ──────────────────────────────────


class CachedEnrollmentProvider(EnrollmentProvider):
    """
    Caches each principal's accessible course set for `ttl_seconds`.
    Failures are never cached and expired entries are never served, so the
    cache can only shorten latency, not widen access after the TTL.
    Expired entries are dropped whenever a fresh one is written.
    """

    def __init__(
        self,
        inner: EnrollmentProvider,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, list[str]]] = {}
        self._lock = threading.Lock()

    def get_accessible_course_ids(self, principal):
        now = self._clock()
        with self._lock:
            hit = self._cache.get(principal.id)
        if hit is not None and now - hit[0] < self.ttl_seconds:
            return list(hit[1])

        course_ids = self.inner.get_accessible_course_ids(principal)
        with self._lock:
            self._evict_expired(now)
            self._cache[principal.id] = (now, list(course_ids))
        return list(course_ids)

    def get_course_completion_progress(self, principal):
        return self.inner.get_course_completion_progress(principal)

    def invalidate(self, principal_id: str | None = None) -> None:
        with self._lock:
            if principal_id is None:
                self._cache.clear()
            else:
                self._cache.pop(principal_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _evict_expired(self, now: float) -> None:
        expired = [pid for pid, (at, _) in self._cache.items() if now - at >= self.ttl_seconds]
        for pid in expired:
            del self._cache[pid]
