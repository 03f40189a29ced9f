"""
Session Decoder — the one place a session cookie becomes a Principal.

Cookie format: base64url(JSON) with keys
    email        (required)
    externalId   (optional, the LearnWorlds user id)
    role         (optional, "user" | "admin" | "super_admin")
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Optional

from skills_portal.models.enums import Role
from skills_portal.models.schemas import Principal

logger = logging.getLogger(__name__)


class SessionDecoder:
    """Normalises session cookies into `Principal(id, email, role, external_id)`."""

    def decode(self, cookie_value: Optional[str]) -> Optional[Principal]:
        if not cookie_value:
            return None
        try:
            padded = cookie_value + "=" * (-len(cookie_value) % 4)
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            logger.info(f"Rejected malformed session cookie: {exc}")
            return None

        if not isinstance(payload, dict):
            return None
        email = str(payload.get("email") or "").strip().lower()
        if not email:
            return None

        external_id = payload.get("externalId") or None
        try:
            role = Role(payload.get("role") or Role.USER.value)
        except ValueError:
            role = Role.USER

        return Principal(
            id=str(external_id or email),
            email=email,
            role=role,
            external_id=str(external_id) if external_id else None,
        )

    def encode(self, principal: Principal) -> str:
        payload = {"email": principal.email, "role": principal.role.value}
        if principal.external_id:
            payload["externalId"] = principal.external_id
        raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
