"""Model for encrypted per-user secrets (session cookies)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from jobmatch.security.crypto import EncryptedBlob

SecretStatus = Literal["active", "invalid", "blocked"]

LINKEDIN_COOKIE_KEY = "linkedin_cookie"


class StoredSecret(BaseModel):
    user_id: str
    key: str
    blob: EncryptedBlob
    status: SecretStatus = "active"
    last_tested_at: str | None = None
    updated_at: str
