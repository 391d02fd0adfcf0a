"""Identity principal, token, and acquisition request models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from packtools.models import EMPTY_MAP, StringMap

SERVICE_ACCOUNT_ID = "service-account"
SERVICE_ACCOUNT_NAME = "Packtools Service"


class IdentityPrincipal(BaseModel):
    """Authenticated user or service account."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    display_name: str
    email: str | None = None
    roles: frozenset[str] = frozenset()
    claims: StringMap = EMPTY_MAP

    @classmethod
    def service_account(cls) -> IdentityPrincipal:
        """Return the offline service-account principal."""
        return cls(id=SERVICE_ACCOUNT_ID, display_name=SERVICE_ACCOUNT_NAME)


class IdentityToken(BaseModel):
    """Security token with expiration metadata."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    value: str
    expires_at: datetime
    scopes: frozenset[str] = frozenset()


class IdentityResult(BaseModel):
    """Outcome of one identity acquisition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    principal: IdentityPrincipal
    access_token: IdentityToken | None = None
    refresh_token: IdentityToken | None = None


class IdentityRequest(BaseModel):
    """Identity acquisition request resolved from project settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: str = "local"
    scopes: tuple[str, ...] = ("packaging.run",)
    require_mfa: bool = False
    parameters: StringMap = EMPTY_MAP
