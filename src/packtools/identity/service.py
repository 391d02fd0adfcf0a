"""Identity request resolution and the offline local identity service."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import timedelta
from typing import Protocol
from uuid import uuid4

from packtools.errors import CancellationToken
from packtools.identity.cache import IdentityCache, utc_now
from packtools.identity.models import (
    IdentityPrincipal,
    IdentityRequest,
    IdentityResult,
    IdentityToken,
)
from packtools.models import PackagingProject, PackagingRequest, resolve_setting

_LOGGER = logging.getLogger(__name__)

_IDENTITY_PREFIX = "identity."
_RESERVED_PARAMETERS = frozenset({"provider", "scopes", "requiremfa"})
_SCOPE_SPLIT = re.compile(r"[,; ]+")


class IdentityService(Protocol):
    """Acquires identities for packaging runs."""

    def acquire(
        self,
        request: IdentityRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> IdentityResult:
        """Acquire identity for one request.

        Args:
            request: Identity acquisition request.
            cancellation: Optional cancellation token.
        """


def build_identity_request(
    project: PackagingProject, request: PackagingRequest
) -> IdentityRequest:
    """Resolve identity acquisition settings for one packaging run.

    Args:
        project: Loaded project.
        request: Packaging request.

    Returns:
        Identity request with provider, scopes, MFA flag, and parameters.
    """
    provider = resolve_setting(project, request, "identity.provider") or "local"
    raw_scopes = resolve_setting(project, request, "identity.scopes") or ""
    scopes = tuple(token for token in _SCOPE_SPLIT.split(raw_scopes) if token)
    raw_mfa = resolve_setting(project, request, "identity.requireMfa") or ""
    platform_config = project.platform_config(request.platform)
    parameters: dict[str, str] = {}
    for source in (
        project.metadata,
        platform_config.properties if platform_config is not None else None,
        request.properties,
    ):
        _harvest_parameters(source, parameters)
    return IdentityRequest(
        provider=provider.strip() or "local",
        scopes=scopes or ("packaging.run",),
        require_mfa=raw_mfa.strip().lower() == "true",
        parameters=parameters,
    )


def _harvest_parameters(
    source: Mapping[str, str] | None, parameters: dict[str, str]
) -> None:
    """Copy ``identity.*`` provider parameters, later sources winning.

    Args:
        source: Settings mapping to scan.
        parameters: Destination mapping.
    """
    if not source:
        return
    for key, value in source.items():
        if not key.lower().startswith(_IDENTITY_PREFIX):
            continue
        name = key[len(_IDENTITY_PREFIX) :]
        if name.lower() in _RESERVED_PARAMETERS:
            continue
        parameters[name] = value


class LocalIdentityService:
    """Offline identity service yielding the service-account principal."""

    def __init__(
        self,
        *,
        cache: IdentityCache | None = None,
        token_lifetime: timedelta | None = None,
    ) -> None:
        """Initialize service.

        Args:
            cache: Optional cache consulted before issuing a new identity.
            token_lifetime: When set, issue an opaque local access token.
        """
        self._cache = cache
        self._token_lifetime = token_lifetime

    def acquire(
        self,
        request: IdentityRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> IdentityResult:
        """Return service-account identity annotated with request claims.

        Args:
            request: Identity acquisition request.
            cancellation: Optional cancellation token.

        Returns:
            Identity result.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        cache_key = f"{request.provider.lower()}:{' '.join(sorted(request.scopes))}"
        if self._cache is not None:
            cached = self._cache.try_get(cache_key, request.scopes)
            if cached is not None:
                _LOGGER.debug("identity cache hit for %s", cache_key)
                return cached

        base = IdentityPrincipal.service_account()
        principal = IdentityPrincipal.model_validate(
            {
                **base.model_dump(),
                "claims": {
                    **base.claims,
                    "provider": request.provider,
                    "scopes": " ".join(request.scopes),
                },
            }
        )
        access_token = None
        if self._token_lifetime is not None:
            access_token = IdentityToken(
                value=uuid4().hex,
                expires_at=utc_now() + self._token_lifetime,
                scopes=frozenset(request.scopes),
            )
        result = IdentityResult(principal=principal, access_token=access_token)
        if self._cache is not None and access_token is not None:
            self._cache.set(cache_key, result)
        return result
