"""Identity public surface."""

from packtools.identity.cache import IdentityCache
from packtools.identity.context import IdentityContextAccessor
from packtools.identity.models import (
    IdentityPrincipal,
    IdentityRequest,
    IdentityResult,
    IdentityToken,
)
from packtools.identity.service import (
    IdentityService,
    LocalIdentityService,
    build_identity_request,
)

__all__ = [
    "IdentityCache",
    "IdentityContextAccessor",
    "IdentityPrincipal",
    "IdentityRequest",
    "IdentityResult",
    "IdentityService",
    "IdentityToken",
    "LocalIdentityService",
    "build_identity_request",
]
