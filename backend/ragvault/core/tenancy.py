"""Tenant context resolution.

The caller's tenant is derived once, at the request boundary, from the
authenticated identity. The resulting ``TenantContext`` is immutable and is
passed explicitly into every knowledge base operation; nothing below the
API layer looks at the raw identity again.
"""

import logging
from pydantic import BaseModel, ConfigDict, Field

from ragvault.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """Authenticated principal as presented by the auth layer."""
    model_config = ConfigDict(frozen=True)

    subject: str
    org_id: str | None = None


class TenantContext(BaseModel):
    """The namespace every read and write of a request is scoped to."""
    model_config = ConfigDict(frozen=True)

    namespace: str = Field(min_length=1)
    subject: str | None = None


def require_tenant(identity: Identity | None) -> TenantContext:
    """
    Resolve the tenant context for an identity.

    Raises:
        UnauthorizedError: If there is no identity, or it carries no organization claim
    """
    if identity is None:
        raise UnauthorizedError("Identity not found")

    org_id = (identity.org_id or "").strip()
    if not org_id:
        logger.warning(f"Identity {identity.subject} has no organization claim")
        raise UnauthorizedError("Organization not found")

    return TenantContext(namespace=org_id, subject=identity.subject)
