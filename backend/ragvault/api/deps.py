"""Request-boundary dependencies: identity, tenant context, service object."""
import logging
from fastapi import Depends, Request

from ragvault.core.config import settings
from ragvault.core.tenancy import Identity, TenantContext, require_tenant
from ragvault.kb.service import KnowledgeBase

logger = logging.getLogger(__name__)


def get_identity(request: Request) -> Identity | None:
    """
    Resolve the authenticated identity of the request.

    An upstream auth middleware is expected to set ``request.state.identity``.
    Deployments behind a trusted auth gateway can instead enable
    ``TRUST_GATEWAY_HEADERS`` to read it from ``X-Auth-Subject`` and
    ``X-Auth-Org-Id``.
    """
    identity = getattr(request.state, "identity", None)
    if isinstance(identity, Identity):
        return identity
    if isinstance(identity, dict):
        return Identity(subject=identity.get("sub", ""), org_id=identity.get("org_id"))

    if settings.TRUST_GATEWAY_HEADERS:
        subject = request.headers.get("X-Auth-Subject")
        if subject:
            return Identity(subject=subject, org_id=request.headers.get("X-Auth-Org-Id"))

    return None


def get_tenant(identity: Identity | None = Depends(get_identity)) -> TenantContext:
    return require_tenant(identity)


def get_knowledge_base(request: Request) -> KnowledgeBase:
    return request.app.state.knowledge_base
