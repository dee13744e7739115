from fastapi import Depends, Request

from app.core.config import settings
from app.core.db import get_session
from app.core.errors import RateLimited
from app.services.appointment_service import ProviderLockRegistry
from app.services.rate_limiter import AdmissionGate, client_key

__all__ = ["get_session", "get_admission_gate", "get_provider_locks", "enforce_rate_limit"]


def get_admission_gate(request: Request) -> AdmissionGate:
    return request.app.state.admission_gate


def get_provider_locks(request: Request) -> ProviderLockRegistry:
    return request.app.state.provider_locks


async def enforce_rate_limit(
    request: Request,
    gate: AdmissionGate = Depends(get_admission_gate),
) -> str:
    """Deny the request with 429 once the client exhausts its attempts for this window."""
    client = client_key(request, settings.forwarded_trusted_hops)
    # Each endpoint keeps its own budget per client
    key = f"{request.url.path}:{client}"
    if not await gate.allow(key):
        raise RateLimited(retry_after=await gate.time_until_reset(key))
    return client
