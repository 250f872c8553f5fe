from fastapi import APIRouter, Request

from deelauto.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)

@router.get("/bunq")
def health_bunq(request: Request):
    """Configuration présente et contexte en cache (aucun appel à bunq)."""
    client = getattr(request.app.state, "bunq_client", None)
    if client is None:
        return {"configured": False, "ready": False, "missing": []}
    missing = client.config.missing()
    return {"configured": not missing, "ready": client.is_ready, "state": client.state, "missing": missing}
