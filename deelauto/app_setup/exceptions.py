"""
Gestionnaires d'exceptions de l'application.
- HTTPException: corps JSON {"detail": ...} (API uniquement, pas de pages HTML).
- BunqConfigError: 503, le service de paiement n'est pas configuré.
- BunqError: 502, erreur renvoyée par bunq (étape et statut HTTP inclus si connus).
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from deelauto.bunq import BunqConfigError, BunqError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_json(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(BunqConfigError)
    async def bunq_config_error(request: Request, exc: BunqConfigError):
        logger.error("bunq configuration error path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(BunqError)
    async def bunq_error(request: Request, exc: BunqError):
        logger.warning("bunq error path=%s error=%s", request.url.path, exc)
        content = {"detail": str(exc)}
        step = getattr(exc, "step", None)
        if step:
            content["step"] = step
            content["status_code"] = getattr(exc, "status_code", None)
        return JSONResponse(status_code=502, content=content)
