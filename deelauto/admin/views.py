import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from deelauto.bunq import BunqClient, BunqConfigError, BunqError, analyze_private_key
from deelauto.payments import service as payments_service
from deelauto.payments.models import PaymentCreate, PaymentPaidUpdate, SyncRequest
from deelauto.payments.sync import sync_all_bunq_statuses, update_payment_bunq_status
from deelauto.reservations import service as reservations_service
from deelauto.reservations.models import ReservationImportRequest
from deelauto.utils.dependencies import get_bunq_client
from deelauto.utils.security import require_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])

TEST_INIT_RETRY_DELAY_SECONDS = 1

# module deelauto.admin.views

# --- Réservations ---
@router.post("/reservations/import")
def import_reservations(body: ReservationImportRequest, user: dict = Depends(require_admin)):
    """
    Enregistre un lot de réservations (export du système de réservation).
    - total_costs est calculé ici, une fois pour toutes
    - 400 avec la liste des lignes invalides: rien n'est enregistré
    """
    try:
        result = reservations_service.import_reservations(body.reservations)
    except reservations_service.ReservationImportError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        logger.exception("admin.import_reservations failed")
        raise HTTPException(status_code=500, detail=str(e))
    return JSONResponse(result, status_code=201)

# --- Paiements ---
@router.get("/payments")
def admin_list_payments(user: dict = Depends(require_admin)):
    return {"items": payments_service.list_payments()}

@router.post("/payments")
def admin_create_payment(body: PaymentCreate, user: dict = Depends(require_admin)):
    payment = payments_service.create_payment(body)
    return JSONResponse({"payment": payment}, status_code=201)

@router.get("/payments/{payment_id}")
def admin_get_payment(payment_id: str, user: dict = Depends(require_admin)):
    return {"payment": payments_service.get_payment(payment_id)}

@router.patch("/payments/{payment_id}/paid")
def admin_mark_paid(payment_id: str, body: PaymentPaidUpdate, user: dict = Depends(require_admin)):
    return {"payment": payments_service.mark_paid(payment_id, body.paid_at)}

@router.post("/payments/sync-bunq-status")
def admin_sync_bunq_status(
    body: Optional[SyncRequest] = None,
    user: dict = Depends(require_admin),
    client: BunqClient = Depends(get_bunq_client),
):
    """
    Sans corps: synchronise tous les paiements non finalisés; renvoie {updated_count, errors}.
    Avec {"payment_id": ...}: ce paiement seulement; renvoie {payment_id, updated, bunq_status, paid_at}.
    """
    if body is None or not body.payment_id:
        return sync_all_bunq_statuses(client)
    payment = payments_service.get_payment(body.payment_id)
    if not payment.get("bunq_request_id"):
        raise HTTPException(status_code=400, detail="Paiement sans demande bunq")
    try:
        updated = update_payment_bunq_status(client, payment)
    except BunqConfigError:
        raise
    except BunqError as e:
        logger.warning("admin.sync_bunq_status failed payment_id=%s error=%s", body.payment_id, e)
        raise HTTPException(status_code=502, detail=str(e))
    except RuntimeError as e:
        logger.exception("admin.sync_bunq_status write failed payment_id=%s", body.payment_id)
        raise HTTPException(status_code=500, detail=str(e))
    current = payments_service.get_payment(body.payment_id) if updated else payment
    return {
        "payment_id": body.payment_id,
        "updated": updated,
        "bunq_status": current.get("bunq_status"),
        "paid_at": current.get("paid_at"),
    }

# --- bunq ---
@router.post("/bunq/register-ip")
def admin_register_ip(user: dict = Depends(require_admin), client: BunqClient = Depends(get_bunq_client)):
    """Enregistre l'IP publique du serveur chez bunq (à lancer après un déploiement)."""
    try:
        return client.register_server_ip()
    except BunqConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BunqError as e:
        logger.warning("admin.bunq.register_ip failed error=%s", e)
        return JSONResponse({"success": False, "ip_address": None, "message": str(e)}, status_code=502)

@router.post("/bunq/test-init")
def admin_test_init(
    retries: int = Query(default=1, ge=1, le=5),
    user: dict = Depends(require_admin),
    client: BunqClient = Depends(get_bunq_client),
):
    """
    Diagnostic: relance la poignée de main complète (jusqu'à `retries` tentatives).
    Renvoie l'état obtenu et les erreurs de chaque tentative; aucun secret n'est renvoyé.
    """
    attempts: List[Dict[str, Any]] = []
    for attempt in range(1, retries + 1):
        try:
            ctx = client.initialize_context()
            return {
                "success": True,
                "attempts": attempts + [{"attempt": attempt, "success": True}],
                "user_id": ctx.user_id,
                "monetary_account_id": ctx.monetary_account_id,
            }
        except BunqConfigError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except BunqError as e:
            attempts.append({
                "attempt": attempt,
                "success": False,
                "step": getattr(e, "step", None),
                "status_code": getattr(e, "status_code", None),
                "error": str(e),
            })
            if attempt < retries:
                time.sleep(TEST_INIT_RETRY_DELAY_SECONDS)
    return JSONResponse({"success": False, "attempts": attempts}, status_code=502)

@router.get("/bunq/private-key")
def admin_analyze_private_key(user: dict = Depends(require_admin), client: BunqClient = Depends(get_bunq_client)):
    """Analyse le format de BUNQ_PRIVATE_KEY_FOR_SIGNING (forme seulement, jamais le contenu)."""
    return analyze_private_key(client.config.private_key)
