"""
Décodage de l'enveloppe de réponse bunq.

bunq répond {"Response": [{"Id": {...}}, {"Token": {...}}, {"ServerPublicKey": {...}}]}:
une liste d'objets typés dont la position varie selon l'endpoint. On cherche donc
chaque objet par son nom de type, et toute forme inattendue lève BunqDecodeError.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import BunqDecodeError

USER_TYPES = ("UserPerson", "UserCompany", "UserApiKey", "UserPaymentServiceProvider")


@dataclass(frozen=True)
class InstallationResult:
    token: str
    server_public_key: Optional[str] = None


@dataclass(frozen=True)
class SessionResult:
    token: str
    user_id: Optional[int] = None


@dataclass(frozen=True)
class RequestInquiry:
    id: int
    status: str
    amount_value: Optional[str] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    bunqme_share_url: Optional[str] = None


def entries(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict) or not isinstance(payload.get("Response"), list):
        raise BunqDecodeError(f"Enveloppe bunq inattendue: {str(payload)[:200]}")
    return [e for e in payload["Response"] if isinstance(e, dict)]


def find_object(payload: Any, *type_names: str) -> Tuple[str, Dict[str, Any]]:
    """Premier objet dont le type figure dans type_names -> (type, contenu)."""
    seen = []
    for entry in entries(payload):
        for name, value in entry.items():
            seen.append(name)
            if name in type_names and isinstance(value, dict):
                return name, value
    raise BunqDecodeError(f"Objet {'/'.join(type_names)} absent de la réponse (types: {seen})")


def error_description(payload: Any) -> Optional[str]:
    """Message d'erreur bunq ({"Error": [{"error_description": ...}]}) si présent."""
    if isinstance(payload, dict) and isinstance(payload.get("Error"), list) and payload["Error"]:
        first = payload["Error"][0]
        if isinstance(first, dict):
            return first.get("error_description")
    return None


def _int_id(value: Dict[str, Any], what: str) -> int:
    try:
        return int(value["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise BunqDecodeError(f"Identifiant {what} invalide: {value}") from e


def decode_installation(payload: Any) -> InstallationResult:
    _, token = find_object(payload, "Token")
    if not token.get("token"):
        raise BunqDecodeError("Token d'installation absent de la réponse")
    server_key = None
    try:
        _, spk = find_object(payload, "ServerPublicKey")
        server_key = spk.get("server_public_key")
    except BunqDecodeError:
        pass
    return InstallationResult(token=token["token"], server_public_key=server_key)


def decode_created_id(payload: Any) -> int:
    _, value = find_object(payload, "Id")
    return _int_id(value, "créé")


def decode_session(payload: Any) -> SessionResult:
    _, token = find_object(payload, "Token")
    if not token.get("token"):
        raise BunqDecodeError("Token de session absent de la réponse")
    user_id = None
    try:
        _, user = find_object(payload, *USER_TYPES)
        user_id = _int_id(user, "utilisateur")
    except BunqDecodeError:
        pass
    return SessionResult(token=token["token"], user_id=user_id)


def decode_user_id(payload: Any) -> int:
    _, user = find_object(payload, *USER_TYPES)
    return _int_id(user, "utilisateur")


def decode_request_inquiry(payload: Any) -> RequestInquiry:
    _, inquiry = find_object(payload, "RequestInquiry")
    amount = inquiry.get("amount_inquired") or inquiry.get("amount") or {}
    return RequestInquiry(
        id=_int_id(inquiry, "RequestInquiry"),
        status=str(inquiry.get("status") or ""),
        amount_value=amount.get("value"),
        currency=amount.get("currency"),
        description=inquiry.get("description"),
        bunqme_share_url=inquiry.get("bunqme_share_url"),
    )
