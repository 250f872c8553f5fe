"""
Signature des requêtes bunq (RSA PKCS#1 v1.5 + SHA-256, encodée en base64).

La clé privée (BUNQ_PRIVATE_KEY_FOR_SIGNING) arrive selon l'hébergeur sous trois formes:
  1) PEM brut (avec de vrais retours à la ligne)
  2) PEM sur une ligne avec des séquences littérales "\\n"
  3) PEM encodé en base64
L'ordre de détection compte: les "\\n" littéraux sont traités avant de tenter le base64.
"""
import base64
import binascii
from typing import Any, Dict, Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import BunqConfigError

PEM_HEADER = "-----BEGIN"


def normalize_private_key(raw: str) -> str:
    """Retourne la clé au format PEM multi-lignes, quelle que soit sa forme d'origine."""
    key = (raw or "").strip()
    if not key:
        raise BunqConfigError("BUNQ_PRIVATE_KEY_FOR_SIGNING manquant")
    if "\\n" in key:
        return key.replace("\\n", "\n")
    if key.startswith(PEM_HEADER):
        return key
    try:
        decoded = base64.b64decode(key, validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise BunqConfigError(f"Clé privée illisible (ni PEM ni base64): {e}") from e
    if not decoded.startswith(PEM_HEADER):
        raise BunqConfigError("Clé privée base64 décodée mais sans en-tête PEM")
    return decoded.replace("\\n", "\n")


def load_private_key(raw: str) -> rsa.RSAPrivateKey:
    pem = normalize_private_key(raw)
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise BunqConfigError(f"Clé privée PEM invalide: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise BunqConfigError("La clé privée bunq doit être une clé RSA")
    return key


def sign_body(body: Union[bytes, str], private_key: Union[str, rsa.RSAPrivateKey]) -> str:
    """
    Signe le corps exact envoyé (octets JSON) et renvoie la signature base64.
    - private_key: clé chargée ou chaîne brute (normalisée au passage)
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    key = private_key if isinstance(private_key, rsa.RSAPrivateKey) else load_private_key(private_key)
    signature = key.sign(body, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def _try_sign(pem: str) -> Dict[str, Any]:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
        key.sign(b"test data", padding.PKCS1v15(), hashes.SHA256())
        return {"success": True}
    except Exception as e:
        return {"success": False, "error": str(e)}


def analyze_private_key(raw: str) -> Dict[str, Any]:
    """
    Diagnostic de format de la clé (endpoint admin): quelle transformation rend la clé utilisable.
    Ne renvoie jamais le contenu de la clé, seulement sa forme.
    """
    key = raw or ""
    analysis = {
        "length": len(key),
        "starts_with_pem_header": key.startswith(PEM_HEADER),
        "has_newlines": "\n" in key,
        "has_escaped_newlines": "\\n" in key,
        "line_count": len(key.split("\n")),
    }
    results: Dict[str, Dict[str, Any]] = {"as_is": _try_sign(key)}
    if "\\n" in key:
        results["with_newlines"] = _try_sign(key.replace("\\n", "\n"))
    else:
        results["with_newlines"] = {"skipped": "Aucun \\n littéral"}
    if "\n" not in key and not key.startswith(PEM_HEADER):
        try:
            results["base64_decoded"] = _try_sign(base64.b64decode(key).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            results["base64_decoded"] = {"success": False, "error": str(e)}
    else:
        results["base64_decoded"] = {"skipped": "Déjà au format PEM"}

    if results["as_is"].get("success"):
        recommendation = "La clé fonctionne telle quelle"
    elif results["with_newlines"].get("success"):
        recommendation = "Remplacer les \\n littéraux par de vrais retours à la ligne"
    elif results["base64_decoded"].get("success"):
        recommendation = "Décoder la clé depuis le base64"
    else:
        recommendation = "Format de clé non reconnu"
    return {"analysis": analysis, "results": results, "recommendation": recommendation}
