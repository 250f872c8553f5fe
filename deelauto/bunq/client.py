"""
Client bunq: poignée de main (installation, device, session, identité) puis demandes de paiement.

Cycle de vie d'une instance:
  UNINITIALIZED -> INSTALLING -> REGISTERING_DEVICE -> STARTING_SESSION -> FETCHING_IDENTITY -> READY
- Le contexte (tokens + ids) reste en mémoire pour la durée du process, jamais persisté.
- Un échec à n'importe quelle étape abandonne tout: aucun contexte partiel n'est conservé,
  un nouvel appel recommence depuis le début.
- ensure_ready() est protégé par un verrou: des requêtes concurrentes partagent une seule initialisation.
"""
import json
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from deelauto.billing.costs import round2, to_decimal
from deelauto.config import BunqConfig, load_bunq_config

from . import envelope
from .errors import BunqApiError, BunqConfigError, BunqDecodeError, BunqError, BunqHandshakeError, PaymentUrlMissingError
from .ip_lookup import lookup_public_ip
from .signing import load_private_key, sign_body

logger = logging.getLogger(__name__)

# États de la poignée de main
UNINITIALIZED = "UNINITIALIZED"
INSTALLING = "INSTALLING"
REGISTERING_DEVICE = "REGISTERING_DEVICE"
STARTING_SESSION = "STARTING_SESSION"
FETCHING_IDENTITY = "FETCHING_IDENTITY"
READY = "READY"

CURRENCY = "EUR"


@dataclass(frozen=True)
class BunqContext:
    installation_token: str
    session_token: str
    user_id: int
    monetary_account_id: int


@dataclass(frozen=True)
class PaymentRequestLink:
    payment_url: str
    request_id: int


def format_amount(amount: Any) -> str:
    """Montant au format bunq: exactement deux décimales ("12.50")."""
    return str(round2(to_decimal(amount)))


class BunqClient:
    def __init__(
        self,
        config: BunqConfig,
        http: Optional[httpx.Client] = None,
        ip_resolver: Optional[Callable[[], str]] = None,
    ):
        self.config = config
        self._http = http or httpx.Client(timeout=config.http_timeout)
        self._ip_resolver = ip_resolver
        self._context: Optional[BunqContext] = None
        self._lock = threading.Lock()
        self.state = UNINITIALIZED

    # ------------------------------------------------------------------ contexte
    @property
    def context(self) -> Optional[BunqContext]:
        return self._context

    @property
    def is_ready(self) -> bool:
        return self._context is not None

    def reset(self) -> None:
        """Oublie le contexte en cache (ex: session expirée)."""
        with self._lock:
            self._context = None
            self.state = UNINITIALIZED

    def ensure_ready(self) -> BunqContext:
        ctx = self._context
        if ctx is not None:
            return ctx
        with self._lock:
            ctx = self._context
            if ctx is None:
                ctx = self._initialize_locked()
            return ctx

    def initialize_context(self) -> BunqContext:
        """
        Exécute la poignée de main complète et met le contexte en cache.
        - Sous le verrou du client: jamais deux poignées de main simultanées.
        - BunqConfigError (secrets manquants) est levée telle quelle, avant tout appel réseau.
        - Toute autre erreur est enveloppée dans BunqHandshakeError avec le nom de l'étape.
        """
        with self._lock:
            return self._initialize_locked()

    def _initialize_locked(self) -> BunqContext:
        # Appelant: détient self._lock
        self.config.validate()
        self._context = None
        step = INSTALLING
        try:
            self.state = INSTALLING
            installation = self._create_installation()

            step = REGISTERING_DEVICE
            self.state = REGISTERING_DEVICE
            self._register_device(installation.token)

            step = STARTING_SESSION
            self.state = STARTING_SESSION
            session = self._start_session(installation.token)

            step = FETCHING_IDENTITY
            self.state = FETCHING_IDENTITY
            user_id = self._fetch_user_id(session.token)
        except BunqConfigError:
            self.state = UNINITIALIZED
            raise
        except (BunqError, httpx.HTTPError) as e:
            self.state = UNINITIALIZED
            logger.error("bunq.initialize_context failed step=%s error=%s", step, e)
            raise BunqHandshakeError(step, e) from e

        ctx = BunqContext(
            installation_token=installation.token,
            session_token=session.token,
            user_id=user_id,
            monetary_account_id=int(self.config.monetary_account_id),
        )
        self._context = ctx
        self.state = READY
        logger.info("bunq.initialize_context ready user_id=%s account_id=%s", user_id, self.config.monetary_account_id)
        return ctx

    # ------------------------------------------------------------------ étapes
    def _create_installation(self) -> envelope.InstallationResult:
        data = self._post("installation", "/v1/installation", {"client_public_key": self.config.client_public_key})
        return envelope.decode_installation(data)

    def _public_ip(self) -> str:
        if self._ip_resolver is not None:
            return self._ip_resolver()
        return lookup_public_ip(self._http, self.config.ip_lookup_services, self.config.ip_lookup_timeout)

    def _register_device(self, installation_token: str) -> Tuple[int, str]:
        ip = self._public_ip()
        payload = {
            "description": self.config.device_description,
            "secret": self.config.api_key,
            "permitted_ips": [ip],
        }
        data = self._post("device_registration", "/v1/device-server", payload, auth_token=installation_token)
        device_id = envelope.decode_created_id(data)
        logger.info("bunq.register_device ok device_id=%s ip=%s", device_id, ip)
        return device_id, ip

    def _start_session(self, installation_token: str) -> envelope.SessionResult:
        data = self._post(
            "session_start",
            "/v1/session-server",
            {"secret": self.config.api_key},
            auth_token=installation_token,
            sign=True,
        )
        return envelope.decode_session(data)

    def _fetch_user_id(self, session_token: str) -> int:
        data = self._get("fetch_identity", "/v1/user", auth_token=session_token)
        return envelope.decode_user_id(data)

    # ------------------------------------------------------------------ HTTP
    def _headers(self, auth_token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "User-Agent": self.config.user_agent,
            "X-Bunq-Client-Request-Id": uuid.uuid4().hex,
            "X-Bunq-Geolocation": "0 0 0 0 NL",
            "X-Bunq-Language": "en_US",
            "X-Bunq-Region": "nl_NL",
        }
        if auth_token:
            headers["X-Bunq-Client-Authentication"] = auth_token
        return headers

    def _post(self, step: str, path: str, payload: Dict[str, Any], auth_token: Optional[str] = None, sign: bool = False) -> Any:
        # Le corps signé doit être exactement celui envoyé
        body = json.dumps(payload).encode("utf-8")
        headers = self._headers(auth_token)
        if sign:
            headers["X-Bunq-Client-Signature"] = sign_body(body, load_private_key(self.config.private_key))
        resp = self._http.post(f"{self.config.base_url}{path}", content=body, headers=headers)
        return self._parse(step, resp)

    def _get(self, step: str, path: str, auth_token: Optional[str] = None) -> Any:
        resp = self._http.get(f"{self.config.base_url}{path}", headers=self._headers(auth_token))
        return self._parse(step, resp)

    def _parse(self, step: str, resp: httpx.Response) -> Any:
        if not resp.is_success:
            body = resp.text
            try:
                description = envelope.error_description(resp.json())
            except ValueError:
                description = None
            logger.warning("bunq.%s failed status=%s body=%s", step, resp.status_code, body[:500])
            if resp.status_code == 401 and self.state == READY:
                # Session expirée/révoquée: la prochaine demande refera la poignée de main
                self._context = None
                self.state = UNINITIALIZED
            message = f"{step} a échoué: HTTP {resp.status_code} - {description or body}"
            raise BunqApiError(step, resp.status_code, body, message)
        try:
            return resp.json()
        except ValueError as e:
            raise BunqDecodeError(f"{step}: réponse non JSON ({resp.text[:200]})") from e

    # ------------------------------------------------------------------ demandes de paiement
    def _inquiry_path(self, ctx: BunqContext, request_id: Optional[int] = None) -> str:
        path = f"/v1/user/{ctx.user_id}/monetary-account/{ctx.monetary_account_id}/request-inquiry"
        return f"{path}/{request_id}" if request_id is not None else path

    def get_request_inquiry(self, request_id: int) -> envelope.RequestInquiry:
        ctx = self.ensure_ready()
        data = self._get("get_request_inquiry", self._inquiry_path(ctx, request_id), auth_token=ctx.session_token)
        return envelope.decode_request_inquiry(data)

    def create_payment_request(
        self,
        amount: Any,
        description: str,
        counterparty_email: str,
        redirect_url: Optional[str] = None,
    ) -> PaymentRequestLink:
        """
        Crée une demande de paiement bunq.me adressée à counterparty_email.
        - POST request-inquiry ne renvoie que l'id: un second appel lit le lien de partage.
        - PaymentUrlMissingError si bunq ne fournit pas de lien (partage désactivé sur le compte).
        """
        ctx = self.ensure_ready()
        payload: Dict[str, Any] = {
            "amount_inquired": {"value": format_amount(amount), "currency": CURRENCY},
            "counterparty_alias": {"type": "EMAIL", "value": counterparty_email},
            "description": description,
            "allow_bunqme": True,
        }
        if redirect_url:
            payload["redirect_url"] = redirect_url
        data = self._post("create_request_inquiry", self._inquiry_path(ctx), payload, auth_token=ctx.session_token)
        request_id = envelope.decode_created_id(data)
        logger.info("bunq.create_payment_request created request_id=%s", request_id)

        inquiry = self.get_request_inquiry(request_id)
        if not inquiry.bunqme_share_url:
            raise PaymentUrlMissingError(f"Aucun lien bunq.me pour la demande {request_id}")
        return PaymentRequestLink(payment_url=inquiry.bunqme_share_url, request_id=request_id)

    def check_payment_request_status(self, request_id: int) -> envelope.RequestInquiry:
        return self.get_request_inquiry(int(request_id))

    # ------------------------------------------------------------------ enregistrement IP
    def register_server_ip(self) -> Dict[str, Any]:
        """
        Enregistre l'IP publique actuelle du serveur (installation + device-server).
        À lancer après un déploiement; ne touche pas au contexte en cache.
        """
        self.config.validate()
        installation = self._create_installation()
        device_id, ip = self._register_device(installation.token)
        return {
            "success": True,
            "ip_address": ip,
            "device_id": device_id,
            "message": f"IP {ip} enregistrée auprès de bunq",
        }

    def close(self) -> None:
        self._http.close()


def build_bunq_client(config: Optional[BunqConfig] = None, http: Optional[httpx.Client] = None) -> BunqClient:
    """Factory: construit le client à partir d'une configuration explicite (ou de l'environnement)."""
    return BunqClient(config or load_bunq_config(), http=http)
