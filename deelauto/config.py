# deelauto.config
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du service deelauto.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase), sécurité cookies, CORS/hosts
- Paramètres de facturation (fuseau horaire des journées calendaires)
- Construit la configuration bunq (BunqConfig) injectée dans le client de paiement
"""

def _clean_env(v: Optional[str]) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
# Page vers laquelle bunq.me redirige après paiement
PAYMENT_REDIRECT_PATH = os.getenv("PAYMENT_REDIRECT_PATH", "/mijn/betalingen")

# Facturation: les plafonds journaliers suivent les journées calendaires de ce fuseau
BILLING_TIMEZONE = _clean_env(os.getenv("BILLING_TIMEZONE")) or "Europe/Amsterdam"

# Délai (secondes) entre deux appels bunq lors d'une synchronisation en masse
BUNQ_SYNC_DELAY_SECONDS = float(os.getenv("BUNQ_SYNC_DELAY_SECONDS", "0.5") or 0.5)

DEFAULT_BUNQ_BASE_URL = "https://api.bunq.com"
SANDBOX_BUNQ_BASE_URL = "https://public-api.sandbox.bunq.com"

DEFAULT_IP_LOOKUP_SERVICES: Tuple[str, ...] = (
    "https://api.ipify.org",
    "https://ifconfig.me/ip",
    "https://icanhazip.com",
    "https://ipecho.net/plain",
)


@dataclass(frozen=True)
class BunqConfig:
    """
    Configuration du client bunq, construite une seule fois au démarrage.
    - Les cinq secrets requis sont vérifiés par missing()/validate() avant tout appel réseau.
    - Les autres champs ont des valeurs par défaut raisonnables.
    """
    api_key: str = ""
    client_public_key: str = ""
    private_key: str = ""
    monetary_account_id: Optional[int] = None
    base_url: str = DEFAULT_BUNQ_BASE_URL
    device_description: str = "Deelauto Nijverhoek Payment System"
    user_agent: str = "deelauto-nijverhoek/1.0"
    http_timeout: float = 30.0
    ip_lookup_timeout: float = 5.0
    ip_lookup_services: Tuple[str, ...] = field(default=DEFAULT_IP_LOOKUP_SERVICES)

    def missing(self) -> list:
        """Noms des variables requises absentes (liste vide si complet)."""
        missing = []
        if not self.api_key:
            missing.append("BUNQ_API_KEY")
        if not self.client_public_key:
            missing.append("BUNQ_CLIENT_PUBLIC_KEY")
        if not self.private_key:
            missing.append("BUNQ_PRIVATE_KEY_FOR_SIGNING")
        if self.monetary_account_id is None:
            missing.append("BUNQ_MONETARY_ACCOUNT_ID")
        if not self.base_url:
            missing.append("BUNQ_API_BASE_URL")
        return missing

    def validate(self) -> None:
        from deelauto.bunq.errors import BunqConfigError

        missing = self.missing()
        if missing:
            raise BunqConfigError(f"Configuration bunq incomplète: {', '.join(missing)} manquant(s)")


def normalize_bunq_base_url(url: str) -> str:
    """
    Normalise l'URL de l'API bunq:
    - valeur vide => production (https://api.bunq.com)
    - corrige l'hôte sandbox erroné souvent copié (sandbox.public.api.bunq.com)
    - retire le slash final
    """
    url = _clean_env(url) or DEFAULT_BUNQ_BASE_URL
    if "sandbox.public.api.bunq.com" in url:
        url = SANDBOX_BUNQ_BASE_URL
    return url.rstrip("/")


def load_bunq_config() -> BunqConfig:
    """
    Lit les variables BUNQ_* de l'environnement et construit BunqConfig.
    - N'échoue pas si des valeurs manquent: la validation a lieu à l'initialisation du contexte.
    - BUNQ_MONETARY_ACCOUNT_ID non numérique est traité comme absent.
    """
    account_raw = _clean_env(os.getenv("BUNQ_MONETARY_ACCOUNT_ID"))
    try:
        account_id = int(account_raw) if account_raw else None
    except ValueError:
        account_id = None

    services_raw = _clean_env(os.getenv("BUNQ_IP_LOOKUP_SERVICES"))
    services = tuple(s.strip() for s in services_raw.split(",") if s.strip()) if services_raw else DEFAULT_IP_LOOKUP_SERVICES

    return BunqConfig(
        api_key=_clean_env(os.getenv("BUNQ_API_KEY")),
        client_public_key=_clean_env(os.getenv("BUNQ_CLIENT_PUBLIC_KEY")),
        private_key=_clean_env(os.getenv("BUNQ_PRIVATE_KEY_FOR_SIGNING")),
        monetary_account_id=account_id,
        base_url=normalize_bunq_base_url(os.getenv("BUNQ_API_BASE_URL") or ""),
        device_description=_clean_env(os.getenv("BUNQ_DEVICE_DESCRIPTION")) or "Deelauto Nijverhoek Payment System",
        http_timeout=float(os.getenv("BUNQ_HTTP_TIMEOUT", "30") or 30),
        ip_lookup_services=services,
    )
