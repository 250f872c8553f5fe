"""
Découverte de l'IP publique du serveur (nécessaire à l'enregistrement du device bunq).
- Services interrogés l'un après l'autre, le premier qui répond une IPv4 valide gagne.
- Chaque appel est borné par un timeout (5 s par défaut).
"""
import logging
import re
from typing import Iterable

import httpx

from .errors import IpLookupError

logger = logging.getLogger(__name__)

IPV4_PATTERN = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def is_ipv4(text: str) -> bool:
    m = IPV4_PATTERN.match((text or "").strip())
    return bool(m) and all(int(part) <= 255 for part in m.groups())


def lookup_public_ip(http: httpx.Client, services: Iterable[str], timeout: float = 5.0) -> str:
    failures = []
    for url in services:
        try:
            resp = http.get(url, timeout=timeout)
            resp.raise_for_status()
            candidate = resp.text.strip()
        except httpx.HTTPError as e:
            logger.warning("bunq.ip_lookup failed service=%s error=%s", url, e)
            failures.append(f"{url}: {e}")
            continue
        if is_ipv4(candidate):
            logger.info("bunq.ip_lookup ok service=%s ip=%s", url, candidate)
            return candidate
        logger.warning("bunq.ip_lookup invalid answer service=%s body=%r", url, candidate[:64])
        failures.append(f"{url}: réponse invalide")
    raise IpLookupError("Impossible de déterminer l'IP publique: " + "; ".join(failures or ["aucun service configuré"]))
