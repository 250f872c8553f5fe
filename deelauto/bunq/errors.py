"""
Exceptions du client bunq.
- BunqConfigError: secrets manquants/invalides, levée avant tout appel réseau.
- BunqApiError: réponse HTTP non 2xx (étape, statut, corps conservés pour diagnostic).
- BunqHandshakeError: échec d'une étape de l'initialisation du contexte (enveloppe la cause).
- BunqDecodeError: enveloppe de réponse inattendue.
- IpLookupError: aucun service n'a pu donner l'IP publique.
- PaymentUrlMissingError: la demande créée n'a pas de lien bunq.me.
"""
from typing import Optional


class BunqError(Exception):
    pass


class BunqConfigError(BunqError):
    pass


class BunqApiError(BunqError):
    def __init__(self, step: str, status_code: int, body: str, message: Optional[str] = None):
        self.step = step
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"{step} a échoué: HTTP {status_code} - {body}")


class BunqHandshakeError(BunqError):
    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(f"Initialisation du contexte bunq échouée à l'étape {step}: {cause}")

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.cause, "status_code", None)


class BunqDecodeError(BunqError):
    pass


class IpLookupError(BunqError):
    pass


class PaymentUrlMissingError(BunqError):
    pass
