from fastapi import Request

from deelauto.bunq import BunqClient, build_bunq_client

def get_bunq_client(request: Request) -> BunqClient:
    """Client bunq unique de l'application (construit par le lifespan, sinon à la première demande)."""
    client = getattr(request.app.state, "bunq_client", None)
    if client is None:
        client = build_bunq_client()
        request.app.state.bunq_client = client
    return client
