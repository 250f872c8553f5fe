"""
ASGI entrypoint: expose `app` pour les process managers (ex: uvicorn deelauto.asgi:app).
Toute la configuration FastAPI est centralisée dans deelauto.app_setup.
"""

from deelauto.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "deelauto.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
