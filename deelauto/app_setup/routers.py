"""
Registre central des routers.
- API v1 membre: reservations, payments
- Admin: import, paiements, diagnostics bunq
- Health
"""
from fastapi import FastAPI
from deelauto.reservations import views as reservations_views
from deelauto.payments import views as payments_views
from deelauto.admin.views import router as admin_router
from deelauto.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(reservations_views.router)
    app.include_router(payments_views.router)
    # Admin
    app.include_router(admin_router)
    # Health & monitoring
    app.include_router(health_router)
