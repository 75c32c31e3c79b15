"""
Registre central des routers.
- API v1: catalogue, panier, checkout, paiements (webhook Stripe), mes cours, utilisateurs
- Health: health_router
"""
from fastapi import FastAPI
from backend.catalog import views as catalog_views
from backend.cart import views as cart_views
from backend.checkout import views as checkout_views
from backend.payments import views as payments_views
from backend.enrollments import views as enrollments_views
from backend.users.views import api_router as users_api_router
from backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l'application.
    - L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes).
    """
    # API v1
    app.include_router(catalog_views.router)
    app.include_router(cart_views.router)
    app.include_router(checkout_views.router)
    app.include_router(payments_views.router)
    app.include_router(enrollments_views.router)
    app.include_router(users_api_router)
    # Health & monitoring
    app.include_router(health_router)
