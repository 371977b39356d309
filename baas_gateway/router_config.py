# baas_gateway/router_config.py
"""
Router configuration for the gateway
Centralized router management separated from main.py
"""


def setup_routers(app):
    """Configure all application routers"""

    from .src.auth.routes import router as auth_router
    from .src.stripe.routes import router as stripe_router

    # Authentication and sessions
    app.include_router(auth_router, tags=["Authentication"])

    # Payments
    app.include_router(stripe_router, tags=["Stripe"])

    return app
