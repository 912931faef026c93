# API routes
from panelpass.api.routes import health
from panelpass.api.routes import webhooks_paypal
from panelpass.api.routes import webhooks_paystack
from panelpass.api.routes import payments_verify
from panelpass.api.routes import payments_initialize
from panelpass.api.routes import subscription
from panelpass.api.routes import auth_daypass

__all__ = [
    "health",
    "webhooks_paypal",
    "webhooks_paystack",
    "payments_verify",
    "payments_initialize",
    "subscription",
    "auth_daypass",
]
