# Routers package
from . import appointments_router
from . import calendar_router
from . import notifications_router
from . import payments_router

__all__ = [
    "appointments_router",
    "calendar_router",
    "notifications_router",
    "payments_router",
]
