"""
API v1 package initialization.
"""

from atelier.api.v1.admin_measurement_orders import router as admin_measurement_orders_router
from atelier.api.v1.measurement_orders import router as measurement_orders_router
from atelier.api.v1.payments import router as payments_router

__all__ = [
    "admin_measurement_orders_router",
    "measurement_orders_router",
    "payments_router",
]
