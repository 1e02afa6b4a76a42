"""
Módulo de serviços - lógica de negócio.
"""

from circulation.services.fines import calculate_fine
from circulation.services.fulfillment import FulfillmentCoordinator
from circulation.services.loan import LoanService
from circulation.services.notification import NotificationTrigger
from circulation.services.reservation import ReservationService
from circulation.services.worker import FulfillmentWorker

__all__ = [
    "calculate_fine",
    "FulfillmentCoordinator",
    "LoanService",
    "NotificationTrigger",
    "ReservationService",
    "FulfillmentWorker",
]
