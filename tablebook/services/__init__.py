"""
Business logic services.
Contains service layer implementations for table booking and the order lifecycle.
"""

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .notification_service import NotificationDispatcher
from .order_service import OrderService
from .payment_service import PaymentGateway, PaymentSession, StripeCheckoutGateway
from .profile_service import ProfileService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "NotificationDispatcher",
    "OrderService",
    "PaymentGateway",
    "PaymentSession",
    "ProfileService",
    "StripeCheckoutGateway",
]
