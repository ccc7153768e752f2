"""SQLAlchemy models for StayBook.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs. If you add a new model, import it in this file.
"""

from staybook.models.booking import BookedNight, Booking, BookingStatus
from staybook.models.coupon import Coupon, DiscountType, Redemption
from staybook.models.loyalty import LoyaltyReason, LoyaltyTransaction
from staybook.models.payout import Payout, PayoutStatus
from staybook.models.property import Property
from staybook.models.review import Review
from staybook.models.user import Role, User
from staybook.models.webhook_event import EventStatus, ProcessedWebhookEvent

__all__ = [
    "BookedNight",
    "Booking",
    "BookingStatus",
    "Coupon",
    "DiscountType",
    "EventStatus",
    "LoyaltyReason",
    "LoyaltyTransaction",
    "Payout",
    "PayoutStatus",
    "ProcessedWebhookEvent",
    "Property",
    "Redemption",
    "Review",
    "Role",
    "User",
]
