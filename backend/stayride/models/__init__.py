"""SQLAlchemy models for the booking engine.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` or migrations run. If you add a new model, import it
in this file.
"""

from stayride.models.booking import Booking
from stayride.models.listing import BlockedRange, Listing
from stayride.models.notification import GatewayCallbackLog, Notification, OutboxEvent
from stayride.models.payout import DriverPayout, Payout
from stayride.models.promo_code import PromoCode
from stayride.models.trip import Trip, TripPassenger
from stayride.models.user import User

__all__ = [
    "BlockedRange",
    "Booking",
    "DriverPayout",
    "GatewayCallbackLog",
    "Listing",
    "Notification",
    "OutboxEvent",
    "Payout",
    "PromoCode",
    "Trip",
    "TripPassenger",
    "User",
]
