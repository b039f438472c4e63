"""Customer lookup and quick-booking tools for the rental desk assistant.

The services behind these tools (customer search, booking history,
booking presets, the booking form) live outside this package; they are
reached through the small interfaces defined here.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from typing import Any, Callable, Literal, get_args

from pydantic import BaseModel

from fleetassist.capability import Capability
from fleetassist.context import Context
from fleetassist.state import SessionState
from fleetassist.tools import Tool, tool

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_SCORE = 70

BookingType = Literal["weekend", "week", "month", "custom"]
BOOKING_TYPES: tuple[str, ...] = get_args(BookingType)


class CustomerMatch(BaseModel):
    """One row returned by the customer search service."""

    id: str
    full_name: str
    phone: str | None = None
    email: str | None = None
    match_score: float = 0

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.full_name,
            "phone": self.phone,
            "email": self.email,
        }


class CustomerDirectory(ABC):
    @abstractmethod
    async def search_by_name(self, name: str) -> list[CustomerMatch]:
        """Return candidate customers, best match first."""
        ...


class BookingHistory(ABC):
    @abstractmethod
    async def smart_defaults(self, customer_id: str) -> dict | None:
        """Booking fields taken from the customer's most recent booking.

        Returns ``None`` when the customer has no booking history.
        """
        ...


class NoBookingHistory(BookingHistory):
    async def smart_defaults(self, customer_id: str) -> dict | None:
        return None


class BookingPresets(ABC):
    @abstractmethod
    async def apply_preset(self, booking_type: str, smart_defaults: dict | None) -> dict:
        """Build partial booking data for ``booking_type``."""
        ...


class StandardPresets(BookingPresets):
    """Date windows for the standard booking types.

    * ``weekend``: the coming Friday to Sunday
    * ``week``: tomorrow, for 7 days
    * ``month``: tomorrow, for 30 days
    * ``custom``: no dates; the caller supplies them

    Pickup and return happen at ``pickup_time`` unless the smart defaults
    carry a ``pickupTime`` of their own. Every other smart-default field
    (locations, vehicle class, ...) is copied onto the booking.

    Args:
        pickup_time: Default pickup time as ``HH:MM`` or ``HH:MM:SS``.
        clock: Returns the current local time. Injectable for tests.
    """

    durations = {"weekend": 2, "week": 7, "month": 30}

    def __init__(self, pickup_time: str = "10:00", clock: Callable[[], datetime] | None = None):
        self.pickup_time = pickup_time
        self._clock = clock or datetime.now

    async def apply_preset(self, booking_type: str, smart_defaults: dict | None) -> dict:
        if booking_type != "custom" and booking_type not in self.durations:
            raise ValueError(f"Unknown booking type '{booking_type}'")

        defaults = dict(smart_defaults or {})
        pickup_time = defaults.pop("pickupTime", None) or self.pickup_time
        booking: dict[str, Any] = {**defaults, "bookingType": booking_type}
        if booking_type == "custom":
            return booking

        at = time.fromisoformat(pickup_time)
        today = self._clock().replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
        if booking_type == "weekend":
            # 4 is Friday; a Friday asks for next week's weekend
            pickup = today + timedelta(days=(4 - today.weekday()) % 7 or 7)
        else:
            pickup = today + timedelta(days=1)
        ret = pickup + timedelta(days=self.durations[booking_type])

        booking["pickupDate"] = pickup.isoformat(timespec="minutes")
        booking["returnDate"] = ret.isoformat(timespec="minutes")
        return booking


class BookingCapability(Capability):
    """Tools that let the assistant find a customer and pre-fill a booking.

    Args:
        directory: Customer search service.
        presets: Builds booking data per booking type.
        history: Supplies smart defaults from a customer's last booking.
        on_booking_update: Receives the pre-filled booking. May be a plain
            function or a coroutine function.
    """

    def __init__(
        self,
        directory: CustomerDirectory,
        presets: BookingPresets | None = None,
        history: BookingHistory | None = None,
        on_booking_update: Callable[[dict], Any] | None = None,
    ):
        super().__init__("booking")
        self.directory = directory
        self.presets = presets or StandardPresets()
        self.history = history or NoBookingHistory()
        self.on_booking_update = on_booking_update

    def tools(self) -> list[Tool]:
        capability = self

        @tool
        async def search_customer_by_name(context: Context, name: str):
            """Search for a customer by their full name or partial name in the rental system.

            Args:
                name: Customer name to search for (full name or partial).
            """
            return await capability.search_customer(context.state, name)

        @tool
        async def create_quick_booking(
            context: Context,
            bookingType: BookingType,
            customerId: str,
            customerName: str,
            pickupDate: str | None = None,
            returnDate: str | None = None,
        ):
            """Create or pre-fill a booking with smart defaults based on booking type and customer history.

            Args:
                bookingType: Type of booking duration: weekend (Fri-Sun), week (7 days), month (30 days), or custom.
                customerId: Customer id from the search results.
                customerName: Customer full name for display purposes.
                pickupDate: ISO date for pickup; the preset is used when omitted.
                returnDate: ISO date for return; the preset is used when omitted.
            """
            return await capability.create_booking(
                context.state, bookingType, customerId, customerName,
                pickup_date=pickupDate, return_date=returnDate,
            )

        return [search_customer_by_name, create_quick_booking]

    async def search_customer(self, state: SessionState, name: str) -> dict:
        matches = await self.directory.search_by_name(name)
        if not matches:
            return {
                "error": "customer_not_found",
                "message": f"No customer found matching '{name}'.",
            }

        confident = [m for m in matches if m.match_score >= HIGH_CONFIDENCE_SCORE]
        candidates = confident or matches
        if len(candidates) > 1:
            return {
                "error": "ambiguous_customer",
                "message": f"Found {len(candidates)} customers matching '{name}'.",
                "options": [c.summary() for c in candidates],
            }

        customer = candidates[0]
        state.current_customer_id = customer.id
        state.current_customer_name = customer.full_name
        logger.info(f"Current customer set to {customer.id}")
        return {"success": True, "customer": customer.summary()}

    async def create_booking(
        self,
        state: SessionState,
        booking_type: str,
        customer_id: str,
        customer_name: str,
        pickup_date: str | None = None,
        return_date: str | None = None,
    ) -> dict:
        if booking_type not in BOOKING_TYPES:
            return {
                "error": "invalid_booking_type",
                "message": f"Unknown booking type '{booking_type}'.",
                "validTypes": list(BOOKING_TYPES),
            }
        if booking_type == "custom" and not (pickup_date and return_date):
            return {
                "error": "missing_dates",
                "message": "A custom booking needs both pickupDate and returnDate.",
            }

        history_customer = state.current_customer_id or customer_id
        smart_defaults = await self.history.smart_defaults(history_customer)
        booking = await self.presets.apply_preset(booking_type, smart_defaults)
        booking.update(customerId=customer_id, customerName=customer_name)
        if pickup_date:
            booking["pickupDate"] = pickup_date
        if return_date:
            booking["returnDate"] = return_date

        if self.on_booking_update is not None:
            outcome = self.on_booking_update(booking)
            if inspect.isawaitable(outcome):
                await outcome

        return {
            "success": True,
            "bookingType": booking_type,
            "customerName": customer_name,
            "pickupDate": booking.get("pickupDate"),
            "returnDate": booking.get("returnDate"),
            "hasHistory": smart_defaults is not None,
            "message": f"The usual {booking_type} booking for {customer_name} has been created.",
        }
