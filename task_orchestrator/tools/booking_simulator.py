"""
Simulated bookings for activities, accommodation and transport.

No reservation is made. Each booking is confirmed with the configured
probability and priced from a base cost per item type.
"""

import asyncio
import random
import string
from typing import Any, Literal

from pydantic import BaseModel, Field

from task_orchestrator.tools.base import BaseTool
from task_orchestrator.utils.helpers import parse_date, utc_now, utc_now_iso

BASE_COSTS = {"activity": 50, "accommodation": 100, "transport": 30}

CANCELLATION_POLICIES = {
    "activity": "Free cancellation up to 24 hours before the activity. "
    "No refund for no-shows.",
    "accommodation": "Free cancellation up to 48 hours before check-in. "
    "50% refund for cancellations within 48 hours.",
    "transport": "Tickets are non-refundable but can be rescheduled up to 6 hours "
    "before departure.",
}

RULE = "━" * 47


class BookingInput(BaseModel):
    item_type: Literal["activity", "accommodation", "transport"] = Field(
        alias="itemType"
    )
    item_id: str = Field(alias="itemId")
    item_name: str = Field(alias="itemName")
    date: str | None = None
    check_in_date: str | None = Field(default=None, alias="checkInDate")
    check_out_date: str | None = Field(default=None, alias="checkOutDate")
    guests: int = Field(default=1, ge=1, le=20)
    special_requests: str | None = Field(default=None, alias="specialRequests")
    contact_email: str | None = Field(default=None, alias="contactEmail")
    contact_phone: str | None = Field(default=None, alias="contactPhone")

    model_config = {"populate_by_name": True}


class BookingSimulatorTool(BaseTool):
    """Pretend to book an item and return a confirmation."""

    name = "book_activity"
    description = (
        "Simulate booking travel activities, accommodations, or transportation. "
        "Returns simulated confirmation."
    )
    args_schema = BookingInput

    def __init__(
        self,
        confirmation_rate: float = 0.9,
        min_delay: float = 0.5,
        max_delay: float = 1.5,
        rng: random.Random | None = None,
    ):
        self.confirmation_rate = confirmation_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    async def _run(self, args: BookingInput) -> dict[str, Any]:
        await asyncio.sleep(self.rng.uniform(self.min_delay, self.max_delay))
        return self.success(self.generate_result(args))

    def generate_result(self, args: BookingInput) -> dict[str, Any]:
        confirmed = self.rng.random() < self.confirmation_rate
        suffix = "".join(self.rng.choices(string.ascii_uppercase + string.digits, k=5))
        confirmation = (
            "".join(self.rng.choices(string.ascii_uppercase + string.digits, k=8))
            if confirmed
            else ""
        )
        return {
            "bookingId": f"BK-{int(utc_now().timestamp() * 1000)}-{suffix}",
            "confirmationNumber": confirmation,
            "itemType": args.item_type,
            "itemId": args.item_id,
            "itemName": args.item_name,
            "status": "confirmed" if confirmed else "failed",
            "date": args.date,
            "checkInDate": args.check_in_date,
            "checkOutDate": args.check_out_date,
            "guests": args.guests,
            "specialRequests": args.special_requests,
            "totalCost": self.calculate_cost(args),
            "currency": "INR",
            "cancellationPolicy": CANCELLATION_POLICIES.get(
                args.item_type, "Please contact provider for cancellation policy."
            ),
            "confirmationDetails": self._details(args, confirmed, confirmation),
            "timestamp": utc_now_iso(),
        }

    def calculate_cost(self, args: BookingInput) -> int:
        """Base cost scaled by guests (except rooms), nights and a random factor."""
        base = BASE_COSTS.get(args.item_type, 50)
        guests = 1 if args.item_type == "accommodation" else args.guests
        days = 1
        check_in = parse_date(args.check_in_date)
        check_out = parse_date(args.check_out_date)
        if check_in and check_out:
            days = max(1, (check_out - check_in).days)
        return round(base * guests * days * (0.5 + self.rng.random()))

    @staticmethod
    def _details(args: BookingInput, confirmed: bool, confirmation: str) -> str:
        lines = [RULE, "[SIMULATED BOOKING CONFIRMATION]", RULE, ""]
        if not confirmed:
            lines += [
                "BOOKING FAILED",
                "",
                "We were unable to complete your booking at this time.",
                "Please try again or choose an alternative.",
                "",
            ]
        else:
            lines += [
                "BOOKING CONFIRMED",
                "",
                f"Confirmation #: {confirmation}",
                "",
                "Booking Details:",
                f"  - {args.item_type.capitalize()}: {args.item_name}",
                f"  - Guests: {args.guests}",
            ]
            if args.date:
                lines.append(f"  - Date: {args.date}")
            if args.check_in_date:
                lines.append(f"  - Check-in: {args.check_in_date}")
            if args.check_out_date:
                lines.append(f"  - Check-out: {args.check_out_date}")
            if args.special_requests:
                lines.append(f"  - Special Requests: {args.special_requests}")
            lines.append("")
        lines += [
            RULE,
            "This is a SIMULATED booking for demonstration.",
            "No actual reservation has been made.",
            RULE,
        ]
        return "\n".join(lines)
