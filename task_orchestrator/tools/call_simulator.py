"""
Simulated pharmacy phone calls.

No real call is placed. The outcome is drawn from fixed odds: 15% no answer,
10% busy, 20% answered but out of stock, 55% in stock.
"""

import asyncio
import random
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from task_orchestrator.tools.base import BaseTool
from task_orchestrator.utils.helpers import utc_now, utc_now_iso

RULE = "━" * 47

ALTERNATIVES = [
    "We might get stock tomorrow",
    "You could try our other branch nearby",
    "We have a similar medicine if you're interested",
]

CALL_NOTES = {
    "no_answer": "Call not answered. Consider trying again later.",
    "busy": "Line was busy. May be worth trying again.",
    "available": "Medicine is in stock and ready for pickup.",
    "unavailable": "Medicine not currently in stock. May need to try other pharmacies.",
}


class CallSimulatorInput(BaseModel):
    pharmacy_id: str = Field(alias="pharmacyId")
    pharmacy_name: str = Field(alias="pharmacyName")
    phone_number: str = Field(default="", alias="phoneNumber")
    medicine_name: str = Field(alias="medicineName")
    quantity: int = Field(default=1, ge=1)

    model_config = {"populate_by_name": True}


def draw_outcome(roll: float) -> tuple[str, str]:
    """Map a uniform roll in [0, 1) to (call status, availability)."""
    if roll < 0.15:
        return "no_answer", "unknown"
    if roll < 0.25:
        return "busy", "unknown"
    if roll < 0.45:
        return "success", "unavailable"
    return "success", "available"


class CallSimulatorTool(BaseTool):
    """Pretend to call a pharmacy and ask about stock."""

    name = "call_pharmacy"
    description = (
        "Simulate calling a pharmacy to check medicine availability. Returns "
        "simulated call results with transcript."
    )
    args_schema = CallSimulatorInput

    def __init__(
        self,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        rng: random.Random | None = None,
    ):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    async def _run(self, args: CallSimulatorInput) -> dict[str, Any]:
        await asyncio.sleep(self.rng.uniform(self.min_delay, self.max_delay))
        return self.success(self.generate_result(args))

    def generate_result(self, args: CallSimulatorInput) -> dict[str, Any]:
        status, availability = draw_outcome(self.rng.random())
        available = availability == "available"

        if status in ("no_answer", "busy"):
            duration = self.rng.randint(5, 14)
        else:
            duration = self.rng.randint(30, 89)
        price = self.rng.randint(50, 349) if available else None

        return {
            "pharmacyId": args.pharmacy_id,
            "pharmacyName": args.pharmacy_name,
            "phoneNumber": args.phone_number,
            "medicineName": args.medicine_name,
            "status": status,
            "availability": availability,
            "price": price,
            "quantity": args.quantity if available else None,
            "estimatedPickupTime": self._pickup_time() if available else None,
            "notes": CALL_NOTES[status if status != "success" else availability],
            "transcript": self._transcript(args, status, availability, price),
            "callDuration": duration,
            "timestamp": utc_now_iso(),
        }

    def _pickup_time(self) -> str:
        in_an_hour = (utc_now() + timedelta(hours=1)).strftime("%H:%M")
        return self.rng.choice(
            [
                "Ready now",
                "Ready in 15 minutes",
                "Ready in 30 minutes",
                f"Ready by {in_an_hour}",
            ]
        )

    def _transcript(
        self,
        args: CallSimulatorInput,
        status: str,
        availability: str,
        price: int | None,
    ) -> str:
        name = args.pharmacy_name
        medicine = args.medicine_name
        lines = [
            RULE,
            "[SIMULATED CALL TRANSCRIPT]",
            f"Pharmacy: {name}",
            f"Phone: {args.phone_number}",
            f"Time: {datetime.now().strftime('%H:%M:%S')}",
            RULE,
            "",
        ]
        greeting = f"Pharmacy: Good day! Thank you for calling {name}. How may I help you?"
        ask = f"Customer: Hi, I'm looking for {medicine}. Do you have it in stock?"

        if status == "no_answer":
            lines += ["*Ring... Ring... Ring...*", "", "[Call not answered]", ""]
        elif status == "busy":
            lines += ["*Busy tone*", "", "[Line was busy, please try again later]", ""]
        elif availability == "available":
            lines += [
                greeting,
                ask,
                f"Pharmacy: Let me check... Yes, we do have {medicine} available.",
                "Customer: Great! How much does it cost?",
                f"Pharmacy: The price is ₹{price} for the standard pack.",
                "Customer: Can I pick it up today?",
                "Pharmacy: Absolutely! We're open until 9 PM.",
                "",
            ]
        else:
            lines += [
                greeting,
                ask,
                f"Pharmacy: I'm sorry, we're currently out of stock for {medicine}.",
                "Customer: Any idea when you'll have it?",
                f"Pharmacy: {self.rng.choice(ALTERNATIVES)}.",
                "",
            ]

        lines += [
            RULE,
            "This is a SIMULATED transcript for demonstration.",
            "Please confirm availability directly with the pharmacy.",
            RULE,
        ]
        return "\n".join(lines)
