"""
Cancellation Penalty Policy
===========================

Credibility
-----------
* Driver: ``late_penalty`` (5) if departure is less than
  ``late_window_hours`` (3) away, else ``early_penalty`` (2).
* Participant: a monetary penalty of ``share_fare x fare_rate`` (25 %),
  rounded half-up to whole currency units, applies inside the late
  window.  The credibility decrement is ``late_penalty`` when that
  monetary penalty is positive, else ``early_penalty``.

The monetary figure is informational only: it is reported to the caller
and never settled or folded into the credibility score.

Complexity: O(1).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .enums import CancellerRole
from .fares import to_decimal

WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class PenaltyAssessment:
    role: CancellerRole
    hours_to_departure: float
    late: bool
    credibility_penalty: float
    fare_penalty: Decimal | None = None  # participants only


def hours_until(departs_at: datetime, now: datetime) -> float:
    """Signed hours from *now* to *departs_at* (negative once departed)."""
    return (departs_at - now).total_seconds() / 3600


class CancellationPolicy:
    def __init__(
        self,
        late_window_hours: float = 3.0,
        late_penalty: float = 5.0,
        early_penalty: float = 2.0,
        fare_rate: Decimal | float | str = Decimal("0.25"),
    ):
        self.late_window_hours = late_window_hours
        self.late_penalty = late_penalty
        self.early_penalty = early_penalty
        self.fare_rate = to_decimal(fare_rate)

    def is_late(self, hours: float) -> bool:
        return hours < self.late_window_hours

    def for_driver(self, departs_at: datetime, now: datetime) -> PenaltyAssessment:
        hours = hours_until(departs_at, now)
        late = self.is_late(hours)
        return PenaltyAssessment(
            role=CancellerRole.DRIVER,
            hours_to_departure=hours,
            late=late,
            credibility_penalty=self.late_penalty if late else self.early_penalty,
        )

    def for_participant(
        self,
        departs_at: datetime,
        now: datetime,
        share_fare: Decimal | float | str,
    ) -> PenaltyAssessment:
        hours = hours_until(departs_at, now)
        late = self.is_late(hours)
        fare_penalty = Decimal("0")
        if late:
            raw = to_decimal(share_fare) * self.fare_rate
            fare_penalty = max(
                Decimal("0"), raw.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
            )
        return PenaltyAssessment(
            role=CancellerRole.PARTICIPANT,
            hours_to_departure=hours,
            late=late,
            credibility_penalty=(
                self.late_penalty if fare_penalty > 0 else self.early_penalty
            ),
            fare_penalty=fare_penalty,
        )
