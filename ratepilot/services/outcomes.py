"""Per-item outcomes collected into batch reports."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class ItemOutcome:
    status: OutcomeStatus
    stay_date: date | str | None
    room_type_id: str | None = None
    rate: Decimal | None = None
    reason: str | None = None
    job_reference_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "stay_date": self.stay_date.isoformat() if isinstance(self.stay_date, date) else self.stay_date,
            "room_type_id": self.room_type_id,
            "rate": float(self.rate) if self.rate is not None else None,
            "reason": self.reason,
            "job_reference_id": self.job_reference_id,
        }


@dataclass
class BatchReport:
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> ItemOutcome:
        self.outcomes.append(outcome)
        return outcome

    def extend(self, other: "BatchReport") -> None:
        self.outcomes.extend(other.outcomes)

    def _with(self, status: OutcomeStatus) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def applied(self) -> list[ItemOutcome]:
        return self._with(OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> list[ItemOutcome]:
        return self._with(OutcomeStatus.SKIPPED)

    @property
    def invalid(self) -> list[ItemOutcome]:
        return self._with(OutcomeStatus.INVALID)

    @property
    def failed(self) -> list[ItemOutcome]:
        return self._with(OutcomeStatus.FAILED)

    def summary(self) -> dict:
        return {status.value: len(self._with(status)) for status in OutcomeStatus}


@dataclass(frozen=True)
class RatePush:
    """One PMS rate update: a rate plan, a night, a price."""
    rate_id: str
    stay_date: date
    rate: Decimal
    room_type_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "rateId": self.rate_id,
            "date": self.stay_date.isoformat(),
            "rate": float(self.rate),
        }


@dataclass
class OverrideBatch:
    payload: list[RatePush] = field(default_factory=list)
    report: BatchReport = field(default_factory=BatchReport)
