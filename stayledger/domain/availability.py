"""Date-range arithmetic for the availability ledger.

Stays are half-open intervals [check_in, check_out): a checkout on day N
and a check-in on day N do not conflict.
"""

from dataclasses import dataclass
from datetime import date

from stayledger.core.exceptions import InvalidDateRange


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidDateRange(f"Empty date range {self.start} → {self.end}")

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def overlaps(self, other: "DateRange") -> bool:
        return ranges_overlap(self.start, self.end, other.start, other.end)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """[a_start, a_end) and [b_start, b_end) conflict iff a_start < b_end and b_start < a_end."""
    return a_start < b_end and b_start < a_end
