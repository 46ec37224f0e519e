"""Budget strings from the request form and price ranges from generated ideas."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

PRICE_FLOOR = 0.0
PRICE_CEILING = 1000.0

_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d{3}\b)")


@dataclass(frozen=True)
class BudgetRange:
    min: float = 0.0
    max: float = math.inf

    @property
    def unbounded(self) -> bool:
        return self.min <= 0 and math.isinf(self.max)


def _numbers(text: str) -> list[float]:
    text = _THOUSANDS_RE.sub("", text)
    return [float(value.replace(",", ".")) for value in _NUMBER_RE.findall(text)]


def parse_budget(value: str | None) -> BudgetRange:
    """Parse "A-B", "N", "N+" or "any" into a range; anything else is unrestricted."""
    raw = str(value or "").strip().lower()
    if not raw or raw == "any":
        return BudgetRange()

    compact = raw.replace(" ", "").replace("$", "").replace("₴", "")
    if re.fullmatch(r"\d+(?:\.\d+)?\+", compact):
        return BudgetRange(min=float(compact[:-1]), max=math.inf)

    match = re.fullmatch(r"(\d+(?:\.\d+)?)-(\d+(?:\.\d+)?)", compact)
    if match:
        low, high = float(match.group(1)), float(match.group(2))
        if low > high:
            low, high = high, low
        return BudgetRange(min=low, max=high)

    if re.fullmatch(r"\d+(?:\.\d+)?", compact):
        return BudgetRange(min=0.0, max=float(compact))

    return BudgetRange()


def parse_price_range(text: str | None) -> tuple[float, float]:
    raw = str(text or "")
    numbers = _numbers(raw)
    if not numbers:
        return PRICE_FLOOR, PRICE_CEILING
    if len(numbers) == 1:
        if "+" in raw:
            return numbers[0], max(numbers[0], PRICE_CEILING)
        return numbers[0], numbers[0]
    low, high = numbers[0], numbers[1]
    return (low, high) if low <= high else (high, low)


def budget_prompt_label(value: str | None) -> str:
    raw = str(value or "").strip()
    if not raw or raw.lower() == "any":
        return "any"
    return raw.replace("500+", "500-1000")
