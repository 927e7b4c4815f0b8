from __future__ import annotations

from typing import Optional

from django.conf import settings


def price_per_lesson_cents(service_kind: str, *, default: Optional[int] = None) -> Optional[int]:
    prices = getattr(settings, "LESSON_PRICES_CENTS", {}) or {}
    cents = prices.get(service_kind, default)
    if cents is None:
        return default
    return max(int(cents), settings.MINIMUM_CHARGE_CENTS)


def series_total_cents(service_kind: str, occurrence_count: int) -> int:
    """What a recurring series costs in total; each lesson is still charged separately."""
    return (price_per_lesson_cents(service_kind) or 0) * max(occurrence_count, 0)


def format_amount(amount_cents: int, currency: str = "gbp") -> str:
    symbol = {"gbp": "£", "usd": "$", "eur": "€"}.get((currency or "").lower(), "")
    return f"{symbol}{amount_cents / 100:.2f}"
