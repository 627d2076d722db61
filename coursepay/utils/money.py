from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

_CENT = Decimal("0.01")


def parse_amount(raw: int | float | str | Decimal | None) -> Decimal | None:
    """Parse a user supplied amount into a 2-place Decimal; None when unparseable."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        d = Decimal(str(raw).strip().replace(",", ""))
        if not d.is_finite():
            return None
        # Raises InvalidOperation when the value has more digits than the context precision
        return d.quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None


def taka(amount: int | float | Decimal) -> str:
    d = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    s = f"{d:,}"
    return f"৳{s}"
