from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import PlainSerializer

CENT = Decimal("0.01")


def _money_text(value: Decimal) -> str:
    return format(value.quantize(CENT), "f")


# Rupiah amounts travel as fixed two-decimal strings, e.g. "250000.00".
Money = Annotated[Decimal, PlainSerializer(_money_text, return_type=str, when_used="json")]
