# storefront/utils/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal
CENT = Decimal("0.01")
ZERO = Decimal("0")

def D(x) -> Money:
    # floats go through str() so 10.005 stays 10.005 instead of 10.00499...
    if isinstance(x, Decimal):
        return x
    if isinstance(x, bool):
        raise InvalidOperation(f"not a monetary amount: {x!r}")
    return Decimal(str(x if x is not None else "0"))

def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)

def to_float_money(x) -> float:
    return float(round_money(x))

def to_string_money(x) -> str:
    return str(round_money(x))
