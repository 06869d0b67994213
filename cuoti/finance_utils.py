import calendar
from datetime import date
from typing import Tuple

from dateutil.relativedelta import relativedelta

MONTHS_ES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]

def set_month_and_year(d: date, month: int, year: int) -> date:
    """
    Move a date to another month/year keeping its day-of-month.
    Days that do not exist in the target month clamp to its last day
    (31 Jan -> 28/29 Feb, 31 Mar -> 30 Apr).
    """
    return d + relativedelta(year=year, month=month)

def add_months(d: date, months: int) -> date:
    return d + relativedelta(months=months)

def month_bounds(year: int, month: int) -> Tuple[date, date]:
    first = date(year, month, 1)
    return first, first + relativedelta(months=1) - relativedelta(days=1)

def effective_date(tx) -> date:
    """Payment date when present, otherwise the nominal date."""
    return tx.payment_date or tx.date

def in_month(d: date, year: int, month: int) -> bool:
    return d.year == year and d.month == month

def month_label(year: int, month: int) -> str:
    # matches the es-ES long month/year rendering, e.g. "marzo de 2024"
    return f"{MONTHS_ES[month - 1]} de {year}"

# ---- es-AR money ----

def format_ars(amount: float) -> str:
    """1234.5 -> '$1.234,50' (dot for thousands, comma for decimals)."""
    raw = f"{abs(amount):,.2f}"
    body = raw.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-${body}" if amount < 0 else f"${body}"

def parse_ars(value: str) -> float:
    """'1.234,5' -> 1234.5; unparseable input counts as 0."""
    clean = (value or "").strip().replace(".", "").replace(",", ".")
    try:
        return float(clean)
    except ValueError:
        return 0.0

# ---- financing options ----

def financed_total(price: float, interest_rate: float) -> float:
    return price * (1 + (interest_rate / 100.0))

def installment_amount(total: float, installments: int) -> float:
    if installments <= 0:
        return total
    return total / installments

def financing_surcharge(total: float, price: float) -> Tuple[float, float]:
    """Absolute and percent difference of a financed total against the cash price."""
    difference = total - price
    if price == 0:
        return difference, 0.0
    return difference, (difference / price) * 100.0
