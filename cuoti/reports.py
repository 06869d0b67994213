from datetime import date
from typing import Iterable, List, Optional

from cuoti.finance_utils import MONTHS_ES, days_in_month, effective_date, in_month
from cuoti.schemas import DashboardOut, MonthTotal, ReportOut, Transaction

CRITICAL_FACTOR = 1.2


def dashboard_stats(transactions: Iterable[Transaction], today: Optional[date] = None,
                    upcoming_limit: int = 5) -> DashboardOut:
    """Headline figures over stored rows, bucketed by effective date."""
    today = today or date.today()
    transactions = list(transactions)

    monthly = [t for t in transactions if in_month(effective_date(t), today.year, today.month)]
    pending = sorted((t for t in transactions if t.status == "pending"), key=effective_date)

    return DashboardOut(
        monthly_expenses=sum(t.total_amount for t in monthly),
        pending_this_month=sum(t.total_amount for t in monthly if t.status == "pending"),
        total_debt=sum(t.total_amount for t in pending if t.is_debt),
        upcoming=pending[:upcoming_limit],
    )


def available_years(transactions: Iterable[Transaction], today: Optional[date] = None) -> List[int]:
    years = {(today or date.today()).year}
    years.update(effective_date(t).year for t in transactions)
    return sorted(years, reverse=True)


def yearly_report(transactions: Iterable[Transaction], year: int, month: Optional[int] = None,
                  today: Optional[date] = None) -> ReportOut:
    transactions = list(transactions)

    totals = [0.0] * 12
    for t in transactions:
        when = effective_date(t)
        if when.year == year:
            totals[when.month - 1] += t.total_amount
    monthly_totals = [
        MonthTotal(month=i + 1, name=MONTHS_ES[i].capitalize(), value=value) for i, value in enumerate(totals)
    ]

    selected = [
        t for t in transactions
        if effective_date(t).year == year and (month is None or effective_date(t).month == month)
    ]
    total_expense = sum(t.total_amount for t in selected)
    # yearly view: average per month; single month: average per day
    average = total_expense / 12 if month is None else total_expense / days_in_month(year, month)

    annual_average = sum(totals) / 12
    return ReportOut(
        year=year,
        month=month,
        years=available_years(transactions, today),
        monthly_totals=monthly_totals,
        total_expense=total_expense,
        average=average,
        subscription_expenses=sum(t.total_amount for t in selected if t.type == "subscription"),
        critical_months=[m for m in monthly_totals if m.value > annual_average * CRITICAL_FACTOR],
        top_expenses=sorted(selected, key=lambda t: t.total_amount, reverse=True)[:5],
    )
