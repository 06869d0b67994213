from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from cuoti.finance_utils import add_months, format_ars, month_label
from cuoti.projection import project_month
from cuoti.schemas import MonthSummary, Tag, Transaction

TOP_EXPENSES = 5
SUBSCRIPTION_TAG_HINT = "suscri"


def top_expenses_line(transactions: Iterable[Transaction], limit: int = TOP_EXPENSES) -> str:
    ranked = sorted(transactions, key=lambda t: t.total_amount, reverse=True)[:limit]
    return ", ".join(f"{t.shop_name}: ${t.total_amount:.0f}" for t in ranked)


def financial_context(transactions: Iterable[Transaction], months: int = 3,
                      today: Optional[date] = None) -> List[MonthSummary]:
    """
    Per-month digest for ``months`` consecutive months starting at the
    current one: projected total, pending total and the biggest charges.
    """
    transactions = list(transactions)
    start = (today or date.today()).replace(day=1)
    summaries = []
    for i in range(months):
        target = add_months(start, i)
        monthly = project_month(transactions, target.year, target.month)
        summaries.append(MonthSummary(
            year=target.year,
            month=target.month,
            label=month_label(target.year, target.month),
            total=sum(t.total_amount for t in monthly),
            pending=sum(t.total_amount for t in monthly if t.status == "pending"),
            top_expenses=top_expenses_line(monthly),
        ))
    return summaries


def active_subscriptions(transactions: Iterable[Transaction], tags: Iterable[Tag]) -> List[Transaction]:
    """Latest row of every recurring group (or shop), including rows tagged as subscriptions."""
    sub_tag = next((t for t in tags if SUBSCRIPTION_TAG_HINT in t.name.lower()), None)
    latest: Dict[str, Transaction] = {}
    for tx in sorted(transactions, key=lambda t: (t.date, t.id or 0), reverse=True):
        tagged = sub_tag is not None and sub_tag.id in tx.tag_ids
        if not (tx.is_recurring or tagged):
            continue
        latest.setdefault(tx.group_id or tx.shop_name, tx)
    return list(latest.values())


def build_context(transactions: Iterable[Transaction], tags: Iterable[Tag], months: int = 4,
                  today: Optional[date] = None) -> Tuple[List[MonthSummary], str]:
    """Summaries plus the plain-text block handed to the chat model."""
    transactions = list(transactions)
    summaries = financial_context(transactions, months, today)

    pending_total = sum(t.total_amount for t in transactions if t.status == "pending")
    debt_total = sum(t.total_amount for t in transactions if t.is_debt and t.status == "pending")

    subs = active_subscriptions(transactions, tags)
    if subs:
        subs_list = "\n".join(f"- {t.shop_name}: {format_ars(t.total_amount)} (Mensual)" for t in subs)
        subs_total = sum(t.total_amount for t in subs)
        subs_section = f"{subs_list}\n\n**TOTAL MENSUAL DETECTADO (Suscripciones): {format_ars(subs_total)}**"
    else:
        subs_section = "No se detectaron suscripciones activas."

    projections = "\n".join(
        f"- {s.label}: Total {format_ars(s.total)} (Pendiente: {format_ars(s.pending)})\n"
        f"  Principales gastos: {s.top_expenses}"
        for s in summaries
    )

    text = f"""RESUMEN DE USUARIO:

SUSCRIPCIONES DETECTADAS (Costos Fijos):
{subs_section}

PROYECCIÓN DE GASTOS (Incluye suscripciones y cuotas):
{projections}

ESTADO GLOBAL:
- Total pendiente de pago (global real): {format_ars(pending_total)}
- Deuda total acumulada: {format_ars(debt_total)}

NOTA: LOS PRECIOS ESTÁN EN PESOS ARGENTINOS.
FORMATO: "$1.000,00" (PUNTO para miles, COMA para decimales).
NO CAMBIES ESTE FORMATO EN TU RESPUESTA.
RESPETA EL TOTAL PRE-CALCULADO DE SUSCRIPCIONES.
"""
    return summaries, text
