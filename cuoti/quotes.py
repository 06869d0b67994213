import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from cuoti.finance_utils import parse_ars
from cuoti.schemas import ConversionOut, DolarSummary, PricePoint

logger = logging.getLogger(__name__)

DOLAR_API_URL = os.getenv("DOLAR_API_URL", "https://criptoya.com/api/dolar")
COINGECKO_CHART_URL = os.getenv(
    "COINGECKO_CHART_URL", "https://api.coingecko.com/api/v3/coins/usd-coin/market_chart"
)
QUOTES_TIMEOUT = float(os.getenv("QUOTES_TIMEOUT", "10"))

# kind -> (quote used, multiply?, result currency)
CONVERSIONS: Dict[str, Tuple[str, bool, str]] = {
    "usd_oficial_to_ars": ("official", True, "ARS"),
    "usdc_to_ars": ("usdc", True, "ARS"),
    "ars_to_usd_oficial": ("official", False, "USD"),
    "ars_to_usdc": ("usdc", False, "USDC"),
}


class QuoteError(Exception):
    pass


def summarize_dolar(data: Dict[str, Any]) -> DolarSummary:
    usdc = ((data.get("cripto") or {}).get("usdc") or {})
    official = data.get("oficial") or {}
    usdc_price = float(usdc.get("ask") or 0)
    usdc_variation = float(usdc.get("variation") or 0)
    # current = previous * (1 + var/100)
    previous = usdc_price / (1 + usdc_variation / 100) if usdc_variation != -100 else 0.0
    return DolarSummary(
        official_price=float(official.get("price") or 0),
        official_variation=float(official.get("variation") or 0),
        usdc_price=usdc_price,
        usdc_variation=usdc_variation,
        usdc_previous_price=previous,
    )


def daily_prices(chart: Dict[str, Any]) -> List[PricePoint]:
    """Collapse the intraday series to the last price of each day."""
    by_day: Dict[str, float] = {}
    for timestamp, price in chart.get("prices") or []:
        label = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%d/%m")
        by_day[label] = price
    return [PricePoint(date=label, price=round(price)) for label, price in by_day.items()]


def convert(amount_text: str, kind: str, quotes: DolarSummary) -> ConversionOut:
    if kind not in CONVERSIONS:
        raise ValueError(f"Unknown conversion: {kind}")
    source, multiply, currency = CONVERSIONS[kind]
    amount = parse_ars(amount_text)
    rate = quotes.official_price if source == "official" else quotes.usdc_price
    if multiply:
        result = amount * rate
    else:
        result = amount / rate if rate else 0.0
    return ConversionOut(amount=amount, kind=kind, result=result, currency=currency)


class QuoteService:
    """Read-only access to the public dollar/USDC quote endpoints."""

    def __init__(self, client: Optional[httpx.Client] = None,
                 dolar_url: str = DOLAR_API_URL, chart_url: str = COINGECKO_CHART_URL):
        self.client = client or httpx.Client(timeout=QUOTES_TIMEOUT)
        self.dolar_url = dolar_url
        self.chart_url = chart_url

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = self.client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            logger.warning("Quote request to %s failed: %s", url, e)
            raise QuoteError(f"Failed to fetch {url}") from e
        except ValueError as e:
            raise QuoteError(f"Invalid JSON from {url}") from e

    def get_dolar_quotes(self) -> Dict[str, Any]:
        return self._get_json(self.dolar_url)

    def get_dolar_summary(self) -> DolarSummary:
        return summarize_dolar(self.get_dolar_quotes())

    def get_usdc_history(self, days: int = 30) -> List[PricePoint]:
        chart = self._get_json(self.chart_url, params={"vs_currency": "ars", "days": days})
        return daily_prices(chart)

    def close(self) -> None:
        self.client.close()
