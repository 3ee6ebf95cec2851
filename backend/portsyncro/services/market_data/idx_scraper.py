# backend/portsyncro/services/market_data/idx_scraper.py
"""
Quote page scrape for equities listed on the Indonesia Stock Exchange.

The page is third-party HTML with versioned CSS class names and no contract.
This strategy is first in the domestic chain only because it tends to be
fresher than the structured endpoints; nothing depends on it working.

Extraction:
1. Price from the main quote element.
2. Change computed locally from the "Previous close" statistic.
3. Otherwise an inline percentage near the price ("Down by 0.51%", "+1.2%").
4. Otherwise change is reported as unavailable (0).
"""

import logging
import re
from decimal import Decimal

from bs4 import BeautifulSoup, Tag

from portsyncro.models import Currency
from portsyncro.services.constants import (
    CHANGE_WINDOW_24H,
    IDX_PREVIOUS_CLOSE_LABEL,
    IDX_PRICE_CSS_CLASS,
    IDX_QUOTE_PAGE_URL,
    IDX_STAT_VALUE_CSS_CLASS,
)
from portsyncro.services.exceptions import MalformedPayloadError
from portsyncro.services.market_data.types import (
    InstrumentId,
    PriceSource,
    PriceStrategy,
    ResolvedPrice,
    percent_change,
    positive_decimal,
    round_percent,
    to_decimal,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "idx_quote_page"

_NUMBER_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")
_DIRECTIONAL_PERCENT_PATTERN = re.compile(r"\b(up|down)\s+by\s+(\d+(?:\.\d+)?)\s*%", re.IGNORECASE)
_SIGNED_PERCENT_PATTERN = re.compile(r"([+\-−]?\d+(?:\.\d+)?)\s*%")

# Levels above the price element searched for an inline percentage
_INLINE_SEARCH_DEPTH = 3


def _class_selector(tag: str, css_class: str) -> str:
    return tag + "".join(f".{name}" for name in css_class.split())


def parse_number(text: str | None) -> Decimal | None:
    """Pull the first positive number out of display text like 'Rp 9,875.00'."""
    if not text:
        return None
    match = _NUMBER_PATTERN.search(text)
    return positive_decimal(match.group(0)) if match else None


def parse_inline_percent(text: str) -> Decimal | None:
    """Find a percentage in free text, honoring 'Up by' / 'Down by' wording."""
    directional = _DIRECTIONAL_PERCENT_PATTERN.search(text)
    if directional:
        value = to_decimal(directional.group(2))
        if value is not None:
            return round_percent(-value if directional.group(1).lower() == "down" else value)

    signed = _SIGNED_PERCENT_PATTERN.search(text)
    if signed:
        value = to_decimal(signed.group(1).replace("−", "-"))
        if value is not None:
            return round_percent(value)
    return None


class IdxQuotePageStrategy(PriceStrategy):

    @property
    def source(self) -> PriceSource:
        return PriceSource.IDX_QUOTE_PAGE

    def supports(self, instrument: InstrumentId) -> bool:
        return instrument.is_domestic_stock

    async def fetch_price(self, instrument: InstrumentId) -> ResolvedPrice:
        url = IDX_QUOTE_PAGE_URL.format(symbol=instrument.symbol)
        response = await self._fetcher.fetch(url, headers={"Accept": "text/html"})
        soup = BeautifulSoup(response.text, "html.parser")

        price_node = soup.select_one(_class_selector("div", IDX_PRICE_CSS_CLASS))
        price = parse_number(price_node.get_text()) if price_node else None
        if price is None:
            raise MalformedPayloadError(
                f"Quote page for {instrument.symbol} has no price element", provider=PROVIDER_NAME
            )

        change = percent_change(price, self._previous_close(soup))
        if change is None:
            change = self._inline_percent(price_node)
            if change is None:
                logger.debug(f"No change figure on quote page for {instrument.symbol}")

        return self._build(price, Currency.IDR, change, CHANGE_WINDOW_24H)

    @staticmethod
    def _previous_close(soup: BeautifulSoup) -> Decimal | None:
        label = soup.find(
            string=lambda s: s is not None and s.strip().lower() == IDX_PREVIOUS_CLOSE_LABEL.lower()
        )
        if label is None:
            return None
        value_node = label.find_next("div", class_=IDX_STAT_VALUE_CSS_CLASS)
        return parse_number(value_node.get_text()) if value_node else None

    @staticmethod
    def _inline_percent(price_node: Tag) -> Decimal | None:
        container = price_node
        for _ in range(_INLINE_SEARCH_DEPTH):
            if container.parent is None:
                break
            container = container.parent
        return parse_inline_percent(container.get_text(" "))
