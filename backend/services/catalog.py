"""
Product catalog collaborator - Suconel electronic components store.

``SuconelCatalog.top_products`` searches the quick-search API, keeps the
in-stock items and ranks them with ``score_products``:

    stock       up to 30  (relative to the best-stocked item)
    price       25 within 0.7-1.3x the mean, 15 below, 10 above
    discount    up to 15  (the percentage itself, capped)
    image       10
    description 10
    category     5
    SKU          5
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from errors import ExternalServiceError

logger = logging.getLogger(__name__)

PRODUCT_URL = "https://suconel.com/producto/{slug}"
DEFAULT_COP_TO_USD = 4300.0


@dataclass
class ScoredProduct:
    product: Dict[str, Any]
    score: float
    reasons: List[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.product.get("title", "")

    @property
    def price(self) -> float:
        return self.product.get("regular_price") or 0

    @property
    def link(self) -> str:
        return PRODUCT_URL.format(slug=self.product.get("slug", ""))

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.product.get("id"),
            "sku": self.product.get("sku"),
            "name": self.title,
            "price": self.price,
            "currency": "COP",
            "score": round(self.score, 1),
            "reasons": self.reasons,
            "link": self.link,
            "stock": self.product.get("stock_quantity"),
        }


def convert_cop_to_usd(amount_cop: float, rate: float = DEFAULT_COP_TO_USD) -> float:
    return amount_cop / rate


def score_products(products: List[Dict[str, Any]]) -> List[ScoredProduct]:
    """Score and sort products, best first."""
    if not products:
        return []

    prices = [p.get("regular_price") or 0 for p in products]
    prices = [p for p in prices if p > 0]
    avg_price = sum(prices) / len(prices) if prices else 0
    stocks = [p.get("stock_quantity") or 0 for p in products]
    max_stock = max([s for s in stocks if s > 0] + [1])

    scored = []
    for product in products:
        score = 0.0
        reasons = []

        stock = product.get("stock_quantity") or 0
        if stock > 0:
            stock_score = min(stock / max_stock * 30, 30)
            score += stock_score
            reasons.append(f"Stock: {stock} unidades (+{stock_score:.1f} pts)")

        price = product.get("regular_price") or 0
        if price > 0 and avg_price > 0:
            ratio = price / avg_price
            if 0.7 <= ratio <= 1.3:
                score += 25
                reasons.append("Precio competitivo (+25 pts)")
            elif ratio < 0.7:
                score += 15
                reasons.append("Precio económico (+15 pts)")
            else:
                score += 10
                reasons.append("Precio premium (+10 pts)")

        discount = product.get("discount_percentage") or 0
        if discount > 0:
            discount_score = min(discount, 15)
            score += discount_score
            reasons.append(f"{discount}% descuento (+{discount_score:.1f} pts)")

        if (product.get("thumbnail") or {}).get("url"):
            score += 10
            reasons.append("Tiene imagen (+10 pts)")

        if product.get("temporal_description") or product.get("short_description"):
            score += 10
            reasons.append("Tiene descripción (+10 pts)")

        if product.get("product_categories"):
            score += 5
            reasons.append("Categorizado (+5 pts)")

        if product.get("sku"):
            score += 5
            reasons.append("Tiene SKU (+5 pts)")

        scored.append(ScoredProduct(product=product, score=score, reasons=reasons))

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


class ProductCatalog(ABC):

    @abstractmethod
    async def top_products(self, query: str, limit: int = 5) -> List[ScoredProduct]:
        """Best ranked in-stock products for ``query``.

        Raises:
            ExternalServiceError: the catalog could not be queried
        """

    async def close(self) -> None:
        pass


class SuconelCatalog(ProductCatalog):

    def __init__(self, base_url: str, auth_token: str = "", timeout: float = 15.0, search_limit: int = 50):
        self.search_limit = search_limit
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json", "Authorization": auth_token},
        )

    async def search_products(self, query: str) -> List[Dict[str, Any]]:
        """In-stock products matching ``query``, at most ``search_limit``."""
        logger.info(f"Searching catalog for: {query!r}")
        try:
            resp = await self._client.post(
                "/products/quick-search",
                json={"search": query},
                params={"v": int(time.time() * 1000)},  # cache buster
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "Catalog search failed", details=e.response.text[:200], service="catalog",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("Catalog unreachable", details=str(e), service="catalog") from e

        try:
            products = resp.json() or []
            in_stock = [p for p in products if p.get("is_in_stock")]
        except (ValueError, AttributeError, TypeError) as e:
            raise ExternalServiceError(
                "Catalog returned an unexpected response", details=resp.text[:200], service="catalog",
            ) from e

        logger.info(f"Catalog returned {len(products)} products, {len(in_stock)} in stock")
        return in_stock[: self.search_limit]

    async def top_products(self, query: str, limit: int = 5) -> List[ScoredProduct]:
        products = await self.search_products(query)
        if not products:
            logger.warning(f"No products found for query: {query!r}")
            return []

        top = score_products(products)[:limit]
        for i, item in enumerate(top, 1):
            logger.info(f"{i}. {item.title} - score {item.score:.1f} - ${item.price} COP")
        return top

    async def close(self) -> None:
        await self._client.aclose()


class QuotationGenerator(ABC):
    """Renders a quotation document and returns its file name."""

    @abstractmethod
    async def generate(self, data: Dict[str, Any]) -> str: ...


def build_catalog(config) -> Optional[ProductCatalog]:
    if not config.catalog_base_url:
        logger.info("SUCONEL_BASE_URL not set, product search disabled")
        return None
    return SuconelCatalog(
        base_url=config.catalog_base_url,
        auth_token=config.catalog_auth_token,
        timeout=config.catalog_timeout,
    )
