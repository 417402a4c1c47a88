"""
Marketplace "on sale" checker backed by tonapi.

Each NFT is looked up with ``GET /v2/nfts/{address}``; an NFT is on sale
when the response carries a ``sale`` block. The free tier is rate limited,
so requests are polled sequentially with a short delay, a longer pause every
few requests, and a bounded retry on HTTP 429.

The checker is invoked by the search orchestration for the "on sale" result
kind only; the match engine never talks to the marketplace.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from synergy_backend.config.logger import app_logger, log_marketplace_call, log_performance
from synergy_backend.config.settings import settings
from synergy_backend.models import NFTRecord, SalePrice, coerce_nft


@dataclass(frozen=True)
class PollingPolicy:
    requests_before_pause: int = 5
    pause_seconds: float = 3.0
    delay_seconds: float = 0.1
    max_retries: int = 2
    retry_delay_seconds: float = 2.0
    timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls) -> "PollingPolicy":
        return cls(
            requests_before_pause=settings.ONSALE_REQUESTS_BEFORE_PAUSE,
            pause_seconds=settings.ONSALE_PAUSE_SECONDS,
            delay_seconds=settings.ONSALE_DELAY_SECONDS,
            max_retries=settings.ONSALE_MAX_RETRIES,
            retry_delay_seconds=settings.ONSALE_RETRY_DELAY_SECONDS,
            timeout_seconds=settings.ONSALE_TIMEOUT_SECONDS,
        )

    def expected_pauses(self, total: int) -> int:
        if total <= 0 or self.requests_before_pause <= 0:
            return 0
        return (total - 1) // self.requests_before_pause


@dataclass
class SaleCheck:
    success: bool
    is_on_sale: bool = False
    price: Optional[SalePrice] = None
    error: Optional[str] = None
    retries: int = 0
    rate_limited: bool = False


@dataclass
class OnSaleReport:
    on_sale: List[NFTRecord] = field(default_factory=list)
    checked: List[NFTRecord] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)


class MarketplaceChecker:
    """Sequential, rate-limited tonapi client."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = settings.TONAPI_BASE_URL,
        api_key: str = settings.TONAPI_KEY,
        policy: Optional[PollingPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or PollingPolicy.from_settings()
        headers = {"Accept": "application/json", "User-Agent": "SynergySortBot/1.0"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self.policy.timeout_seconds,
        )
        if client is not None:
            self._client.headers.update(headers)
        self._sleep = sleep

    async def __aenter__(self) -> "MarketplaceChecker":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def check(self, address: str) -> SaleCheck:
        """Look up one NFT; failures are reported, not raised."""
        retries = 0
        while True:
            started = time.time()
            try:
                response = await self._client.get(f"/v2/nfts/{address}")
            except httpx.HTTPError as exc:
                log_marketplace_call(address, None, retries, time.time() - started)
                app_logger.error(f"Sale check failed for {address[:20]}...: {exc}")
                return SaleCheck(success=False, error=str(exc), retries=retries)
            log_marketplace_call(address, response.status_code, retries, time.time() - started)

            if response.status_code == 429:
                if retries < self.policy.max_retries:
                    retries += 1
                    wait = self.policy.retry_delay_seconds * retries
                    app_logger.warning(
                        f"Rate limited on {address[:20]}..., waiting {wait:.1f}s "
                        f"(attempt {retries}/{self.policy.max_retries})"
                    )
                    await self._sleep(wait)
                    continue
                return SaleCheck(
                    success=False,
                    error="429 Too Many Requests",
                    retries=retries,
                    rate_limited=True,
                )

            if response.is_error:
                app_logger.error(f"Sale check for {address[:20]}... returned {response.status_code}")
                return SaleCheck(success=False, error=f"HTTP {response.status_code}", retries=retries)

            try:
                payload = response.json()
            except ValueError as exc:
                return SaleCheck(success=False, error=f"invalid JSON: {exc}", retries=retries)
            return _parse_sale(payload, retries)

    async def filter_on_sale(self, nfts: Iterable[Any]) -> OnSaleReport:
        """Check every NFT and return annotated copies of those on sale."""
        records = [nft for nft in (coerce_nft(raw) for raw in nfts) if nft is not None]
        total = len(records)
        report = OnSaleReport()
        on_sale = errors = rate_limit_errors = 0
        start_time = time.time()
        app_logger.info(
            f"Checking {total} NFTs for sale (pause every {self.policy.requests_before_pause} "
            f"requests, {self.policy.expected_pauses(total)} pauses expected)"
        )

        for position, nft in enumerate(records, start=1):
            if not nft.address:
                errors += 1
                report.errors[str(nft.index)] = "missing address"
                report.checked.append(nft.model_copy(update={"on_sale": False}))
            else:
                result = await self.check(nft.address)
                if result.success and result.is_on_sale:
                    on_sale += 1
                    annotated = nft.model_copy(update={"on_sale": True, "sale_price": result.price})
                    report.on_sale.append(annotated)
                    report.checked.append(annotated)
                else:
                    if not result.success:
                        errors += 1
                        rate_limit_errors += int(result.rate_limited)
                        report.errors[nft.address] = result.error or "unknown error"
                    report.checked.append(nft.model_copy(update={"on_sale": False}))

            if position < total:
                if self.policy.requests_before_pause and position % self.policy.requests_before_pause == 0:
                    app_logger.debug(
                        f"Pause after {position}/{total} requests ({on_sale} on sale, {errors} errors)"
                    )
                    await self._sleep(self.policy.pause_seconds)
                else:
                    await self._sleep(self.policy.delay_seconds)

        report.stats = {
            "total": total,
            "onSale": on_sale,
            "notOnSale": total - on_sale,
            "errors": errors,
            "rateLimitErrors": rate_limit_errors,
            "pauses": self.policy.expected_pauses(total),
        }
        app_logger.info(f"Sale check finished: {on_sale}/{total} on sale, {errors} errors")
        log_performance("onsale_check", time.time() - start_time, total=total)
        return report


def _parse_sale(payload: Any, retries: int) -> SaleCheck:
    sale = payload.get("sale") if isinstance(payload, dict) else None
    if not sale:
        return SaleCheck(success=True, is_on_sale=False, retries=retries)

    price = None
    raw_price = sale.get("price") if isinstance(sale, dict) else None
    if isinstance(raw_price, dict) and raw_price.get("value") is not None:
        price = SalePrice(
            value=raw_price["value"],
            decimals=raw_price.get("decimals", settings.TON_DEFAULT_DECIMALS),
        )
    return SaleCheck(success=True, is_on_sale=True, price=price, retries=retries)
