"""
Tests for the marketplace on-sale checker.

The tonapi client is replaced by httpx.MockTransport and sleeps are recorded
instead of awaited.
"""

import asyncio

import httpx

from synergy_backend.models import NFTRecord
from synergy_backend.services.marketplace import MarketplaceChecker, PollingPolicy


SALE_PAYLOAD = {"sale": {"price": {"value": "3000000000", "decimals": 9}}}


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_checker(handler, policy=None):
    sleep = FakeSleep()
    client = httpx.AsyncClient(base_url="https://tonapi.test", transport=httpx.MockTransport(handler))
    checker = MarketplaceChecker(client=client, policy=policy or PollingPolicy(), sleep=sleep)
    return checker, sleep


def nft(i, address=None):
    return NFTRecord(index=i, address=address if address is not None else f"0:addr{i}", name=f"Orc #{i}")


class TestCheck:
    """Single NFT lookups."""

    def test_on_sale_with_price(self):
        checker, _ = make_checker(lambda request: httpx.Response(200, json=SALE_PAYLOAD))
        result = asyncio.run(checker.check("0:addr1"))
        assert result.success
        assert result.is_on_sale
        assert result.price.as_ton() == 3.0

    def test_not_on_sale(self):
        checker, _ = make_checker(lambda request: httpx.Response(200, json={"address": "0:addr1"}))
        result = asyncio.run(checker.check("0:addr1"))
        assert result.success
        assert not result.is_on_sale

    def test_requests_nft_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={})

        checker, _ = make_checker(handler)
        asyncio.run(checker.check("0:abc"))
        assert seen == ["/v2/nfts/0:abc"]

    def test_rate_limit_retries_with_growing_delay(self):
        responses = iter([httpx.Response(429), httpx.Response(429), httpx.Response(200, json=SALE_PAYLOAD)])
        checker, sleep = make_checker(lambda request: next(responses))
        result = asyncio.run(checker.check("0:addr1"))
        assert result.success
        assert result.retries == 2
        assert sleep.calls == [2.0, 4.0]

    def test_rate_limit_gives_up(self):
        checker, sleep = make_checker(lambda request: httpx.Response(429))
        result = asyncio.run(checker.check("0:addr1"))
        assert not result.success
        assert result.rate_limited
        assert len(sleep.calls) == 2

    def test_http_error(self):
        checker, _ = make_checker(lambda request: httpx.Response(500))
        result = asyncio.run(checker.check("0:addr1"))
        assert not result.success
        assert result.error == "HTTP 500"

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        checker, _ = make_checker(handler)
        result = asyncio.run(checker.check("0:addr1"))
        assert not result.success
        assert "boom" in result.error


class TestFilterOnSale:
    """Sequential polling over a result list."""

    def test_annotates_on_sale_copies(self):
        def handler(request):
            if request.url.path.endswith("addr1"):
                return httpx.Response(200, json=SALE_PAYLOAD)
            return httpx.Response(200, json={})

        checker, _ = make_checker(handler)
        original = [nft(0), nft(1), nft(2)]
        report = asyncio.run(checker.filter_on_sale(original))

        assert [item.index for item in report.on_sale] == [1]
        assert report.on_sale[0].on_sale is True
        assert report.on_sale[0].sale_price.value == "3000000000"
        assert original[1].on_sale is None
        assert report.stats["total"] == 3
        assert report.stats["onSale"] == 1
        assert report.stats["notOnSale"] == 2

    def test_pauses_every_n_requests(self):
        checker, sleep = make_checker(lambda request: httpx.Response(200, json={}))
        asyncio.run(checker.filter_on_sale([nft(i) for i in range(11)]))

        assert sleep.calls.count(3.0) == 2
        assert sleep.calls.count(0.1) == 8
        assert len(sleep.calls) == 10

    def test_errors_are_counted_not_raised(self):
        def handler(request):
            if request.url.path.endswith("addr0"):
                return httpx.Response(429)
            return httpx.Response(404)

        policy = PollingPolicy(max_retries=0)
        checker, _ = make_checker(handler, policy)
        report = asyncio.run(checker.filter_on_sale([nft(0), nft(1), nft(2, address="")]))

        assert report.on_sale == []
        assert report.stats["errors"] == 3
        assert report.stats["rateLimitErrors"] == 1
        assert report.errors["0:addr1"] == "HTTP 404"

    def test_accepts_raw_dicts(self):
        checker, _ = make_checker(lambda request: httpx.Response(200, json=SALE_PAYLOAD))
        report = asyncio.run(checker.filter_on_sale([{"index": 5, "address": "0:x"}, "junk"]))
        assert report.stats["total"] == 1
        assert report.on_sale[0].index == 5


class TestPollingPolicy:
    def test_expected_pauses(self):
        policy = PollingPolicy()
        assert policy.expected_pauses(0) == 0
        assert policy.expected_pauses(5) == 0
        assert policy.expected_pauses(6) == 1
        assert policy.expected_pauses(11) == 2
