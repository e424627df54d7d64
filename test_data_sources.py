import asyncio

import aiohttp

from conftest import build_pair
from data_sources import DexScreenerSource, sample_addresses, select_best_pairs

CONFIG = {"DEX_API_BASE_URL": "https://dex.test", "CHAIN_ID": "solana", "PAIR_BATCH_SIZE": 30}


class FakeResponse:
    def __init__(self, payload, fail=False):
        self.payload = payload
        self.fail = fail

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.fail:
            raise aiohttp.ClientError("502 Bad Gateway")

    async def json(self):
        return self.payload


class FakeSession:
    def __init__(self, boosts, profiles, pairs_by_address, failing_batches=()):
        self.boosts = boosts
        self.profiles = profiles
        self.pairs_by_address = pairs_by_address
        self.failing_batches = set(failing_batches)
        self.pair_calls = []

    def get(self, url):
        if url.endswith("/token-boosts/top/v1"):
            return FakeResponse(self.boosts)
        if url.endswith("/token-profiles/latest/v1"):
            return FakeResponse(self.profiles)
        chunk = url.rsplit("/", 1)[-1].split(",")
        batch = len(self.pair_calls)
        self.pair_calls.append(chunk)
        pairs = [p for address in chunk for p in self.pairs_by_address.get(address, [])]
        return FakeResponse(pairs, fail=batch in self.failing_batches)


def test_select_best_pairs_keeps_deepest_liquidity():
    pairs = [
        build_pair("a", liquidity=1_000, url="low"),
        build_pair("a", liquidity=9_000, url="high"),
        build_pair("a", liquidity=5_000, url="mid"),
        build_pair("b", liquidity=10),
        {"baseToken": {}},
        "garbage",
    ]

    best = select_best_pairs(pairs)

    assert set(best) == {"a", "b"}
    assert best["a"]["url"] == "high"


def test_sample_is_unique_ordered_and_capped():
    boosts = [{"tokenAddress": f"t{i % 150}"} for i in range(400)]

    sample = sample_addresses(boosts, limit=10)

    assert len(sample) == 120
    assert sample[:3] == ["t0", "t1", "t2"]
    assert len(sample_addresses(boosts, limit=40)) == 150


def test_load_snapshot_batches_and_tolerates_failed_batch():
    addresses = [f"tok{i}" for i in range(65)]
    boosts = [{"chainId": "solana", "tokenAddress": a, "totalAmount": 10} for a in addresses]
    boosts.append({"chainId": "ethereum", "tokenAddress": "0xabc", "totalAmount": 500})
    profiles = [
        {"chainId": "solana", "tokenAddress": "tok0", "icon": "https://img/tok0.png"},
        {"chainId": "ethereum", "tokenAddress": "0xabc", "icon": "https://img/eth.png"},
    ]
    pairs = {a: [build_pair(a)] for a in addresses}
    session = FakeSession(boosts, profiles, pairs, failing_batches={1})

    source = DexScreenerSource(CONFIG, session=session)
    snapshot = asyncio.run(source.load_snapshot(limit=20))

    assert [len(chunk) for chunk in session.pair_calls] == [30, 30, 5]
    assert len(snapshot.records) == 35
    assert all(b["chainId"] == "solana" for b in snapshot.boosts)
    assert snapshot.icons == {"tok0": "https://img/tok0.png"}
    assert snapshot.fetched_at > 0
