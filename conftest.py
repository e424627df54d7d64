import pytest


def build_pair(address, name="Token", symbol="TOK", liquidity=100_000, volume=1_000,
               buys=10, sells=5, price_change=0.0, chain="solana", timeframe="h1", **extra):
    pair = {
        "chainId": chain,
        "url": f"https://dexscreener.com/solana/{address}",
        "baseToken": {"address": address, "name": name, "symbol": symbol},
        "liquidity": {"usd": liquidity},
        "volume": {timeframe: volume},
        "txns": {timeframe: {"buys": buys, "sells": sells}},
        "priceChange": {timeframe: price_change},
        "priceUsd": "0.0012",
        "fdv": 1_500_000,
    }
    pair.update(extra)
    return pair


@pytest.fixture
def make_pair():
    return build_pair
