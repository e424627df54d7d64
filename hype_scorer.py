"""
Hype scoring for Trench Board.
Turns a raw DexScreener snapshot into an ordered, size-bounded list of Nodes.

Every numeric field goes through safe_float, so malformed upstream data ends up
as 0 instead of NaN. compute_nodes is pure: the same records, boosts, icons
and ScoringConfig always produce the same list.
"""

import math
import logging
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from config import ScoringConfig, REFERENCE_TIMEFRAME
from models import Node

logger = logging.getLogger("hype_scorer")

PRICE_CHANGE_DOMAIN = (-50.0, 50.0)

NODE_FIELDS = [
    "id", "name", "symbol", "icon", "url", "hype",
    "price_change", "price_change_h1", "volume", "txns", "txns_h1",
    "boost", "liquidity", "price_usd", "market_cap",
]


def safe_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def pick(obj: Optional[Dict[str, Any]], key: str, default: float = 0.0) -> float:
    if not isinstance(obj, dict) or obj.get(key) is None:
        return default
    return safe_float(obj.get(key), default)


class LinearScale:
    """
    Linear mapping from a domain to a range, optionally clamped.
    A degenerate domain (lo == hi) maps every input to the middle of the range.
    Works on scalars and on numpy arrays / pandas Series.
    """

    def __init__(self, lo: float, hi: float, out_lo: float = 0.0, out_hi: float = 1.0, clamp: bool = True):
        self.lo = lo
        self.hi = hi
        self.out_lo = out_lo
        self.out_hi = out_hi
        self.clamp = clamp

    @property
    def degenerate(self) -> bool:
        return self.hi == self.lo

    def __call__(self, value):
        values = np.asarray(value, dtype=float)
        if self.degenerate:
            t = np.full_like(values, 0.5)
        else:
            t = (values - self.lo) / (self.hi - self.lo)
        if self.clamp:
            t = np.clip(t, 0.0, 1.0)
        out = self.out_lo + t * (self.out_hi - self.out_lo)
        if out.ndim == 0:
            return float(out)
        return out

    def __repr__(self) -> str:
        return f"LinearScale([{self.lo}, {self.hi}] -> [{self.out_lo}, {self.out_hi}], clamp={self.clamp})"


def data_scale(values: Iterable[float]) -> LinearScale:
    """Min-max scale over the data; a 0 minimum or maximum falls back to 0 / 1."""
    values = list(values)
    lo = min(values) if values else 0.0
    hi = max(values) if values else 0.0
    return LinearScale(lo or 0.0, hi or 1.0)


def price_scale() -> LinearScale:
    return LinearScale(*PRICE_CHANGE_DOMAIN)


def boost_amount(boost: Dict[str, Any]) -> float:
    for key in ("totalAmount", "amount", "score"):
        if boost.get(key) is not None:
            return safe_float(boost[key])
    return 0.0


def build_boost_map(boosts: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, float]:
    boost_map = {}
    for boost in boosts or []:
        if not isinstance(boost, dict) or not boost.get("tokenAddress"):
            continue
        # Last record wins for duplicated addresses
        boost_map[boost["tokenAddress"]] = boost_amount(boost)
    return boost_map


def txn_count(record: Dict[str, Any], timeframe: str) -> int:
    txns = record.get("txns")
    bucket = txns.get(timeframe) if isinstance(txns, dict) else None
    return int(pick(bucket, "buys") + pick(bucket, "sells"))


def liquidity_usd(record: Dict[str, Any]) -> float:
    return pick(record.get("liquidity"), "usd")


def passes_liquidity(record: Dict[str, Any], scoring: ScoringConfig) -> bool:
    if not isinstance(record, dict):
        return False
    chain = str(record.get("chainId") or "").lower()
    return chain == scoring.chain_id and liquidity_usd(record) >= scoring.min_liquidity


def _token_row(record: Dict[str, Any], boost_map: Dict[str, float], icons: Dict[str, str], timeframe: str) -> Dict[str, Any]:
    base = record.get("baseToken") if isinstance(record.get("baseToken"), dict) else {}
    address = str(base.get("address") or "")
    info = record.get("info") if isinstance(record.get("info"), dict) else {}

    if record.get("fdv") is not None:
        valuation = safe_float(record.get("fdv"))
    else:
        valuation = safe_float(record.get("marketCap"))

    return {
        "id": address,
        "name": str(base.get("name") or "?"),
        "symbol": str(base.get("symbol") or "?"),
        "icon": str(icons.get(address) or info.get("imageUrl") or ""),
        "url": str(record.get("url") or ""),
        "price_change": pick(record.get("priceChange"), timeframe),
        "price_change_h1": pick(record.get("priceChange"), REFERENCE_TIMEFRAME),
        "volume": pick(record.get("volume"), timeframe),
        "txns": txn_count(record, timeframe),
        "txns_h1": txn_count(record, REFERENCE_TIMEFRAME),
        "boost": boost_map.get(address, 0.0),
        "liquidity": liquidity_usd(record),
        "price_usd": safe_float(record.get("priceUsd")),
        "market_cap": valuation,
    }


def compute_nodes(records: Optional[Iterable[Dict[str, Any]]],
                  boosts: Optional[Iterable[Dict[str, Any]]],
                  icons: Optional[Dict[str, str]],
                  scoring: ScoringConfig) -> List[Node]:
    """
    Filter, normalize, score, search, sort and truncate.

    Args:
        records: one DexScreener pair per token address
        boosts: boost records (tokenAddress + amount)
        icons: token address -> icon URL
        scoring: immutable scoring configuration

    Returns:
        Nodes ordered by hype descending (stable), at most scoring.limit long
    """
    boost_map = build_boost_map(boosts)
    icons = icons or {}

    rows = []
    seen = set()
    for record in records or []:
        if not passes_liquidity(record, scoring):
            continue
        row = _token_row(record, boost_map, icons, scoring.timeframe)
        if not row["id"] or row["id"] in seen:
            continue
        seen.add(row["id"])
        rows.append(row)

    if not rows:
        return []

    df = pd.DataFrame(rows, columns=[f for f in NODE_FIELDS if f != "hype"])

    vol_scale = data_scale(df["volume"].tolist())
    txn_scale = data_scale(df["txns"].tolist())
    boost_scale = data_scale(df["boost"].tolist())

    weights = scoring.weights
    df["hype"] = (
        price_scale()(df["price_change"]) * weights.price +
        vol_scale(df["volume"]) * weights.volume +
        txn_scale(df["txns"]) * weights.txns +
        boost_scale(df["boost"]) * weights.boost
    )

    query = scoring.query.strip().lower()
    if query:
        mask = (
            df["symbol"].str.lower().str.contains(query, regex=False) |
            df["name"].str.lower().str.contains(query, regex=False)
        )
        df = df[mask]

    # mergesort keeps the input order of equal scores
    df = df.sort_values("hype", ascending=False, kind="mergesort").head(scoring.limit)

    logger.debug(f"Scored {len(rows)} tokens, kept {len(df)} (query={query!r}, tf={scoring.timeframe})")

    return [_to_node(row) for row in df[NODE_FIELDS].to_dict("records")]


def _to_node(row: Dict[str, Any]) -> Node:
    return Node(
        id=str(row["id"]),
        name=str(row["name"]),
        symbol=str(row["symbol"]),
        icon=str(row["icon"]),
        url=str(row["url"]),
        hype=float(row["hype"]),
        price_change=float(row["price_change"]),
        price_change_h1=float(row["price_change_h1"]),
        volume=float(row["volume"]),
        txns=int(row["txns"]),
        txns_h1=int(row["txns_h1"]),
        boost=float(row["boost"]),
        liquidity=float(row["liquidity"]),
        price_usd=float(row["price_usd"]),
        market_cap=float(row["market_cap"]),
    )
