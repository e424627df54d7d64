"""
Module de sources de données pour Trench Board
Récupère les boosts, les paires et les profils de tokens depuis DexScreener
"""

import asyncio
import aiohttp
import logging
import time
from typing import Dict, List, Optional, Any, Iterable

from models import MarketSnapshot

logger = logging.getLogger("data_sources")

MIN_SAMPLE_SIZE = 120


def select_best_pairs(pairs: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Garde une seule paire par token: celle avec la meilleure liquidité

    Args:
        pairs: Paires DexScreener brutes

    Returns:
        Dictionnaire {adresse du token: paire}
    """
    best = {}
    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        base = (pair.get("baseToken") or {}).get("address")
        if not base:
            continue
        liquidity = _liquidity(pair)
        if base not in best or liquidity > _liquidity(best[base]):
            best[base] = pair
    return best


def _liquidity(pair: Dict[str, Any]) -> float:
    try:
        return float((pair.get("liquidity") or {}).get("usd") or 0)
    except (TypeError, ValueError):
        return 0.0


def sample_addresses(boosts: List[Dict[str, Any]], limit: int) -> List[str]:
    """Adresses uniques des boosts, dans l'ordre, limitées à max(limit * 5, 120)"""
    sample_size = max(limit * 5, MIN_SAMPLE_SIZE)
    addresses = []
    seen = set()
    for boost in boosts:
        address = boost.get("tokenAddress")
        if not address or address in seen:
            continue
        seen.add(address)
        addresses.append(address)
    return addresses[:sample_size]


class DexScreenerSource:
    """
    Source de données DexScreener
    Agrège boosts, paires (une par token) et icônes en un MarketSnapshot
    """

    def __init__(self, config: Dict[str, Any], session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.session = session

        # Paramètres configurables
        self.base_url = config.get("DEX_API_BASE_URL", "https://api.dexscreener.com").rstrip("/")
        self.chain_id = str(config.get("CHAIN_ID", "solana")).lower()
        self.batch_size = max(1, int(config.get("PAIR_BATCH_SIZE", 30)))
        self.timeout = aiohttp.ClientTimeout(total=config.get("HTTP_TIMEOUT_SECONDS", 10))

        self.last_update_time = 0.0

        logger.info(f"Initialized DexScreenerSource on {self.base_url} (chain={self.chain_id}, batch={self.batch_size})")

    async def _get_json(self, session: aiohttp.ClientSession, path: str) -> Any:
        url = f"{self.base_url}{path}"
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.json()

    def _on_chain(self, item: Dict[str, Any]) -> bool:
        return str(item.get("chainId") or "").lower() == self.chain_id

    async def fetch_boosts(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        """
        Récupère les tokens boostés de la chaîne configurée

        Returns:
            Liste des boosts
        """
        data = await self._get_json(session, "/token-boosts/top/v1")
        if not isinstance(data, list):
            logger.error("Invalid response format from DexScreener boosts")
            return []
        return [item for item in data if isinstance(item, dict) and self._on_chain(item)]

    async def fetch_pairs(self, session: aiohttp.ClientSession, addresses: List[str]) -> Dict[str, Dict[str, Any]]:
        """
        Récupère les paires par lots, en tolérant l'échec de certains lots

        Args:
            addresses: Adresses des tokens

        Returns:
            Dictionnaire {adresse: meilleure paire}
        """
        tasks = []
        for i in range(0, len(addresses), self.batch_size):
            chunk = ",".join(addresses[i:i + self.batch_size])
            tasks.append(self._get_json(session, f"/tokens/v1/{self.chain_id}/{chunk}"))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        pairs = []
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Pair batch failed: {result}")
                continue
            if isinstance(result, list):
                pairs.extend(result)

        return select_best_pairs(pairs)

    async def fetch_profiles(self, session: aiohttp.ClientSession) -> Dict[str, str]:
        """
        Récupère les icônes des derniers profils de tokens

        Returns:
            Dictionnaire {adresse: URL de l'icône}
        """
        data = await self._get_json(session, "/token-profiles/latest/v1")
        icons = {}
        for profile in data or []:
            if not isinstance(profile, dict) or not self._on_chain(profile):
                continue
            address = profile.get("tokenAddress")
            if address and profile.get("icon"):
                icons[address] = profile["icon"]
        return icons

    async def load_snapshot(self, limit: int) -> MarketSnapshot:
        """
        Charge un snapshot complet: boosts, paires et icônes

        Args:
            limit: Nombre de tokens affichés (détermine la taille de l'échantillon)

        Returns:
            MarketSnapshot
        """
        if self.session is not None:
            return await self._load(self.session, limit)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            return await self._load(session, limit)

    async def _load(self, session: aiohttp.ClientSession, limit: int) -> MarketSnapshot:
        started = time.time()
        boosts = await self.fetch_boosts(session)
        addresses = sample_addresses(boosts, limit)
        pairs = await self.fetch_pairs(session, addresses)
        icons = await self.fetch_profiles(session)

        self.last_update_time = time.time()
        logger.info(f"Found {len(pairs)} pairs for {len(addresses)} boosted tokens "
                    f"({len(icons)} icons) in {self.last_update_time - started:.2f}s")

        return MarketSnapshot(
            records=list(pairs.values()),
            boosts=boosts,
            icons=icons,
            fetched_at=self.last_update_time,
        )
