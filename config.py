"""
Configuration du Trench Board
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("config")

TIMEFRAMES = ("m5", "h1", "h6", "h24")
REFERENCE_TIMEFRAME = "h1"
MIN_RESULT_LIMIT = 5
MAX_RESULT_LIMIT = 300

# Configuration par défaut
DEFAULT_CONFIG = {
    # Scoring
    "CHAIN_ID": "solana",
    "TIMEFRAME": "h1",
    "MIN_LIQUIDITY_USD": 10000,
    "RESULT_LIMIT": 20,
    "PRICE_WEIGHT": 0.5,
    "VOLUME_WEIGHT": 0.3,
    "TXN_WEIGHT": 0.1,
    "BOOST_WEIGHT": 0.1,
    "QUERY": "",

    # Scan & Timing
    "REFRESH_INTERVAL_SECONDS": 60,
    "FRAME_INTERVAL_SECONDS": 0.016,

    # DexScreener
    "DEX_API_BASE_URL": "https://api.dexscreener.com",
    "PAIR_BATCH_SIZE": 30,
    "HTTP_TIMEOUT_SECONDS": 10,

    # Layout
    "CONTAINER_WIDTH": 1202,
    "LAYOUT_SEED": 7,

    # Output
    "SNAPSHOT_SVG_FILE": "",
    "LEADERBOARD_SIZE": 10
}


@dataclass(frozen=True)
class Weights:
    price: float = 0.5
    volume: float = 0.3
    txns: float = 0.1
    boost: float = 0.1


@dataclass(frozen=True)
class ScoringConfig:
    """
    Immutable value handed to the scorer on every recompute.
    Built from the config dict so nothing in the pipeline reads shared state.
    """
    timeframe: str = "h1"
    min_liquidity: float = 10000.0
    weights: Weights = Weights()
    query: str = ""
    limit: int = 20
    chain_id: str = "solana"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ScoringConfig":
        timeframe = str(config.get("TIMEFRAME", "h1"))
        if timeframe not in TIMEFRAMES:
            logger.warning(f"Timeframe inconnu '{timeframe}', utilisation de h1")
            timeframe = "h1"

        try:
            limit = int(config.get("RESULT_LIMIT", 20))
        except (TypeError, ValueError):
            logger.warning(f"RESULT_LIMIT invalide: {config.get('RESULT_LIMIT')!r}")
            limit = DEFAULT_CONFIG["RESULT_LIMIT"]
        limit = max(MIN_RESULT_LIMIT, min(MAX_RESULT_LIMIT, limit))

        weights = Weights(
            price=_non_negative(config.get("PRICE_WEIGHT", 0.5)),
            volume=_non_negative(config.get("VOLUME_WEIGHT", 0.3)),
            txns=_non_negative(config.get("TXN_WEIGHT", 0.1)),
            boost=_non_negative(config.get("BOOST_WEIGHT", 0.1)),
        )

        return cls(
            timeframe=timeframe,
            min_liquidity=_non_negative(config.get("MIN_LIQUIDITY_USD", 10000)),
            weights=weights,
            query=str(config.get("QUERY") or ""),
            limit=limit,
            chain_id=str(config.get("CHAIN_ID") or "solana").lower(),
        )


def _non_negative(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return max(0.0, number)


def load_config(config_file: str = "config.json") -> Dict[str, Any]:
    """
    Charge la configuration: variables d'environnement si USE_ENV_CONFIG=true,
    sinon le fichier JSON fusionné avec DEFAULT_CONFIG.
    Le fichier est réécrit quand il manque ou qu'il lui manque des clés, pour que
    toutes les options restent visibles. Un fichier illisible n'est jamais écrasé.

    Returns:
        Dictionnaire de configuration
    """
    if os.environ.get("USE_ENV_CONFIG", "").lower() == "true":
        logger.info("Configuration lue depuis les variables d'environnement")
        return load_config_from_env()

    stored = _read_config_file(config_file)
    if stored is None:
        return dict(DEFAULT_CONFIG)

    missing = [key for key in DEFAULT_CONFIG if key not in stored]
    config = {**DEFAULT_CONFIG, **stored}
    if missing:
        logger.info(f"{len(missing)} clé(s) ajoutée(s) à {config_file}: {', '.join(missing)}")
        save_config(config, config_file)
    return config


def _read_config_file(config_file: str) -> Optional[Dict[str, Any]]:
    if not os.path.exists(config_file):
        return {}
    try:
        with open(config_file, "r") as f:
            stored = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"[Config Error] {config_file} illisible: {e}. Valeurs par défaut utilisées")
        return None
    if not isinstance(stored, dict):
        logger.error(f"[Config Error] {config_file} doit contenir un objet JSON. Valeurs par défaut utilisées")
        return None
    return stored


def _coerce(raw: str, default: Any) -> Any:
    # Le type de la valeur par défaut décide du parsing
    if isinstance(default, bool):
        return raw.strip().lower() == "true"
    if isinstance(default, (int, float)):
        return type(default)(raw)
    return raw


def load_config_from_env() -> Dict[str, Any]:
    """Valeurs par défaut, surchargées par les variables d'environnement du même nom"""
    config = dict(DEFAULT_CONFIG)
    for key, default in DEFAULT_CONFIG.items():
        raw = os.environ.get(key)
        if raw is None:
            continue
        try:
            config[key] = _coerce(raw, default)
        except ValueError:
            logger.warning(f"Variable d'environnement {key}={raw!r} ignorée, valeur par défaut conservée")
    return config


def save_config(config: Dict[str, Any], config_file: str = "config.json") -> bool:
    """Écrit la configuration en JSON; False si le fichier n'a pas pu être écrit"""
    try:
        with open(config_file, "w") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        logger.error(f"[Config Error] Impossible d'écrire {config_file}: {e}")
        return False
    logger.info(f"Configuration sauvegardée dans {config_file}")
    return True
