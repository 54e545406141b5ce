"""
Configuration du client Launchpad
"""

import os
import json
import logging
from typing import Dict, Any

from calculator import SaleEconomics, parse_amount

logger = logging.getLogger("config")

# Configuration par défaut
DEFAULT_CONFIG = {
    # RPC + Contracts
    "RPC_HTTP_ENDPOINT": "http://127.0.0.1:8545",
    "ERC20_FACTORY_ADDRESS": "",
    "LST_PRESALE_ADDRESS": "",
    "WALLET_ADDRESS": "",

    # Scan & Timing
    "SALE_POLL_INTERVAL_SECONDS": 10,
    "RECEIPT_TIMEOUT_SECONDS": 0,
    "RECEIPT_POLL_LATENCY_SECONDS": 2.0,
    "REPORT_INTERVAL_SECONDS": 60,
    "EVENT_LOOKBACK_BLOCKS": 5000,

    # Sale economics (amounts as strings, parsed as Decimal)
    "PRICE_ETH": "0.0001",
    "FEE_RATE": "0.025",
    "SALE_CAP_TOKENS": 3_000_000,
    "MIN_PURCHASE_ETH": "0.0001",
    "MIN_LIQUIDITY_ETH": "0.001",
    "DEFAULT_CREATION_FEE_ETH": "0.01",
    "TOKEN_DECIMALS": 18,
    "DISPLAY_PLACES": 6,

    # Notifier
    "ENABLE_TELEGRAM": False,
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",
}


def load_config(config_file: str = "config.json") -> Dict[str, Any]:
    """
    Charge la configuration depuis le fichier config.json
    Si le fichier n'existe pas, crée un fichier avec la configuration par défaut

    Returns:
        Dictionnaire de configuration
    """
    if os.environ.get("USE_ENV_CONFIG", "").lower() == "true":
        logger.info("Chargement de la configuration depuis les variables d'environnement")
        config = load_config_from_env()
    else:
        if not os.path.exists(config_file):
            with open(config_file, "w") as f:
                json.dump(DEFAULT_CONFIG, f, indent=2)
            logger.info(f"Fichier de configuration créé: {config_file}")
            return dict(DEFAULT_CONFIG)

        try:
            with open(config_file, "r") as f:
                config = json.load(f)
            logger.info(f"Configuration chargée depuis: {config_file}")
        except (OSError, ValueError) as e:
            logger.error(f"Erreur lors du chargement de la configuration: {e}")
            logger.info("Utilisation de la configuration par défaut")
            return dict(DEFAULT_CONFIG)

    # Fusion avec les clés manquantes
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def load_config_from_env() -> Dict[str, Any]:
    """
    Charge la configuration depuis les variables d'environnement

    Returns:
        Dictionnaire de configuration
    """
    config = {}

    for key, default_value in DEFAULT_CONFIG.items():
        env_value = os.environ.get(key)

        if env_value is not None:
            try:
                if isinstance(default_value, bool):
                    config[key] = env_value.lower() == "true"
                elif isinstance(default_value, int):
                    config[key] = int(env_value)
                elif isinstance(default_value, float):
                    config[key] = float(env_value)
                else:
                    config[key] = env_value
            except ValueError as parse_err:
                logger.warning(f"Impossible de parser la variable d'env {key}: {parse_err}. Valeur par défaut utilisée.")
                config[key] = default_value
        else:
            config[key] = default_value

    return config


def save_config(config: Dict[str, Any], config_file: str = "config.json") -> bool:
    """
    Sauvegarde la configuration dans le fichier config.json

    Args:
        config: Dictionnaire de configuration

    Returns:
        True si la sauvegarde a réussi, False sinon
    """
    try:
        with open(config_file, "w") as f:
            json.dump(config, f, indent=2)
        logger.info(f"Configuration sauvegardée dans: {config_file}")
        return True
    except OSError as e:
        logger.error(f"Erreur lors de la sauvegarde de la configuration: {e}")
        return False


def economics_from_config(config: Dict[str, Any]) -> SaleEconomics:
    """
    Construit les constantes économiques de la vente à partir de la configuration.
    Une valeur illisible retombe sur la valeur par défaut.
    """
    def amount(key):
        value = parse_amount(config.get(key, DEFAULT_CONFIG[key]))
        if value is None:
            logger.warning(f"Valeur invalide pour {key}: {config.get(key)!r}. Valeur par défaut utilisée.")
            value = parse_amount(DEFAULT_CONFIG[key])
        return value

    return SaleEconomics(
        price=amount("PRICE_ETH"),
        fee_rate=amount("FEE_RATE"),
        sale_cap=int(config.get("SALE_CAP_TOKENS", DEFAULT_CONFIG["SALE_CAP_TOKENS"])),
        min_purchase=amount("MIN_PURCHASE_ETH"),
        min_liquidity=amount("MIN_LIQUIDITY_ETH"),
        default_creation_fee=amount("DEFAULT_CREATION_FEE_ETH"),
        token_decimals=int(config.get("TOKEN_DECIMALS", DEFAULT_CONFIG["TOKEN_DECIMALS"])),
        display_places=int(config.get("DISPLAY_PLACES", DEFAULT_CONFIG["DISPLAY_PLACES"])),
    )
