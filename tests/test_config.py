import json
from decimal import Decimal

from calculator import DEFAULT_ECONOMICS
from config import DEFAULT_CONFIG, economics_from_config, load_config, save_config


def test_load_config_creates_default_file(tmp_path):
    path = tmp_path / "config.json"
    config = load_config(str(path))
    assert config == DEFAULT_CONFIG
    assert json.loads(path.read_text())["SALE_POLL_INTERVAL_SECONDS"] == 10


def test_load_config_merges_missing_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"LST_PRESALE_ADDRESS": "0xabc", "FEE_RATE": "0.05"}))
    config = load_config(str(path))
    assert config["LST_PRESALE_ADDRESS"] == "0xabc"
    assert config["FEE_RATE"] == "0.05"
    assert config["PRICE_ETH"] == "0.0001"


def test_load_config_from_env(monkeypatch):
    monkeypatch.setenv("USE_ENV_CONFIG", "true")
    monkeypatch.setenv("SALE_POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("ENABLE_TELEGRAM", "TRUE")
    monkeypatch.setenv("SALE_CAP_TOKENS", "not-a-number")
    config = load_config("does-not-matter.json")
    assert config["SALE_POLL_INTERVAL_SECONDS"] == 5
    assert config["ENABLE_TELEGRAM"] is True
    assert config["SALE_CAP_TOKENS"] == 3_000_000


def test_save_config_round_trip(tmp_path):
    path = tmp_path / "config.json"
    assert save_config({"WALLET_ADDRESS": "0x1"}, str(path))
    assert load_config(str(path))["WALLET_ADDRESS"] == "0x1"


def test_economics_defaults_match_sale():
    assert economics_from_config(DEFAULT_CONFIG) == DEFAULT_ECONOMICS


def test_economics_from_config_overrides_and_bad_values():
    economics = economics_from_config({**DEFAULT_CONFIG, "FEE_RATE": "0.05", "PRICE_ETH": "abc"})
    assert economics.fee_rate == Decimal("0.05")
    assert economics.price == Decimal("0.0001")
