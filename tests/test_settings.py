"""Config loading, profile overlay, environment overrides, validation."""

import pytest

from predsettle.config.settings import Settings, get_settings, load_config
from predsettle.errors import ConfigError

DEFAULT_TOML = """
[ledger]
rpc_url = "https://rpc.example"
wallet_path = "/keys/id.json"

[resolver]
poll_interval_sec = 90
max_concurrency = 6

[settlement]
fee_bps = 150

[oracle.feeds]
BTC = "0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"
"""


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "default.toml").write_text(DEFAULT_TOML)
    (tmp_path / "fast.toml").write_text("[resolver]\npoll_interval_sec = 5\n")
    return tmp_path


def test_defaults_and_values(config_dir, monkeypatch):
    for var in ("PREDSETTLE_RPC_URL", "ANCHOR_PROVIDER_URL", "PREDSETTLE_WALLET", "ANCHOR_WALLET"):
        monkeypatch.delenv(var, raising=False)
    s = get_settings(config_dir=config_dir)
    assert s.rpc_url == "https://rpc.example"
    assert s.poll_interval_sec == 90
    assert s.max_concurrency == 6
    assert s.fee_bps == 150
    assert s.attempt_timeout_sec == 60.0
    assert s.shard_id == 0
    assert list(s.feed_table) == ["BTC"]


def test_profile_overlay(config_dir):
    raw = load_config("fast", config_dir)
    assert raw["resolver"] == {"poll_interval_sec": 5, "max_concurrency": 6}


def test_missing_profile(config_dir):
    with pytest.raises(ConfigError):
        load_config("nope", config_dir)


def test_environment_overrides():
    s = Settings.from_dict({}, env={"ANCHOR_PROVIDER_URL": "http://a", "PREDSETTLE_WALLET": "/w.json"})
    assert s.rpc_url == "http://a"
    assert str(s.wallet_path) == "/w.json"
    s = Settings.from_dict({}, env={"ANCHOR_PROVIDER_URL": "http://a", "PREDSETTLE_RPC_URL": "http://b"})
    assert s.rpc_url == "http://b"


@pytest.mark.parametrize(
    "raw",
    [
        {"settlement": {"fee_bps": 10_001}},
        {"resolver": {"poll_interval_sec": 0}},
        {"resolver": {"max_concurrency": 0}},
        {"oracle": {"feeds": {"BTC": "0x1234"}}},
        {"oracle": {"shard_id": 70_000}},
    ],
)
def test_invalid_values(raw):
    with pytest.raises(ConfigError):
        Settings.from_dict(raw).validate()


def test_default_feed_table_used_when_unset():
    s = Settings.from_dict({})
    s.validate()
    assert set(s.feed_table) == {"BTC", "ETH", "SOL"}


@pytest.mark.parametrize(
    "raw",
    [
        {"settlement": {"fee_bps": "2%"}},
        {"resolver": {"poll_interval_sec": "soon"}},
        {"resolver": {"max_concurrency": True}},
        {"ledger": {"request_timeout_sec": [20]}},
        {"oracle": {"request_timeout_sec": 0}},
    ],
)
def test_non_numeric_values_are_config_errors(raw):
    with pytest.raises(ConfigError):
        Settings.from_dict(raw).validate()


def test_bad_value_in_file_is_config_error(config_dir):
    (config_dir / "broken.toml").write_text('[settlement]\nfee_bps = "2%"\n')
    with pytest.raises(ConfigError):
        get_settings("broken", config_dir)
