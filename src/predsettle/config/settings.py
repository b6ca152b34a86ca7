"""Layered TOML configuration: default.toml, an optional profile, then environment."""

from __future__ import annotations

import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Mapping

import structlog

from predsettle.errors import ConfigError
from predsettle.feeds import feed_id_to_bytes, normalize_feed_id

# repo checkout first, then ./config of the working directory
_REPO_CONFIG = Path(__file__).resolve().parents[3] / "config"
_LOCAL_CONFIG = Path.cwd() / "config"

SECTIONS = ("ledger", "oracle", "resolver", "settlement", "storage", "logging")

DEFAULT_FEEDS = {
    "BTC": "0xe62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43",
    "ETH": "0xff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace",
    "SOL": "0xef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d",
}

# env var -> (section, key); the first variable set in each group wins
ENV_OVERRIDES = (
    (("PREDSETTLE_RPC_URL", "ANCHOR_PROVIDER_URL"), ("ledger", "rpc_url")),
    (("PREDSETTLE_WALLET", "ANCHOR_WALLET"), ("ledger", "wallet_path")),
)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e


def _overlay(base: dict[str, Any], top: dict[str, Any]) -> dict[str, Any]:
    """Nested merge; tables merge key by key, anything else in `top` replaces."""
    merged = dict(base)
    for key, value in top.items():
        below = merged.get(key)
        merged[key] = _overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else value
    return merged


def _config_root(config_dir: Path | None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    return _LOCAL_CONFIG if _LOCAL_CONFIG.is_dir() else _REPO_CONFIG


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Raw config dict: default.toml (if present) with `<profile>.toml` laid over it."""
    root = _config_root(config_dir)
    default_file = root / "default.toml"
    raw = _read_toml(default_file) if default_file.exists() else {}
    if not profile:
        return raw
    profile_file = root / f"{profile}.toml"
    if not profile_file.exists():
        raise ConfigError(f"Config profile not found: {profile_file}")
    return _overlay(raw, _read_toml(profile_file))


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return validated Settings from merged config plus environment overrides."""
    settings = Settings.from_dict(load_config(profile, config_dir), env=os.environ)
    settings.validate()
    return settings


class Settings:
    """Resolved configuration, one dict per TOML table, read through typed properties."""

    def __init__(self, sections: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        sections = sections or {}
        for name in SECTIONS:
            setattr(self, name, dict(sections.get(name) or {}))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], env: Mapping[str, str] | None = None) -> Settings:
        settings = cls({name: raw.get(name) for name in SECTIONS})
        env = env or {}
        for names, (section, key) in ENV_OVERRIDES:
            value = next((env[n] for n in names if env.get(n)), None)
            if value:
                getattr(settings, section)[key] = value
        return settings

    def _number(self, section: str, key: str, default: float, kind: type) -> Any:
        raw = getattr(self, section).get(key, default)
        if isinstance(raw, bool):
            raise ConfigError(f"{section}.{key} must be a number, got {raw!r}")
        try:
            return kind(raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{section}.{key} must be a number, got {raw!r}") from e

    def validate(self) -> None:
        """Raise ConfigError on values the engine cannot run with."""
        if not 0 <= self.fee_bps <= 10_000:
            raise ConfigError(f"settlement.fee_bps must be within 0..10000, got {self.fee_bps}")
        if self.poll_interval_sec <= 0:
            raise ConfigError("resolver.poll_interval_sec must be positive")
        if self.max_concurrency < 1:
            raise ConfigError("resolver.max_concurrency must be at least 1")
        if self.attempt_timeout_sec <= 0:
            raise ConfigError("resolver.attempt_timeout_sec must be positive")
        if not 0 <= self.shard_id <= 0xFFFF:
            raise ConfigError("oracle.shard_id must fit in an unsigned 16-bit integer")
        if not self.feed_table:
            raise ConfigError("oracle.feeds must name at least one feed")
        for name in ("ledger_timeout_sec", "confirm_timeout_sec", "oracle_timeout_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

    # accessors; defaults match config/default.toml
    @property
    def rpc_url(self) -> str:
        return self.ledger.get("rpc_url", "https://api.devnet.solana.com")

    @property
    def program_id(self) -> str:
        return self.ledger.get("program_id", "6kdWRDeTupf2DK3A8p1JRjh6adpFStzLZjBany25GY97")

    @property
    def wallet_path(self) -> Path:
        return Path(self.ledger.get("wallet_path", "~/.config/solana/id.json")).expanduser()

    @property
    def commitment(self) -> str:
        return self.ledger.get("commitment", "confirmed")

    @property
    def ledger_timeout_sec(self) -> float:
        return self._number("ledger", "request_timeout_sec", 20.0, float)

    @property
    def confirm_timeout_sec(self) -> float:
        return self._number("ledger", "confirm_timeout_sec", 30.0, float)

    @property
    def hermes_url(self) -> str:
        return self.oracle.get("hermes_url", "https://hermes.pyth.network")

    @property
    def receiver_program_id(self) -> str:
        return self.oracle.get("receiver_program_id", "7UVimffxr9ow1uXYxsr4LHAcV58mLzhmwaeKvJ1iqJQ9")

    @property
    def shard_id(self) -> int:
        return self._number("oracle", "shard_id", 0, int)

    @property
    def oracle_timeout_sec(self) -> float:
        return self._number("oracle", "request_timeout_sec", 15.0, float)

    @property
    def feed_table(self) -> dict[str, str]:
        """Symbol -> normalized 0x feed id."""
        raw = self.oracle.get("feeds") or DEFAULT_FEEDS
        table = {}
        for symbol, feed_id in raw.items():
            try:
                feed_id_to_bytes(feed_id)
            except ValueError as e:
                raise ConfigError(f"oracle.feeds.{symbol}: {e}") from e
            table[symbol.upper()] = normalize_feed_id(feed_id)
        return table

    @property
    def poll_interval_sec(self) -> float:
        return self._number("resolver", "poll_interval_sec", 120, float)

    @property
    def max_concurrency(self) -> int:
        return self._number("resolver", "max_concurrency", 4, int)

    @property
    def attempt_timeout_sec(self) -> float:
        return self._number("resolver", "attempt_timeout_sec", 60.0, float)

    @property
    def fee_bps(self) -> int:
        return self._number("settlement", "fee_bps", 200, int)

    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predsettle.duckdb")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Route structlog to stderr at the configured level; stdout stays for command output."""
    chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.logging_format == "json":
        chain += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=chain,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
