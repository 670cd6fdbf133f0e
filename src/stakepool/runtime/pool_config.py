# src/stakepool/runtime/pool_config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from stakepool.ledger.constants import (
    BPS_DENOMINATOR,
    DEFAULT_EARLY_PENALTY_RATE_BPS,
    DEFAULT_MAX_POOL_BALANCE,
    DEFAULT_MAX_STAKE_AMOUNT,
    DEFAULT_MAX_STAKES_PER_OWNER,
    DEFAULT_MIN_STAKE_AMOUNT,
    DEFAULT_PLANS,
    DEFAULT_UNSTAKE_DELAY,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        if isinstance(v, bool):
            return int(default)
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class PoolConfig:
    pool_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for pool state + event log.
    db_path: str
    # Where the admin capability is written on genesis (operator secret).
    admin_cap_path: str

    api_host: str
    api_port: int

    allow_unsigned_txs: bool
    log_level: str

    unstake_delay: int = DEFAULT_UNSTAKE_DELAY
    early_penalty_rate_bps: int = DEFAULT_EARLY_PENALTY_RATE_BPS
    min_stake_amount: int = DEFAULT_MIN_STAKE_AMOUNT
    max_stake_amount: int = DEFAULT_MAX_STAKE_AMOUNT
    max_pool_balance: int = DEFAULT_MAX_POOL_BALANCE
    max_stakes_per_owner: int = DEFAULT_MAX_STAKES_PER_OWNER

    # (duration_seconds, apy_bps)
    plans: Tuple[Tuple[int, int], ...] = DEFAULT_PLANS
    # {account_id: {"balance": int, "pubkey": hex}}
    accounts: Json = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_pool_config(cfg: PoolConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.pool_id, str) or not cfg.pool_id.strip():
        raise ValueError("pool_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if mode == "prod" and cfg.allow_unsigned_txs:
        raise ValueError("allow_unsigned_txs must be false in prod mode")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    for name, p in (("db_path", cfg.db_path), ("admin_cap_path", cfg.admin_cap_path)):
        if not isinstance(p, str) or not p.strip():
            raise ValueError(f"{name} must be a non-empty string")

    if int(cfg.unstake_delay) < 0:
        raise ValueError(f"unstake_delay must be >= 0; got: {cfg.unstake_delay}")
    if not 0 <= int(cfg.early_penalty_rate_bps) <= BPS_DENOMINATOR:
        raise ValueError(f"early_penalty_rate_bps must be 0..{BPS_DENOMINATOR}; got: {cfg.early_penalty_rate_bps}")
    if int(cfg.min_stake_amount) < 0 or int(cfg.min_stake_amount) > int(cfg.max_stake_amount):
        raise ValueError("min_stake_amount must be in 0..max_stake_amount")
    if int(cfg.max_pool_balance) <= 0:
        raise ValueError(f"max_pool_balance must be > 0; got: {cfg.max_pool_balance}")
    if int(cfg.max_stakes_per_owner) <= 0:
        raise ValueError(f"max_stakes_per_owner must be > 0; got: {cfg.max_stakes_per_owner}")

    for i, (duration, apy) in enumerate(cfg.plans):
        if int(duration) <= 0 or int(apy) < 0:
            raise ValueError(f"plans[{i}] must have duration > 0 and apy_bps >= 0")

    for aid, acct in cfg.accounts.items():
        if not str(aid).strip():
            raise ValueError("genesis account ids must be non-empty")
        if _as_int(acct.get("balance"), -1) < 0:
            raise ValueError(f"genesis account {aid!r} needs a non-negative integer balance")


def default_pool_config() -> PoolConfig:
    return PoolConfig(
        pool_id="stakepool-dev",
        # Production-safe defaults: without an explicit config file we must
        # not silently drop into a permissive development posture.
        mode="prod",
        db_path="./data/stakepool.db",
        admin_cap_path="./data/admin_cap.json",
        api_host="127.0.0.1",
        api_port=8080,
        allow_unsigned_txs=False,
        log_level="INFO",
    )


def _parse_plans(raw: Any, default: Tuple[Tuple[int, int], ...]) -> Tuple[Tuple[int, int], ...]:
    if raw is None:
        return default
    if not isinstance(raw, list):
        raise ValueError("plans must be a list of {duration, apy_bps}")
    out: List[Tuple[int, int]] = []
    for i, p in enumerate(raw):
        if not isinstance(p, dict):
            raise ValueError(f"plans[{i}] must be a mapping")
        out.append((_as_int(p.get("duration"), 0), _as_int(p.get("apy_bps"), -1)))
    return tuple(out)


def _parse_accounts(raw: Any) -> Json:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("accounts must be a mapping of account_id -> {balance, pubkey}")
    out: Json = {}
    for aid, rec in raw.items():
        rec = rec if isinstance(rec, dict) else {}
        # Unparseable balances become -1 so validation rejects them.
        acct: Json = {"nonce": 0, "balance": _as_int(rec.get("balance", 0), -1)}
        pk = str(rec.get("pubkey") or "").strip()
        if pk:
            acct["pubkey"] = pk
        out[str(aid)] = acct
    return out


def read_pool_config_file(path: str) -> PoolConfig:
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("pool config must be a YAML mapping")

    d = default_pool_config()
    pool = raw.get("pool") if isinstance(raw.get("pool"), dict) else {}

    cfg = PoolConfig(
        pool_id=_as_str(raw.get("pool_id"), d.pool_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        admin_cap_path=_as_str(raw.get("admin_cap_path"), d.admin_cap_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        allow_unsigned_txs=_as_bool(raw.get("allow_unsigned_txs"), d.allow_unsigned_txs),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        unstake_delay=_as_int(pool.get("unstake_delay"), d.unstake_delay),
        early_penalty_rate_bps=_as_int(pool.get("early_penalty_rate_bps"), d.early_penalty_rate_bps),
        min_stake_amount=_as_int(pool.get("min_stake_amount"), d.min_stake_amount),
        max_stake_amount=_as_int(pool.get("max_stake_amount"), d.max_stake_amount),
        max_pool_balance=_as_int(pool.get("max_pool_balance"), d.max_pool_balance),
        max_stakes_per_owner=_as_int(pool.get("max_stakes_per_owner"), d.max_stakes_per_owner),
        plans=_parse_plans(raw.get("plans"), d.plans),
        accounts=_parse_accounts(raw.get("accounts")),
    )

    validate_pool_config(cfg)
    return cfg


def load_pool_config(*, config_path: Optional[str] = None) -> PoolConfig:
    p = config_path or os.environ.get("STAKEPOOL_CONFIG_PATH")
    if p:
        return read_pool_config_file(p)

    cfg = default_pool_config()
    validate_pool_config(cfg)
    return cfg


__all__ = ["PoolConfig", "default_pool_config", "load_pool_config", "read_pool_config_file", "validate_pool_config"]
