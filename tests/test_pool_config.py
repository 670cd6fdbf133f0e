from __future__ import annotations

from pathlib import Path

import pytest

from stakepool.ledger.constants import DEFAULT_MIN_STAKE_AMOUNT, DEFAULT_PLANS
from stakepool.runtime.pool_config import default_pool_config, load_pool_config, read_pool_config_file

_YAML = """
pool_id: pool-yaml
mode: dev
db_path: ./data/test.db
allow_unsigned_txs: true
api_port: 9090
pool:
  unstake_delay: 3600
  early_penalty_rate_bps: 250
  max_stakes_per_owner: 5
plans:
  - {duration: 86400, apy_bps: 100}
  - {duration: 31536000, apy_bps: 1200}
accounts:
  alice: {balance: 1000, pubkey: "ab"}
  bob: {balance: 5}
"""


def _write(tmp_path: Path, text: str) -> str:
    p = tmp_path / "pool.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_defaults_are_production_safe() -> None:
    cfg = default_pool_config()
    assert cfg.mode == "prod"
    assert cfg.allow_unsigned_txs is False
    assert cfg.min_stake_amount == DEFAULT_MIN_STAKE_AMOUNT
    assert cfg.plans == DEFAULT_PLANS


def test_read_yaml_config(tmp_path: Path) -> None:
    cfg = read_pool_config_file(_write(tmp_path, _YAML))
    assert cfg.pool_id == "pool-yaml"
    assert cfg.mode == "dev"
    assert cfg.api_port == 9090
    assert cfg.allow_unsigned_txs is True
    assert cfg.unstake_delay == 3600
    assert cfg.early_penalty_rate_bps == 250
    assert cfg.max_stakes_per_owner == 5
    # Unset pool fields keep their defaults.
    assert cfg.min_stake_amount == DEFAULT_MIN_STAKE_AMOUNT
    assert cfg.plans == ((86400, 100), (31536000, 1200))
    assert cfg.accounts["alice"] == {"nonce": 0, "balance": 1000, "pubkey": "ab"}
    assert cfg.accounts["bob"] == {"nonce": 0, "balance": 5}


def test_load_from_env_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKEPOOL_CONFIG_PATH", _write(tmp_path, _YAML))
    assert load_pool_config().pool_id == "pool-yaml"


def test_load_without_path_uses_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STAKEPOOL_CONFIG_PATH", raising=False)
    assert load_pool_config() == default_pool_config()


@pytest.mark.parametrize(
    "text",
    [
        "- not\n- a mapping\n",
        "mode: staging\n",
        "mode: prod\nallow_unsigned_txs: true\n",
        "api_port: 70000\n",
        "pool:\n  early_penalty_rate_bps: 10001\n",
        "pool:\n  min_stake_amount: 10\n  max_stake_amount: 5\n",
        "plans:\n  - {duration: 0, apy_bps: 1}\n",
        "plans: 3\n",
        "accounts:\n  alice: {balance: -1}\n",
        "accounts:\n  alice: {balance: lots}\n",
        "accounts:\n  alice: {balance: true}\n",
    ],
)
def test_invalid_config_fails_fast(tmp_path: Path, text: str) -> None:
    with pytest.raises(ValueError):
        read_pool_config_file(_write(tmp_path, text))
