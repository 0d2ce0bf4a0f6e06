from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from pydantic import ValidationError
from commitwatch.common.schemas import WatcherConfig
from commitwatch.common.secure_env import get_secret
from commitwatch.core.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/watcher.yaml"

# env var -> config key (dotted for nested sections)
ENV_KEYS: Dict[str, str] = {
    "ALARM_PACKAGE_ID": "target_module_id",
    "ALARM_MODULE": "module_name",
    "ALARM_CREATED_EVENT": "creation_event",
    "SETTLE_FUNCTION": "settle_function",
    "SUI_CLOCK_OBJECT": "clock_object_id",
    "SUI_RPC_URL": "rpc_endpoint",
    "CHECK_INTERVAL_MINUTES": "sweep_interval_minutes",
    "GRACE_PERIOD_MINUTES": "grace_period_minutes",
    "MAX_GAS_BUDGET": "max_fee_budget",
    "SUBMISSION_PACING_MS": "submission_pacing_ms",
    "RPC_TIMEOUT_SECONDS": "rpc_timeout_seconds",
    "RPC_RATE_LIMIT_RPS": "rpc_rate_limit_rps",
    "FETCH_CONCURRENCY": "fetch_concurrency",
    "DRY_RUN": "dry_run",
    "LOG_LEVEL": "log_level",
    "METRICS_PORT": "metrics_port",
    "SHUTDOWN_GRACE_SECONDS": "shutdown_grace_seconds",
    "FAILURE_POLICY": "failure_policy",
    "FAILURE_ESCALATION_THRESHOLD": "escalation_threshold",
    "FAILURE_BACKOFF_MAX_SWEEPS": "backoff_max_sweeps",
    "TERMINAL_ABORT_CODES": "terminal_abort_codes",
    "DISCOVERY_MODE": "discovery.mode",
    "DISCOVERY_PAGE_SIZE": "discovery.page_size",
    "DISCOVERY_MAX_PAGES": "discovery.max_pages",
    "DISCOVERY_STORE": "discovery.store",
    "DISCOVERY_STATE_PATH": "discovery.state_path",
    "DISCOVERY_REDIS_KEY": "discovery.redis_key",
    "REDIS_URL": "discovery.redis_url",
}


def load_yaml(path: str | Path, *, strict: bool = False) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    with open(p, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            if strict:
                raise ConfigurationError(f"invalid YAML in {p}: {e}") from e
            return {}
    if not isinstance(data, dict):
        if strict:
            raise ConfigurationError(f"{p} must contain a mapping")
        return {}
    return data


def _set_dotted(cfg: Dict[str, Any], dotted: str, value: Any) -> None:
    head, _, rest = dotted.partition(".")
    if not rest:
        cfg[head] = value
        return
    section = cfg.get(head)
    if not isinstance(section, dict):
        section = {}
    section = dict(section)
    section[rest] = value
    cfg[head] = section


def load_config(path: Optional[str | Path] = None, env: Optional[Mapping[str, str]] = None) -> WatcherConfig:
    """Build the watcher configuration: YAML file, overlaid by env vars, plus the signing secret.
    Raises ConfigurationError on a missing credential/package id or any invalid value.
    """
    env = os.environ if env is None else env
    cfg_path = path or env.get("COMMITWATCH_CONFIG") or DEFAULT_CONFIG_PATH
    raw: Dict[str, Any] = dict(load_yaml(cfg_path, strict=True))
    for name, key in ENV_KEYS.items():
        val = env.get(name)
        if val is not None and val != "":
            _set_dotted(raw, key, val)
    raw["signing_credential"] = get_secret("BOT_PRIVATE_KEY", env)
    if not raw.get("target_module_id"):
        raise ConfigurationError("ALARM_PACKAGE_ID (target_module_id) is required")
    try:
        return WatcherConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
