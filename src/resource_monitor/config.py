from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Parse an int env var with a default."""
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    """Parse a float env var with a default."""
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return float(default)


def _env_bool(name: str, default: bool = False) -> bool:
    """Parse a bool env var (true/false/1/0/yes/no/on/off)."""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "y", "on"):
        return True
    if val in ("0", "false", "no", "n", "off"):
        return False
    return bool(default)


def _clamp_int(v: int, lo: int, hi: int) -> int:
    """Clamp integer to [lo, hi]."""
    return max(lo, min(hi, int(v)))


@dataclass(frozen=True)
class MonitorConfig:
    """Runtime configuration loaded from env."""

    gateway_base_url: str
    gateway_api_token: Optional[str]
    gateway_timeout_sec: float

    # Identity of the session owner; resolved upstream (no auth in this service).
    owner_id: str

    metrics_retention_days: int
    metrics_refresh_interval_sec: int
    rule_check_interval_sec: int

    # Refresh retry policy: attempts after the first call, linear backoff base.
    refresh_retry_attempts: int
    refresh_backoff_base_sec: float

    # Disable to run the API without background loops (manual refresh/check only).
    loops_enabled: bool = True

    # Fetch initial metrics in the background right after a resource is registered.
    refresh_on_register: bool = True

    # Browser origins allowed by CORS; empty means no cross-origin access.
    cors_allow_origins: Tuple[str, ...] = ()


def _env_origins() -> Tuple[str, ...]:
    """FRONTEND_URL plus the comma-separated CORS_ALLOW_ORIGINS, de-duplicated in order."""
    raw = [os.getenv("FRONTEND_URL") or ""] + (os.getenv("CORS_ALLOW_ORIGINS") or "").split(",")
    origins = [o.strip().rstrip("/") for o in raw if o.strip()]
    return tuple(dict.fromkeys(origins))


def _sanitize_token_for_logs(token: Optional[str]) -> str:
    """Mask all but the last 4 characters of an API token."""
    if not token:
        return "unset"
    return "***" + token[-4:] if len(token) > 8 else "***"


# PUBLIC_INTERFACE
def load_config() -> MonitorConfig:
    """Load MonitorConfig from env vars."""
    base_url = (os.getenv("GATEWAY_BASE_URL") or "").strip()
    if not base_url:
        # Keep failure explicit and actionable; startup will log the exception.
        raise RuntimeError("Gateway URL not configured. Provide GATEWAY_BASE_URL (http:// or https://).")

    if not re.match(r"^https?://", base_url):
        raise RuntimeError("GATEWAY_BASE_URL appears invalid (must start with http:// or https://).")

    token = os.getenv("GATEWAY_API_TOKEN") or None

    timeout = _env_float("GATEWAY_TIMEOUT_SEC", 10.0)
    owner_id = (os.getenv("MONITOR_OWNER_ID") or "local").strip() or "local"

    retention_days = _env_int("METRICS_RETENTION_DAYS", 30)
    refresh_interval = _env_int("METRICS_REFRESH_INTERVAL_SEC", 8 * 3600)
    rule_interval = _env_int("RULE_CHECK_INTERVAL_SEC", 3600)

    retry_attempts = _env_int("REFRESH_RETRY_ATTEMPTS", 3)
    backoff_base = _env_float("REFRESH_BACKOFF_BASE_SEC", 2.0)

    loops_enabled = _env_bool("MONITOR_LOOPS_ENABLED", True)
    refresh_on_register = _env_bool("MONITOR_REFRESH_ON_REGISTER", True)

    timeout = max(0.5, min(300.0, timeout))
    retention_days = _clamp_int(retention_days, 1, 365)
    refresh_interval = _clamp_int(refresh_interval, 1, 7 * 24 * 3600)
    rule_interval = _clamp_int(rule_interval, 1, 7 * 24 * 3600)
    retry_attempts = _clamp_int(retry_attempts, 0, 10)
    backoff_base = max(0.0, min(60.0, backoff_base))

    logger.info(
        "Resolved gateway url=%s token=%s owner=%s",
        base_url,
        _sanitize_token_for_logs(token),
        owner_id,
    )

    return MonitorConfig(
        gateway_base_url=base_url.rstrip("/"),
        gateway_api_token=token,
        gateway_timeout_sec=timeout,
        owner_id=owner_id,
        metrics_retention_days=retention_days,
        metrics_refresh_interval_sec=refresh_interval,
        rule_check_interval_sec=rule_interval,
        refresh_retry_attempts=retry_attempts,
        refresh_backoff_base_sec=backoff_base,
        loops_enabled=loops_enabled,
        refresh_on_register=refresh_on_register,
        cors_allow_origins=_env_origins(),
    )
