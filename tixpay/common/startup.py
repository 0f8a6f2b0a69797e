"""Startup-time helpers for safe config logging."""

from pydantic import SecretStr

from tixpay.common.config import GatewaySettings
from tixpay.common.logging import logger


def _safe_value(name: str, value) -> str:
    """Return a printable setting value with secret-like fields redacted."""

    if isinstance(value, SecretStr):
        return "<set>" if value.get_secret_value() else "<unset>"
    if any(secret in name.upper() for secret in ["KEY", "SECRET", "PASSWORD", "TOKEN", "PIN"]):
        return "<redacted>" if value else "<unset>"
    return str(value)


def log_startup_config(settings: GatewaySettings, keys: list[str]) -> None:
    """Log selected settings for quick troubleshooting."""

    config = {"service": settings.service_name, "server_url": settings.server_url}
    for key in keys:
        config[key] = _safe_value(key, getattr(settings, key, None))
    logger.info("startup_config=%s", config)
