"""Environment-driven settings for the Dwolla gateway adapter.

The entrypoint loads one `GatewaySettings` at startup and hands it to every
component explicitly. Variables use the `TIXPAY_` prefix (see `.env.example`).
"""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


SANDBOX_SERVER = "https://uat.dwolla.com/"
PRODUCTION_SERVER = "https://www.dwolla.com/"
OAUTH_REST_API = "oauth/rest/"


class GatewaySettings(BaseSettings):
    """Typed view of the payment method options."""

    service_name: str = "tixpay"
    log_level: str = "INFO"

    dwolla_id: str = ""
    api_key: str = ""
    api_secret: SecretStr = SecretStr("")
    oauth_token: SecretStr = SecretStr("")
    pin: SecretStr = SecretStr("")

    assume_costs: bool = False
    funding_sources: bool = True
    guest_checkout: bool = True
    additional_funding_sources: bool = True
    refunds_source: str = "Balance"
    sandbox: bool = True
    test: bool = True

    supported_currencies: list[str] = ["USD"]
    payment_method_id: str = "dwolla"
    tickets_url: str = "http://localhost:8000/tickets"
    event_name: str = "Event"
    webhook_signature_header: str = "X-Dwolla-Signature"

    connect_timeout_seconds: float = 5.0
    request_timeout_seconds: float = 5.0

    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    model_config = SettingsConfigDict(env_prefix="TIXPAY_", env_file=".env", extra="ignore")

    @property
    def server_url(self) -> str:
        """Off-site gateway / REST host selected by sandbox mode."""

        return SANDBOX_SERVER if self.sandbox else PRODUCTION_SERVER

    @property
    def rest_api_url(self) -> str:
        return self.server_url + OAUTH_REST_API


@lru_cache
def get_settings() -> GatewaySettings:
    """Process-wide settings for the HTTP entrypoint."""

    return GatewaySettings()
