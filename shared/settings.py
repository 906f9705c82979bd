"""Configuration for the dispatcher and the reconciliation loop.

Values are read from the environment (prefix ``ORDER_ALERTS_``) or a ``.env``
file, and the resulting objects are passed explicitly to the components that
need them.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_PREFIX = "ORDER_ALERTS_"


class DispatchSettings(BaseSettings):
    """Outbound messaging provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_file=ENV_FILE, extra="ignore"
    )

    api_url: str = Field(
        default="",
        description="Base URL of the SMS/WhatsApp/email provider gateway",
    )
    api_key: str = Field(
        default="",
        description="Bearer token sent with every provider request",
    )
    sms_sender_id: str = Field(
        default="TailorBuddy",
        description="Sender id placed in the 'from' field of SMS requests",
    )
    default_country_code: str = Field(
        default="+91",
        description="Prefix added to mobile numbers given without one",
        pattern=r"^\+\d{1,4}$",
    )
    shop_name: str = Field(default="Tailor Bill Buddy")
    shop_contact: str = Field(
        default="+91-XXXXXXXXXX",
        description="Phone number quoted in customer messages",
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)


class ReconciliationSettings(BaseSettings):
    """Timing of the notification refresh loop."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_file=ENV_FILE, extra="ignore"
    )

    refresh_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Full refresh period independent of push events",
    )
    resubscribe_delay_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Wait before re-establishing a dropped change subscription",
    )
