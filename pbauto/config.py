"""Connection configuration.

Host and domain usually arrive as plain strings from an operator form; the
model coerces them and rejects values the wire format cannot carry.
"""

import os

from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_PORT

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class DeviceConfig(BaseModel):
    """Target server for a client and its timecode connections."""

    host: str = Field(..., min_length=1, description="Server hostname or IP")
    domain: int = Field(0, ge=INT32_MIN, le=INT32_MAX, description="Server domain")
    port: int = Field(DEFAULT_PORT, gt=0, lt=65536, description="Automation TCP port")
    connect_timeout: float = Field(5.0, gt=0, description="TCP connect timeout in seconds")

    @field_validator("host")
    @classmethod
    def _strip_host(cls, value: str) -> str:
        return value.strip()

    @field_validator("domain", mode="before")
    @classmethod
    def _blank_domain(cls, value):
        if isinstance(value, str) and not value.strip():
            return 0
        return value

    @classmethod
    def from_env(cls) -> "DeviceConfig":
        """Load configuration from environment variables.

        Raises:
            KeyError: If PBAUTO_HOST is not set
        """
        return cls(
            host=os.environ["PBAUTO_HOST"],
            domain=os.environ.get("PBAUTO_DOMAIN", "0"),
            port=os.environ.get("PBAUTO_PORT", str(DEFAULT_PORT)),
        )
