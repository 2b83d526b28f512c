"""Configuration read once from the editor host at activation."""

import enum
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger("lspsupervisor.config")

# Settings section holding the supervisor options
CONFIGURATION_SECTION = "rust-client"


class RevealOutputChannelOn(enum.IntEnum):
    """Minimum severity at which the output channel is forced into view."""

    INFO = 1
    WARN = 2
    ERROR = 3
    NEVER = 4

    @classmethod
    def from_setting(cls, value: str) -> "RevealOutputChannelOn":
        """Parse a setting value such as ``"info"`` or ``"Warn"``.

        Args:
            value: The raw setting value.

        Returns:
            The matching severity, ``NEVER`` for unknown values.
        """
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            logger.warning(f"Unknown revealOutputChannelOn value {value!r}, using 'never'")
            return cls.NEVER


class SupervisorConfiguration(BaseModel):
    """Static snapshot of the supervisor options."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    log_to_file: bool = Field(default=False, alias="logToFile")
    show_stderr_in_output_channel: bool = Field(default=True, alias="showStderrInOutputChannel")
    reveal_output_channel_on: RevealOutputChannelOn = Field(
        default=RevealOutputChannelOn.NEVER, alias="revealOutputChannelOn"
    )
    toolchain: str = Field(default="nightly", alias="channel")

    @field_validator("reveal_output_channel_on", mode="before")
    @classmethod
    def _parse_reveal(cls, value: Any) -> Any:
        if isinstance(value, str):
            return RevealOutputChannelOn.from_setting(value)
        return value

    @classmethod
    def load_from_settings(cls, settings: Optional[Dict[str, Any]]) -> "SupervisorConfiguration":
        """Build the configuration from a host settings section.

        Keys may be given bare (``logToFile``), prefixed with the section name
        (``rust-client.logToFile``) or nested under a ``rust-client`` object.
        Invalid values fall back to the defaults.

        Args:
            settings: The host settings, or None.

        Returns:
            The loaded configuration.
        """
        prefix = f"{CONFIGURATION_SECTION}."
        values: Dict[str, Any] = {}
        for key, value in (settings or {}).items():
            if key == CONFIGURATION_SECTION and isinstance(value, dict):
                values.update(value)
            elif key.startswith(prefix):
                values[key[len(prefix):]] = value
            elif "." not in key:
                values.setdefault(key, value)

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            logger.error(f"Invalid {CONFIGURATION_SECTION} settings, using defaults: {e}")
            return cls()
