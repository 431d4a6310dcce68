"""
Vault Configuration: Validated settings for new vaults.

Reads optional overrides from environment variables:
    PINVAULT_ITERATIONS = <integer, at least 250000>
    PINVAULT_PIN_DIGITS = <comma-separated PIN lengths, e.g. "4,5,6">
    PINVAULT_STORAGE_PATH = <directory holding vault.meta / vault.data>

Security Note:
    ``iterations`` only applies to new setups and PIN changes. Unlocking
    always reuses the iteration count persisted in the vault metadata.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import MIN_ITERATIONS

logger = logging.getLogger("pinvault.vault")

DEFAULT_ITERATIONS = 250_000
DEFAULT_PIN_DIGITS = (4, 5, 6)
DEFAULT_PIN_LENGTH = 6


def parse_pin_digits(raw: str) -> tuple[int, ...]:
    """Parse a comma-separated list of PIN lengths.

    Raises:
        ValueError: If any entry is not an integer or the list is empty.
    """
    digits = tuple(int(part) for part in raw.split(",") if part.strip())
    if not digits:
        raise ValueError("PINVAULT_PIN_DIGITS cannot be empty")
    return digits


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=MIN_ITERATIONS)
    pin_digits: tuple[int, ...] = Field(default=DEFAULT_PIN_DIGITS)
    default_pin_length: int = Field(default=DEFAULT_PIN_LENGTH)
    storage_path: Optional[Path] = None

    @field_validator("pin_digits")
    @classmethod
    def validate_pin_digits(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """Validate every supported PIN length is within 4..12."""
        if not v:
            raise ValueError("pin_digits cannot be empty")
        for d in v:
            if not 4 <= d <= 12:
                raise ValueError(f"Unsupported PIN length: {d}")
        return tuple(sorted(set(v)))

    @model_validator(mode="after")
    def validate_default_length(self) -> "VaultConfig":
        """Ensure default_pin_length is one of the supported lengths."""
        if self.default_pin_length not in self.pin_digits:
            raise ValueError(
                f"default_pin_length {self.default_pin_length} not in "
                f"pin_digits {self.pin_digits}"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {}
        raw = os.environ.get("PINVAULT_ITERATIONS")
        if raw is not None:
            values["iterations"] = int(raw)
        raw = os.environ.get("PINVAULT_PIN_DIGITS")
        if raw is not None:
            values["pin_digits"] = parse_pin_digits(raw)
            if DEFAULT_PIN_LENGTH not in values["pin_digits"]:
                values["default_pin_length"] = max(values["pin_digits"])
        raw = os.environ.get("PINVAULT_STORAGE_PATH")
        if raw:
            values["storage_path"] = Path(raw).expanduser()
        config = cls(**values)
        logger.debug(
            "Vault config loaded: iterations=%d pin_digits=%s",
            config.iterations, config.pin_digits,
        )
        return config
