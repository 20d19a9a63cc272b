"""
Vault Configuration — Validated settings for the secrets Vault.

Values can be overridden from environment variables:
    NAV_SECRETS_STORAGE_KEY = <key of the document in the secret storage>
    NAV_SECRETS_SECTION = <configuration section of the enabled-set>
    NAV_SECRETS_DEFAULT_COLLECTION = <name of the seed collection>
    NAV_SECRETS_STRICT_IMPORT = <true|false>

Security Note:
    Seed secrets are placeholders. Never put real secret values here.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

from ..data import is_valid_key

logger = logging.getLogger("navigator.secrets")

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    storage_key: str = Field(default="vault", min_length=1)
    section: str = Field(default="navigator_secrets", min_length=1)
    enabled_setting: str = Field(default="enabledCollections", min_length=1)
    default_collection: str = Field(default="default", min_length=1)
    seed_secrets: dict[str, str] = Field(
        default_factory=lambda: {"SECRET_NAME": "PASSWORD"}
    )
    default_enabled: list[str] = Field(default_factory=lambda: ["default"])
    strict_import: bool = True
    export_filename: str = Field(default="secrets.json", min_length=1)

    @field_validator("seed_secrets")
    @classmethod
    def validate_seed_keys(cls, v: dict[str, str]) -> dict[str, str]:
        """Seed keys must be valid environment variable names."""
        for key in v:
            if not is_valid_key(key):
                raise ValueError(f"Invalid seed secret key: {key!r}")
        return v

    @model_validator(mode="after")
    def validate_enabled_names(self) -> "VaultConfig":
        """Default enabled names must be non-empty.

        Unless given explicitly, the seed collection is the only one
        enabled by default.
        """
        if "default_enabled" not in self.model_fields_set:
            self.default_enabled = [self.default_collection]
        if any(not name for name in self.default_enabled):
            raise ValueError("default_enabled cannot contain empty names")
        return self

    @property
    def enabled_key(self) -> str:
        """Full configuration path of the enabled-set."""
        return f"{self.section}.{self.enabled_setting}"

    def seed_state(self) -> dict[str, dict[str, str]]:
        """Document used when the storage holds nothing usable."""
        return {self.default_collection: dict(self.seed_secrets)}

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {}
        for field, var in (
            ("storage_key", "NAV_SECRETS_STORAGE_KEY"),
            ("section", "NAV_SECRETS_SECTION"),
            ("default_collection", "NAV_SECRETS_DEFAULT_COLLECTION"),
            ("export_filename", "NAV_SECRETS_EXPORT_FILENAME"),
        ):
            if var in os.environ:
                values[field] = os.environ[var]
        values["strict_import"] = _env_flag("NAV_SECRETS_STRICT_IMPORT", True)
        config = cls(**values)
        logger.debug(
            "Vault config loaded: storage_key=%s section=%s",
            config.storage_key, config.section,
        )
        return config
