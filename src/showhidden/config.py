"""Configuration management for showhidden.

Configuration Discovery Precedence (Highest to Lowest Priority):
===============================================================

1. **SHOWHIDDEN_CONFIG_DIR Environment Variable** (Highest Priority)
   - Looks for: `${SHOWHIDDEN_CONFIG_DIR}/showhidden.yaml`
   - Use case: Development, testing, embedding in a host with its own layout

2. **~/.showhidden Directory** (Fallback)
   - Looks for: `~/.showhidden/showhidden.yaml`
   - Use case: Default user installations

If no `showhidden.yaml` is found, default configuration is applied.
Individual fields can also be set through `SHOWHIDDEN_*` environment variables.

Example showhidden.yaml:
--------
showhidden:
  mode: narrow            # or "broad" to also force host settings
  capability_bit: 1024
  legacy_alias: VIEW_CHANNEL
  host:
    access_query: "host.permissions:Permissions.can"
    bitmask_lookup: "host.permissions:permission_store.get_channel_permissions"
    item_renderer: "host.sidebar:ChannelItem.render"
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from showhidden.policy import OverrideRuleSet
from showhidden.presentation import HIDDEN_CLASS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "showhidden.yaml"

VIEW_CHANNEL = 1 << 10

OverrideMode = Literal["narrow", "broad"]


class HostPaths(BaseModel):
    """Import paths of host entry points, as ``package.module:attr.member``.

    The part after the last dot is the member that gets hooked; everything
    before it is resolved to the owning object.
    """

    access_query: str | None = None
    """Access-control query, called as (capability, subject) -> bool"""

    bitmask_lookup: str | None = None
    """Raw capability bitmask lookup, called as (target) -> int-like; must resolve
    to an instance (or module) so the raw value can be read without the host"""

    item_renderer: str | None = None
    """List-item render function taking props with a target"""

    content_renderer: str | None = None
    """Detail/content render function taking props with a target"""

    setting_getter: str | None = None
    """Host setting getter, called as (name) -> value (broad mode)"""

    style_service: str | None = None
    """Object exposing add_style(name, css) / remove_style(name)"""

    toast_service: str | None = None
    """Object exposing show_toast(message, options)"""


class ShowHiddenConfig(BaseSettings):
    """Main configuration for showhidden that reads from showhidden.yaml."""

    model_config = SettingsConfigDict(
        env_prefix="SHOWHIDDEN_",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    debug: bool = False
    mode: OverrideMode = "narrow"

    # Capability forced to granted
    capability_bit: int = VIEW_CHANNEL
    legacy_alias: str | int | None = "VIEW_CHANNEL"

    # How the host passes arguments
    capability_arg: str = "permission"
    subject_arg: str = "subject"
    target_prop: str = "target"

    # Presentation
    hidden_class: str = HIDDEN_CLASS
    style_namespace: str = "ShowHidden-Styles"
    locked_title: str = "This channel is hidden"
    notify: bool = True

    # Settings forced in broad mode
    forced_settings: dict[str, Any] = Field(
        default_factory=lambda: {"show_all_channels": True, "opted_in": True}
    )

    host: HostPaths = Field(default_factory=HostPaths)

    # Path to showhidden config
    config_path: Path = Field(default_factory=lambda: Path("./showhidden.yaml"))

    @field_validator("capability_bit")
    @classmethod
    def _single_bit(cls, value: int) -> int:
        if value <= 0 or value & (value - 1):
            raise ValueError(f"capability_bit must be a single set bit, got {value}")
        return value

    def rule_set(self) -> OverrideRuleSet:
        """Build the override rule set for the configured mode."""
        if self.mode == "broad":
            return OverrideRuleSet.broad(self.capability_bit, self.legacy_alias, self.forced_settings)
        return OverrideRuleSet.narrow(self.capability_bit, self.legacy_alias)

    def apply_logging(self) -> None:
        """Raise the showhidden loggers to DEBUG when debug is enabled."""
        if not self.debug:
            return
        package_logger = logging.getLogger("showhidden")
        package_logger.setLevel(logging.DEBUG)
        if not package_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(name)s:%(levelname)s: %(message)s"))
            package_logger.addHandler(handler)

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> "ShowHiddenConfig":
        """Load configuration from a showhidden.yaml file.

        Args:
            yaml_path: Path to the showhidden.yaml file
            **kwargs: Additional keyword arguments (take precedence over the file)

        Returns:
            ShowHiddenConfig instance

        Raises:
            pydantic.ValidationError: If the file holds invalid values
        """
        data: dict[str, Any] = {}
        if yaml_path.exists():
            with yaml_path.open() as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                logger.warning(f"Ignoring {yaml_path}: top level is {type(loaded).__name__}, expected a mapping")
                loaded = {}
            data = loaded.get("showhidden") or {}
            if not isinstance(data, dict):
                logger.warning(f"Invalid showhidden section format in {yaml_path}: {type(data).__name__}")
                data = {}

        return cls(**{**data, "config_path": yaml_path, **kwargs})


# Global configuration instance
_config_instance: ShowHiddenConfig | None = None
_config_lock = threading.Lock()


def get_config() -> ShowHiddenConfig:
    """Get the configuration instance."""
    global _config_instance

    if _config_instance is None:
        with _config_lock:
            # Double-check locking pattern
            if _config_instance is None:
                env_config_dir = os.environ.get("SHOWHIDDEN_CONFIG_DIR")
                if env_config_dir:
                    config_dir = Path(env_config_dir)
                    logger.info(f"Using config directory from environment: {config_dir}")
                else:
                    config_dir = Path.home() / ".showhidden"

                config_path = config_dir / CONFIG_FILENAME
                if config_path.exists():
                    logger.info(f"Loading showhidden config from: {config_path}")
                    _config_instance = ShowHiddenConfig.from_yaml(config_path)
                else:
                    logger.info(f"{CONFIG_FILENAME} not found at {config_path}, using default config")
                    _config_instance = ShowHiddenConfig(config_path=config_path)

    return _config_instance


def set_config_instance(config: ShowHiddenConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = config


def clear_config_instance() -> None:
    """Clear the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
