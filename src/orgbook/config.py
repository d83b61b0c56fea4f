"""Orgbook configuration management.

Handles persistent settings stored in ~/.orgbook/config.json
"""

import json
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional


# Default configuration values
DEFAULT_API_BASE_URL = "http://localhost:8000"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 30.0
DEFAULT_THEME = "textual-dark"
DEFAULT_TAB = "tab-companies"
DEFAULT_EXPORT_FORMAT = "yaml"  # yaml, json
DEFAULT_LOG_LEVEL = "WARNING"

CONFIG_PATH_ENV = "ORGBOOK_CONFIG"
API_BASE_URL_ENV = "ORGBOOK_API_BASE_URL"


@dataclass
class ViewState:
    """Persistent view state for the TUI dashboard."""

    active_tab: Optional[str] = None
    company_search: str = ""

    # Expanded tree nodes, by record id
    expanded_companies: list[str] = field(default_factory=list)
    expanded_industries: list[str] = field(default_factory=list)


@dataclass
class OrgbookConfig:
    """Orgbook application configuration."""

    # Backend connection
    api_base_url: str = DEFAULT_API_BASE_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: float = DEFAULT_TIMEOUT

    # Appearance
    theme: str = DEFAULT_THEME
    default_tab: str = DEFAULT_TAB

    export_format: str = DEFAULT_EXPORT_FORMAT
    log_level: str = DEFAULT_LOG_LEVEL

    # Last dashboard state for restoration
    view_state: Optional[ViewState] = None

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        override = os.environ.get(CONFIG_PATH_ENV)
        if override:
            return Path(override)
        return Path.home() / ".orgbook" / "config.json"

    @classmethod
    def load(cls, apply_env: bool = True) -> "OrgbookConfig":
        """Load configuration from file, or return defaults if not found.

        The API base URL can be overridden with ORGBOOK_API_BASE_URL unless
        apply_env is False, which callers that save the result back use.
        """
        config = cls()
        config_path = cls.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                # Only use known fields to avoid issues with old config versions
                known_fields = {f.name for f in fields(cls)}
                filtered_data = {k: v for k, v in data.items() if k in known_fields}

                if "view_state" in filtered_data and filtered_data["view_state"] is not None:
                    view_state_data = filtered_data["view_state"]
                    if isinstance(view_state_data, dict):
                        view_state_fields = {f.name for f in fields(ViewState)}
                        filtered_data["view_state"] = ViewState(
                            **{k: v for k, v in view_state_data.items() if k in view_state_fields}
                        )
                    else:
                        filtered_data["view_state"] = None

                config = cls(**filtered_data)
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
                # Invalid config, use defaults
                config = cls()

        env_url = os.environ.get(API_BASE_URL_ENV)
        if apply_env and env_url:
            config.api_base_url = env_url

        return config

    def save(self) -> None:
        """Save configuration to file."""
        config_path = self.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def reset(self) -> None:
        """Reset configuration to defaults."""
        defaults = OrgbookConfig()
        for f in fields(self):
            setattr(self, f.name, getattr(defaults, f.name))

    def set_value(self, key: str, value: str) -> None:
        """Set a scalar setting from its string form.

        Raises:
            KeyError: If the setting does not exist or is not scalar.
            ValueError: If the value does not convert to the setting's type.
        """
        settable = {f.name: f for f in fields(self) if f.name != "view_state"}
        if key not in settable:
            raise KeyError(key)

        current = getattr(self, key)
        if isinstance(current, bool):
            converted = value.lower() in ("1", "true", "yes", "on")
        elif isinstance(current, int):
            converted = int(value)
        elif isinstance(current, float):
            converted = float(value)
        else:
            converted = value

        if key == "export_format" and converted not in dict(EXPORT_FORMAT_OPTIONS):
            raise ValueError(f"export_format must be one of: {', '.join(dict(EXPORT_FORMAT_OPTIONS))}")
        if not isinstance(converted, (bool, str)) and converted < 0:
            raise ValueError(f"{key} must not be negative")
        if key == "timeout" and converted == 0:
            raise ValueError("timeout must be greater than zero")
        setattr(self, key, converted)

    def save_view_state(
        self,
        active_tab: Optional[str] = None,
        company_search: str = "",
        expanded_companies: Optional[set[str]] = None,
        expanded_industries: Optional[set[str]] = None,
    ) -> None:
        """Save the current view state for restoration on next launch."""
        self.view_state = ViewState(
            active_tab=active_tab,
            company_search=company_search,
            expanded_companies=sorted(expanded_companies or ()),
            expanded_industries=sorted(expanded_industries or ()),
        )
        self.save()


# Available options for settings
AVAILABLE_THEMES = [
    ("textual-dark", "Textual Dark"),
    ("textual-light", "Textual Light"),
    ("nord", "Nord"),
    ("gruvbox", "Gruvbox"),
    ("dracula", "Dracula"),
    ("tokyo-night", "Tokyo Night"),
]

AVAILABLE_TABS = [
    ("tab-companies", "Companies"),
    ("tab-industries", "Industries"),
    ("tab-persons", "Persons"),
    ("tab-contacts", "Contacts"),
    ("tab-audit", "Audit Log"),
]

EXPORT_FORMAT_OPTIONS = [
    ("yaml", "YAML (.yaml)"),
    ("json", "JSON (.json)"),
]
