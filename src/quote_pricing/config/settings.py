"""
Centralized settings and path configuration for the quote pricing tool.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to the directory above src/
    return Path(__file__).resolve().parent.parent.parent.parent


def get_package_data_dir() -> Path:
    """Directory of the data files installed with the package."""
    return Path(__file__).resolve().parent.parent / 'data'


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    project_root: Path

    # Tenant pricing configuration (coefficients, tax default, calculation rules)
    pricing_config: Path

    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure, with environment overrides."""
        root = project_root or get_project_root()
        default_config = get_package_data_dir() / 'pricing_config.json'

        return cls(
            project_root=root,
            pricing_config=Path(os.environ.get('QUOTE_PRICING_CONFIG', default_config)),
            log_level=os.environ.get('QUOTE_PRICING_LOG_LEVEL', 'INFO').upper(),
            api_host=os.environ.get('QUOTE_PRICING_API_HOST', '0.0.0.0'),
            api_port=int(os.environ.get('QUOTE_PRICING_API_PORT', 8000)),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
