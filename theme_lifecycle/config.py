"""Configuration for theme-lifecycle."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable overrides."""

    # Storage locations
    packages_dir: str = "themes"
    backups_dir: str = "backups/themes"
    settings_dir: str = ".theme-settings"
    temp_dir: str = ".tmp/theme-updates"

    # Host platform identity
    platform_name: str = "storefront"
    platform_version: str = "1.0.0"
    created_by: str = ""

    # Backups
    max_backups: int = 10

    # Size limits
    max_source_file_kb: int = 500
    max_package_size_mb: int = 5
    max_scan_file_mb: int = 10

    # Update sources
    http_timeout_seconds: float = 15.0
    release_api_url: str = "https://api.github.com"
    release_api_token: str = ""
    registry_url: str = "https://registry.npmjs.org"

    model_config = {"env_prefix": "THEME_LIFECYCLE_"}


settings = Settings()
