"""Configuration management for Studio Prompt Lab.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the STUDIOLAB_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (STUDIOLAB_* prefix)
2. .env file in the project root
3. Default values defined in StudioConfig

Two settings also accept the un-prefixed names used by the wider tooling
ecosystem, ``GEMINI_API_KEY`` and ``CATALOG_API_URL``, so an existing
environment keeps working.

Example .env file:
    STUDIOLAB_DATABASE_PATH=data/studiolab.db
    STUDIOLAB_OUTPUTS_DIR=data/outputs
    GEMINI_API_KEY=...
    CATALOG_API_URL=https://api.studioxlowes.com/catalog/v3

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from studiolab.core.config import config

    print(config.database_path)
    print(config.outputs_dir)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- data_dir: Parent of the SQLite database by default
- uploads_dir: Reference images uploaded for input sets
- outputs_dir: Images produced by run steps (one sub-directory per run)
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class StudioConfig(BaseSettings):
    """Main configuration for Studio Prompt Lab.

    Attributes
    ----------
    Storage:
        data_dir : Path
            Directory holding the database and generated assets
        database_path : Path
            SQLite database file
        uploads_dir : Path
            Directory for uploaded reference images (served at ``/uploads``)
        outputs_dir : Path
            Directory for generated step images (served at ``/api/outputs``)

    Frontend:
        static_dir : Path
            CSS/JS assets served at ``/static``
        templates_dir : Path
            Directory containing ``index.html``

    Image Generation:
        gemini_api_key : str | None
            API key for the Gemini image models.  When missing, every
            generation fails with a descriptive error instead of raising.
        default_model : str
            Model used by steps that do not name one

    Product Catalog:
        catalog_api_url : str
            Base URL of the product catalog API
        catalog_timeout : float
            Timeout in seconds for catalog requests

    Server:
        app_url : str | None
            Public base URL used when exporting absolute image links
        server_host : str
            Bind address for uvicorn
        server_port : int
            Bind port for uvicorn (1024-65535)
        log_level : str
            Root logging level used by ``main()``
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STUDIOLAB_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the database and generated assets",
    )
    database_path: Path = Field(
        default=Path("data/studiolab.db"),
        description="SQLite database file",
    )
    uploads_dir: Path = Field(
        default=Path("data/uploads"),
        description="Directory for uploaded reference images",
    )
    outputs_dir: Path = Field(
        default=Path("data/outputs"),
        description="Directory for generated step images",
    )

    # Frontend assets shipped inside the package
    static_dir: Path = Field(
        default=_PACKAGE_DIR / "static",
        description="Directory of CSS/JS assets",
    )
    templates_dir: Path = Field(
        default=_PACKAGE_DIR / "templates",
        description="Directory containing index.html",
    )

    # Image generation
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("STUDIOLAB_GEMINI_API_KEY", "GEMINI_API_KEY"),
        description="Gemini API key (optional; generation fails per step without it)",
    )
    default_model: str = Field(
        default="gemini-2.0-flash-exp-image-generation",
        description="Model used by steps that do not name one",
    )

    # Product catalog
    catalog_api_url: str = Field(
        default="https://api.studioxlowes.com/catalog/v3",
        validation_alias=AliasChoices("STUDIOLAB_CATALOG_API_URL", "CATALOG_API_URL"),
        description="Base URL of the product catalog API",
    )
    catalog_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout in seconds for catalog requests",
    )

    # Server
    app_url: str | None = Field(
        default=None,
        description="Public base URL used for absolute links in exports",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root logging level",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.outputs_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance, loaded from STUDIOLAB_* variables and .env.
config = StudioConfig()
