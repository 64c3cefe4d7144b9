"""
Runtime configuration for the document generation engine.

Pydantic v2 settings management: values are read from ``DOCGEN_``
prefixed environment variables (or a ``.env`` file), validated once and
frozen for the lifetime of the process.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

from pydantic import AnyHttpUrl, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

NonEmpty = Annotated[
    str,
    Field(min_length=1, strip_whitespace=True),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if the storage backend is misconfigured.
    """

    # ---------------------------------------------------------------------
    # Template resolution
    # ---------------------------------------------------------------------

    templates_dir: Annotated[
        Path,
        Field(
            default=Path("templates"),
            description="Root directory for path-style template ids",
        ),
    ]

    template_cache_ttl_seconds: Annotated[
        float,
        Field(
            default=3600.0,
            gt=0,
            description="Time-to-live of a resolved template descriptor",
        ),
    ]

    # ---------------------------------------------------------------------
    # Document defaults
    # ---------------------------------------------------------------------

    default_format: Literal["pdf", "docx", "html", "markdown"] = "pdf"
    default_author: NonEmpty = "Document Engine"
    company_name: NonEmpty = "Document Engine"
    company_logo: Optional[str] = None
    default_language: NonEmpty = "it-IT"
    default_watermark_text: NonEmpty = "DRAFT"

    date_format: Annotated[
        str,
        Field(default="dd/MM/yyyy", description="CLDR pattern for dates"),
    ]
    datetime_format: Annotated[
        str,
        Field(default="dd/MM/yyyy HH:mm", description="CLDR pattern for datetimes"),
    ]
    time_format: Annotated[
        str,
        Field(default="HH:mm", description="CLDR pattern for times"),
    ]

    # ---------------------------------------------------------------------
    # Artifact workspace
    # ---------------------------------------------------------------------

    workspace_dir: Annotated[
        Optional[Path],
        Field(
            default=None,
            description=(
                "Parent directory for temporary artifacts. A process-scoped "
                "directory is created inside it (system temp dir if unset)."
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Blob storage handoff
    # ---------------------------------------------------------------------

    storage_backend: Literal["local", "http"] = "local"

    storage_dir: Annotated[
        Path,
        Field(
            default=Path("generated-docs"),
            description="Root directory used by the local storage backend",
        ),
    ]

    storage_http_url: Annotated[
        Optional[AnyHttpUrl],
        Field(
            default=None,
            description="Upload endpoint used by the http storage backend",
        ),
    ]

    storage_timeout_seconds: Annotated[
        float,
        Field(default=30.0, gt=0),
    ]

    # ---------------------------------------------------------------------
    # PDF engine
    # ---------------------------------------------------------------------

    browser_pool_size: Annotated[
        int,
        Field(
            default=2,
            ge=1,
            le=16,
            description="Maximum concurrent pages in the headless browser",
        ),
    ]

    engine_version: str = "1.0.0"

    # ---------------------------------------------------------------------
    # Validators
    # ---------------------------------------------------------------------

    @field_validator("storage_http_url")
    @classmethod
    def http_backend_requires_url(
        cls, v: Optional[AnyHttpUrl], info: ValidationInfo
    ) -> Optional[AnyHttpUrl]:
        if info.data.get("storage_backend") == "http" and v is None:
            raise ValueError(
                "DOCGEN_STORAGE_BACKEND is 'http' but "
                "DOCGEN_STORAGE_HTTP_URL is not configured."
            )
        return v

    model_config = SettingsConfigDict(
        env_prefix="DOCGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        validate_default=True,
    )


# -------------------------------------------------------------------------
# Settings Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide settings instance.

    Parsed once on first use; later environment changes are not observed.
    """
    return Settings()
