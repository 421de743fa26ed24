"""
Configuration Management for Chat Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Thresholds that shape user-visible behavior (confidence cut-offs,
budget alert tiers, recommendation lookback) live next to the
credentials for external services so they can be tuned per deployment.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini configuration for the understanding service."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use for text, audio and image understanding"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Single timeout applied to every understanding call"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Worksheet names within the spreadsheet
    categories_sheet_name: str = Field(default="Categories")
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    goals_sheet_name: str = Field(default="Goals")
    goal_boosts_sheet_name: str = Field(default="GoalBoosts")
    savings_plans_sheet_name: str = Field(default="SavingsPlans")
    preferences_sheet_name: str = Field(default="Preferences")
    identity_links_sheet_name: str = Field(default="IdentityLinks")
    activation_codes_sheet_name: str = Field(default="ActivationCodes")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Defaults for users without stored preferences
    default_language: str = Field(
        default="en",
        pattern="^(en|id)$",
    )
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
    )
    default_timezone: str = Field(default="UTC")

    # Confidence thresholds (intent must be strictly above)
    text_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for typed transactions"
    )
    voice_confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for transcribed voice transactions"
    )
    image_confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum confidence per receipt line item"
    )
    command_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for budget, category and savings commands"
    )

    # Budget alert tiers, as percentages of the budget amount
    budget_info_percent: float = Field(default=60.0, gt=0)
    budget_danger_percent: float = Field(default=80.0, gt=0)
    budget_exceeded_percent: float = Field(default=100.0, gt=0)

    # Recommendation
    recommendation_lookback_months: int = Field(
        default=6,
        ge=1,
        le=24,
        description="Months of history used for budget recommendations"
    )

    # Attachments
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum attachment size in MB"
    )
    supported_image_formats: str = Field(
        default="image/jpeg,image/png,image/webp",
        description="Comma-separated list of supported image mime types"
    )
    supported_audio_formats: str = Field(
        default="audio/ogg,audio/mpeg,audio/mp4,audio/wav,audio/webm",
        description="Comma-separated list of supported audio mime types"
    )

    @property
    def supported_image_list(self) -> list[str]:
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def supported_audio_list(self) -> list[str]:
        return [fmt.strip().lower() for fmt in self.supported_audio_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are loaded lazily so the core can run (and be tested)
    without Gemini or Google Sheets credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("gemini", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
