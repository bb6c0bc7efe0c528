"""
Centralized settings for dvspine.

Every deployment of the store is configured independently, so almost every
identifier the engine uses is overridable: the store URL, the default
collection (entity-set) name per role, the navigation property used for each
lookup bind, and the preferred attribute name for each semantic field.

All fields can be set via ``DVSPINE_*`` environment variables (e.g.
``DVSPINE_STORE_URL=https://contoso.crm.dynamics.com``) or a ``.env`` file.

Tags:
    dvspine, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """dvspine configuration.

    Fields
    ──────
    store_url                 : Organisation root URL of the store
    api_version               : Web API version segment (``v9.2``)
    access_token              : Static bearer token (skips azure-identity)
    request_timeout_seconds   : Per-call HTTP timeout
    max_write_attempts        : Bound on adaptive-write POSTs per record
    write_concurrency         : Parallel record writes
    *_set                     : Default collection id per role
    *_lookup                  : Navigation property used for lookup binds
    *_field                   : Preferred attribute name per semantic field
    """

    model_config = SettingsConfigDict(
        env_prefix="DVSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    store_url: str = Field(default="", description="Store organisation URL")
    api_version: str = Field(default="v9.2")
    access_token: str | None = Field(default=None, repr=False)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Engine ───────────────────────────────────────────────────
    max_write_attempts: int = Field(default=5, ge=1)
    write_concurrency: int = Field(default=5, ge=1)
    language_code: int = Field(default=1033)
    solution_unique_name: str = Field(default="")
    publisher_prefix: str = Field(default="toba")

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"

    # ── Default collections per role ─────────────────────────────
    batches_set: str = "toba_batches"
    documents_set: str = "toba_documents"
    user_acks_set: str = "toba_useracknowledgements"
    user_progresses_set: str = "toba_batchuserprogress"
    businesses_set: str = "toba_businesses"
    batch_recipients_set: str = "toba_batchrecipients"

    # ── Lookup navigation properties ─────────────────────────────
    document_batch_lookup: str = "toba_Batch"
    ack_batch_lookup: str = "toba_Batch"
    ack_document_lookup: str = "toba_Document"
    progress_batch_lookup: str = "toba_Batch"
    br_batch_lookup: str = "toba_Batch"
    br_business_lookup: str = "toba_Business"

    # ── Preferred attribute names (empty → heuristics only) ──────
    doc_title_field: str = ""
    doc_url_field: str = ""
    doc_version_field: str = ""
    doc_requires_sig_field: str = ""
    ack_user_field: str = "toba_User"
    br_user_field: str = ""
    br_email_field: str = "toba_Email"
    br_display_name_field: str = "toba_DisplayName"
    br_department_field: str = "toba_Department"
    br_job_title_field: str = "toba_JobTitle"
    br_location_field: str = "toba_Location"
    br_primary_group_field: str = "toba_PrimaryGroup"

    @field_validator("store_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def api_base_url(self) -> str:
        """``<store_url>/api/data/<api_version>``."""
        return f"{self.store_url}/api/data/{self.api_version}"

    @property
    def token_scope(self) -> str:
        return f"{self.store_url}/.default"

    def default_collections(self) -> dict[str, str]:
        """Role → statically configured collection id."""
        return {
            "batches": self.batches_set,
            "documents": self.documents_set,
            "user_acks": self.user_acks_set,
            "user_progresses": self.user_progresses_set,
            "businesses": self.businesses_set,
            "batch_recipients": self.batch_recipients_set,
        }


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, StoreSettings] = {}


def get_settings(*, env_file: str | None = ".env", _force_reload: bool = False) -> StoreSettings:
    """Load, validate, and cache a :class:`StoreSettings` instance."""
    cache_key = env_file or ""
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    settings = StoreSettings(_env_file=env_file)  # type: ignore[call-arg]
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["StoreSettings", "get_settings", "clear_settings_cache"]
