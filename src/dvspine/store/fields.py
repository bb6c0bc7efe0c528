"""Attribute Resolver ("field picker").

Maps a semantic field role ("title", "email", "primary group") to the
attribute name this deployment actually has. Resolution order:

    1. ``preferred``, if non-empty and present (case-sensitive)
    2. first of ``candidates`` present (case-sensitive, order is a ranking)
    3. case-insensitive substring scan: for each substring in order, the
       first known attribute containing it
    4. ``""``: the field is unavailable and must be omitted from payloads
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from dvspine.core.logging import get_logger
from dvspine.core.settings import StoreSettings
from dvspine.store.entity_sets import EntitySetResolver

logger = get_logger(__name__)


def pick(
    known: Iterable[str],
    preferred: str | None = None,
    candidates: Sequence[str] = (),
    substrings: Sequence[str] = (),
) -> str:
    """Pick the attribute name to write a field to, or ``""``.

    Deterministic for a given iteration order of ``known``.

    >>> pick(["toba_email", "toba_mail2"], "toba_Email", ["toba_email"], ["mail"])
    'toba_email'
    >>> pick(["toba_email", "toba_mail2"], None, [], ["mail"])
    'toba_email'
    """
    ordered = list(known)
    present = set(ordered)

    if preferred and preferred in present:
        return preferred
    for candidate in candidates:
        if candidate in present:
            return candidate
    for fragment in substrings:
        needle = fragment.lower()
        for name in ordered:
            if needle in name.lower():
                return name
    return ""


@dataclass(frozen=True)
class FieldRole:
    """How to find one semantic field on an entity.

    ``setting`` names the StoreSettings attribute holding the deployment's
    preferred attribute name; it wins over ``preferred`` when non-empty.
    """

    name: str
    candidates: tuple[str, ...] = ()
    substrings: tuple[str, ...] = ()
    preferred: str = ""
    setting: str | None = None


DOCUMENT_FIELDS: dict[str, FieldRole] = {
    "title": FieldRole("title", ("toba_title", "toba_name", "name"), ("title", "name"), setting="doc_title_field"),
    "url": FieldRole("url", ("toba_fileurl", "toba_url"), ("url",), setting="doc_url_field"),
    "version": FieldRole("version", ("toba_version", "version"), ("version",), setting="doc_version_field"),
    "requires_signature": FieldRole(
        "requires_signature", ("toba_requiressignature",), ("sign",), setting="doc_requires_sig_field"
    ),
}

RECIPIENT_FIELDS: dict[str, FieldRole] = {
    "email": FieldRole("email", (), ("email", "mail", "upn"), setting="br_email_field"),
    "user": FieldRole("user", (), ("user", "upn", "principal"), setting="br_user_field"),
    "display_name": FieldRole("display_name", (), ("displayname", "name"), setting="br_display_name_field"),
    "department": FieldRole("department", (), ("department",), setting="br_department_field"),
    "job_title": FieldRole("job_title", (), ("jobtitle", "title"), setting="br_job_title_field"),
    "location": FieldRole("location", (), ("location", "office"), setting="br_location_field"),
    "primary_group": FieldRole("primary_group", (), ("primarygroup", "group"), setting="br_primary_group_field"),
}

USER_FIELDS: dict[str, FieldRole] = {
    "user": FieldRole("user", ("toba_user",), ("user",), setting="ack_user_field"),
}

FIELD_TABLES: dict[str, dict[str, FieldRole]] = {
    "documents": DOCUMENT_FIELDS,
    "batch_recipients": RECIPIENT_FIELDS,
    "user_acks": USER_FIELDS,
    "user_progresses": USER_FIELDS,
}


class AttributeResolver:
    """Resolves field roles against the session's discovered schema."""

    def __init__(self, entity_sets: EntitySetResolver, settings: StoreSettings):
        self.entity_sets = entity_sets
        self.settings = settings

    def preferred_for(self, field: FieldRole) -> str:
        if field.setting:
            configured = getattr(self.settings, field.setting, "") or ""
            if configured:
                return configured
        return field.preferred

    async def resolve_field(self, entity_role: str, field: FieldRole) -> str:
        """Attribute name for ``field`` on the entity behind ``entity_role``."""
        entity = await self.entity_sets.discover(entity_role)
        name = pick(entity.attributes, self.preferred_for(field), field.candidates, field.substrings)
        if not name:
            logger.debug("fields.unavailable", role=entity_role, field=field.name)
        return name

    async def resolve_fields(
        self, entity_role: str, table: dict[str, FieldRole] | None = None
    ) -> dict[str, str]:
        """Resolve every field of a role table; unavailable fields map to ``""``."""
        table = table if table is not None else FIELD_TABLES.get(entity_role, {})
        entity = await self.entity_sets.discover(entity_role)
        return {
            key: pick(entity.attributes, self.preferred_for(field), field.candidates, field.substrings)
            for key, field in table.items()
        }


__all__ = [
    "pick",
    "FieldRole",
    "AttributeResolver",
    "DOCUMENT_FIELDS",
    "RECIPIENT_FIELDS",
    "USER_FIELDS",
    "FIELD_TABLES",
]
