"""
Range payload construction. Pure functions, no I/O.
"""

from collections.abc import Iterable

from figma_range_sync.models.api.range_payload import RangeActivityPayload, RangeAttachment
from figma_range_sync.models.domain.design_domain import SyncEntry
from figma_range_sync.security.hashing import hash_email

ACTIVITY_REASON = "EDITED"
DEDUPE_STRATEGY = "UPSERT_PENDING"
PROVIDER = "figma"
PROVIDER_NAME = "Figma"
ATTACHMENT_TYPE = "DOCUMENT"
ATTACHMENT_SUBTYPE = "FIGMA_DOCUMENT"
FILE_URL_TEMPLATE = "https://www.figma.com/file/{key}"


def file_url(file_key: str) -> str:
    return FILE_URL_TEMPLATE.format(key=file_key)


def build_payloads(entry: SyncEntry) -> list[RangeActivityPayload]:
    """One payload per resolved editor of the entry's file."""
    attachment = RangeAttachment(
        source_id=entry.file.key,
        provider=PROVIDER,
        provider_name=PROVIDER_NAME,
        html_url=file_url(entry.file.key),
        name=entry.file.name,
        type=ATTACHMENT_TYPE,
        subtype=ATTACHMENT_SUBTYPE,
    )
    return [
        RangeActivityPayload(
            email_hash=hash_email(editor.email),
            is_future=False,
            reason=ACTIVITY_REASON,
            dedupe_strategy=DEDUPE_STRATEGY,
            attachment=attachment.model_copy(),
        )
        for editor in entry.editors
    ]


def build_payloads_for_entries(entries: Iterable[SyncEntry]) -> list[RangeActivityPayload]:
    payloads: list[RangeActivityPayload] = []
    for entry in entries:
        payloads.extend(build_payloads(entry))
    return payloads
