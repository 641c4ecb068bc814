# figma_range_sync/models/api/range_payload.py
"""
Range custom-integration webhook models.
Body schema for one "user edited a document" activity event.
"""

from typing import Any

from pydantic import BaseModel, Field


class RangeAttachment(BaseModel):
    """The document the activity refers to."""

    source_id: str = Field(..., description="Figma file key")
    provider: str = Field(..., description="Integration provider slug")
    provider_name: str = Field(..., description="Integration display name")
    html_url: str = Field(..., description="Link to the document")
    name: str = Field(..., description="Document title")
    type: str = Field(..., description="Attachment type")
    subtype: str = Field(..., description="Attachment subtype")


class RangeActivityPayload(BaseModel):
    """One activity event for one recipient."""

    email_hash: str = Field(..., description="SHA-1 hex digest of the recipient email")
    is_future: bool = Field(default=False, description="Whether the activity is planned")
    reason: str = Field(..., description="Why the activity is reported")
    dedupe_strategy: str = Field(..., description="Receiver-side dedupe instruction")
    attachment: RangeAttachment

    def to_body(self) -> dict[str, Any]:
        """JSON-ready request body in schema field order."""
        return self.model_dump(mode="json")
