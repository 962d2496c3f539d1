"""Pydantic schemas for the email API"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Address fields are validated by the send pipeline, not here, so that
# malformed addresses report every offender with the INVALID_ADDRESS code.
AddressList = Union[str, List[str]]


class EmailTag(BaseModel):
    name: str
    value: str


class EmailAttachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    content: str  # Base64-encoded
    content_type: Optional[str] = Field(None, alias="contentType")


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: AddressList
    from_address: Optional[str] = Field(None, alias="from")
    subject: str = Field(..., min_length=1)
    html: Optional[str] = None
    text: Optional[str] = None
    cc: Optional[AddressList] = None
    bcc: Optional[AddressList] = None
    reply_to: Optional[str] = Field(None, alias="replyTo")
    tags: Optional[List[EmailTag]] = None
    attachments: Optional[List[EmailAttachment]] = None
    provider: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def require_content(self):
        if not (self.html or "").strip() and not (self.text or "").strip():
            raise ValueError("Either html or text content is required")
        return self

    def recipients(self) -> List[str]:
        return [self.to] if isinstance(self.to, str) else list(self.to)


class BulkSendEmailRequest(BaseModel):
    emails: List[SendEmailRequest] = Field(..., min_length=1)
    provider: Optional[str] = None
