from dataclasses import dataclass, field
from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConfirmationRequest(BaseModel):
    """Body sent by the registration frontend. Field names must match the frontend's payload."""

    model_config = ConfigDict(populate_by_name=True)

    dest_email: str = Field(..., alias="destEmail", min_length=1)
    confirmation_url: str = Field(..., alias="confirmationURL", min_length=1)

    @field_validator("dest_email")
    @classmethod
    def validate_dest_email(cls, v: str) -> str:
        # The address becomes a mail header
        if "\r" in v or "\n" in v:
            raise ValueError("must not contain line breaks")
        return v


@dataclass(frozen=True)
class OutgoingEmail:
    sender: str
    to: str
    subject: str
    html: str


@dataclass(frozen=True)
class Accepted:
    """Provider acknowledged the message.

    info keys: accepted, rejected, envelopeTime, messageTime, messageSize,
    response, envelope {from, to}, messageId
    """

    info: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    """Provider explicitly declined the message"""

    info: Dict[str, Any] = field(default_factory=dict)


SendOutcome = Union[Accepted, Rejected]
