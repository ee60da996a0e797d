from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

DEFAULT_MIME_TYPE = "application/pdf"


class FileType(str, Enum):
    ACTUAL = "actual"
    DELETED = "deleted"


class PublicationStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"


class ActionType(str, Enum):
    UPLOAD = "upload"
    VIEW = "view"
    DELETE = "delete"


class UploadOutcome(str, Enum):
    CREATED = "created"
    OVERWRITTEN = "overwritten"
    SUPERSEDED = "superseded"


OUTCOME_MESSAGES = {
    UploadOutcome.CREATED: "file saved (pending QR)",
    UploadOutcome.OVERWRITTEN: "file overwritten",
    UploadOutcome.SUPERSEDED: "replaced old file (by document_id) with new file_id (pending QR)",
}


class Publication(BaseModel):
    file_id: str
    document_id: str
    file_type: FileType
    status: PublicationStatus
    date_of_creation: datetime
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def is_actual(self) -> bool:
        return self.file_type is FileType.ACTUAL


class LogEntry(BaseModel):
    id: int
    action_type: ActionType
    ip: str = ""
    user_agent: str = ""
    file_id: Optional[str] = None
    ts: datetime


class UploadResult(BaseModel):
    outcome: UploadOutcome
    file_id: str
    link: str
    publication: Publication
    superseded_file_id: Optional[str] = None

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]


class UploadResponse(BaseModel):
    message: str
    outcome: UploadOutcome
    file_id: str
    link: str
    status: PublicationStatus
    file_type: FileType


@dataclass(frozen=True)
class Requester:
    """Who triggered an action, as recorded in the audit log."""

    ip: str = ""
    user_agent: str = ""
