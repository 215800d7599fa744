"""
Print job records exchanged between the queue server and agents
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    PRINTING = "printing"
    DONE = "done"
    ERROR = "error"


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PrintSettings(WireModel):
    copies: int = Field(1, ge=1, description="Number of copies, one print invocation each")
    color: Literal["color", "bw"] = Field("bw", description="Color mode")
    paper_size: str = Field("A4", description="Paper size name, e.g. A4, A3, Legal")
    orientation: Literal["portrait", "landscape"] = "portrait"
    printer: Optional[str] = Field(None, description="Target printer; None uses the system default")
    page_range_text: str = Field("", description="Raw page range as typed by the user")
    resolved_pages: Optional[List[int]] = Field(
        None, description="Strictly increasing pages to print; None prints every page"
    )


class Job(WireModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    original_name: str
    stored_file_name: str
    stored_file_path: str
    kind: str = "pdf"
    status: JobStatus = JobStatus.PENDING
    settings: PrintSettings = Field(default_factory=PrintSettings)
    total_pages: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
