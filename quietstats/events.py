from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .urls import is_trackable_url, sanitize_url

LANGUAGE_PATTERN = r"^[A-Za-z]{1,8}(-[A-Za-z0-9]{1,8})*$"

ShortText = Annotated[str, Field(max_length=128)]
Value = Union[float, Annotated[str, Field(max_length=256)]]


class EventKind(str, Enum):
    PAGEVIEW = "pageview"
    CUSTOM = "custom"


class Event(BaseModel):
    # minimal, privacy-first; wire names are camelCase
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: EventKind = Field(..., validation_alias=AliasChoices("kind", "type"), description="pageview or custom")
    site_id: str = Field(..., alias="siteId", min_length=1, max_length=64)
    url: str = Field(..., min_length=1, description="page URL, sensitive params stripped")
    referrer: Optional[str] = None
    screen_width: Optional[int] = Field(None, alias="screenWidth", gt=0)
    screen_height: Optional[int] = Field(None, alias="screenHeight", gt=0)
    language: Optional[str] = Field(None, max_length=35, pattern=LANGUAGE_PATTERN)
    visitor_token: Optional[str] = Field(None, alias="visitorToken", max_length=64, description="page-scoped fingerprint")
    queued_at: Optional[float] = Field(None, alias="queuedAt", description="client monotonic seconds at enqueue")
    name: Optional[ShortText] = None
    category: Optional[ShortText] = None
    value: Optional[Value] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _legacy_kind(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "event":
                return EventKind.CUSTOM
        return v

    @field_validator("url", mode="before")
    @classmethod
    def _clean_url(cls, v):
        if isinstance(v, str):
            cleaned = sanitize_url(v)
            if cleaned is None:
                raise ValueError("url must not be blank")
            if not is_trackable_url(cleaned):
                raise ValueError("url must be an absolute http(s) URL or a path")
            return cleaned
        return v

    @field_validator("referrer", mode="before")
    @classmethod
    def _clean_referrer(cls, v):
        if isinstance(v, str):
            return sanitize_url(v)
        return v

    @model_validator(mode="after")
    def _custom_needs_name(self):
        if self.kind is EventKind.CUSTOM and not self.name:
            raise ValueError("custom events require a name")
        return self

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnonymizedEvent(BaseModel):
    """What storage receives. Nothing here can hold an address or a raw user agent."""

    model_config = ConfigDict(frozen=True)

    site_id: str
    kind: EventKind
    url: str
    path: str
    referrer: Optional[str] = None
    traffic_type: str
    traffic_source: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    language: Optional[str] = None
    page_token: Optional[str] = None
    visitor_hash: str
    device: str
    browser: str
    os: str
    name: Optional[str] = None
    category: Optional[str] = None
    value: Optional[Value] = None
    received_at: datetime
