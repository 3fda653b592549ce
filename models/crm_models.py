"""
HubSpot Pulse — CRM Record Models
===================================

Read-only snapshots of HubSpot objects as returned by the search and list
endpoints. Every property is an optional raw string; typed accessors parse
through lib.utils so malformed values read as 0 / None / open.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lib.utils import parse_amount, parse_timestamp

CLOSED_WON = "closedwon"
CLOSED_LOST = "closedlost"
TASK_COMPLETED = "COMPLETED"


class _Properties(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def _stringify_flags(cls, value):
        if isinstance(value, bool):
            return "true" if value else "false"
        return value


class ContactProperties(_Properties):
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    createdate: Optional[str] = None
    lastmodifieddate: Optional[str] = None
    lifecyclestage: Optional[str] = None


class CompanyProperties(_Properties):
    name: Optional[str] = None
    domain: Optional[str] = None
    industry: Optional[str] = None
    createdate: Optional[str] = None
    lastmodifieddate: Optional[str] = None


class DealProperties(_Properties):
    dealname: Optional[str] = None
    amount: Optional[str] = None
    dealstage: Optional[str] = None
    closedate: Optional[str] = None
    createdate: Optional[str] = None
    lastmodifieddate: Optional[str] = None
    pipeline: Optional[str] = None
    hs_is_closed: Optional[str] = None
    hs_is_closed_won: Optional[str] = None
    hs_is_closed_lost: Optional[str] = None


class TaskProperties(_Properties):
    hs_task_subject: Optional[str] = None
    hs_task_status: Optional[str] = None
    hs_task_priority: Optional[str] = None
    hs_task_completion_date: Optional[str] = None
    hs_createdate: Optional[str] = None
    hs_timestamp: Optional[str] = None


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str


class Contact(_Record):
    properties: ContactProperties = Field(default_factory=ContactProperties)

    @property
    def created_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.createdate)

    @property
    def full_name(self) -> str:
        return f"{self.properties.firstname or ''} {self.properties.lastname or ''}".strip()


class Company(_Record):
    properties: CompanyProperties = Field(default_factory=CompanyProperties)

    @property
    def created_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.createdate)


class Deal(_Record):
    properties: DealProperties = Field(default_factory=DealProperties)

    @property
    def created_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.createdate)

    @property
    def closed_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.closedate)

    @property
    def stage(self) -> Optional[str]:
        return self.properties.dealstage

    @property
    def amount(self) -> float:
        return parse_amount(self.properties.amount)

    @property
    def is_open(self) -> bool:
        """Any stage other than the two terminal ones, including a missing stage."""
        return self.stage not in (CLOSED_WON, CLOSED_LOST)

    @property
    def is_won(self) -> bool:
        return self.stage == CLOSED_WON or _flag(self.properties.hs_is_closed_won)

    @property
    def is_lost(self) -> bool:
        return self.stage == CLOSED_LOST or _flag(self.properties.hs_is_closed_lost)


class Task(_Record):
    properties: TaskProperties = Field(default_factory=TaskProperties)

    @property
    def created_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.hs_createdate)

    @property
    def completed_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.hs_task_completion_date)

    @property
    def due_at(self) -> Optional[int]:
        return parse_timestamp(self.properties.hs_timestamp)

    @property
    def is_completed(self) -> bool:
        return self.properties.hs_task_status == TASK_COMPLETED


class SearchResult(BaseModel):
    """Drained search response: every page, de-duplicated by id."""
    total: int = 0
    results: List[Dict[str, Any]] = Field(default_factory=list)


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def parse_records(model: type, raw: List[Dict[str, Any]]) -> list:
    """Validate raw HubSpot objects into model instances, skipping ones without an id."""
    records = []
    for obj in raw:
        if not isinstance(obj, dict) or obj.get("id") in (None, ""):
            continue
        records.append(model.model_validate(
            {"id": obj["id"], "properties": obj.get("properties") or {}}
        ))
    return records
