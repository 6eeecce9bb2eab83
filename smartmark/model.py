from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Union


@dataclass
class Bookmark:
    id: str
    owner_id: str
    url: str
    title: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Provisional:
    """Inserted locally, waiting for the backend to assign a real id."""

    temp_id: str

    @property
    def key(self) -> str:
        return self.temp_id


@dataclass(frozen=True)
class Confirmed:
    id: str

    @property
    def key(self) -> str:
        return self.id


RecordState = Union[Provisional, Confirmed]


@dataclass
class Entry:
    state: RecordState
    bookmark: Bookmark

    @property
    def key(self) -> str:
        return self.state.key

    @property
    def provisional(self) -> bool:
        return isinstance(self.state, Provisional)


INSERT = "insert"
DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    kind: str  # insert | delete
    owner_id: str
    record_id: str
    record: Optional[Bookmark] = None

    @staticmethod
    def inserted(record: Bookmark) -> "ChangeEvent":
        return ChangeEvent(kind=INSERT, owner_id=record.owner_id, record_id=record.id, record=record)

    @staticmethod
    def deleted(record_id: str, owner_id: str) -> "ChangeEvent":
        return ChangeEvent(kind=DELETE, owner_id=owner_id, record_id=record_id)


@dataclass
class UserProfile:
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        md = self.user_metadata or {}
        name = md.get("full_name") or md.get("name")
        if name:
            return name
        if self.email:
            local = self.email.split("@")[0]
            if local:
                return local
        return "User"

    @property
    def avatar_url(self) -> Optional[str]:
        return (self.user_metadata or {}).get("avatar_url") or None
