from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from .log import get_logger
from .model import Bookmark, UserProfile
from .store import BookmarkStore, IdentityProvider, StoreError

log = get_logger(__name__)

TABLE = "bookmarks"


class BookmarkRow(BaseModel):
    id: str
    user_id: str = Field(..., description="Owner of the bookmark.")
    url: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    def to_bookmark(self) -> Bookmark:
        created = _aware(self.created_at)
        return Bookmark(
            id=self.id,
            owner_id=self.user_id,
            url=self.url,
            title=self.title or "",
            created_at=created,
            updated_at=_aware(self.updated_at) if self.updated_at else created,
        )


class UserRow(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_profile(self) -> UserProfile:
        md = {k: str(v) for k, v in (self.user_metadata or {}).items() if v is not None}
        return UserProfile(id=self.id, email=self.email, user_metadata=md)


class RestBackend(BookmarkStore, IdentityProvider):
    """Hosted backend-as-a-service: PostgREST table API plus the auth user endpoint.

    Row-level security on the service side restricts every request to the
    signed-in user; the owner filters here mirror it so a misconfigured
    policy cannot leak rows into the list.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        access_token: str,
        *,
        timeout_s: int = 15,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_url:
            raise ValueError("api_url is required for the rest backend")
        self.api_url = api_url.rstrip("/")
        headers = {"apikey": api_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.client = httpx.Client(
            base_url=self.api_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_s, connect=timeout_s),
            transport=transport,
        )

    # Identity

    def current_user(self) -> Optional[UserProfile]:
        try:
            r = self.client.get("/auth/v1/user")
        except httpx.HTTPError as e:
            raise StoreError(f"user lookup failed: {e}") from e
        if r.status_code in (401, 403):
            return None
        _raise_for_status(r, "user lookup")
        try:
            return UserRow.model_validate(r.json()).to_profile()
        except (ValueError, ValidationError) as e:
            raise StoreError(f"unexpected user payload: {e}") from e

    def sign_out(self) -> None:
        try:
            r = self.client.post("/auth/v1/logout")
        except httpx.HTTPError as e:
            raise StoreError(f"sign-out failed: {e}") from e
        if r.status_code not in (401, 403):
            _raise_for_status(r, "sign-out")
        self.client.headers.pop("Authorization", None)

    # Bookmarks

    def list_bookmarks(self, owner_id: str) -> List[Bookmark]:
        params = {"select": "*", "user_id": f"eq.{owner_id}", "order": "created_at.desc"}
        try:
            r = self.client.get(f"/rest/v1/{TABLE}", params=params)
        except httpx.HTTPError as e:
            raise StoreError(f"list failed: {e}") from e
        _raise_for_status(r, "list")
        try:
            payload = r.json()
            if not isinstance(payload, list):
                raise StoreError(f"list returned {type(payload).__name__}, expected array")
            return [BookmarkRow.model_validate(row).to_bookmark() for row in payload]
        except (ValueError, ValidationError) as e:
            raise StoreError(f"unexpected list payload: {e}") from e

    def insert_bookmark(self, owner_id: str, url: str, title: str) -> Bookmark:
        headers = {
            "Prefer": "return=representation",
            "Accept": "application/vnd.pgrst.object+json",
        }
        body = {"user_id": owner_id, "url": url, "title": title}
        try:
            r = self.client.post(f"/rest/v1/{TABLE}", json=body, headers=headers)
        except httpx.HTTPError as e:
            raise StoreError(f"insert failed: {e}") from e
        _raise_for_status(r, "insert")
        try:
            payload = r.json()
            # Some deployments ignore the single-object Accept header.
            if isinstance(payload, list):
                if len(payload) != 1:
                    raise StoreError(f"insert returned {len(payload)} rows, expected 1")
                payload = payload[0]
            return BookmarkRow.model_validate(payload).to_bookmark()
        except (ValueError, ValidationError) as e:
            raise StoreError(f"unexpected insert payload: {e}") from e

    def delete_bookmark(self, bookmark_id: str, owner_id: str) -> None:
        params = {"id": f"eq.{bookmark_id}", "user_id": f"eq.{owner_id}"}
        try:
            r = self.client.delete(f"/rest/v1/{TABLE}", params=params)
        except httpx.HTTPError as e:
            raise StoreError(f"delete failed: {e}") from e
        _raise_for_status(r, "delete")

    def close(self) -> None:
        self.client.close()


def _raise_for_status(r: httpx.Response, what: str) -> None:
    if r.status_code < 400:
        return
    detail = ""
    try:
        data = r.json()
        if isinstance(data, dict):
            detail = str(data.get("message") or data.get("msg") or data.get("error_description") or "")
    except ValueError:
        detail = r.text[:200]
    msg = f"{what} failed: HTTP {r.status_code}"
    if detail:
        msg = f"{msg} ({detail})"
    raise StoreError(msg)


def _aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
