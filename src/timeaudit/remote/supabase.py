"""
Async client for a hosted Postgres REST backend (Supabase / PostgREST).

Table layout expected on the server:

    activities(id uuid pk, user_id uuid, activity_text text, logged_at timestamptz)

Row-level security is enforced server-side; the bearer token decides which
rows are visible, the `user_id` filter just narrows the query.
"""
import base64
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from timeaudit.models.activity import DateRange, RemoteActivity
from timeaudit.remote.base import RemoteStoreError
from timeaudit.storage.slots import SlotStore, StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)

OWNER_SLOT_NAME = "time_audit_last_owner"


class SupabaseActivityStore:
    """ActivityStore backed by the PostgREST endpoint at `<url>/rest/v1/<table>`."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        table: str = "activities",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: Project base URL, e.g. https://xyz.supabase.co
            api_key: Public anon key, sent as `apikey`.
            access_token: Signed-in user's JWT. Falls back to the api key.
            table: Activities table name.
            timeout: Per-request timeout in seconds.
            client: Pre-built AsyncClient (tests pass one with a MockTransport).
        """
        self._endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def insert(self, owner_id: str, text: str, logged_at: datetime) -> RemoteActivity:
        payload = {
            "user_id": owner_id,
            "activity_text": text,
            "logged_at": logged_at.isoformat(),
        }
        headers = {**self._headers, "Prefer": "return=representation"}
        rows = await self._request("POST", json=payload, headers=headers)
        if not rows:
            raise RemoteStoreError("Insert returned no row")
        return _to_remote(rows[0])

    async def query(self, owner_id: str, date_range: DateRange) -> List[RemoteActivity]:
        params = [
            ("select", "id,user_id,activity_text,logged_at"),
            ("user_id", f"eq.{owner_id}"),
            ("logged_at", f"gte.{date_range.start.isoformat()}"),
            ("logged_at", f"lt.{date_range.end.isoformat()}"),
            ("order", "logged_at.desc"),
        ]
        rows = await self._request("GET", params=params, headers=self._headers)
        return [_to_remote(row) for row in rows]

    async def aclose(self) -> None:
        await self._client.aclose()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _request(self, method: str, **kwargs) -> List[Dict[str, Any]]:
        try:
            resp = await self._client.request(method, self._endpoint, **kwargs)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            raise RemoteStoreError(
                f"{method} {self._endpoint} -> {exc.response.status_code}: {detail}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteStoreError(f"{method} {self._endpoint} failed: {exc}") from exc

        if isinstance(body, dict):
            body = [body]
        if not isinstance(body, list):
            raise RemoteStoreError(f"Unexpected response body: {body!r}")
        return body


class SupabaseUserProvider:
    """
    Resolves the signed-in user via `GET <url>/auth/v1/user`.

    Returns None (cannot sync now) when there is no token or the token is
    rejected. When the auth server is unreachable the cached owner is
    returned so offline submissions still get one.

    `cached_owner` never touches the network: it answers from the last
    confirmed id (kept in a slot so it survives restarts) or, failing that,
    from the `sub` claim of the access token.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        slots: Optional[SlotStore] = None,
        slot_name: str = OWNER_SLOT_NAME,
    ):
        self._endpoint = f"{url.rstrip('/')}/auth/v1/user"
        self._api_key = api_key
        self._access_token = access_token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._slots = slots
        self._slot_name = slot_name
        self._last_owner: Optional[str] = None
        self._rejected = False

    def cached_owner(self) -> Optional[str]:
        if not self._access_token or self._rejected:
            return None
        if self._last_owner:
            return self._last_owner
        if self._slots is not None:
            try:
                stored = self._slots.read(self._slot_name)
            except StorageReadError as exc:
                logger.warning("Could not read cached owner: %s", exc)
                stored = None
            if stored:
                self._last_owner = stored
                return stored
        return token_subject(self._access_token)

    async def current_owner(self) -> Optional[str]:
        if not self._access_token:
            return None
        try:
            resp = await self._client.get(
                self._endpoint,
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._access_token}",
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("User lookup failed: %s", exc)
            return self.cached_owner()
        if resp.status_code != 200:
            logger.info("User lookup rejected (%s)", resp.status_code)
            self._forget()
            return None
        try:
            owner = resp.json().get("id")
        except (ValueError, AttributeError) as exc:
            logger.warning("Unreadable user lookup response: %s", exc)
            return self.cached_owner()
        if not owner:
            return self.cached_owner()
        self._remember(str(owner))
        return self._last_owner

    async def aclose(self) -> None:
        await self._client.aclose()

    def _remember(self, owner: str) -> None:
        self._rejected = False
        if owner == self._last_owner:
            return
        self._last_owner = owner
        if self._slots is not None:
            try:
                self._slots.write(self._slot_name, owner)
            except StorageWriteError as exc:
                logger.warning("Could not cache owner %s: %s", owner, exc)

    def _forget(self) -> None:
        self._rejected = True
        self._last_owner = None
        if self._slots is not None:
            try:
                self._slots.delete(self._slot_name)
            except StorageWriteError as exc:
                logger.warning("Could not clear cached owner: %s", exc)


def token_subject(token: str) -> Optional[str]:
    """The unverified `sub` claim of a JWT, or None if the token is not one."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return None
    sub = claims.get("sub") if isinstance(claims, dict) else None
    return str(sub) if sub else None


def _to_remote(row: Dict[str, Any]) -> RemoteActivity:
    try:
        return RemoteActivity(
            id=str(row["id"]),
            owner_id=str(row["user_id"]),
            text=row["activity_text"],
            logged_at=row["logged_at"],
        )
    except (KeyError, ValueError) as exc:
        raise RemoteStoreError(f"Malformed activity row {row!r}: {exc}") from exc
