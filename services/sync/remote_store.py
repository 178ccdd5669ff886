"""Remote store client.

Batched, idempotent upserts into the managed backend's REST interface
(PostgREST conventions): POST to /rest/v1/<table> with ``on_conflict`` and
``Prefer: resolution=merge-duplicates`` so rows sharing a conflict key are
merged instead of duplicated.

Usage:
    from services.sync.remote_store import RemoteStore

    store = RemoteStore(url, anon_key)
    await store.upsert("reflections", records, "user_id,timestamp", access_token=identity.access_token)
    await store.close()
"""

import logging
from typing import Any

import httpx

from core.errors import ErrorCodes, RemoteStoreError
from core.http_client import APIClient

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"
UPSERT_PREFER = "resolution=merge-duplicates,return=minimal"


class RemoteStore:
    """Upserts record batches on behalf of a user.

    Args:
        url: Project base URL
        anon_key: Public API key (sent as ``apikey``; also the bearer token
            when the caller passes no access token)
        timeout: HTTP timeout in seconds
        client: Preconfigured APIClient (mainly for tests)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 30.0,
        client: APIClient | None = None,
    ):
        self.anon_key = anon_key
        self._client = client or APIClient(
            base_url=url.rstrip("/") + REST_PREFIX,
            timeout=timeout,
            extra_headers={"apikey": anon_key},
        )

    def _auth_headers(self, access_token: str | None) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token or self.anon_key}"}

    async def upsert(
        self,
        table: str,
        records: list[dict[str, Any]],
        conflict_key: str,
        access_token: str | None = None,
    ) -> None:
        """Insert or merge records into table as the user owning access_token.

        Raises:
            RemoteStoreError: If the request fails for any reason
        """
        if not records:
            return

        headers = self._auth_headers(access_token)
        headers["Prefer"] = UPSERT_PREFER

        try:
            response = await self._client.send(
                "POST",
                f"/{table}",
                json=records,
                params={"on_conflict": conflict_key},
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise RemoteStoreError(
                f"Upsert into {table} timed out after {self._client.timeout}s", code=ErrorCodes.TIMEOUT
            ) from e
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Upsert into {table} failed: {e}", code=ErrorCodes.CONNECTION_FAILED) from e

        if response.status_code >= 400:
            code = ErrorCodes.AUTH_FAILED if response.status_code == 401 else ErrorCodes.UPSERT_FAILED
            raise RemoteStoreError(
                f"Upsert into {table} failed: HTTP {response.status_code}: {response.text[:500]}",
                code=code,
                status=response.status_code,
            )

        logger.debug(f"Upserted {len(records)} record(s) into {table}")

    async def close(self) -> None:
        await self._client.close()
