import asyncio
from typing import Any, Dict, List, Optional
import aiohttp
from pydantic import ValidationError
from .snapshot_source import SnapshotSource
from ..core.config import MonitorConfig
from ..core.logger import get_logger
from ..core.types import FetchResult, LiveServer

logger = get_logger("RobloxServerSource")

USER_AGENT = "server-monitor/1.0"

class RobloxServerSource(SnapshotSource):
    """
    Public game-server list of one Roblox place.
    Follows nextPageCursor for up to `max_pages` pages.
    Any failed or malformed page fails the whole snapshot.
    """
    def __init__(self, config: MonitorConfig, session: Optional[aiohttp.ClientSession] = None):
        self.url = config.servers_url
        self.page_limit = config.page_limit
        self.max_pages = config.max_pages
        self.timeout = aiohttp.ClientTimeout(total=config.io_timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers={"user-agent": USER_AGENT})
            self._owns_session = True
        return self._session

    async def fetch(self) -> FetchResult:
        servers: List[LiveServer] = []
        cursor: Optional[str] = None

        for page in range(self.max_pages):
            try:
                body = await self._get_page(cursor)
                servers.extend(self._parse_page(body))
            except _PageError as e:
                logger.error("snapshot_fetch_failed", url=self.url, page=page, error=str(e))
                return FetchResult.failure(str(e))

            cursor = body.get("nextPageCursor")
            if not cursor:
                break

        logger.debug("snapshot_fetched", servers=len(servers))
        return FetchResult.success(servers)

    async def _get_page(self, cursor: Optional[str]) -> Dict[str, Any]:
        params = {"sortOrder": "2", "excludeFullGames": "false", "limit": str(self.page_limit)}
        if cursor:
            params["cursor"] = cursor

        try:
            async with self._get_session().get(self.url, params=params, timeout=self.timeout) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise _PageError(f"Roblox API returned status {resp.status}: {text[:200]}")
                body = await resp.json(content_type=None)
        except _PageError:
            raise
        except asyncio.TimeoutError as e:
            raise _PageError(f"Roblox API request timed out after {self.timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise _PageError(f"Roblox API request failed: {e}") from e
        except ValueError as e:
            raise _PageError(f"Roblox API returned invalid JSON: {e}") from e

        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            raise _PageError("Roblox API response has no 'data' list")
        return body

    @staticmethod
    def _parse_page(body: Dict[str, Any]) -> List[LiveServer]:
        servers = []
        for entry in body["data"]:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str) or not entry["id"]:
                raise _PageError(f"Server entry without a string id: {entry!r:.120}")
            attributes = {k: v for k, v in entry.items() if k not in ("id", "created")}
            try:
                servers.append(LiveServer(id=entry["id"], created=entry.get("created"), attributes=attributes))
            except ValidationError as e:
                raise _PageError(f"Malformed server entry {entry['id']}: {e}") from e
        return servers

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

class _PageError(Exception):
    """Internal: one page could not be turned into live servers."""
