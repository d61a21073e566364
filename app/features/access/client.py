"""
HTTP client for the access rule API.

Used by board-side consumers (AccessRulesState, scripts) that evaluate
access locally against the rules the server holds.
"""
from typing import List, Optional
import httpx
from pydantic import TypeAdapter, ValidationError

from app.core import config
from app.features.access.errors import StoreUnavailableError
from app.features.access.schemas import PermissionRule
from app.utils import get_logger


log = get_logger(__name__)

_RULES = TypeAdapter(List[PermissionRule])


class AccessRulesClient:
    def __init__(
        self,
        token: str,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Authorization": f"Bearer {token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def fetch_rules(self) -> List[PermissionRule]:
        """Fetch the current permission matrix."""
        try:
            async with self._client() as client:
                response = await client.get("/access-rules")
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"Rule fetch rejected: {e.response.status_code}")
            raise StoreUnavailableError(f"Rule fetch failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            log.error(f"Rule fetch failed: {e}")
            raise StoreUnavailableError(f"Rule fetch failed: {e}") from e

        try:
            return _RULES.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            log.error(f"Rule fetch returned an unreadable body: {e}")
            raise StoreUnavailableError("Rule fetch returned an unreadable response") from e
