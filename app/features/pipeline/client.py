"""
HTTP record store for the deals API.

Implements the record-store interface StageCoordinator writes through, for
consumers that sit on the far side of the API.
"""
from typing import Any, List, Optional
import httpx
from pydantic import TypeAdapter, ValidationError

from app.core import config
from app.features.pipeline.errors import RecordNotFoundError, RecordStoreError
from app.features.pipeline.schemas import DealResponse, DealUpdate
from app.utils import get_logger


log = get_logger(__name__)

_DEAL = TypeAdapter(DealResponse)
_DEALS = TypeAdapter(List[DealResponse])


def _decode(adapter: TypeAdapter, response: httpx.Response) -> Any:
    try:
        return adapter.validate_python(response.json())
    except (ValueError, ValidationError) as e:
        log.error(f"{response.request.method} {response.request.url.path} returned an unreadable body: {e}")
        raise RecordStoreError("Record store returned an unreadable response") from e


class HttpRecordStore:
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

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log.error(f"{method} {path} failed: {e}")
            raise RecordStoreError(f"Record store unreachable: {e}") from e

        if response.status_code == 404:
            raise RecordNotFoundError("Deal not found")
        if response.is_error:
            log.error(f"{method} {path} rejected: {response.status_code}")
            raise RecordStoreError(f"Record store rejected the request with status {response.status_code}")
        return response

    async def list(self) -> List[DealResponse]:
        response = await self._request("GET", "/deals")
        return _decode(_DEALS, response)

    async def get(self, deal_id: str) -> DealResponse:
        response = await self._request("GET", f"/deals/{deal_id}")
        return _decode(_DEAL, response)

    async def update(self, deal_id: str, patch: DealUpdate) -> DealResponse:
        response = await self._request(
            "PUT", f"/deals/{deal_id}", json=patch.model_dump(mode="json", exclude_unset=True)
        )
        return _decode(_DEAL, response)

    async def acknowledge(self, deal_id: str) -> DealResponse:
        response = await self._request("PATCH", f"/deals/{deal_id}/acknowledge")
        return _decode(_DEAL, response)
