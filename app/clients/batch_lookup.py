import asyncio
import logging
from typing import Generic, Iterable, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from app.models.lookup import DeviceRecord, OwnerAlertConfig

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class BatchLookupClient(Generic[RecordT]):
    """Resolves a set of ids against a ``GET {base_url}/batch?ids=...`` endpoint.

    Any failure (transport error, bad status, undecodable body, timeout, open
    circuit) yields an empty mapping, so callers only ever branch on whether an
    id is present in the result.
    """

    record_type: type[RecordT]
    name: str = "lookup"

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = circuit_breaker

    async def lookup(self, ids: Iterable[str]) -> dict[str, RecordT]:
        ids = sorted(set(ids))
        if not ids:
            return {}

        try:
            if self.circuit_breaker is not None:
                rows = await self.circuit_breaker.call(self._fetch_with_timeout, ids)
            else:
                rows = await self._fetch_with_timeout(ids)
        except CircuitBreakerOpenError as e:
            logger.error(f"Skipping {self.name} batch of {len(ids)}: {e}")
            return {}
        except asyncio.TimeoutError:
            logger.error(
                f"Timed out after {self.timeout_seconds}s fetching "
                f"{len(ids)} {self.name} records"
            )
            return {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch {self.name} records in batch: {e}")
            return {}

        return self._index(rows)

    async def _fetch_with_timeout(self, ids: list[str]) -> list:
        return await asyncio.wait_for(self._fetch(ids), timeout=self.timeout_seconds)

    async def _fetch(self, ids: list[str]) -> list:
        response = await self.http_client.get(
            f"{self.base_url}/batch", params={"ids": ",".join(ids)}
        )
        response.raise_for_status()

        body = response.json()
        if body is None:
            return []
        if not isinstance(body, list):
            raise ValueError(f"expected a JSON list, got {type(body).__name__}")
        return body

    def _index(self, rows: list) -> dict[str, RecordT]:
        records: dict[str, RecordT] = {}

        for row in rows:
            try:
                record = self.record_type.model_validate(row)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed {self.name} record: {e}")
                continue
            records[record.id] = record

        return records


class DeviceClient(BatchLookupClient[DeviceRecord]):
    record_type = DeviceRecord
    name = "device"


class UserClient(BatchLookupClient[OwnerAlertConfig]):
    record_type = OwnerAlertConfig
    name = "user"
