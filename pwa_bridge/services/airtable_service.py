"""Thin async client for the Airtable REST API (the durable record store)."""

from typing import Optional
from urllib.parse import quote

import httpx

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.errors import DeliveryError

logger = get_logger("airtable_service")


def quote_formula_value(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_filter_formula(filters: dict[str, str]) -> str:
    """Conjunction of equality predicates: AND({a}='x', {b}='y')."""
    clauses = [f"{{{field}}}={quote_formula_value(value)}" for field, value in filters.items()]
    if not clauses:
        return ""
    if len(clauses) == 1:
        return clauses[0]
    return f"AND({', '.join(clauses)})"


class AirtableClient:
    """Keyed lookup / insert / update against one Airtable base."""

    BASE_URL = "https://api.airtable.com/v0/{base_id}"
    PAGE_SIZE = 100

    def __init__(
        self,
        api_key: str,
        base_id: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = self.BASE_URL.format(base_id=base_id)
        self.timeout = timeout
        self._transport = transport

    def _table_url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{quote(table, safe='')}"
        if record_id:
            url += f"/{quote(record_id, safe='')}"
        return url

    async def _make_request(
        self,
        method: str,
        url: str,
        operation: str,
        params: Optional[list[tuple[str, str]]] = None,
        json: Optional[dict] = None,
    ) -> dict:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Airtable {operation} transport error: {e}")
            raise DeliveryError(f"Airtable {operation} failed: {e}", operation=operation) from e

        if response.status_code >= 400:
            logger.error(
                f"Airtable {operation} rejected",
                extra={"context": {"status": response.status_code, "body": response.text[:500]}},
            )
            raise DeliveryError(
                f"Airtable {operation} failed with HTTP {response.status_code}",
                operation=operation,
            )
        return response.json()

    async def select(
        self,
        table: str,
        filters: dict[str, str],
        max_records: Optional[int] = None,
        sort: Optional[list[tuple[str, str]]] = None,
    ) -> list[dict]:
        """List records matching every `field == value` pair.

        Each record is the raw Airtable object: {"id", "createdTime", "fields"}.
        `sort` is a list of (field, "asc" | "desc").
        """
        params: list[tuple[str, str]] = []
        formula = build_filter_formula(filters)
        if formula:
            params.append(("filterByFormula", formula))
        if max_records:
            params.append(("maxRecords", str(max_records)))
        params.append(("pageSize", str(min(max_records or self.PAGE_SIZE, self.PAGE_SIZE))))
        for index, (field, direction) in enumerate(sort or []):
            params.append((f"sort[{index}][field]", field))
            params.append((f"sort[{index}][direction]", direction))

        records: list[dict] = []
        offset = None
        while True:
            page_params = params + ([("offset", offset)] if offset else [])
            data = await self._make_request("GET", self._table_url(table), "select", params=page_params)
            records.extend(data.get("records", []))
            offset = data.get("offset")
            if not offset or (max_records and len(records) >= max_records):
                break
        return records[:max_records] if max_records else records

    async def get(self, table: str, record_id: str) -> dict:
        return await self._make_request("GET", self._table_url(table, record_id), "get")

    async def create(self, table: str, fields: dict) -> dict:
        return await self._make_request(
            "POST", self._table_url(table), "create", json={"fields": fields, "typecast": True}
        )

    async def update(self, table: str, record_id: str, fields: dict) -> dict:
        return await self._make_request(
            "PATCH", self._table_url(table, record_id), "update", json={"fields": fields, "typecast": True}
        )
