import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import httpx

from .breaker import CircuitBreaker, CircuitBreakerOpen


DEFAULT_TIMEOUT = 5.0

_RESERVED = re.compile(r'[,.:()"\s]')


@dataclass
class StoreError:
    message: str
    code: str | None = None
    status: int | None = None

    def __str__(self):
        parts = [self.message]
        if self.code:
            parts.append(f"code={self.code}")
        if self.status:
            parts.append(f"status={self.status}")
        return " ".join(parts)


@dataclass
class StoreResult:
    data: Any = None
    count: int | None = None
    error: StoreError | None = None


def _fmt(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def quote_value(value) -> str:
    s = _fmt(value)
    if _RESERVED.search(s):
        escaped = s.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return s


def _parse_count(content_range: str | None) -> int | None:
    # "0-9/42", "*/42" or "0-9/*"
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


def _error_from_response(resp: httpx.Response) -> StoreError:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        return StoreError(
            message=body.get("message") or resp.text,
            code=body.get("code"),
            status=resp.status_code,
        )
    return StoreError(message=resp.text or resp.reason_phrase, status=resp.status_code)


class Query:
    """
    Chainable request against one store table.

    Mirrors the hosted query interface: column projection with embedded
    relations, comparison / set / or filters, ordering, offset+limit ranges
    and insert / update / delete. Nothing is sent until execute().
    """

    def __init__(self, client: "StoreClient", table: str):
        self._client = client
        self._table = table
        self._method = "GET"
        self._columns = "*"
        self._params: list[tuple[str, str]] = []
        self._order: list[str] = []
        self._payload = None
        self._count: str | None = None
        self._returning = False
        self._single = False

    # ---- projection ----

    def select(self, columns: str = "*", count: str | None = None) -> "Query":
        self._columns = re.sub(r"\s+", "", columns)
        if count:
            self._count = count
        if self._method != "GET":
            self._returning = True
        return self

    # ---- filters ----

    def filter(self, column: str, operator: str, value) -> "Query":
        if operator == "in":
            return self.in_(column, value)
        self._params.append((column, f"{operator}.{_fmt(value)}"))
        return self

    def eq(self, column: str, value) -> "Query":
        return self.filter(column, "eq", value)

    def neq(self, column: str, value) -> "Query":
        return self.filter(column, "neq", value)

    def gt(self, column: str, value) -> "Query":
        return self.filter(column, "gt", value)

    def gte(self, column: str, value) -> "Query":
        return self.filter(column, "gte", value)

    def lt(self, column: str, value) -> "Query":
        return self.filter(column, "lt", value)

    def lte(self, column: str, value) -> "Query":
        return self.filter(column, "lte", value)

    def in_(self, column: str, values) -> "Query":
        joined = ",".join(quote_value(v) for v in values)
        self._params.append((column, f"in.({joined})"))
        return self

    def or_(self, expression: str) -> "Query":
        self._params.append(("or", f"({expression})"))
        return self

    def is_(self, column: str, value) -> "Query":
        # only null / true / false are accepted by the store
        self._params.append((column, f"is.{_fmt(value)}"))
        return self

    def not_(self, column: str, operator: str, value) -> "Query":
        if operator == "in":
            joined = ",".join(quote_value(v) for v in value)
            self._params.append((column, f"not.in.({joined})"))
        else:
            self._params.append((column, f"not.{operator}.{_fmt(value)}"))
        return self

    # ---- ordering / paging ----

    def order(self, column: str, ascending: bool = True, nulls_first: bool | None = None) -> "Query":
        term = f"{column}.{'asc' if ascending else 'desc'}"
        if nulls_first is not None:
            term += ".nullsfirst" if nulls_first else ".nullslast"
        self._order.append(term)
        return self

    def range(self, start: int, end: int) -> "Query":
        self._params.append(("offset", str(start)))
        self._params.append(("limit", str(end - start + 1)))
        return self

    def single(self) -> "Query":
        self._single = True
        return self

    # ---- mutations ----

    def insert(self, rows: list[dict]) -> "Query":
        self._method = "POST"
        self._payload = rows
        return self

    def update(self, fields: dict) -> "Query":
        self._method = "PATCH"
        self._payload = fields
        return self

    def delete(self) -> "Query":
        self._method = "DELETE"
        return self

    def build(self) -> tuple[str, list[tuple[str, str]], dict]:
        params = list(self._params)
        if self._method == "GET" or self._returning:
            params.insert(0, ("select", self._columns))
        if self._order:
            params.append(("order", ",".join(self._order)))

        headers = {}
        prefer = []
        if self._count:
            prefer.append(f"count={self._count}")
        if self._returning:
            prefer.append("return=representation")
        if prefer:
            headers["Prefer"] = ",".join(prefer)
        if self._single:
            headers["Accept"] = "application/vnd.pgrst.object+json"
        return self._method, params, headers

    async def execute(self) -> StoreResult:
        method, params, headers = self.build()
        return await self._client.request(
            method, self._table, params=params, payload=self._payload, headers=headers
        )


class StoreClient:
    """Thin client for the hosted backend's REST query layer."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        breaker: CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.breaker = breaker
        self.transport = transport

    def table(self, name: str) -> Query:
        return Query(self, name)

    def _base_headers(self) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _record_failure(self):
        if self.breaker:
            await self.breaker.record_failure()

    async def _record_success(self):
        if self.breaker:
            await self.breaker.record_success()

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        payload=None,
        headers: dict | None = None,
    ) -> StoreResult:
        if self.breaker:
            try:
                await self.breaker.allow_request()
            except CircuitBreakerOpen as e:
                return StoreResult(error=StoreError(str(e), code="circuit_open", status=503))

        url = f"{self.base_url}/rest/v1/{table}"
        all_headers = {**self._base_headers(), **(headers or {})}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(
                    method=method, url=url, params=params, json=payload, headers=all_headers
                )
                resp.raise_for_status()
        except httpx.TimeoutException:
            await self._record_failure()
            return StoreResult(
                error=StoreError(f"Timeout calling store: {table}", code="timeout", status=504)
            )
        except httpx.HTTPStatusError as e:
            # a 4xx still means the store answered
            if e.response.status_code >= 500:
                await self._record_failure()
            else:
                await self._record_success()
            return StoreResult(error=_error_from_response(e.response))
        except httpx.HTTPError as e:
            await self._record_failure()
            return StoreResult(
                error=StoreError(f"Store unreachable: {e}", code="transport", status=502)
            )

        await self._record_success()
        data = resp.json() if resp.content else None
        return StoreResult(data=data, count=_parse_count(resp.headers.get("content-range")))
