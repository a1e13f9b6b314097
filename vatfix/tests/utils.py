from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

from ..exceptions import StoreError
from ..providers.vies import VIESProvider
from ..services.resolver import ResolutionOrchestrator
from ..services.store import InMemoryKeyValueStore
from ..utils.retry import RetryPolicy


def vies_response_xml(
    valid: bool = True,
    name: str = "ACME GmbH",
    address: str = "Berlin",
    country_code: str = "DE",
    vat_number: str = "12345678912",
    request_date: str = "2024-05-01+02:00",
) -> str:
    """A checkVat response the way VIES sends it (namespaced tags)."""
    return f"""<env:Envelope xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">
  <env:Header/>
  <env:Body>
    <ns2:checkVatResponse xmlns:ns2="urn:ec.europa.eu:taxud:vies:services:checkVat:types">
      <ns2:countryCode>{country_code}</ns2:countryCode>
      <ns2:vatNumber>{vat_number}</ns2:vatNumber>
      <ns2:requestDate>{request_date}</ns2:requestDate>
      <ns2:valid>{'true' if valid else 'false'}</ns2:valid>
      <ns2:name>{name}</ns2:name>
      <ns2:address>{address}</ns2:address>
    </ns2:checkVatResponse>
  </env:Body>
</env:Envelope>"""


def vies_fault_xml(faultstring: str = "MS_UNAVAILABLE", message: str = "") -> str:
    detail = f"<detail><message>{message}</message></detail>" if message else ""
    return f"""<env:Envelope xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">
  <env:Body>
    <env:Fault>
      <faultcode>env:Server</faultcode>
      <faultstring>{faultstring}</faultstring>
      {detail}
    </env:Fault>
  </env:Body>
</env:Envelope>"""


class MockAsyncResponse:
    def __init__(
        self,
        text: str = "",
        *,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.text = text
        self.status_code = status_code
        self.headers = headers or {}

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


Scripted = Union[MockAsyncResponse, BaseException]


class MockAsyncClient:
    """Stands in for httpx.AsyncClient; replays scripted responses or raises scripted errors."""

    def __init__(self, responses: Iterable[Scripted]) -> None:
        self._responses: List[Scripted] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def post(self, url: str, **kwargs) -> MockAsyncResponse:
        self.calls.append({"url": url, **kwargs})
        if not self._responses:
            raise AssertionError("No more mock responses available")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def aclose(self) -> None:
        return None


class SlowAsyncClient(MockAsyncClient):
    """Never answers within any reasonable deadline."""

    def __init__(self, delay: float = 10.0) -> None:
        super().__init__([])
        self.delay = delay

    async def post(self, url: str, **kwargs) -> MockAsyncResponse:
        self.calls.append({"url": url, **kwargs})
        await asyncio.sleep(self.delay)
        return MockAsyncResponse("")


class FlakyStore(InMemoryKeyValueStore):
    """In-memory store whose operations can be switched to fail."""

    def __init__(self, fail_get: bool = False, fail_put: bool = False, fail_delete: bool = False) -> None:
        super().__init__()
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.fail_delete = fail_delete

    async def get(self, key: str) -> Optional[bytes]:
        if self.fail_get:
            raise StoreError("store unreachable", operation="get", key=key)
        return await super().get(key)

    async def put(self, key: str, value: bytes) -> None:
        if self.fail_put:
            raise StoreError("store unreachable", operation="put", key=key)
        await super().put(key, value)

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StoreError("store unreachable", operation="delete", key=key)
        await super().delete(key)


class FakeClock:
    """Controllable UNIX clock (seconds)."""

    def __init__(self, now: float = 1_714_557_600.0) -> None:  # 2024-05-01T10:00:00Z
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def connect_error(message: str = "connection refused") -> httpx.ConnectError:
    return httpx.ConnectError(message, request=httpx.Request("POST", "https://vies.test/check"))


def run(coro):
    """Helper to run async functions in synchronous tests."""
    return asyncio.run(coro)


def make_resolver(responses: Iterable[Scripted], cache, clock, max_attempts: int = 3):
    """Resolver over a scripted VIES client; returns (resolver, client)."""
    client = MockAsyncClient(responses)
    provider = VIESProvider(client, url="https://vies.test/checkVatService", timeout=1.0)
    resolver = ResolutionOrchestrator(
        provider=provider,
        cache=cache,
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0),
        ttl_seconds=12 * 3600,
        clock=clock,
    )
    return resolver, client
