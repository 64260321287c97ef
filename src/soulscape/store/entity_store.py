"""TTL-keyed entity store boundary.

An entity is an opaque payload plus a flat set of string attributes that can
be filtered on, and an expiry enforced by the store. Entities are immutable
once written. Two implementations:

- ``HttpEntityStore``: remote store reached over HTTP; writes are signed with
  the store key.
- ``InMemoryEntityStore``: process-local store for development and tests.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from pydantic import BaseModel, Field, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


class EntityStoreError(Exception):
    """Raised when the store cannot be reached or rejects an operation."""

    pass


class Entity(BaseModel):
    """A stored entity as returned by a query.

    Attributes:
        key: Store-assigned entity key.
        payload: Raw body (None when the query did not request payloads).
        content_type: MIME type of the payload.
        attributes: Queryable string attributes.
        expires_at: Epoch seconds after which the store drops the entity.
    """

    key: str
    payload: bytes | None = None
    content_type: str = "application/json"
    attributes: dict[str, str] = Field(default_factory=dict)
    expires_at: float = 0.0

    def json_payload(self) -> Any:
        """Decode the payload as UTF-8 JSON."""
        if self.payload is None:
            raise ValueError(f"Entity {self.key} was fetched without its payload")
        return json.loads(self.payload.decode("utf-8"))


class EntityStore(ABC):
    """Write/query interface of the TTL entity store."""

    @abstractmethod
    def write(
        self,
        payload: bytes,
        content_type: str,
        attributes: Mapping[str, str],
        ttl_seconds: int,
    ) -> str:
        """Store an entity and return its key.

        Raises:
            EntityStoreError: If the store rejects or cannot accept the write.
        """
        raise NotImplementedError

    @abstractmethod
    def query(self, filters: Mapping[str, str], include_payload: bool = True) -> list[Entity]:
        """Return live entities whose attributes equal every filter value.

        Order is unspecified.

        Raises:
            EntityStoreError: If the store cannot be queried.
        """
        raise NotImplementedError


class InMemoryEntityStore(EntityStore):
    """Thread-safe in-process entity store with TTL expiry.

    Expired entities are dropped lazily on query.

    Example:
        >>> store = InMemoryEntityStore()
        >>> key = store.write(b"{}", "application/json", {"type": "t"}, ttl_seconds=60)
        >>> [e.key for e in store.query({"type": "t"})] == [key]
        True
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Source of epoch seconds (tests inject a fake).
        """
        self._clock = clock
        self._entities: dict[str, Entity] = {}
        self._lock = threading.RLock()
        self._expirations = 0

    @property
    def size(self) -> int:
        """Number of entities currently held, expired or not."""
        with self._lock:
            return len(self._entities)

    @property
    def expirations(self) -> int:
        """Number of entities dropped because their TTL elapsed."""
        with self._lock:
            return self._expirations

    def write(
        self,
        payload: bytes,
        content_type: str,
        attributes: Mapping[str, str],
        ttl_seconds: int,
    ) -> str:
        if ttl_seconds <= 0:
            raise EntityStoreError("ttl_seconds must be positive")
        key = "0x" + uuid.uuid4().hex
        entity = Entity(
            key=key,
            payload=bytes(payload),
            content_type=content_type,
            attributes={str(k): str(v) for k, v in attributes.items()},
            expires_at=self._clock() + ttl_seconds,
        )
        with self._lock:
            self._entities[key] = entity
        logger.debug("Stored entity %s (ttl=%ds)", key, ttl_seconds)
        return key

    def query(self, filters: Mapping[str, str], include_payload: bool = True) -> list[Entity]:
        now = self._clock()
        results: list[Entity] = []
        with self._lock:
            for key in [k for k, e in self._entities.items() if e.expires_at <= now]:
                del self._entities[key]
                self._expirations += 1
            for entity in self._entities.values():
                if all(entity.attributes.get(k) == str(v) for k, v in filters.items()):
                    results.append(
                        entity if include_payload else entity.model_copy(update={"payload": None})
                    )
        return results


class HttpEntityStore(EntityStore):
    """Entity store reached over HTTP.

    Writes are ``POST {base}/entities`` with a base64 payload and are signed
    with the store key (EIP-191 personal message over the request body).
    Queries are ``POST {base}/entities/query``. Queries are retried on
    transport errors; writes are not.
    """

    def __init__(
        self,
        base_url: str,
        private_key: str | None = None,
        timeout: float = 20.0,
        max_retries: int = 3,
        retry_wait: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP store client.

        Args:
            base_url: Store root URL.
            private_key: Key used to sign writes; reads need none.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts per query.
            retry_wait: Initial backoff between query attempts.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._account = Account.from_key(private_key) if private_key else None
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_wait = retry_wait
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def _sign(self, body: bytes) -> dict[str, str]:
        if self._account is None:
            raise EntityStoreError("STORE_PRIVATE_KEY is required for writes")
        signed = self._account.sign_message(encode_defunct(primitive=body))
        return {
            "X-Signer": self._account.address,
            "X-Signature": "0x" + bytes(signed.signature).hex(),
        }

    def write(
        self,
        payload: bytes,
        content_type: str,
        attributes: Mapping[str, str],
        ttl_seconds: int,
    ) -> str:
        document = {
            "payload": base64.b64encode(payload).decode("ascii"),
            "contentType": content_type,
            "attributes": [{"key": k, "value": str(v)} for k, v in attributes.items()],
            "expiresIn": ttl_seconds,
        }
        body = json.dumps(document, separators=(",", ":"), sort_keys=True).encode()
        headers = {"Content-Type": "application/json", **self._sign(body)}
        try:
            with self._client() as client:
                response = client.post(f"{self._base_url}/entities", content=body, headers=headers)
                response.raise_for_status()
            key = response.json()["entityKey"]
        except httpx.TimeoutException as e:
            raise EntityStoreError(f"Store write timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise EntityStoreError(f"Store rejected write: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EntityStoreError(f"Store unreachable: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise EntityStoreError("Store returned a malformed write response") from e
        return str(key)

    def query(self, filters: Mapping[str, str], include_payload: bool = True) -> list[Entity]:
        document = {
            "where": [{"key": k, "value": str(v)} for k, v in filters.items()],
            "withPayload": include_payload,
        }
        retryer = Retrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_wait, max=10.0),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            body = retryer(self._post_query, document)
        except httpx.TimeoutException as e:
            raise EntityStoreError(f"Store query timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise EntityStoreError(f"Store query failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EntityStoreError(f"Store unreachable: {e}") from e

        if not isinstance(body, dict) or not isinstance(body.get("entities"), list):
            raise EntityStoreError("Store returned a malformed query response")
        return [e for e in (self._parse_entity(raw) for raw in body["entities"]) if e is not None]

    def _post_query(self, document: dict[str, Any]) -> Any:
        with self._client() as client:
            response = client.post(f"{self._base_url}/entities/query", json=document)
            response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise EntityStoreError("Store returned a non-JSON body") from e

    def _parse_entity(self, raw: Any) -> Entity | None:
        try:
            payload = raw.get("payload")
            return Entity(
                key=raw["entityKey"],
                payload=base64.b64decode(payload) if payload is not None else None,
                content_type=raw.get("contentType", "application/json"),
                attributes={a["key"]: str(a["value"]) for a in raw.get("attributes", [])},
                expires_at=float(raw.get("expiresAt", 0)),
            )
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning("Skipping malformed entity from store: %s", str(e))
            return None
