"""Async HTTP client for the remote document store behind the caches."""

from __future__ import annotations

import asyncio
import base64
import logging
import random
from typing import Any, Mapping

import httpx

from ranking_cache.config import StoreConfig
from ranking_cache.errors import (
    DocumentNotFound,
    FetchFailed,
    StoreAuthError,
    StoreTransportError,
)

logger = logging.getLogger(__name__)

COLLECTION_ALIASES = {
    'league': 'leagues',
    'season': 'seasons',
    'user': 'users',
}
LIST_ALL = '*'

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class DocumentStoreClient:
    """Read-only client for a Firestore-style REST document API.

    Keys follow ``<entity>:<id>``. The entity names a collection, either
    through :data:`COLLECTION_ALIASES` (``league`` -> ``leagues``) or
    verbatim. An id of ``*`` lists every document in the collection.

    Features:
    - Decodes the typed field encoding into plain Python values
    - Follows ``nextPageToken`` pagination when listing collections
    - Exponential backoff retry for throttling, 5xx and network errors

    Example:
        >>> client = DocumentStoreClient(StoreConfig.from_env())
        >>> league = await client.fetch('league:abc123')
        >>> print(league['name'], len(league['rankings']))
        >>> seasons = await client.fetch('season:*')
    """

    def __init__(
        self,
        config: StoreConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config.validate()
        self._transport = transport

    async def fetch(self, key: str) -> Any:
        """Fetch one document or a whole collection.

        Returns:
            A dict for a single document (its id under ``id``), or a list of
            such dicts when the key ends in ``:*``.

        Raises:
            DocumentNotFound: The document does not exist.
            StoreAuthError: Credentials rejected, or throttled past all retries.
            StoreTransportError: Network, HTTP or decoding failures.
            FetchFailed: Malformed keys.
        """
        collection, doc_id = self._parse_key(key)
        if doc_id == LIST_ALL:
            return await self._list(key, collection)
        payload = await self._request(key, f'{self._documents_path}/{collection}/{doc_id}')
        return decode_document(payload)

    async def _list(self, key: str, collection: str) -> list[dict[str, Any]]:
        documents: list[dict[str, Any]] = []
        params: dict[str, Any] = {'pageSize': self._config.page_size}
        while True:
            path = f'{self._documents_path}/{collection}'
            payload = await self._request(key, path, params=params)
            documents.extend(decode_document(doc) for doc in payload.get('documents', []))
            page_token = payload.get('nextPageToken')
            if not page_token:
                return documents
            params = {'pageSize': self._config.page_size, 'pageToken': page_token}

    @property
    def _documents_path(self) -> str:
        return f'/projects/{self._config.project_id}/databases/{self._config.database}/documents'

    async def _request(
        self,
        key: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request with exponential backoff retry logic."""
        headers = {
            'User-Agent': self._config.user_agent,
            'Accept': 'application/json',
        }
        if self._config.auth_token:
            headers['Authorization'] = f'Bearer {self._config.auth_token}'

        for attempt in range(self._config.max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    base_url=self._config.base_url,
                    headers=headers,
                    timeout=self._config.timeout,
                    transport=self._transport,
                ) as client:
                    response = await client.get(path, params=params)
                    response.raise_for_status()

                    try:
                        data = response.json()
                    except ValueError as exc:
                        raise StoreTransportError(exc) from exc
                    if not isinstance(data, dict):
                        raise StoreTransportError(ValueError(f'Unexpected payload for {key}'))
                    return data

            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code == 404:
                    raise DocumentNotFound(key) from exc
                if status_code in (401, 403):
                    raise StoreAuthError(f'Store rejected credentials ({status_code})') from exc
                if status_code not in RETRYABLE_STATUS:
                    raise StoreTransportError(exc) from exc
                if status_code == 429:
                    last_exception = StoreAuthError('Rate limited by document store')
                else:
                    last_exception = StoreTransportError(exc)
                if attempt < self._config.max_retries:
                    await self._backoff(key, attempt, status_code)
                    continue
                raise last_exception from exc

            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_exception = StoreTransportError(exc)
                if attempt < self._config.max_retries:
                    await self._backoff(key, attempt, exc)
                    continue
                raise last_exception from exc

            except httpx.HTTPError as exc:
                raise StoreTransportError(exc) from exc

    async def _backoff(self, key: str, attempt: int, reason: object) -> None:
        delay = self._calculate_backoff_delay(attempt)
        logger.warning(
            'Retrying %s in %.2fs after %s (attempt %d of %d)',
            key,
            delay,
            reason,
            attempt + 1,
            self._config.max_retries,
        )
        await asyncio.sleep(delay)

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        delay = self._config.retry_base_delay * (2**attempt)
        delay = min(delay, self._config.retry_max_delay)

        # Add jitter (±25% randomization)
        jitter = delay * 0.25 * (2 * random.random() - 1)
        delay += jitter

        return max(0.1, delay)

    @staticmethod
    def _parse_key(key: str) -> tuple[str, str]:
        entity, sep, doc_id = key.partition(':')
        if not sep or not entity or not doc_id or '/' in doc_id:
            raise FetchFailed(f"Malformed key {key!r}; expected '<entity>:<id>'")
        return COLLECTION_ALIASES.get(entity, entity), doc_id


def decode_document(document: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten a typed REST document into a plain dict with its id under ``id``."""
    decoded = {name: decode_value(value) for name, value in document.get('fields', {}).items()}
    name = document.get('name')
    if name:
        decoded.setdefault('id', name.rsplit('/', 1)[-1])
    return decoded


def decode_value(value: Mapping[str, Any]) -> Any:
    """Decode one typed value (``{"stringValue": "x"}`` -> ``"x"``)."""
    if 'stringValue' in value:
        return value['stringValue']
    if 'integerValue' in value:
        # 64-bit integers travel as strings
        return int(value['integerValue'])
    if 'doubleValue' in value:
        return float(value['doubleValue'])
    if 'booleanValue' in value:
        return bool(value['booleanValue'])
    if 'nullValue' in value:
        return None
    if 'timestampValue' in value:
        return value['timestampValue']
    if 'referenceValue' in value:
        return value['referenceValue']
    if 'bytesValue' in value:
        return base64.b64decode(value['bytesValue'])
    if 'geoPointValue' in value:
        point = value['geoPointValue']
        # zero coordinates are omitted on the wire
        return {
            'latitude': float(point.get('latitude', 0.0)),
            'longitude': float(point.get('longitude', 0.0)),
        }
    if 'mapValue' in value:
        fields = value['mapValue'].get('fields', {})
        return {name: decode_value(inner) for name, inner in fields.items()}
    if 'arrayValue' in value:
        return [decode_value(inner) for inner in value['arrayValue'].get('values', [])]
    raise StoreTransportError(ValueError(f'Unsupported value encoding: {sorted(value)}'))
