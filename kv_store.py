"""Durable key-value store backends (get/put, last write wins)."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import requests

KV_BACKEND = os.getenv("KV_BACKEND", "file")
KV_FILE_PATH = os.getenv("KV_FILE_PATH", "kv_store.json")

CLOUDFLARE_API_BASE_URL = "https://api.cloudflare.com/client/v4"
REQUEST_TIMEOUT_SECONDS = 15

LOGGER = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A read or write against the durable store failed."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Process-local store. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """All keys kept in a single JSON object on disk.

    Every put re-reads the file so that two processes sharing the file
    only lose each other's writes to the same key.
    """

    def __init__(self, path: str | Path = KV_FILE_PATH) -> None:
        self.path = Path(path)

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def put(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise StoreError(f"Could not write key={key} to {self.path}: {exc}") from exc
        LOGGER.debug("Stored key=%s (%s chars) in %s", key, len(value), self.path)

    def _load(self) -> dict[str, object]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Could not read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Unexpected store shape in {self.path}: expected an object")
        return data


class CloudflareKVStore:
    """Workers KV namespace accessed through the Cloudflare REST API."""

    def __init__(self, account_id: str, namespace_id: str, api_token: str) -> None:
        self.base_url = (
            f"{CLOUDFLARE_API_BASE_URL}/accounts/{account_id}"
            f"/storage/kv/namespaces/{namespace_id}/values"
        )
        self.headers = {"Authorization": f"Bearer {api_token}"}

    def get(self, key: str) -> str | None:
        response = self._request("GET", key)
        if response.status_code == 404:
            return None
        return response.text

    def put(self, key: str, value: str) -> None:
        self._request("PUT", key, data=value.encode("utf-8"))

    def _request(self, method: str, key: str, data: bytes | None = None) -> requests.Response:
        url = f"{self.base_url}/{quote(key, safe='')}"
        try:
            response = requests.request(
                method=method,
                url=url,
                headers=self.headers,
                data=data,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise StoreError(f"KV {method} key={key} failed: {exc}") from exc

        if response.status_code == 404 and method == "GET":
            return response
        if not 200 <= response.status_code < 300:
            raise StoreError(
                f"KV {method} key={key} failed with status {response.status_code}: {response.text[:200]}"
            )
        return response


def store_from_env() -> KeyValueStore:
    """Build the backend named by KV_BACKEND."""
    backend = os.getenv("KV_BACKEND", KV_BACKEND).strip().lower()

    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return JsonFileStore(os.getenv("KV_FILE_PATH", KV_FILE_PATH))
    if backend == "cloudflare":
        account_id = os.getenv("CF_ACCOUNT_ID")
        namespace_id = os.getenv("CF_KV_NAMESPACE_ID")
        api_token = os.getenv("CF_API_TOKEN")
        if not account_id or not namespace_id or not api_token:
            raise RuntimeError(
                "CF_ACCOUNT_ID, CF_KV_NAMESPACE_ID and CF_API_TOKEN are required for KV_BACKEND=cloudflare"
            )
        return CloudflareKVStore(account_id, namespace_id, api_token)

    raise RuntimeError(f"Unknown KV_BACKEND: {backend!r}")
