"""Test utilities for ledger-vault tests."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs

import httpx

from ledger_vault.auth import CredentialStore, OAuthClient, TokenManager
from ledger_vault.auth.models import Credential, GrantType
from ledger_vault.base import BaseDataset, Record
from ledger_vault.config import DriveConfig, LedgerVaultConfig, OAuthConfig
from ledger_vault.exceptions import DatasetError
from ledger_vault._storage.kv_memory import MemoryStateStorage
from ledger_vault.transport.drive import BOUNDARY

# child collection -> [(foreign key column, parent collection)]
FOREIGN_KEYS: Dict[str, List[Tuple[str, str]]] = {
    "transactions": [("customer_id", "customers"), ("product_id", "products")],
    "expenses": [("supplier_id", "suppliers"), ("expense_preset_id", "expense_presets")],
    "payment_reminders": [("customer_id", "customers")],
    "accounts_payable": [("supplier_id", "suppliers")],
}

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for the token manager and scheduler."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryDataset(BaseDataset):
    """Dataset double that enforces foreign keys like the real database.

    Upserting a child whose parent is missing fails, and so does deleting a
    parent that children still reference. Every call is recorded in
    ``calls`` as ``(operation, collection)``.
    """

    def __init__(self, tables: Optional[Dict[str, List[Record]]] = None):
        self.tables: Dict[str, Dict[Any, Record]] = {}
        for name, records in (tables or {}).items():
            self.tables[name] = {r["id"]: dict(r) for r in records}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.delay: float = 0.0

    def fail(self, operation: str, collection: str, error: Optional[Exception] = None) -> None:
        self.failures[(operation, collection)] = error or DatasetError(collection, "simulated failure")

    async def _enter(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        if self.delay:
            await asyncio.sleep(self.delay)
        error = self.failures.get((operation, collection))
        if error is not None:
            raise error

    def table(self, collection: str) -> Dict[Any, Record]:
        return self.tables.setdefault(collection, {})

    def ids(self, collection: str) -> set:
        return set(self.table(collection).keys())

    async def select_all(self, collection: str) -> List[Record]:
        await self._enter("select_all", collection)
        return [dict(r) for r in self.table(collection).values() if r.get("deleted_at") is None]

    async def upsert(self, collection: str, records: List[Record]) -> None:
        await self._enter("upsert", collection)
        for record in records:
            for column, parent in FOREIGN_KEYS.get(collection, []):
                ref = record.get(column)
                if ref is not None and ref not in self.table(parent):
                    raise DatasetError(collection, f"foreign key violation: {column}={ref}")
        for record in records:
            self.table(collection)[record["id"]] = dict(record)

    async def select_all_ids(self, collection: str) -> List[Any]:
        await self._enter("select_all_ids", collection)
        return list(self.table(collection).keys())

    async def delete_by_ids(self, collection: str, ids: Iterable[Any]) -> None:
        await self._enter("delete_by_ids", collection)
        ids = set(ids)
        for child, keys in FOREIGN_KEYS.items():
            for column, parent in keys:
                if parent != collection:
                    continue
                for record in self.table(child).values():
                    if record.get(column) in ids:
                        raise DatasetError(collection, f"still referenced from {child}")
        for record_id in ids:
            self.table(collection).pop(record_id, None)


def sample_tables() -> Dict[str, List[Record]]:
    """Three customers and five transactions referencing them."""
    customers = [{"id": f"c{i}", "name": f"Customer {i}", "deleted_at": None} for i in range(1, 4)]
    transactions = [
        {"id": f"t{i}", "customer_id": f"c{(i % 3) + 1}", "amount": 100 * i, "deleted_at": None}
        for i in range(1, 6)
    ]
    return {"customers": customers, "transactions": transactions}


def parse_multipart(body: bytes) -> Tuple[Dict[str, Any], bytes]:
    """Split an upload body into its metadata and content parts."""
    parts = body.split(f"\r\n--{BOUNDARY}".encode())
    assert parts[0] == b""
    assert parts[-1] == b"--"
    metadata_part, content_part = parts[1], parts[2]
    _, metadata = metadata_part.split(b"\r\n\r\n", 1)
    _, content = content_part.split(b"\r\n\r\n", 1)
    return json.loads(metadata), content


class FakeDrive:
    """Minimal Google Drive v3 server for ``httpx.MockTransport``."""

    def __init__(self, config: Optional[DriveConfig] = None, valid_tokens: Iterable[str] = ("access-0",)):
        self.config = config or DriveConfig()
        self.valid_tokens = set(valid_tokens)
        self.files: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self._counter = 0

    def add_file(self, name: str, content: bytes, created_at: datetime) -> str:
        self._counter += 1
        file_id = f"file-{self._counter}"
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "createdTime": created_at.isoformat().replace("+00:00", "Z"),
            "size": str(len(content)),
            "content": content,
        }
        return file_id

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": {"code": self.fail_status, "message": "Backend Error"}})

        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        if request.method == "POST" and url == self.config.upload_url:
            metadata, content = parse_multipart(request.content)
            file_id = self.add_file(metadata["name"], content, datetime.now(timezone.utc))
            return httpx.Response(200, json=self._public(self.files[file_id]))
        if request.method == "GET" and url == self.config.files_url:
            listed = sorted(self.files.values(), key=lambda f: f["createdTime"], reverse=True)
            return httpx.Response(200, json={"files": [self._public(f) for f in listed]})
        if request.method == "GET" and url.startswith(self.config.files_url + "/"):
            file_id = url.rsplit("/", 1)[1]
            if file_id not in self.files:
                return httpx.Response(404, json={"error": {"code": 404, "message": f"File not found: {file_id}"}})
            return httpx.Response(200, content=self.files[file_id]["content"])
        return httpx.Response(404)

    @staticmethod
    def _public(file: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in file.items() if k != "content"}

    def uploads(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]


class FakeOAuthProvider:
    """Google token endpoint double that issues ``access-N`` tokens."""

    def __init__(self, config: Optional[OAuthConfig] = None):
        self.config = config or OAuthConfig(client_id="client-id")
        self.issued = 0
        self.refresh_calls = 0
        self.exchange_calls = 0
        self.revoked: List[str] = []
        self.refresh_status: Optional[int] = None
        self.revoke_status: Optional[int] = None
        self.refresh_delay: float = 0.0
        self.on_issue = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if url == self.config.revoke_url:
            self.revoked.append(form["token"])
            if self.revoke_status:
                return httpx.Response(self.revoke_status, json={"error": "invalid_token"})
            return httpx.Response(200)

        if form.get("grant_type") == "refresh_token":
            self.refresh_calls += 1
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if self.refresh_status:
                return httpx.Response(
                    self.refresh_status,
                    json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
                )
            return httpx.Response(200, json={"access_token": self._issue(), "expires_in": 3600})

        if form.get("grant_type") == "authorization_code":
            self.exchange_calls += 1
            if form.get("code") == "bad-code":
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})
            return httpx.Response(
                200,
                json={"access_token": self._issue(), "expires_in": 3600, "refresh_token": "refresh-1"},
            )
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _issue(self) -> str:
        self.issued += 1
        token = f"access-{self.issued}"
        if self.on_issue is not None:
            self.on_issue(token)
        return token


class ServiceTransport(httpx.AsyncBaseTransport):
    """Routes requests to the OAuth or Drive double by host."""

    def __init__(self, oauth: FakeOAuthProvider, drive: FakeDrive):
        self.oauth = oauth.transport()
        self.drive = drive.transport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return await self.oauth.handle_async_request(request)
        return await self.drive.handle_async_request(request)


def make_token_manager(
    provider: Optional[FakeOAuthProvider] = None,
    clock: Optional[FakeClock] = None,
    state: Optional[MemoryStateStorage] = None,
) -> TokenManager:
    provider = provider or FakeOAuthProvider()
    store = CredentialStore(state or MemoryStateStorage(namespace="test"))
    oauth = OAuthClient(provider.config, http_transport=provider.transport())
    return TokenManager(store, oauth, config=provider.config, clock=clock or FakeClock())


def persistent_credential(expires_in: timedelta, now: datetime = START, token: str = "access-0") -> Credential:
    return Credential(
        access_token=token,
        access_expiry=now + expires_in,
        refresh_token="refresh-1",
        acquired_via=GrantType.AUTH_CODE,
    )


def ephemeral_credential(expires_in: timedelta, now: datetime = START, token: str = "access-0") -> Credential:
    return Credential(
        access_token=token,
        access_expiry=now + expires_in,
        acquired_via=GrantType.IMPLICIT,
    )


def create_test_config(**overrides) -> LedgerVaultConfig:
    """Create test config with in-memory state and a test OAuth client."""
    defaults = {
        "oauth": OAuthConfig(client_id="client-id"),
    }
    defaults.update(overrides)
    return LedgerVaultConfig(**defaults)
