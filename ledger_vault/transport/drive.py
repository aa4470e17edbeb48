"""Google Drive v3 wire protocol: multipart upload, list, download."""

import json
from typing import Any, Dict, List, Optional, Type, Union

import httpx
from pydantic import ValidationError

from ..backup.models import BackupFile
from ..config import DriveConfig
from .._utils import logger, truncate
from ..exceptions import DownloadFailed, ListFailed, TransportFailed, UploadFailed

BOUNDARY = "lv_9f27c4e1b8d3a605"
DELIMITER = f"\r\n--{BOUNDARY}\r\n".encode()
CLOSE_DELIM = f"\r\n--{BOUNDARY}--".encode()

FILE_FIELDS = "id,name,createdTime,size"


def build_multipart_body(metadata: Dict[str, Any], content: bytes, content_type: str = "application/json") -> bytes:
    """Assemble a ``multipart/related`` body: JSON metadata part, then content part."""
    return b"".join([
        DELIMITER,
        b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
        json.dumps(metadata).encode("utf-8"),
        DELIMITER,
        f"Content-Type: {content_type}\r\n\r\n".encode(),
        content,
        CLOSE_DELIM,
    ])


class DriveTransport:
    """Stateless client for the remote storage provider.

    Every call takes a caller-supplied access token; token management lives
    in ``TokenManager``. Uploads are not idempotent: each call creates a new
    file, so callers pass unique, timestamped file names.
    """

    def __init__(
        self,
        config: Optional[DriveConfig] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or DriveConfig()
        self._http_transport = http_transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout),
            transport=self._http_transport,
        )

    @staticmethod
    def _auth_headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def upload(self, token: str, file_name: str, content: Union[bytes, str]) -> BackupFile:
        """Create a new file holding ``content``.

        Raises:
            UploadFailed: non-2xx answer, timeout or connection error.
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        metadata = {"name": file_name, "mimeType": "application/json"}
        headers = self._auth_headers(token)
        headers["Content-Type"] = f"multipart/related; boundary={BOUNDARY}"

        response = await self._request(
            UploadFailed,
            "POST",
            self.config.upload_url,
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            headers=headers,
            content=build_multipart_body(metadata, content),
        )
        payload = self._json(response, UploadFailed)
        payload.setdefault("name", file_name)
        payload.setdefault("size", len(content))
        try:
            uploaded = BackupFile.model_validate(payload)
        except ValidationError as e:
            raise UploadFailed(response.status_code, f"Unexpected upload response: {e}")
        logger.info(f"Uploaded {file_name} ({len(content):,} bytes) as {uploaded.id}")
        return uploaded

    async def list_backups(self, token: str) -> List[BackupFile]:
        """List this application's non-trashed backups, newest first.

        Raises:
            ListFailed: with ``is_auth_error`` set for an expired token.
        """
        prefix = self.config.file_prefix
        params = {
            "q": f"trashed = false and name contains '{prefix}'",
            "orderBy": "createdTime desc",
            "pageSize": str(self.config.page_size),
            "fields": f"files({FILE_FIELDS})",
        }
        response = await self._request(
            ListFailed,
            "GET",
            self.config.files_url,
            params=params,
            headers=self._auth_headers(token),
        )
        payload = self._json(response, ListFailed)

        files = []
        for item in payload.get("files") or []:
            # The name filter is a substring match on the provider side
            if not str(item.get("name", "")).startswith(prefix):
                continue
            try:
                files.append(BackupFile.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable file entry {item.get('id')}: {e}")

        files.sort(key=lambda f: (f.created_at is not None, f.created_at), reverse=True)
        return files[: self.config.page_size]

    async def download(self, token: str, file_id: str) -> bytes:
        """Fetch the raw content of one file.

        Raises:
            DownloadFailed: non-2xx answer, timeout or connection error.
        """
        response = await self._request(
            DownloadFailed,
            "GET",
            f"{self.config.files_url}/{file_id}",
            params={"alt": "media"},
            headers=self._auth_headers(token),
        )
        logger.info(f"Downloaded file {file_id} ({len(response.content):,} bytes)")
        return response.content

    async def _request(self, failure: Type[TransportFailed], method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            logger.warning(f"{failure.operation.capitalize()} request timed out")
            raise failure(None, "Request timed out")
        except httpx.HTTPError as e:
            logger.warning(f"{failure.operation.capitalize()} request failed: {e}")
            raise failure(None, f"Connection error: {e}")

        if response.is_error:
            message = self._error_message(response)
            logger.error(f"{failure.operation.capitalize()} failed ({response.status_code}): {truncate(response.text, 500)}")
            raise failure(response.status_code, message)
        return response

    @staticmethod
    def _json(response: httpx.Response, failure: Type[TransportFailed]) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            raise failure(response.status_code, "Provider returned a non-JSON body")
        if not isinstance(payload, dict):
            raise failure(response.status_code, "Provider returned an unexpected body")
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.reason_phrase or "unknown error"
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return truncate(str(error["message"]))
        if isinstance(error, str):
            return truncate(error)
        return response.reason_phrase or "unknown error"
