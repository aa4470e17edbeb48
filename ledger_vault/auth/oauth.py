"""OAuth 2.0 token endpoint client for the storage provider."""

from typing import Optional, Type

import httpx
from pydantic import ValidationError

from ..config import OAuthConfig
from .._utils import logger, truncate
from ..exceptions import ExchangeFailed, RefreshFailed, TokenError
from .models import TokenResponse


class OAuthClient:
    """Speaks the provider's token and revocation endpoints.

    Never retries: a failed exchange needs fresh user interaction and a
    failed refresh is decided on by the token manager.
    """

    def __init__(
        self,
        config: OAuthConfig,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._http_transport = http_transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout),
            transport=self._http_transport,
        )

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenResponse:
        """Trade an authorization code for an access and refresh token pair."""
        form = {
            "code": code,
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
            "grant_type": "authorization_code",
        }
        if self.config.client_secret:
            form["client_secret"] = self.config.client_secret
        return await self._token_request(form, ExchangeFailed)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Obtain a new access token with a stored refresh token."""
        form = {
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "grant_type": "refresh_token",
        }
        if self.config.client_secret:
            form["client_secret"] = self.config.client_secret
        return await self._token_request(form, RefreshFailed)

    async def revoke(self, token: str) -> None:
        """Revoke an access or refresh token at the provider."""
        try:
            async with self._client() as client:
                response = await client.post(self.config.revoke_url, data={"token": token})
        except httpx.HTTPError as e:
            raise self._translate_error(e, TokenError)

        if response.status_code >= 400:
            code, description = self._error_details(response)
            raise TokenError(f"Revocation rejected: {description}", response.status_code, code)

    async def _token_request(self, form: dict, failure: Type[TokenError]) -> TokenResponse:
        try:
            async with self._client() as client:
                response = await client.post(self.config.token_url, data=form)
        except httpx.HTTPError as e:
            raise self._translate_error(e, failure)

        if response.status_code >= 400:
            code, description = self._error_details(response)
            logger.warning(f"Token endpoint rejected {form['grant_type']} grant ({response.status_code}): {description}")
            raise failure(description, response.status_code, code)

        try:
            payload = response.json()
        except ValueError:
            raise failure("Token endpoint returned a non-JSON body", response.status_code)

        # Some providers answer 200 with an error object
        if "error" in payload:
            code = str(payload["error"])
            raise failure(payload.get("error_description") or code, response.status_code, code)

        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as e:
            raise failure(f"Token endpoint response is malformed: {e.error_count()} errors", response.status_code)

    def _translate_error(self, error: Exception, failure: Type[TokenError]) -> TokenError:
        """Translate httpx errors to token errors without a status."""
        if isinstance(error, httpx.TimeoutException):
            return failure("Token request timed out")
        return failure(f"Token request failed: {error}")

    @staticmethod
    def _error_details(response: httpx.Response):
        try:
            payload = response.json()
        except ValueError:
            return None, truncate(response.text or response.reason_phrase)
        if not isinstance(payload, dict):
            return None, truncate(str(payload))
        code = payload.get("error")
        if isinstance(code, dict):
            # Google API style: {"error": {"message": ..., "status": ...}}
            return code.get("status"), code.get("message", "unknown error")
        return code, payload.get("error_description") or code or "unknown error"
