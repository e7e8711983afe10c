"""GeminiGateway: generateContent client with ordered model fallback.

One request per model, each bounded by ``llm_timeout_seconds``. The model
list is walked by a tenacity ``AsyncRetrying`` loop (one attempt per model,
no backoff); the first 2xx answer wins. When a service account is configured
a JWT assertion is minted once per ``analyze`` call and exchanged for an
OAuth2 access token, otherwise the API key travels as the ``key`` query
parameter.
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path

import httpx
import jwt as pyjwt
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from app.core.config import Settings, get_settings
from app.core.exceptions import LLMGatewayError
from app.llm.gateway import NO_RESPONSE_SENTINEL

logger = structlog.get_logger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
ASSERTION_TTL_SECONDS = 3600


@dataclass(frozen=True)
class ServiceAccount:
    """The fields of a Google service-account key file that signing needs."""

    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI

    @classmethod
    def from_info(cls, info: dict) -> "ServiceAccount":
        try:
            return cls(
                client_email=info["client_email"],
                private_key=info["private_key"],
                private_key_id=info.get("private_key_id"),
                token_uri=info.get("token_uri") or DEFAULT_TOKEN_URI,
            )
        except KeyError as exc:
            raise LLMGatewayError(f"Service account is missing field {exc}") from exc


def load_service_account(settings: Settings) -> ServiceAccount | None:
    """Service account from inline JSON or a key file; None when neither is set."""
    raw = settings.gemini_service_account_json
    if not raw and settings.gemini_service_account_file:
        raw = Path(settings.gemini_service_account_file).read_text(encoding="utf-8")
    if not raw:
        return None
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMGatewayError(f"Service account JSON is invalid: {exc.msg}") from exc
    return ServiceAccount.from_info(info)


def build_assertion(account: ServiceAccount, scope: str, now: int | None = None) -> str:
    """Sign the RS256 JWT assertion used for the jwt-bearer grant."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": account.client_email,
        "scope": scope,
        "aud": account.token_uri,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_TTL_SECONDS,
    }
    headers = {"kid": account.private_key_id} if account.private_key_id else None
    return pyjwt.encode(claims, account.private_key, algorithm="RS256", headers=headers)


def extract_text(data: object) -> str:
    """Read ``candidates[0].content.parts[0].text``, or the sentinel when absent."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]  # type: ignore[index]
    except (KeyError, IndexError, TypeError):
        return NO_RESPONSE_SENTINEL
    if not isinstance(text, str) or not text:
        return NO_RESPONSE_SENTINEL
    return text


def _error_message(exc: Exception) -> str:
    """Prefer the API's own error message over httpx's generic one."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            message = exc.response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            message = None
        if message:
            return str(message)
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


class GeminiGateway:
    """LLMGateway backed by the Gemini generateContent REST API."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[str] | None = None,
    ):
        """
        Args:
            settings: defaults to the cached application settings
            http_client: injected client (tests use httpx.MockTransport); the
                gateway opens and closes its own client when omitted
            models: override of ``settings.gemini_models``
        """
        self.settings = settings or get_settings()
        self.models = list(models if models is not None else self.settings.gemini_models)
        self.timeout = self.settings.llm_timeout_seconds
        self._http_client = http_client
        self._service_account = load_service_account(self.settings)

    async def analyze(self, prompt: str) -> str:
        if not self.models:
            raise LLMGatewayError("No Gemini models configured")

        logger.info("llm_request", prompt_length=len(prompt), models=len(self.models))

        client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        try:
            headers, params = await self._auth(client)
            text = await self._call_models(client, prompt, headers, params)
        finally:
            if self._http_client is None:
                await client.aclose()

        logger.info("llm_response", response_length=len(text))
        return text

    async def _call_models(self, client: httpx.AsyncClient, prompt: str, headers: dict, params: dict) -> str:
        attempts: list[dict] = []
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.HTTPError),
                stop=stop_after_attempt(len(self.models)),
                reraise=True,
            ):
                with attempt:
                    model = self.models[attempt.retry_state.attempt_number - 1]
                    try:
                        return await self._generate(client, model, prompt, headers, params)
                    except httpx.HTTPError as exc:
                        message = _error_message(exc)
                        attempts.append({"model": model, "error": message})
                        logger.warning(
                            "llm_model_failed",
                            model=model,
                            attempt=attempt.retry_state.attempt_number,
                            error=message,
                            error_type=type(exc).__name__,
                        )
                        raise
        except httpx.HTTPError as exc:
            raise LLMGatewayError(
                f"Erro ao consultar Gemini: {_error_message(exc)}", attempts=attempts
            ) from exc
        # AsyncRetrying always returns or raises above
        raise LLMGatewayError("Erro ao consultar Gemini", attempts=attempts)

    async def _generate(
        self, client: httpx.AsyncClient, model: str, prompt: str, headers: dict, params: dict
    ) -> str:
        url = f"{self.settings.gemini_api_base}/models/{model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.settings.llm_temperature,
                "maxOutputTokens": self.settings.llm_max_output_tokens,
            },
        }
        response = await client.post(url, json=payload, headers=headers, params=params, timeout=self.timeout)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError:
            data = None
        logger.debug("llm_model_answered", model=model, status_code=response.status_code)
        return extract_text(data)

    async def _auth(self, client: httpx.AsyncClient) -> tuple[dict, dict]:
        """Return (headers, query params) for this invocation."""
        if self._service_account is None:
            return {}, {"key": self.settings.gemini_api_key}

        token = await self._fetch_access_token(client, self._service_account)
        return {"Authorization": f"Bearer {token}"}, {}

    async def _fetch_access_token(self, client: httpx.AsyncClient, account: ServiceAccount) -> str:
        assertion = build_assertion(account, self.settings.gemini_oauth_scope)
        try:
            response = await client.post(
                account.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self.timeout,
            )
            response.raise_for_status()
            token = response.json()["access_token"]
        except httpx.HTTPError as exc:
            logger.warning("llm_token_exchange_failed", error=_error_message(exc), error_type=type(exc).__name__)
            raise LLMGatewayError(f"Falha ao obter token de acesso: {_error_message(exc)}") from exc
        except (ValueError, KeyError) as exc:
            raise LLMGatewayError("Resposta de token sem access_token") from exc
        return token
