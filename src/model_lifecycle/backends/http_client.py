"""
Shared HTTP plumbing for the remote training service backends.

Wraps ``httpx.AsyncClient`` with authentication, JSON decoding and the
translation of transport / HTTP errors into ``RemoteServiceError``.
"""

from typing import Any, Dict, Optional, Type

import httpx

from ..config import BackendConfig
from ..exceptions import RemoteServiceError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class TrainingServiceClient:
    """Thin async HTTP client bound to one training service root URL."""

    def __init__(
        self,
        backend_config: BackendConfig,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = "model-lifecycle/0.1.0",
    ) -> None:
        """
        Args:
            backend_config: URL, credentials and timeout of the service.
            client: Pre-built ``httpx.AsyncClient`` (tests inject one wired
                to ``httpx.MockTransport``). Built from the config when omitted.
            user_agent: ``User-Agent`` header sent with every request.
        """
        self.config = backend_config
        self.base_url = backend_config.url.rstrip("/")
        self.version = backend_config.version
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(backend_config.timeout),
            headers=self._get_default_headers(user_agent),
            auth=self._get_auth(),
        )

    def _get_default_headers(self, user_agent: str) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": user_agent,
        }
        if self.config.api_key and not self.config.username:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _get_auth(self) -> Optional[httpx.Auth]:
        if self.config.username and self.config.password:
            return httpx.BasicAuth(self.config.username, self.config.password)
        return None

    def path(self, *parts: str) -> str:
        """Build a versioned request path, e.g. ``/v1/classifiers/abc``."""
        segments = [self.version] + [str(p).strip("/") for p in parts if p]
        return "/" + "/".join(segments)

    async def request(
        self,
        method: str,
        path: str,
        *,
        error_class: Type[RemoteServiceError] = RemoteServiceError,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (``{}`` when empty).

        Raises:
            RemoteServiceError: (or *error_class*) on transport failures and
                on any response with status >= 400.
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise error_class(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            payload = self._decode(response)
            logger.error(
                "%s %s returned HTTP %s: %s", method, path, response.status_code, payload
            )
            raise error_class(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
