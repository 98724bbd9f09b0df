import json
import logging
import threading
from urllib.parse import quote

import requests
from pydantic import BaseModel

from ..config import Config

logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudflare.com/client/v4"


class KVResponseError(RuntimeError):
    """The KV API answered with something other than a JSON object."""


class KVResult(BaseModel):
    """Outcome of one KV write or delete.

    Attributes:
        success: Whether Cloudflare accepted the request.
        error: Provider-supplied reason when ``success`` is False.
    """

    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class CloudflareKVClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = self._get_base_url()

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_base_url(self) -> str:
        return (
            f"{API_BASE}/accounts/{self.config.account_id}"
            f"/storage/kv/namespaces/{self.config.namespace_id}"
        )

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session.

        Calls arrive through ``asyncio.to_thread`` so they may land on any
        worker thread of the default executor.
        """
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Authorization"] = f"Bearer {self.config.api_token}"
        return session

    def value_url(self, key: str) -> str:
        """Return the REST URL for *key*; slashes stay literal."""
        return f"{self.base_url}/values/{quote(key, safe='/')}"

    def _kv_request(
        self, method: str, key: str, body: str | None = None
    ) -> KVResult:
        """
        Send one KV request and map the API envelope to a KVResult.

        Cloudflare reports failures in the JSON envelope
        (``{"success": false, "errors": [...]}``) for both 2xx and error
        statuses, so the status code itself is not inspected.

        Raises:
            KVResponseError: If the body is not a JSON object.
            requests.RequestException: On network failures and timeouts.
        """
        headers = {}
        if body is not None:
            headers["Content-Type"] = "text/plain"

        response = self._get_session().request(
            method,
            self.value_url(key),
            data=body.encode("utf-8") if body is not None else None,
            headers=headers,
            timeout=self.config.request_timeout,
        )

        try:
            payload = response.json()
        except ValueError as exc:
            raise KVResponseError(
                f"Unexpected response from cloudflare kv API (HTTP {response.status_code}): "
                f"{response.text[:200]!r}"
            ) from exc

        if not isinstance(payload, dict):
            raise KVResponseError(
                "Unexpected response from cloudflare kv API, "
                f"response body is {type(payload).__name__}"
            )

        if not payload.get("success"):
            errors = payload.get("errors", [])
            logger.debug("%s %s rejected: %s", method, key, errors)
            return KVResult(success=False, error=json.dumps(errors))
        return KVResult(success=True)

    def put(self, key: str, body: str) -> KVResult:
        """
        Write *body* under *key*, replacing any existing value.
        """
        return self._kv_request("PUT", key, body)

    def delete(self, key: str) -> KVResult:
        """
        Delete *key* from the namespace.
        """
        return self._kv_request("DELETE", key)
