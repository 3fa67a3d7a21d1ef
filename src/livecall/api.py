import logging

import httpx

from livecall.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class SessionApiClient:
    """HTTP client for the call-script session endpoints.

    Every method returns the server's JSON body as a dict and never raises.
    Transport failures (network errors, 5xx, undecodable bodies) come back
    as ``{"success": False, "error": ...}`` and count against a circuit
    breaker; business rejections (4xx with a JSON body) are returned as-is
    and do not.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=30.0,
            label="call-script API",
        )
        self._owns_client = client is None
        if client is not None:
            self._client = client
        else:
            headers = {"Content-Type": "application/json"}
            if api_key:
                headers["X-API-Key"] = api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get_session(self, call_id: str) -> dict:
        """GET /session/{callId}: current authoritative snapshot."""
        return await self._request("GET", f"/session/{call_id}", label="get_session")

    async def post_action(self, call_id: str, action: str, payload: dict | None = None) -> dict:
        """POST /session/{callId}/action with {action, payload}."""
        return await self._request(
            "POST",
            f"/session/{call_id}/action",
            label=action,
            json={"action": action, "payload": payload or {}},
        )

    async def _request(self, method: str, path: str, label: str, json: dict | None = None) -> dict:
        if not self._circuit.allow():
            logger.warning("Circuit breaker open, skipping %s", label)
            return {"success": False, "error": "Session API unavailable"}
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            self._circuit.record_failure()
            logger.error("%s failed: %s", label, e)
            return {"success": False, "error": str(e)}

        if resp.status_code >= 500:
            self._circuit.record_failure()
            logger.error("%s returned %d: %s", label, resp.status_code, resp.text[:500])
            return {"success": False, "error": f"Server error {resp.status_code}"}

        self._circuit.record_success()
        try:
            body = resp.json()
        except ValueError:
            logger.error("%s returned non-JSON body (%d): %s", label, resp.status_code, resp.text[:500])
            return {"success": False, "error": f"Invalid response ({resp.status_code})"}
        if not isinstance(body, dict):
            logger.error("%s returned non-object JSON: %r", label, body)
            return {"success": False, "error": "Invalid response"}

        if resp.is_error:
            logger.warning("%s rejected (%d): %s", label, resp.status_code, body.get("error"))
            body.setdefault("success", False)
            body.setdefault("error", f"Request failed ({resp.status_code})")
        return body
