"""
Step-Coach Job API Client.

Thin async wrapper over the server-side plan generation job
(start / status / continue / result) and the eligibility pre-flight.
Every transport failure or unexpected status code surfaces as
TransientNetworkError.
"""

import os
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .errors import TransientNetworkError
from .models import CoachInput, EligibilityResult, StepStatus

logger = logging.getLogger(__name__)

STEP_COACH_PREFIX = "/api/step-coach"
ELIGIBILITY_PATH = "/api/fitness-plans/eligibility"

# Refusals from the eligibility endpoint carry a normal result body
ELIGIBILITY_REFUSAL_CODES = (403, 429)


class StepCoachClient:
    """
    Async client for the step-coach job API.

    A fresh httpx.AsyncClient is opened per call, so one instance can be
    shared by the poller and the service routes.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Root URL of the job API (default from env)
            timeout: Per-request timeout in seconds
            headers: Extra headers sent with every request (auth, cookies)
            transport: Optional httpx transport (mock or ASGI in tests)
        """
        self.base_url = base_url or os.getenv("COACH_API_URL", "http://localhost:5000")
        self.timeout = timeout
        self.headers = headers or {}
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers=self.headers,
            transport=self.transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        accept: tuple = (),
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"[COACH API] {method} {path} failed: {e}")
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        if not response.is_success and response.status_code not in accept:
            logger.error(
                f"[COACH API] {method} {path} returned {response.status_code}"
            )
            raise TransientNetworkError(
                f"{method} {path} returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError(
                f"Malformed JSON from {response.request.url.path}",
                status_code=response.status_code,
            ) from e

    async def eligibility(self) -> EligibilityResult:
        """Ask the server whether the current user may start a new plan."""
        response = await self._request(
            "GET", ELIGIBILITY_PATH, accept=ELIGIBILITY_REFUSAL_CODES
        )
        body = self._json(response)
        try:
            return EligibilityResult.model_validate(body or {})
        except ValidationError as e:
            raise TransientNetworkError(
                f"Malformed eligibility payload: {e}", status_code=response.status_code
            ) from e

    async def start(self, coach_input: CoachInput) -> Dict[str, Any]:
        """Begin a job. Returns the acknowledgement (carries ``step``)."""
        response = await self._request(
            "POST", f"{STEP_COACH_PREFIX}/start", json=coach_input.to_payload()
        )
        body = self._json(response)
        return body if isinstance(body, dict) else {}

    async def status(self) -> StepStatus:
        """Poll the current job progress."""
        response = await self._request("GET", f"{STEP_COACH_PREFIX}/status")
        try:
            return StepStatus.model_validate(self._json(response))
        except ValidationError as e:
            raise TransientNetworkError(
                f"Malformed status payload: {e}", status_code=response.status_code
            ) from e

    async def continue_generation(self) -> Dict[str, Any]:
        """Ask the job to advance to its next step."""
        response = await self._request(
            "POST", f"{STEP_COACH_PREFIX}/continue", json={}
        )
        body = self._json(response)
        return body if isinstance(body, dict) else {}

    async def result(self) -> Any:
        """Fetch the raw final payload of a completed job."""
        response = await self._request("GET", f"{STEP_COACH_PREFIX}/result")
        return self._json(response)

    async def reset(self) -> Dict[str, Any]:
        """Clear any server-side generation state for the user."""
        response = await self._request("POST", f"{STEP_COACH_PREFIX}/reset", json={})
        body = self._json(response)
        return body if isinstance(body, dict) else {}
