"""HTTP request step."""

import asyncio
import json
from typing import Any, Optional

import aiohttp

from ..core.models import StepContext, StepResult
from ..engine.plugins import StepExecutor
from ..expressions import interpolate_params


DEFAULT_TIMEOUT_MS = 30000


class HttpStepExecutor(StepExecutor):
    """
    Issue an HTTP request with aiohttp.

    Params: url, method, headers, params (query), data (raw body) or json,
    timeout (ms). String values may reference ``${...}`` run state.
    Responses with status >= 400 fail the step but keep the response data.
    """

    type = "http"

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        # Shared session if given, else one session per request
        self._session = session

    def validate(self, params: dict[str, Any]) -> bool:
        return bool(params.get("url") and params.get("method"))

    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        params = interpolate_params(params, context.namespace())

        url = str(params["url"])
        method = str(params.get("method", "GET")).upper()
        timeout_ms = params.get("timeout", DEFAULT_TIMEOUT_MS)

        request_kwargs: dict[str, Any] = {
            "headers": params.get("headers") or {},
            "timeout": aiohttp.ClientTimeout(total=timeout_ms / 1000),
        }
        if params.get("params"):
            request_kwargs["params"] = params["params"]
        if params.get("json") is not None:
            request_kwargs["json"] = params["json"]
        elif params.get("data") is not None:
            data = params["data"]
            if isinstance(data, (dict, list)):
                request_kwargs["json"] = data
            else:
                request_kwargs["data"] = data

        context.logger.debug(f"Making {method} request to {url}")

        try:
            if self._session is not None:
                return await self._request(self._session, method, url, request_kwargs)
            async with aiohttp.ClientSession() as session:
                return await self._request(session, method, url, request_kwargs)

        except asyncio.TimeoutError:
            return StepResult.fail(f"Network error: request timed out after {timeout_ms}ms")
        except aiohttp.ClientError as e:
            return StepResult.fail(f"Network error: {e}")

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        request_kwargs: dict[str, Any],
    ) -> StepResult:
        async with session.request(method, url, **request_kwargs) as response:
            body = await response.text()
            data = {
                "status": response.status,
                "statusText": response.reason,
                "headers": dict(response.headers),
                "data": _decode_body(body),
            }

        if response.status >= 400:
            return StepResult.fail(f"HTTP {response.status}: {response.reason}", data=data)
        return StepResult.ok(data)


def _decode_body(body: str) -> Any:
    if not body:
        return body
    try:
        return json.loads(body)
    except ValueError:
        return body
