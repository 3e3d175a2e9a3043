from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from ..core.cancellation import CancellationToken
from ..core.exceptions import (
    HalConnectionError,
    HalTimeoutError,
    HalTransportError,
    OperationCancelled,
)
from ..core.logging_utils import log_event

logger = logging.getLogger(__name__)

MIN_TIMEOUT_MS = 1_000
DEFAULT_TIMEOUT_MS = 20_000
BODY_PREVIEW_CHARS = 200

ProgressCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class RequestEnvelope:
    path: str
    body: Any = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    progress_label: Optional[str] = None

    @property
    def effective_timeout_ms(self) -> int:
        return max(MIN_TIMEOUT_MS, int(self.timeout_ms))

    @property
    def timeout_seconds(self) -> float:
        return self.effective_timeout_ms / 1000.0


@dataclass(frozen=True)
class TransportResult:
    """Normalized outcome of one HTTP exchange.

    `payload` is always a JSON value: the parsed body, `{}` for an empty
    body, or a synthesized `{"success": False, "error": ...}` object when the
    body was not JSON. `http_ok` reflects the real HTTP status either way.
    """

    http_ok: bool
    payload: Any
    status_code: int


class _Abort:
    __slots__ = ("kind", "reason")

    def __init__(self) -> None:
        self.kind: Optional[str] = None
        self.reason: Any = None

    def trip(self, kind: str, reason: Any, task: "asyncio.Future[Any]") -> None:
        if self.kind is not None:
            return
        self.kind = kind
        self.reason = reason
        task.cancel()


def _non_json_error(path: str, response: httpx.Response, text: str) -> str:
    content_type = response.headers.get("content-type") or "unknown"
    return (
        f"Non-JSON response from {path} "
        f"(HTTP {response.status_code}, content-type: {content_type}): "
        f"{text[:BODY_PREVIEW_CHARS]}"
    )


def normalize_response(path: str, response: httpx.Response) -> TransportResult:
    text = response.text
    payload: Any = {}
    if text:
        try:
            payload = json.loads(text)
        except ValueError:
            payload = {"success": False, "error": _non_json_error(path, response, text)}
            log_event(
                logger,
                logging.WARNING,
                "hal.request.non_json",
                path=path,
                status=response.status_code,
            )
        else:
            if payload is None:
                payload = {}
    return TransportResult(
        http_ok=response.is_success,
        payload=payload,
        status_code=response.status_code,
    )


class HalTransport:
    """Single-shot JSON POST client for the HAL API.

    `send()` returns a `TransportResult` for every HTTP response, including
    error statuses and non-JSON bodies. It raises only when no response was
    obtained: `HalTimeoutError`, `HalConnectionError`/`HalTransportError`, or
    `OperationCancelled` when the turn's cancellation token fires.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self._base_url)
        self._on_progress = on_progress

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HalTransport":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def send(
        self,
        envelope: RequestEnvelope,
        cancel_token: Optional[CancellationToken] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransportResult:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        label = (envelope.progress_label or "").strip()
        callback = on_progress or self._on_progress
        if label and callback is not None:
            outcome = callback(label)
            if inspect.isawaitable(outcome):
                await outcome

        loop = asyncio.get_running_loop()
        started = time.monotonic()
        request_task = asyncio.ensure_future(self._post(envelope))
        abort = _Abort()
        timer = loop.call_later(
            envelope.timeout_seconds,
            abort.trip,
            "timeout",
            "HAL request timeout",
            request_task,
        )
        log_event(
            logger,
            logging.DEBUG,
            "hal.request.start",
            path=envelope.path,
            timeout_ms=envelope.effective_timeout_ms,
        )
        try:
            if cancel_token is not None:
                with cancel_token.subscribe(
                    lambda reason: abort.trip("cancelled", reason, request_task)
                ):
                    response = await request_task
            else:
                response = await request_task
        except asyncio.CancelledError:
            if abort.kind == "timeout":
                log_event(
                    logger,
                    logging.WARNING,
                    "hal.request.timeout",
                    path=envelope.path,
                    timeout_ms=envelope.effective_timeout_ms,
                )
                raise HalTimeoutError(
                    f"HAL request timeout after {envelope.effective_timeout_ms}ms: "
                    f"{envelope.path}",
                    path=envelope.path,
                ) from None
            if abort.kind == "cancelled":
                log_event(
                    logger,
                    logging.INFO,
                    "hal.request.cancelled",
                    path=envelope.path,
                    reason=abort.reason,
                )
                raise OperationCancelled(abort.reason) from None
            raise
        finally:
            timer.cancel()
            if not request_task.done():
                request_task.cancel()

        result = normalize_response(envelope.path, response)
        log_event(
            logger,
            logging.DEBUG,
            "hal.request.done",
            path=envelope.path,
            status=result.status_code,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _post(self, envelope: RequestEnvelope) -> httpx.Response:
        body = envelope.body if envelope.body is not None else {}
        try:
            return await self._client.post(
                self.url_for(envelope.path),
                content=json.dumps(body).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=envelope.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise HalTimeoutError(
                f"HAL request timeout: {envelope.path}: {exc}", path=envelope.path
            ) from exc
        except httpx.TransportError as exc:
            log_event(
                logger,
                logging.WARNING,
                "hal.request.failed",
                path=envelope.path,
                exc=exc,
            )
            raise HalConnectionError(
                f"HAL network error for {envelope.path}: {exc}", path=envelope.path
            ) from exc
        except httpx.HTTPError as exc:
            raise HalTransportError(
                f"HAL request failed for {envelope.path}: {exc}", path=envelope.path
            ) from exc
        except (httpx.InvalidURL, ValueError) as exc:
            log_event(
                logger,
                logging.ERROR,
                "hal.request.invalid",
                path=envelope.path,
                base_url=self._base_url,
                exc=exc,
            )
            raise HalTransportError(
                f"HAL request could not be sent to {envelope.path}: {exc}",
                path=envelope.path,
            ) from exc


__all__ = [
    "HalTransport",
    "MIN_TIMEOUT_MS",
    "ProgressCallback",
    "RequestEnvelope",
    "TransportResult",
    "normalize_response",
]
