from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

import httpx

ErrorCategory = Literal["retryable", "fatal"]

_RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ResponseResult:
    method: str
    url: str
    # 0 when the request never produced a response.
    status_code: int
    body: str


class AdapterRequestError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        result: ResponseResult,
        category: ErrorCategory,
    ) -> None:
        self.result = result
        self.category = category
        super().__init__(self._build_message(message))

    @property
    def retryable(self) -> bool:
        return self.category == "retryable"

    @property
    def not_found(self) -> bool:
        return self.result.status_code == 404

    @property
    def status_code(self) -> int:
        return self.result.status_code

    def _build_message(self, message: str) -> str:
        detail = self.result.body.strip()
        if len(detail) > 400:
            detail = f"{detail[:397]}..."
        return (
            f"{message} (category={self.category}, status={self.result.status_code}, "
            f"request='{self.result.method} {self.result.url}', detail={detail!r})"
        )


def classify_error(*, status_code: int) -> ErrorCategory:
    if status_code <= 0:
        return "retryable"
    if status_code in _RETRYABLE_STATUS_CODES:
        return "retryable"
    return "fatal"


def send_request(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    error_message: str,
    json: Any | None = None,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    auth: httpx.Auth | tuple[str, str] | None = None,
    expected_status: tuple[int, ...] = (200,),
) -> httpx.Response:
    extra: dict[str, Any] = {"auth": auth} if auth is not None else {}
    try:
        response = client.request(method, url, json=json, headers=headers, params=params, **extra)
    except httpx.TransportError as exc:
        result = ResponseResult(method=method, url=url, status_code=0, body=str(exc))
        raise AdapterRequestError(message=error_message, result=result, category="retryable") from exc

    if response.status_code not in expected_status:
        result = ResponseResult(
            method=method,
            url=url,
            status_code=response.status_code,
            body=response.text,
        )
        raise AdapterRequestError(
            message=error_message,
            result=result,
            category=classify_error(status_code=response.status_code),
        )
    return response


def _result_of(response: httpx.Response) -> ResponseResult:
    return ResponseResult(
        method=response.request.method,
        url=str(response.request.url),
        status_code=response.status_code,
        body=response.text,
    )


def decode_json(response: httpx.Response, *, error_message: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise AdapterRequestError(message=error_message, result=_result_of(response), category="fatal") from exc


def decode_object(response: httpx.Response, *, error_message: str) -> dict[str, Any]:
    payload = decode_json(response, error_message=error_message)
    if not isinstance(payload, dict):
        raise AdapterRequestError(
            message=f"{error_message}: expected a JSON object",
            result=_result_of(response),
            category="fatal",
        )
    return payload
