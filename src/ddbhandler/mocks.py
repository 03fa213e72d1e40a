from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

type Request = Mapping[str, Any]
type RequestMatcher = Request | Callable[[Request], None]
type Response = Mapping[str, Any] | Callable[[Request], Mapping[str, Any]]


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _mismatch(expected: Any, actual: Any, path: str) -> str | None:
    """Return the first difference between a request pattern and a request, or None."""
    if expected is ANY:
        return None

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return f"{path}: expected dict, got {type(actual).__name__}"
        for key, want in expected.items():
            if key not in actual:
                return f"{path}: missing key {key!r}"
            if (found := _mismatch(want, actual[key], f"{path}.{key}")) is not None:
                return found
        return None

    if isinstance(expected, list):
        if not isinstance(actual, list):
            return f"{path}: expected list, got {type(actual).__name__}"
        if len(expected) != len(actual):
            return f"{path}: expected {len(expected)} items, got {len(actual)}"
        for i, (want, got) in enumerate(zip(expected, actual, strict=True)):
            if (found := _mismatch(want, got, f"{path}[{i}]")) is not None:
                return found
        return None

    if expected != actual:
        return f"{path}: expected {expected!r}, got {actual!r}"
    return None


@dataclass(frozen=True)
class ScriptedCall:
    method: str
    expected: RequestMatcher | None = None
    response: Response | None = None
    error: Exception | None = None

    def accepts(self, method: str, req: Request) -> bool:
        if method != self.method:
            return False
        if self.expected is None or callable(self.expected):
            return True
        return _mismatch(self.expected, req, method) is None

    def verify(self, method: str, req: Request) -> None:
        if callable(self.expected):
            self.expected(req)
        elif self.expected is not None:
            if (found := _mismatch(self.expected, req, method)) is not None:
                raise AssertionError(found)

    def reply(self, req: Request) -> Mapping[str, Any]:
        if self.error is not None:
            raise self.error
        if callable(self.response):
            return dict(self.response(req))
        return dict(self.response or {})


def _operation(name: str) -> Callable[..., Mapping[str, Any]]:
    def call(self: FakeDynamoDBClient, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle(name, kwargs)

    call.__name__ = name
    return call


class FakeDynamoDBClient:
    """Scripted stand-in for a boto3 DynamoDB client.

    Ordered clients consume expectations strictly in script order. Unordered
    clients hand each call the first pending expectation for the same method
    whose request pattern accepts it, which suits bulk reads running on worker
    threads. A response may be a callable that builds the reply from the request.
    """

    def __init__(self, *, ordered: bool = True) -> None:
        self._ordered = ordered
        self._script: list[ScriptedCall] = []
        self._lock = threading.Lock()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: RequestMatcher | None = None,
        *,
        response: Response | None = None,
        error: Exception | None = None,
    ) -> None:
        with self._lock:
            self._script.append(ScriptedCall(method=method, expected=expected, response=response, error=error))

    @property
    def pending(self) -> list[str]:
        with self._lock:
            return [call.method for call in self._script]

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        with self._lock:
            return [req for name, req in self.calls if name == method]

    def assert_no_pending(self) -> None:
        with self._lock:
            if self._script:
                raise AssertionError(f"pending expected calls: {self._script!r}")

    def _take(self, method: str, req: Request) -> ScriptedCall:
        if not self._script:
            raise AssertionError(f"unexpected call: {method}")
        if self._ordered:
            call = self._script.pop(0)
            if call.method != method:
                raise AssertionError(f"expected {call.method}, got {method}")
            return call
        for i, call in enumerate(self._script):
            if call.accepts(method, req):
                return self._script.pop(i)
        raise AssertionError(f"unexpected call: {method}")

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        with self._lock:
            self.calls.append((method, dict(req)))
            call = self._take(method, req)

        call.verify(method, req)
        return call.reply(req)

    put_item = _operation("put_item")
    get_item = _operation("get_item")
    update_item = _operation("update_item")
    delete_item = _operation("delete_item")
    query = _operation("query")
    scan = _operation("scan")
    batch_get_item = _operation("batch_get_item")
    batch_write_item = _operation("batch_write_item")
