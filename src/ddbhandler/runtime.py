from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


@dataclass(frozen=True)
class ClientSettings:
    """Transport settings for the DynamoDB client.

    Retries of transient transport failures belong to botocore; ``max_attempts``
    and ``retry_mode`` are handed to it unchanged.
    """

    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3
    retry_mode: str = "adaptive"
    max_pool_connections: int = 10

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> ClientSettings:
        defaults = cls()
        try:
            return cls(
                region=environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION") or None,
                endpoint_url=environ.get("DYNAMODB_ENDPOINT_URL") or None,
                connect_timeout=float(environ.get("DYNAMODB_CONNECT_TIMEOUT") or defaults.connect_timeout),
                read_timeout=float(environ.get("DYNAMODB_READ_TIMEOUT") or defaults.read_timeout),
                max_attempts=int(environ.get("DYNAMODB_MAX_ATTEMPTS") or defaults.max_attempts),
            )
        except ValueError as err:
            raise ConfigError(f"invalid dynamodb client settings: {err}") from err


def create_boto3_config(settings: ClientSettings | None = None) -> Config:
    s = settings or ClientSettings()
    return Config(
        connect_timeout=s.connect_timeout,
        read_timeout=s.read_timeout,
        retries={"max_attempts": s.max_attempts, "mode": s.retry_mode},
        max_pool_connections=s.max_pool_connections,
    )


class _InstrumentedClient:
    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            try:
                out = attr(*args, **kwargs)
            except Exception:
                self._on_call(
                    AwsCallMetric(
                        service=self._service,
                        operation=name,
                        seconds=time.monotonic() - start,
                        ok=False,
                    )
                )
                raise

            self._on_call(
                AwsCallMetric(
                    service=self._service,
                    operation=name,
                    seconds=time.monotonic() - start,
                    ok=True,
                )
            )
            return out

        return wrapped


def instrument_boto3_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    return _InstrumentedClient(client, service, on_call)


_clients: dict[tuple[str | None, str | None], Any] = {}
_clients_lock = threading.Lock()


def get_dynamodb_client(
    settings: ClientSettings | None = None,
    *,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
) -> Any:
    """Return a DynamoDB client, created once per region and endpoint."""
    s = settings or ClientSettings.from_env()
    key = (s.region, s.endpoint_url)

    with _clients_lock:
        existing = _clients.get(key)
        if existing is not None:
            return existing

        sess = session or boto3.session.Session(region_name=s.region)
        client = cast(Any, sess).client(
            "dynamodb",
            region_name=s.region,
            endpoint_url=s.endpoint_url,
            config=create_boto3_config(s),
        )
        if metrics is not None:
            client = instrument_boto3_client(client, service="dynamodb", on_call=metrics)

        logger.debug("created dynamodb client region=%s endpoint=%s", s.region, s.endpoint_url)
        _clients[key] = client
        return client


def _reset_clients_for_tests() -> None:
    with _clients_lock:
        _clients.clear()
