from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class DynamoHandlerError(Exception):
    def __init__(self, *args: object, unprocessed: Sequence[Any] = ()) -> None:
        super().__init__(*args)
        self.unprocessed = list(unprocessed)


class ConfigError(DynamoHandlerError):
    pass


class ValidationError(DynamoHandlerError):
    pass


class ConditionFailedError(DynamoHandlerError):
    pass


class NotFoundError(DynamoHandlerError):
    pass


class CodecError(DynamoHandlerError):
    pass


class EncodeError(CodecError):
    pass


class DecodeError(CodecError):
    pass


class CancelledError(DynamoHandlerError):
    pass


class BatchRetryExceededError(DynamoHandlerError):
    def __init__(self, *, operation: str, unprocessed_count: int) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})")
        self.operation = operation
        self.unprocessed_count = unprocessed_count


class AwsError(DynamoHandlerError):
    def __init__(self, *, code: str, message: str, unprocessed: Sequence[Any] = ()) -> None:
        super().__init__(f"{code}: {message}", unprocessed=unprocessed)
        self.code = code
        self.message = message
