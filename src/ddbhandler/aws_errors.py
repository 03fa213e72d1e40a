from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from botocore.exceptions import ClientError

from .errors import (
    AwsError,
    ConditionFailedError,
    NotFoundError,
    ValidationError,
)


def map_client_error(err: ClientError, *, unprocessed: Sequence[Any] = ()) -> Exception:
    code = str(err.response.get("Error", {}).get("Code", ""))
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message, unprocessed=unprocessed)
    if code == "ValidationException":
        return ValidationError(message, unprocessed=unprocessed)
    if code == "ResourceNotFoundException":
        return NotFoundError(message, unprocessed=unprocessed)

    return AwsError(code=code or "UnknownError", message=message or str(err), unprocessed=unprocessed)
