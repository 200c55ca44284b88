"""Safe invocation of a single backend call."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

import requests

from .errors import (
    AuthenticationRedirect,
    InferenceClientError,
    NonJsonResponse,
    SyncFailure,
    classify_failure,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SafeInvoker:
    """Runs one remote call and absorbs its failure.

    ``invoke`` returns the call's value, or ``None`` if it failed. ``None`` is
    "no value", which callers must keep distinct from an empty list: the
    category the call feeds is left untouched. The classified failure is kept
    in ``last_failure`` and logged with structured fields.
    """

    def __init__(self, base_uri: str = ""):
        self.base_uri = base_uri
        self.last_failure: Optional[SyncFailure] = None

    def invoke(self, operation: str, call: Callable[[], T]) -> Optional[T]:
        self.last_failure = None
        try:
            logger.debug("Making API call: %s to %s", operation, self.base_uri)
            result = call()
            logger.debug("API call succeeded: %s", operation)
            return result
        except (InferenceClientError, requests.RequestException) as e:
            failure = classify_failure(e)
            self.last_failure = failure
            self._report(operation, failure)
            return None

    def _report(self, operation: str, failure: SyncFailure) -> None:
        extra = {"operation": operation, **failure.diagnostic()}

        if isinstance(failure, AuthenticationRedirect):
            logger.warning(
                "Request for %s was redirected to the access-control login page: %s. "
                "Authentication headers are missing or incorrect. Response preview: %s",
                operation,
                failure.redirect_uri,
                failure.preview,
                extra=extra,
            )
        elif isinstance(failure, NonJsonResponse):
            logger.warning(
                "Received HTML instead of JSON for %s from %s. The server is likely "
                "returning an error page. Response preview: %s",
                operation,
                failure.uri,
                failure.preview,
                extra=extra,
            )
        else:
            logger.warning(
                "API call failed for %s (%s): %s",
                operation,
                failure.kind.value,
                failure,
                extra=extra,
            )
