"""
Translate transport failures into the provider exception taxonomy.

Vendor SDKs do not agree on where they put the HTTP status. It can sit on
the error itself, on a nested ``response``, or on a wrapped cause. Some SDKs
only mention it in the message. An ``ErrorMapper`` tries an ordered tuple of
status extractors and maps the first status found.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, TypeVar

import requests

from unigit.exceptions import (
    AuthenticationException,
    MalformedResponseException,
    NetworkException,
    NotFoundException,
    ProviderException,
    RateLimitException,
)

logger = logging.getLogger(__name__)

StatusExtractor = Callable[[BaseException], Optional[int]]

T = TypeVar("T")

# Raised by record converters on payloads missing fields or of the wrong shape.
_CONVERSION_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)

_DIRECT_FIELDS = ("status", "status_code", "response_code")
_RESPONSE_FIELDS = ("status_code", "status")


def _int_field(obj: Any, names: Sequence[str]) -> Optional[int]:
    for name in names:
        value = getattr(obj, name, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def direct_status(error: BaseException) -> Optional[int]:
    """Status carried directly on the error object."""
    return _int_field(error, _DIRECT_FIELDS)


def response_status(error: BaseException) -> Optional[int]:
    """Status nested under the error's ``response`` attribute."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    return _int_field(response, _RESPONSE_FIELDS)


def cause_status(error: BaseException) -> Optional[int]:
    """Status carried by the error's cause (``__cause__`` or ``cause``)."""
    for cause in (getattr(error, "__cause__", None), getattr(error, "cause", None)):
        if cause is None or cause is error:
            continue
        status = direct_status(cause)
        if status is None:
            status = response_status(cause)
        if status is not None:
            return status
    return None


def _status_hint(phrase: str, code: int) -> "re.Pattern[str]":
    # A bare code only counts at the start of the message or after a
    # status/code/http label, never inside a URL or identifier.
    return re.compile(
        rf"\b{phrase}|^{code}\b|\b(?:status|code|http)\s*[:=]?\s*{code}\b",
        re.IGNORECASE,
    )


# Ordered: first match wins.
_MESSAGE_HINTS: Tuple[Tuple[int, "re.Pattern[str]"], ...] = (
    (401, _status_hint("unauthori[sz]ed", 401)),
    (403, _status_hint("forbidden", 403)),
    (404, _status_hint("not found", 404)),
    (429, _status_hint("rate limit", 429)),
)

_TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


def is_transport_error(error: BaseException) -> bool:
    """
    Whether the request never got a response.

    Connection failures and timeouts, and any error that carries a
    ``request`` but no ``response``.
    """
    if isinstance(error, _TRANSPORT_ERRORS):
        return True
    return (
        getattr(error, "request", None) is not None
        and getattr(error, "response", None) is None
    )


def message_status(error: BaseException) -> Optional[int]:
    """
    Status inferred from well-known phrases in the error message.

    Transport errors are skipped: their messages embed the request URL.
    """
    if is_transport_error(error):
        return None
    message = str(error).strip()
    for status, pattern in _MESSAGE_HINTS:
        if pattern.search(message):
            return status
    return None


DEFAULT_EXTRACTORS: Tuple[StatusExtractor, ...] = (
    direct_status,
    response_status,
    cause_status,
    message_status,
)


def _headers_of(error: BaseException) -> Mapping[str, Any]:
    headers = getattr(error, "headers", None)
    if not isinstance(headers, Mapping):
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
    if not isinstance(headers, Mapping):
        return {}
    return {str(key).lower(): value for key, value in headers.items()}


def extract_reset_at(error: BaseException) -> Optional[datetime]:
    """
    Rate-limit reset time from ``x-ratelimit-reset`` or ``retry-after`` headers.
    """
    headers = _headers_of(error)

    reset = headers.get("x-ratelimit-reset") or headers.get("ratelimit-reset")
    if reset is not None:
        try:
            return datetime.fromtimestamp(int(reset), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Ignoring unparseable rate limit reset header: {reset}")

    retry_after = headers.get("retry-after")
    if retry_after is not None:
        try:
            return datetime.now(timezone.utc) + timedelta(seconds=int(retry_after))
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Ignoring unparseable retry-after header: {retry_after}")

    return None


def _describe(error: BaseException) -> str:
    text = str(error).strip()
    return re.sub(r"\s+", " ", text) or type(error).__name__


class ErrorMapper:
    """
    Map transport errors of one platform onto provider exceptions.

    :param platform: Human-readable platform name used in messages.
    :param extractors: Ordered status extractors. The first non-``None``
        result wins.
    """

    def __init__(
        self,
        platform: str,
        extractors: Sequence[StatusExtractor] = DEFAULT_EXTRACTORS,
    ):
        self.platform = platform
        self.extractors = tuple(extractors)

    def extract_status(self, error: BaseException) -> Optional[int]:
        for extractor in self.extractors:
            status = extractor(error)
            if status is not None:
                return status
        return None

    def map(self, error: BaseException) -> ProviderException:
        """
        Convert an error into exactly one provider exception.

        Errors that already belong to the taxonomy are returned unchanged.
        """
        if isinstance(error, ProviderException):
            return error

        status = self.extract_status(error)
        detail = _describe(error)
        platform = self.platform

        if status is None:
            return NetworkException(f"{platform} request failed: {detail}", cause=error)
        if status == 401:
            return AuthenticationException(
                f"{platform} authentication failed", cause=error, status=status
            )
        if status == 403:
            return AuthenticationException(
                f"{platform} authorization failed", cause=error, status=status
            )
        if status == 404:
            return NotFoundException(
                f"{platform} resource not found", cause=error, status=status
            )
        if status == 429:
            return RateLimitException(
                f"{platform} rate limit exceeded",
                cause=error,
                status=status,
                reset_at=extract_reset_at(error),
            )
        if status in (502, 503, 504):
            return NetworkException(
                f"{platform} service temporarily unavailable", cause=error, status=status
            )
        if status >= 500:
            return NetworkException(
                f"{platform} server error: {detail}", cause=error, status=status
            )
        return NetworkException(
            f"{platform} API error: {detail}", cause=error, status=status
        )

    def converter(self, transform: Callable[[Any], T]) -> Callable[[Any], T]:
        """
        Wrap a record conversion so that malformed records fail once.

        Missing fields or unexpected shapes raise ``MalformedResponseException``,
        which the retry engine does not retry.

        :param transform: Function converting one raw record.
        :return: The guarded conversion.
        """
        platform = self.platform

        def convert(record: Any) -> T:
            try:
                return transform(record)
            except _CONVERSION_ERRORS as e:
                raise MalformedResponseException(
                    f"{platform} returned an unexpected record: "
                    f"{type(e).__name__}: {_describe(e)}",
                    cause=e,
                ) from e

        return convert
