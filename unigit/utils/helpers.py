"""
Small helpers shared by the provider adapters.
"""

import logging
import re
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

from unigit.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SENSITIVE_KEY = re.compile(r"token|password|secret|key|auth|credential|bearer", re.I)


class ClientCell(Generic[T]):
    """
    Single-assignment holder for a lazily built vendor client.

    The factory result is stored only once it is fully constructed, so a
    concurrent reader never sees a half-configured client. Two racing callers
    may both build one. The first stored wins and the other is closed.
    """

    def __init__(self, factory: Callable[[], T]):
        self._factory = factory
        self._value: Optional[T] = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def set(self, value: T) -> None:
        if self._value is None:
            self._value = value
        elif value is not self._value:
            close = getattr(value, "close", None)
            if callable(close):
                logger.debug(f"Closing discarded {type(value).__name__}")
                close()

    def get(self) -> T:
        if self._value is None:
            value = self._factory()
            self.set(value)
        return self._value

    def reset(self) -> Optional[T]:
        """Drop the stored client and return it so the caller can close it."""
        value, self._value = self._value, None
        return value


def split_full_name(
    full_name: str,
    platform: str,
    nested: bool = False,
) -> Tuple[str, str]:
    """
    Split ``owner/repo`` into its two parts.

    :param full_name: Namespace-qualified repository name.
    :param platform: Platform name used in the error message.
    :param nested: Allow nested namespaces (``group/sub/repo``), splitting on
        the last separator.
    :return: ``(namespace, name)``.
    :raises ConfigurationException: If the name is malformed.
    """
    if nested:
        namespace, sep, name = (full_name or "").rpartition("/")
        parts = [namespace, name] if sep else []
    else:
        parts = (full_name or "").split("/")

    if len(parts) != 2 or not all(parts):
        raise ConfigurationException(
            f"Invalid {platform} repository name: {full_name!r} "
            f"(expected 'owner/repo')"
        )
    return parts[0], parts[1]


def sanitize_for_logging(obj: Any) -> Any:
    """
    Return a copy of ``obj`` with credential-like values redacted.

    Walks dicts, lists, tuples and dataclass-like objects with ``__dict__``.
    """
    if isinstance(obj, dict):
        return {
            key: "[REDACTED]"
            if isinstance(key, str) and _SENSITIVE_KEY.search(key)
            else sanitize_for_logging(value)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return type(obj)(sanitize_for_logging(item) for item in obj)
    if hasattr(obj, "__dataclass_fields__"):
        return sanitize_for_logging(
            {name: getattr(obj, name) for name in obj.__dataclass_fields__}
        )
    return obj
