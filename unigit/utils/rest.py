"""
REST API helper utilities.

Provides a thin ``requests`` client used as the Bitbucket capability object.
Errors are left as ``requests`` exceptions (``HTTPError`` carries the
response), so that the provider's error mapper sees the original shape.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "unigit"


class RESTClient:
    """
    Generic JSON REST client bound to a base URL.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        timeout: float = 20.0,
        headers: Optional[Dict[str, str]] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize REST client.

        :param base_url: Base URL for the API.
        :param token: Optional bearer token.
        :param basic_auth: Optional ``(username, password)`` pair.
        :param timeout: Request timeout in seconds.
        :param headers: Optional additional headers.
        :param user_agent: User agent sent with every request.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": user_agent or DEFAULT_USER_AGENT,
            }
        )
        self.session.headers.update(headers or {})

        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        elif basic_auth:
            self.session.auth = basic_auth

    def url_for(self, endpoint: str) -> str:
        """Absolute URL for an endpoint. Absolute URLs pass through unchanged."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make a GET request to the API.

        :param endpoint: Endpoint relative to base_url, or an absolute URL
            such as a pagination ``next`` link.
        :param params: Optional query parameters.
        :return: Decoded JSON body.
        :raises requests.HTTPError: On a non-2xx response.
        :raises requests.RequestException: On connection failures and timeouts.
        """
        url = self.url_for(endpoint)
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        logger.debug(f"GET {url} params={params}")
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self.session.close()


class BitbucketRESTClient(RESTClient):
    """
    Specialized REST client for the Bitbucket API.
    """

    CLOUD_API_URL = "https://api.bitbucket.org/2.0"

    def __init__(
        self,
        base_url: str = CLOUD_API_URL,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 20.0,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize Bitbucket REST client.

        :param base_url: Bitbucket API base URL.
        :param username: Username for basic auth.
        :param password: Password or app password for basic auth.
        :param token: OAuth/access token, sent as a bearer token.
        :param timeout: Request timeout in seconds.
        :param user_agent: User agent sent with every request.
        """
        basic_auth = (username, password) if username else None
        super().__init__(
            base_url=base_url,
            token=token,
            basic_auth=basic_auth,
            timeout=timeout,
            user_agent=user_agent,
        )

    def get_page(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[list, Optional[str]]:
        """
        Fetch one page of a Bitbucket paged collection.

        :param endpoint: Endpoint, or the ``next`` URL of a previous page.
        :param params: Query parameters. Ignored for ``next`` URLs, which
            already carry them.
        :return: ``(values, next_url)``.
        """
        if endpoint.startswith(("http://", "https://")):
            params = None
        data = self.get(endpoint, params=params)
        return data.get("values") or [], data.get("next")
