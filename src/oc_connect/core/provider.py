"""HTTP client for the Open Console Connect provider.

Only two calls are made by this application itself: the application login
(``POST /application/login``) and the back-channel grant retrieval.  All other
provider interaction happens in the user's browser via redirects.

Every request is bounded by a ``(connect, read)`` timeout so that a slow
provider degrades into a typed error instead of blocking a worker forever.
Nothing is retried here; retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Final
from urllib.parse import urlencode

import requests

from oc_connect.core.errors import ProviderError, ProviderRejectedError, ProviderUnreachableError

_LOG = logging.getLogger("oc-connect.core.provider")

# See https://github.com/Skrodon/open-console-connect/wiki/API-versioning
API_VERSION: Final[str] = "1.0.0"

LOGIN_PATH: Final[str] = "/application/login"
USER_LOGIN_PATH: Final[str] = "/user/login"

Timeout = float | tuple[float, float]


class ProviderClient:
    """Thin ``requests`` wrapper speaking the Open Console Connect API."""

    def __init__(
        self,
        base_url: str,
        *,
        http: requests.Session | None = None,
        timeout: Timeout = (5, 20),
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout

    def url(self, path: str, **query: str | None) -> str:
        """Return an absolute provider URL; ``None`` query values are dropped."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        params = {k: v for k, v in query.items() if v is not None}
        return f"{url}?{urlencode(params)}" if params else url

    def login(self, *, service: str, instance: str, secret: str) -> dict[str, Any]:
        """Log this application instance in and return the provider's JSON reply.

        Only the application login uses the long-lived service token: all
        other calls use the temporary session bearer.

        Raises
        ------
        ProviderUnreachableError
            The provider could not be contacted.
        ProviderRejectedError
            The provider answered with anything but ``200 OK``.
        ProviderError
            The reply body is not JSON.
        """
        endpoint = self.url(LOGIN_PATH)
        try:
            resp = self.http.post(
                endpoint,
                headers={"Authorization": f"Bearer {service}"},
                json={"instance": instance, "secret": secret, "api_version": API_VERSION},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnreachableError(
                f"Open Console Connect cannot be reached: {exc}"
            ) from exc

        if resp.status_code != 200:
            raise ProviderRejectedError(
                status=resp.status_code,
                message=resp.reason or resp.text[:200],
                instance=instance,
                endpoint=endpoint,
            )

        try:
            reply = resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"Application '{instance}' got no JSON reply from '{endpoint}'"
            ) from exc

        _LOG.debug("Application '%s' logged in at %s", instance, endpoint)
        return reply

    def get_grant(self, url: str, *, code: str, bearer: str) -> requests.Response:
        """Ask for the grant of a user code; status handling is left to the caller.

        Raises
        ------
        ProviderUnreachableError
            The provider could not be contacted.
        """
        try:
            return self.http.get(
                url,
                params={"code": code},
                headers={"Authorization": f"Bearer {bearer}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnreachableError(
                f"Open Console Connect cannot be reached: {exc}"
            ) from exc
