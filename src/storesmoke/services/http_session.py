"""Stateful HTTP client used to drive the storefront."""

import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin

import requests

from storesmoke.errors import SmokeTestError
from storesmoke.errors_catalog import actionable_error

FormData = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


@dataclass(frozen=True)
class HttpResult:
    method: str
    path: str
    status_code: int
    body: str
    url: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class SessionDriver:
    """Issues requests against one base address and keeps cookies between them."""

    def __init__(
        self,
        base_url: str,
        logger,
        session_factory: Callable[[], requests.Session] = requests.Session,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.logger = logger
        self.session_factory = session_factory
        self.timeout = timeout
        self.session = session_factory()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def url_for(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def _request(self, method: str, path: str, data: Optional[FormData] = None) -> HttpResult:
        url = self.url_for(path)
        self.logger.debug("%s %s", method, url)
        response = self.session.request(
            method,
            url,
            data=data,
            allow_redirects=True,
            timeout=self.timeout,
        )
        result = HttpResult(
            method=method,
            path=path,
            status_code=response.status_code,
            body=response.text,
            url=response.url,
        )
        self.logger.debug("%s %s -> %s (%s)", method, url, result.status_code, result.url)
        return result

    def get(self, path: str) -> HttpResult:
        return self._request("GET", path)

    def post(self, path: str, form: FormData) -> HttpResult:
        return self._request("POST", path, data=form)

    def has_cookie(self, name: str) -> bool:
        return name in self.session.cookies

    def reset(self):
        """Drops the session and its cookie jar and starts a fresh one."""
        self.logger.debug("Resetting HTTP session for %s", self.base_url)
        self.session.close()
        self.session = self.session_factory()

    def close(self):
        self.session.close()

    def wait_until_ready(
        self,
        path: str = "",
        max_retries: int = 60,
        interval: float = 1.0,
        is_alive: Optional[Callable[[], bool]] = None,
    ) -> HttpResult:
        """Issues the first GET, retrying while the server is not yet listening."""
        attempts = max(1, max_retries)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            if is_alive is not None and not is_alive():
                raise SmokeTestError(
                    f"Server process stopped while waiting for {self.url_for(path)} to answer."
                )
            try:
                return self.get(path)
            except requests.ConnectionError as exc:
                last_error = exc
                self.logger.debug(
                    "Server not ready (attempt %s/%s): %s",
                    attempt,
                    attempts,
                    exc,
                )
                if attempt < attempts:
                    time.sleep(interval)

        raise SmokeTestError(
            actionable_error("server_not_ready", url=self.url_for(path), attempts=str(attempts))
            + f"\nLast error: {last_error}"
        )
