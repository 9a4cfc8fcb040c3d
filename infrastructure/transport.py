import logging
import threading
import time
from typing import Any, Dict, Optional, Protocol

import requests
from bs4 import UnicodeDammit

from domain.errors import FetchError, NetworkError, RequestTimeoutError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000


class Transport(Protocol):
    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None,
                 timeout_ms: Optional[int] = None) -> str:
        """Return the response body as text or raise a FetchError subclass."""
        ...

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None,
                 timeout_ms: Optional[int] = None) -> Any:
        ...


def _translate(e: requests.RequestException, url: str, timeout_ms: int) -> FetchError:
    if isinstance(e, requests.Timeout):
        logger.error("Request to %s timed out after %sms", url, timeout_ms)
        return RequestTimeoutError(timeout_ms, url=url)
    if isinstance(e, requests.ConnectionError):
        logger.error("Network error for %s: %s", url, e)
    else:
        logger.error("Error fetching %s: %s", url, e)
    return NetworkError(e, url=url)


def decode_body(resp: requests.Response) -> str:
    """Decode a response body, trusting the header charset only when one is sent.

    Without a charset requests falls back to ISO-8859-1 for text/*; the XML
    declaration or <meta charset> in the body is the better source then.
    """
    content_type = resp.headers.get("Content-Type", "")
    if "charset=" in content_type.lower():
        return resp.text
    body = resp.content or b""
    if not body:
        return ""
    return UnicodeDammit(body, is_html=True).unicode_markup or ""


class HttpTransport:
    """requests-backed transport for the game-server API.

    Every call carries its own timeout, which bounds the whole request
    including the body download; a timeout aborts only that call.
    Failures are translated into the three FetchError kinds so callers can
    tell a bad status, a timeout and a dead network apart.
    """

    def __init__(self, base_url: str = "", timeout_ms: int = DEFAULT_TIMEOUT_MS,
                 user_agent: str = "robinstats/0.1", session: Optional[requests.Session] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_ms = timeout_ms
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", user_agent)

    def _read_body(self, resp: requests.Response, url: str, timeout_ms: int, deadline: float) -> None:
        # requests' timeout only bounds each socket read, so a server that
        # trickles bytes is cut off here against the wall-clock deadline
        outcome: Dict[str, Any] = {}

        def pump():
            try:
                outcome["body"] = resp.content
            except Exception as e:
                outcome["error"] = e

        reader = threading.Thread(target=pump, name="http-body", daemon=True)
        reader.start()
        reader.join(max(0.0, deadline - time.monotonic()))
        if reader.is_alive():
            logger.error("Request to %s exceeded its %sms deadline while reading the body", url, timeout_ms)
            raise RequestTimeoutError(timeout_ms, url=url)
        error = outcome.get("error")
        if isinstance(error, requests.RequestException):
            raise _translate(error, url, timeout_ms) from error
        if error is not None:
            logger.error("Error reading body from %s: %s", url, error)
            raise NetworkError(error, url=url) from error

    def _request(self, path: str, params: Optional[Dict[str, Any]], timeout_ms: Optional[int],
                 accept: str) -> requests.Response:
        effective_timeout = timeout_ms if timeout_ms is not None else self.timeout_ms
        deadline = time.monotonic() + effective_timeout / 1000.0
        url = f"{self.base_url}{path}"
        headers = {"Accept": accept}
        try:
            resp = self.session.get(url, params=params, headers=headers,
                                    timeout=effective_timeout / 1000.0, stream=True)
        except requests.RequestException as e:
            raise _translate(e, url, effective_timeout) from e

        try:
            if not 200 <= resp.status_code < 300:
                logger.error("HTTP error %s: %s for %s", resp.status_code, resp.reason, url)
                raise TransportError(resp.status_code, resp.reason or "", url=url)
            self._read_body(resp, url, effective_timeout, deadline)
        finally:
            resp.close()
        return resp

    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None,
                 timeout_ms: Optional[int] = None) -> str:
        resp = self._request(path, params, timeout_ms,
                             accept="application/xml, text/xml;q=0.9, text/html;q=0.8, */*;q=0.5")
        return decode_body(resp)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None,
                 timeout_ms: Optional[int] = None) -> Any:
        resp = self._request(path, params, timeout_ms, accept="application/json")
        return resp.json()

    def close(self) -> None:
        self.session.close()
