"""
HTTP collaborator used by the network builtins.

The interpreter only needs request-in/response-out behavior: ``get`` and
``post`` return an :class:`HttpResponse`, and ``serve_static`` blocks
while serving a folder.  Failures surface as the underlying
``requests``/``OSError`` exceptions; the builtins translate them into
diagnostics.
"""

import logging
from dataclasses import dataclass
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: str


class _StaticRequestHandler(SimpleHTTPRequestHandler):
    # route access logs through logging instead of stderr
    def log_message(self, format_str, *args):
        logger.info("HTTP %s: %s", self.client_address[0], format_str % args)


class HttpTransport:
    """
    Blocking HTTP client and static file server.

    No timeout is applied unless one is configured; a hung peer hangs the
    calling evaluation.
    """

    def __init__(self, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def get(self, url: str) -> HttpResponse:
        logger.info("GET %s", url)
        resp = self.session.get(url, timeout=self.timeout)
        return HttpResponse(resp.status_code, resp.text)

    def post(self, url: str, body: Union[str, Dict[str, str]]) -> HttpResponse:
        """POST a raw text body, or a mapping sent as a JSON object."""
        logger.info("POST %s", url)
        if isinstance(body, dict):
            resp = self.session.post(url, json=body, timeout=self.timeout)
        else:
            resp = self.session.post(url, data=body.encode("utf-8"), timeout=self.timeout)
        return HttpResponse(resp.status_code, resp.text)

    def serve_static(self, folder: Path, address: str, port: int,
                     on_ready: Optional[Callable[[ThreadingHTTPServer], None]] = None) -> None:
        """Serve ``folder`` on ``address:port`` until interrupted.

        Raises OSError if the socket cannot be bound.
        """
        handler = partial(_StaticRequestHandler, directory=str(folder))
        with ThreadingHTTPServer((address, port), handler) as httpd:
            host, bound_port = httpd.server_address[:2]
            logger.info("serving %s on http://%s:%s/", folder, host, bound_port)
            if on_ready is not None:
                on_ready(httpd)
            try:
                httpd.serve_forever()
            except KeyboardInterrupt:
                logger.info("static server on port %s stopped", bound_port)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
