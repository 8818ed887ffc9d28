from __future__ import annotations
import logging
from typing import Any, Optional, Tuple, Union

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from .defaults import CONTENT_TYPE, DEFAULT_DIAL_TIMEOUT, DEFAULT_USER_AGENT
from .exceptions import DeserializationError, TransportError
from .marshaller import Marshaller, XMLMarshaller
from .models import BasicAuth, Body, Envelope
from .security import sanitize_headers, scrub_xml

Timeout = Union[float, Tuple[Optional[float], Optional[float]], None]

_logger = logging.getLogger(__name__)


def _no_auth(request: requests.PreparedRequest) -> requests.PreparedRequest:
    return request


def default_session(retries: int = 0, backoff: float = 0.5) -> requests.Session:
    """Session used when the caller does not bring one. ``retries=0`` disables retrying."""
    session = requests.Session()
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=retries,
            backoff_factor=backoff,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=frozenset(["POST"]),
            raise_on_status=False,
        )
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class Client:
    """
    Generic SOAP client.

    Every call is one independent POST of a SOAP envelope to ``url``; the
    client keeps no per-call state, so one instance can serve concurrent
    callers as long as the session does.

    Args:
        url: SOAP endpoint.
        auth: Optional HTTP basic credentials, sent with every request.
        session: ``requests.Session`` to dispatch with. A fresh one is built
            from ``retries`` when omitted.
        marshaller: Envelope codec, :class:`XMLMarshaller` by default. Stays
            replaceable through the ``marshaller`` attribute.
        user_agent: ``User-Agent`` header value.
        timeout: requests-style timeout. Defaults to a 30 s connect timeout
            and no read deadline.
        retries: urllib3 retry budget for the default session.
        logger: Receives request/response bodies at DEBUG level.
    """

    def __init__(
        self,
        url: str,
        auth: Optional[BasicAuth] = None,
        session: Optional[requests.Session] = None,
        *,
        marshaller: Optional[Marshaller] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: Timeout = None,
        retries: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        self._url = url
        self._auth = auth
        self._session = session if session is not None else default_session(retries)
        self._user_agent = user_agent
        self._timeout = timeout if timeout is not None else (DEFAULT_DIAL_TIMEOUT, None)
        self._logger = logger or _logger
        self.marshaller: Marshaller = marshaller or XMLMarshaller()

    @property
    def url(self) -> str:
        return self._url

    @property
    def auth(self) -> Optional[BasicAuth]:
        return self._auth

    @property
    def session(self) -> requests.Session:
        return self._session

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def timeout(self) -> Timeout:
        return self._timeout

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def __repr__(self) -> str:
        return f"Client(url={self._url!r}, auth={self._auth!r})"

    def _headers(self, soap_action: str) -> dict:
        headers = {
            "Content-Type": CONTENT_TYPE,
            "User-Agent": self._user_agent,
            # one connection per call, closed after the response
            "Connection": "close",
        }
        if soap_action:
            headers["SOAPAction"] = soap_action
        for name, value in headers.items():
            try:
                value.encode("latin-1")
            except UnicodeEncodeError as e:
                raise TransportError(f"{name} header must be latin-1 encodable: {value!r}") from e
        return headers

    def call(self, soap_action: str, request: Any, response: Any = None) -> requests.Response:
        """
        Make a SOAP call.

        ``request`` is wrapped in an envelope and encoded by the marshaller;
        the response Body is decoded into ``response`` in place. An empty
        response body is a success that leaves ``response`` untouched.

        Returns:
            The HTTP response, whatever its status code.

        Raises:
            SerializationError: The request could not be encoded; nothing was sent.
            TransportError: The request could not be built or sent, or the
                response body could not be read.
            DeserializationError: The response body is not a SOAP envelope.
            Fault: The server answered with a SOAP Fault.
        """
        xml = self.marshaller.marshal(Envelope(body=Body(content=request)))

        headers = self._headers(soap_action)
        # an explicit auth keeps requests from falling back to ~/.netrc
        auth = HTTPBasicAuth(self._auth.login, self._auth.password) if self._auth else _no_auth

        log = self._logger
        if log.isEnabledFor(logging.DEBUG):
            log.debug("POST to %s hdr=%s with %s", self._url, sanitize_headers(headers), scrub_xml(xml))

        try:
            resp = self._session.post(
                self._url,
                data=xml,
                headers=headers,
                auth=auth,
                timeout=self._timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise TransportError(str(e)) from e

        with resp:
            try:
                rawbody = resp.content
            except requests.RequestException as e:
                raise TransportError(str(e), response=resp) from e

        if not rawbody:
            log.debug("empty response (HTTP %s)", resp.status_code)
            return resp

        if log.isEnabledFor(logging.DEBUG):
            log.debug("response (HTTP %s) %s", resp.status_code, scrub_xml(rawbody))

        envelope = Envelope(body=Body(content=response))
        try:
            self.marshaller.unmarshal(rawbody, envelope)
        except DeserializationError as e:
            e.response = resp
            raise

        fault = envelope.body.fault
        if fault is not None:
            fault.response = resp
            raise fault
        return resp
