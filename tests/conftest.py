"""Shared fixtures: an in-process HTTP adapter so calls never leave the test."""

from __future__ import annotations

import io
import threading
from unittest.mock import Mock

import pytest
import requests
from requests.adapters import BaseAdapter

URL = "http://soap.test/service"

SOAP11 = "http://schemas.xmlsoap.org/soap/envelope/"


def soap_envelope(body_xml: str, ns: str = SOAP11) -> bytes:
    return (
        f'<?xml version="1.0" encoding="utf-8"?>'
        f'<soap:Envelope xmlns:soap="{ns}"><soap:Body>{body_xml}</soap:Body></soap:Envelope>'
    ).encode("utf-8")


def soap_fault(code: str, string: str, extra: str = "") -> bytes:
    return soap_envelope(
        f"<soap:Fault><faultcode>{code}</faultcode><faultstring>{string}</faultstring>{extra}</soap:Fault>"
    )


class FakeAdapter(BaseAdapter):
    """Answers every request with ``handler(prepared_request) -> (status, body)``."""

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.requests = []
        self.responses = []
        self.timeouts = []
        self._lock = threading.Lock()

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        status, body = self.handler(request)
        resp = requests.Response()
        resp.status_code = status
        resp.raw = io.BytesIO(body)
        resp.request = request
        resp.url = request.url
        resp.headers["Content-Type"] = "text/xml; charset=utf-8"
        resp.close = Mock(wraps=resp.close)
        with self._lock:
            self.requests.append(request)
            self.responses.append(resp)
            self.timeouts.append(timeout)
        return resp

    def close(self):
        pass


def make_session(handler):
    session = requests.Session()
    adapter = FakeAdapter(handler)
    session.mount("http://soap.test", adapter)
    return session, adapter


@pytest.fixture
def reply():
    """Build a session whose adapter always answers with the given status and body."""

    def _reply(body: bytes, status: int = 200):
        return make_session(lambda request: (status, body))

    return _reply
