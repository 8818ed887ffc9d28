from .soap import Client, default_session
from .models import Envelope, Body, BasicAuth
from .marshaller import Marshaller, XMLMarshaller
from .defaults import SOAP11_NS, SOAP12_NS, CONTENT_TYPE, DEFAULT_USER_AGENT, DEFAULT_DIAL_TIMEOUT
from .exceptions import (
    SoapError, SerializationError, TransportError, DeserializationError, Fault
)
from .version import __version__

__all__ = [
    "Client", "default_session", "Envelope", "Body", "BasicAuth", "Marshaller", "XMLMarshaller",
    "SOAP11_NS", "SOAP12_NS", "CONTENT_TYPE", "DEFAULT_USER_AGENT", "DEFAULT_DIAL_TIMEOUT",
    "SoapError", "SerializationError", "TransportError", "DeserializationError", "Fault",
    "__version__",
]
