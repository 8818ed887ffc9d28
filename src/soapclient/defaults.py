SOAP11_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"
ENVELOPE_NAMESPACES = (SOAP11_NS, SOAP12_NS)

CONTENT_TYPE = 'text/xml; charset="utf-8"'
DEFAULT_USER_AGENT = "go-soap-0.1"
DEFAULT_DIAL_TIMEOUT = 30  # seconds, connect phase only
