"""
Envelope codecs.

Any object with ``marshal``/``unmarshal`` methods matching :class:`Marshaller`
can be plugged into a client; :class:`XMLMarshaller` is the default.
"""

from __future__ import annotations

import copy
import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping, MutableMapping
from decimal import Decimal
from typing import Any, Callable, Collection, Dict, Iterable, Optional, Protocol, Tuple, runtime_checkable

from .defaults import ENVELOPE_NAMESPACES, SOAP11_NS, SOAP12_NS
from .exceptions import DeserializationError, Fault, SerializationError
from .models import Envelope

XML_NS = "http://www.w3.org/XML/1998/namespace"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"

XSI_TYPE = f"{{{XSI_NS}}}type"
XSI_NIL = f"{{{XSI_NS}}}nil"

BUILTIN_PREFIXES = {"xml": XML_NS, "xsi": XSI_NS}

_NAME = re.compile(r"^[^\W\d][\w.\-]*$")
_INVALID_CHARS = re.compile(r"[^\x09\x0a\x0d\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

ET.register_namespace("soap", SOAP11_NS)
ET.register_namespace("xsi", XSI_NS)


@runtime_checkable
class Marshaller(Protocol):
    def marshal(self, envelope: Envelope) -> bytes:
        """Encode the envelope; raise SerializationError if the payload cannot be represented."""
        ...

    def unmarshal(self, data: bytes, envelope: Envelope) -> None:
        """Fill ``envelope.body.content`` in place, or set ``envelope.body.fault``.

        Raise DeserializationError on malformed input or a structural mismatch.
        """
        ...


# ------------------------------- XML helpers -------------------------------
def _split(tag: str) -> Tuple[str, str]:
    if tag.startswith("{"):
        ns, _, local = tag[1:].partition("}")
        return ns, local
    return "", tag


def _local(tag: str) -> str:
    return tag.split("}")[-1]


def _child(el: ET.Element, name: str) -> Optional[ET.Element]:
    for c in el:
        if _local(c.tag) == name:
            return c
    return None


def _path_text(el: Optional[ET.Element], *names: str) -> str:
    for name in names:
        if el is None:
            return ""
        el = _child(el, name)
    if el is None:
        return ""
    return (el.text or "").strip()


def _key(tag: str, prefixes: Mapping[str, str]) -> str:
    ns, local = _split(tag)
    if not ns:
        return local
    prefix = prefixes.get(ns)
    return f"{prefix}:{local}" if prefix else tag


def _xsd_boolean(text: str) -> bool:
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    raise ValueError(f"not a boolean: {text!r}")


_XSD_DECODERS: Dict[str, Callable[[str], Any]] = {
    "boolean": _xsd_boolean,
    "integer": int,
    "int": int,
    "long": int,
    "short": int,
    "double": float,
    "float": float,
    "decimal": Decimal,
}


def _xsd_type(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "xsd:boolean"
    if isinstance(value, int):
        return "xsd:integer"
    if isinstance(value, float):
        return "xsd:double"
    if isinstance(value, Decimal):
        return "xsd:decimal"
    return None


def _typed(text: str, xsi_type: Optional[str]) -> Any:
    decode = _XSD_DECODERS.get((xsi_type or "").rpartition(":")[2]) if xsi_type else None
    if decode is None:
        return text
    try:
        return decode(text.strip())
    except (ValueError, ArithmeticError) as e:
        raise DeserializationError(f"invalid {xsi_type} value: {text!r}") from e


def xml2dict(
    el: ET.Element,
    prefixes: Optional[Mapping[str, str]] = None,
    force_list: Collection[str] = (),
) -> Any:
    """Convert an element to plain Python data.

    Leaves become their text (typed when they carry a known ``xsi:type``,
    ``None`` for ``xsi:nil``). Elements with children or attributes become
    dicts: ``@attr`` for attributes, ``#text`` for mixed text. Namespaced names
    use the prefix found in ``prefixes`` (namespace URI to prefix), Clark
    notation otherwise. Repeated names collapse into lists, as does every
    name listed in ``force_list``.
    """
    prefixes = prefixes or {}
    children = list(el)
    attrib = dict(el.attrib)
    nil = attrib.pop(XSI_NIL, None)
    xsi_type = attrib.pop(XSI_TYPE, None)
    text = el.text or ""

    if not children and not attrib:
        if nil in ("true", "1"):
            return None
        return _typed(text, xsi_type)

    if nil is not None:
        attrib[XSI_NIL] = nil
    if xsi_type is not None:
        attrib[XSI_TYPE] = xsi_type
    out: Dict[str, Any] = {f"@{_key(k, prefixes)}": v for k, v in attrib.items()}
    out.update(children2dict(children, prefixes, force_list))
    if text.strip():
        out["#text"] = text
    return out


def children2dict(
    children: Iterable[ET.Element],
    prefixes: Optional[Mapping[str, str]] = None,
    force_list: Collection[str] = (),
) -> Dict[str, Any]:
    prefixes = prefixes or {}
    bucket: Dict[str, Any] = {}
    for c in children:
        k = _key(c.tag, prefixes)
        v = xml2dict(c, prefixes, force_list)
        if k in bucket:
            if not isinstance(bucket[k], list):
                bucket[k] = [bucket[k]]
            bucket[k].append(v)
        else:
            bucket[k] = v

    for name in force_list:
        if name in bucket and not isinstance(bucket[name], list):
            bucket[name] = [bucket[name]]
    return bucket


# ------------------------------- Default codec -------------------------------
class XMLMarshaller:
    """
    ElementTree codec for mapping or Element payloads.

    Request payloads are mappings of element name to value. Names may be plain,
    prefixed (``m:DoWork``) with the prefix looked up in ``namespaces``, or
    Clark-qualified (``{urn:x}DoWork``) for namespaces without a declared
    prefix. ``@name`` keys become attributes and ``#text`` sets the text of an
    element that also has attributes or children.

    Scalars other than ``str`` are tagged with ``xsi:type`` and ``None`` is sent
    as ``xsi:nil``, so decoding gives back the same Python values. Repeated
    elements decode to lists; names that must stay lists even with a single
    item go in ``force_list``. Shapes XML cannot carry back (empty lists,
    single-item lists outside ``force_list``, empty mappings) are rejected.
    Element payloads and Element values are copied in after their names and
    text are checked; they decode back as mappings, not Elements. Comments and
    processing instructions inside them are rejected.

    Response targets are mutable mappings (updated with the Body children, see
    :func:`xml2dict`), Elements (children appended) or None (payload dropped).

    Note that prefixes are registered with ElementTree, which keeps a
    process-wide prefix table.
    """

    def __init__(
        self,
        namespaces: Optional[Mapping[str, str]] = None,
        force_list: Collection[str] = (),
    ):
        self.namespaces: Dict[str, str] = dict(namespaces or {})
        self.force_list = frozenset(force_list)
        for prefix, uri in self.namespaces.items():
            ET.register_namespace(prefix, uri)
        self._uris = {**BUILTIN_PREFIXES, **self.namespaces}
        self._prefixes = {uri: prefix for prefix, uri in self._uris.items()}

    # ------------------------------- Encoding -------------------------------
    def marshal(self, envelope: Envelope) -> bytes:
        root = ET.Element(f"{{{SOAP11_NS}}}Envelope")
        body = ET.SubElement(root, f"{{{SOAP11_NS}}}Body")

        content = envelope.body.content
        try:
            if isinstance(content, ET.Element):
                self._check_element(content)
                body.append(copy.deepcopy(content))
            elif isinstance(content, Mapping):
                for key in content:
                    if isinstance(key, str) and (key == "#text" or key.startswith("@")):
                        raise SerializationError(f"{key!r} is not allowed at the top level of the Body")
                if content:
                    self._fill(body, content, frozenset())
            elif content is not None:
                raise SerializationError(f"unsupported payload type: {type(content).__name__}")

            if any(XSI_TYPE in el.attrib for el in root.iter()):
                root.set("xmlns:xsd", XSD_NS)
            data = ET.tostring(root, encoding="utf-8", xml_declaration=True)
        except RecursionError as e:
            raise SerializationError("payload is nested too deeply") from e
        except (TypeError, ValueError) as e:
            raise SerializationError(f"cannot serialize payload: {e}") from e
        # parsers normalize a literal CR in text content
        return data.replace(b"\r", b"&#13;")

    def _fill(self, parent: ET.Element, mapping: Mapping, seen: frozenset) -> None:
        if id(mapping) in seen:
            raise SerializationError("cyclic payload structure")
        if not mapping:
            raise SerializationError("empty mapping has no XML form distinct from ''")
        if set(mapping) == {"#text"}:
            raise SerializationError("'#text' alone is just a string value")
        seen = seen | {id(mapping)}

        for key, value in mapping.items():
            if not isinstance(key, str):
                raise SerializationError(f"element names must be str, got {key!r}")
            if key == "#text":
                if not isinstance(value, str) or not value.strip():
                    raise SerializationError("'#text' must be a non-blank str")
                parent.text = self._chars(value)
            elif key.startswith("@"):
                name = self._qname(key[1:])
                if name in (XSI_TYPE, XSI_NIL):
                    raise SerializationError(f"{key!r} is reserved for value typing")
                if not isinstance(value, str):
                    raise SerializationError(f"attribute {key!r} must be a str, got {type(value).__name__}")
                parent.set(name, self._chars(value))
            else:
                self._append(parent, self._qname(key), value, seen, key)

    def _append(self, parent: ET.Element, tag: str, value: Any, seen: frozenset, key: str) -> None:
        forced = key in self.force_list
        if isinstance(value, list):
            seen = seen | {id(value)}
            for item in value:
                if isinstance(item, list):
                    if id(item) in seen:
                        raise SerializationError("cyclic payload structure")
                    raise SerializationError(f"nested list under {key!r}")
            if not value:
                raise SerializationError(f"empty list for {key!r} produces no element")
            if len(value) == 1 and not forced:
                raise SerializationError(f"single-item list for {key!r} needs the name in force_list")
            for item in value:
                self._append_one(parent, tag, item, seen)
            return
        if forced:
            raise SerializationError(f"{key!r} is in force_list and must be given a list")
        self._append_one(parent, tag, value, seen)

    def _append_one(self, parent: ET.Element, tag: str, value: Any, seen: frozenset) -> None:
        el = ET.SubElement(parent, tag)
        if value is None:
            el.set(XSI_NIL, "true")
        elif isinstance(value, Mapping):
            self._fill(el, value, seen)
        elif isinstance(value, ET.Element):
            self._check_element(value)
            el.append(copy.deepcopy(value))
        else:
            el.text = self._text(value)
            xsd = _xsd_type(value)
            if xsd:
                el.set(XSI_TYPE, xsd)

    @classmethod
    def _text(cls, value: Any) -> str:
        if isinstance(value, bool):
            text = "true" if value else "false"
        elif isinstance(value, (str, int, float, Decimal)):
            text = str(value)
        else:
            raise SerializationError(f"unsupported value type: {type(value).__name__}")
        return cls._chars(text)

    @staticmethod
    def _chars(text: str) -> str:
        if _INVALID_CHARS.search(text):
            raise SerializationError(f"value contains characters not allowed in XML: {text!r}")
        return text

    def _qname(self, name: str) -> str:
        if name.startswith("{"):
            uri, sep, local = name[1:].partition("}")
            if not sep or not uri:
                raise SerializationError(f"invalid qualified name: {name!r}")
            if uri in self._prefixes:
                raise SerializationError(f"use the {self._prefixes[uri]!r} prefix instead of {name!r}")
        else:
            prefix, sep, local = name.rpartition(":")
            uri = ""
            if sep:
                if prefix not in self._uris:
                    raise SerializationError(f"unknown namespace prefix {prefix!r} in {name!r}")
                uri = self._uris[prefix]
        if not _NAME.match(local):
            raise SerializationError(f"invalid XML name: {name!r}")
        return f"{{{uri}}}{local}" if uri else local

    @classmethod
    def _check_element(cls, root: ET.Element) -> None:
        for el in root.iter():
            if not isinstance(el.tag, str):
                raise SerializationError("comments and processing instructions are not supported")
            cls._check_tag(el.tag)
            for name, value in el.attrib.items():
                cls._check_tag(name)
                cls._check_node_text(value)
            cls._check_node_text(el.text)
            cls._check_node_text(el.tail)

    @staticmethod
    def _check_tag(tag: Any) -> None:
        if not isinstance(tag, str):
            raise SerializationError(f"invalid XML name: {tag!r}")
        ns, local = _split(tag)
        if (tag.startswith("{") and not ns) or not _NAME.match(local):
            raise SerializationError(f"invalid XML name: {tag!r}")

    @classmethod
    def _check_node_text(cls, text: Any) -> None:
        if text is None:
            return
        if not isinstance(text, str):
            raise SerializationError(f"element text must be str, got {type(text).__name__}")
        cls._chars(text)

    # ------------------------------- Decoding -------------------------------
    def unmarshal(self, data: bytes, envelope: Envelope) -> None:
        try:
            root = ET.fromstring(data)
        except (ET.ParseError, ValueError) as e:
            raise DeserializationError(f"Invalid XML: {e}") from e

        ns, name = _split(root.tag)
        if name != "Envelope" or ns not in ENVELOPE_NAMESPACES:
            raise DeserializationError(f"expected a SOAP Envelope, got <{root.tag}>")

        body = root.find(f"{{{ns}}}Body")
        if body is None:
            raise DeserializationError("SOAP Body not found")

        try:
            fault = body.find(f"{{{ns}}}Fault")
            if fault is not None:
                envelope.body.fault = self._fault(fault, ns)
                return

            target = envelope.body.content
            if target is None:
                return
            if isinstance(target, ET.Element):
                target.extend(copy.deepcopy(c) for c in body)
            elif isinstance(target, MutableMapping):
                target.update(children2dict(body, self._prefixes, self.force_list))
            else:
                raise DeserializationError(f"unsupported response target: {type(target).__name__}")
        except RecursionError as e:
            raise DeserializationError("response is nested too deeply") from e

    def _fault(self, el: ET.Element, ns: str) -> Fault:
        if ns == SOAP12_NS:
            code = _path_text(el, "Code", "Value")
            string = _path_text(el, "Reason", "Text")
            actor = _child(el, "Role")
            detail = _child(el, "Detail")
        else:
            code = _path_text(el, "faultcode")
            string = _path_text(el, "faultstring")
            actor = _child(el, "faultactor")
            detail = _child(el, "detail")

        return Fault(
            code=code,
            string=string,
            actor=(actor.text or "").strip() if actor is not None else None,
            detail=xml2dict(detail, self._prefixes, self.force_list) if detail is not None else None,
        )
