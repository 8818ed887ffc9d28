from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import Fault


@dataclass
class Body:
    # Outbound: request payload, fault stays None.
    # Inbound: aliases the caller's response target; a fault wins over content.
    content: Any = None
    fault: Optional[Fault] = None


@dataclass
class Envelope:
    body: Body = field(default_factory=Body)


@dataclass(frozen=True)
class BasicAuth:
    login: str
    password: str = field(repr=False)
