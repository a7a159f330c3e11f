"""Ethernet (MAC) addresses and their textual form."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable
from dataclasses import dataclass

ETHER_ADDR_LEN = 6
"""The number of bytes in an ethernet (MAC) address."""

_LOCAL_ADDR_BIT = 0x02
_MULTICAST_ADDR_BIT = 0x01
_HEX_COMPONENT = re.compile(r"\+?[0-9A-Fa-f]+")
_LENGTH_EXPECTATION = (
    "either a string representation of a MAC address or 6-element byte array"
)


class ParseMacAddrErr(enum.Enum):
    """The kinds of failure when parsing a MAC address string."""

    TOO_MANY_COMPONENTS = "Too many components in a MAC address string"
    TOO_FEW_COMPONENTS = "Too few components in a MAC address string"
    INVALID_COMPONENT = "Invalid component in a MAC address string"

    def description(self) -> str:
        """Return a human readable description of the failure."""
        return self.value

    def __str__(self) -> str:
        return self.value


class ParseMacAddrError(ValueError):
    """Raised when a string is not a valid MAC address."""

    def __init__(self, kind: ParseMacAddrErr) -> None:
        super().__init__(kind.description())
        self.kind = kind


@dataclass(frozen=True, order=True, repr=False, slots=True)
class MacAddr:
    """An immutable 48-bit MAC address."""

    a: int = 0
    b: int = 0
    c: int = 0
    d: int = 0
    e: int = 0
    f: int = 0

    def __post_init__(self) -> None:
        for octet in self.octets():
            if not isinstance(octet, int) or not 0 <= octet <= 0xFF:
                raise ValueError(f"MAC address octet out of range: {octet!r}")

    @classmethod
    def zero(cls) -> MacAddr:
        """Return the all-zero address."""
        return cls()

    @classmethod
    def broadcast(cls) -> MacAddr:
        """Return the broadcast address ff:ff:ff:ff:ff:ff."""
        return cls(*([0xFF] * ETHER_ADDR_LEN))

    @classmethod
    def parse(cls, text: str) -> MacAddr:
        """Parse a colon separated hexadecimal address such as ``12:34:56:78:90:ab``."""
        parts: list[int] = []
        for component in text.split(":"):
            if len(parts) == ETHER_ADDR_LEN:
                raise ParseMacAddrError(ParseMacAddrErr.TOO_MANY_COMPONENTS)
            if not _HEX_COMPONENT.fullmatch(component):
                raise ParseMacAddrError(ParseMacAddrErr.INVALID_COMPONENT)
            value = int(component, 16)
            if value > 0xFF:
                raise ParseMacAddrError(ParseMacAddrErr.INVALID_COMPONENT)
            parts.append(value)
        if len(parts) != ETHER_ADDR_LEN:
            raise ParseMacAddrError(ParseMacAddrErr.TOO_FEW_COMPONENTS)
        return cls(*parts)

    @classmethod
    def from_octets(cls, octets: Iterable[int]) -> MacAddr:
        """Build an address from six octets (bytes, list or tuple)."""
        data = tuple(octets)
        if len(data) != ETHER_ADDR_LEN:
            raise ValueError(
                f"invalid length {len(data)}, expected {_LENGTH_EXPECTATION}"
            )
        return cls(*data)

    def octets(self) -> tuple[int, int, int, int, int, int]:
        """Return the six octets that make up this address."""
        return (self.a, self.b, self.c, self.d, self.e, self.f)

    def is_zero(self) -> bool:
        return self == MacAddr.zero()

    def is_universal(self) -> bool:
        """True for a universally administered address (UAA)."""
        return not self.is_local()

    def is_local(self) -> bool:
        """True for a locally administered address (LAA)."""
        return self.a & _LOCAL_ADDR_BIT == _LOCAL_ADDR_BIT

    def is_unicast(self) -> bool:
        return not self.is_multicast()

    def is_multicast(self) -> bool:
        return self.a & _MULTICAST_ADDR_BIT == _MULTICAST_ADDR_BIT

    def is_broadcast(self) -> bool:
        return self == MacAddr.broadcast()

    def __bytes__(self) -> bytes:
        return bytes(self.octets())

    def __str__(self) -> str:
        return ":".join(f"{octet:02x}" for octet in self.octets())

    def __repr__(self) -> str:
        return f"MacAddr('{self}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MacAddr):
            return self.octets() == other.octets()
        if isinstance(other, (tuple, list)):
            return len(other) == ETHER_ADDR_LEN and self.octets() == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.octets())