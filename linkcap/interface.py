"""Core data-link types: configuration, channels and network interfaces."""

from __future__ import annotations

import abc
import enum
import ipaddress
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Union

from linkcap.macaddr import MacAddr

EtherType = int

IFF_UP = 0x1
IFF_BROADCAST = 0x2
IFF_LOOPBACK = 0x8
IFF_POINTOPOINT = 0x10
if sys.platform.startswith("linux"):
    IFF_RUNNING = 0x40
    IFF_MULTICAST = 0x1000
    IFF_LOWER_UP = 0x10000
    IFF_DORMANT = 0x20000
elif sys.platform == "win32":
    IFF_RUNNING = 0
    IFF_MULTICAST = 0x8000
    IFF_LOWER_UP = 0
    IFF_DORMANT = 0
else:
    IFF_RUNNING = 0x40
    IFF_MULTICAST = 0x8000
    IFF_LOWER_UP = 0
    IFF_DORMANT = 0

IpNetwork = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]


@dataclass(frozen=True)
class Layer2:
    """Send and receive layer 2 packets directly, including headers."""


@dataclass(frozen=True)
class Layer3:
    """Send and receive network layer packets of the given EtherType."""

    ethertype: EtherType


ChannelType = Union[Layer2, Layer3]


class FanoutType(enum.Enum):
    """Socket fanout modes (Linux only)."""

    HASH = enum.auto()
    LB = enum.auto()
    CPU = enum.auto()
    ROLLOVER = enum.auto()
    RND = enum.auto()
    QM = enum.auto()
    CBPF = enum.auto()
    EBPF = enum.auto()


@dataclass(frozen=True)
class FanoutOption:
    """Packet fanout settings (Linux only)."""

    group_id: int
    fanout_type: FanoutType
    defrag: bool
    rollover: bool


@dataclass
class Config:
    """Options for opening a channel; each backend may ignore what does not apply.

    Timeouts are in seconds, or None for no timeout.
    """

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    channel_type: ChannelType = field(default_factory=Layer2)
    bpf_fd_attempts: int = 1000
    linux_fanout: Optional[FanoutOption] = None
    promiscuous: bool = True


class DataLinkSender(abc.ABC):
    """Sends packets at the data link layer."""

    @abc.abstractmethod
    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        """Build ``num_packets`` packets in place with ``func`` and send each.

        Returns False if the write buffer is too small to hold them, True once
        they are sent. Raises OSError if sending fails.
        """

    @abc.abstractmethod
    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        """Send one packet; ``dst`` is currently ignored.

        Returns False if the packet cannot be sent on this channel, True once
        it is sent. Raises OSError if sending fails.
        """


class DataLinkReceiver(abc.ABC):
    """Receives packets at the data link layer."""

    @abc.abstractmethod
    def next(self) -> bytes:
        """Return the next frame, raising OSError (or TimeoutError) on failure."""

    @abc.abstractmethod
    def next_with_timeout(self, timeout: float) -> bytes:
        """Return the next frame, waiting at most ``timeout`` seconds."""

    def __iter__(self) -> Iterator[bytes]:
        while True:
            yield self.next()


class Channel(NamedTuple):
    """An Ethernet channel: a sender and a receiver sharing one endpoint."""

    sender: DataLinkSender
    receiver: DataLinkReceiver


_FLAG_NAMES = (
    "UP",
    "BROADCAST",
    "LOOPBACK",
    "POINTOPOINT",
    "MULTICAST",
    "RUNNING",
    "DORMANT",
    "LOWERUP",
)


@dataclass
class NetworkInterface:
    """A network interface and its associated addresses."""

    name: str
    description: str = ""
    index: int = 0
    mac: Optional[MacAddr] = None
    ips: list[IpNetwork] = field(default_factory=list)
    flags: int = 0

    def _has(self, flag: int) -> bool:
        return self.flags & flag != 0

    def is_up(self) -> bool:
        return self._has(IFF_UP)

    def is_broadcast(self) -> bool:
        return self._has(IFF_BROADCAST)

    def is_loopback(self) -> bool:
        return self._has(IFF_LOOPBACK)

    def is_point_to_point(self) -> bool:
        return self._has(IFF_POINTOPOINT)

    def is_multicast(self) -> bool:
        return self._has(IFF_MULTICAST)

    def is_lower_up(self) -> bool:
        """True when the driver has signalled carrier on (Linux only)."""
        return self._has(IFF_LOWER_UP)

    def is_dormant(self) -> bool:
        """True when the driver has signalled dormant (Linux only)."""
        return self._has(IFF_DORMANT)

    def is_running(self) -> bool:
        return self._has(IFF_RUNNING)

    def __str__(self) -> str:
        if self.flags > 0:
            states = (
                self.is_up(),
                self.is_broadcast(),
                self.is_loopback(),
                self.is_point_to_point(),
                self.is_multicast(),
                self.is_running(),
                self.is_dormant(),
                self.is_lower_up(),
            )
            names = ",".join(name for name, on in zip(_FLAG_NAMES, states) if on)
            flags = f"{self.flags:X}<{names}>"
        else:
            flags = f"{self.flags:X}"

        mac = str(self.mac) if self.mac is not None else "N/A"
        ips = "".join(
            f"\n       inet: {ip}" if ip.version == 4 else f"\n      inet6: {ip}"
            for ip in self.ips
        )
        return (
            f"{self.name}: flags={flags}\n"
            f"      index: {self.index}\n"
            f"      ether: {mac}{ips}"
        )