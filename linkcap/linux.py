"""Data-link channels on Linux ``AF_PACKET`` sockets."""

from __future__ import annotations

import errno
import select
import socket
import struct
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from linkcap import unix_interfaces
from linkcap.interface import (
    Channel,
    ChannelType,
    Config as GenericConfig,
    DataLinkReceiver,
    DataLinkSender,
    FanoutOption,
    FanoutType,
    Layer2,
    Layer3,
    NetworkInterface,
)

ETH_P_ALL = 0x0003

SOL_PACKET = 263
PACKET_ADD_MEMBERSHIP = 1
PACKET_MR_PROMISC = 1
PACKET_FANOUT = 18
PACKET_FANOUT_HASH = 0
PACKET_FANOUT_LB = 1
PACKET_FANOUT_CPU = 2
PACKET_FANOUT_ROLLOVER = 3
PACKET_FANOUT_RND = 4
PACKET_FANOUT_QM = 5
PACKET_FANOUT_CBPF = 6
PACKET_FANOUT_EBPF = 7
PACKET_FANOUT_FLAG_ROLLOVER = 0x1000
PACKET_FANOUT_FLAG_UNIQUEID = 0x2000
PACKET_FANOUT_FLAG_DEFRAG = 0x8000

_FANOUT_CODES = {
    FanoutType.HASH: PACKET_FANOUT_HASH,
    FanoutType.LB: PACKET_FANOUT_LB,
    FanoutType.CPU: PACKET_FANOUT_CPU,
    FanoutType.ROLLOVER: PACKET_FANOUT_ROLLOVER,
    FanoutType.RND: PACKET_FANOUT_RND,
    FanoutType.QM: PACKET_FANOUT_QM,
    FanoutType.CBPF: PACKET_FANOUT_CBPF,
    FanoutType.EBPF: PACKET_FANOUT_EBPF,
}

# struct packet_mreq: int ifindex, unsigned short type, unsigned short alen, 8 address bytes
_PACKET_MREQ = struct.Struct("iHH8s")


@dataclass
class Config:
    """Configuration for the ``AF_PACKET`` backend; timeouts are in seconds."""

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    channel_type: ChannelType = field(default_factory=Layer2)
    fanout: Optional[FanoutOption] = None
    promiscuous: bool = True

    @classmethod
    def from_generic(cls, config: GenericConfig) -> Config:
        """Take the options that apply to this backend from a generic configuration."""
        return cls(
            write_buffer_size=config.write_buffer_size,
            read_buffer_size=config.read_buffer_size,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            channel_type=config.channel_type,
            fanout=config.linux_fanout,
            promiscuous=config.promiscuous,
        )


def fanout_argument(fanout: FanoutOption) -> int:
    """Return the ``PACKET_FANOUT`` socket option value for ``fanout``."""
    if not 0 <= fanout.group_id <= 0xFFFF:
        raise ValueError(f"fanout group id out of range: {fanout.group_id}")
    mode = _FANOUT_CODES[fanout.fanout_type]
    if fanout.defrag:
        mode |= PACKET_FANOUT_FLAG_DEFRAG
    if fanout.rollover:
        mode |= PACKET_FANOUT_FLAG_ROLLOVER
    return fanout.group_id | (mode << 16)


def _wait(sock, timeout: Optional[float], *, write: bool) -> None:
    if write:
        _, ready, _ = select.select([], [sock], [], timeout)
    else:
        ready, _, _ = select.select([sock], [], [], timeout)
    if not ready:
        raise TimeoutError("Timed out")


class _PacketSender(DataLinkSender):
    def __init__(self, sock, write_buffer_size: int, timeout: Optional[float]) -> None:
        self._sock = sock
        self._write_buffer_size = write_buffer_size
        self._timeout = timeout

    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        if num_packets * packet_size > self._write_buffer_size:
            return False
        for _ in range(num_packets):
            packet = bytearray(packet_size)
            func(packet)
            _wait(self._sock, self._timeout, write=True)
            self._sock.send(packet)
        return True

    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        _wait(self._sock, self._timeout, write=True)
        self._sock.send(bytes(packet))
        return True


class _PacketReceiver(DataLinkReceiver):
    def __init__(self, sock, read_buffer_size: int, timeout: Optional[float]) -> None:
        self._sock = sock
        self._read_buffer_size = read_buffer_size
        self._timeout = timeout

    def _receive(self, timeout: Optional[float]) -> bytes:
        _wait(self._sock, timeout, write=False)
        return bytes(self._sock.recv(self._read_buffer_size))

    def next(self) -> bytes:
        return self._receive(self._timeout)

    def next_with_timeout(self, timeout: float) -> bytes:
        return self._receive(timeout)


def channel(network_interface: NetworkInterface, config: Optional[Config] = None) -> Channel:
    """Open an ``AF_PACKET`` channel bound to ``network_interface``."""
    config = config if config is not None else Config()
    family = getattr(socket, "AF_PACKET", None)
    if family is None:
        raise OSError(
            errno.EAFNOSUPPORT, "AF_PACKET sockets are not supported on this platform"
        )
    if isinstance(config.channel_type, Layer3):
        sock_type, proto = socket.SOCK_DGRAM, config.channel_type.ethertype
    else:
        sock_type, proto = socket.SOCK_RAW, ETH_P_ALL

    sock = socket.socket(family, sock_type, socket.htons(proto))
    try:
        sock.bind((network_interface.name, proto))
        if config.promiscuous:
            membership = _PACKET_MREQ.pack(
                network_interface.index, PACKET_MR_PROMISC, 0, b""
            )
            sock.setsockopt(SOL_PACKET, PACKET_ADD_MEMBERSHIP, membership)
        if config.fanout is not None:
            argument = struct.pack("I", fanout_argument(config.fanout))
            sock.setsockopt(SOL_PACKET, PACKET_FANOUT, argument)
        sock.setblocking(False)
    except BaseException:
        sock.close()
        raise

    return Channel(
        _PacketSender(sock, config.write_buffer_size, config.write_timeout),
        _PacketReceiver(sock, config.read_buffer_size, config.read_timeout),
    )


def interfaces() -> list[NetworkInterface]:
    """Return the network interfaces of the current machine."""
    return unix_interfaces.interfaces()