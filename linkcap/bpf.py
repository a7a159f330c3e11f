"""Data-link channels on the BSD packet filter device (``/dev/bpf``)."""

from __future__ import annotations

import collections
import fcntl
import os
import select
import struct
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from linkcap import unix_interfaces
from linkcap.interface import (
    Channel,
    Config as GenericConfig,
    DataLinkReceiver,
    DataLinkSender,
    NetworkInterface,
)

ETHERNET_HEADER_SIZE = 14
_LOOPBACK_HEADER_SIZE = 4

_PLATFORM = sys.platform
_NUMBERED_DEVICES = _PLATFORM in ("darwin", "ios") or _PLATFORM.startswith("openbsd")
_SINGLE_DEVICE = _PLATFORM.startswith(("freebsd", "netbsd", "sunos"))

AF_LINK = 18

_IF_NAMESIZE = 16
_IOC_IN = 0x80000000
_IOC_OUT = 0x40000000
_IOC_INOUT = _IOC_IN | _IOC_OUT
_IOCPARM_SHIFT = 13
_IOCPARM_MASK = (1 << _IOCPARM_SHIFT) - 1

_SIZEOF_TIMEVAL = 16
_SIZEOF_IFREQ = 32
_SIZEOF_C_UINT = 4


def _ioc(direction: int, size: int, number: int) -> int:
    return direction | ((size & _IOCPARM_MASK) << 16) | (ord("B") << 8) | number


BIOCSETIF = _ioc(_IOC_IN, _SIZEOF_IFREQ, 108)
BIOCIMMEDIATE = _ioc(_IOC_IN, _SIZEOF_C_UINT, 112)
BIOCGBLEN = _ioc(_IOC_OUT, _SIZEOF_C_UINT, 102)
BIOCGDLT = _ioc(_IOC_OUT, _SIZEOF_C_UINT, 106)
BIOCSBLEN = _ioc(_IOC_INOUT, _SIZEOF_C_UINT, 102)
BIOCSHDRCMPLT = _ioc(_IOC_IN, _SIZEOF_C_UINT, 117)
BIOCSRTIMEOUT = _ioc(_IOC_IN, _SIZEOF_TIMEVAL, 109)
BIOCFEEDBACK = _ioc(
    _IOC_IN, _SIZEOF_C_UINT, 125 if _PLATFORM.startswith("netbsd") else 124
)

DLT_NULL = 0

BPF_ALIGNMENT = 8 if _SINGLE_DEVICE else 4
"""Word alignment of records in a buffer read from the device."""

_TSTAMP_SIZE = (
    8
    if _NUMBERED_DEVICES or _PLATFORM == "win32"
    else 2 * struct.calcsize("l")
)

BPF_HDR = struct.Struct(f"={_TSTAMP_SIZE}xIIH")
"""Layout of ``struct bpf_hdr``: timestamp (skipped), caplen, datalen, hdrlen."""


@dataclass
class Config:
    """Configuration for the BPF backend; timeouts are in seconds.

    ``bpf_fd_attempts`` is the number of numbered ``/dev/bpf*`` devices to try
    on systems that have them.
    """

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    bpf_fd_attempts: int = 1000

    @classmethod
    def from_generic(cls, config: GenericConfig) -> Config:
        """Take the options that apply to this backend from a generic configuration."""
        return cls(
            write_buffer_size=config.write_buffer_size,
            read_buffer_size=config.read_buffer_size,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            bpf_fd_attempts=config.bpf_fd_attempts,
        )


def bpf_wordalign(x: int, alignment: int = BPF_ALIGNMENT) -> int:
    """Round ``x`` up to a multiple of ``alignment`` (a power of two)."""
    return (x + (alignment - 1)) & ~(alignment - 1)


def split_bpf_buffer(
    data: bytes, loopback: bool = False, alignment: int = BPF_ALIGNMENT
) -> list[bytes]:
    """Split a buffer read from the device into the frames it holds.

    On a loopback device each packet starts with a 4-byte address family
    header; that header is replaced by a zeroed Ethernet header.
    """
    frames: list[bytes] = []
    view = memoryview(data)
    pos = 0
    while pos < len(view):
        if pos + BPF_HDR.size > len(view):
            raise ValueError(f"truncated bpf header at offset {pos}")
        caplen, _datalen, hdrlen = BPF_HDR.unpack_from(view, pos)
        if hdrlen < BPF_HDR.size:
            raise ValueError(f"invalid bpf header length {hdrlen} at offset {pos}")
        start = pos + hdrlen
        end = start + caplen
        if end > len(view):
            raise ValueError(f"truncated packet at offset {pos}")
        if loopback:
            if caplen < _LOOPBACK_HEADER_SIZE:
                raise ValueError(f"loopback packet too short at offset {pos}")
            frame = bytes(ETHERNET_HEADER_SIZE) + bytes(
                view[start + _LOOPBACK_HEADER_SIZE : end]
            )
        else:
            frame = bytes(view[start:end])
        frames.append(frame)
        pos += bpf_wordalign(hdrlen + caplen, alignment)
    return frames


class _BpfDevice:
    """An open packet filter descriptor shared by a sender and a receiver."""

    def __init__(self, fd: int) -> None:
        self._fd = fd

    def fileno(self) -> int:
        return self._fd

    def close(self) -> None:
        if self._fd >= 0:
            os.close(self._fd)
            self._fd = -1

    def __del__(self) -> None:
        try:
            self.close()
        except OSError:
            pass


def _wait(device: _BpfDevice, timeout: Optional[float], *, write: bool) -> None:
    if write:
        _, ready, _ = select.select([], [device], [], timeout)
    else:
        ready, _, _ = select.select([device], [], [], timeout)
    if not ready:
        raise TimeoutError("Timed out")


class _BpfSender(DataLinkSender):
    def __init__(
        self,
        device: _BpfDevice,
        write_buffer_size: int,
        loopback: bool,
        timeout: Optional[float],
    ) -> None:
        self._device = device
        self._write_buffer_size = write_buffer_size
        # The OS prepends loopback packets with its own 4-byte header.
        self._offset = ETHERNET_HEADER_SIZE if loopback else 0
        self._timeout = timeout

    def _write(self, packet: bytes) -> None:
        if len(packet) < self._offset:
            raise ValueError("packet shorter than an Ethernet header")
        _wait(self._device, self._timeout, write=True)
        os.write(self._device.fileno(), packet[self._offset :])

    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        if num_packets * packet_size >= self._write_buffer_size:
            return False
        for _ in range(num_packets):
            packet = bytearray(packet_size)
            func(packet)
            self._write(bytes(packet))
        return True

    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        self._write(bytes(packet))
        return True


class _BpfReceiver(DataLinkReceiver):
    def __init__(
        self,
        device: _BpfDevice,
        read_buffer_size: int,
        loopback: bool,
        timeout: Optional[float],
    ) -> None:
        self._device = device
        self._read_buffer_size = read_buffer_size
        self._loopback = loopback
        self._timeout = timeout
        self._packets: collections.deque[bytes] = collections.deque()

    def _receive(self, timeout: Optional[float]) -> bytes:
        if not self._packets:
            _wait(self._device, timeout, write=False)
            data = os.read(self._device.fileno(), self._read_buffer_size)
            if not data:
                raise OSError("read from packet filter returned no data")
            self._packets.extend(split_bpf_buffer(data, self._loopback))
        return self._packets.popleft()

    def next(self) -> bytes:
        return self._receive(self._timeout)

    def next_with_timeout(self, timeout: float) -> bytes:
        return self._receive(timeout)


def _open_device(attempts: int) -> int:
    if not _NUMBERED_DEVICES:
        return os.open("/dev/bpf", os.O_RDWR)
    last_error: Optional[OSError] = None
    for i in range(attempts):
        try:
            return os.open(f"/dev/bpf{i}", os.O_RDWR)
        except OSError as error:
            last_error = error
    if last_error is not None:
        raise last_error
    raise OSError("no /dev/bpf device could be opened")


def _ioctl_uint(fd: int, request: int, value: int) -> int:
    result = fcntl.ioctl(fd, request, struct.pack("I", value))
    return struct.unpack("I", result)[0]


def _ifreq(name: str) -> bytes:
    encoded = name.encode()
    if len(encoded) >= _IF_NAMESIZE:
        raise ValueError(f"interface name too long: {name!r}")
    return encoded.ljust(_IF_NAMESIZE, b"\0") + bytes(_SIZEOF_IFREQ - _IF_NAMESIZE)


def channel(
    network_interface: NetworkInterface, config: Optional[Config] = None
) -> Channel:
    """Open a packet filter channel bound to ``network_interface``."""
    config = config if config is not None else Config()
    fd = _open_device(config.bpf_fd_attempts)
    try:
        # The buffer length must be set before binding to an interface.
        _ioctl_uint(fd, BIOCSBLEN, config.read_buffer_size)
        fcntl.ioctl(fd, BIOCSETIF, _ifreq(network_interface.name))
        _ioctl_uint(fd, BIOCIMMEDIATE, 1)
        dlt = _ioctl_uint(fd, BIOCGDLT, 0)
        loopback = dlt == DLT_NULL
        if loopback:
            if _SINGLE_DEVICE:
                # Allow packets to be read back after they are written.
                _ioctl_uint(fd, BIOCFEEDBACK, 1)
        else:
            # Do not fill in the source MAC address.
            _ioctl_uint(fd, BIOCSHDRCMPLT, 1)
        os.set_blocking(fd, False)
    except BaseException:
        os.close(fd)
        raise

    device = _BpfDevice(fd)
    return Channel(
        _BpfSender(device, config.write_buffer_size, loopback, config.write_timeout),
        _BpfReceiver(device, config.read_buffer_size, loopback, config.read_timeout),
    )


def interfaces() -> list[NetworkInterface]:
    """Return the network interfaces of the current machine."""
    return unix_interfaces.interfaces()