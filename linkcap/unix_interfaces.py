"""Listing the network interfaces of the current machine."""

from __future__ import annotations

import ipaddress
import socket
from collections.abc import Iterator
from typing import Optional, Union

import psutil

from linkcap.interface import (
    IFF_BROADCAST,
    IFF_DORMANT,
    IFF_LOOPBACK,
    IFF_LOWER_UP,
    IFF_MULTICAST,
    IFF_POINTOPOINT,
    IFF_RUNNING,
    IFF_UP,
    NetworkInterface,
)
from linkcap.macaddr import MacAddr, ParseMacAddrError

_FLAG_BITS = {
    "up": IFF_UP,
    "broadcast": IFF_BROADCAST,
    "loopback": IFF_LOOPBACK,
    "pointopoint": IFF_POINTOPOINT,
    "multicast": IFF_MULTICAST,
    "running": IFF_RUNNING,
    "lower_up": IFF_LOWER_UP,
    "dormant": IFF_DORMANT,
}


def merge_interface(old: NetworkInterface, new: NetworkInterface) -> None:
    """Fold ``new`` into ``old``: take its MAC if it has one, add its IPs and flags."""
    if new.mac is not None:
        old.mac = new.mac
    old.ips.extend(new.ips)
    old.flags |= new.flags


def netmask_to_prefix(
    netmask: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
) -> int:
    """Return the prefix length of a netmask; raise ValueError if it is not contiguous."""
    mask = ipaddress.ip_address(netmask)
    width = mask.max_prefixlen
    host_bits = ~int(mask) & ((1 << width) - 1)
    if host_bits & (host_bits + 1):
        raise ValueError(f"invalid netmask: {mask}")
    return width - host_bits.bit_length()


def _parse_mac(text: str) -> Optional[MacAddr]:
    try:
        return MacAddr.parse(text.replace("-", ":"))
    except ParseMacAddrError:
        return None


def _network(address: str, netmask: Optional[str]):
    host = address.split("%", 1)[0]
    try:
        prefix = netmask_to_prefix(netmask) if netmask else 0
    except ValueError:
        prefix = 0
    try:
        return ipaddress.ip_interface(f"{host}/{prefix}")
    except ValueError:
        return None


def _flags(stats) -> int:
    if stats is None:
        return 0
    names = getattr(stats, "flags", "") or ""
    flags = 0
    for name in names.split(","):
        flags |= _FLAG_BITS.get(name.strip(), 0)
    if stats.isup:
        flags |= IFF_UP
    return flags


def _entries() -> Iterator[NetworkInterface]:
    stats = psutil.net_if_stats()
    for name, addrs in psutil.net_if_addrs().items():
        flags = _flags(stats.get(name))
        for addr in addrs:
            mac = None
            ips = []
            if addr.family == psutil.AF_LINK:
                mac = _parse_mac(addr.address)
            elif addr.family in (socket.AF_INET, socket.AF_INET6):
                network = _network(addr.address, addr.netmask)
                if network is not None:
                    ips.append(network)
            yield NetworkInterface(name=name, mac=mac, ips=ips, flags=flags)


def _index_of(name: str) -> int:
    try:
        return socket.if_nametoindex(name)
    except OSError:
        return 0


def interfaces() -> list[NetworkInterface]:
    """Return the machine's network interfaces, one per name, in listing order."""
    merged: dict[str, NetworkInterface] = {}
    for entry in _entries():
        existing = merged.get(entry.name)
        if existing is None:
            merged[entry.name] = entry
        else:
            merge_interface(existing, entry)
    for iface in merged.values():
        iface.index = _index_of(iface.name)
    return list(merged.values())