"""Opening data-link channels and listing interfaces on the current platform."""

from __future__ import annotations

import errno
import sys
from typing import Optional

from linkcap import unix_interfaces
from linkcap.interface import Channel, Config, NetworkInterface

_LINUX_PLATFORMS = ("linux", "android")
_BPF_PLATFORMS = ("freebsd", "openbsd", "netbsd", "sunos", "darwin", "ios")


def channel(
    network_interface: NetworkInterface, configuration: Optional[Config] = None
) -> Channel:
    """Open a channel for sending and receiving frames on ``network_interface``.

    The configuration is a hint: the backend for this platform takes the
    options that apply to it and ignores the rest. Raises OSError when the
    platform has no backend or the channel cannot be opened.
    """
    configuration = configuration if configuration is not None else Config()
    platform = sys.platform
    if platform.startswith(_LINUX_PLATFORMS):
        from linkcap import linux

        return linux.channel(
            network_interface, linux.Config.from_generic(configuration)
        )
    if platform.startswith(_BPF_PLATFORMS):
        from linkcap import bpf

        return bpf.channel(network_interface, bpf.Config.from_generic(configuration))
    raise OSError(
        errno.EAFNOSUPPORT, f"no data-link backend for platform {platform!r}"
    )


def interfaces() -> list[NetworkInterface]:
    """Return the network interfaces of the current machine.

    To pick a default interface, choose the first one that is up, is not a
    loopback and has an IP address.
    """
    return unix_interfaces.interfaces()