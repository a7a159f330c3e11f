import dataclasses
import ipaddress
import itertools

import pytest

from linkcap.interface import (
    IFF_BROADCAST,
    IFF_DORMANT,
    IFF_LOOPBACK,
    IFF_LOWER_UP,
    IFF_MULTICAST,
    IFF_POINTOPOINT,
    IFF_RUNNING,
    IFF_UP,
    Channel,
    Config,
    DataLinkReceiver,
    DataLinkSender,
    FanoutOption,
    FanoutType,
    Layer2,
    Layer3,
    NetworkInterface,
)
from linkcap.macaddr import MacAddr


class _ListReceiver(DataLinkReceiver):
    def __init__(self, frames):
        self._frames = list(frames)

    def next(self):
        if not self._frames:
            raise TimeoutError("Timed out")
        return self._frames.pop(0)

    def next_with_timeout(self, timeout):
        return self.next()


class _ListSender(DataLinkSender):
    def __init__(self):
        self.sent = []

    def build_and_send(self, num_packets, packet_size, func):
        for _ in range(num_packets):
            buf = bytearray(packet_size)
            func(buf)
            self.sent.append(bytes(buf))
        return True

    def send_to(self, packet, dst=None):
        self.sent.append(bytes(packet))
        return True


def test_config_defaults():
    config = Config()
    assert config.write_buffer_size == 4096
    assert config.read_buffer_size == 4096
    assert config.read_timeout is None
    assert config.write_timeout is None
    assert config.channel_type == Layer2()
    assert config.bpf_fd_attempts == 1000
    assert config.linux_fanout is None
    assert config.promiscuous is True


def test_config_replace_keeps_other_fields():
    fanout = FanoutOption(group_id=123, fanout_type=FanoutType.LB, defrag=True, rollover=False)
    config = dataclasses.replace(Config(), linux_fanout=fanout)
    assert config.linux_fanout == fanout
    assert config.read_buffer_size == Config().read_buffer_size


def test_layer3_carries_ethertype():
    layer = Layer3(0x0800)
    assert layer.ethertype == 0x0800
    assert layer == Layer3(0x0800)
    assert layer != Layer2()


@pytest.mark.parametrize(
    "flag, predicate",
    [
        (IFF_UP, "is_up"),
        (IFF_BROADCAST, "is_broadcast"),
        (IFF_LOOPBACK, "is_loopback"),
        (IFF_POINTOPOINT, "is_point_to_point"),
        (IFF_MULTICAST, "is_multicast"),
    ],
)
def test_flag_predicates(flag, predicate):
    assert getattr(NetworkInterface("eth0", flags=flag), predicate)() is True
    assert getattr(NetworkInterface("eth0", flags=0), predicate)() is False


def test_platform_dependent_flags():
    iface = NetworkInterface("eth0", flags=IFF_RUNNING | IFF_DORMANT | IFF_LOWER_UP)
    assert iface.is_running() == bool(IFF_RUNNING)
    assert iface.is_dormant() == bool(IFF_DORMANT)
    assert iface.is_lower_up() == bool(IFF_LOWER_UP)


def test_display_without_flags():
    iface = NetworkInterface("eth0", index=3)
    assert str(iface) == "eth0: flags=0\n      index: 3\n      ether: N/A"


def test_display_with_flags_and_addresses():
    flags = IFF_UP | IFF_LOOPBACK
    iface = NetworkInterface(
        "lo",
        index=1,
        mac=MacAddr.zero(),
        ips=[ipaddress.ip_interface("127.0.0.1/8"), ipaddress.ip_interface("::1/128")],
        flags=flags,
    )
    lines = str(iface).split("\n")
    assert lines[0] == f"lo: flags={flags:X}<UP,LOOPBACK>"
    assert lines[1] == "      index: 1"
    assert lines[2] == "      ether: 00:00:00:00:00:00"
    assert lines[3] == "       inet: 127.0.0.1/8"
    assert lines[4] == "      inet6: ::1/128"


def test_abstract_endpoints_cannot_be_instantiated():
    with pytest.raises(TypeError):
        DataLinkSender()
    with pytest.raises(TypeError):
        DataLinkReceiver()


def test_receiver_iteration_yields_frames_in_order():
    receiver = _ListReceiver([b"\x01", b"\x02", b"\x03"])
    frames = DataLinkReceiver.__iter__(receiver)
    assert list(itertools.islice(frames, 3)) == [b"\x01", b"\x02", b"\x03"]
    with pytest.raises(TimeoutError):
        receiver.next()


def test_channel_unpacks_into_sender_and_receiver():
    sender = _ListSender()
    receiver = _ListReceiver([])
    channel = Channel(sender, receiver)
    tx, rx = channel
    assert tx is sender
    assert rx is receiver
    assert tx.send_to(b"abc") is True
    assert sender.sent == [b"abc"]
    assert channel.sender is sender


def test_interface_copy_is_independent():
    iface = NetworkInterface("eth1", mac=MacAddr(1, 2, 3, 4, 5, 6))
    clone = dataclasses.replace(iface, ips=list(iface.ips))
    clone.ips.append(ipaddress.ip_interface("192.0.2.1/24"))
    assert iface.ips == []
    assert clone.mac == iface.mac