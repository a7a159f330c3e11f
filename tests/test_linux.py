import socket
import struct

import pytest

from linkcap import linux, unix_interfaces
from linkcap.interface import (
    Config as GenericConfig,
    FanoutOption,
    FanoutType,
    Layer2,
    Layer3,
    NetworkInterface,
)
from linkcap.macaddr import MacAddr

FAKE_AF_PACKET = 17


class FakeRawSocket:
    def __init__(self, peer, family, type_, proto, fail_bind=False):
        self.peer = peer
        self.created = (family, type_, proto)
        self.bound = None
        self.options = []
        self.blocking = None
        self.closed = False
        self.fail_bind = fail_bind

    def fileno(self):
        return self.peer.fileno()

    def bind(self, address):
        if self.fail_bind:
            raise OSError("bind failed")
        self.bound = address

    def setsockopt(self, level, name, value):
        self.options.append((level, name, value))

    def setblocking(self, flag):
        self.blocking = flag

    def send(self, data):
        return self.peer.send(data)

    def recv(self, size):
        return self.peer.recv(size)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_net(monkeypatch):
    ours, theirs = socket.socketpair()
    created = []
    state = {"fail_bind": False}

    def factory(family, type_, proto):
        sock = FakeRawSocket(ours, family, type_, proto, state["fail_bind"])
        created.append(sock)
        return sock

    monkeypatch.setattr(socket, "AF_PACKET", FAKE_AF_PACKET, raising=False)
    monkeypatch.setattr(socket, "socket", factory)
    yield created, theirs, state
    ours.close()
    theirs.close()


def _iface():
    return NetworkInterface(name="eth0", index=2, mac=MacAddr(2, 0, 0, 0, 0, 1))


def _read_exactly(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        assert chunk
        data += chunk
    return data


def test_config_defaults():
    config = linux.Config()
    assert config.write_buffer_size == 4096
    assert config.read_buffer_size == 4096
    assert config.read_timeout is None
    assert config.channel_type == Layer2()
    assert config.fanout is None
    assert config.promiscuous is True


def test_config_from_generic_copies_fields():
    fanout = FanoutOption(7, FanoutType.CPU, True, False)
    generic = GenericConfig(
        write_buffer_size=100,
        read_buffer_size=200,
        read_timeout=1.5,
        write_timeout=2.5,
        channel_type=Layer3(0x0800),
        linux_fanout=fanout,
        promiscuous=False,
    )
    config = linux.Config.from_generic(generic)
    assert config.write_buffer_size == 100
    assert config.read_buffer_size == 200
    assert config.read_timeout == 1.5
    assert config.write_timeout == 2.5
    assert config.channel_type == Layer3(0x0800)
    assert config.fanout == fanout
    assert config.promiscuous is False


def test_fanout_argument_plain_hash():
    assert linux.fanout_argument(FanoutOption(5, FanoutType.HASH, False, False)) == 5


def test_fanout_argument_bits():
    arg = linux.fanout_argument(FanoutOption(123, FanoutType.LB, True, False))
    assert arg & 0xFFFF == 123
    assert arg >> 16 == linux.PACKET_FANOUT_LB | linux.PACKET_FANOUT_FLAG_DEFRAG


@pytest.mark.parametrize(
    "fanout_type,code",
    [
        (FanoutType.HASH, linux.PACKET_FANOUT_HASH),
        (FanoutType.CPU, linux.PACKET_FANOUT_CPU),
        (FanoutType.ROLLOVER, linux.PACKET_FANOUT_ROLLOVER),
        (FanoutType.RND, linux.PACKET_FANOUT_RND),
        (FanoutType.QM, linux.PACKET_FANOUT_QM),
        (FanoutType.CBPF, linux.PACKET_FANOUT_CBPF),
        (FanoutType.EBPF, linux.PACKET_FANOUT_EBPF),
    ],
)
def test_fanout_argument_type_codes(fanout_type, code):
    arg = linux.fanout_argument(FanoutOption(9, fanout_type, False, True))
    assert arg >> 16 == code | linux.PACKET_FANOUT_FLAG_ROLLOVER
    assert arg & 0xFFFF == 9


def test_fanout_argument_rejects_large_group():
    with pytest.raises(ValueError):
        linux.fanout_argument(FanoutOption(0x10000, FanoutType.HASH, False, False))


def test_channel_layer2_setup(fake_net):
    created, _, _ = fake_net
    linux.channel(_iface(), linux.Config())
    (sock,) = created
    assert sock.created == (FAKE_AF_PACKET, socket.SOCK_RAW, socket.htons(linux.ETH_P_ALL))
    assert sock.bound == ("eth0", linux.ETH_P_ALL)
    assert sock.blocking is False
    ((level, name, value),) = sock.options
    assert (level, name) == (linux.SOL_PACKET, linux.PACKET_ADD_MEMBERSHIP)
    ifindex, mr_type, _, _ = struct.unpack("iHH8s", value)
    assert ifindex == 2
    assert mr_type == linux.PACKET_MR_PROMISC


def test_channel_without_promiscuous_sets_no_options(fake_net):
    created, peer, _ = fake_net
    tx, _ = linux.channel(_iface(), linux.Config(promiscuous=False))
    assert created[0].options == []
    assert tx.send_to(b"np", None) is True
    assert _read_exactly(peer, 2) == b"np"


def test_channel_layer3(fake_net):
    created, peer, _ = fake_net
    _, rx = linux.channel(_iface(), linux.Config(channel_type=Layer3(0x0806)))
    assert created[0].created == (FAKE_AF_PACKET, socket.SOCK_DGRAM, socket.htons(0x0806))
    assert created[0].bound == ("eth0", 0x0806)
    peer.sendall(b"arp")
    assert rx.next() == b"arp"


def test_channel_sets_fanout(fake_net):
    created, _, _ = fake_net
    fanout = FanoutOption(123, FanoutType.LB, True, True)
    linux.channel(_iface(), linux.Config(promiscuous=False, fanout=fanout))
    ((level, name, value),) = created[0].options
    assert (level, name) == (linux.SOL_PACKET, linux.PACKET_FANOUT)
    assert struct.unpack("I", value)[0] == linux.fanout_argument(fanout)


def test_channel_bind_failure_closes_socket(fake_net):
    created, _, state = fake_net
    state["fail_bind"] = True
    with pytest.raises(OSError):
        linux.channel(_iface(), linux.Config())
    assert created[0].closed is True


def test_channel_without_af_packet(monkeypatch):
    monkeypatch.delattr(socket, "AF_PACKET", raising=False)
    with pytest.raises(OSError):
        linux.channel(_iface(), linux.Config())


def test_send_to_delivers_packet(fake_net):
    _, peer, _ = fake_net
    tx, _ = linux.channel(_iface(), linux.Config())
    assert tx.send_to(b"\x01\x02\x03\x04", None) is True
    assert _read_exactly(peer, 4) == b"\x01\x02\x03\x04"


def test_build_and_send_multiple_packets(fake_net):
    _, peer, _ = fake_net
    tx, _ = linux.channel(_iface(), linux.Config())
    counter = iter(range(3))

    def builder(packet):
        assert len(packet) == 20
        packet[0] = next(counter)

    assert tx.build_and_send(3, 20, builder) is True
    data = _read_exactly(peer, 60)
    assert [data[i * 20] for i in range(3)] == [0, 1, 2]


def test_build_and_send_too_large(fake_net):
    tx, _ = linux.channel(_iface(), linux.Config(write_buffer_size=40))

    def builder(packet):
        raise AssertionError("should not be called")

    assert tx.build_and_send(3, 20, builder) is False


def test_receiver_next(fake_net):
    _, peer, _ = fake_net
    _, rx = linux.channel(_iface(), linux.Config())
    peer.sendall(b"frame")
    assert rx.next() == b"frame"


def test_receiver_next_with_timeout_times_out(fake_net):
    _, rx = linux.channel(_iface(), linux.Config())
    with pytest.raises(TimeoutError):
        rx.next_with_timeout(0.01)


def test_receiver_read_timeout(fake_net):
    _, rx = linux.channel(_iface(), linux.Config(read_timeout=0.01))
    with pytest.raises(TimeoutError):
        rx.next()


def test_interfaces_match_listing():
    names = [iface.name for iface in linux.interfaces()]
    assert names == [iface.name for iface in unix_interfaces.interfaces()]