# linkcap

Sending and receiving frames at the data link layer, listing the machine's
network interfaces, and parsing and formatting MAC addresses.

## Installation

```
pip install linkcap
```

## Listing interfaces

```
linkcap-interfaces
```

prints every interface with its flags, index, MAC address and IP networks,
for example on Linux:

```
eth0: flags=1043<UP,BROADCAST,MULTICAST,RUNNING>
      index: 2
      ether: 02:00:00:00:00:01
       inet: 192.0.2.10/24
```

Interfaces come from `psutil`; entries with the same name are merged into one
`NetworkInterface`. The same list is available from Python:

```python
from linkcap.datalink import interfaces

default = next(
    (i for i in interfaces() if i.is_up() and not i.is_loopback() and i.ips),
    None,
)
```

`NetworkInterface` has `name`, `description`, `index`, `mac`, `ips` (a list
of `ipaddress` interface objects) and `flags`, and the checks `is_up()`,
`is_broadcast()`, `is_loopback()`, `is_point_to_point()`, `is_multicast()`,
`is_running()`, `is_dormant()` and `is_lower_up()`.

## MAC addresses

```python
from linkcap.macaddr import MacAddr, ParseMacAddrError

mac = MacAddr.parse("02:00:00:00:00:01")
str(mac)             # "02:00:00:00:00:01"
mac.is_local()       # True
mac.octets()         # (2, 0, 0, 0, 0, 1)
bytes(mac)           # b"\x02\x00\x00\x00\x00\x01"
MacAddr.from_octets(b"\xff" * 6).is_broadcast()  # True

try:
    MacAddr.parse("12:34:56:78")
except ParseMacAddrError as err:
    print(err)       # Too few components in a MAC address string
    print(err.kind)  # ParseMacAddrErr.TOO_FEW_COMPONENTS
```

## Channels

`linkcap.datalink.channel(interface, Config())` opens a channel on an
interface and returns a `Channel` holding a `sender` and a `receiver`. On
Linux it uses an `AF_PACKET` socket (`linkcap.linux`), on BSD and macOS a
`/dev/bpf` device (`linkcap.bpf`); both usually need elevated privileges. On
any other platform it raises `OSError`.

```python
from linkcap.datalink import channel, interfaces
from linkcap.interface import Config

iface = next(i for i in interfaces() if i.name == "eth0")
chan = channel(iface, Config(read_timeout=2.0))
frame = chan.receiver.next()        # raises TimeoutError after 2 seconds
chan.sender.send_to(frame, None)

for frame in chan.receiver:         # iterate over incoming frames
    ...
```

`sender.build_and_send(num_packets, packet_size, func)` calls `func` on a
fresh `bytearray` for each packet and sends it; it returns `False` when the
packets do not fit the write buffer.

`Config` accepts `write_buffer_size`, `read_buffer_size`, `read_timeout` and
`write_timeout` (seconds), `channel_type` (`Layer2()` or
`Layer3(ethertype)`), `bpf_fd_attempts`, `linux_fanout` (a `FanoutOption`
with a `FanoutType`) and `promiscuous`. Each backend takes the options that
apply to it.

Helpers usable without a device: `linkcap.linux.fanout_argument(option)`
computes the `PACKET_FANOUT` socket option value, and
`linkcap.bpf.split_bpf_buffer(data, loopback)` splits a buffer read from a
packet filter device into frames.

## What it does not do

- There is no in-memory or simulated network backend; channels always talk
  to a real interface.
- There is no Windows backend: `channel()` raises `OSError` there.
- Frames are handed over as raw bytes; no protocol headers (IP, ARP, TCP …)
  are decoded.