"""Data link layer packet channels, network interface listing and MAC addresses."""

__version__ = "0.1.0"
__all__ = ["bpf", "cli", "datalink", "interface", "linux", "macaddr", "unix_interfaces"]