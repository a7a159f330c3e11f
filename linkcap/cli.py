"""Command that prints every network interface of the current machine."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import Optional

from linkcap import datalink


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print all interfaces to standard output and return the exit status."""
    parser = argparse.ArgumentParser(
        prog="list-interfaces",
        description="Print all network interfaces of this machine.",
    )
    parser.parse_args(argv)
    for interface in datalink.interfaces():
        print(interface)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())