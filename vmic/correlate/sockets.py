"""Parsing of the kernel socket tables in /proc/net."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from vmic.errors import Malformed

SOCKET_TABLES: tuple[tuple[str, str], ...] = (
    ("tcp", "/proc/net/tcp"),
    ("tcp6", "/proc/net/tcp6"),
    ("udp", "/proc/net/udp"),
    ("udp6", "/proc/net/udp6"),
)

TCP_LISTEN = "0A"
UDP_UNCONNECTED = "07"


@dataclass(frozen=True)
class SocketEntry:
    protocol: str
    address: str
    port: int
    state: str
    uid: int
    inode: int

    @property
    def local_address(self) -> str:
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"

    @property
    def listening(self) -> bool:
        if self.protocol.startswith("tcp"):
            return self.state == TCP_LISTEN
        return self.state == UDP_UNCONNECTED


def decode_ipv4(hex_addr: str) -> str:
    # Stored as one little-endian 32-bit word
    return str(ipaddress.IPv4Address(bytes.fromhex(hex_addr)[::-1]))


def decode_ipv6(hex_addr: str) -> str:
    # Four little-endian 32-bit words
    raw = bytes.fromhex(hex_addr)
    words = b"".join(raw[i:i + 4][::-1] for i in range(0, 16, 4))
    ip = ipaddress.IPv6Address(words)
    if ip.ipv4_mapped is not None:
        return f"::ffff:{ip.ipv4_mapped}"
    return ip.compressed


def decode_endpoint(protocol: str, endpoint: str) -> tuple[str, int]:
    hex_addr, _, hex_port = endpoint.partition(":")
    if protocol.endswith("6"):
        if len(hex_addr) != 32:
            raise ValueError(f"bad IPv6 address {hex_addr!r}")
        address = decode_ipv6(hex_addr)
    else:
        if len(hex_addr) != 8:
            raise ValueError(f"bad IPv4 address {hex_addr!r}")
        address = decode_ipv4(hex_addr)
    return address, int(hex_port, 16)


def parse_socket_table(protocol: str, text: str, resource: str = "") -> list[SocketEntry]:
    """Parse one socket table. Every row is returned, listening or not."""
    entries = []
    lines = text.splitlines()
    for lineno, line in enumerate(lines[1:], start=2):
        fields = line.split()
        if not fields:
            continue
        if len(fields) < 10:
            raise Malformed(resource or protocol, f"line {lineno}: expected 10+ fields")
        try:
            address, port = decode_endpoint(protocol, fields[1])
            entries.append(SocketEntry(
                protocol=protocol,
                address=address,
                port=port,
                state=fields[3].upper(),
                uid=int(fields[7]),
                inode=int(fields[9]),
            ))
        except ValueError as e:
            raise Malformed(resource or protocol, f"line {lineno}: {e}") from e
    return entries


# ── Address scope ────────────────────────────────────────────────────────────


def _ip(address: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    ip = ipaddress.ip_address(address)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def is_wildcard(address: str) -> bool:
    return _ip(address).is_unspecified


def is_loopback(address: str) -> bool:
    return _ip(address).is_loopback


def address_scope(address: str) -> str:
    if is_wildcard(address):
        return "wildcard-bound"
    if is_loopback(address):
        return "loopback-only"
    return "address-bound"
