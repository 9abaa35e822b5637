from __future__ import annotations

import ipaddress
import socket

import psutil


def local_ipv4_addresses() -> list[str]:
    try:
        interfaces = psutil.net_if_addrs()
    except OSError:
        return []

    found: list[str] = []
    for addrs in interfaces.values():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback or addr.address in found:
                continue
            found.append(addr.address)
    return found


def access_urls(port: int) -> list[str]:
    return [f'http://localhost:{port}'] + [f'http://{ip}:{port}' for ip in local_ipv4_addresses()]
