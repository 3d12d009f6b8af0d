from __future__ import annotations

from typing import Tuple

from abserve.config.models import DEFAULT_PORT


def parse_listen(value: str) -> Tuple[str, int]:
    """
    Split an ``[address][:port]`` string into host and port.

    An empty address means all interfaces and a missing port means 8080.
    IPv6 addresses must be bracketed when a port is given, e.g. ``[::1]:8080``.
    """
    raw = value.strip()
    host = raw
    port_text = ""

    if raw.startswith("["):
        end = raw.find("]")
        if end < 0:
            raise ValueError(f"Unterminated IPv6 address in listen address: {value}")
        host = raw[1:end]
        rest = raw[end + 1 :]
        if rest:
            if not rest.startswith(":"):
                raise ValueError(f"Invalid listen address: {value}")
            port_text = rest[1:]
    elif raw.count(":") == 1:
        host, _, port_text = raw.partition(":")
    elif raw.count(":") > 1:
        raise ValueError(f"IPv6 listen addresses must be bracketed: {value}")

    if not port_text:
        return host, DEFAULT_PORT
    if not port_text.isdigit():
        raise ValueError(f"Invalid port in listen address: {value}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"Port out of range in listen address: {value}")
    return host, port
