"""Connection URL parsing and property resolution.

A URL takes the form::

    postgresql://host[:port][,host[:port]...]/database[?name=value[&name=value...]]
    postgresql:aws://cluster-endpoint[:port]/database[?...]

``parse_url`` and ``resolve`` answer three ways: a property mapping when the
URL is ours, ``None`` when it belongs to some other driver, and an exception
when it is ours but broken.
"""

from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import unquote_plus

from .errors import InvalidOverrideError, MalformedURLError, ProtocolRejectedError
from .models import AWS_PROTOCOL, DEFAULT_PORT, POSTGRES_PROTOCOL, HostSpec, Properties, ProtocolMode
from .properties import ACCEPT_AWS_PROTOCOL_ONLY, LOCAL_SOCKET_ADDRESS, PG_DBNAME, PG_HOST, PG_PORT, USER

LOG = logging.getLogger(__name__)

# Process wide default for strict mode; a per-connection acceptAwsProtocolOnly wins over it.
_accept_aws_protocol_only = False


def set_accept_aws_protocol_only(enabled: bool) -> None:
    """Restrict the driver to ``postgresql:aws:`` URLs for the whole process.

    Turn this on when another PostgreSQL driver that understands plain
    ``postgresql:`` URLs is registered alongside this one.
    """

    global _accept_aws_protocol_only
    _accept_aws_protocol_only = bool(enabled)


def accept_aws_protocol_only() -> bool:
    """Current process wide strict mode flag (initially ``False``)."""

    return _accept_aws_protocol_only


def is_aws_protocol(url: str) -> bool:
    return ProtocolMode.of(url) is ProtocolMode.CLUSTER_AWARE


def is_accept_aws_protocol_only(props: Mapping[str, str], default: bool | None = None) -> bool:
    """Evaluate strict mode: the connection property wins over the process flag."""

    if ACCEPT_AWS_PROTOCOL_ONLY.is_present(props):
        return ACCEPT_AWS_PROTOCOL_ONLY.get_bool(props)
    if default is None:
        return accept_aws_protocol_only()
    return default


def parse_url(
    url: str | None,
    defaults: Mapping[str, str] | None = None,
    *,
    accept_aws_protocol_only: bool | None = None,
) -> dict[str, str] | None:
    """Split ``url`` into properties layered on top of ``defaults``.

    Returns ``None`` if the URL does not use one of our schemes. Raises
    ``MalformedURLError`` if it does but cannot be parsed, and
    ``ProtocolRejectedError`` if strict mode refuses a plain URL.
    """

    if url is None:
        raise MalformedURLError("url is null")

    # Snapshot the process flag once so a concurrent setter cannot change it mid-parse.
    strict_default = _accept_aws_protocol_only if accept_aws_protocol_only is None else accept_aws_protocol_only
    url_props: dict[str, str] = dict(defaults or {})

    server, _, args = url.partition("?")
    if not server.startswith(POSTGRES_PROTOCOL):
        LOG.debug(
            'URL must start with "%s" or "%s" but was: %s',
            POSTGRES_PROTOCOL,
            AWS_PROTOCOL,
            url,
        )
        return None

    if server.startswith(AWS_PROTOCOL):
        server = server[len(AWS_PROTOCOL):]
    else:
        server = server[len(POSTGRES_PROTOCOL):]

    if server.startswith("//"):
        server = server[2:]
        slash = server.find("/")
        if slash == -1:
            LOG.warning("URL must contain a / at the end of the host or port: %s", url)
            raise MalformedURLError(f"URL must contain a / at the end of the host or port: {url}", url)
        url_props[PG_DBNAME.name] = _decode(server[slash + 1:])
        hosts, ports = _parse_addresses(server[:slash], url)
        url_props[PG_HOST.name] = ",".join(hosts)
        url_props[PG_PORT.name] = ",".join(ports)
    else:
        defaults = defaults or {}
        if PG_PORT.name not in defaults:
            url_props[PG_PORT.name] = str(DEFAULT_PORT)
        if PG_HOST.name not in defaults:
            url_props[PG_HOST.name] = "localhost"
        if PG_DBNAME.name not in defaults:
            url_props[PG_DBNAME.name] = _decode(server)

    for token in args.split("&"):
        if not token:
            continue
        name, sep, value = token.partition("=")
        url_props[name] = _decode(value) if sep else ""

    if is_accept_aws_protocol_only(url_props, strict_default) and not is_aws_protocol(url):
        LOG.debug('acceptAwsProtocolOnly mode is enabled; URL must start with "%s" but was: %s', AWS_PROTOCOL, url)
        raise ProtocolRejectedError(
            f'acceptAwsProtocolOnly mode is enabled; URL must start with "{AWS_PROTOCOL}" but was: {url}',
            url,
        )

    return url_props


def resolve(
    url: str | None,
    overrides: Mapping[str, object] | None = None,
    defaults: Mapping[str, str] | None = None,
) -> dict[str, str] | None:
    """Merge defaults, caller overrides and URL arguments into one mapping.

    Later layers win key by key: ``defaults`` < ``overrides`` < query arguments.
    """

    if url is None:
        raise MalformedURLError("url is null")
    if not url.startswith(POSTGRES_PROTOCOL):
        return None
    merged: dict[str, str] = dict(defaults or {})
    merged.update(validate_overrides(overrides))
    return parse_url(url, merged)


def validate_overrides(overrides: Mapping[str, object] | None) -> dict[str, str]:
    """Return ``overrides`` as a plain ``str`` mapping, refusing anything else."""

    if not overrides:
        return {}
    checked: dict[str, str] = {}
    for key, value in overrides.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidOverrideError(str(key), value)
        checked[key] = value
    return checked


def host_specs(props: Properties) -> tuple[HostSpec, ...]:
    """Endpoints in URL order, paired up from ``PGHOST`` and ``PGPORT``.

    Bracketed IPv6 literals lose their brackets, which only delimit the port.
    """

    hosts = (props.get(PG_HOST.name) or "localhost").split(",")
    ports = (props.get(PG_PORT.name) or str(DEFAULT_PORT)).split(",")
    if len(ports) != len(hosts):
        raise MalformedURLError(
            f"Host list ({len(hosts)} entries) does not match port list ({len(ports)} entries)"
        )
    local_address = LOCAL_SOCKET_ADDRESS.get(props)
    specs: list[HostSpec] = []
    for host, port in zip(hosts, ports):
        try:
            number = int(port)
        except ValueError as exc:
            raise MalformedURLError(f"URL invalid port number: {port}") from exc
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        specs.append(HostSpec(host=host, port=number, local_socket_address=local_address))
    return tuple(specs)


def user(props: Properties) -> str:
    return props.get(USER.name, "")


def database(props: Properties) -> str:
    return props.get(PG_DBNAME.name, "")


def _parse_addresses(host_list: str, url: str) -> tuple[list[str], list[str]]:
    hosts: list[str] = []
    ports: list[str] = []
    for address in host_list.split(","):
        port_idx = address.rfind(":")
        if port_idx != -1 and address.rfind("]") < port_idx:
            port = address[port_idx + 1:]
            if not (port.isascii() and port.isdigit()):
                LOG.warning("URL invalid port number: %s", port)
                raise MalformedURLError(f"URL invalid port number: {port}", url)
            if not 1 <= int(port) <= 65535:
                LOG.warning("URL port: %s not valid (1:65535)", port)
                raise MalformedURLError(f"URL port: {port} not valid (1:65535)", url)
            hosts.append(address[:port_idx])
            ports.append(port)
        else:
            hosts.append(address)
            ports.append(str(DEFAULT_PORT))
    return hosts, ports


def _decode(value: str) -> str:
    # Form decoding: "+" is a space, matching how driver URLs are usually encoded.
    return unquote_plus(value)


__all__ = [
    "accept_aws_protocol_only",
    "database",
    "host_specs",
    "is_accept_aws_protocol_only",
    "is_aws_protocol",
    "parse_url",
    "resolve",
    "set_accept_aws_protocol_only",
    "user",
    "validate_overrides",
]
