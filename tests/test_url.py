"""Tests for URL parsing and property resolution."""

from __future__ import annotations

import pytest

from pgaws import url as url_module
from pgaws.errors import InvalidOverrideError, MalformedURLError, ProtocolRejectedError
from pgaws.models import HostSpec
from pgaws.url import host_specs, parse_url, resolve


@pytest.fixture(autouse=True)
def _reset_strict_mode():
    url_module.set_accept_aws_protocol_only(False)
    yield
    url_module.set_accept_aws_protocol_only(False)


def test_host_list_keeps_order_and_fills_default_ports() -> None:
    props = parse_url("postgresql://a:5000,b,c:7000/sales")

    assert props is not None
    assert props["PGHOST"] == "a,b,c"
    assert props["PGPORT"] == "5000,5432,7000"
    assert props["PGDBNAME"] == "sales"
    assert host_specs(props) == (
        HostSpec("a", 5000),
        HostSpec("b", 5432),
        HostSpec("c", 7000),
    )


def test_aws_prefix_is_stripped_before_plain_prefix() -> None:
    props = parse_url("postgresql:aws://cluster.example.com:6543/app")

    assert props is not None
    assert props["PGHOST"] == "cluster.example.com"
    assert props["PGPORT"] == "6543"
    assert props["PGDBNAME"] == "app"


@pytest.mark.parametrize(
    "url",
    [
        "jdbc:mysql://localhost/db",
        "postgres://localhost/db",
        "",
        "mysql:postgresql://localhost/db",
    ],
)
def test_foreign_urls_are_not_applicable(url: str) -> None:
    assert parse_url(url) is None
    assert resolve(url, {"user": "x"}) is None


def test_none_url_is_an_error() -> None:
    with pytest.raises(MalformedURLError, match="url is null"):
        parse_url(None)


def test_missing_database_separator_is_malformed() -> None:
    with pytest.raises(MalformedURLError, match="must contain a /"):
        parse_url("postgresql://localhost:5432")


@pytest.mark.parametrize(
    "url, fragment",
    [
        ("postgresql://host:notanumber/db", "invalid port number: notanumber"),
        ("postgresql://host:0/db", "port: 0 not valid"),
        ("postgresql://host:65536/db", "port: 65536 not valid"),
        ("postgresql://good:5432,bad:/db", "invalid port number: "),
    ],
)
def test_bad_ports_are_malformed(url: str, fragment: str) -> None:
    with pytest.raises(MalformedURLError) as excinfo:
        parse_url(url)

    assert fragment in str(excinfo.value)
    assert excinfo.value.url == url


def test_ipv6_hosts_keep_their_colons() -> None:
    props = parse_url("postgresql://[::1]:5433,[fe80::1]/db")

    assert props is not None
    assert props["PGHOST"] == "[::1],[fe80::1]"
    assert props["PGPORT"] == "5433,5432"


def test_database_and_arguments_are_percent_decoded() -> None:
    props = parse_url("postgresql://localhost/my%20db?ApplicationName=report%2Fjob&password=p%40ss&ssl")

    assert props is not None
    assert props["PGDBNAME"] == "my db"
    assert props["ApplicationName"] == "report/job"
    assert props["password"] == "p@ss"
    assert props["ssl"] == ""


def test_empty_argument_tokens_are_skipped() -> None:
    props = parse_url("postgresql://localhost/db?&&user=alice&")

    assert props is not None
    assert props["user"] == "alice"
    assert "" not in props


def test_argument_value_keeps_everything_after_first_equals() -> None:
    props = parse_url("postgresql://localhost/db?options=-c%20search_path=app")

    assert props is not None
    assert props["options"] == "-c search_path=app"


def test_short_form_uses_localhost_and_default_port() -> None:
    props = parse_url("postgresql:inventory")

    assert props == {"PGHOST": "localhost", "PGPORT": "5432", "PGDBNAME": "inventory"}


def test_short_form_keeps_host_and_port_from_defaults() -> None:
    props = parse_url("postgresql:inventory", {"PGHOST": "db.internal", "PGPORT": "6000"})

    assert props is not None
    assert props["PGHOST"] == "db.internal"
    assert props["PGPORT"] == "6000"
    assert props["PGDBNAME"] == "inventory"


def test_parse_does_not_mutate_defaults() -> None:
    defaults = {"user": "app"}

    parse_url("postgresql://localhost/db?user=other", defaults)

    assert defaults == {"user": "app"}


def test_precedence_is_defaults_then_overrides_then_query() -> None:
    props = resolve(
        "postgresql://localhost/db?timeout=20",
        overrides={"timeout": "10", "user": "override"},
        defaults={"timeout": "5", "user": "default", "ssl": "true"},
    )

    assert props is not None
    assert props["timeout"] == "20"
    assert props["user"] == "override"
    assert props["ssl"] == "true"


def test_absent_keys_stay_absent() -> None:
    props = resolve("postgresql://localhost/db")

    assert props is not None
    assert "user" not in props
    assert "password" not in props


def test_non_string_override_is_rejected() -> None:
    with pytest.raises(InvalidOverrideError) as excinfo:
        resolve("postgresql://localhost/db", {"loginTimeout": 5})

    assert excinfo.value.key == "loginTimeout"
    assert "non-string value" in str(excinfo.value)


def test_resolve_is_idempotent() -> None:
    args = ("postgresql://a:5000,b/db?user=x", {"password": "secret"}, {"ssl": "false"})

    assert resolve(*args) == resolve(*args)


def test_strict_mode_rejects_plain_urls() -> None:
    url_module.set_accept_aws_protocol_only(True)

    with pytest.raises(ProtocolRejectedError):
        resolve("postgresql://localhost/db")
    assert resolve("postgresql:aws://cluster/db") is not None


def test_connection_property_overrides_strict_mode() -> None:
    url_module.set_accept_aws_protocol_only(True)

    props = resolve("postgresql://localhost/db", {"acceptAwsProtocolOnly": "false"})

    assert props is not None
    assert props["acceptAwsProtocolOnly"] == "false"


def test_strict_mode_can_be_enabled_per_connection() -> None:
    with pytest.raises(ProtocolRejectedError):
        parse_url("postgresql://localhost/db?acceptAwsProtocolOnly=TRUE")


def test_explicit_strict_argument_beats_process_flag() -> None:
    url_module.set_accept_aws_protocol_only(True)

    assert parse_url("postgresql://localhost/db", accept_aws_protocol_only=False) is not None


def test_host_specs_carry_local_socket_address() -> None:
    props = parse_url("postgresql://a,b:6000/db?localSocketAddress=10.0.0.5")

    assert props is not None
    specs = host_specs(props)
    assert [spec.local_socket_address for spec in specs] == ["10.0.0.5", "10.0.0.5"]
    assert str(specs[1]) == "b:6000"


def test_host_specs_strip_ipv6_brackets() -> None:
    props = parse_url("postgresql://[::1]:5433,[fe80::1],db/app")

    assert props is not None
    specs = host_specs(props)
    assert specs == (HostSpec("::1", 5433), HostSpec("fe80::1", 5432), HostSpec("db", 5432))
    assert str(specs[0]) == "[::1]:5433"
