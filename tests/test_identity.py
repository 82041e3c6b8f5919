import pytest

from pve_rename.identity import (
    NodeIdentity,
    resolve_new_identity,
    short_name,
    validate_hostname,
)


@pytest.mark.parametrize("fqdn, expected", [
    ("pve1.example.com", "pve1"),
    ("node-a", "node-a"),
    ("a.b", "a"),
])
def test_short_name(fqdn, expected):
    assert short_name(fqdn) == expected
    assert NodeIdentity.from_fqdn(fqdn).short_name == expected


@pytest.mark.parametrize("value", [
    "pve1.example.com",
    "node-a",
    "PVE-01.Lab.example.org",
    "a" * 63 + ".com",
])
def test_validate_hostname_accepts(value):
    ok, _ = validate_hostname(value)
    assert ok


@pytest.mark.parametrize("value", [
    "-bad.com",
    "bad-.com",
    "pve_1.com",
    "",
    "pve..com",
    "pve.com.",
    "a" * 64 + ".com",
    ".".join(["abcdefghi"] * 26),
    "pve1.example.com\n",
    "node-a\n",
    None,
])
def test_validate_hostname_rejects(value):
    ok, _ = validate_hostname(value)
    assert not ok


def test_resolve_new_identity():
    ok, new = resolve_new_identity("  pve2.new.local\n", "pve1.old.local")
    assert ok
    assert new == NodeIdentity("pve2.new.local", "pve2")


def test_resolve_rejects_current_hostname():
    ok, message = resolve_new_identity("PVE1.old.local", "pve1.old.local")
    assert not ok
    assert "same as the current" in message


def test_resolve_rejects_malformed():
    ok, message = resolve_new_identity("pve_2", "pve1.old.local")
    assert not ok
    assert "invalid label" in message
