#!/usr/bin/env python3
"""Node identities and hostname validation. No host access happens here."""
from __future__ import annotations

from dataclasses import dataclass
import re

LABEL_REGEX = re.compile(r'(?!-)[A-Za-z0-9-]{1,63}(?<!-)')
MAX_HOSTNAME_LENGTH = 253


def short_name(fqdn: str) -> str:
    return fqdn.split('.', 1)[0]


@dataclass(frozen=True)
class NodeIdentity:
    fqdn: str
    short_name: str

    @classmethod
    def from_fqdn(cls, fqdn: str) -> NodeIdentity:
        return cls(fqdn=fqdn, short_name=short_name(fqdn))


def validate_hostname(value) -> tuple[bool, str]:
    if not isinstance(value, str):
        return False, f"'{value}' is NOT a string value."

    if not value:
        return False, "Hostname must not be empty."

    if len(value) > MAX_HOSTNAME_LENGTH:
        return False, (
            f"'{value}' exceeds the maximum length of "
            f"{MAX_HOSTNAME_LENGTH} characters."
        )

    for label in value.split('.'):
        if len(label) > 63:
            return False, (
                f"'{value}' has a label longer than 63 characters."
            )
        if not LABEL_REGEX.fullmatch(label):
            return False, f"'{value}' contains an invalid label '{label}'."

    return True, f"'{value}' is a valid hostname."


def resolve_new_identity(
        value,
        current_fqdn: str
) -> tuple[bool, NodeIdentity | str]:
    """
    Turn user input into the new NodeIdentity.

    Returns (True, NodeIdentity) or (False, reason). Input equal to the
    current hostname is rejected.
    """
    if isinstance(value, str):
        value = value.strip()
    ok, message = validate_hostname(value)
    if not ok:
        return False, message
    if value.lower() == current_fqdn.strip().lower():
        return False, (
            f"New hostname '{value}' is the same as the current hostname."
        )
    return True, NodeIdentity.from_fqdn(value)
