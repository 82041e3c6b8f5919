#!/usr/bin/env python3
"""Pure text rewrites applied to host and cluster config files."""
from __future__ import annotations

import re

# Characters that can be part of a hostname token
TOKEN_CHARS = r"A-Za-z0-9.\-"


def token_pattern(name: str) -> re.Pattern:
    return re.compile(
        rf"(?<![{TOKEN_CHARS}]){re.escape(name)}(?![{TOKEN_CHARS}])"
    )


def contains_token(text: str, name: str) -> bool:
    return bool(token_pattern(name).search(text))


def replace_token(text: str, old: str, new: str) -> str:
    """Replace whole hostname tokens only. pve1 never matches pve1-a."""
    if old == new:
        return text
    return token_pattern(old).sub(lambda _: new, text)


def replace_hostnames(text: str, old, new) -> str:
    """Swap old FQDN and short name for the new ones.

    The FQDN pass runs first so the short name pass never sees a
    half-rewritten FQDN.
    """
    text = replace_token(text, old.fqdn, new.fqdn)
    return replace_token(text, old.short_name, new.short_name)


NODES_LINE = re.compile(r"^(\s*nodes\s+)(\S+)(.*)$", re.MULTILINE)


def replace_storage_nodes(text: str, old_short: str, new_short: str) -> str:
    """Rename a node inside storage.cfg 'nodes a,b,c' directives."""
    def swap(match):
        nodes = [
            new_short if node == old_short else node
            for node in match.group(2).split(",")
        ]
        return f"{match.group(1)}{','.join(nodes)}{match.group(3)}"

    return NODES_LINE.sub(swap, text)


CONFIG_VERSION = re.compile(
    r"^(\s*config_version\s*:\s*)(\d+)([ \t]*)$", re.MULTILINE
)


def bump_config_version(text: str) -> tuple[str, int | None, int | None]:
    """Increment the first config_version by one.

    Returns (text, old_version, new_version); versions are None when the
    file has no config_version line.
    """
    match = CONFIG_VERSION.search(text)
    if not match:
        return text, None, None
    old_version = int(match.group(2))
    new_version = old_version + 1
    text = (
        text[:match.start(2)] + str(new_version) + text[match.end(2):]
    )
    return text, old_version, new_version


def replace_corosync_name(text: str, old, new) -> tuple[str, int]:
    """Rename 'name: <node>' entries, in short or FQDN form.

    Only lines whose key is exactly 'name' are touched, cluster_name stays.
    Returns (text, replacements).
    """
    total = 0
    for old_name, new_name in (
            (old.fqdn, new.fqdn),
            (old.short_name, new.short_name)):
        if old_name == new_name:
            continue
        pattern = re.compile(
            rf"^(\s*name\s*:\s*){re.escape(old_name)}([ \t]*)$",
            re.MULTILINE
        )
        text, count = pattern.subn(
            lambda m: f"{m.group(1)}{new_name}{m.group(2)}", text
        )
        total += count
    return text, total


def update_corosync(text: str, old, new) -> tuple[str, int, int | None,
                                                  int | None]:
    """Rename the node and bump config_version.

    Returns (text, renamed_entries, old_version, new_version). The version is
    only bumped when at least one entry was renamed.
    """
    text, renamed = replace_corosync_name(text, old, new)
    if not renamed:
        return text, 0, None, None
    text, old_version, new_version = bump_config_version(text)
    return text, renamed, old_version, new_version
