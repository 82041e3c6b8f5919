"""Generic host file operations over an injected SSH-like transport.

This module defines:
- SSHLike: a structural protocol specifying the transport API we rely on
- RemoteHost: a base class offering host-agnostic file and shell operations

Every operation is a shell command sent through the transport, so the same
code works on the local node (LocalConnection) and on a remote node over SSH
(SSHConnection). File contents are read with ``cat``, edited in Python and
written back through ``cat`` on stdin, never with ``sed``.

Usage
-----
from pve_rename.ssh_handler import SSHConnection
from pve_rename.remote_host import RemoteHost

ssh = SSHConnection(host, username, key_filename=keyfile)
remote = RemoteHost(ssh)
remote.connect()
ok, text = remote.read_file("/etc/hosts")
...
remote.close()
"""
from __future__ import annotations

from typing import Callable, Protocol
import shlex
import socket
import time

from pve_rename.wait import wait_for


class SSHLike(Protocol):
    """A minimal structural protocol for transports we can work with."""

    host: str

    def connect(self) -> tuple[bool, str]:
        ...

    def close(self) -> tuple[bool, str]:
        ...

    def run(self, command: str, stdin: str | None = None) -> dict:
        """Execute command on the target host, feeding stdin when given.

        Expected return dict keys:
        - stdout: str
        - stderr: str
        - exit_code: int
        """
        ...


class RemoteHost:
    """Generic host operations implemented over an SSH-like client.

    The transport is injected to keep this class implementation-agnostic
    and easily testable.
    """

    def __init__(self, ssh_conn: SSHLike):
        self.ssh = ssh_conn

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------
    def connect(self) -> tuple[bool, str]:
        """Open the connection."""
        return self.ssh.connect()

    def close(self) -> tuple[bool, str]:
        """Close the connection."""
        return self.ssh.close()

    def run(self, command: str, stdin: str | None = None) -> dict:
        """Pass-through to the injected client's run method."""
        return self.ssh.run(command, stdin=stdin)

    # ---------------------------------------------------------------------
    # Identity
    # ---------------------------------------------------------------------
    def _hostname(self, flag: str = "") -> tuple[bool, str]:
        result = self.run(f"hostname {flag}".strip())
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, result['stdout'].strip()

    def get_hostname(self) -> tuple[bool, str]:
        return self._hostname()

    def get_fqdn(self) -> tuple[bool, str]:
        return self._hostname("-f")

    def get_short_hostname(self) -> tuple[bool, str]:
        return self._hostname("-s")

    def is_root(self) -> bool:
        result = self.run("id -u")
        return result['exit_code'] == 0 and result['stdout'].strip() == "0"

    # ---------------------------------------------------------------------
    # Filesystem
    # ---------------------------------------------------------------------
    def _test(self, flag: str, path: str) -> bool:
        return self.run(f"test {flag} {shlex.quote(path)}")['exit_code'] == 0

    def path_exists(self, path: str) -> bool:
        return self._test("-e", path)

    def is_dir(self, path: str) -> bool:
        return self._test("-d", path)

    def is_file(self, path: str) -> bool:
        return self._test("-f", path)

    def read_file(self, path: str) -> tuple[bool, str]:
        result = self.run(f"cat {shlex.quote(path)}")
        if result['exit_code'] != 0:
            return False, result['stderr'].strip() or f"Cannot read {path}"
        return True, result['stdout']

    def write_file(self, path: str, content: str) -> tuple[bool, str]:
        result = self.run(f"cat > {shlex.quote(path)}", stdin=content)
        if result['exit_code'] != 0:
            return False, result['stderr'].strip() or f"Cannot write {path}"
        return True, f"Updated {path}"

    def edit_file(
            self,
            path: str,
            transform: Callable[[str], str]
    ) -> tuple[bool, bool, str]:
        """Read path, apply transform to its text and write it back.

        Returns (ok, changed, message). The file is only rewritten when the
        transform actually changed the text.
        """
        ok, text = self.read_file(path)
        if not ok:
            return False, False, text
        new_text = transform(text)
        if new_text == text:
            return True, False, f"No changes needed in {path}"
        ok, message = self.write_file(path, new_text)
        return ok, ok, message

    def make_dirs(self, path: str) -> tuple[bool, str]:
        result = self.run(f"mkdir -p {shlex.quote(path)}")
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, f"Directory ready: {path}"

    def copy_file(self, source: str, target: str) -> tuple[bool, str]:
        result = self.run(
            f"cp -p {shlex.quote(source)} {shlex.quote(target)}"
        )
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, f"Copied {source} to {target}"

    def copy_tree(self, source: str, target: str) -> tuple[bool, str]:
        """Copy the contents of directory source into directory target."""
        safe_target = shlex.quote(target)
        result = self.run(
            f"mkdir -p {safe_target} && "
            f"cp -a {shlex.quote(source.rstrip('/') + '/.')} {safe_target}/"
        )
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, f"Copied {source} to {target}"

    def move_file(self, source: str, target: str) -> tuple[bool, str]:
        if self.path_exists(target):
            return False, f"Target already exists: {target}"
        result = self.run(f"mv {shlex.quote(source)} {shlex.quote(target)}")
        if result['exit_code'] != 0:
            return False, result['stderr'].strip() or (
                f"Failed to move {source}"
            )
        return True, f"Moved {source} to {target}"

    def remove_tree(self, path: str) -> tuple[bool, str]:
        result = self.run(f"rm -rf {shlex.quote(path)}")
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, f"Removed {path}"

    def list_files(self, path: str, pattern: str = "*") -> list[str]:
        """Names of regular files directly inside path matching pattern."""
        command = (
            f"find {shlex.quote(path)} -mindepth 1 -maxdepth 1 -type f "
            f"-name {shlex.quote(pattern)}"
        )
        result = self.run(command)
        if result['exit_code'] != 0:
            return []
        return sorted(
            line.rsplit("/", 1)[-1]
            for line in result['stdout'].splitlines()
            if line.strip()
        )

    def has_files(self, path: str) -> tuple[bool, bool | str]:
        """Check for any regular file anywhere below path.

        Returns (ok, found) or (False, error message).
        """
        result = self.run(
            f"find {shlex.quote(path)} -type f -print -quit"
        )
        if result['exit_code'] != 0:
            return False, result['stderr'].strip()
        return True, bool(result['stdout'].strip())

    # ---------------------------------------------------------------------
    # Reboot
    # ---------------------------------------------------------------------
    def reboot(self) -> tuple[bool, str]:
        result = self.run("reboot")
        if result['exit_code'] != 0:
            return False, (
                "Failed to send reboot command: "
                f"{result['stderr'].strip()}"
            )
        return True, "Reboot command sent"

    def reboot_and_reconnect(
        self,
        wait_time: int = 10,
        timeout: int = 300,
        interval: int = 5,
        sleep=time.sleep,
    ) -> list[tuple[bool, str, str]]:
        """
        Reboots the host and waits until SSH answers again.

        Returns a list of (success_flag, message, level).
        """
        reboot_output: list[tuple[bool, str, str]] = []
        ok, message = self.reboot()
        if not ok:
            reboot_output.append((False, message, "e"))
            return reboot_output

        self.ssh.close()
        reboot_output.append((True, "Waiting for host to reboot...", "i"))
        sleep(wait_time)

        def ssh_is_back() -> bool:
            try:
                sock = socket.create_connection((self.ssh.host, 22), timeout=5)
                sock.close()
            except OSError:
                return False
            success, _ = self.ssh.connect()
            return success

        retries = max(1, timeout // max(1, interval))
        back, attempts = wait_for(ssh_is_back, retries, interval, sleep=sleep)
        if back:
            reboot_output.append((
                True,
                f"Reconnected to {self.ssh.host} after {attempts} attempt(s)",
                "s"
            ))
        else:
            reboot_output.append((
                False,
                "Timed out waiting for SSH after reboot",
                "e"
            ))
        return reboot_output
