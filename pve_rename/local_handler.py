#!/usr/bin/env python3
import socket
import subprocess

# File contents pass through unchanged even when they are not valid UTF-8
ENCODING = "utf-8"
ERRORS = "surrogateescape"


class LocalConnection:
    """Runs commands on this machine with the same API as SSHConnection."""

    def __init__(self, shell="/bin/sh"):
        self.host = socket.gethostname()
        self.shell = shell

    def connect(self) -> tuple[bool, str]:
        return True, f"Operating on local host {self.host}"

    def close(self) -> tuple[bool, str]:
        return True, "Nothing to close for local host"

    def run(self, command: str, stdin: str | None = None) -> dict:
        try:
            result = subprocess.run(
                [self.shell, "-c", command],
                input=(
                    stdin.encode(ENCODING, ERRORS)
                    if stdin is not None else None
                ),
                capture_output=True,
            )
        except OSError as e:
            return {
                "stdout": "",
                "stderr": f"Error running '{command}': {e}",
                "exit_code": 127,
            }
        return {
            "stdout": result.stdout.decode(ENCODING, ERRORS),
            "stderr": result.stderr.decode(ENCODING, "replace"),
            "exit_code": result.returncode,
        }
