#!/usr/bin/env python3
import os

import paramiko

from pve_rename.local_handler import ENCODING, ERRORS


class SSHConnection:
    def __init__(
            self,
            host,
            username,
            password=None,
            key_filename=None,
            port=22,
            ):
        self.host = host
        self.username = username
        self.password = password
        self.key_filename = (
            os.path.expanduser(key_filename) if key_filename else None
        )
        self.port = port
        self.client = None

    def connect(self) -> tuple[bool, str]:
        try:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            if self.password:
                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password
                )
            elif self.key_filename:
                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    key_filename=self.key_filename
                )
            else:
                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username
                )
            self.client = client
            return True, f"Connected to {self.host} as {self.username}"

        except paramiko.AuthenticationException:
            return False, (
                f"Authentication failed when connecting to {self.host}. "
                "Please check your credentials."
            )
        except (paramiko.SSHException, OSError) as e:
            return False, (
                f"Unable to establish SSH connection to {self.host}: {e}"
            )

    def close(self) -> tuple[bool, str]:
        if self.client is None:
            return True, f"No open SSH connection to {self.host}"
        try:
            self.client.close()
        except (paramiko.SSHException, OSError) as e:
            return False, f"Error closing SSH connection to {self.host}: {e}"
        finally:
            self.client = None
        return True, f"SSH connection to {self.host} closed"

    def run(self, command: str, stdin: str | None = None) -> dict:
        if self.client is None:
            return {
                "stdout": "",
                "stderr": f"Not connected to {self.host}",
                "exit_code": 255,
            }
        try:
            channel_in, stdout, stderr = self.client.exec_command(command)
            if stdin is not None:
                channel_in.write(stdin.encode(ENCODING, ERRORS))
                channel_in.flush()
            channel_in.channel.shutdown_write()
            out = stdout.read()
            err = stderr.read()
            exit_code = stdout.channel.recv_exit_status()
            return {
                "stdout": out.decode(ENCODING, ERRORS),
                "stderr": err.decode(ENCODING, "replace"),
                "exit_code": exit_code,
            }
        except (paramiko.SSHException, OSError) as e:
            return {
                "stdout": "",
                "stderr": f"SSH error running '{command}': {e}",
                "exit_code": 255,
            }
