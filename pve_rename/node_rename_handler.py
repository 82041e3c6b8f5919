#!/usr/bin/env python3
from __future__ import annotations

from typing import NamedTuple
import re
import time

from pve_rename.job_state import JobStateError, RenameJob, POST_REBOOT
from pve_rename.local_handler import LocalConnection
from pve_rename.remote_host import RemoteHost
from pve_rename.ssh_handler import SSHConnection
from pve_rename.text_edit import (
    contains_token,
    replace_hostnames,
    replace_storage_nodes,
    update_corosync,
)
from pve_rename.wait import wait_for
import pve_rename.rename_const as const


class StepResult(NamedTuple):
    """Outcome of one action: level is s, i, w or e."""
    ok: bool
    message: str
    level: str


def success(message):
    return StepResult(True, message, "s")


def info(message):
    return StepResult(True, message, "i")


def warning(message):
    return StepResult(False, message, "w")


def error(message):
    return StepResult(False, message, "e")


class ProxmoxNode(RemoteHost):
    def __init__(self, ssh_conn, config: dict, sleep=time.sleep):
        super().__init__(ssh_conn)
        self.config = config
        self.sleep = sleep
        self.pve_dir = config["pve_dir"].rstrip("/")
        self.rrd_dir = config["rrd_dir"].rstrip("/")

    @classmethod
    def from_config(cls, config: dict, sleep=time.sleep) -> ProxmoxNode:
        if config.get("host_ip"):
            conn = SSHConnection(
                config["host_ip"],
                config["host_username"],
                key_filename=config.get("host_keyfile"),
            )
        else:
            conn = LocalConnection()
        return cls(conn, config, sleep=sleep)

    @property
    def is_remote(self) -> bool:
        return isinstance(self.ssh, SSHConnection)

    # ---------------------------------------------------------------------
    # Paths, node scoped paths always use the short name
    # ---------------------------------------------------------------------
    def node_dir(self, short_name: str) -> str:
        return f"{self.pve_dir}/{const.NODES_SUBDIR}/{short_name}"

    def rrd_paths(self, short_name: str) -> list[str]:
        return [
            f"{self.rrd_dir}/{pattern.format(name=short_name)}"
            for pattern in const.RRD_PATTERNS
        ]

    @property
    def storage_cfg(self) -> str:
        return f"{self.pve_dir}/{const.STORAGE_CFG}"

    @property
    def corosync_conf(self) -> str:
        return f"{self.pve_dir}/{const.COROSYNC_CONF}"

    # ---------------------------------------------------------------------
    # Pre-reboot checks
    # ---------------------------------------------------------------------
    def list_running_guests(self) -> tuple[list[StepResult], list[str]]:
        """Ask qm and pct for running guests.

        Returns (steps, running) where running holds 'VM 100' style labels.
        """
        steps: list[StepResult] = []
        running: list[str] = []
        # status column differs: qm list has NAME before STATUS
        for command, status_col, label in (
                ("qm list", 2, "VM"),
                ("pct list", 1, "container")):
            result = self.run(command)
            if result['exit_code'] != 0:
                steps.append(warning(
                    f"Could not run '{command}': "
                    f"{result['stderr'].strip() or 'unknown error'}"
                ))
                continue
            for line in result['stdout'].splitlines():
                parts = line.split()
                if len(parts) <= status_col or not parts[0].isdigit():
                    continue
                if parts[status_col].lower() == "running":
                    running.append(f"{label} {parts[0]}")

        if running:
            steps.append(warning(
                f"Found {len(running)} running guest(s): {', '.join(running)}"
            ))
        elif not steps:
            steps.append(success("No running VMs or containers found"))
        return steps, running

    def has_corosync(self) -> bool:
        return self.is_file(self.corosync_conf)

    # ---------------------------------------------------------------------
    # Pre-reboot changes
    # ---------------------------------------------------------------------
    def create_backup(
            self,
            job: RenameJob,
            timestamp: str | None = None
    ) -> tuple[list[StepResult], str | None]:
        steps: list[StepResult] = []
        stamp = timestamp or time.strftime("%Y%m%d-%H%M%S")
        backup_root = self.config["backup_root"].rstrip("/")
        backup_dir = f"{backup_root}/{const.BACKUP_PREFIX}{stamp}"

        ok, message = self.make_dirs(backup_dir)
        if not ok:
            steps.append(error(f"Cannot create backup dir: {message}"))
            return steps, None

        files = [
            self.config["hostname_file"],
            self.config["hosts_file"],
            *self.config["mail_files"],
            self.storage_cfg,
            self.corosync_conf,
        ]
        for path in files:
            if not self.is_file(path):
                steps.append(info(f"Not present, not backed up: {path}"))
                continue
            target = f"{backup_dir}/{path.rsplit('/', 1)[-1]}.bak"
            ok, message = self.copy_file(path, target)
            steps.append(
                success(f"Backed up {path}") if ok
                else warning(f"Backup of {path} failed: {message}")
            )

        old_node = self.node_dir(job.old.short_name)
        if self.is_dir(old_node):
            ok, message = self.copy_tree(
                old_node, f"{backup_dir}/{const.BACKUP_NODE_DIR}"
            )
            steps.append(
                success(f"Backed up {old_node}") if ok
                else warning(f"Backup of {old_node} failed: {message}")
            )

        steps.append(success(f"Backup created at: {backup_dir}"))
        return steps, backup_dir

    def update_hostname_file(self, job: RenameJob) -> list[StepResult]:
        path = self.config["hostname_file"]
        ok, message = self.write_file(path, f"{job.new.fqdn}\n")
        if not ok:
            return [error(f"Failed to update {path}: {message}")]
        return [success(f"Updated {path}")]

    def _rewrite(self, path, transform, missing_level="w"):
        if not self.is_file(path):
            make = warning if missing_level == "w" else info
            return [make(f"{path} not found, skipped")]
        ok, changed, message = self.edit_file(path, transform)
        if not ok:
            return [error(f"Failed to update {path}: {message}")]
        if not changed:
            return [info(message)]
        return [success(f"Updated {path}")]

    def update_hosts_file(self, job: RenameJob) -> list[StepResult]:
        return self._rewrite(
            self.config["hosts_file"],
            lambda text: replace_hostnames(text, job.old, job.new),
        )

    def update_mail_files(self, job: RenameJob) -> list[StepResult]:
        steps: list[StepResult] = []
        for path in self.config["mail_files"]:
            steps.extend(self._rewrite(
                path,
                lambda text: replace_hostnames(text, job.old, job.new),
                missing_level="i",
            ))
        return steps

    def update_storage_config(self, job: RenameJob) -> list[StepResult]:
        if not job.short_name_changed:
            return [info("Short name unchanged, storage.cfg left as is")]
        return self._rewrite(
            self.storage_cfg,
            lambda text: replace_storage_nodes(
                text, job.old.short_name, job.new.short_name
            ),
            missing_level="i",
        )

    def copy_rrd_files(self, job: RenameJob) -> list[StepResult]:
        if not job.short_name_changed:
            return [info("Short name unchanged, RRD files left as is")]
        steps: list[StepResult] = []
        for old_path, new_path in zip(
                self.rrd_paths(job.old.short_name),
                self.rrd_paths(job.new.short_name)):
            if not self.is_dir(old_path):
                steps.append(info(f"No RRD data at {old_path}"))
                continue
            ok, message = self.copy_tree(old_path, new_path)
            steps.append(
                success(f"Copied RRD files to {new_path}") if ok
                else warning(f"Copying {old_path} failed: {message}")
            )
        return steps

    def update_corosync(self, job: RenameJob) -> list[StepResult]:
        path = self.corosync_conf
        ok, message = self.copy_file(path, f"{path}.bak")
        if not ok:
            return [error(
                f"Could not back up {path}, not touching it: {message}"
            )]
        steps = [success(f"Backed up {path} to {path}.bak")]

        ok, text = self.read_file(path)
        if not ok:
            steps.append(error(f"Failed to read {path}: {text}"))
            return steps
        new_text, renamed, old_version, new_version = update_corosync(
            text, job.old, job.new
        )
        if not renamed and not job.short_name_changed:
            steps.append(info(
                f"No 'name: {job.old.fqdn}' entry in {path}, left as is"
            ))
            return steps
        if not renamed:
            steps.append(warning(
                f"No 'name: {job.old.short_name}' entry in {path}"
            ))
            return steps
        if old_version is None:
            steps.append(warning(f"No config_version found in {path}"))

        ok, message = self.write_file(path, new_text)
        if not ok:
            steps.append(error(f"Failed to update {path}: {message}"))
            return steps
        steps.append(success(
            f"Updated {path} (version {old_version} -> {new_version})"
        ))
        steps.append(warning(
            "You may need to restart cluster services after reboot"
        ))
        return steps

    # ---------------------------------------------------------------------
    # Job state
    # ---------------------------------------------------------------------
    def save_job(self, job: RenameJob) -> list[StepResult]:
        path = self.config["job_file"]
        ok, message = self.write_file(path, job.to_yaml())
        if not ok:
            return [error(f"Failed to save rename job to {path}: {message}")]
        return [success(f"Rename job saved to {path}")]

    def load_job(self) -> RenameJob:
        path = self.config["job_file"]
        if not self.is_file(path):
            raise JobStateError(f"No rename job found at {path}")
        ok, text = self.read_file(path)
        if not ok:
            raise JobStateError(f"Cannot read {path}: {text}")
        job = RenameJob.from_yaml(text)
        if job.phase != POST_REBOOT:
            raise JobStateError(
                f"Rename job in {path} is in phase '{job.phase}', "
                "the pre-reboot phase did not finish"
            )
        return job

    def clear_job(self) -> list[StepResult]:
        path = self.config["job_file"]
        if not self.is_file(path):
            return []
        ok, message = self.remove_tree(path)
        if not ok:
            return [warning(f"Could not remove {path}: {message}")]
        return [info(f"Removed {path}")]

    # ---------------------------------------------------------------------
    # Post-reboot
    # ---------------------------------------------------------------------
    def wait_for_node_dir(
            self,
            job: RenameJob
    ) -> tuple[list[StepResult], bool]:
        path = f"{self.node_dir(job.new.short_name)}/{const.WAIT_SUBDIR}"
        retries = self.config["wait_retries"]
        interval = self.config["wait_interval"]
        ready, polls = wait_for(
            lambda: self.is_dir(path), retries, interval, sleep=self.sleep
        )
        if ready:
            return [success(f"{path} available after {polls} poll(s)")], True
        return [warning(
            f"{path} did not appear after {polls} polls "
            f"({interval}s apart), skipping guest config migration"
        )], False

    def migrate_guest_configs(self, job: RenameJob) -> list[StepResult]:
        if not job.short_name_changed:
            return [info("Short name unchanged, guest configs stay in place")]

        old_node = self.node_dir(job.old.short_name)
        new_node = self.node_dir(job.new.short_name)
        if not self.is_dir(old_node):
            return [warning(f"Old node directory {old_node} does not exist")]

        conf_regex = re.compile(const.GUEST_CONF_REGEX)
        steps: list[StepResult] = []
        moves = 0
        for subdir, label in const.GUEST_DIRS.items():
            source_dir = f"{old_node}/{subdir}"
            target_dir = f"{new_node}/{subdir}"
            names = [
                name for name in self.list_files(
                    source_dir, const.GUEST_CONF_PATTERN
                )
                if conf_regex.match(name)
            ]
            if not names:
                steps.append(info(f"No {label} configurations to move"))
                continue
            names.sort(key=lambda name: int(conf_regex.match(name).group(1)))

            ok, message = self.make_dirs(target_dir)
            if not ok:
                steps.append(error(
                    f"Cannot create {target_dir}, {label} configurations "
                    f"not moved: {message}"
                ))
                continue

            steps.append(info(
                f"Moving {len(names)} {label} configuration(s)..."
            ))
            for name in names:
                if moves:
                    self.sleep(self.config["move_delay"])
                moves += 1
                ok, message = self.move_file(
                    f"{source_dir}/{name}", f"{target_dir}/{name}"
                )
                steps.append(
                    success(f"Moved {label} {name}") if ok
                    else warning(f"Could not move {label} {name}: {message}")
                )
        return steps

    def cleanup_old_files(self, job: RenameJob) -> list[StepResult]:
        if not job.short_name_changed:
            return [info("Short name unchanged, nothing to clean up")]

        steps: list[StepResult] = []
        for path in self.rrd_paths(job.old.short_name):
            if not self.is_dir(path):
                continue
            ok, message = self.remove_tree(path)
            steps.append(
                success(f"Removed old RRD directory {path}") if ok
                else warning(f"Could not remove {path}: {message}")
            )

        old_node = self.node_dir(job.old.short_name)
        if self.is_dir(old_node):
            ok, found = self.has_files(old_node)
            if not ok:
                steps.append(warning(
                    f"Could not inspect {old_node}, left in place: {found}"
                ))
            elif found:
                steps.append(warning(
                    f"Old node directory {old_node} still contains files. "
                    "Please verify and remove manually."
                ))
            else:
                ok, message = self.remove_tree(old_node)
                steps.append(
                    success(f"Removed old node directory {old_node}") if ok
                    else warning(f"Could not remove {old_node}: {message}")
                )

        steps.append(success("Cleanup completed"))
        return steps

    def verify_changes(self, job: RenameJob) -> list[StepResult]:
        steps: list[StepResult] = []

        for getter, expected, label in (
                (self.get_hostname, job.new.fqdn, "Hostname"),
                (self.get_short_hostname, job.new.short_name, "Short name")):
            ok, current = getter()
            if not ok:
                steps.append(warning(f"{label} verification failed: {current}"))
            elif current == expected:
                steps.append(success(f"{label} verification: OK ({current})"))
            else:
                steps.append(warning(
                    f"{label} verification: current ({current}) doesn't "
                    f"match expected ({expected})"
                ))

        new_node = self.node_dir(job.new.short_name)
        if self.is_dir(new_node):
            steps.append(success(f"New node directory exists: {new_node}"))
        else:
            steps.append(warning(f"New node directory not found: {new_node}"))

        hosts_file = self.config["hosts_file"]
        ok, text = self.read_file(hosts_file)
        if not ok:
            steps.append(warning(f"Could not read {hosts_file}: {text}"))
        else:
            missing = [
                name for name in (job.new.fqdn, job.new.short_name)
                if not contains_token(text, name)
            ]
            if missing:
                steps.append(warning(
                    f"{hosts_file} does not contain: {', '.join(missing)}"
                ))
            else:
                steps.append(success(f"{hosts_file} contains new hostname"))
        return steps
