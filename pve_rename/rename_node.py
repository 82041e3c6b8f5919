#!/usr/bin/env python3
import os
import sys
import argparse

import yaml

from pve_rename.config_loader import (
    DEFAULT_YAML_VALIDATION_FILE,
    check_file,
    load_yaml_file,
    validate_config,
)
from pve_rename.identity import (
    NodeIdentity,
    resolve_new_identity,
    validate_hostname,
)
from pve_rename.job_state import JobStateError, RenameJob, POST_REBOOT
from pve_rename.node_rename_handler import ProxmoxNode
from pve_rename.output_handler import OutputHandler
import pve_rename.rename_const as const

DEFAULT_LOGFILE = "logs/rename_node.log"
output = OutputHandler(DEFAULT_LOGFILE)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Rename a Proxmox VE node",
        epilog=(
            "Run without --post-reboot to prepare the rename, reboot, then "
            "run again with --post-reboot to move guest configurations."
        ),
    )
    parser.add_argument(
        "--config",
        dest="config_file",
        default=None,
        help="Optional: path to a configuration YAML file"
    )
    parser.add_argument(
        "--validation",
        dest="validation_file",
        default=DEFAULT_YAML_VALIDATION_FILE,
        help=(
            "Optional: Specify a different set of validation rules "
            "for the config file, if the default file is not to be used"
        )
    )
    parser.add_argument(
        "--hostname",
        dest="hostname",
        default=None,
        help="New node FQDN, asked interactively when omitted"
    )
    parser.add_argument(
        "--yes",
        dest="yes",
        action="store_true",
        help=(
            "Answer yes to the running-guests and proceed prompts. "
            "Reboot and corosync still need config values or answers"
        )
    )
    parser.add_argument(
        "--post-reboot",
        dest="post_reboot",
        nargs="*",
        metavar="HOSTNAME",
        default=None,
        help=(
            "Run the post-reboot phase. Takes OLD NEW hostnames, or reads "
            "them from the saved rename job when omitted"
        )
    )
    parser.add_argument(
        "--no-color",
        dest="colors",
        action="store_false",
        help="Disable colored output"
    )
    return parser.parse_args(argv)


def check_files(path):
    filename = os.path.basename(path)
    errors = check_file(path)
    if not errors:
        output.output(f"{filename} access checks passed", type="s")
        return
    for i, error in enumerate(errors):
        output.output(
            f"{filename} access checks failed: {error}",
            type="e",
            exit_on_error=(i == len(errors) - 1)
        )


def load_config(args):
    check_files(args.validation_file)
    try:
        validation_rules = load_yaml_file(args.validation_file)
        config_values = {}
        if args.config_file:
            check_files(args.config_file)
            config_values = load_yaml_file(args.config_file)
    except (OSError, yaml.YAMLError) as e:
        output.output(f"File yaml load error: {e}", "e", exit_on_error=True)
    if not isinstance(config_values, dict):
        output.output(
            f"{args.config_file} must contain a YAML mapping",
            "e",
            exit_on_error=True
        )

    ok, result = validate_config(config_values, validation_rules)
    if not ok:
        for line in result:
            output.output(line, type="e")
        output.output(
            "Configuration validation failed",
            type="e",
            exit_on_error=True
        )
    output.output("Configuration validation passed", type="s")

    max_key_len = max(len(key) for key in result)
    for key in result:
        label = "set by user" if key in config_values else "using default"
        output.output(f"{key.ljust(max_key_len + 1)}: {label}", type="i")
    return result


def ask_or_config(question, configured):
    if configured is not None:
        answer = "yes" if configured else "no"
        output.output(f"{question} (yes/no): {answer} [config]", type="i")
        return configured
    return output.ask(question)


def print_post_reboot_usage(job):
    output.output(
        f"Usage: pve-rename-node --post-reboot {job.old.fqdn} {job.new.fqdn}",
        type="i"
    )


def print_manual_phase_two(job):
    output.output("Please reboot manually when ready: reboot", type="i")
    output.output(
        "After reboot, run this tool again with '--post-reboot' to "
        "complete the migration",
        type="i"
    )
    print_post_reboot_usage(job)


def run_pre_reboot(node, args, config):
    output.heading("Checking Proxmox hostname")

    ok, current = node.get_fqdn()
    output.output(
        f"Current hostname: {current}" if ok
        else f"Failed to get current hostname: '{current}'",
        type="i" if ok else "e",
        exit_on_error=not ok
    )
    old = NodeIdentity.from_fqdn(current)

    new_value = args.hostname
    if new_value is None:
        new_value = input(
            "Enter new hostname (FQDN format recommended, "
            "e.g., pve.example.com): "
        )
    ok, new = resolve_new_identity(new_value, old.fqdn)
    if not ok:
        output.output(new, type="e", exit_on_error=True)

    job = RenameJob(old=old, new=new)
    output.output("You are about to change hostname from:", type="w")
    output.output(f"  OLD: {old.fqdn} (node name {old.short_name})")
    output.output(f"  NEW: {new.fqdn} (node name {new.short_name})")

    output.heading("Checking running guests")
    steps, running = node.list_running_guests()
    output.report(steps)
    if running:
        output.output(
            "It is strongly recommended to stop all VMs and containers "
            "before proceeding",
            type="w"
        )
        if not output.ask("Do you want to continue anyway?", args.yes):
            output.output("Aborted by user", type="i")
            return
    if not output.ask(
            "Do you want to proceed with the hostname change?", args.yes):
        output.output("Aborted by user", type="i")
        return

    output.heading("Creating backup")
    steps, backup_dir = node.create_backup(job)
    output.report(steps)
    job = job.with_backup(backup_dir)

    output.heading("Updating system files")
    output.report(node.update_hostname_file(job))
    output.report(node.update_hosts_file(job))
    output.report(node.update_mail_files(job))

    output.heading("Updating storage configuration")
    output.report(node.update_storage_config(job))

    output.heading("Copying RRD database files")
    output.report(node.copy_rrd_files(job))

    if node.has_corosync():
        output.heading("Cluster configuration")
        output.output("This node appears to be in a cluster!", type="w")
        output.output(
            "Changing hostname in a cluster is NOT recommended!", type="w"
        )
        if ask_or_config(
                "Do you want to update corosync.conf?",
                config["update_corosync"]):
            output.report(node.update_corosync(job))
        else:
            output.output("Skipping corosync.conf update", type="i")

    output.heading("Saving rename job")
    job = job.with_phase(POST_REBOOT)
    save_steps = node.save_job(job)
    output.report(save_steps)
    job_saved = all(step.ok for step in save_steps)

    output.output()
    output.output("Pre-reboot configuration completed!", type="s")
    output.output(
        "The system needs to be rebooted to complete the hostname change.",
        type="w"
    )

    if not ask_or_config("Do you want to reboot now?", config["reboot"]):
        print_manual_phase_two(job)
        return

    if node.is_remote:
        output.heading("Rebooting Proxmox host")
        steps = node.reboot_and_reconnect(
            wait_time=config["reboot_delay"],
            timeout=config["reconnect_timeout"],
            sleep=node.sleep,
        )
        output.report(steps)
        if steps and steps[-1][0]:
            run_post_reboot(node, job)
        else:
            print_manual_phase_two(job)
        return

    if job_saved:
        output.output(
            "After reboot, run 'pve-rename-node --post-reboot' to move VM "
            "and container configurations.",
            type="i"
        )
    else:
        output.output(
            "The rename job was not saved, pass both hostnames after reboot",
            type="w"
        )
        print_post_reboot_usage(job)
    output.countdown("System will reboot", config["reboot_delay"])
    ok, message = node.reboot()
    output.output(message, type="s" if ok else "e")
    if not ok:
        print_manual_phase_two(job)


def resolve_post_reboot_job(node, hostnames):
    if not hostnames:
        try:
            job = node.load_job()
        except JobStateError as e:
            output.output(str(e), type="e")
            output.output(
                "Usage: pve-rename-node --post-reboot <old_hostname> "
                "<new_hostname>",
                type="e",
                exit_on_error=True
            )
        output.output(f"Loaded rename job from {node.config['job_file']}",
                      type="s")
        return job

    if len(hostnames) != 2:
        output.output(
            "Usage: pve-rename-node --post-reboot <old_hostname> "
            "<new_hostname>",
            type="e",
            exit_on_error=True
        )
    for value in hostnames:
        ok, message = validate_hostname(value)
        if not ok:
            output.output(message, type="e", exit_on_error=True)
    old_value, new_value = hostnames
    if old_value.lower() == new_value.lower():
        output.output(
            "Old and new hostname are identical", type="e", exit_on_error=True
        )

    backup_path = None
    try:
        saved = node.load_job()
        if (saved.old.fqdn, saved.new.fqdn) == (old_value, new_value):
            backup_path = saved.backup_path
    except JobStateError:
        pass
    return RenameJob(
        old=NodeIdentity.from_fqdn(old_value),
        new=NodeIdentity.from_fqdn(new_value),
        phase=POST_REBOOT,
        backup_path=backup_path,
    )


def run_post_reboot(node, job):
    output.heading("Post-reboot configuration")
    output.output(f"Old hostname: {job.old.fqdn}", type="i")
    output.output(f"New hostname: {job.new.fqdn}", type="i")

    output.heading("Waiting for cluster filesystem")
    steps, ready = node.wait_for_node_dir(job)
    output.report(steps)

    if ready:
        output.heading("Moving VM and container configurations")
        output.report(node.migrate_guest_configs(job))

    output.heading("Cleaning up old files")
    output.report(node.cleanup_old_files(job))

    output.heading("Verifying changes")
    output.report(node.verify_changes(job))

    output.output()
    output.output("Hostname change completed!", type="s")
    output.output(
        "Please verify that all VMs and containers are working correctly.",
        type="i"
    )
    output.output(
        "You can access the Proxmox web interface at: "
        f"https://{job.new.fqdn}:{const.WEB_PORT}",
        type="i"
    )
    if job.backup_path:
        output.output(
            f"Backup files are located at: {job.backup_path}", type="i"
        )
    output.report(node.clear_job())


def main(argv=None):
    args = parse_args(argv)
    output.enable_colors = args.colors

    output.output()
    output.output("Proxmox VE node rename", type="h")
    output.output()
    output.output(f"Initial script      : {sys.argv[0]}", type="i")
    output.output(
        "Phase               : "
        f"{'post-reboot' if args.post_reboot is not None else 'pre-reboot'}",
        type="i"
    )
    output.output(f"Config file         : {args.config_file}", type="i")
    output.output(f"Validation file     : {args.validation_file}", type="i")

    output.heading("Checking files")
    config = load_config(args)
    output.set_logfile(config["logfile"])
    output.output(f"Logfile             : {config['logfile']}", type="i")

    node = ProxmoxNode.from_config(config)

    output.heading("Checking connectivity")
    connect_flag, connect_message = node.connect()
    output.output(
        connect_message,
        type="s" if connect_flag else "e",
        exit_on_error=not connect_flag
    )
    if not node.is_root():
        output.output(
            "This tool must be run as root", type="e", exit_on_error=True
        )

    if args.post_reboot is not None:
        job = resolve_post_reboot_job(node, args.post_reboot)
        run_post_reboot(node, job)
    else:
        run_pre_reboot(node, args, config)

    output.heading("Closing connection")
    flag, message = node.close()
    output.output(message, type="s" if flag else "w")
    output.output(f"Summary: {output.summary()}", type="i")
    output.output()
    return 0


if __name__ == "__main__":
    sys.exit(main())
