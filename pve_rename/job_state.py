#!/usr/bin/env python3
"""The rename job carried across the reboot, and its YAML form."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

import yaml
from cerberus import Validator

from pve_rename.config_loader import load_yaml_text
from pve_rename.identity import NodeIdentity, validate_hostname

PRE_REBOOT = "pre-reboot"
POST_REBOOT = "post-reboot"

JOB_SCHEMA = {
    "version": {"type": "integer", "allowed": [1], "required": True},
    "phase": {
        "type": "string",
        "allowed": [PRE_REBOOT, POST_REBOOT],
        "required": True,
    },
    "old_hostname": {"type": "string", "empty": False, "required": True},
    "new_hostname": {"type": "string", "empty": False, "required": True},
    "backup_path": {"type": "string", "nullable": True, "default": None},
    "created": {"type": "string", "required": True},
}


class JobStateError(Exception):
    """Raised when a persisted rename job cannot be used."""


@dataclass(frozen=True)
class RenameJob:
    old: NodeIdentity
    new: NodeIdentity
    phase: str = PRE_REBOOT
    backup_path: str | None = None
    created: str = field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )

    @property
    def short_name_changed(self) -> bool:
        return self.old.short_name != self.new.short_name

    def with_phase(self, phase: str) -> RenameJob:
        return replace(self, phase=phase)

    def with_backup(self, backup_path: str | None) -> RenameJob:
        return replace(self, backup_path=backup_path)

    def to_dict(self) -> dict:
        return {
            "version": 1,
            "phase": self.phase,
            "old_hostname": self.old.fqdn,
            "new_hostname": self.new.fqdn,
            "backup_path": self.backup_path,
            "created": self.created,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_dict(cls, data) -> RenameJob:
        if not isinstance(data, dict):
            raise JobStateError("Job file does not contain a mapping")

        validator = Validator(JOB_SCHEMA)
        if not validator.validate(data):
            problems = "; ".join(
                f"{key}: {errors}" for key, errors in validator.errors.items()
            )
            raise JobStateError(f"Job file is invalid: {problems}")
        doc = validator.document

        for key in ("old_hostname", "new_hostname"):
            ok, message = validate_hostname(doc[key])
            if not ok:
                raise JobStateError(f"Job file {key}: {message}")
        if doc["old_hostname"].lower() == doc["new_hostname"].lower():
            raise JobStateError("Job file has identical old and new hostname")

        return cls(
            old=NodeIdentity.from_fqdn(doc["old_hostname"]),
            new=NodeIdentity.from_fqdn(doc["new_hostname"]),
            phase=doc["phase"],
            backup_path=doc["backup_path"],
            created=doc["created"],
        )

    @classmethod
    def from_yaml(cls, text: str) -> RenameJob:
        try:
            data = load_yaml_text(text)
        except yaml.YAMLError as e:
            raise JobStateError(f"Job file is not valid YAML: {e}") from e
        return cls.from_dict(data)
