import pytest

from pve_rename.job_state import (
    JobStateError,
    POST_REBOOT,
    RenameJob,
)


def test_job_yaml_keeps_identities(job):
    saved = job.with_backup("/root/backup-1").with_phase(POST_REBOOT)
    loaded = RenameJob.from_yaml(saved.to_yaml())
    assert loaded == saved
    assert loaded.new.short_name == "pve2"
    assert loaded.short_name_changed


def test_job_is_immutable(job):
    with pytest.raises(AttributeError):
        job.phase = POST_REBOOT


@pytest.mark.parametrize("text", [
    "",
    "just a string",
    "old_hostname: [unclosed",
    "version: 1\nphase: post-reboot\n",
    (
        "version: 2\nphase: post-reboot\nold_hostname: a.b\n"
        "new_hostname: c.d\ncreated: '2026-01-01'\n"
    ),
    (
        "version: 1\nphase: sideways\nold_hostname: a.b\n"
        "new_hostname: c.d\ncreated: '2026-01-01'\n"
    ),
    (
        "version: 1\nphase: post-reboot\nold_hostname: a_b.c\n"
        "new_hostname: c.d\ncreated: '2026-01-01'\n"
    ),
    (
        "version: 1\nphase: post-reboot\nold_hostname: a.b\n"
        "new_hostname: A.b\ncreated: '2026-01-01'\n"
    ),
    (
        "version: 1\nphase: post-reboot\nold_hostname: a.b\n"
        "old_hostname: x.y\nnew_hostname: c.d\ncreated: '2026-01-01'\n"
    ),
    (
        "version: 1\nphase: post-reboot\nold_hostname: a.b\n"
        "new_hostname: c.d\ncreated: '2026-01-01'\nextra: 1\n"
    ),
])
def test_corrupt_job_is_rejected(text):
    with pytest.raises(JobStateError):
        RenameJob.from_yaml(text)
