import pytest

from pve_rename.config_loader import (
    DEFAULT_YAML_VALIDATION_FILE,
    load_yaml_file,
    validate_config,
)
from pve_rename.identity import NodeIdentity
from pve_rename.job_state import RenameJob
from pve_rename.local_handler import LocalConnection
from pve_rename.node_rename_handler import ProxmoxNode

QM_HEADER = (
    "      VMID NAME                 STATUS     MEM(MB)    BOOTDISK(GB) PID\n"
)
PCT_HEADER = "VMID       Status     Lock         Name\n"

HOSTS = (
    "127.0.0.1 localhost.localdomain localhost\n"
    "192.168.1.10 pve1.old.local pve1\n"
    "192.168.1.11 pve1-backup.old.local pve1-backup\n"
    "\n"
    "# The following lines are desirable for IPv6 capable hosts\n"
    "::1     ip6-localhost ip6-loopback\n"
)

STORAGE_CFG = (
    "dir: local\n"
    "\tpath /var/lib/vz\n"
    "\tcontent iso,vztmpl,backup\n"
    "\n"
    "lvmthin: data\n"
    "\tthinpool data\n"
    "\tvgname pve\n"
    "\tnodes pve1\n"
    "\n"
    "nfs: shared\n"
    "\texport /srv/nfs\n"
    "\tnodes pve3,pve1,pve10\n"
)

COROSYNC = (
    "logging {\n"
    "  debug: off\n"
    "  to_syslog: yes\n"
    "}\n"
    "\n"
    "nodelist {\n"
    "  node {\n"
    "    name: pve1\n"
    "    nodeid: 1\n"
    "    quorum_votes: 1\n"
    "    ring0_addr: 192.168.1.10\n"
    "  }\n"
    "}\n"
    "\n"
    "totem {\n"
    "  cluster_name: pve1\n"
    "  config_version: 17\n"
    "  version: 2\n"
    "}\n"
)


class FakeConnection(LocalConnection):
    """Runs file commands for real, answers host commands from a table."""

    def __init__(self, responses=None):
        super().__init__()
        self.host = "fake-node"
        self.responses = {
            "hostname": "pve2.new.local\n",
            "hostname -f": "pve1.old.local\n",
            "hostname -s": "pve2\n",
            "id -u": "0\n",
            "qm list": QM_HEADER,
            "pct list": PCT_HEADER,
            "reboot": "",
        }
        self.responses.update(responses or {})
        self.commands = []

    def run(self, command, stdin=None):
        self.commands.append(command)
        if command in self.responses:
            response = self.responses[command]
            if isinstance(response, dict):
                return dict(response)
            return {"stdout": response, "stderr": "", "exit_code": 0}
        return super().run(command, stdin=stdin)


@pytest.fixture
def node_tree(tmp_path):
    """A miniature node filesystem for the old name pve1."""
    root = tmp_path / "node"
    etc = root / "etc"
    (etc / "postfix").mkdir(parents=True)
    (etc / "hostname").write_text("pve1.old.local\n")
    (etc / "hosts").write_text(HOSTS)
    (etc / "mailname").write_text("pve1.old.local\n")
    (etc / "postfix" / "main.cf").write_text(
        "myhostname = pve1.old.local\n"
        "mydestination = $myhostname, localhost.$mydomain, localhost\n"
    )

    pve = etc / "pve"
    (pve / "nodes" / "pve1" / "qemu-server").mkdir(parents=True)
    (pve / "nodes" / "pve1" / "lxc").mkdir()
    (pve / "storage.cfg").write_text(STORAGE_CFG)
    for vmid in (100, 101):
        (pve / "nodes" / "pve1" / "qemu-server" / f"{vmid}.conf").write_text(
            f"name: vm{vmid}\nmemory: 2048\n"
        )
    (pve / "nodes" / "pve1" / "lxc" / "200.conf").write_text(
        "hostname: ct200\n"
    )

    rrd = root / "rrd"
    for sub in ("pve2-node/pve1", "pve2-storage/pve1/local", "pve2-pve1"):
        (rrd / sub).mkdir(parents=True)
        (rrd / sub / "data.rrd").write_text("rrd")

    (root / "backup").mkdir()
    return root


@pytest.fixture
def config(node_tree):
    rules = load_yaml_file(DEFAULT_YAML_VALIDATION_FILE)
    ok, document = validate_config({
        "hostname_file": str(node_tree / "etc" / "hostname"),
        "hosts_file": str(node_tree / "etc" / "hosts"),
        "mail_files": [
            str(node_tree / "etc" / "mailname"),
            str(node_tree / "etc" / "postfix" / "main.cf"),
        ],
        "pve_dir": str(node_tree / "etc" / "pve"),
        "rrd_dir": str(node_tree / "rrd"),
        "backup_root": str(node_tree / "backup"),
        "job_file": str(node_tree / "job.yaml"),
        "wait_interval": 5,
        "wait_retries": 3,
        "move_delay": 0.5,
        "logfile": str(node_tree / "logs" / "rename.log"),
    }, rules)
    assert ok, document
    return document


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_node(config, sleeps):
    def factory(responses=None):
        conn = FakeConnection(responses)
        return ProxmoxNode(conn, config, sleep=sleeps.append)
    return factory


@pytest.fixture
def job():
    return RenameJob(
        old=NodeIdentity.from_fqdn("pve1.old.local"),
        new=NodeIdentity.from_fqdn("pve2.new.local"),
    )


class FlakyConnection(FakeConnection):
    """Refuses the first `failures` reconnects after being closed."""

    def __init__(self, responses=None, failures=0):
        super().__init__(responses)
        self.failures = failures
        self.down = 0
        self.connects = 0

    def connect(self):
        self.connects += 1
        if self.down:
            self.down -= 1
            return False, "Connection refused"
        return super().connect()

    def close(self):
        self.down = self.failures
        return super().close()


class FakeSocket:
    def close(self):
        pass


@pytest.fixture
def port_open(monkeypatch):
    """Pretend port 22 answers, leaving the SSH login to the transport."""
    monkeypatch.setattr(
        "pve_rename.remote_host.socket.create_connection",
        lambda address, timeout=None: FakeSocket(),
    )
