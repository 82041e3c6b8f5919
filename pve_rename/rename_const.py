GUEST_DIRS = {
    "qemu-server": "VM",
    "lxc": "container",
}
# Subdirectory whose appearance shows pmxcfs has created the new node
WAIT_SUBDIR = "qemu-server"
GUEST_CONF_PATTERN = "*.conf"
GUEST_CONF_REGEX = r"^(\d+)\.conf$"
NODES_SUBDIR = "nodes"
STORAGE_CFG = "storage.cfg"
COROSYNC_CONF = "corosync.conf"
# RRD directories under rrd_dir, keyed by short node name
RRD_PATTERNS = [
    "pve2-node/{name}",
    "pve2-storage/{name}",
    "pve2-{name}",
]
BACKUP_PREFIX = "proxmox-hostname-backup-"
BACKUP_NODE_DIR = "pve-nodes-backup"
WEB_PORT = 8006
