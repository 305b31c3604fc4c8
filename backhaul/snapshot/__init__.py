from backhaul.snapshot.retention import group_by_volume, select_retention

ACTIONS = ("create", "rotate", "list")


def create_snapshot_manager(config, client=None):
    """Create the snapshot manager for a loaded config.

    Only EC2 is supported.
    """
    from backhaul.snapshot.ec2 import EC2SnapshotManager
    return EC2SnapshotManager(config, client=client)


__all__ = ["ACTIONS", "create_snapshot_manager", "group_by_volume", "select_retention"]
