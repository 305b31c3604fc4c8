"""EC2 EBS snapshot management.

create  snapshot every configured volume, named <description>-YYYYmmdd
rotate  keep the newest num_of_snapshots_to_keep snapshots per configured
        volume, delete the rest (or only log them when rotate_dry_run is set)
list    every snapshot owned by OwnerID, grouped by volume, newest first

Config file (YAML):

    region: us-west-2
    OwnerID: "123456789012"
    AWSAccessKeyId: key
    SecretAccessKey: secret
    volumes:
      vol-11111111: description1
      vol-22222222: description2
    num_of_snapshots_to_keep: 45
    rotate_dry_run: false

Requires boto3: pip install -e ".[aws]"
"""

from datetime import datetime

from backhaul.config import as_bool, require_keys
from backhaul.snapshot.retention import (
    check_keep_count,
    group_by_volume,
    newest_first,
    select_retention,
)

REQUIRED_KEYS = ("region", "OwnerID", "AWSAccessKeyId", "SecretAccessKey", "volumes")


def _error_code(exc):
    return (getattr(exc, "response", None) or {}).get("Error", {}).get("Code", "")


class EC2SnapshotManager:
    """Snapshot operations for the volumes listed in config, backed by the EC2 API."""

    def __init__(self, config, client=None):
        require_keys(config, REQUIRED_KEYS)
        if not isinstance(config["volumes"], dict) or not config["volumes"]:
            raise ValueError("volumes must map at least one volume id to a description")
        self.config = config
        self.volumes = {str(k): str(v) for k, v in config["volumes"].items()}
        self.owner_id = str(config["OwnerID"])

        if client is None:
            try:
                import boto3
            except ImportError:
                raise RuntimeError(
                    "boto3 is required for EC2 snapshots. "
                    "Install with: pip install -e '.[aws]'"
                )
            client = boto3.client(
                "ec2",
                region_name=config["region"],
                aws_access_key_id=config["AWSAccessKeyId"],
                aws_secret_access_key=config["SecretAccessKey"],
            )
        self._ec2 = client

    @property
    def keep_count(self):
        require_keys(self.config, ("num_of_snapshots_to_keep",))
        value = self.config["num_of_snapshots_to_keep"]
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value)
        return check_keep_count(value)

    @property
    def dry_run(self):
        return as_bool(self.config.get("rotate_dry_run"))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create(self, log, today=None):
        """Snapshot every configured volume. Returns volume ids that failed."""
        stamp = (today or datetime.now()).strftime("%Y%m%d")
        failures = []
        for volume_id, description in self.volumes.items():
            name = f"{description}-{stamp}"
            try:
                response = self._ec2.create_snapshot(
                    VolumeId=volume_id,
                    Description=name,
                    TagSpecifications=[{
                        "ResourceType": "snapshot",
                        "Tags": [{"Key": "Name", "Value": name}],
                    }],
                )
            except Exception as e:
                code = _error_code(e)
                log.error(f"FAILED snapshot of {volume_id} ({description}): {code or e}")
                failures.append(volume_id)
                continue
            log.info(f"CREATED snapshot {response.get('SnapshotId', '?')} of {volume_id} - {name}")
        return failures

    def rotate(self, log):
        """Delete all but the newest keep_count snapshots of each configured volume.

        A failed deletion aborts the run.
        """
        keep_count = self.keep_count
        by_volume = group_by_volume(self.describe())

        for volume_id, description in self.volumes.items():
            log.info(f"{volume_id} {description}")
            retain, delete = select_retention(by_volume.get(volume_id, []), keep_count)

            for position, snapshot in enumerate(retain):
                log.info(
                    f"KEEPING {keep_count - position}/{keep_count} "
                    f"{snapshot['start_time']} {snapshot['id']}"
                )

            for snapshot in delete:
                if self.dry_run:
                    log.info(
                        f"DRY RUN delete snapshot of {description} - "
                        f"{snapshot['start_time']} ID={snapshot['id']}"
                    )
                    continue
                try:
                    self._ec2.delete_snapshot(SnapshotId=snapshot["id"])
                except Exception as e:
                    raise RuntimeError(
                        f"FAILED DELETION of snapshot {snapshot['id']} ({description}): "
                        f"{_error_code(e) or e}"
                    ) from e
                log.info(
                    f"DELETED snapshot of {description} - "
                    f"{snapshot['start_time']} ID={snapshot['id']}"
                )

    def list(self):
        """All snapshots owned by OwnerID as {volume_id: [snapshot, ...]}, newest first."""
        grouped = group_by_volume(self.describe())
        return {volume_id: newest_first(snaps) for volume_id, snaps in sorted(grouped.items())}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def describe(self):
        """Fetch every snapshot owned by OwnerID."""
        paginator = self._ec2.get_paginator("describe_snapshots")
        snapshots = []
        try:
            for page in paginator.paginate(OwnerIds=[self.owner_id]):
                for snap in page.get("Snapshots", []):
                    snapshots.append({
                        "id": snap["SnapshotId"],
                        "volume_id": snap.get("VolumeId", ""),
                        "start_time": snap["StartTime"],
                        "description": snap.get("Description", ""),
                    })
        except Exception as e:
            raise RuntimeError(
                f"FAILED to describe snapshots owned by {self.owner_id}: {_error_code(e) or e}"
            ) from e
        return snapshots
