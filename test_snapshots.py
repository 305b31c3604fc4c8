"""EC2 snapshot manager against an in-memory EC2 client."""

from datetime import datetime, timedelta, timezone

import pytest

from backhaul.log import RunLog
from backhaul.snapshot import create_snapshot_manager
from backhaul.snapshot.ec2 import EC2SnapshotManager

T0 = datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)


class FakeClientError(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.response = {"Error": {"Code": code, "Message": code}}


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self.pages)


class FakeEC2:
    """Records create/delete calls; describe_snapshots is served in two pages."""

    def __init__(self, snapshots=(), fail_create=(), fail_delete=()):
        self.snapshots = list(snapshots)
        self.fail_create = set(fail_create)
        self.fail_delete = set(fail_delete)
        self.created = []
        self.deleted = []
        self.paginator = None

    def create_snapshot(self, **kwargs):
        if kwargs["VolumeId"] in self.fail_create:
            raise FakeClientError("IncorrectState")
        self.created.append(kwargs)
        return {"SnapshotId": f"snap-new{len(self.created)}", "VolumeId": kwargs["VolumeId"]}

    def delete_snapshot(self, SnapshotId):
        if SnapshotId in self.fail_delete:
            raise FakeClientError("InvalidSnapshot.InUse")
        self.deleted.append(SnapshotId)
        return {}

    def get_paginator(self, name):
        assert name == "describe_snapshots"
        half = len(self.snapshots) // 2
        self.paginator = FakePaginator([
            {"Snapshots": self.snapshots[:half]},
            {"Snapshots": self.snapshots[half:]},
        ])
        return self.paginator


def ec2_snap(snapshot_id, volume_id, days):
    return {
        "SnapshotId": snapshot_id,
        "VolumeId": volume_id,
        "StartTime": T0 + timedelta(days=days),
        "Description": f"{volume_id}-{days}",
    }


def make_config(**overrides):
    config = {
        "region": "us-west-2",
        "OwnerID": 123456789012,
        "AWSAccessKeyId": "AKIAEXAMPLE",
        "SecretAccessKey": "secret",
        "volumes": {"vol-web": "web", "vol-db": "db"},
        "num_of_snapshots_to_keep": 2,
        "rotate_dry_run": False,
    }
    config.update(overrides)
    return config


@pytest.fixture
def log(tmp_path):
    with RunLog(tmp_path / "logs", "snapshots") as run_log:
        yield run_log


def log_text(run_log):
    return run_log.path.read_text()


# ── construction ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("missing", ["region", "OwnerID", "AWSAccessKeyId", "SecretAccessKey", "volumes"])
def test_missing_required_key(missing):
    config = make_config()
    del config[missing]
    with pytest.raises(ValueError, match=f"{missing} does not exist"):
        EC2SnapshotManager(config, client=FakeEC2())


def test_volumes_must_not_be_empty():
    with pytest.raises(ValueError, match="volumes"):
        EC2SnapshotManager(make_config(volumes={}), client=FakeEC2())


def test_factory_returns_ec2_manager():
    assert isinstance(create_snapshot_manager(make_config(), client=FakeEC2()), EC2SnapshotManager)


# ── create ───────────────────────────────────────────────────────────────────

def test_create_snapshots_every_volume(log):
    client = FakeEC2()
    manager = EC2SnapshotManager(make_config(), client=client)

    failures = manager.create(log, today=datetime(2024, 3, 9))

    assert failures == []
    assert [c["VolumeId"] for c in client.created] == ["vol-web", "vol-db"]
    web = client.created[0]
    assert web["Description"] == "web-20240309"
    assert web["TagSpecifications"] == [{
        "ResourceType": "snapshot",
        "Tags": [{"Key": "Name", "Value": "web-20240309"}],
    }]
    assert "CREATED snapshot snap-new1 of vol-web" in log_text(log)


def test_create_failure_continues_with_next_volume(log):
    client = FakeEC2(fail_create={"vol-web"})
    manager = EC2SnapshotManager(make_config(), client=client)

    failures = manager.create(log)

    assert failures == ["vol-web"]
    assert [c["VolumeId"] for c in client.created] == ["vol-db"]
    assert "IncorrectState" in log_text(log)


# ── rotate ───────────────────────────────────────────────────────────────────

def rotation_client(**kwargs):
    return FakeEC2(snapshots=[
        ec2_snap("snap-w1", "vol-web", 1),
        ec2_snap("snap-w3", "vol-web", 3),
        ec2_snap("snap-d1", "vol-db", 1),
        ec2_snap("snap-w2", "vol-web", 2),
        ec2_snap("snap-w4", "vol-web", 4),
        ec2_snap("snap-x1", "vol-other", 1),
    ], **kwargs)


def test_rotate_deletes_all_but_newest(log):
    client = rotation_client()
    manager = EC2SnapshotManager(make_config(), client=client)

    manager.rotate(log)

    assert client.paginator.kwargs == {"OwnerIds": ["123456789012"]}
    assert client.deleted == ["snap-w2", "snap-w1"]
    text = log_text(log)
    assert "KEEPING 2/2" in text and "snap-w4" in text
    assert "KEEPING 1/2" in text
    assert "DELETED snapshot of web" in text


def test_rotate_ignores_unconfigured_volumes(log):
    client = rotation_client()
    EC2SnapshotManager(make_config(num_of_snapshots_to_keep=2), client=client).rotate(log)
    assert "snap-x1" not in client.deleted


def test_rotate_dry_run_never_deletes(log):
    client = rotation_client()
    manager = EC2SnapshotManager(make_config(rotate_dry_run=True), client=client)

    manager.rotate(log)

    assert client.deleted == []
    assert "DRY RUN delete snapshot of web" in log_text(log)
    assert "ID=snap-w1" in log_text(log)


def test_rotate_accepts_numeric_string(log):
    client = rotation_client()
    EC2SnapshotManager(make_config(num_of_snapshots_to_keep="3"), client=client).rotate(log)
    assert client.deleted == ["snap-w1"]


@pytest.mark.parametrize("keep", [1, 0, None, "two"])
def test_rotate_bad_keep_count_fails_before_any_call(log, keep):
    client = rotation_client()
    manager = EC2SnapshotManager(make_config(num_of_snapshots_to_keep=keep), client=client)
    with pytest.raises(ValueError):
        manager.rotate(log)
    assert client.paginator is None
    assert client.deleted == []


def test_rotate_missing_keep_count(log):
    config = make_config()
    del config["num_of_snapshots_to_keep"]
    manager = EC2SnapshotManager(config, client=rotation_client())
    with pytest.raises(ValueError, match="num_of_snapshots_to_keep does not exist"):
        manager.rotate(log)


def test_rotate_failed_deletion_is_fatal(log):
    client = rotation_client(fail_delete={"snap-w2"})
    manager = EC2SnapshotManager(make_config(), client=client)

    with pytest.raises(RuntimeError, match="FAILED DELETION of snapshot snap-w2"):
        manager.rotate(log)
    # snap-w1 comes after snap-w2 and is never attempted
    assert client.deleted == []


# ── list ─────────────────────────────────────────────────────────────────────

def test_list_groups_every_volume_newest_first():
    manager = EC2SnapshotManager(make_config(), client=rotation_client())

    listing = manager.list()

    assert list(listing) == ["vol-db", "vol-other", "vol-web"]
    assert [s["id"] for s in listing["vol-web"]] == ["snap-w4", "snap-w3", "snap-w2", "snap-w1"]
    assert listing["vol-db"][0]["description"] == "vol-db-1"


def test_describe_error_becomes_runtime_error(log):
    client = rotation_client()

    class DeniedPaginator:
        def paginate(self, **kwargs):
            raise FakeClientError("UnauthorizedOperation")
    client.get_paginator = lambda name: DeniedPaginator()
    manager = EC2SnapshotManager(make_config(), client=client)

    with pytest.raises(RuntimeError, match="FAILED to describe snapshots owned by .*UnauthorizedOperation"):
        manager.list()
    with pytest.raises(RuntimeError, match="UnauthorizedOperation"):
        manager.rotate(log)
    assert client.deleted == []
