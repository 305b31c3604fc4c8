"""Retention selection for volume snapshots.

Snapshots are plain dicts:

    {"id": "snap-0a1b", "volume_id": "vol-1234", "start_time": datetime(...),
     "description": "web-root-20240131"}

Pure functions only; deleting is the caller's job.
"""

MIN_KEEP_COUNT = 2


def check_keep_count(keep_count):
    if isinstance(keep_count, bool) or not isinstance(keep_count, int):
        raise ValueError(
            f"NEED TO PROVIDE NUMBER OF SNAPSHOTS TO KEEP >= {MIN_KEEP_COUNT}, got {keep_count!r}"
        )
    if keep_count < MIN_KEEP_COUNT:
        raise ValueError(
            f"NEED TO PROVIDE NUMBER OF SNAPSHOTS TO KEEP >= {MIN_KEEP_COUNT}, got {keep_count}"
        )
    return keep_count


def newest_first(snapshots):
    """Sort by start time, most recent first. Equal times fall back to id, also descending."""
    return sorted(snapshots, key=lambda s: (s["start_time"], s["id"]), reverse=True)


def select_retention(snapshots, keep_count):
    """Split snapshots into (retain, delete).

    retain holds the keep_count most recent snapshots, newest first; delete
    holds the rest, also newest first.
    """
    check_keep_count(keep_count)
    ordered = newest_first(snapshots)
    return ordered[:keep_count], ordered[keep_count:]


def group_by_volume(snapshots):
    """Map volume id → list of its snapshots, in input order."""
    grouped = {}
    for snapshot in snapshots:
        grouped.setdefault(snapshot["volume_id"], []).append(snapshot)
    return grouped
