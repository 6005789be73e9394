from .patterns import PatternBuilder, TripPattern
from .snapshotter import FeedSnapshotter, SnapshotResult

__all__ = ["FeedSnapshotter", "PatternBuilder", "SnapshotResult", "TripPattern"]
