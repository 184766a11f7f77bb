from __future__ import annotations


class DarkRegionError(RuntimeError):
    """Base class for errors that abort a run."""


class ShardFailedError(DarkRegionError):
    """Raised when one shard worker fails; the whole run is aborted."""

    def __init__(self, shard_index: int, cause: BaseException) -> None:
        super().__init__(f"Shard {shard_index} failed: {cause.__class__.__name__}: {cause}")
        self.shard_index = int(shard_index)
        self.cause = cause
