"""Writing generated artifacts to disk."""

from .committer import CommitError, OutputCommitter, blocking_path, write_bytes

__all__ = ["CommitError", "OutputCommitter", "blocking_path", "write_bytes"]
