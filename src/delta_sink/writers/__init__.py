"""Table writers."""

from delta_sink.writers.commit_buffer import CommitResult, TableCommitBuffer

__all__ = ["TableCommitBuffer", "CommitResult"]
