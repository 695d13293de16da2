"""Errors raised while building and accessing the DG containers.

None of these are recoverable: each one signals a broken invariant in an
upstream collaborator (adaptation policy, partitioner) or a programming
defect, and carries enough context to find it.
"""


class TopologyInvariantViolation(ValueError):
    """A face couples cells more than one level apart, or a face has zero or
    several couplings."""


# Name used by the adaptation code path
AdaptationInvariantViolation = TopologyInvariantViolation


class DistributedConsistencyError(RuntimeError):
    """Partitions disagree on their shared couplings, or the exchange failed."""


class IndexRangeError(IndexError):
    """Container access outside [0, count)."""
