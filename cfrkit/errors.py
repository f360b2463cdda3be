"""Exception types raised by the solving engine."""


class CFRError(Exception):
    """Base class for all cfrkit errors."""


class InvariantError(CFRError, ValueError):
    """
    A violated invariant in the game tree or the policy table.

    Raised for malformed probability vectors, action-count mismatches
    between a node and its record, out-of-range sampled actions and
    unexpected terminal histories. These indicate a bug in the game
    implementation or the algorithm and are never recovered from.
    """


class SnapshotError(CFRError, ValueError):
    """Serialized record or policy table data is malformed."""
