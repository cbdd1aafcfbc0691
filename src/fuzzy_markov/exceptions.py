"""Exception hierarchy for fuzzy_markov.

Construction problems (bad alphabet size or state count) are reported with
plain ``ValueError`` like the rest of the numeric code. The classes here cover
the cases a caller may want to catch separately.
"""


class FuzzyMarkovError(Exception):
    """Base class shared by every exception raised by the package."""


class DeserializationError(FuzzyMarkovError, ValueError):
    """Persisted block data could not be decoded.

    No partially constructed block is ever returned alongside this error.
    """


class ContractViolationError(FuzzyMarkovError, RuntimeError):
    """The calling sequence used a step result in a way it cannot support."""


class GraphConsumedError(ContractViolationError):
    """Gradients were propagated twice through the same step result."""
