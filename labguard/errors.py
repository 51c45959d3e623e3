"""Exceptions raised by labguard components."""


class LabguardError(Exception):
    """Base exception for labguard errors."""
    pass


class ConfigError(LabguardError):
    """Configuration file or value is invalid."""
    pass


class ComparisonTooLargeError(LabguardError):
    """A tree comparison would exceed the configured subproblem budget."""

    def __init__(self, subproblems: int, limit: int):
        super().__init__(
            f"Comparison needs {subproblems} subproblems, limit is {limit}"
        )
        self.subproblems = subproblems
        self.limit = limit


class OrchestrationError(LabguardError):
    """A comparison task failed under the fail-fast policy."""

    def __init__(self, owner: str, cause: BaseException):
        super().__init__(f"Comparison against lab of {owner} failed: {cause}")
        self.owner = owner
        self.cause = cause


class StorageError(LabguardError):
    """The lab cache directory cannot be used."""
    pass


class TreeTooDeepError(LabguardError):
    """A tree is nested deeper than the distance engine accepts."""

    def __init__(self, height: int, limit: int):
        super().__init__(f"Tree has height {height}, limit is {limit}")
        self.height = height
        self.limit = limit
