"""
Exception types raised across the router, graph and model tiers.
"""


class TabGraphError(Exception):
    """Base class for all router errors."""


class ModelNotLoadedError(TabGraphError):
    """A model tier was invoked before its model finished loading."""


class ModelInvocationError(TabGraphError):
    """The model endpoint failed after retries were exhausted."""


class ModelOutputError(TabGraphError):
    """Model output could not be parsed into a valid decision."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


class UnknownFunctionError(TabGraphError):
    """A function call named a function that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Function {name} not found")
        self.name = name


class FunctionArgumentError(TabGraphError):
    """A function call carried arguments that failed validation."""

    def __init__(self, name: str, detail: str):
        super().__init__(f"Invalid arguments for {name}: {detail}")
        self.name = name
        self.detail = detail


class TierTimeoutError(TabGraphError):
    """A tier did not answer within its time budget."""

    def __init__(self, tier: str, timeout_s: float):
        super().__init__(f"Tier '{tier}' timed out after {timeout_s:.1f}s")
        self.tier = tier
        self.timeout_s = timeout_s
