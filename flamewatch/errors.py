"""
Exceptions raised by flamewatch.
"""


class FlamewatchError(Exception):
    """Base class for flamewatch errors."""


class InvalidPattern(FlamewatchError):
    """A search pattern could not be compiled. Recoverable: shown as a transient message."""

    def __init__(self, pattern: str, reason: str = ""):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid regex: {pattern}")


class SamplerError(FlamewatchError):
    """The live sampler stopped with an unrecoverable status."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(
            f"py-spy sampler exited with error: {message}\n\n"
            "You likely need to rerun this program with sudo."
        )
