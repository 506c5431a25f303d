"""
Exception types raised by texture_ops.

None of these describe transient conditions: the compute device is assumed to be
available once initialized, so every error here indicates a missing resource or a
caller bug and is raised immediately without retry.
"""


class TextureOpsError(Exception):
    """Base class for all texture_ops errors."""


class ResourceNotFound(TextureOpsError, LookupError):
    """A compute program or a kernel inside it could not be resolved."""

    def __init__(self, kind: str, name: str, program: str = ""):
        self.kind = kind
        self.name = name
        self.program = program
        where = f" in program '{program}'" if program else ""
        super().__init__(f"{kind} '{name}' not found{where}")


class InvalidOperation(TextureOpsError, ValueError):
    """An operation was called in a way its kernels cannot support."""


class ResourceLifecycleError(TextureOpsError, RuntimeError):
    """A device image was released twice or used after release."""


class DimensionMismatch(TextureOpsError, ValueError):
    """Images of inconsistent size were bound into one dispatch."""

    def __init__(self, message: str, expected=None, actual=None):
        self.expected = expected
        self.actual = actual
        if expected is not None and actual is not None:
            message = f"{message}: expected {expected[0]}x{expected[1]}, got {actual[0]}x{actual[1]}"
        super().__init__(message)
