"""
Input bag and session validation.

The input contract is closed-world: the caller must provide exactly the
model's declared inputs, by name, no more and no fewer.
"""

from collections.abc import Mapping
from typing import Any, Sequence

from .errors import (
    EmptyInputError,
    MalformedSessionError,
    MissingRequiredInputError,
    UnexpectedInputError,
    UnnamedInputError,
)


def validate_inputs(declared_inputs: Sequence[str], provided: Any) -> None:
    """
    Check that ``provided`` names exactly the declared inputs.

    Args:
        declared_inputs: Input names declared by the model, in order
        provided: Caller's input bag (must be a mapping of name -> value)

    Raises:
        EmptyInputError: If nothing was provided
        UnnamedInputError: If the bag is positional or has a non-string/empty key
        MissingRequiredInputError: For the first declared input not provided
        UnexpectedInputError: For the first provided input not declared
    """
    if provided is None:
        raise EmptyInputError()

    if not isinstance(provided, Mapping):
        if isinstance(provided, (list, tuple)) and not provided:
            raise EmptyInputError()
        raise UnnamedInputError(
            f"got positional {type(provided).__name__}; "
            f"provide a dict keyed by {list(declared_inputs)}"
        )

    if not provided:
        raise EmptyInputError()

    for key in provided:
        if not isinstance(key, str) or not key:
            raise UnnamedInputError(f"invalid input name {key!r}")

    for name in declared_inputs:
        if name not in provided:
            raise MissingRequiredInputError(name)

    declared = set(declared_inputs)
    for name in provided:
        if name not in declared:
            raise UnexpectedInputError(name)


def validate_session(session: Any) -> None:
    """
    Guard against a Session value that was not built by a successful load.

    Raises:
        MalformedSessionError: If input names, output names or model path are empty
    """
    if not getattr(session, "input_names", None):
        raise MalformedSessionError("Session has no declared inputs")
    if not getattr(session, "output_names", None):
        raise MalformedSessionError("Session has no declared outputs")
    if not getattr(session, "model_path", None):
        raise MalformedSessionError("Session has no model path")
