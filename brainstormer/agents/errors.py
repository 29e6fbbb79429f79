"""Failure conditions of the external generator collaborator."""
from __future__ import annotations


class GeneratorError(RuntimeError):
    """Base class for generator failures."""


class GeneratorUnavailable(GeneratorError):
    """The generator call itself failed (network, timeout, non-2xx, missing credentials)."""


class GeneratorProtocolError(GeneratorError):
    """The generator answered, but not in a shape that can be coerced."""
