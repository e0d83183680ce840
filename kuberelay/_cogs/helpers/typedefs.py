"""
Rudimentary type [re-]definitions for cross-versioned Python & mypy.

Some stdlib classes are generics in the type-sheds but not at runtime,
e.g. `logging.LoggerAdapter`; they are defined here in a reusable way.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Either a plain logger or a session-bound adapter (see `SessionLogger`).
Logger = Union[logging.Logger, LoggerAdapter]
