"""
Type definitions shared by the loops, the managers, and the CLI.

Some stdlib classes are generics only in the type stubs, not at runtime
(e.g. ``logging.LoggerAdapter``), so they are aliased differently
for the type-checkers and for the interpreter.
"""
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Any of the built-in loggable classes: the loops only call the usual logging methods.
Logger = Union[logging.Logger, LoggerAdapter]

# A task is anything callable with no arguments: a sync function or a coroutine function.
# Its result, if any, is ignored by the loops (except for the polling conditions).
Task = Callable[[], Union[None, Awaitable[None]]]
Condition = Callable[[], Union[object, Awaitable[object]]]
