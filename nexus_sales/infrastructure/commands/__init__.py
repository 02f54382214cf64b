from .dispatcher import (
    CommandDispatcher,
    CommandError,
    CommandRequest,
    CommandResult,
    parse_command,
)

__all__ = ["CommandDispatcher", "CommandError", "CommandRequest", "CommandResult", "parse_command"]
