"""
Command Dispatcher - Routes Structured Commands to Handlers
============================================================

Commands arrive as strings shaped like:

    [Facebook][Post][ReadComments, 123456789012345]
    [Facebook][Comment][Reply, 123_456, Thanks for your interest!]

Routing:
    1. parse into App / Section / Action / attributes
    2. for Facebook commands sent with tokens, validate the tokens
    3. look up "App.Section.Action" in the configured function map
    4. find the handler registered for App
    5. find the mapped function on the handler (case-insensitive)
    6. bind attributes positionally, converting by annotation, and fill
       session parameters from the tokens
    7. invoke and wrap the outcome in a CommandResult

Nothing raised while routing or running a command escapes execute().
"""

import json
import inspect
import logging
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..audit import redact_secrets
from ..config import get_settings
from ..facebook import FacebookHandler, FacebookTokenValidator

logger = logging.getLogger(__name__)

# Handler parameter name -> token key supplying it
TOKEN_PARAMETERS = {
    "c_user_cookie": "c_user_token",
    "c_user_token": "c_user_token",
    "xs_cookie": "xs_token",
    "xs_token": "xs_token",
}
DEFAULT_REACTION_TYPE = 1


class CommandError(ValueError):
    """Raised when a command cannot be parsed or bound to a handler."""
    pass


@dataclass
class CommandRequest:
    """A parsed command, e.g. [Facebook][Post][ReadComments, PostID]."""
    app: str
    section: str
    action: str
    attributes: List[str] = field(default_factory=list)

    @property
    def function_key(self) -> str:
        return f"{self.app}.{self.section}.{self.action}"


@dataclass
class CommandResult:
    success: bool
    output: Optional[str] = None
    data: Any = None


def parse_command(command: str) -> CommandRequest:
    """Parse "[App][Section][Action, attr1, attr2...]" into a CommandRequest."""
    if not command:
        raise CommandError("Invalid command format. Expected at least [App][Section][Action,...]")

    parts = [p.strip() for p in command.replace("]", "[").split("[") if p.strip()]
    if len(parts) < 3:
        raise CommandError("Invalid command format. Expected at least [App][Section][Action,...]")

    action_and_attrs = [s.strip() for s in parts[2].split(",") if s.strip()]
    if not action_and_attrs:
        raise CommandError("Invalid command format. Action is missing.")

    return CommandRequest(
        app=parts[0],
        section=parts[1],
        action=action_and_attrs[0],
        attributes=action_and_attrs[1:],
    )


def _convert(value: str, annotation: Any, param_name: str) -> Any:
    """Convert a string attribute to the parameter's annotated type."""
    target = annotation
    if typing.get_origin(annotation) is typing.Union:
        non_none = [a for a in typing.get_args(annotation) if a is not type(None)]
        target = non_none[0] if len(non_none) == 1 else str

    if target in (inspect.Parameter.empty, str, Any):
        return value

    try:
        if target is bool:
            lowered = value.strip().lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise ValueError(value)
        if target in (int, float):
            return target(value.strip())
        if isinstance(target, type) and issubclass(target, int):
            return target(int(value.strip()))
    except ValueError as e:
        type_name = getattr(target, "__name__", str(target))
        raise CommandError(f"Failed to convert '{value}' to {type_name} for '{param_name}'") from e

    return value


class CommandDispatcher:
    """
    Central dispatcher for commands sent from the dashboard or API.

    Usage:
        dispatcher = CommandDispatcher()
        result = dispatcher.execute("[Facebook][Post][ExtractId, https://...]")
        result = dispatcher.execute(cmd, {"c_user_token": "...", "xs_token": "..."})
    """

    def __init__(
        self,
        handlers: Optional[Dict[str, Callable[[], Any]]] = None,
        function_map: Optional[Dict[str, str]] = None,
        token_validator: Optional[FacebookTokenValidator] = None,
    ):
        # App name (lower-case) -> factory producing the handler instance
        factories = handlers if handlers is not None else {"facebook": FacebookHandler}
        self._factories = {name.lower(): factory for name, factory in factories.items()}
        self._instances: Dict[str, Any] = {}
        self._function_map = function_map if function_map is not None else get_settings().commands.function_map
        self._token_validator = token_validator or FacebookTokenValidator()

    def _get_handler(self, app: str) -> Optional[Any]:
        key = app.lower()
        if key not in self._instances:
            factory = self._factories.get(key)
            if factory is None:
                return None
            self._instances[key] = factory()
        return self._instances[key]

    @staticmethod
    def _find_function(handler: Any, function_name: str) -> Optional[Callable]:
        wanted = function_name.lower()
        for name in dir(handler):
            if name.startswith("_") or name.lower() != wanted:
                continue
            candidate = getattr(handler, name)
            if callable(candidate):
                return candidate
        return None

    def _bind_arguments(
        self,
        function: Callable,
        attributes: List[str],
        tokens: Optional[Dict[str, str]],
    ) -> List[Any]:
        signature = inspect.signature(function)
        try:
            hints = typing.get_type_hints(function)
        except Exception:
            hints = {}

        args = []
        for index, param in enumerate(signature.parameters.values()):
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue

            if index < len(attributes):
                args.append(_convert(attributes[index], hints.get(param.name, param.annotation), param.name))
            elif tokens is not None and param.name in TOKEN_PARAMETERS:
                args.append(tokens.get(TOKEN_PARAMETERS[param.name]))
            elif tokens is not None and param.name == "reaction_type":
                raw = tokens.get("reactionType")
                args.append(_convert(raw, int, param.name) if raw else DEFAULT_REACTION_TYPE)
            elif param.default is not param.empty:
                args.append(param.default)
            else:
                logger.error(f"Missing required parameter: {param.name} [ErrorCode: CMD-MISSINGPARAM-004]")
                raise CommandError(
                    f"Missing parameter does not have a default value. Parameter name: {param.name}"
                )
        return args

    def execute(self, command: str, tokens: Optional[Dict[str, str]] = None) -> CommandResult:
        """Parse, route and run a command. Never raises."""
        try:
            request = parse_command(command)

            if tokens is not None and request.app.lower() == "facebook":
                valid, error = self._token_validator.validate_tokens(tokens)
                if not valid:
                    logger.warning(f"Token validation failed: {error} [ErrorCode: CMD-TOKEN-005]")
                    return CommandResult(success=False, output=f"Token validation failed: {error}")

            function_key = request.function_key
            function_name = self._function_map.get(function_key)
            if not function_name or not function_name.strip():
                logger.warning(f"Function mapping for '{function_key}' not found [ErrorCode: CMD-NOMAP-001]")
                return CommandResult(
                    success=False,
                    output=f"Function mapping for '{function_key}' not found in configuration.",
                )

            handler = self._get_handler(request.app)
            if handler is None:
                logger.error(f"Handler for '{request.app}' not implemented [ErrorCode: CMD-NOHANDLER-002]")
                return CommandResult(success=False, output=f"Handler for '{request.app}' not implemented.")

            function = self._find_function(handler, function_name)
            handler_name = type(handler).__name__
            if function is None:
                logger.error(
                    f"Function '{function_name}' not found in handler '{handler_name}' [ErrorCode: CMD-NOMETHOD-003]"
                )
                return CommandResult(
                    success=False,
                    output=f"Function '{function_name}' not found in handler '{handler_name}'.",
                )

            args = self._bind_arguments(function, request.attributes, tokens)
            result = function(*args)

            logger.info(f"Command executed successfully for '{function_key}'.")
            return CommandResult(success=True, output=_render_output(result), data=result)

        except Exception as e:
            message = redact_secrets(str(e))
            logger.error(f"Exception during command execution [ErrorCode: CMD-EXEC-GEN-001]: {message}")
            return CommandResult(success=False, output=f"Error executing command: {message}")


def _render_output(result: Any) -> Optional[str]:
    if result is None:
        return None
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)
