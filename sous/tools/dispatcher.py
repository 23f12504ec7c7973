"""Tool dispatch: name lookup, argument decoding, execution, result folding."""

import json
import time
from typing import Any, Callable, Dict, Iterable, List

from .. import output
from ..conversation import ToolCallRequest, ToolResult
from ..errors import ToolArgumentError, ToolError, ToolExecutionError
from ..logger import get_logger
from .file_ops import FileOperationError
from .registry import ParameterSpec, ToolDefinition, ToolRegistry

_log = get_logger(__name__)


def _decode_string(tool: str, param: ParameterSpec, value: Any) -> str:
    if not isinstance(value, str):
        raise ToolArgumentError(
            tool, f"parameter '{param.name}' must be a string, got {type(value).__name__}")
    return value


# Declared parameter type -> decoder
_DECODERS: Dict[str, Callable[[str, ParameterSpec, Any], Any]] = {
    "string": _decode_string,
}


def decode_arguments(definition: ToolDefinition, raw_arguments: str) -> Dict[str, Any]:
    """Decode a raw JSON argument bag against the tool's declared parameters."""
    name = definition.name
    text = (raw_arguments or "").strip() or "{}"
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(name, f"failed to decode arguments: {e}") from e
    if not isinstance(payload, dict):
        raise ToolArgumentError(name, "arguments must be a JSON object")

    decoded: Dict[str, Any] = {}
    for param in definition.parameters:
        if param.name not in payload or payload[param.name] is None:
            if param.required:
                raise ToolArgumentError(name, f"missing required parameter '{param.name}'")
            continue
        decoder = _DECODERS.get(param.type)
        if decoder is None:
            raise ToolArgumentError(name, f"unsupported parameter type '{param.type}'")
        decoded[param.name] = decoder(name, param, payload[param.name])
    return decoded


class ToolDispatcher:
    def __init__(self, registry: ToolRegistry, echo: bool = True):
        self.registry = registry
        self.echo = echo

    def execute(self, name: str, raw_arguments: str) -> str:
        """Run one tool call.

        Unknown tools are not an error: the model is told so it can adapt.
        Raises ToolArgumentError or ToolExecutionError otherwise.
        """
        definition = self.registry.resolve(name)
        if definition is None:
            _log.info("Tool not found: %s", name)
            return f"tool '{name}' not found"

        args = decode_arguments(definition, raw_arguments)
        try:
            return definition.handler(args)
        except ToolError:
            raise
        except (FileOperationError, OSError) as e:
            raise ToolExecutionError(name, str(e)) from e
        except Exception as e:
            raise ToolExecutionError(name, f"{type(e).__name__}: {e}") from e

    def dispatch(self, calls: Iterable[ToolCallRequest]) -> List[ToolResult]:
        """Execute every call sequentially; failures become failed results."""
        results: List[ToolResult] = []
        for call in calls:
            if self.echo:
                output.print_tool_call(call.name, call.raw_arguments or "{}")
            t0 = time.monotonic()
            try:
                text = self.execute(call.name, call.raw_arguments)
                result = ToolResult(call.name, text, call_id=call.id)
            except ToolError as e:
                _log.warning("Tool %s failed: %s", call.name, e)
                result = ToolResult(call.name, e.output, failed=True,
                                    error=e.message, call_id=call.id)
            _log.info("Tool %s finished in %.2fs", call.name, time.monotonic() - t0)
            if self.echo:
                output.print_tool_result(result.render(), failed=result.failed)
            results.append(result)
        return results
