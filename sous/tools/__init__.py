from .registry import ParameterSpec, ToolDefinition, ToolRegistry, build_default_registry
from .dispatcher import ToolDispatcher, decode_arguments
__all__ = ["ParameterSpec", "ToolDefinition", "ToolRegistry", "build_default_registry",
           "ToolDispatcher", "decode_arguments"]
