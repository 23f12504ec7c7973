"""Tool registry: fixed catalog of tool schemas and handlers."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import RegistryError
from .file_ops import FileOps
from .shell import ShellExecutor

Handler = Callable[[Dict[str, str]], str]


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    description: str
    type: str = "string"
    required: bool = True


@dataclass(frozen=True)
class ToolDefinition:
    """Single tool registration: name + description + parameters + handler."""
    name: str
    description: str
    parameters: Tuple[ParameterSpec, ...]
    handler: Handler

    @property
    def schema(self) -> dict:
        """OpenAI-compatible function schema."""
        return _schema(
            self.name,
            self.description,
            {p.name: {"type": p.type, "description": p.description} for p in self.parameters},
            [p.name for p in self.parameters if p.required],
        )


def _schema(name: str, description: str, properties: dict,
            required: list) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


# Shorthand helper for required string parameters
_S = lambda name, desc: ParameterSpec(name, desc)


class ToolRegistry:
    """Read-only after construction. Duplicate names are rejected up front."""

    def __init__(self, definitions: Iterable[ToolDefinition]):
        tools: Dict[str, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in tools:
                raise RegistryError(f"duplicate tool name: {definition.name}")
            seen = set()
            for param in definition.parameters:
                if param.name in seen:
                    raise RegistryError(
                        f"duplicate parameter '{param.name}' in tool {definition.name}")
                seen.add(param.name)
            tools[definition.name] = definition
        self._tools = MappingProxyType(tools)

    def list(self) -> Tuple[ToolDefinition, ...]:
        return tuple(self._tools.values())

    def resolve(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def schemas(self) -> List[dict]:
        return [d.schema for d in self._tools.values()]

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)


def build_default_registry(project_root: str, blocked_commands: Sequence[str] = None,
                           command_timeout: Optional[int] = None) -> ToolRegistry:
    """Register all tools; single source of truth for schema + handler."""
    f = FileOps(project_root)
    shell = ShellExecutor(project_root, blocked_commands, command_timeout)
    T = ToolDefinition

    return ToolRegistry([
        T("readFile",
          "Read the contents of a given relative file path. Use this when you want to see "
          "what's inside a file. Do not use this with directory names.",
          (_S("filePath", "The relative path of a file in the working directory."),),
          lambda a: f.read_file(a["filePath"])),
        T("shell",
          "Use the shell to execute common linux commands for file manipulation and analysis.",
          (_S("command", "The shell command you want to execute."),),
          lambda a: shell.execute(a["command"])),
        T("writeFile",
          "Write the contents to a file at a given path. Overwrites existing content. "
          "Use with caution.",
          (_S("filePath", "The relative path of the file."),
           _S("content", "The full content to write.")),
          lambda a: f.write_file(a["filePath"], a["content"])),
        T("searchFile",
          "Search for a string in a file. Returns every line that contains it.",
          (_S("filePath", "The relative path of the file."),
           _S("query", "The string to search for.")),
          lambda a: f.search_file(a["filePath"], a["query"])),
        T("listFiles",
          "List files in a directory. Directories end with '/'.",
          (_S("dirPath", "The path of the directory to list."),),
          lambda a: f.list_files(a["dirPath"])),
        T("createFile",
          "Create a new file with the given content. Parent directories are created.",
          (_S("filePath", "The path of the new file."),
           _S("content", "The content of the new file.")),
          lambda a: f.create_file(a["filePath"], a["content"])),
    ])
