import asyncio
import inspect
import json
import logging
import re
import types
from typing import Any, Callable, Literal, Union, get_args, get_origin

from pydantic import BaseModel, Field

from fleetassist.context import Context
from fleetassist.errors import ToolArgumentError, ToolHandlerError
from fleetassist.instrumentation import record_error, tool_span
from fleetassist.message import Message, MessageRole
from fleetassist.streaming import ToolCall

logger = logging.getLogger(__name__)

# parameters the registry fills in itself; never shown to the model
_INJECTED_PARAMS = ("context",)

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    tuple: "array",
    set: "array",
}


class ToolCallResult(BaseModel):
    tool_name: str
    output: Any = None


class ToolResult(BaseModel):
    """Outcome of one dispatched tool call. Always produced, never raised."""

    tool_call_id: str
    success: bool
    payload: Any = None

    def to_message(self) -> Message:
        return Message(
            role=MessageRole.TOOL,
            content=json.dumps(self.payload, default=str),
            tool_call_id=self.tool_call_id,
        )


def _json_schema_for(annotation: Any) -> dict:
    if annotation is inspect.Parameter.empty:
        return {"type": "string"}
    origin = get_origin(annotation)
    if origin is Literal:
        values = list(get_args(annotation))
        return {"type": _JSON_TYPES.get(type(values[0]), "string"), "enum": values}
    if origin in (Union, types.UnionType):
        inner = [a for a in get_args(annotation) if a is not type(None)]
        return _json_schema_for(inner[0]) if inner else {"type": "null"}
    if origin is not None:
        annotation = origin
    return {"type": _JSON_TYPES.get(annotation, "string")}


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Read parameter descriptions from a Google-style ``Args:`` section."""
    doc = inspect.getdoc(func)
    if not doc:
        return {}
    lines = doc.splitlines()
    try:
        start = next(i for i, line in enumerate(lines) if line.strip() == "Args:")
    except StopIteration:
        return {}

    descriptions: dict[str, list[str]] = {}
    current = None
    base_indent = None
    for line in lines[start + 1:]:
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip())
        if base_indent is None:
            base_indent = indent
        if indent < base_indent:
            break
        match = re.match(r"\s*(\w+)(?:\s*\([^)]*\))?:\s*(.*)", line)
        if indent == base_indent and match:
            current = match.group(1)
            descriptions[current] = [match.group(2).strip()]
        elif current is not None:
            descriptions[current].append(line.strip())
    return {name: "\n".join(parts) for name, parts in descriptions.items()}


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    signature = inspect.signature(func)
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in signature.parameters.items():
        if name in _INJECTED_PARAMS:
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        prop = _json_schema_for(param.annotation)
        prop["description"] = descriptions.get(name, "")
        properties[name] = prop
        if param.default is inspect.Parameter.empty:
            required.append(name)
    schema = {"type": "object", "properties": properties, "required": required}
    return schema, required


def _summary(func: Callable) -> str:
    doc = inspect.getdoc(func) or ""
    return doc.split("\n\n")[0].strip()


class Tool(BaseModel):
    # Define as fields but exclude from serialization
    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters_schema: dict = Field(default_factory=dict)
    model_config = {"arbitrary_types_allowed": True}

    def model_dump(self, **kwargs):
        """Override to return the function-calling schema instead of internal attributes"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    def model_dump_json(self, **kwargs):
        """Override JSON serialization"""
        return json.dumps(self.model_dump())

    @property
    def wants_context(self) -> bool:
        return "context" in inspect.signature(self.func).parameters

    async def __call__(self, **kwargs) -> ToolCallResult:
        output = self.func(**kwargs)
        if inspect.isawaitable(output):
            output = await output
        return ToolCallResult(tool_name=self.name, output=output)


def tool(func: Callable | None = None, *, name: str | None = None, description: str | None = None):
    """Turn a function into a :class:`Tool`.

    Usable bare (``@tool``) or with overrides
    (``@tool(name=..., description=...)``). The parameter schema comes
    from the signature; descriptions come from the docstring's ``Args:``
    section. A parameter named ``context`` receives the runtime
    :class:`~fleetassist.context.Context` and is hidden from the model.
    """
    def wrap(f: Callable) -> Tool:
        schema, _ = _build_parameters_schema(f)
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else _summary(f),
            parameters_schema=schema,
        )

    if func is not None:
        return wrap(func)
    return wrap


def _parse_arguments(arguments: str) -> dict:
    if not arguments.strip():
        return {}
    try:
        params = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"arguments are not valid JSON: {e.msg}") from e
    if not isinstance(params, dict):
        raise ToolArgumentError("arguments must be a JSON object")
    return params


def _normalize_payload(output: Any) -> Any:
    if isinstance(output, BaseModel):
        output = output.model_dump()
    if isinstance(output, dict):
        return output
    return {"result": output}


class ToolRegistry:
    """Maps tool names to handlers and turns tool calls into results.

    ``dispatch`` never raises for anything a handler or the model can get
    wrong: bad arguments, unknown names and handler exceptions all come
    back as a failed :class:`ToolResult` so the model can react.

    Args:
        tools: Tools to register up front.
        parallel: Run the handlers of a multi-call batch concurrently.
    """

    def __init__(self, tools: list[Tool] | None = None, parallel: bool = True):
        self.parallel = parallel
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t.name, t)

    def register(self, name: str, handler: Callable | Tool) -> Tool:
        """Register ``handler`` under ``name``.

        Raises:
            ValueError: If ``name`` is already registered.
        """
        if name in self._tools:
            raise ValueError(f"Duplicate tool name: '{name}'")
        if isinstance(handler, Tool):
            tool_obj = handler if handler.name == name else handler.model_copy(update={"name": name})
        else:
            tool_obj = tool(handler, name=name)
        self._tools[name] = tool_obj
        return tool_obj

    def add_capability(self, capability) -> None:
        for t in capability.tools():
            self.register(t.name, t)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [t.model_dump() for t in self._tools.values()]

    async def dispatch(self, call: ToolCall, context: Context | None = None) -> ToolResult:
        async with tool_span(call.name, call.id) as span:
            try:
                params = _parse_arguments(call.arguments)
            except ToolArgumentError as e:
                logger.warning(f"Invalid arguments for {call.name}: {e}")
                return ToolResult(
                    tool_call_id=call.id, success=False,
                    payload={"error": "invalid_arguments", "message": str(e)},
                )

            tool_obj = self._tools.get(call.name)
            if tool_obj is None:
                logger.warning(f"Tool not found: {call.name}")
                return ToolResult(
                    tool_call_id=call.id, success=False,
                    payload={"error": "unknown_tool", "message": f"No tool named '{call.name}'"},
                )

            if tool_obj.wants_context:
                params["context"] = context

            logger.info(f"Calling {call.name} with {call.arguments}")
            try:
                result = await tool_obj(**params)
            except ToolHandlerError as e:
                logger.info(f"Tool {call.name} reported failure: {e}")
                return ToolResult(
                    tool_call_id=call.id, success=False,
                    payload={"error": str(e)},
                )
            except Exception as e:
                logger.error(f"Tool {call.name} raised: {e}")
                record_error(span, e)
                return ToolResult(
                    tool_call_id=call.id, success=False,
                    payload={"error": str(e) or type(e).__name__},
                )

            payload = _normalize_payload(result.output)
            return ToolResult(
                tool_call_id=call.id,
                success="error" not in payload,
                payload=payload,
            )

    async def dispatch_all(
        self, calls: list[ToolCall], context: Context | None = None,
    ) -> list[ToolResult]:
        """Dispatch a batch; results come back in the order of ``calls``."""
        if self.parallel and len(calls) > 1:
            return list(await asyncio.gather(
                *(self.dispatch(c, context) for c in calls)
            ))
        return [await self.dispatch(c, context) for c in calls]
