# agentgraph/tools.py
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from .models import NodeResult, ToolRequest

logger = logging.getLogger(__name__)

TOOLS: Dict[str, Callable] = {}


def register_tool(name: str, registry: Optional[Dict[str, Callable]] = None):
    target = TOOLS if registry is None else registry

    def decorator(fn):
        target[name] = fn
        return fn
    return decorator


def pending_tool_calls(state: Dict[str, Any]) -> List[ToolRequest]:
    """Tool requests attached to the last message, if it is an assistant message."""
    messages = state.get("messages") or []
    if not messages:
        return []
    last = messages[-1]
    if last.get("role") != "assistant":
        return []
    return [ToolRequest.model_validate(call) for call in last.get("tool_calls") or []]


def tools_condition(state: Dict[str, Any]) -> str:
    return "tools" if pending_tool_calls(state) else "end"


def make_tool_node(registry: Optional[Dict[str, Callable]] = None) -> Callable:
    """Node that runs the pending tool calls and appends one ``tool`` message per call.

    A failing or unknown tool becomes an error message in state rather than
    failing the run, so the model can see it and react.
    """
    tools = TOOLS if registry is None else registry

    async def run_tools(state: Dict[str, Any]) -> NodeResult:
        results = []
        for call in pending_tool_calls(state):
            fn = tools.get(call.name)
            if fn is None:
                results.append({"role": "tool", "tool_call_id": call.id, "name": call.name, "error": f"unknown tool {call.name!r}"})
                continue
            try:
                output = fn(**call.args)
                if inspect.isawaitable(output):
                    output = await output
            except Exception as e:
                logger.warning(f"tool {call.name} failed: {e}")
                results.append({"role": "tool", "tool_call_id": call.id, "name": call.name, "error": str(e)})
                continue
            results.append({"role": "tool", "tool_call_id": call.id, "name": call.name, "content": output})
        return NodeResult(update={"messages": results}, log=f"ran {len(results)} tool call(s)")

    return run_tools


# Code-review tools (rule-based helpers)
@register_tool("detect_smells")
def detect_smells(code: str) -> Dict[str, Any]:
    issues = 0
    if "TODO" in code:
        issues += 1
    if "print(" in code:
        issues += 1
    if len(code.splitlines()) > 200:
        issues += 2
    return {"issues": issues}


@register_tool("compute_complexity")
def compute_complexity(code: str) -> Dict[str, Any]:
    # naive: one plus the number of branch keywords
    score = 1
    for kw in ("if ", "for ", "while ", "try:", "except"):
        score += code.count(kw)
    return {"complexity": score}
