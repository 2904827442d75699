# agentgraph/workflows/code_review.py
import inspect
import re
from typing import Any, Callable, Dict, List

from ..edges import END
from ..engine import StateGraph
from ..models import NodeResult, ToolRequest
from ..tools import make_tool_node, pending_tool_calls, tools_condition

# Node and router functions addressable by name (used by the HTTP API)
NODES: Dict[str, Callable] = {}
ROUTERS: Dict[str, Callable] = {"tools_condition": tools_condition}


def node(fn):
    NODES[fn.__name__] = fn
    return fn


def router(fn):
    ROUTERS[fn.__name__] = fn
    return fn


@node
def extract_functions(state: Dict) -> NodeResult:
    """
    Expects state['code'] to be a string.
    Produces state['functions'] = list of {'name':..., 'code':...}
    Only top-level ``def`` blocks are picked up.
    """
    code = state.get("code", "")
    funcs = []
    for block in re.split(r"(?m)^(?=def )", code):
        block = block.strip()
        if not block.startswith("def "):
            # leading module code
            continue
        name = block.splitlines()[0][len("def "):].split("(")[0].strip()
        funcs.append({"name": name, "code": block})
    return NodeResult(update={"functions": funcs}, log=f"extracted {len(funcs)} function(s)")


def _trailing_tool_results(messages: List[Dict]) -> List[Dict]:
    results = []
    for message in reversed(messages):
        if message.get("role") != "tool":
            break
        results.append(message)
    return list(reversed(results))


class ReviewModel:
    """
    Rule-based stand-in for a chat model.

    First turn: request complexity and smell analysis for every function.
    Turn after tool results: score the code and suggest improvements.
    """

    def call(self, messages: List[Dict], functions: List[Dict]) -> Dict[str, Any]:
        results = _trailing_tool_results(messages)
        if not results and functions:
            calls = []
            for f in functions:
                calls.append(ToolRequest(name="compute_complexity", args={"code": f["code"]}).model_dump())
                calls.append(ToolRequest(name="detect_smells", args={"code": f["code"]}).model_dump())
            return {"role": "assistant", "content": f"analysing {len(functions)} function(s)", "tool_calls": calls}

        total_complexity = 0
        issues = 0
        for r in results:
            content = r.get("content") or {}
            total_complexity += content.get("complexity", 0)
            issues += content.get("issues", 0)
        quality_score = max(0, 100 - total_complexity * 5 - issues * 10)
        suggestions = []
        if issues > 0:
            suggestions.append("Fix TODOs and prints")
        if total_complexity > 10:
            suggestions.append("Refactor complex functions into smaller pieces")
        review = {
            "quality_score": quality_score,
            "complexity": total_complexity,
            "issues": issues,
            "suggestions": suggestions,
        }
        return {"role": "assistant", "content": f"quality score {quality_score}", "review": review}


def make_reviewer(model=None) -> Callable:
    model = model or ReviewModel()

    async def review_code(state: Dict) -> NodeResult:
        reply = model.call(state.get("messages") or [], state.get("functions") or [])
        if inspect.isawaitable(reply):
            reply = await reply
        update: Dict[str, Any] = {"messages": [reply]}
        review = reply.get("review")
        if review:
            update["quality_score"] = review["quality_score"]
            update["suggestions"] = review["suggestions"]
            return NodeResult(update=update, log=f"suggested improvements; score={review['quality_score']}")
        return NodeResult(update=update, log=f"requested {len(reply.get('tool_calls') or [])} tool call(s)")

    return review_code


NODES["review_code"] = make_reviewer()
NODES["run_tools"] = make_tool_node()


@node
def apply_fixes(state: Dict) -> NodeResult:
    """Plays the developer: drops TODO comments and turns prints into logging calls."""
    lines = []
    for line in state.get("code", "").splitlines():
        if "TODO" in line:
            continue
        lines.append(line.replace("print(", "logger.debug("))
    revision = state.get("revision", 0) + 1
    return NodeResult(
        update={
            "code": "\n".join(lines) + "\n",
            "revision": revision,
            "messages": [{"role": "user", "content": f"revision {revision} applied"}],
        },
        log=f"applied fixes (revision {revision})",
    )


@router
def route_review(state: Dict) -> str:
    if pending_tool_calls(state):
        return "tools"
    threshold = state.get("threshold", 80)
    quality = state.get("quality_score", 0)
    if quality >= threshold:
        return "done"
    if state.get("revision", 0) >= state.get("max_revisions", 2):
        return "done"
    return "revise"


def build_code_review_graph(model=None) -> StateGraph:
    """extract -> review <-> tools; review -> revise -> extract until the score is good enough."""
    graph = StateGraph(reducers={"messages": "append"})
    graph.add_node("extract", extract_functions)
    graph.add_node("review", make_reviewer(model) if model is not None else NODES["review_code"])
    graph.add_node("tools", NODES["run_tools"])
    graph.add_node("revise", apply_fixes)
    graph.set_entry_point("extract")
    graph.add_edge("extract", "review")
    graph.add_conditional_edges("review", route_review, {"tools": "tools", "revise": "revise", "done": END})
    graph.add_edge("tools", "review")
    graph.add_edge("revise", "extract")
    return graph


SAMPLE_CODE = (
    "def foo(x):\n    # TODO: fix this\n    if x > 0:\n        print(x)\n\n"
    "def bar(y):\n    for i in range(y):\n        if i % 2 == 0:\n            print(i)\n"
)
