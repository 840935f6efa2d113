"""LangGraph assistant behind the per-practice chat endpoint.

Architecture:
  A two-node StateGraph.

    1. **templates**  keyword resolver over the practice's facts (custom
                      Q&A pairs first); answers instantly when it matches
    2. **assistant**  ChatAnthropic with the practice system prompt and
                      the most recent turns of history

  Routing:
    templates → (matched?)   → END
    templates → (no match?)  → assistant → END

  Memory:
    Conversation state is kept per widget session via LangGraph's
    MemorySaver checkpoint, keyed by ``thread_id``. :class:`SessionThreads`
    caps how many threads it holds.

The landing-page demo does not need practice facts or memory, so it
streams straight from the fast model through :func:`make_demo_streamer`.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator, Sequence
from typing import Annotated

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from dgtl_dental.chat.facts import PracticeFacts
from dgtl_dental.chat.templates import resolver_for
from dgtl_dental.config import (
    ANTHROPIC_API_KEY,
    FAST_MODEL_NAME,
    HISTORY_MAX_MESSAGES,
    MAX_CHAT_SESSIONS,
    MODEL_NAME,
)
from dgtl_dental.prompts import get_demo_prompt, get_practice_prompt
from dgtl_dental.services.metrics import metrics

logger = logging.getLogger(__name__)

FactsProvider = Callable[[str], PracticeFacts]


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``clinic_id`` selects the practice whose facts ground both nodes.
    ``source`` is set by the templates node and read by the conditional
    edge; it records whether the last reply was templated or generated.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    clinic_id: str
    source: str


# ── LLM builders ────────────────────────────────────────────────────


def _build_llm() -> ChatAnthropic:
    """Build the model that answers practice questions."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.3,
        max_tokens=500,
    )


def _build_fast_llm() -> ChatAnthropic:
    """Build the cheaper model used by the streaming demo."""
    return ChatAnthropic(
        model=FAST_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.7,
        max_tokens=500,
        streaming=True,
    )


def _last_human_text(messages: Sequence[AnyMessage]) -> str:
    for msg in reversed(messages):
        if isinstance(msg, HumanMessage):
            return msg.content if isinstance(msg.content, str) else ""
    return ""


def _text_of(content) -> str:
    """Plain text from a message or chunk ``content`` (str or content blocks)."""
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "")
        for block in content or ()
        if isinstance(block, dict) and block.get("type") == "text"
    )


# ── Nodes ────────────────────────────────────────────────────────────


def _make_templates_node(facts_for: FactsProvider):
    def templates_node(state: AgentState) -> dict:
        """Answer from templates when a keyword rule matches."""
        facts = facts_for(state["clinic_id"])
        answer = resolver_for(facts).resolve(_last_human_text(state["messages"]))
        if answer is None:
            return {"source": "assistant"}
        logger.debug("Templated reply for %s", state["clinic_id"])
        return {"messages": [AIMessage(content=answer)], "source": "template"}

    return templates_node


def _make_assistant_node(facts_for: FactsProvider):
    """Create the assistant node; the client is built once and shared."""
    llm = _build_llm()

    def assistant_node(state: AgentState) -> dict:
        facts = facts_for(state["clinic_id"])
        system = SystemMessage(content=get_practice_prompt(facts))
        history = state["messages"][-HISTORY_MAX_MESSAGES:]
        t0 = time.perf_counter()
        try:
            response = llm.invoke([system] + history)
        except Exception as exc:
            metrics.record_failure(
                "anthropic", "assistant_invoke",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "assistant_invoke", latency_ms=elapsed)
        logger.debug("assistant (%s) responded in %.0fms", MODEL_NAME, elapsed)
        return {"messages": [response]}

    return assistant_node


# ── Conditional edges ────────────────────────────────────────────────


def route_after_templates(state: AgentState) -> str:
    return END if state.get("source") == "template" else "assistant"


# ── Graph assembly ───────────────────────────────────────────────────


def create_practice_agent(facts_for: FactsProvider):
    """Build and compile the practice assistant graph.

    Invoke with::

        graph.invoke(
            {"messages": [HumanMessage(content="...")], "clinic_id": "demo-clinic-123"},
            config={"configurable": {"thread_id": "session-123"}},
        )
    """
    graph = StateGraph(AgentState)
    graph.add_node("templates", _make_templates_node(facts_for))
    graph.add_node("assistant", _make_assistant_node(facts_for))

    graph.set_entry_point("templates")
    graph.add_conditional_edges(
        "templates", route_after_templates, {"assistant": "assistant", END: END},
    )
    graph.add_edge("assistant", END)

    compiled = graph.compile(checkpointer=MemorySaver())
    logger.debug("Practice agent compiled (model: %s)", MODEL_NAME)
    return compiled


class SessionThreads:
    """Bounds how many conversation threads the checkpointer keeps.

    Threads are tracked in least-recently-used order; touching one past
    ``max_threads`` deletes the oldest thread's checkpoints.
    """

    def __init__(self, checkpointer: BaseCheckpointSaver, max_threads: int = MAX_CHAT_SESSIONS):
        self._checkpointer = checkpointer
        self._max = max(1, max_threads)
        self._threads: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def touch(self, thread_id: str) -> None:
        with self._lock:
            self._threads[thread_id] = None
            self._threads.move_to_end(thread_id)
            evicted = []
            while len(self._threads) > self._max:
                oldest, _ = self._threads.popitem(last=False)
                evicted.append(oldest)
        for oldest in evicted:
            self._checkpointer.delete_thread(oldest)
            logger.debug("Evicted chat thread %s", oldest)

    def forget(self, thread_id: str) -> None:
        """Drop a thread's checkpoints once the conversation is over."""
        with self._lock:
            self._threads.pop(thread_id, None)
        self._checkpointer.delete_thread(thread_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._threads)


def reply_text(result: dict) -> str:
    """Text of the last message in a graph result ('' if there is none)."""
    messages = result.get("messages", [])
    if not messages:
        return ""
    return _text_of(getattr(messages[-1], "content", ""))


# ── Demo streaming ───────────────────────────────────────────────────


def make_demo_streamer() -> Callable[[str, Sequence[dict[str, str]]], Iterator[str]]:
    """Return a generator function that streams demo answers token by token."""
    llm = _build_fast_llm()

    def stream_demo_reply(message: str, history: Sequence[dict[str, str]] = ()) -> Iterator[str]:
        prompt: list[AnyMessage] = [SystemMessage(content=get_demo_prompt())]
        for turn in list(history)[-HISTORY_MAX_MESSAGES:]:
            cls = AIMessage if turn.get("role") == "assistant" else HumanMessage
            prompt.append(cls(content=turn.get("content", "")))
        prompt.append(HumanMessage(content=message))

        t0 = time.perf_counter()
        try:
            for chunk in llm.stream(prompt):
                text = _text_of(chunk.content)
                if text:
                    yield text
        except Exception as exc:
            metrics.record_failure(
                "anthropic", "demo_stream",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        metrics.record_success("anthropic", "demo_stream", latency_ms=(time.perf_counter() - t0) * 1000)

    return stream_demo_reply
