"""
User Story Generation.
Reads the recorded state graph of a session back as user stories through the LLM.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from ..core.errors import StoryGenerationFailure
from ..core.models import StoryTransition, UserStories, UserStory
from ..llm.provider import LLMProvider, LLMRequest, TokenUsage, get_llm_provider


logger = logging.getLogger(__name__)


EMPTY_GRAPH_SUMMARY = "No exploration data found for this session."

USER_STORY_SYSTEM_PROMPT = """You are an expert at analyzing web application exploration data and generating user stories.

Given a graph of page states and the transitions between them, identify the meaningful user flows
and describe each one as a user story.

Rules:
1. Each story follows one coherent goal (signing in, creating a record, browsing a catalog...)
2. Steps are short imperative sentences a tester could follow
3. The flow lists the transitions the story uses, with "from" and "to" copied exactly from the data
   and "action" copied exactly from the transition label
4. Skip transitions marked [failed] unless the failure is the point of the story

Respond with a single JSON object:
{
  "stories": [
    {
      "title": "Short title",
      "description": "As a user, I want to ... so that ...",
      "steps": ["Step 1", "Step 2"],
      "flow": [{"from": "state id", "to": "state id", "action": "transition label"}]
    }
  ],
  "summary": "One paragraph about what the application offers"
}"""

USER_STORY_USER_PROMPT = """Analyze the following exploration data and generate user stories:

{graph}

Generate comprehensive user stories based on this exploration data."""

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def describe_graph(graph: dict[str, Any]) -> str:
    """
    Render a recorded graph as prompt text.

    Args:
        graph: ``{"nodes": [...], "edges": [...]}`` as returned by the FSM store

    Returns:
        State and transition listing
    """
    nodes = graph.get("nodes", [])
    edges = graph.get("edges", [])

    lines = [f"States ({len(nodes)}):"]
    for node in nodes:
        lines.append(f"- {node['id']}: {node.get('url') or '(unknown url)'} ({node.get('actions', 0)} actions)")

    lines.append("")
    lines.append(f"Transitions ({len(edges)}):")
    for edge in edges:
        line = f"- {edge['from']} → {edge.get('to') or '(unobserved)'} (via: {edge['action']})"
        if not edge.get("success", True):
            line += " [failed]"
        lines.append(line)

    return "\n".join(lines)


def fallback_stories(graph: dict[str, Any]) -> UserStories:
    """One story walking every recorded transition in order."""
    edges = graph.get("edges", [])
    story = UserStory(
        title="Exploration Flow",
        description="User journey through the application as it was explored",
        steps=[edge["action"] for edge in edges],
        flow=[
            StoryTransition(from_state=edge["from"], to_state=edge.get("to"), action=edge["action"])
            for edge in edges
        ],
    )
    return UserStories(
        stories=[story],
        summary=f"Explored {len(graph.get('nodes', []))} states with {len(edges)} transitions.",
    )


class UserStoryGenerator:
    """
    Turns recorded exploration graphs into user stories.
    The LLM client is built on first use, so a server without API keys still starts.
    """

    def __init__(
        self,
        llm_provider: LLMProvider | None = None,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ):
        self._llm = llm_provider
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._usage = TokenUsage()

    @property
    def llm(self) -> LLMProvider:
        if self._llm is None:
            try:
                self._llm = get_llm_provider()
            except ValueError as e:
                raise StoryGenerationFailure(f"LLM not available: {e}") from e
        return self._llm

    @property
    def token_usage(self) -> dict[str, int]:
        return self._usage.as_dict()

    async def generate(self, graph: dict[str, Any]) -> UserStories:
        """
        Generate stories for one recorded graph.

        Args:
            graph: Nodes and edges of a session

        Returns:
            Generated stories; empty with an explanatory summary for an empty graph

        Raises:
            StoryGenerationFailure: LLM unavailable, failing, or replying without JSON
        """
        if not graph.get("nodes") or not graph.get("edges"):
            return UserStories(summary=EMPTY_GRAPH_SUMMARY)

        request = LLMRequest(
            system_prompt=USER_STORY_SYSTEM_PROMPT,
            user_prompt=USER_STORY_USER_PROMPT.format(graph=describe_graph(graph)),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        llm = self.llm
        try:
            response = await llm.complete(request)
        except Exception as e:
            raise StoryGenerationFailure(f"{llm.model_name} call failed: {e}") from e

        self._usage.add(response)
        logger.info(f"[STORIES] {llm.model_name} used {response.total_tokens} tokens")

        stories = self.parse(response.content, graph)
        stories.token_usage = {
            "prompt_tokens": response.prompt_tokens,
            "completion_tokens": response.completion_tokens,
            "total_tokens": response.total_tokens,
        }
        return stories

    def parse(self, content: str, graph: dict[str, Any]) -> UserStories:
        """
        Read the JSON object out of a reply.

        A reply whose JSON is malformed or mis-shaped falls back to a single
        story over all recorded transitions.

        Raises:
            StoryGenerationFailure: The reply has no JSON object at all
        """
        match = _OBJECT_RE.search(content or "")
        if not match:
            raise StoryGenerationFailure("LLM reply contained no JSON object")

        try:
            return UserStories.model_validate(json.loads(match.group()))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"[STORIES] Could not parse stories, using fallback: {e}")
            return fallback_stories(graph)
