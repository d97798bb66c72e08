"""
Decision prompts.
System prompt and hint blocks for the LLM-backed decision provider.
"""

from ..core.models import CapabilityHints


DECISION_SYSTEM_PROMPT = """You are an autonomous web exploration agent. Your task is to analyze the current page state and decide actions.

Available Tools:
- clickElement: Click on a button, link, or interactive element
- typeText: Type text into an input field
- selectOption: Select an option from a dropdown

Current Page State:
{snapshot}

Action History:
{history}
{hints}

Instructions:
1. Analyze the actionable elements on the page (only elements not tried yet are shown)
2. NEVER select elements marked as DISABLED - they cannot be clicked and will cause errors
3. Prefer specific selectors (like IDs) when a selector may match several elements
4. You can return a SINGLE action OR MULTIPLE actions for batch execution
5. For forms and multi-step interactions, return multiple actions to execute them together
6. If you've reached a natural endpoint, respond with "FLOW_END"
7. Format your response as JSON:
   - Single action: {{"tool": "clickElement|typeText|selectOption", "selector": "...", "text": "...", "value": "..."}}
   - Multiple actions: {{"actions": [{{"tool": "...", "selector": "..."}}, {{"tool": "...", "selector": "..."}}]}}
   - End flow: {{"status": "FLOW_END"}}

Be concise and focus on exploring new paths. Batch related actions together when possible."""


DECISION_USER_PROMPT = "What is the next action I should take?"


def build_credentials_hint(username: str, password: str) -> str:
    """Hint telling the model it may log in with the given credentials."""
    if not username or not password:
        return ""

    return f"""

CREDENTIALS AVAILABLE FOR LOGIN:
If you see a login form (username and password input fields), return the login steps as one batch:
{{"actions": [
  {{"tool": "typeText", "selector": "#username", "text": "{username}"}},
  {{"tool": "typeText", "selector": "#password", "text": "{password}"}},
  {{"tool": "clickElement", "selector": "button[type='submit']"}}
]}}"""


def build_modal_hint(hints: CapabilityHints) -> str:
    """Strategy for working through an open modal before leaving it."""
    if not hints.modal_present or not hints.modal_targets:
        return ""

    lines = ["", "", "MODAL INTERACTION STRATEGY:"]
    if hints.interacted_modal_targets:
        lines.append(f"- You have previously interacted with these modal elements: {', '.join(hints.interacted_modal_targets)}")
        lines.append("- CONTINUE with the modal you started working with (deep flow)")
        lines.append("- Explore all interactive elements within the modal before closing it")
    else:
        lines.append("- Start interacting with modal elements (forms, buttons, inputs, etc.)")

    if hints.modal_close_targets:
        lines.append(f"- When you finish with the modal, close it using: {' or '.join(hints.modal_close_targets)}")
    else:
        lines.append("- When you finish with the modal, look for close buttons (X, Close, Cancel, etc.)")
    return "\n".join(lines)


def build_section_hint(hints: CapabilityHints) -> str:
    """Breadth-first guidance from section coverage."""
    if not hints.section_coverage or hints.section_coverage.startswith("No sections"):
        return ""

    lines = ["", "", "SECTION COVERAGE:", hints.section_coverage]
    if "/ (" not in hints.section_coverage:
        lines.append("- Root/home page (/) has not been visited yet - consider exploring it")
    lines.append("- Prioritize different URL path patterns (breadth-first) before going deep into one section")
    return "\n".join(lines)


def build_progress_hint(hints: CapabilityHints) -> str:
    return (
        "\n\nEXPLORATION PROGRESS:\n"
        f"- {hints.unexplored_count} unexplored actions remaining on this page\n"
        "- Choose actions that have not been tried yet"
    )


def build_decision_prompt(
    snapshot: str,
    history_tail: list[str],
    hints: CapabilityHints,
) -> str:
    """
    Assemble the full system prompt.

    Args:
        snapshot: Snapshot filtered to unexplored actions
        history_tail: Most recent history entries
        hints: Capability hints

    Returns:
        System prompt text
    """
    hint_text = ""
    if hints.credentials:
        hint_text += build_credentials_hint(hints.credentials.username, hints.credentials.password)
    hint_text += build_modal_hint(hints)
    hint_text += build_section_hint(hints)
    hint_text += build_progress_hint(hints)

    return DECISION_SYSTEM_PROMPT.format(
        snapshot=snapshot,
        history="\n".join(history_tail) or "(none yet)",
        hints=hint_text,
    )
