from src.desk_pilot.application.actions import describe_action_set
from src.desk_pilot.domain.models.screen import DescribeFocus

COMPLETE_MARKER = "TASK_COMPLETE:"
FAILED_MARKER = "TASK_FAILED:"

_SYSTEM_PROMPT = """You are a computer use agent. Complete the user's task by interacting with the desktop.

IMPORTANT RULES:
1. After each action, take a screenshot to verify the result
2. When you click a button, verify in the next screenshot that the click worked
3. If a dialog disappears after clicking, the action succeeded
4. Be precise with coordinates - click the center of buttons
5. Do NOT scroll unless necessary - most UI elements are already visible

AVAILABLE ACTIONS:
{actions}

When using hold_key for modifier+click combinations:
Example sequence: hold_key("shift") -> left_click (shift is released after the click)

VISUAL VERIFICATION (Critical):
After every significant action, take a screenshot and carefully evaluate:
- Did the action produce the expected result?
- Is the UI in the expected state?
- If not, try an alternative approach before giving up.
Look for visual confirmation: dialogs appearing/disappearing, text changing, selections highlighting.

When the task is complete, you MUST output exactly: {complete} <brief summary>
If you cannot complete the task, output exactly: {failed} <reason>

Be efficient and direct. Verify your actions worked before moving on."""

DESCRIBE_PROMPTS: dict[str, str] = {
    "ui": (
        "Describe clickable elements, buttons, inputs, links, and their approximate "
        "positions. Be precise about what can be interacted with."
    ),
    "text": "Extract and transcribe all readable text, organized by visual hierarchy.",
    "full": "Provide comprehensive description: layout, UI elements, text content, visual state.",
}


def build_system_prompt() -> str:
    return _SYSTEM_PROMPT.format(
        actions=describe_action_set(),
        complete=COMPLETE_MARKER,
        failed=FAILED_MARKER,
    )


def build_task_message(goal: str) -> dict:
    return {
        "role": "user",
        "content": (
            f"Task: {goal}\n\n"
            "Please complete this task. Start by taking a screenshot to see the current state."
        ),
    }


def build_describe_prompt(focus: DescribeFocus, question: str | None = None) -> str:
    if question:
        return f"Answer this question about the screenshot: {question}"
    return DESCRIBE_PROMPTS[focus]
