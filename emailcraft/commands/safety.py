"""Allowlist of operations that may run without human approval."""

from ..models import AgentCommand

SAFE_PATCH_TARGETS = frozenset({
    "image_alt_text",
    "color_scheme",
    "email_compatibility",
})

SAFE_TOOLS = frozenset({"render_mjml"})


def is_safe_for_auto_execution(command: AgentCommand) -> bool:
    """Only low-risk markup fixes and re-renders are auto-executable."""
    if command.tool in SAFE_TOOLS:
        return True
    if command.tool == "patch_html":
        return command.parameters.get("target") in SAFE_PATCH_TARGETS
    return False
