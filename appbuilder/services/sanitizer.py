# appbuilder/services/sanitizer.py

import re

FENCE = "```"

# ```lang\n ... ``` with the closing fence at the very end of the string
FENCED_BLOCK = re.compile(r"^```(?:[\w+.-]+)?\n([\s\S]*?)```\Z")
OPENING_FENCE = re.compile(r"^```(?:[\w+.-]+)?\n")
CLOSING_FENCE = re.compile(r"```\Z")


def needs_cleaning(content: str) -> bool:
    return bool(content) and content.startswith(FENCE)


def clean_content(content: str) -> str:
    """
    Unwrap source text that an LLM returned inside a Markdown code fence.
    Content that is not fenced comes back untouched. When the fence is
    truncated or malformed, the opening and closing markers are stripped
    independently. Never raises.
    """
    if not needs_cleaning(content):
        return content

    match = FENCED_BLOCK.match(content)
    if match and match.group(1):
        return match.group(1)

    # Weak fallback for truncated / inconsistently fenced output
    stripped = OPENING_FENCE.sub("", content, count=1)
    return CLOSING_FENCE.sub("", stripped, count=1)
