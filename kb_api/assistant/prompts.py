from enum import Enum


class AssistantAction(str, Enum):
    ANALYZE = "analyze"
    VALIDATE = "validate"
    SUGGEST_SIMILAR = "suggest_similar"


ANALYZE_SYSTEM = """You are an expert developer assistant that analyzes commands and code snippets.
Analyze the given command and provide suggestions in JSON format with these fields:
- suggestedTags: array of relevant tags (max 5, lowercase, single words when possible)
- category: main category (shell, git, docker, database, python, javascript, etc.)
- improvements: array of suggestions to improve the command (max 3)
- security_warnings: array of security concerns if any
- description: brief description if none provided or current one can be improved

Be concise and practical. Focus on real developer needs."""

VALIDATE_SYSTEM = """You are a command validation expert. Check the given command for:
1. Syntax errors
2. Common mistakes
3. Missing flags or options
4. Security issues
5. Best practices

Return JSON with:
- isValid: boolean
- issues: array of issues found
- suggestions: array of improvements
- severity: 'low', 'medium', 'high' for most critical issue"""

SUGGEST_SIMILAR_SYSTEM = """You are a developer productivity assistant. Based on the given command,
suggest 3-5 related commands that developers commonly use with it.

Return JSON with:
- similar_commands: array of objects with {command, description, tags}"""


def build_prompts(
    action: AssistantAction,
    command: str,
    title: str = "",
    description: str = "",
) -> tuple[str, str]:
    """Return the (system, user) prompt pair for ``action``."""
    if action is AssistantAction.ANALYZE:
        user = (
            f'Command: "{command}"\n'
            f'Title: "{title}"\n'
            f'Current Description: "{description or "None"}"\n\n'
            "Analyze this command and provide suggestions."
        )
        return ANALYZE_SYSTEM, user
    if action is AssistantAction.VALIDATE:
        return VALIDATE_SYSTEM, f'Validate this command: "{command}"'
    return (
        SUGGEST_SIMILAR_SYSTEM,
        f'Given this command: "{command}"\nSuggest related commands that developers often use.',
    )
