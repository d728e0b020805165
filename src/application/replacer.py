import re

from src.domain.models import ReplacementResult


def replace_username(content: str, old_username: str, new_username: str) -> ReplacementResult:
    """
    Replaces every exact, case-sensitive occurrence of ``old_username``.

    The old username is escaped before compiling, so it always matches
    literally. Matches are non-overlapping and resolved left to right.

    Args:
        content (str): File text.
        old_username (str): Literal text to look for.
        new_username (str): Replacement text, inserted verbatim.

    Returns:
        ReplacementResult: The new text and the number of replacements made.
    """
    if not old_username:
        return ReplacementResult(new_content=content, count=0)

    pattern = re.compile(re.escape(old_username))
    # A callable replacement keeps backslashes in the new name from being read as group references
    new_content, count = pattern.subn(lambda _match: new_username, content)

    return ReplacementResult(new_content=new_content, count=count)
