from typing import Iterable, List

from src.domain.models import TreeEntry

# Conventional extension-less documents (matched anywhere in the uppercased basename)
DOCUMENT_NAMES = ("README", "LICENSE", "CHANGELOG", "CONTRIBUTING")

TEXT_EXTENSIONS = (
    ".md", ".json", ".js", ".ts", ".jsx", ".tsx",
    ".yml", ".yaml", ".html", ".css", ".txt",
    ".env", ".gitignore", ".npmrc", ".sh",
    ".py", ".toml", ".rst", ".cfg", ".ini",
)


def is_eligible(path: str) -> bool:
    """
    Decides whether a repository path is worth fetching as text.
    Never raises; anything not recognised is ineligible.
    """
    if not isinstance(path, str):
        return False

    basename = path.rsplit("/", 1)[-1]
    if "." not in basename:
        upper = basename.upper()
        return any(name in upper for name in DOCUMENT_NAMES)

    return basename.lower().endswith(TEXT_EXTENSIONS)


def filter_eligible(entries: Iterable[TreeEntry]) -> List[TreeEntry]:
    """Keeps eligible blobs, preserving tree order."""
    return [entry for entry in entries if entry.is_blob and is_eligible(entry.path)]
