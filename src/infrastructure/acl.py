import base64
import binascii
from typing import Any, Dict, List, Optional
from src.domain.models import CommitRecord, FileContent, RepositoryRef, TreeEntry

class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON responses into domain models.
    """

    @staticmethod
    def to_repository(raw_repo: Dict[str, Any]) -> RepositoryRef:
        """
        Transforms an item of the /user/repos listing into a RepositoryRef.

        Args:
            raw_repo (Dict[str, Any]): The raw JSON object from GitHub's REST response.

        Returns:
            RepositoryRef: The domain model instance representing the repository.
        """
        owner_data = raw_repo.get('owner') or {}

        name = raw_repo.get('name')
        if not name:
            raise ValueError("name is required to build RepositoryRef.")

        return RepositoryRef(
            owner=owner_data.get('login', ''),
            name=name,
            archived=bool(raw_repo.get('archived', False)),
            default_branch=raw_repo.get('default_branch') or 'main',
        )

    @staticmethod
    def to_tree_entries(raw_tree: Dict[str, Any]) -> List[TreeEntry]:
        """Keeps only the blob entries of a recursive git tree response, in tree order."""
        entries = [
            TreeEntry(path=item.get('path', ''), type=item.get('type', ''))
            for item in raw_tree.get('tree', [])
        ]
        return [entry for entry in entries if entry.is_blob]

    @staticmethod
    def to_file_content(raw_content: Any) -> Optional[FileContent]:
        """
        Decodes a contents API response.

        Returns None when the payload is not readable as text: a directory
        listing, a non-base64 encoding (GitHub answers ``none`` for large
        files), or bytes that are not valid UTF-8.
        """
        if not isinstance(raw_content, dict) or raw_content.get('type', 'file') != 'file':
            return None

        encoding = raw_content.get('encoding')
        if encoding != 'base64':
            return None

        try:
            raw_bytes = base64.b64decode(raw_content.get('content') or '')
            text = raw_bytes.decode('utf-8')
        except (binascii.Error, UnicodeDecodeError):
            return None

        return FileContent(
            path=raw_content.get('path', ''),
            content=text,
            sha=raw_content.get('sha'),
            encoding=encoding,
        )

    @staticmethod
    def to_commit_record(raw_response: Dict[str, Any]) -> CommitRecord:
        if not isinstance(raw_response, dict):
            raise ValueError("Commit response is not a JSON object.")
        commit_data = raw_response.get('commit') or {}
        return CommitRecord(
            sha=commit_data.get('sha', ''),
            message=commit_data.get('message', ''),
            html_url=commit_data.get('html_url'),
        )

    @staticmethod
    def encode_content(text: str) -> str:
        return base64.b64encode(text.encode('utf-8')).decode('ascii')
