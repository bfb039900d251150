"""
Subject Directory
=================
The host application's record of which email each subject has verified.
"""

from typing import Dict, Optional, Protocol

from otpguard.errors import DirectoryUnavailableError


class SubjectDirectory(Protocol):
    """External collaborator owning the subject's email field."""

    async def get_verified_email(self, subject_id: str) -> Optional[str]:
        """Return the subject's verified email, if any."""
        ...

    async def is_email_taken(self, email: str, subject_id: str) -> bool:
        """True if another subject already owns this email."""
        ...

    async def apply_verified_email(self, subject_id: str, email: str) -> None:
        """Bind a freshly verified email to the subject."""
        ...


class InMemorySubjectDirectory:
    """
    Dictionary-backed directory.

    For development and testing only.
    """

    def __init__(self, emails: Optional[Dict[str, str]] = None):
        self._emails: Dict[str, str] = dict(emails or {})

    async def get_verified_email(self, subject_id: str) -> Optional[str]:
        return self._emails.get(subject_id)

    async def is_email_taken(self, email: str, subject_id: str) -> bool:
        return any(
            owner != subject_id and bound == email
            for owner, bound in self._emails.items()
        )

    async def apply_verified_email(self, subject_id: str, email: str) -> None:
        self._emails[subject_id] = email


async def call_directory(method, *args):
    """Await a directory method; any failure surfaces as DirectoryUnavailableError."""
    try:
        return await method(*args)
    except Exception as e:
        raise DirectoryUnavailableError(
            f"{getattr(method, '__name__', 'directory')} failed: {type(e).__name__}"
        ) from e
