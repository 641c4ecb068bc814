"""
Identity Service
Maps Figma display handles to the email addresses configured for them.
"""

from collections.abc import Iterable, Mapping

from figma_range_sync.infrastructure.observability.logging import get_logger
from figma_range_sync.models.domain.design_domain import Editor, VersionUser

logger = get_logger(__name__)


def normalize_handle(handle: str | None) -> str:
    return (handle or "").strip().lower()


class IdentityResolver:
    """
    Static handle -> email lookup.

    The table is normalized once at construction. When two configured names
    normalize to the same key, the first one wins.
    """

    def __init__(self, users: Mapping[str, str] | None = None):
        self._emails: dict[str, str] = {}
        for name, email in (users or {}).items():
            self._emails.setdefault(normalize_handle(name), email)

        logger.info("Identity resolver initialized", user_count=len(self._emails))

    def __len__(self) -> int:
        return len(self._emails)

    def resolve(self, handle: str | None) -> str | None:
        """Return the email for a handle, or None if it is not configured."""
        return self._emails.get(normalize_handle(handle))

    def resolve_editors(self, file_name: str, users: Iterable[VersionUser]) -> list[Editor]:
        """
        Resolve version authors to editors, skipping unknown handles.

        Args:
            file_name: File the authors edited, for diagnostics
            users: Distinct authors in discovery order

        Returns:
            list[Editor]: Editors with a configured email, same order
        """
        editors = []
        for user in users:
            email = self.resolve(user.handle)
            if email is None:
                logger.warning(
                    "Editor not found in identity table",
                    file_name=file_name,
                    handle=user.handle,
                    user_id=user.id,
                )
                continue

            logger.info("Editor resolved", file_name=file_name, handle=user.handle, email=email)
            editors.append(Editor(name=user.handle, email=email))
        return editors
