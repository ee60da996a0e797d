"""
Read path: map a file identifier to servable content.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from .audit_log import AuditLog
from .content_store import ContentStore
from .database import PublicationStore
from .exceptions import ContentMissingInconsistency, StorageError
from .locks import KeyedLocks
from .models import ActionType, Publication, Requester

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Content:
    data: bytes
    mime_type: str
    publication: Publication


@dataclass(frozen=True)
class Gone:
    """The publication existed but is no longer the current version."""

    publication: Publication


@dataclass(frozen=True)
class NotFound:
    file_id: str


Resolution = Union[Content, Gone, NotFound]


class PublicationResolver:
    """
    Resolves public links.

    An actual publication whose content has disappeared is retired on the
    spot, so later requests answer "gone" without touching the content store.
    Retiring happens under the file_id lock that uploads hold until their
    content is written, so a publication is never retired mid-upload.
    """

    def __init__(
        self,
        store: PublicationStore,
        content: ContentStore,
        audit: AuditLog,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self.store = store
        self.content = content
        self.audit = audit
        self.locks = locks if locks is not None else KeyedLocks()

    def status(self, file_id: str) -> Optional[Publication]:
        """Return the stored row for a file identifier without side effects."""
        return self.store.get_by_file_id(file_id)

    def history(self, document_id: str) -> List[Publication]:
        """Return every publication of a document, newest first."""
        return self.store.list_by_document_id(document_id)

    def resolve(
        self,
        file_id: str,
        requester: Optional[Requester] = None,
        record_view: bool = True,
    ) -> Resolution:
        """
        Look up the content behind a public link.

        Args:
            file_id: Publication slot from the link
            requester: Caller details for the audit log
            record_view: Append the view entry before returning. Callers that
                schedule ``record_view`` themselves pass False.

        Returns:
            Content with bytes and mime type, Gone for retired publications
            (or actual ones whose content is missing), NotFound otherwise

        Raises:
            StorageError: If the store or the content store fails
        """
        publication = self.store.get_by_file_id(file_id)
        if publication is None:
            return NotFound(file_id)
        if not publication.is_actual:
            return Gone(publication)

        try:
            data = self.content.read(file_id)
        except ContentMissingInconsistency as exc:
            logger.warning(f"{exc}; retiring publication")
            self._retire_missing(publication)
            return Gone(publication)

        if record_view:
            self.record_view(file_id, requester)
        return Content(data=data, mime_type=publication.mime_type, publication=publication)

    def record_view(self, file_id: str, requester: Optional[Requester] = None) -> bool:
        return self.audit.record(ActionType.VIEW, requester=requester, file_id=file_id)

    def _retire_missing(self, publication: Publication) -> bool:
        """
        Mark an actual publication with no content as deleted.

        The row is only changed if it is still the one that was read: a
        re-upload that landed in the meantime refreshes date_of_creation and
        writes its content after its metadata, so it must not be retired.
        Failures are logged and ignored.

        Returns:
            True if the row was retired
        """
        file_id = publication.file_id
        with self.locks.hold(("file", file_id)):
            try:
                current = self.store.get_by_file_id(file_id)
                if (
                    current is None
                    or not current.is_actual
                    or current.date_of_creation != publication.date_of_creation
                ):
                    logger.info(f"Publication {file_id} changed while resolving; left as is")
                    return False
                if self.content.exists(file_id):
                    return False
                # Compare-and-set also covers writers in other processes
                retired = self.store.mark_deleted(file_id, if_created_at=publication.date_of_creation)
            except StorageError as exc:
                logger.warning(f"Could not retire publication {file_id}: {exc}")
                return False
        if not retired:
            logger.info(f"Publication {file_id} changed while resolving; left as is")
        return retired
