"""
Publication lifecycle engine.

This module decides what an incoming upload does to the publications that
already exist for its file identifier and its document identifier:

- created: first publication of a document
- overwritten: the same file identifier is uploaded again (typically the
  final QR-stamped PDF replacing the pending one); the public link is kept
- superseded: a new file identifier replaces the current version of a
  document; the old one is retired and its content removed

For every document at most one publication is ``actual`` at any time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .audit_log import AuditLog
from .content_store import ContentStore
from .database import PublicationStore, StoreSession
from .exceptions import InvalidRequest, StorageError
from .locks import KeyedLocks
from .models import (
    DEFAULT_MIME_TYPE,
    ActionType,
    FileType,
    Publication,
    PublicationStatus,
    Requester,
    UploadOutcome,
    UploadResult,
)
from .utils import build_public_link, is_storable_identifier

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"


class PublicationLifecycle:
    """
    Applies uploads to the publication store and the content store.

    Thread Safety:
        Uploads sharing a document_id are serialized by a per-document lock,
        so the metadata transition and the content write of one upload never
        interleave with another upload of the same document. The file_id lock
        is taken after the document lock and held through the content write;
        the resolver takes it before retiring a publication without content.
        The metadata transition itself runs in a single store transaction,
        which also serializes writers across processes.

    Attributes:
        store: Publication metadata store
        content: Blob storage for the documents
        audit: Audit log receiving upload and delete entries
        public_base_url: Base URL for public links; when unset, callers pass
            the request's base URL to ``apply``
        locks: Per-document and per-file_id locks, shared with the resolver
    """

    def __init__(
        self,
        store: PublicationStore,
        content: ContentStore,
        audit: AuditLog,
        public_base_url: Optional[str] = None,
        default_mime_type: str = DEFAULT_MIME_TYPE,
    ) -> None:
        self.store = store
        self.content = content
        self.audit = audit
        self.public_base_url = public_base_url
        self.default_mime_type = default_mime_type
        self.locks = KeyedLocks()

    def link_for(self, file_id: str, base_url: Optional[str] = None) -> str:
        return build_public_link(self.public_base_url or base_url or DEFAULT_BASE_URL, file_id)

    def apply(
        self,
        file_id: str,
        document_id: str,
        content: bytes,
        mime_type: Optional[str] = None,
        requester: Optional[Requester] = None,
        base_url: Optional[str] = None,
    ) -> UploadResult:
        """
        Publish ``content`` under ``file_id`` for ``document_id``.

        Decision order:
        1. A row exists for file_id: overwrite the slot. If the row is actual it
           becomes fulfilled; otherwise it is revived as actual/pending for
           document_id after retiring the document's current version.
        2. Else an actual row exists for document_id: retire it, remove its
           content (best-effort) and publish file_id as actual/pending.
        3. Else: publish file_id as actual/pending.

        Content is written only after the metadata transition has committed.

        Args:
            file_id: Publication slot; also the key of the public link
            document_id: Logical document the publication belongs to
            content: Document bytes
            mime_type: Content type; defaults to the configured default
            requester: Caller details for the audit log
            base_url: Request base URL, used when no public base URL is configured

        Returns:
            UploadResult with the outcome, the public link and the stored row

        Raises:
            InvalidRequest: If an identifier or the content is missing, or the
                file_id cannot name a stored blob. Nothing is changed.
            StorageError: If the store or the content write fails
        """
        self._validate(file_id, document_id, content)
        mime_type = mime_type or self.default_mime_type

        with self.locks.hold(("document", document_id)), self.locks.hold(("file", file_id)):
            with self.store.transaction() as session:
                outcome, publication, previous = self._transition(session, file_id, document_id, mime_type)

            if previous is not None:
                self._discard_content(previous, requester)

            self.content.write(file_id, content)

        logger.info(
            f"Upload {outcome.value}: file_id={file_id} document_id={publication.document_id} "
            f"status={publication.status.value} size={len(content)}"
        )
        self.audit.record(ActionType.UPLOAD, requester=requester, file_id=file_id)

        return UploadResult(
            outcome=outcome,
            file_id=file_id,
            link=self.link_for(file_id, base_url),
            publication=publication,
            superseded_file_id=previous.file_id if previous else None,
        )

    def _validate(self, file_id: str, document_id: str, content: bytes) -> None:
        if not file_id or not document_id:
            raise InvalidRequest("file_id and document_id are required")
        if not content:
            raise InvalidRequest("file is required and must not be empty")
        if not is_storable_identifier(file_id):
            raise InvalidRequest(f"file_id {file_id!r} contains characters that are not allowed")

    def _transition(
        self,
        session: StoreSession,
        file_id: str,
        document_id: str,
        mime_type: str,
    ) -> tuple[UploadOutcome, Publication, Optional[Publication]]:
        now = datetime.now(timezone.utc)
        existing = session.get_by_file_id(file_id)

        if existing is not None:
            if existing.is_actual:
                # Final stamped version of a pending publication
                publication = existing.model_copy(update={
                    "status": PublicationStatus.FULFILLED,
                    "mime_type": mime_type,
                    "date_of_creation": now,
                })
            else:
                # Retired slot reused: it becomes the current version of document_id
                session.mark_deleted_by_document(document_id, exclude_file_id=file_id)
                publication = Publication(
                    file_id=file_id,
                    document_id=document_id,
                    file_type=FileType.ACTUAL,
                    status=PublicationStatus.PENDING,
                    date_of_creation=now,
                    mime_type=mime_type,
                )
            session.upsert(publication)
            return UploadOutcome.OVERWRITTEN, publication, None

        previous = session.get_actual_by_document_id(document_id)
        if previous is not None:
            session.mark_deleted_by_document(document_id)

        publication = Publication(
            file_id=file_id,
            document_id=document_id,
            file_type=FileType.ACTUAL,
            status=PublicationStatus.PENDING,
            date_of_creation=now,
            mime_type=mime_type,
        )
        session.upsert(publication)

        if previous is not None:
            return UploadOutcome.SUPERSEDED, publication, previous
        return UploadOutcome.CREATED, publication, None

    def _discard_content(self, previous: Publication, requester: Optional[Requester]) -> bool:
        """
        Remove the content of a superseded publication.

        The metadata already marks it deleted, so a leftover file is only
        wasted space. Failures are logged and do not fail the upload.

        Returns:
            True if content was removed
        """
        try:
            removed = self.content.delete(previous.file_id)
        except StorageError as exc:
            logger.warning(f"Could not remove superseded content for {previous.file_id}: {exc}")
            return False
        if removed:
            self.audit.record(ActionType.DELETE, requester=requester, file_id=previous.file_id)
        return removed
