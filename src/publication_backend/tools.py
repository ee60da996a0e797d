"""
Maintenance commands.

    publication-tools generate-token [--length N]
        Print a random bearer token for AUTH_TOKEN.

    publication-tools register FILE_ID DOCUMENT_ID [--status fulfilled] [--mime-type application/pdf]
        Record a publication whose PDF was copied into the content root by
        hand. The document's current version, if any, is retired.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .configuration import configure_logging, load_settings
from .content_store import build_content_store
from .database import PublicationStore
from .exceptions import PublicationError
from .models import DEFAULT_MIME_TYPE, FileType, Publication, PublicationStatus
from .utils import generate_token

logger = logging.getLogger(__name__)


def register_publication(
    store: PublicationStore,
    file_id: str,
    document_id: str,
    status: PublicationStatus = PublicationStatus.FULFILLED,
    mime_type: str = DEFAULT_MIME_TYPE,
) -> Publication:
    """Insert an actual publication, retiring the document's other actual rows."""
    publication = Publication(
        file_id=file_id,
        document_id=document_id,
        file_type=FileType.ACTUAL,
        status=status,
        date_of_creation=datetime.now(timezone.utc),
        mime_type=mime_type,
    )
    with store.transaction() as session:
        session.mark_deleted_by_document(document_id, exclude_file_id=file_id)
        session.upsert(publication)
    return publication


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="publication-tools")
    commands = parser.add_subparsers(dest="command", required=True)

    token = commands.add_parser("generate-token", help="print a random bearer token")
    token.add_argument("--length", type=int, default=32, help="number of random bytes (default: 32)")

    register = commands.add_parser("register", help="record a manually placed publication")
    register.add_argument("file_id")
    register.add_argument("document_id")
    register.add_argument(
        "--status",
        choices=[status.value for status in PublicationStatus],
        default=PublicationStatus.FULFILLED.value,
    )
    register.add_argument("--mime-type", default=DEFAULT_MIME_TYPE)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate-token":
        token = generate_token(args.length)
        print(token)
        print(f"Token length: {len(token)} characters", file=sys.stderr)
        return 0

    settings = load_settings()
    configure_logging(settings)
    content = build_content_store(settings)
    if not content.exists(args.file_id):
        logger.warning(f"No content found for {args.file_id}; the link will resolve as not relevant")

    try:
        store = PublicationStore(Path(settings.storage.database_path))
        publication = register_publication(
            store,
            args.file_id,
            args.document_id,
            status=PublicationStatus(args.status),
            mime_type=args.mime_type,
        )
    except PublicationError as exc:
        logger.error(f"Failed to register {args.file_id}: {exc}")
        return 1

    print(publication.model_dump_json())
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
