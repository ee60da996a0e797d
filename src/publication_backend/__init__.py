"""
Publication Backend - REST API for versioned printable form publication

This package provides a FastAPI-based web service that publishes printable
forms (PDF documents generated by an external accounting system) behind a
stable public link. It enables:

- PDF uploads keyed by a file identifier and a document identifier
- Overwriting a pending publication with its final stamped (QR) version
- Superseding the current version of a document with a new file identifier
- Serving the current version and answering "not relevant" for retired ones
- An audit log of uploads, views and deletions

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - lifecycle: Publication lifecycle engine (created/overwritten/superseded)
    - resolver: Read path mapping a file identifier to servable content
    - database: SQLite publication store
    - audit_log: SQLite append-only audit log
    - content_store: Local directory or S3 storage for the PDF blobs
    - configuration: Config loading and merging logic
    - models: Pydantic models for records and responses

Usage:
    Run the API server with:
        uvicorn publication_backend.main:create_app --factory --host 0.0.0.0 --port 3000

    Or use the installed script:
        publication-backend
"""

__version__ = "0.1.0"
