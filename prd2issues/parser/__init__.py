"""Requirements document reader.

Usage::

    from prd2issues.parser import load_document

    document = await load_document("path/to/requirements.md")
    print(document.title, document.tech_stack)
"""

from prd2issues.parser.document import (
    DocumentError,
    DocumentMetadata,
    load_document,
    parse_document_text,
)

__all__ = [
    "load_document",
    "parse_document_text",
    "DocumentMetadata",
    "DocumentError",
]
