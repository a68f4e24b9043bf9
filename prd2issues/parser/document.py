"""Markdown requirements document reader.

Reads a PRD and extracts the title, a short description and the declared
tech stack. The raw text is kept verbatim: it is the main input of the
decomposition prompts and is not otherwise interpreted. Uses pure regex and
markdown structure parsing -- no AI calls.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from prd2issues.planner.models import TechStack

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_DOCUMENT_CHARS = 100
MAX_DOCUMENT_CHARS = 100_000
MAX_DESCRIPTION_CHARS = 500

_H1_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_NAME_PATTERN = re.compile(r"(?:Project|Product)\s+Name[:\s]+([^\n]+)", re.IGNORECASE)
_DESCRIPTION_PATTERNS = [
    re.compile(
        r"(?:##\s+Overview|##\s+Description|##\s+Vision\s+Statement)\s*\n+(.+?)(?:\n#|\Z)",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"(?:###\s+Vision\s+Statement)\s*\n+(.+?)(?:\n#|\Z)", re.IGNORECASE | re.DOTALL),
    re.compile(r"(?:##\s+Problem\s+Statement)\s*\n+(.+?)(?:\n#|\Z)", re.IGNORECASE | re.DOTALL),
]
_FIRST_PARAGRAPH_PATTERN = re.compile(r"\A#[^\n]*\n+(.+?)(?:\n\n|\Z)", re.DOTALL)
_TECH_STACK_SECTION = re.compile(
    r"^#{2,3}\s+Tech(?:nology)?\s+Stack[^\n]*\n+(.*?)(?=^#|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_TECH_CATEGORIES: dict[str, re.Pattern[str]] = {
    "frontend": re.compile(r"\b(?:frontend|client|ui)\b[*:\s-]+([^\n]+)", re.IGNORECASE),
    "backend": re.compile(r"\b(?:backend|server|api)\b[*:\s-]+([^\n]+)", re.IGNORECASE),
    "database": re.compile(r"\b(?:database|db|storage)\b[*:\s-]+([^\n]+)", re.IGNORECASE),
    "testing": re.compile(r"\b(?:testing|test)\b[*:\s-]+([^\n]+)", re.IGNORECASE),
}
_TECH_SEPARATORS = re.compile(r"[,;]|\s+(?:and|with|using)\s+")


class DocumentError(Exception):
    """Raised when a requirements document cannot be used."""


class DocumentMetadata(BaseModel):
    """What decomposition needs to know about a requirements document."""
    title: str = Field(..., description="Project title")
    description: str = Field(..., description="Short project description")
    raw_text: str = Field(..., description="The full document text")
    tech_stack: Optional[TechStack] = Field(default=None)
    source: str = Field(default="", description="Where the document was read from")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _extract_title(content: str) -> Optional[str]:
    match = _H1_PATTERN.search(content)
    if match:
        return match.group(1).strip()
    match = _NAME_PATTERN.search(content)
    if match:
        return match.group(1).strip().strip("*").strip()
    return None


def _extract_description(content: str) -> Optional[str]:
    for pattern in _DESCRIPTION_PATTERNS:
        match = pattern.search(content)
        if match:
            return re.sub(r"\n+", " ", match.group(1).strip())[:MAX_DESCRIPTION_CHARS]

    match = _FIRST_PARAGRAPH_PATTERN.search(content)
    if match:
        return match.group(1).strip()[:MAX_DESCRIPTION_CHARS]
    return None


def _parse_tech_list(text: str) -> list[str]:
    """Split ``"React, TypeScript and Vite"`` into individual technologies."""
    cleaned = re.sub(r"\*\*|\*|`", "", text)
    parts = (part.strip() for part in _TECH_SEPARATORS.split(cleaned))
    return [part for part in parts if 0 < len(part) < 50]


def _extract_tech_stack(content: str) -> Optional[TechStack]:
    section = _TECH_STACK_SECTION.search(content)
    if not section:
        return None

    found: dict[str, list[str]] = {}
    for category, pattern in _TECH_CATEGORIES.items():
        match = pattern.search(section.group(1))
        if match:
            found[category] = _parse_tech_list(match.group(1))

    return TechStack(**found) if found else None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_document_text(content: str, source: str = "") -> DocumentMetadata:
    """Validate document text and extract its metadata.

    Raises:
        DocumentError: If the text is empty, too short or too large.
    """
    if not content or not content.strip():
        raise DocumentError("Requirements document is empty")
    if len(content) < MIN_DOCUMENT_CHARS:
        raise DocumentError(
            f"Requirements document is too short (minimum {MIN_DOCUMENT_CHARS} characters)"
        )
    if len(content) > MAX_DOCUMENT_CHARS:
        raise DocumentError(
            f"Requirements document is too large (maximum {MAX_DOCUMENT_CHARS:,} characters)"
        )

    return DocumentMetadata(
        title=_extract_title(content) or "Untitled Project",
        description=_extract_description(content) or "No description provided",
        raw_text=content,
        tech_stack=_extract_tech_stack(content),
        source=source,
    )


async def load_document(path: str | Path) -> DocumentMetadata:
    """Read a markdown requirements file and extract its metadata.

    Raises:
        DocumentError: If the file is missing, unreadable or fails validation.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise DocumentError(f"Requirements file not found: {file_path}")
    try:
        content = await asyncio.to_thread(file_path.read_text, "utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentError(f"Failed to read requirements file: {exc}") from exc
    return parse_document_text(content, source=str(file_path))
