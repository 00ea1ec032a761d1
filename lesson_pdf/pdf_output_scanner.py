from __future__ import annotations

import re
from io import BytesIO
from typing import Iterable

from pypdf import PdfReader

# Raw markup that must never reach the printed page.
LEAKED_MARKUP_PATTERNS = [
    re.compile(r"</?(?:table|tbody|thead|tr|td|th|script|style|div)\b[^>]*>", re.IGNORECASE),
    re.compile(r"&(?:amp|lt|gt|quot);"),
]


def extract_pdf_text(pdf_bytes: bytes) -> str:
    reader = PdfReader(BytesIO(pdf_bytes))
    return "\n".join((page.extract_text() or "") for page in reader.pages)


def page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(BytesIO(pdf_bytes)).pages)


def scan_leaked_markup(text: str, patterns: Iterable[re.Pattern] = LEAKED_MARKUP_PATTERNS) -> list[dict[str, str]]:
    findings: list[dict[str, str]] = []
    for pattern in patterns:
        for match in pattern.finditer(text or ""):
            start = max(0, match.start() - 32)
            end = min(len(text), match.end() + 32)
            findings.append(
                {
                    "pattern": pattern.pattern,
                    "match": match.group(0),
                    "context": text[start:end].replace("\n", " "),
                }
            )
    return findings
