#!/usr/bin/env python3
"""Fail when likely mojibake/corrupted Hindi text is detected."""

from pathlib import Path
import re
import sys

ROOT = Path(__file__).resolve().parents[1]
INCLUDE_EXT = {".py", ".md", ".txt", ".json", ".html"}
EXCLUDE_DIRS = {".git", "node_modules", "__pycache__", ".venv"}
SELF_PATH = Path(__file__).resolve()

SUSPICIOUS_PATTERNS = [
    re.compile("\uFFFD"),
    # UTF-8 Devanagari (E0 A4 xx / E0 A5 xx) decoded as latin-1 or cp1252.
    re.compile("\u00e0[\u00a4\u00a5]"),
    re.compile(r"\?{4,}"),
]


def should_scan(path: Path) -> bool:
    if path.resolve() == SELF_PATH:
        return False
    if path.suffix.lower() not in INCLUDE_EXT:
        return False
    if any(part in EXCLUDE_DIRS for part in path.parts):
        return False
    return path.is_file()


def collect_targets(argv: list[str]) -> list[Path]:
    if argv:
        return [Path(arg).resolve() for arg in argv]
    return [ROOT / "lesson_pdf"]


def find_suspicious_lines(path: Path) -> list[tuple[Path, int, str]]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except UnicodeDecodeError:
        return [(path, 0, "non-utf8 file")]

    failed = []
    for idx, line in enumerate(lines, start=1):
        if any(pattern.search(line) for pattern in SUSPICIOUS_PATTERNS):
            failed.append((path, idx, line.strip()))
    return failed


def main() -> int:
    failed = []
    for target in collect_targets(sys.argv[1:]):
        if target.is_dir():
            paths = [p for p in target.rglob("*") if should_scan(p)]
        else:
            paths = [target] if should_scan(target) else []

        for path in paths:
            failed.extend(find_suspicious_lines(path))

    if failed:
        print("Detected suspicious mojibake/corrupted Hindi text:")
        for path, line_no, line in failed:
            rel = path.relative_to(ROOT) if path.is_absolute() and str(path).startswith(str(ROOT)) else path
            print(f"- {rel}:{line_no}: {line}")
        return 1

    print("No suspicious mojibake/corrupted Hindi text detected.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
