#!/usr/bin/env python3
"""Lint lesson episodes before they go to the lesson site.

Checks the markdown contract the site generator relies on. Nothing is
rendered here; this only reports problems.

    - front matter: YAML with title, teaching, exercises, questions,
      objectives, keypoints
    - code blocks: ~~~ fences, closed, followed by a known {: .class} line
    - callout/challenge/solution blockquotes: opened with "> ## Title",
      closed at the right depth, solutions nested inside challenges
    - python blocks parse (IPython magics such as %timeit are replaced by pass)
    - style warnings: non-ASCII characters, long listings, discouraged phrases

Usage:
    # Check every episode
    python scripts/check_lesson.py

    # Check one file, write a JSON report
    python scripts/check_lesson.py episodes/cupy.md --json-out results/lint.json

    # Fail on warnings too (CI)
    python scripts/check_lesson.py --strict
"""
from __future__ import annotations

import argparse
import ast
import json
import re
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
EPISODES_DIR = REPO_ROOT / "episodes"

REQUIRED_LIST_KEYS = ("questions", "objectives", "keypoints")
REQUIRED_INT_KEYS = ("teaching", "exercises")

FENCE_CLASSES = {"language-python", "language-bash", "output", "error"}
BLOCK_CLASSES = {"callout", "challenge", "solution", "prereq", "discussion", "checklist", "testimonial"}

# Regex patterns
_QUOTE_RE = re.compile(r"^((?:>[ \t]?)*)(.*)$")
_ATTR_RE = re.compile(r"^\{:\s*\.([\w-]+)\s*\}\s*$")
_BLOCK_HEADING_RE = re.compile(r"^##\s+(.+)$")
_NON_ASCII_RE = re.compile(r"[^\x00-\x7F]")

# Listings longer than this are hard to type into a shell
MAX_CODE_BLOCK_LINES = 30

# Phrases that make readers feel slow (warning, not error -- context matters)
BANNED_PHRASES = [
    "simply",
    "trivially",
    "obviously",
    "it is easy to see",
    "just",
]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ValidationIssue:
    lesson: str
    severity: str  # "error", "warning", "info"
    category: str
    message: str
    line: Optional[int] = None


@dataclass
class ValidationReport:
    issues: list[ValidationIssue] = field(default_factory=list)
    lessons_checked: int = 0

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    def to_dict(self) -> dict:
        return {
            "lessons_checked": self.lessons_checked,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "issues": [
                {
                    "lesson": i.lesson,
                    "severity": i.severity,
                    "category": i.category,
                    "message": i.message,
                    "line": i.line,
                }
                for i in self.issues
            ],
        }


@dataclass
class _Block:
    depth: int
    line: int
    title: str
    children: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Lesson discovery
# ---------------------------------------------------------------------------

def discover_lessons(paths: list[Path]) -> list[Path]:
    """Expand directories to their *.md files; keep files as given."""
    lessons: list[Path] = []
    for path in paths:
        if path.is_dir():
            lessons.extend(sorted(path.glob("*.md")))
        elif path.exists():
            lessons.append(path)
        else:
            raise SystemExit(f"Lesson path not found: {path}")
    return lessons


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------

def split_front_matter(text: str) -> tuple[Optional[str], int]:
    """Return (yaml_text, index of first body line); yaml_text is None if absent."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return None, 0
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            return "\n".join(lines[1:i]), i + 1
    return None, 0


def validate_front_matter(name: str, text: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    def err(message: str, line: Optional[int] = 1) -> None:
        issues.append(ValidationIssue(lesson=name, severity="error",
                                      category="front_matter", line=line, message=message))

    raw, _ = split_front_matter(text)
    if raw is None:
        err("Missing or unterminated YAML front matter (--- ... ---)")
        return issues

    try:
        meta = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        err(f"Front matter is not valid YAML: {exc}")
        return issues
    if not isinstance(meta, dict):
        err("Front matter must be a mapping")
        return issues

    title = meta.get("title")
    if not isinstance(title, str) or not title.strip():
        err("'title' must be a non-empty string")

    for key in REQUIRED_INT_KEYS:
        value = meta.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            err(f"'{key}' must be a non-negative integer (minutes), got {value!r}")

    for key in REQUIRED_LIST_KEYS:
        value = meta.get(key)
        if not isinstance(value, list) or not value:
            err(f"'{key}' must be a non-empty list")
        elif not all(isinstance(v, str) and v.strip() for v in value):
            err(f"'{key}' entries must be non-empty strings")

    return issues


# ---------------------------------------------------------------------------
# Body structure
# ---------------------------------------------------------------------------

def _split_quote(line: str) -> tuple[int, str]:
    m = _QUOTE_RE.match(line)
    return m.group(1).count(">"), m.group(2)


def strip_magics(code: str) -> str:
    """Blank out IPython-only lines (%magic, !shell) so the rest can be parsed.

    Each one becomes `pass` at the same indentation, keeping line numbers intact.
    """
    kept = []
    for line in code.splitlines():
        stripped = line.lstrip()
        if stripped.startswith(("%", "!")):
            line = line[: len(line) - len(stripped)] + "pass"
        kept.append(line)
    return textwrap.dedent("\n".join(kept))


def _check_python(name: str, code: str, fence_line: int) -> Optional[ValidationIssue]:
    try:
        ast.parse(strip_magics(code))
    except SyntaxError as exc:
        line = fence_line + (exc.lineno or 1)
        return ValidationIssue(lesson=name, severity="error", category="python",
                               line=line, message=f"Python block does not parse: {exc.msg}")
    return None


def validate_body(name: str, text: str) -> list[ValidationIssue]:
    """Fences, attribute lines and blockquote nesting."""
    issues: list[ValidationIssue] = []

    def add(severity: str, category: str, message: str, line: Optional[int]) -> None:
        issues.append(ValidationIssue(lesson=name, severity=severity,
                                      category=category, line=line, message=message))

    lines = text.splitlines()
    _, start = split_front_matter(text)

    fence: Optional[tuple[int, int]] = None  # (line, depth) of the open fence
    code_lines: list[str] = []
    pending_attr: Optional[tuple[int, int, list[str]]] = None  # closed fence awaiting {: .class}
    stack: list[_Block] = []

    for idx in range(start, len(lines)):
        lineno = idx + 1
        depth, content = _split_quote(lines[idx])
        stripped = content.strip()

        if fence is not None:
            if stripped.startswith("~~~"):
                pending_attr = (fence[0], fence[1], code_lines)
                fence = None
                code_lines = []
            else:
                code_lines.append(content)
            continue

        if pending_attr is not None:
            fence_line, fence_depth, code = pending_attr
            pending_attr = None
            m = _ATTR_RE.match(stripped)
            if not m:
                add("error", "fence", "Code block is not followed by a {: .class} line", fence_line)
            else:
                cls = m.group(1)
                if cls not in FENCE_CLASSES:
                    add("error", "fence", f"Unknown code block class '.{cls}'", lineno)
                if len(code) > MAX_CODE_BLOCK_LINES:
                    add("warning", "code_length",
                        f"Code block has {len(code)} lines (guideline: <={MAX_CODE_BLOCK_LINES})",
                        fence_line)
                if cls == "language-python":
                    issue = _check_python(name, "\n".join(code), fence_line)
                    if issue:
                        issues.append(issue)
                continue

        if stripped.startswith("~~~"):
            fence = (lineno, depth)
            continue

        heading = _BLOCK_HEADING_RE.match(stripped)
        if heading and depth >= 1 and (not stack or stack[-1].depth < depth):
            stack.append(_Block(depth=depth, line=lineno, title=heading.group(1).strip()))
            continue

        m = _ATTR_RE.match(stripped)
        if not m:
            continue
        cls = m.group(1)
        if cls in FENCE_CLASSES:
            add("error", "fence", f"'{{: .{cls}}}' does not follow a code block", lineno)
            continue
        if cls not in BLOCK_CLASSES:
            add("error", "block", f"Unknown block class '.{cls}'", lineno)
            continue

        # {: .cls} at depth d closes the block opened at depth d + 1
        while stack and stack[-1].depth > depth + 1:
            orphan = stack.pop()
            add("error", "block", f"Block '{orphan.title}' is never closed", orphan.line)
        if not stack or stack[-1].depth != depth + 1:
            add("error", "block", f"'{{: .{cls}}}' closes no open block", lineno)
            continue

        block = stack.pop()
        if "solution" in block.children and cls != "challenge":
            add("error", "block", f"Solution nested in a '.{cls}' block (expected .challenge)", block.line)
        if stack:
            stack[-1].children.append(cls)
        elif cls == "solution":
            add("error", "block", f"Solution '{block.title}' is not inside a challenge", block.line)

    if fence is not None:
        add("error", "fence", "Code block is never closed", fence[0])
    if pending_attr is not None:
        add("error", "fence", "Code block is not followed by a {: .class} line", pending_attr[0])
    for block in stack:
        add("error", "block", f"Block '{block.title}' is never closed", block.line)

    return issues


def validate_style(name: str, text: str) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    lines = text.splitlines()

    for i, line in enumerate(lines, 1):
        non_ascii = _NON_ASCII_RE.findall(line)
        if non_ascii:
            chars = ", ".join(repr(c) for c in non_ascii[:5])
            issues.append(ValidationIssue(
                lesson=name, severity="warning", category="ascii", line=i,
                message=f"Non-ASCII characters: {chars}",
            ))

    for phrase in BANNED_PHRASES:
        for i, line in enumerate(lines, 1):
            if re.search(rf"\b{re.escape(phrase.strip())}\b", line, re.IGNORECASE):
                issues.append(ValidationIssue(
                    lesson=name, severity="warning", category="voice", line=i,
                    message=f'Discouraged phrase: "{phrase.strip()}"',
                ))
                break  # one warning per phrase per lesson

    words = len(text.split())
    issues.append(ValidationIssue(
        lesson=name, severity="info", category="length",
        message=f"Lesson is {words:,} words",
    ))
    return issues


def validate_lesson(path: Path) -> list[ValidationIssue]:
    """Run every check on a single episode."""
    text = path.read_text(encoding="utf-8")
    name = path.name
    return [
        *validate_front_matter(name, text),
        *validate_body(name, text),
        *validate_style(name, text),
    ]


def run_checks(paths: list[Path]) -> ValidationReport:
    report = ValidationReport()
    for lesson in discover_lessons(paths):
        report.issues.extend(validate_lesson(lesson))
        report.lessons_checked += 1
    return report


def print_report(report: ValidationReport) -> None:
    for issue in report.issues:
        where = f"{issue.lesson}:{issue.line}" if issue.line else issue.lesson
        print(f"  [{issue.severity.upper():7}] {where} ({issue.category}) {issue.message}")
    print(f"\nChecked {report.lessons_checked} lesson(s): "
          f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Lint lesson episodes (front matter, code blocks, challenge/solution nesting).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="*", type=Path, default=[EPISODES_DIR],
                        help="Episode files or directories (default: episodes/)")
    parser.add_argument("--json-out", default="", help="Write the report as JSON to this path.")
    parser.add_argument("--strict", action="store_true", help="Treat warnings as failures.")
    args = parser.parse_args()

    report = run_checks(args.paths)
    print_report(report)

    if args.json_out:
        out_path = Path(args.json_out).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")
        print(f"OK: wrote {out_path}")

    if report.errors or (args.strict and report.warnings):
        print("FAIL: lesson checks did not pass", file=sys.stderr)
        return 1
    print("OK: lesson checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
