"""
Parse module for the Grade Watcher pipeline.

This module turns the grade report returned by the portal into a tree of
Branch -> SubBranch -> Exam.

The report is a single HTML table read top to bottom. Each cell is
classified by its CSS class:
- ``bigheader`` opens a new Branch ("<name> - moyenne : <average>")
- ``odd`` / ``edge`` opens a new SubBranch in the open Branch
  ("<name>moyenne : <average> : <weight>"); the 5 cells that follow in the
  same row repeat its metadata and are skipped
- any other cell starts a run of 6 cells: the 5 values of one Exam and
  one trailing cell that is skipped
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from grade_watcher.errors import ParseError
from grade_watcher.models import PLACEHOLDER, Branch, Exam, SubBranch
from grade_watcher.utils import get_logger, parse_number, sanitize_text


# Module logger
logger = get_logger("parse")

BRANCH_CLASS = "bigheader"
SUB_BRANCH_CLASSES = ("odd", "edge")

BRANCH_SEPARATOR = " - "
VALUE_SEPARATOR = " : "
SUB_BRANCH_MARKER = "moyenne"

# Cells following a sub-branch header that repeat its metadata
SUB_BRANCH_SKIPPED_CELLS = 5
EXAM_CELL_COUNT = 5
# An exam run occupies one cell past its values, the same width as a
# sub-branch header run
EXAM_RUN_WIDTH = EXAM_CELL_COUNT + 1


class _TreeCursor:
    """Tracks the Branch and SubBranch that new rows are attached to."""

    def __init__(self):
        self.branches: List[Branch] = []
        self.branch: Optional[Branch] = None
        self.sub_branch: Optional[SubBranch] = None

    def open_branch(self, branch: Branch) -> None:
        self.branches.append(branch)
        self.branch = branch
        self.sub_branch = None

    def open_sub_branch(self, sub_branch: SubBranch, row_index: int) -> None:
        if self.branch is None:
            raise ParseError(
                f"orphan row {row_index}: sub-branch '{sub_branch.name}' before any branch",
                context={"row": row_index}
            )
        self.branch.sub_branches.append(sub_branch)
        self.sub_branch = sub_branch

    def add_exam(self, exam: Exam, row_index: int) -> None:
        if self.sub_branch is None:
            raise ParseError(
                f"orphan row {row_index}: exam '{exam.description}' before any sub-branch",
                context={"row": row_index}
            )
        self.sub_branch.exams.append(exam)


def normalize_report(raw: str) -> str:
    """
    Strip the RPC envelope and escaping from a raw report.

    Args:
        raw: Response text of the grade report endpoint.

    Returns:
        Plain HTML markup.
    """
    text = raw.replace("\n", "")
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"^\+:", "", text)
    text = re.sub(r'^"+|"+$', "", text)
    return text.replace("\\", "")


def cell_text(cell: Optional[Tag]) -> str:
    """Return the cleaned text of a cell, or the placeholder if empty."""
    if cell is None:
        return PLACEHOLDER
    return sanitize_text(cell.get_text()) or PLACEHOLDER


def parse_branch_header(text: str) -> Branch:
    """
    Build an empty Branch from a section header.

    Args:
        text: Header text, e.g. "Analyse - moyenne : 4.8".

    Raises:
        ParseError: If the text has no " - " separator.
    """
    name, separator, summary = text.rpartition(BRANCH_SEPARATOR)
    if not separator:
        raise ParseError(f"Unexpected branch header: {text!r}")

    _, _, average = summary.partition(VALUE_SEPARATOR)
    return Branch(name=name.strip(), average=parse_number(average))


def parse_sub_branch_header(text: str) -> SubBranch:
    """
    Build an empty SubBranch from a row header.

    Args:
        text: Header text, e.g. "Laboratoire moyenne : 5.2 : 40%".

    Raises:
        ParseError: If the text does not contain the "moyenne" marker.
    """
    if SUB_BRANCH_MARKER not in text:
        raise ParseError(f"Unexpected sub-branch header: {text!r}")

    parts = text.split(VALUE_SEPARATOR)
    name = parts[0].split(SUB_BRANCH_MARKER)[0].strip()
    average = parse_number(parts[1]) if len(parts) > 1 else None
    weight = sanitize_text(parts[2]) if len(parts) > 2 else PLACEHOLDER

    return SubBranch(name=name, average=average, weight=weight or PLACEHOLDER)


def _cell_classes(cell: Tag) -> List[str]:
    classes = cell.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return list(classes)


def parse_grade_report(raw: str) -> List[Branch]:
    """
    Parse a raw grade report into a list of Branch.

    Args:
        raw: Response text of the grade report endpoint.

    Returns:
        Branches in document order.

    Raises:
        ParseError: If a row appears before the header it belongs to, or a
                    header does not have the expected shape.
    """
    markup = normalize_report(raw or "")
    if not markup.strip():
        logger.warning("Empty grade report")
        return []

    logger.debug(f"Parsing grade report ({len(markup)} bytes)")

    soup = BeautifulSoup(markup, "html.parser")
    cursor = _TreeCursor()

    for row_index, row in enumerate(soup.find_all("tr")):
        cells = row.find_all(["td", "th"], recursive=False)

        i = 0
        while i < len(cells):
            cell = cells[i]
            classes = _cell_classes(cell)

            if BRANCH_CLASS in classes:
                cursor.open_branch(parse_branch_header(cell_text(cell)))
                i += 1
            elif any(c in classes for c in SUB_BRANCH_CLASSES):
                cursor.open_sub_branch(parse_sub_branch_header(cell_text(cell)), row_index)
                i += 1 + SUB_BRANCH_SKIPPED_CELLS
            else:
                run = [cells[j] if j < len(cells) else None for j in range(i, i + EXAM_CELL_COUNT)]
                date, description, average, coefficient, grade = (cell_text(c) for c in run)
                cursor.add_exam(
                    Exam(
                        date=date,
                        description=description,
                        average=average,
                        coefficient=coefficient,
                        grade=grade,
                    ),
                    row_index
                )
                i += EXAM_RUN_WIDTH

    exam_count = sum(len(sb.exams) for b in cursor.branches for sb in b.sub_branches)
    logger.info(f"Parsed {len(cursor.branches)} branch(es) with {exam_count} exam(s)")

    return cursor.branches
