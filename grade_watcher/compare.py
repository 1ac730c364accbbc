"""
Compare module for the Grade Watcher pipeline.

This module compares a freshly parsed grade tree with the snapshot of the
previous run and reports the first difference found.

Only one difference is reported per run. Grades are added a few at a time
and the next poll, comparing against the updated snapshot, picks up the
following one.
"""

from typing import List, Optional, Tuple

from grade_watcher.models import Branch, ChangedExam, DiffResult, Exam, SubBranch
from grade_watcher.utils import get_logger


# Module logger
logger = get_logger("compare")

ADDED = "added"
MODIFIED = "modified"


def exam_key(exam: Exam) -> Tuple[str, str]:
    """An exam is identified by its date and description."""
    return exam.date, exam.description


def find_branch(branches: List[Branch], name: str) -> Optional[Branch]:
    return next((b for b in branches if b.name == name), None)


def find_sub_branch(branch: Branch, name: str) -> Optional[SubBranch]:
    return next((sb for sb in branch.sub_branches if sb.name == name), None)


def find_exam(sub_branch: SubBranch, key: Tuple[str, str]) -> Optional[Exam]:
    return next((e for e in sub_branch.exams if exam_key(e) == key), None)


def diff_branches(current: List[Branch], previous: List[Branch]) -> DiffResult:
    """
    Find the first difference between two grade trees.

    Walks the current tree branch by branch, sub-branch by sub-branch and
    exam by exam, looking up each exam's counterpart in the previous tree.

    Args:
        current: Tree parsed in this run.
        previous: Tree loaded from the snapshot.

    Returns:
        DiffResult with changed=False if no difference was found. A missing
        branch or sub-branch is reported without an exam; a new or modified
        exam is reported with the exam and its containers.
    """
    for branch in current:
        for sub_branch in branch.sub_branches:
            for exam in sub_branch.exams:
                previous_branch = find_branch(previous, branch.name)
                if previous_branch is None:
                    logger.info(f"Branch {branch.name} has been added")
                    return DiffResult(changed=True)

                previous_sub_branch = find_sub_branch(previous_branch, sub_branch.name)
                if previous_sub_branch is None:
                    logger.info(
                        f"SubBranch {sub_branch.name} in Branch {branch.name} has been added"
                    )
                    return DiffResult(changed=True)

                previous_exam = find_exam(previous_sub_branch, exam_key(exam))
                if previous_exam is None:
                    logger.info(
                        f"Exam {exam.description} on date {exam.date} in SubBranch "
                        f"{sub_branch.name} of Branch {branch.name} has been added"
                    )
                    return DiffResult(
                        changed=True,
                        change=ChangedExam(branch, sub_branch, exam, ADDED)
                    )

                if exam != previous_exam:
                    logger.info(
                        f"Exam {exam.description} on date {exam.date} in SubBranch "
                        f"{sub_branch.name} of Branch {branch.name} has been modified"
                    )
                    return DiffResult(
                        changed=True,
                        change=ChangedExam(branch, sub_branch, exam, MODIFIED)
                    )

    logger.info("No grade change detected")
    return DiffResult(changed=False)
