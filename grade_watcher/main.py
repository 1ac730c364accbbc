#!/usr/bin/env python3
"""
Main orchestration module for the Grade Watcher pipeline.

This module coordinates the complete pipeline:
login → fetch report → parse → compare → save → notify

Every stage raises a GradeWatcherError on failure. main() is the single
place where errors are caught, logged and mapped to an exit code. The
snapshot is only written after every stage before it has succeeded.
"""

import sys
from dataclasses import dataclass
from typing import Optional

import requests

from grade_watcher.compare import diff_branches
from grade_watcher.config import Settings, load_settings
from grade_watcher.errors import ConfigError, GradeWatcherError
from grade_watcher.fetch import authenticate, create_session, fetch_grade_report, fetch_student_id
from grade_watcher.models import ChangedExam
from grade_watcher.notify import notify_new_grade
from grade_watcher.parse import parse_grade_report
from grade_watcher.store import load_snapshot, save_snapshot
from grade_watcher.utils import get_logger, setup_logging


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ENV_ERROR = 2


@dataclass
class PipelineResult:
    """Summary of one run."""
    branch_count: int = 0
    baseline_created: bool = False
    changed: bool = False
    change: Optional[ChangedExam] = None
    notified: bool = False


def run_pipeline(
    settings: Settings,
    dry_run: bool = False,
    session: Optional[requests.Session] = None
) -> PipelineResult:
    """
    Execute the complete grade watcher pipeline once.

    Pipeline stages:
    1. Log in and look up the student
    2. Fetch the grade report
    3. Parse it into a grade tree
    4. Compare with the snapshot
    5. Save the tree if it changed
    6. Notify about a new or modified grade

    Args:
        settings: Process configuration.
        dry_run: If True, skip the webhook call.
        session: Optional requests session, created if not given.

    Returns:
        PipelineResult describing what happened.

    Raises:
        GradeWatcherError: If any stage fails.
    """
    logger = get_logger("main")
    result = PipelineResult()

    logger.info("=" * 60)
    logger.info("Grade Watcher Pipeline - Starting")
    logger.info("=" * 60)

    owns_session = session is None
    session = session or create_session()

    try:
        # Stage 1: Log in
        logger.info("[Stage 1/6] Logging in...")
        token = authenticate(session, settings.login, settings.password, base_url=settings.base_url)
        student_id = fetch_student_id(session, token, base_url=settings.base_url)

        # Stage 2: Fetch report
        logger.info("[Stage 2/6] Fetching grade report...")
        raw_report = fetch_grade_report(
            session, token, student_id, settings.term, base_url=settings.base_url
        )

        # Stage 3: Parse
        logger.info("[Stage 3/6] Parsing grade report...")
        branches = parse_grade_report(raw_report)
        result.branch_count = len(branches)

        # Stage 4: Compare
        logger.info("[Stage 4/6] Comparing with previous snapshot...")
        previous = load_snapshot(settings.snapshot_path)

        if previous is None:
            logger.info("No baseline yet, saving current grades without notification")
            save_snapshot(branches, settings.snapshot_path)
            result.baseline_created = True
            result.changed = True
            return result

        diff = diff_branches(branches, previous)
        result.changed = diff.changed
        result.change = diff.change

        # Stage 5: Save
        logger.info("[Stage 5/6] Saving snapshot...")
        if diff.changed:
            save_snapshot(branches, settings.snapshot_path)
        else:
            logger.info("Grades unchanged, snapshot kept")

        # Stage 6: Notify
        logger.info("[Stage 6/6] Notifying...")
        if diff.change is not None:
            change = diff.change
            result.notified = notify_new_grade(
                change.branch.name,
                change.sub_branch.name,
                change.exam.date,
                change.exam.average,
                webhook_id=settings.webhook_id,
                webhook_token=settings.webhook_token,
                description=change.exam.description,
                dry_run=dry_run
            )
        else:
            logger.info("No new grade to notify about")

    finally:
        if owns_session:
            session.close()

    logger.info("=" * 60)
    logger.info("Grade Watcher Pipeline - Complete")
    logger.info(
        f"Summary: {result.branch_count} branch(es), "
        f"changed={result.changed}, notified={result.notified}"
    )
    logger.info("=" * 60)

    return result


def main() -> int:
    """
    Main entry point for the Grade Watcher pipeline.

    Loads the configuration, sets up logging at the configured level and
    runs the pipeline with error handling.

    Returns:
        Exit code for the process.
    """
    logger = get_logger("main")

    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging()
        logger.error(f"Configuration error: {e}")
        return EXIT_ENV_ERROR

    setup_logging(settings.log_level)

    if settings.dry_run:
        logger.info("Running in DRY RUN mode - notifications will be skipped")

    try:
        run_pipeline(settings, dry_run=settings.dry_run)
        return EXIT_SUCCESS

    except GradeWatcherError as e:
        logger.error(f"{type(e).__name__}: {e}")
        if e.context:
            logger.debug(f"Error context: {e.context}")
        return EXIT_FAILURE

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception(f"Unexpected error in pipeline: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
