"""
Tests for the main orchestration module.

The portal and the webhook are mocked; the snapshot is written to a
temporary directory.
"""

import os
from unittest.mock import Mock, patch

import pytest

from grade_watcher.config import Settings
from grade_watcher.errors import AuthError, ConfigError, NotifyError, ParseError
from grade_watcher.main import (
    main,
    run_pipeline,
    EXIT_ENV_ERROR,
    EXIT_FAILURE,
    EXIT_SUCCESS,
)
from grade_watcher.models import Branch, Exam, SubBranch
from grade_watcher.store import load_snapshot, save_snapshot


def report_markup(exams):
    rows = [
        '<tr><td class="bigheader">Math - moyenne : 5.0</td></tr>',
        '<tr><td class="odd">Algebramoyenne : 4.8 : 2</td>'
        + "<td></td>" * 5 + "</tr>",
    ]
    for exam in exams:
        rows.append("<tr>" + "".join(f"<td>{value}</td>" for value in exam) + "</tr>")
    return '+:"<table>' + "".join(rows) + '</table>"'


QUIZ1 = ("2024-01-10", "Quiz1", "4.5", "1", "5.0")
QUIZ2 = ("2024-02-01", "Quiz2", "5.2", "1", "5.5")
QUIZ2_UNGRADED = ("2024-02-01", "Quiz2", "-", "1", "-")

BASELINE = [
    Branch(
        name="Math",
        average=5.0,
        sub_branches=[
            SubBranch(
                name="Algebra",
                average=4.8,
                weight="2",
                exams=[Exam(*QUIZ1)]
            )
        ]
    )
]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        webhook_id="123456",
        webhook_token="webhook-secret",
        login="jdoe",
        password="portal-secret",
        term="2023",
        snapshot_path=str(tmp_path / "grades.json"),
    )


@pytest.fixture
def portal():
    """Patch the portal calls; set portal.report to choose the markup."""
    with patch("grade_watcher.main.authenticate", return_value="tok") as auth, \
            patch("grade_watcher.main.fetch_student_id", return_value=12345), \
            patch("grade_watcher.main.fetch_grade_report") as report:
        auth.report = report
        yield auth


@pytest.fixture
def notifier():
    with patch("grade_watcher.main.notify_new_grade", return_value=True) as notify:
        yield notify


class TestRunPipeline:
    """Tests for the pipeline sequence."""

    def test_first_run_saves_baseline_without_notification(self, settings, portal, notifier):
        portal.report.return_value = report_markup([QUIZ1])

        result = run_pipeline(settings, session=Mock())

        assert result.baseline_created is True
        assert result.notified is False
        assert load_snapshot(settings.snapshot_path) == BASELINE
        notifier.assert_not_called()

    def test_unchanged_grades(self, settings, portal, notifier):
        save_snapshot(BASELINE, settings.snapshot_path)
        mtime = os.path.getmtime(settings.snapshot_path)
        portal.report.return_value = report_markup([QUIZ1])

        result = run_pipeline(settings, session=Mock())

        assert result.changed is False
        assert os.path.getmtime(settings.snapshot_path) == mtime
        notifier.assert_not_called()

    def test_new_exam_saved_and_notified(self, settings, portal, notifier):
        save_snapshot(BASELINE, settings.snapshot_path)
        portal.report.return_value = report_markup([QUIZ1, QUIZ2])

        result = run_pipeline(settings, session=Mock())

        assert result.changed is True
        assert result.notified is True
        assert result.change.exam == Exam(*QUIZ2)
        assert load_snapshot(settings.snapshot_path)[0].sub_branches[0].exams[-1] == Exam(*QUIZ2)

        args, kwargs = notifier.call_args
        assert args == ("Math", "Algebra", "2024-02-01", "5.2")
        assert kwargs["description"] == "Quiz2"
        assert kwargs["webhook_id"] == "123456"
        assert kwargs["webhook_token"] == "webhook-secret"
        assert kwargs["dry_run"] is False

    def test_ungraded_exam_saved_but_not_announced(self, settings, portal):
        save_snapshot(BASELINE, settings.snapshot_path)
        portal.report.return_value = report_markup([QUIZ1, QUIZ2_UNGRADED])
        webhook_session = Mock()

        with patch("grade_watcher.notify.requests.Session", return_value=webhook_session):
            result = run_pipeline(settings, session=Mock())

        assert result.changed is True
        assert result.notified is False
        webhook_session.post.assert_not_called()
        assert len(load_snapshot(settings.snapshot_path)[0].sub_branches[0].exams) == 2

    def test_dry_run_passed_to_notifier(self, settings, portal, notifier):
        save_snapshot(BASELINE, settings.snapshot_path)
        portal.report.return_value = report_markup([QUIZ1, QUIZ2])

        run_pipeline(settings, dry_run=True, session=Mock())

        assert notifier.call_args[1]["dry_run"] is True

    def test_portal_calls(self, settings, portal, notifier):
        portal.report.return_value = report_markup([QUIZ1])
        session = Mock()

        run_pipeline(settings, session=session)

        portal.assert_called_once_with(
            session, "jdoe", "portal-secret", base_url=settings.base_url
        )
        portal.report.assert_called_once_with(
            session, "tok", 12345, "2023", base_url=settings.base_url
        )

    def test_auth_failure_writes_nothing(self, settings, portal, notifier):
        portal.side_effect = AuthError("bad credentials")

        with pytest.raises(AuthError):
            run_pipeline(settings, session=Mock())

        assert not os.path.exists(settings.snapshot_path)

    def test_parse_failure_keeps_snapshot(self, settings, portal, notifier):
        save_snapshot(BASELINE, settings.snapshot_path)
        portal.report.return_value = "<table><tr><td>orphan</td></tr></table>"

        with pytest.raises(ParseError):
            run_pipeline(settings, session=Mock())

        assert load_snapshot(settings.snapshot_path) == BASELINE
        notifier.assert_not_called()

    @patch("grade_watcher.main.create_session")
    def test_own_session_closed(self, mock_create_session, settings, portal, notifier):
        portal.report.return_value = report_markup([QUIZ1])
        session = Mock()
        mock_create_session.return_value = session

        run_pipeline(settings)

        session.close.assert_called_once()


class TestMain:
    """Tests for the entry point exit codes."""

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    @patch("grade_watcher.main.run_pipeline")
    def test_success(self, mock_run, mock_load, mock_logging, settings):
        mock_load.return_value = settings

        assert main() == EXIT_SUCCESS
        mock_run.assert_called_once_with(settings, dry_run=False)

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    def test_config_error(self, mock_load, mock_logging):
        mock_load.side_effect = ConfigError("Missing required environment variables: WEBHOOK_ID")

        assert main() == EXIT_ENV_ERROR

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    @patch("grade_watcher.main.run_pipeline")
    def test_pipeline_error(self, mock_run, mock_load, mock_logging, settings):
        mock_load.return_value = settings
        mock_run.side_effect = NotifyError("Webhook error: HTTP 500", status_code=500)

        assert main() == EXIT_FAILURE

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    @patch("grade_watcher.main.run_pipeline")
    def test_unexpected_error(self, mock_run, mock_load, mock_logging, settings):
        mock_load.return_value = settings
        mock_run.side_effect = RuntimeError("boom")

        assert main() == EXIT_FAILURE

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    @patch("grade_watcher.main.run_pipeline")
    def test_keyboard_interrupt(self, mock_run, mock_load, mock_logging, settings):
        mock_load.return_value = settings
        mock_run.side_effect = KeyboardInterrupt()

        assert main() == EXIT_FAILURE

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    @patch("grade_watcher.main.run_pipeline")
    def test_logging_configured_once_with_settings_level(self, mock_run, mock_load, mock_logging, settings):
        settings.log_level = "DEBUG"
        mock_load.return_value = settings

        main()

        mock_logging.assert_called_once_with("DEBUG")

    @patch("grade_watcher.main.setup_logging")
    @patch("grade_watcher.main.load_settings")
    def test_config_error_still_logged(self, mock_load, mock_logging):
        mock_load.side_effect = ConfigError("Missing required environment variables: WEBHOOK_ID")

        main()

        mock_logging.assert_called_once_with()
