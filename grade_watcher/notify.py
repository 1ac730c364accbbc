"""
Notify module for the Grade Watcher pipeline.

This module posts a Discord webhook message when a new or modified grade
is detected. The message is sent once; failures are raised as NotifyError
and are not retried.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from grade_watcher.errors import NotifyError
from grade_watcher.models import PLACEHOLDER
from grade_watcher.utils import get_logger, parse_number


# Module logger
logger = get_logger("notify")

DISCORD_API_BASE = "https://discord.com/api/v10"
REQUEST_TIMEOUT = 30  # seconds

UNGRADED_PLACEHOLDER = PLACEHOLDER

EMBED_TITLE = "🚨 Une nouvelle note a été ajoutée 🚨"
EMBED_URL = "https://gaps.heig-vd.ch/consultation/controlescontinus/consultation.php"
EMBED_COLOR = 16711680
WEBHOOK_USERNAME = "GAPS"
WEBHOOK_AVATAR_URL = "https://i.imgur.com/bmGBnNF.png"

# Swiss 1-6 scale, 4 is the pass mark
POSITIVE_THRESHOLD = 5.0
NEUTRAL_THRESHOLD = 4.0
POSITIVE_EMOJI = "✨"
NEUTRAL_EMOJI = "👍"
NEGATIVE_EMOJI = "😬"


def is_ungraded(average_text: Optional[str]) -> bool:
    return average_text is None or average_text.strip() in ("", UNGRADED_PLACEHOLDER)


def choose_emoji(average_text: str) -> str:
    """
    Pick the emoji shown next to the class average.

    Args:
        average_text: Class average as displayed by the portal.

    Returns:
        An emoji, or an empty string when the average is not a number.
    """
    average = parse_number(average_text)
    if average is None:
        return ""
    if average >= POSITIVE_THRESHOLD:
        return POSITIVE_EMOJI
    if average >= NEUTRAL_THRESHOLD:
        return NEUTRAL_EMOJI
    return NEGATIVE_EMOJI


def build_webhook_url(webhook_id: str, webhook_token: str) -> str:
    return f"{DISCORD_API_BASE}/webhooks/{webhook_id}/{webhook_token}"


def format_message_description(
    branch_name: str,
    sub_branch_name: str,
    date: str,
    average_text: str,
    description: Optional[str] = None
) -> str:
    """
    Format the embed body.

    Example:
        Math, "Algebra" - 2024-02-01
        Quiz2

        Moyenne: 4.5 👍
    """
    lines = [f'{branch_name}, "{sub_branch_name}" - {date}']
    if description and description != PLACEHOLDER:
        lines.append(description)

    average_line = f"Moyenne: {average_text} {choose_emoji(average_text)}".rstrip()
    lines.extend(["", average_line])

    return "\n".join(lines)


def format_webhook_payload(
    branch_name: str,
    sub_branch_name: str,
    date: str,
    average_text: str,
    description: Optional[str] = None,
    timestamp: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the JSON body of the webhook call.

    Args:
        branch_name: Course of the new grade.
        sub_branch_name: Component of the course.
        date: Exam date as displayed.
        average_text: Class average as displayed.
        description: Exam description, if known.
        timestamp: Embed timestamp. Defaults to now (UTC).

    Returns:
        Payload dictionary ready to be sent as JSON.
    """
    timestamp = timestamp or datetime.now(timezone.utc)

    return {
        "content": None,
        "embeds": [
            {
                "title": EMBED_TITLE,
                "description": format_message_description(
                    branch_name, sub_branch_name, date, average_text, description
                ),
                "url": EMBED_URL,
                "color": EMBED_COLOR,
                "timestamp": timestamp.isoformat(),
            }
        ],
        "username": WEBHOOK_USERNAME,
        "avatar_url": WEBHOOK_AVATAR_URL,
        "attachments": [],
    }


def send_webhook_message(
    session: requests.Session,
    webhook_url: str,
    payload: Dict[str, Any]
) -> None:
    """
    Post a payload to a Discord webhook.

    Raises:
        NotifyError: If the request fails or Discord answers with an error.
    """
    try:
        response = session.post(
            webhook_url,
            params={"wait": "true"},
            json=payload,
            timeout=REQUEST_TIMEOUT
        )
    except requests.exceptions.Timeout as e:
        raise NotifyError("Webhook request timeout") from e
    except requests.exceptions.RequestException as e:
        raise NotifyError(f"Webhook request failed: {e}") from e

    if response.status_code not in (200, 204):
        raise NotifyError(
            f"Webhook error: HTTP {response.status_code}",
            status_code=response.status_code
        )

    logger.debug(f"Webhook answered HTTP {response.status_code}")


def notify_new_grade(
    branch_name: str,
    sub_branch_name: str,
    date: str,
    average_text: str,
    *,
    webhook_id: str,
    webhook_token: str,
    description: Optional[str] = None,
    session: Optional[requests.Session] = None,
    dry_run: bool = False
) -> bool:
    """
    Announce a new or modified grade.

    Nothing is sent while the class average is still the ungraded
    placeholder.

    Args:
        branch_name: Course of the grade.
        sub_branch_name: Component of the course.
        date: Exam date.
        average_text: Class average as displayed.
        webhook_id: Discord webhook id.
        webhook_token: Discord webhook token.
        description: Exam description, if known.
        session: Optional requests session to reuse.
        dry_run: If True, log the message instead of sending it.

    Returns:
        True if a message was sent (or would have been in dry-run mode).

    Raises:
        NotifyError: If the webhook call fails.
    """
    if is_ungraded(average_text):
        logger.info(f"Grade in {branch_name} / {sub_branch_name} is not graded yet, skipping")
        return False

    payload = format_webhook_payload(
        branch_name, sub_branch_name, date, average_text, description
    )

    if dry_run:
        logger.info(f"[DRY RUN] Would notify: {branch_name} / {sub_branch_name} - {date}")
        logger.debug(f"[DRY RUN] Payload: {payload}")
        return True

    logger.info(f"Notifying new grade: {branch_name} / {sub_branch_name} - {date}")

    owns_session = session is None
    session = session or requests.Session()
    try:
        send_webhook_message(session, build_webhook_url(webhook_id, webhook_token), payload)
    finally:
        if owns_session:
            session.close()

    logger.info("Webhook message sent")
    return True
