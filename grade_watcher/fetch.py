"""
Fetch module for the Grade Watcher pipeline.

This module talks to the GAPS portal: it logs in, extracts the session
token from the login response cookies, looks up the student identifier
and downloads the raw grade report.
"""

import json
import re
from typing import List, Optional

import requests

from grade_watcher.config import DEFAULT_BASE_URL
from grade_watcher.errors import AuthError, NetworkError, StudentLookupError
from grade_watcher.utils import get_logger


# Module logger
logger = get_logger("fetch")

# Default configuration
DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

SESSION_COOKIE = "GAPSSESSID"
SESSION_COOKIE_REGEX = re.compile(rf"^{SESSION_COOKIE}=(.+?);")
STUDENT_ID_REGEX = re.compile(r"DEFAULT_STUDENT_ID\s*=\s*(\d+);")

LOGIN_PATH = "/consultation/index.php"
STUDENT_PATH = "/consultation/etudiant/"
REPORT_PATH = "/consultation/controlescontinus/consultation.php"
REPORT_ACTION = "getStudentCCs"


def create_session() -> requests.Session:
    """
    Create a requests session with browser-like default headers.

    Returns:
        Configured requests.Session instance.
    """
    session = requests.Session()

    session.headers.update({
        "User-Agent": DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "fr-CH,fr;q=0.9,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    })

    return session


def session_headers(token: str) -> dict:
    """Headers that authorize a request with the given session token."""
    return {"Cookie": f"{SESSION_COOKIE}={token}"}


def get_set_cookie_headers(response: requests.Response) -> List[str]:
    """
    Return every Set-Cookie header of a response, in order.

    requests folds repeated headers into one comma-separated value, so the
    raw urllib3 headers are used instead.
    """
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))

    header = response.headers.get("Set-Cookie")
    return [header] if header else []


def extract_session_token(set_cookie_headers: List[str]) -> Optional[str]:
    """
    Extract the session token issued by a successful login.

    The portal sends one Set-Cookie header when the login is rejected and
    two when it succeeds, the second one holding the authenticated session.

    Args:
        set_cookie_headers: Set-Cookie header values of the login response.

    Returns:
        The token, or None if the login did not issue a new session.
    """
    if len(set_cookie_headers) < 2:
        return None

    # Only the re-issued session counts, never an earlier anonymous one
    match = SESSION_COOKIE_REGEX.match(set_cookie_headers[-1].strip())
    return match.group(1) if match else None


def _request(
    session: requests.Session,
    method: str,
    url: str,
    timeout: int = DEFAULT_TIMEOUT,
    **kwargs
) -> requests.Response:
    """Send a request, turning transport failures into NetworkError."""
    logger.debug(f"{method} {url}")

    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise NetworkError(f"Request timeout for {url}", context={"url": url}) from e
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"Connection error for {url}: {e}", context={"url": url}) from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Request failed for {url}: {e}", context={"url": url}) from e

    return response


def _check_status(response: requests.Response, url: str, accepted=(200,)) -> None:
    if response.status_code not in accepted:
        logger.warning(f"HTTP {response.status_code} for {url}")
        raise NetworkError(
            f"HTTP {response.status_code} for {url}",
            status_code=response.status_code,
            context={"url": url}
        )


def authenticate(
    session: requests.Session,
    login: str,
    password: str,
    base_url: str = DEFAULT_BASE_URL,
    timeout: int = DEFAULT_TIMEOUT
) -> str:
    """
    Log in to the portal and return the session token.

    Args:
        session: Configured requests session.
        login: Portal login.
        password: Portal password.
        base_url: Portal base URL.
        timeout: Request timeout in seconds.

    Returns:
        The value of the session cookie.

    Raises:
        AuthError: If the login response does not issue a session cookie.
        NetworkError: On transport failure or server error.
    """
    url = f"{base_url}{LOGIN_PATH}"
    logger.info(f"Logging in to {base_url} as {login}")

    response = _request(
        session,
        "POST",
        url,
        timeout=timeout,
        data={"login": login, "password": password, "submit": "Enter"},
        allow_redirects=False
    )
    _check_status(response, url, accepted=(200, 301, 302, 303))

    token = extract_session_token(get_set_cookie_headers(response))
    if not token:
        raise AuthError(
            "An error occurred during the login process. Your credentials may be wrong.",
            context={"login": login}
        )

    logger.info("Login successful")
    return token


def fetch_student_id(
    session: requests.Session,
    token: str,
    base_url: str = DEFAULT_BASE_URL,
    timeout: int = DEFAULT_TIMEOUT
) -> int:
    """
    Look up the student identifier of the logged-in user.

    Raises:
        StudentLookupError: If the identifier is not present in the page.
        NetworkError: On transport failure or unexpected status.
    """
    url = f"{base_url}{STUDENT_PATH}"

    response = _request(session, "GET", url, timeout=timeout, headers=session_headers(token))
    _check_status(response, url)

    match = STUDENT_ID_REGEX.search(response.text)
    if not match:
        raise StudentLookupError(
            "Student id not found in the student page",
            context={"url": url}
        )

    student_id = int(match.group(1))
    logger.info(f"Found student id {student_id}")
    return student_id


def fetch_grade_report(
    session: requests.Session,
    token: str,
    student_id: int,
    term: str,
    base_url: str = DEFAULT_BASE_URL,
    timeout: int = DEFAULT_TIMEOUT
) -> str:
    """
    Download the raw continuous-assessment report of one term.

    Args:
        session: Configured requests session.
        token: Session token returned by authenticate().
        student_id: Identifier returned by fetch_student_id().
        term: Academic year, e.g. "2023".

    Returns:
        Raw response text (markup wrapped in the portal's RPC envelope).
    """
    url = f"{base_url}{REPORT_PATH}"
    params = {
        "rs": REPORT_ACTION,
        "rsargs": json.dumps([student_id, term], separators=(",", ":")),
    }

    response = _request(
        session,
        "GET",
        url,
        timeout=timeout,
        params=params,
        headers=session_headers(token)
    )
    _check_status(response, url)

    logger.info(f"Fetched grade report for term {term} ({len(response.text)} bytes)")
    return response.text
