"""Async GitHub API gateway and auth helpers."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn, Protocol
from urllib.parse import quote

import httpx
from dotenv import load_dotenv

from commitlens.cache import ContentCache, FileCacheKey
from commitlens.models import (
    Branch,
    Commit,
    CommitAuthor,
    FileChange,
    FileStatus,
    PullRequest,
    PullRequestReference,
)

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_JSON_ACCEPT = "application/vnd.github+json"
GITHUB_RAW_ACCEPT = "application/vnd.github.raw"
GITHUB_PAGE_SIZE = 100
PR_URL_PATTERN = re.compile(r"github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+)/pull/(?P<number>\d+)")
PR_SHORTHAND_PATTERN = re.compile(r"^(?P<owner>[^/\s]+)/(?P<repo>[^/#\s]+)#(?P<number>\d+)$")
GITHUB_OWNER_ENV_VAR = "GITHUB_OWNER"
GITHUB_REPO_ENV_VAR = "GITHUB_REPO"

logger = logging.getLogger(__name__)


class GitHubAuthError(RuntimeError):
    """Raised when required GitHub authentication is missing."""


class GitHubInputError(ValueError):
    """Raised when repository or PR input values are invalid."""


class GitHubApiError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, *, status_code: int, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class GitHubRateLimitError(GitHubApiError):
    """Raised when GitHub API rate limiting prevents request completion."""


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected JSON object for {context}.",
            status_code=500,
            endpoint=context,
        )
    return value


def _require_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise GitHubApiError(
            f"Expected string field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubApiError(
            f"Expected integer field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_object(payload: dict[str, Any], *, key: str, endpoint: str) -> dict[str, Any]:
    """Read a required object field from payload."""
    value = payload.get(key)
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected object field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _optional_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str | None:
    """Read an optional string field from payload."""
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise GitHubApiError(
            f"Expected '{key}' to be a string or null in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _optional_int(payload: dict[str, Any], *, key: str) -> int:
    """Read an optional integer field, treating absence as zero."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        return 0
    return value


def _optional_login(payload: dict[str, Any], *, key: str) -> str | None:
    """Read ``payload[key]['login']`` when the user object is present."""
    user = payload.get(key)
    if not isinstance(user, dict):
        return None
    login = user.get("login")
    return login if isinstance(login, str) else None


def _parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 GitHub timestamp, returning None when absent or invalid."""
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _is_rate_limited(response: httpx.Response) -> bool:
    """Return whether a failed response reflects exhausted rate limits."""
    if response.status_code == 429:
        return True
    return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"


def _raise_http_error(response: httpx.Response, endpoint: str) -> NoReturn:
    """Raise a typed error for a non-success GitHub API response."""
    message = f"GitHub API request failed with status {response.status_code} for '{endpoint}'."
    if _is_rate_limited(response):
        raise GitHubRateLimitError(
            message,
            status_code=response.status_code,
            endpoint=endpoint,
        )
    raise GitHubApiError(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
    )


async def _request(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    accept_header: str = GITHUB_JSON_ACCEPT,
    allow_not_found: bool = False,
) -> httpx.Response:
    """Perform one GET request and raise typed errors for failures."""
    response = await client.get(endpoint, headers={"Accept": accept_header})
    if response.status_code < 400:
        return response
    if allow_not_found and response.status_code == 404:
        return response
    _raise_http_error(response, endpoint)


async def _request_json(client: httpx.AsyncClient, endpoint: str) -> dict[str, Any]:
    """Perform a JSON request against GitHub API."""
    response = await _request(client, endpoint)
    return _ensure_mapping(response.json(), context=endpoint)


async def _request_json_list(client: httpx.AsyncClient, endpoint: str) -> list[dict[str, Any]]:
    """Perform a JSON request that returns an array of objects."""
    response = await _request(client, endpoint)
    payload = response.json()
    if not isinstance(payload, list):
        raise GitHubApiError(
            "Expected JSON array in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    rows: list[dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            raise GitHubApiError(
                "Expected all array items to be JSON objects in GitHub response.",
                status_code=500,
                endpoint=endpoint,
            )
        rows.append(item)
    return rows


async def _request_paginated(client: httpx.AsyncClient, base_endpoint: str) -> list[dict[str, Any]]:
    """Collect every page of a list endpoint."""
    rows: list[dict[str, Any]] = []
    page = 1
    while True:
        endpoint = f"{base_endpoint}?per_page={GITHUB_PAGE_SIZE}&page={page}"
        page_rows = await _request_json_list(client, endpoint)
        rows.extend(page_rows)
        if len(page_rows) < GITHUB_PAGE_SIZE:
            break
        page += 1
    return rows


def _parse_branch(payload: dict[str, Any], *, endpoint: str) -> Branch:
    """Normalize a pull request base/head object."""
    return Branch(
        label=_optional_str(payload, key="label", endpoint=endpoint) or "",
        ref=_require_str(payload, key="ref", endpoint=endpoint),
        sha=_require_str(payload, key="sha", endpoint=endpoint),
    )


def _parse_commit_author(payload: object) -> CommitAuthor:
    """Normalize a git author/committer identity, tolerating missing fields."""
    if not isinstance(payload, dict):
        return CommitAuthor(name="", email="", date=None)
    name = payload.get("name")
    email = payload.get("email")
    return CommitAuthor(
        name=name if isinstance(name, str) else "",
        email=email if isinstance(email, str) else "",
        date=_parse_timestamp(payload.get("date")),
    )


def _parse_commit(row: dict[str, Any], *, endpoint: str) -> Commit:
    """Normalize one commit row from the pull request commits API."""
    detail = _require_object(row, key="commit", endpoint=endpoint)
    return Commit(
        sha=_require_str(row, key="sha", endpoint=endpoint),
        message=_require_str(detail, key="message", endpoint=endpoint),
        author=_parse_commit_author(detail.get("author")),
        committer=_parse_commit_author(detail.get("committer")),
        author_login=_optional_login(row, key="author"),
        committer_login=_optional_login(row, key="committer"),
    )


def _parse_file_change(row: dict[str, Any], *, endpoint: str) -> FileChange:
    """Normalize one changed-file row from the files or commit APIs."""
    return FileChange(
        filename=_require_str(row, key="filename", endpoint=endpoint),
        status=FileStatus.from_api(_require_str(row, key="status", endpoint=endpoint)),
        additions=_require_int(row, key="additions", endpoint=endpoint),
        deletions=_require_int(row, key="deletions", endpoint=endpoint),
        patch=_optional_str(row, key="patch", endpoint=endpoint),
        previous_filename=_optional_str(row, key="previous_filename", endpoint=endpoint),
    )


async def fetch_pull_request(
    *,
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    number: int,
) -> PullRequest:
    """Fetch pull request metadata from GitHub."""
    normalized_number = validate_pr_number(number)
    endpoint = f"/repos/{owner}/{repo}/pulls/{normalized_number}"

    payload = await _request_json(client, endpoint)
    base_payload = _require_object(payload, key="base", endpoint=endpoint)
    head_payload = _require_object(payload, key="head", endpoint=endpoint)

    return PullRequest(
        number=_require_int(payload, key="number", endpoint=endpoint),
        title=_require_str(payload, key="title", endpoint=endpoint),
        body=_optional_str(payload, key="body", endpoint=endpoint) or "",
        state=_require_str(payload, key="state", endpoint=endpoint),
        author_login=_optional_login(payload, key="user") or "",
        base=_parse_branch(base_payload, endpoint=endpoint),
        head=_parse_branch(head_payload, endpoint=endpoint),
        commits=_optional_int(payload, key="commits"),
        additions=_optional_int(payload, key="additions"),
        deletions=_optional_int(payload, key="deletions"),
        changed_files=_optional_int(payload, key="changed_files"),
        created_at=_parse_timestamp(payload.get("created_at")),
        updated_at=_parse_timestamp(payload.get("updated_at")),
    )


async def fetch_pull_request_commits(
    *,
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    number: int,
) -> list[Commit]:
    """Fetch every commit of a pull request, oldest first."""
    normalized_number = validate_pr_number(number)
    endpoint = f"/repos/{owner}/{repo}/pulls/{normalized_number}/commits"
    rows = await _request_paginated(client, endpoint)
    return [_parse_commit(row, endpoint=endpoint) for row in rows]


async def fetch_pull_request_files(
    *,
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    number: int,
) -> list[FileChange]:
    """Fetch all changed files for a pull request with pagination."""
    normalized_number = validate_pr_number(number)
    endpoint = f"/repos/{owner}/{repo}/pulls/{normalized_number}/files"
    rows = await _request_paginated(client, endpoint)
    return [_parse_file_change(row, endpoint=endpoint) for row in rows]


async def fetch_commit_files(
    *,
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    sha: str,
) -> list[FileChange]:
    """Fetch the files changed by one commit."""
    if not sha:
        raise GitHubInputError("Invalid commit sha ''. Expected a non-empty sha.")
    endpoint = f"/repos/{owner}/{repo}/commits/{quote(sha, safe='')}"
    payload = await _request_json(client, endpoint)
    rows = payload.get("files") or []
    if not isinstance(rows, list):
        raise GitHubApiError(
            "Expected 'files' to be an array in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return [
        _parse_file_change(_ensure_mapping(row, context=endpoint), endpoint=endpoint)
        for row in rows
    ]


def _decode_content_payload(payload: dict[str, Any], *, path: str, ref: str) -> str:
    """Decode a repository contents payload to text, or empty text if not decodable."""
    content_type = payload.get("type")
    if content_type is not None and content_type != "file":
        logger.warning("Unsupported GitHub content type '%s' for '%s'.", content_type, path)
        return ""

    content = payload.get("content")
    encoding = payload.get("encoding")
    if not isinstance(content, str):
        logger.warning("Missing file content payload for '%s' at ref '%s'.", path, ref)
        return ""

    if encoding == "base64":
        try:
            decoded_bytes = base64.b64decode(content, validate=False)
        except (binascii.Error, ValueError):
            logger.warning("Invalid base64 payload for '%s' at ref '%s'.", path, ref)
            return ""
        try:
            return decoded_bytes.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Non-UTF-8 content for '%s' at ref '%s'.", path, ref)
            return ""

    if encoding in {"utf-8", "utf8"}:
        return content

    logger.warning(
        "Unsupported content encoding '%s' for '%s' at ref '%s'.", encoding, path, ref
    )
    return ""


async def fetch_file_content(
    *,
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    path: str,
    ref: str,
) -> str:
    """Fetch one file's text at a git ref; a path absent at that ref yields empty text."""
    normalized_path = path.lstrip("/")
    if not normalized_path:
        raise GitHubInputError("Invalid file path ''. Expected a non-empty repository path.")
    if not ref:
        raise GitHubInputError("Invalid ref ''. Expected a non-empty git ref.")

    endpoint = (
        f"/repos/{owner}/{repo}/contents/{quote(normalized_path, safe='/')}"
        f"?ref={quote(ref, safe='')}"
    )
    response = await _request(client, endpoint, allow_not_found=True)
    if response.status_code == 404:
        logger.debug("File '%s' does not exist at ref '%s'.", normalized_path, ref)
        return ""

    payload = _ensure_mapping(response.json(), context=endpoint)
    if payload.get("type", "file") == "file" and payload.get("encoding") == "none":
        # Files over 1 MB come back without inline content.
        logger.debug("Fetching raw content for large file '%s' at ref '%s'.", normalized_path, ref)
        raw_response = await _request(client, endpoint, accept_header=GITHUB_RAW_ACCEPT)
        return raw_response.text
    return _decode_content_payload(payload, path=normalized_path, ref=ref)


class RepositoryGateway(Protocol):
    """Async source of pull request data consumed by the review session."""

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        """Fetch pull request metadata."""

    async def get_pr_commits(self, owner: str, repo: str, number: int) -> list[Commit]:
        """Fetch the ordered commit list of a pull request."""

    async def get_pr_files(self, owner: str, repo: str, number: int) -> list[FileChange]:
        """Fetch the files changed across the whole pull request."""

    async def get_commit_files(self, owner: str, repo: str, sha: str) -> list[FileChange]:
        """Fetch the files changed by one commit."""

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Fetch file text at a ref, empty when the path is absent there."""


class GitHubGateway:
    """Repository gateway used by the review session.

    File contents are read through a shared ``ContentCache``; every other call
    goes to the network.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        content_cache: ContentCache | None = None,
    ) -> None:
        self._client = client
        self.content_cache = content_cache if content_cache is not None else ContentCache()

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        return await fetch_pull_request(client=self._client, owner=owner, repo=repo, number=number)

    async def get_pr_commits(self, owner: str, repo: str, number: int) -> list[Commit]:
        return await fetch_pull_request_commits(
            client=self._client, owner=owner, repo=repo, number=number
        )

    async def get_pr_files(self, owner: str, repo: str, number: int) -> list[FileChange]:
        return await fetch_pull_request_files(
            client=self._client, owner=owner, repo=repo, number=number
        )

    async def get_commit_files(self, owner: str, repo: str, sha: str) -> list[FileChange]:
        return await fetch_commit_files(client=self._client, owner=owner, repo=repo, sha=sha)

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Return file text at ``ref``, consulting the content cache first."""
        cache_key = FileCacheKey(owner=owner, repo=repo, path=path, ref=ref)
        cached = self.content_cache.get(cache_key)
        if cached is not None:
            logger.debug("Content cache hit for %s@%s.", path, ref)
            return cached

        content = await fetch_file_content(
            client=self._client, owner=owner, repo=repo, path=path, ref=ref
        )
        self.content_cache.put(cache_key, content)
        return content

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def parse_repo_full_name(repo_full_name: str) -> tuple[str, str]:
    """Parse and validate repository input in owner/repo format."""
    owner, separator, repo = repo_full_name.strip().partition("/")
    if not separator or not owner or not repo or "/" in repo:
        raise GitHubInputError(
            f"Invalid repo '{repo_full_name}'. Expected format is owner/repo."
        )
    return owner, repo


def validate_pr_number(pr_number: int) -> int:
    """Validate and normalize pull request number input."""
    if pr_number <= 0:
        raise GitHubInputError(f"Invalid PR number '{pr_number}'. Expected a positive integer.")
    return pr_number


def parse_pr_reference(
    value: str,
    *,
    default_owner: str | None = None,
    default_repo: str | None = None,
) -> PullRequestReference:
    """Parse a PR URL, ``owner/repo#number``, or a bare number plus owner/repo defaults.

    For bare numbers, missing defaults fall back to ``GITHUB_OWNER`` and
    ``GITHUB_REPO`` from the environment.
    """
    candidate = value.strip()

    url_match = PR_URL_PATTERN.search(candidate)
    if url_match is not None:
        return PullRequestReference(
            owner=url_match.group("owner"),
            repo=url_match.group("repo"),
            number=validate_pr_number(int(url_match.group("number"))),
        )

    shorthand_match = PR_SHORTHAND_PATTERN.match(candidate)
    if shorthand_match is not None:
        return PullRequestReference(
            owner=shorthand_match.group("owner"),
            repo=shorthand_match.group("repo"),
            number=validate_pr_number(int(shorthand_match.group("number"))),
        )

    if candidate.isdigit():
        owner = default_owner or os.getenv(GITHUB_OWNER_ENV_VAR)
        repo = default_repo or os.getenv(GITHUB_REPO_ENV_VAR)
        if not owner or not repo:
            raise GitHubInputError(
                f"PR number '{candidate}' needs an owner and repo. "
                f"Pass --owner/--repo or set {GITHUB_OWNER_ENV_VAR} and {GITHUB_REPO_ENV_VAR}."
            )
        return PullRequestReference(
            owner=owner,
            repo=repo,
            number=validate_pr_number(int(candidate)),
        )

    raise GitHubInputError(
        f"Invalid pull request '{value}'. Expected a GitHub PR URL, owner/repo#N, or a number."
    )


def get_github_token() -> str:
    """Read GitHub token from environment and fail fast if missing."""
    token, _source = get_github_token_with_source()
    return token


def get_github_token_with_source() -> tuple[str, str]:
    """Read GitHub token and return token value with environment source key."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    github_token = os.getenv("GITHUB_TOKEN")
    if github_token:
        return github_token, "GITHUB_TOKEN"

    gh_token = os.getenv("GH_TOKEN")
    if gh_token:
        return gh_token, "GH_TOKEN"

    message = "Missing GitHub token. Set GITHUB_TOKEN (preferred) or GH_TOKEN."
    raise GitHubAuthError(message)


def get_optional_github_token() -> str | None:
    """Read GitHub token if configured; anonymous access is allowed with lower rate limits."""
    try:
        return get_github_token()
    except GitHubAuthError:
        logger.warning("No GitHub token found. You may encounter rate limits.")
        return None


async def fetch_authenticated_user_login(*, client: httpx.AsyncClient) -> str:
    """Fetch authenticated GitHub user login for token validation."""
    endpoint = "/user"
    payload = await _request_json(client, endpoint)
    return _require_str(payload, key="login", endpoint=endpoint)


def build_github_client(
    timeout_seconds: float = 20,
    *,
    token: str | None = None,
    trust_env: bool = True,
) -> httpx.AsyncClient:
    """Build a GitHub HTTP client, authenticated when a token is given."""
    headers = {
        "Accept": GITHUB_JSON_ACCEPT,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(
        base_url=GITHUB_API_BASE_URL,
        headers=headers,
        timeout=timeout_seconds,
        trust_env=trust_env,
    )
