"""Typer CLI for the pull request reviewer."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import httpx
import typer
from pydantic import ValidationError

from commitlens.cache import ContentCache
from commitlens.config import SessionConfig, load_session_config
from commitlens.github_client import (
    GitHubApiError,
    GitHubAuthError,
    GitHubGateway,
    GitHubInputError,
    build_github_client,
    fetch_authenticated_user_login,
    fetch_file_content,
    fetch_pull_request,
    fetch_pull_request_files,
    get_github_token_with_source,
    get_optional_github_token,
    parse_pr_reference,
    parse_repo_full_name,
)
from commitlens.pipeline import start_bootstrap
from commitlens.progress import ErrorState, LoadingState, LoadingStatus, StepStatus
from commitlens.session import ReviewSession

STEP_MARKERS = {
    StepStatus.PENDING: "[ ]",
    StepStatus.IN_PROGRESS: "[~]",
    StepStatus.COMPLETED: "[x]",
}
TICK_SECONDS = 0.1

app = typer.Typer(help="Browse GitHub pull requests commit by commit.")


def format_checklist(status: LoadingStatus) -> str:
    """Render a loading checklist as plain text."""
    lines = [f"{STEP_MARKERS[step.status]} {step.name}" for step in status.steps]
    lines.append(status.current_message)
    return "\n".join(lines)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _check_access(
    *,
    timeout_seconds: int,
    trust_env: bool,
    token: str,
    repo: str | None,
    pr: int | None,
) -> str:
    """Validate the token and, optionally, read access to one pull request."""
    async with build_github_client(
        timeout_seconds=timeout_seconds, token=token, trust_env=trust_env
    ) as client:
        login = await fetch_authenticated_user_login(client=client)
        if repo is not None and pr is not None:
            owner, name = parse_repo_full_name(repo)
            pull_request = await fetch_pull_request(
                client=client, owner=owner, repo=name, number=pr
            )
            files = await fetch_pull_request_files(
                client=client, owner=owner, repo=name, number=pr
            )
            if files:
                await fetch_file_content(
                    client=client,
                    owner=owner,
                    repo=name,
                    path=files[0].filename,
                    ref=pull_request.head.sha,
                )
        return login


@app.command("auth-check")
def auth_check_command(
    repo: Annotated[
        str | None,
        typer.Option(help="Optional repository in owner/repo format for permission check."),
    ] = None,
    pr: Annotated[
        int | None,
        typer.Option(help="Optional pull request number used with --repo for permission check."),
    ] = None,
    timeout_seconds: Annotated[
        int, typer.Option(help="GitHub API timeout in seconds for the validation call.")
    ] = 20,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate GitHub token setup and optional PR read access."""
    if (repo is None) != (pr is None):
        raise typer.BadParameter("Provide both --repo and --pr together, or neither.")

    try:
        token, token_source = get_github_token_with_source()
    except GitHubAuthError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Token detected in {token_source}.")

    try:
        login = asyncio.run(
            _check_access(
                timeout_seconds=timeout_seconds,
                trust_env=trust_env,
                token=token,
                repo=repo,
                pr=pr,
            )
        )
    except GitHubApiError as error:
        typer.echo(
            "GitHub auth check failed: "
            f"status={error.status_code} endpoint={error.endpoint}."
        )
        raise typer.Exit(code=1) from error
    except GitHubInputError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error
    except httpx.HTTPError as error:
        typer.echo(f"GitHub auth check failed: network error ({error}).")
        raise typer.Exit(code=1) from error

    typer.echo(f"Authenticated as GitHub user '{login}'.")
    if repo is not None and pr is not None:
        typer.echo(f"Repository/PR access check passed for {repo}#{pr}.")
    typer.echo("GitHub token setup is valid.")


def build_gateway(config: SessionConfig, *, token: str | None) -> GitHubGateway:
    """Build the network gateway with a content cache sized from ``config``."""
    client = build_github_client(
        timeout_seconds=config.timeout_seconds, token=token, trust_env=config.trust_env
    )
    return GitHubGateway(client, content_cache=ContentCache(config.content_cache_capacity))


async def _run_inspect(session: ReviewSession) -> None:
    """Drive the bootstrap the way a render loop would, echoing checklist changes."""
    task = start_bootstrap(session)
    last_render = ""
    while True:
        finished = session.drain_updates()
        if isinstance(session.state, LoadingState):
            rendered = format_checklist(session.state.status)
            if rendered != last_render:
                typer.echo(rendered)
                typer.echo("")
                last_render = rendered
        if finished:
            break
        await asyncio.sleep(TICK_SECONDS)
    await task


def _echo_summary(session: ReviewSession) -> None:
    pr = session.pr
    if pr is None:
        return
    typer.echo(f"#{pr.number} {pr.title} ({pr.base.label} <- {pr.head.label})")
    typer.echo(f"{len(session.commits)} commit(s), {pr.changed_files} file(s) changed.")
    typer.echo(session.position_label)
    for file_change in session.files:
        typer.echo(
            f"  {file_change.status:<8} {file_change.filename} "
            f"+{file_change.additions} -{file_change.deletions}"
        )
    if not session.files:
        return
    first = session.files[0]
    if first.diff_content is not None:
        typer.echo(
            f"{first.filename}: {len(first.diff_content.full_file_view)} line(s), "
            f"{len(first.diff_content.hunks)} hunk(s), "
            f"{len(first.diff_content.change_block_starts())} change block(s)."
        )
    elif first.diff_error is not None:
        typer.echo(f"{first.filename}: {first.diff_error}")


@app.command("inspect")
def inspect_command(
    pr: Annotated[
        str,
        typer.Argument(help="GitHub PR URL, owner/repo#N, or a PR number with --owner/--repo."),
    ],
    owner: Annotated[str | None, typer.Option(help="Repository owner for bare PR numbers.")] = None,
    repo: Annotated[str | None, typer.Option(help="Repository name for bare PR numbers.")] = None,
    prefetch: Annotated[
        int | None, typer.Option(help="Commits to pre-fetch in parallel during load.")
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Enable debug logging.")] = False,
) -> None:
    """Load a pull request headlessly and print what the reviewer would show."""
    _configure_logging(verbose)
    try:
        reference = parse_pr_reference(pr, default_owner=owner, default_repo=repo)
    except GitHubInputError as error:
        raise typer.BadParameter(str(error)) from error

    try:
        config = load_session_config(prefetch_parallel=prefetch)
    except ValidationError as error:
        raise typer.BadParameter(f"Invalid session configuration: {error}") from error

    async def _main() -> ReviewSession:
        gateway = build_gateway(config, token=get_optional_github_token())
        session = ReviewSession(
            gateway,
            owner=reference.owner,
            repo=reference.repo,
            number=reference.number,
            config=config,
        )
        try:
            await _run_inspect(session)
        finally:
            await gateway.aclose()
        return session

    session = asyncio.run(_main())

    if isinstance(session.state, ErrorState):
        typer.echo(session.state.message)
        raise typer.Exit(code=1)
    _echo_summary(session)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
