"""CLI entry point for gh-helper.

Structured results go to stdout (YAML by default, JSON with --json);
progress messages and guidance go to stderr.

Subcommands:
    gh-helper reviews fetch [PR]           - Reviews and threads of a PR
    gh-helper reviews wait [PR]            - Wait for new reviews and CI checks
    gh-helper threads show THREAD...       - Show review threads in detail
    gh-helper threads reply THREAD...      - Reply to one or many threads
    gh-helper threads resolve THREAD...    - Resolve one or many threads
    gh-helper labels add|remove LABELS     - Bulk label changes on issues and PRs
    gh-helper labels add-from-issues       - Copy linked issue labels onto a PR
    gh-helper issues create|show|edit      - Issues and the sub-issue hierarchy
"""

import argparse
import subprocess
import sys
from typing import Any

from src.config import (
    Config,
    calculate_effective_timeout,
    format_duration,
    load_config,
    parse_duration,
)
from src.github_client import (
    GitHubAuthError,
    GitHubClient,
    GitHubError,
    ReviewFetchOptions,
    detect_current_repo,
)
from src.issues import IssueEdit, create_issue, edit_issue, parse_issue_numbers, show_issue
from src.labels import add_labels_from_issues, apply_labels, parse_item_spec, split_list
from src.logger import clear_pr_context, get_logger, set_pr_context, setup_logging
from src.output_format import OutputFormat, encode_output, resolve_format
from src.review_state import ReviewStateStore, latest_marker
from src.reviews import detailed_status, fetch_report, new_reviews_report, unresolved_threads
from src.threads import (
    bulk_reply,
    bulk_resolve,
    needs_default_message,
    parse_thread_inputs,
    summarize_replies,
    thread_detail,
)
from src.wait_loop import (
    ChecksPolicy,
    ReviewCheckWaiter,
    WaitOutcome,
    WaitPollingError,
    WaitResult,
    WaitState,
    install_interrupt_handler,
)

# Version is set during build
__version__ = "0.1.0"

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
# POSIX convention for termination by SIGINT
EXIT_CANCELLED = 130

REVIEW_REQUEST_COMMENT = "/gemini review"
RECENT_REVIEWS_SHOWN = 5
REVIEW_PREVIEW_CHARS = 100

OUTCOME_EXIT_CODES = {
    WaitOutcome.SATISFIED: EXIT_OK,
    WaitOutcome.TIMED_OUT: EXIT_OK,
    WaitOutcome.MERGE_CONFLICT: EXIT_ERROR,
    WaitOutcome.CANCELLED: EXIT_CANCELLED,
}


def info(msg: str) -> None:
    """Print a progress message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def output_format(args: argparse.Namespace) -> OutputFormat:
    return resolve_format(args.format, args.json, args.yaml)


def build_client(args: argparse.Namespace, config: Config) -> GitHubClient:
    """Create a client for --repo, the configured repo, or the current checkout."""
    repo = args.repo or config.repo or detect_current_repo(config.github_token)
    if not repo:
        raise GitHubError(
            "Could not determine the repository; pass --repo owner/repo or set GH_HELPER_REPO"
        )
    return GitHubClient(repo, token=config.github_token)


def resolve_pr_number(client: GitHubClient, value: str | None) -> int:
    """Parse a PR argument, falling back to the PR of the current branch.

    Accepts "42", "#42", "pull/42" or "pr/42".

    Raises:
        ValueError: If the argument is not a PR number
        GitHubError: If no argument is given and the branch has no PR
    """
    if value:
        try:
            item_type, number = parse_item_spec(value.strip().lstrip("#"))
        except ValueError:
            raise ValueError(f"Invalid PR number: {value!r}") from None
        if item_type not in (None, "PullRequest"):
            raise ValueError(f"Invalid PR number: {value!r}")
        return number

    pr_number = client.get_current_branch_pr()
    if pr_number is None:
        raise GitHubError("No PR number given and no PR found for the current branch")
    logger.debug(f"Using PR #{pr_number} for the current branch")
    return pr_number


# reviews fetch


def cmd_reviews_fetch(args: argparse.Namespace, config: Config) -> int:
    """Handle 'reviews fetch'.

    --threads-only prints the unresolved threads as JSON; --list-threads
    prints their IDs, one per line. Both skip review bodies and keep only
    threads that need a reply.
    """
    client = build_client(args, config)
    pr_number = resolve_pr_number(client, args.pr)
    set_pr_context(client.name_with_owner, pr_number)

    thread_mode = args.threads_only or args.list_threads
    options = ReviewFetchOptions(
        include_threads=args.threads or thread_mode,
        include_bodies=args.bodies and not thread_mode,
        review_limit=args.review_limit,
        thread_limit=args.thread_limit,
        reviews_after=args.reviews_after or "",
        reviews_before=args.reviews_before or "",
        threads_after=args.threads_after or "",
        needs_reply_only=args.needs_reply_only or thread_mode,
        exclude_urls=args.exclude_urls,
    )
    data = client.fetch_review_data(pr_number, options)

    if args.list_threads:
        for thread in unresolved_threads(data):
            print(thread.id)
        return EXIT_OK
    if args.threads_only:
        encode_output([t.to_dict() for t in unresolved_threads(data)], OutputFormat.JSON)
        return EXIT_OK

    encode_output(fetch_report(data, include_bodies=options.include_bodies), output_format(args))
    return EXIT_OK


# reviews wait


def describe_status(state: WaitState, remaining: float) -> str:
    snapshot = state.last_snapshot
    checks = "none"
    if snapshot and snapshot.rollup_state:
        checks = snapshot.rollup_state.value.lower()
    return (
        f"Status: reviews ready: {state.reviews_ready}, "
        f"checks complete: {state.checks_complete} ({checks}), "
        f"remaining: {format_duration(max(remaining, 0))}"
    )


def wait_report(pr_number: int, result: WaitResult, wait_for_reviews: bool) -> dict[str, Any]:
    """Build the structured report printed when a wait ends."""
    state = result.state
    report: dict[str, Any] = {
        "pr": pr_number,
        "outcome": result.outcome.value,
        "elapsed": format_duration(result.elapsed),
        "polls": state.polls,
        "reviewsReady": state.reviews_ready,
        "checksComplete": state.checks_complete,
    }

    snapshot = result.snapshot
    if snapshot is not None:
        report["mergeable"] = snapshot.mergeable.value
        report["mergeStateStatus"] = snapshot.merge_state_status
        report["checks"] = snapshot.rollup_state.value if snapshot.rollup_state else None
        if wait_for_reviews and result.outcome == WaitOutcome.SATISFIED:
            recent = list(reversed(snapshot.reviews[-RECENT_REVIEWS_SHOWN:]))
            report["recentReviews"] = [
                {
                    "id": r.id,
                    "author": r.author,
                    "state": r.state,
                    "createdAt": r.created_at,
                    "preview": r.body[:REVIEW_PREVIEW_CHARS],
                }
                for r in recent
            ]
    if state.last_error is not None:
        report["lastError"] = str(state.last_error)
    return report


def validate_wait_args(args: argparse.Namespace) -> None:
    """Reject option combinations 'reviews wait' cannot honor.

    Raises:
        ValueError: Describing the conflicting options
    """
    if args.detailed and not args.async_mode:
        raise ValueError("--detailed requires --async")
    if args.async_mode and args.exclude_reviews:
        raise ValueError("--async currently only supports review checking")


def check_reviews_once(
    args: argparse.Namespace, config: Config, client: GitHubClient, pr_number: int
) -> int:
    """Report new reviews since the stored marker without waiting."""
    if args.detailed:
        encode_output(detailed_status(client.fetch_pr_details(pr_number)), output_format(args))
        return EXIT_OK

    store = ReviewStateStore(config.cache_dir)
    marker = store.load(pr_number)
    data = client.fetch_review_data(pr_number, ReviewFetchOptions(include_threads=False))
    report = new_reviews_report(data.reviews, marker)

    newest = latest_marker(data.reviews)
    if newest is not None:
        try:
            store.save(pr_number, newest)
        except OSError as e:
            logger.warning(f"Could not save review marker: {e}")

    encode_output({"pr": pr_number, **report}, output_format(args))
    return EXIT_OK


def cmd_reviews_wait(args: argparse.Namespace, config: Config) -> int:
    """Handle 'reviews wait'."""
    validate_wait_args(args)
    client = build_client(args, config)
    pr_number = resolve_pr_number(client, args.pr)
    set_pr_context(client.name_with_owner, pr_number)

    wait_for_reviews = not args.exclude_reviews
    wait_for_checks = not args.exclude_checks

    if args.request_review and wait_for_reviews:
        info(f"Requesting review for PR #{pr_number}...")
        client.create_pr_comment(pr_number, REVIEW_REQUEST_COMMENT)

    if args.async_mode:
        return check_reviews_once(args, config, client, pr_number)

    effective, requested, capped = calculate_effective_timeout(
        args.timeout or config.default_timeout
    )
    poll_interval = (
        parse_duration(args.poll_interval) if args.poll_interval else config.poll_interval
    )
    resume_command = f"gh-helper reviews wait {pr_number} --timeout={format_duration(requested)}"

    if capped:
        info(
            f"Timeout capped to {format_duration(effective)} by the shell tool limit "
            f"(requested {format_duration(requested)})."
        )
        info('To extend it, set BASH_MAX_TIMEOUT_MS, e.g. {"env": {"BASH_MAX_TIMEOUT_MS": "900000"}}')

    store = ReviewStateStore(config.cache_dir)
    marker = store.load(pr_number) if wait_for_reviews else None

    def on_cancel(state: WaitState) -> None:
        info(f"\nStopped waiting on PR #{pr_number}. To continue, run:")
        info(f"    {resume_command}")

    def on_poll(state: WaitState) -> None:
        info(describe_status(state, effective - waiter.elapsed(state)))

    waiter = ReviewCheckWaiter(
        lambda: client.fetch_pr_status(pr_number),
        wait_for_reviews=wait_for_reviews,
        wait_for_checks=wait_for_checks,
        timeout=effective,
        poll_interval=poll_interval,
        last_marker=marker,
        on_cancel=on_cancel,
        on_poll=on_poll,
        checks_policy=ChecksPolicy(
            no_checks_merge_states=frozenset(config.checks_complete_merge_states)
        ),
        max_consecutive_failures=config.max_consecutive_failures,
    )

    targets = " and ".join(
        name for name, wanted in (("reviews", wait_for_reviews), ("checks", wait_for_checks)) if wanted
    )
    info(
        f"Waiting for {targets} on PR #{pr_number} "
        f"(timeout: {format_duration(effective)}). Press Ctrl+C to stop."
    )
    with install_interrupt_handler(waiter):
        result = waiter.run()

    if result.outcome == WaitOutcome.SATISFIED and wait_for_reviews and result.snapshot:
        newest = latest_marker(result.snapshot.reviews)
        if newest is not None:
            try:
                store.save(pr_number, newest)
            except OSError as e:
                logger.warning(f"Could not save review marker: {e}")

    encode_output(wait_report(pr_number, result, wait_for_reviews), output_format(args))

    if result.outcome == WaitOutcome.SATISFIED and wait_for_reviews:
        info(f"Next: gh-helper reviews fetch {pr_number} --needs-reply-only")
    elif result.outcome == WaitOutcome.TIMED_OUT:
        info(f"Timed out. To continue waiting, run:\n    {resume_command}")
    elif result.outcome == WaitOutcome.MERGE_CONFLICT:
        info("CI will not run until the merge conflicts are resolved.")
        info(f"Rebase onto the base branch, push, then run:\n    {resume_command}")
    return OUTCOME_EXIT_CODES[result.outcome]


# threads


def cmd_threads_show(args: argparse.Namespace, config: Config) -> int:
    """Handle 'threads show'."""
    client = build_client(args, config)
    threads, current_user = client.get_threads(args.threads, exclude_urls=args.exclude_urls)
    details = [thread_detail(t, current_user) for t in threads]
    encode_output(details[0] if len(details) == 1 else details, output_format(args))
    return EXIT_OK


def cmd_threads_reply(args: argparse.Namespace, config: Config) -> int:
    """Handle 'threads reply'."""
    inputs = parse_thread_inputs(args.threads)
    default_message = args.message or ""
    if not default_message and needs_default_message(inputs) and not sys.stdin.isatty():
        default_message = sys.stdin.read().strip()

    client = build_client(args, config)
    results = bulk_reply(
        client,
        inputs,
        default_message,
        commit_hash=args.commit_hash or "",
        mention=args.mention or "",
        auto_resolve=args.resolve,
        parallel=args.parallel,
        max_concurrency=args.max_concurrent or config.max_concurrency,
    )

    fmt = output_format(args)
    if len(results) == 1:
        result = results[0]
        encode_output(result.to_dict(), fmt)
        if result.status == "failed":
            raise GitHubError(f"Failed to reply to thread {result.thread_id}: {result.error}")
        return EXIT_OK

    encode_output(summarize_replies(results), fmt)
    return EXIT_OK


def cmd_threads_resolve(args: argparse.Namespace, config: Config) -> int:
    """Handle 'threads resolve'."""
    client = build_client(args, config)
    results = bulk_resolve(
        client,
        args.threads,
        parallel=args.parallel,
        max_concurrency=args.max_concurrent or config.max_concurrency,
    )

    fmt = output_format(args)
    if len(results) == 1:
        encode_output(results[0], fmt)
        return EXIT_OK if results[0]["isResolved"] else EXIT_ERROR

    encode_output(
        {
            "resolvedThreads": results,
            "summary": {
                "total": len(results),
                "resolved": sum(1 for r in results if r["isResolved"]),
            },
        },
        fmt,
    )
    return EXIT_OK


# labels


def cmd_labels(args: argparse.Namespace, config: Config) -> int:
    """Handle 'labels add' and 'labels remove'."""
    client = build_client(args, config)
    summary = apply_labels(
        client,
        split_list(args.labels),
        split_list(args.items),
        args.action,
        dry_run=args.dry_run,
        parallel=args.parallel,
        max_concurrency=args.max_concurrent or config.max_concurrency,
    )
    encode_output(summary, output_format(args))
    return EXIT_OK


def cmd_labels_from_issues(args: argparse.Namespace, config: Config) -> int:
    """Handle 'labels add-from-issues'."""
    client = build_client(args, config)
    pr_number = resolve_pr_number(client, args.pr)
    set_pr_context(client.name_with_owner, pr_number)

    result = add_labels_from_issues(client, pr_number, dry_run=args.dry_run)
    if result is None:
        info(f"PR #{pr_number} already has all labels from its linked issues")
        return EXIT_OK
    encode_output(result.to_dict(), output_format(args))
    return EXIT_OK


# issues


def read_body(args: argparse.Namespace) -> str:
    """Return the issue body from --body, --body-file, or stdin for '-'.

    Raises:
        ValueError: If the body file cannot be read
    """
    if args.body_file is None:
        return args.body or ""
    if args.body_file == "-":
        return sys.stdin.read()
    try:
        with open(args.body_file, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise ValueError(f"Could not read body file {args.body_file}: {e}") from e


def cmd_issues_create(args: argparse.Namespace, config: Config) -> int:
    """Handle 'issues create'."""
    body = read_body(args)
    client = build_client(args, config)
    result = create_issue(
        client,
        args.title,
        body,
        labels=split_list(args.label or ""),
        assignees=split_list(args.assignee or ""),
        milestone=args.milestone or "",
        project=args.project or "",
        parent=args.parent,
    )
    encode_output(result, output_format(args))
    return EXIT_OK


def cmd_issues_show(args: argparse.Namespace, config: Config) -> int:
    """Handle 'issues show'."""
    client = build_client(args, config)
    result = show_issue(
        client,
        args.number,
        include_sub=args.include_sub,
        detailed=args.detailed,
        parallel=args.parallel,
        max_concurrency=args.max_concurrent or config.max_concurrency,
    )
    encode_output(result, output_format(args))
    return EXIT_OK


def cmd_issues_edit(args: argparse.Namespace, config: Config) -> int:
    """Handle 'issues edit'."""
    edit = IssueEdit(
        parent=args.parent,
        overwrite=args.overwrite,
        unlink_parent=args.unlink_parent,
        after=args.after,
        before=args.before,
        position=args.position or "",
        add_subs=parse_issue_numbers(args.add_subs or ""),
        remove_subs=parse_issue_numbers(args.remove_subs or ""),
    )
    client = build_client(args, config)
    encode_output(edit_issue(client, args.number, edit), output_format(args))
    return EXIT_OK


def issue_number(value: str) -> int:
    """argparse type for an issue number given as "12" or "#12"."""
    text = value.strip().lstrip("#")
    if not text.isdigit():
        raise argparse.ArgumentTypeError(f"invalid issue number: {value!r}")
    return int(text)


def add_global_arguments(parser: argparse.ArgumentParser, suppress: bool = False) -> None:
    """Add the options every command accepts.

    Subcommand parsers use SUPPRESS defaults so that an option given before
    the subcommand is not overwritten by the subcommand's default.
    """

    def default(value: Any) -> Any:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument(
        "--repo",
        default=default(None),
        help="Repository in owner/repo format (default: current repository)",
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in OutputFormat],
        default=default(None),
        help="Output format (default: yaml)",
    )
    parser.add_argument(
        "--json", action="store_true", default=default(False), help="Shorthand for --format json"
    )
    parser.add_argument(
        "--yaml", action="store_true", default=default(False), help="Shorthand for --format yaml"
    )
    parser.add_argument(
        "--verbose", action="store_true", default=default(False), help="Enable debug logging"
    )


def add_concurrency_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--parallel",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Run operations concurrently (default: on)",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        metavar="N",
        help="Maximum concurrent requests (default: GH_HELPER_MAX_CONCURRENCY or 5)",
    )


def add_command(subparsers: Any, name: str, **kwargs: Any) -> argparse.ArgumentParser:
    """Add a leaf subcommand that also accepts the global options."""
    parser = subparsers.add_parser(name, **kwargs)
    add_global_arguments(parser, suppress=True)
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Global options are accepted both before and after the subcommand.
    """
    parser = argparse.ArgumentParser(
        prog="gh-helper",
        description="GitHub helper for pull request review workflows",
    )
    add_global_arguments(parser)
    parser.add_argument("--version", action="version", version=f"gh-helper {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # 'reviews' subcommand
    reviews_parser = subparsers.add_parser("reviews", help="Pull request review operations")
    reviews_sub = reviews_parser.add_subparsers(dest="action", required=True)

    fetch_parser = add_command(
        reviews_sub, "fetch", help="Fetch reviews and review threads of a PR"
    )
    fetch_parser.add_argument(
        "pr", nargs="?", default=None, help="PR number (default: PR of the current branch)"
    )
    fetch_parser.add_argument(
        "--threads",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Include review threads (default: on)",
    )
    fetch_parser.add_argument(
        "--bodies",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Include review bodies and action items (default: on)",
    )
    fetch_parser.add_argument(
        "--review-limit", type=int, default=20, help="Reviews per page (default: 20)"
    )
    fetch_parser.add_argument(
        "--thread-limit", type=int, default=50, help="Threads per page (default: 50)"
    )
    fetch_parser.add_argument("--reviews-after", metavar="CURSOR", help="Page reviews forward")
    fetch_parser.add_argument("--reviews-before", metavar="CURSOR", help="Page reviews backward")
    fetch_parser.add_argument("--threads-after", metavar="CURSOR", help="Page threads forward")
    fetch_parser.add_argument(
        "--needs-reply-only", action="store_true", help="Only threads that need a reply"
    )
    fetch_parser.add_argument(
        "--threads-only",
        action="store_true",
        help="Print only unresolved threads needing a reply, as JSON",
    )
    fetch_parser.add_argument(
        "--list-threads",
        action="store_true",
        help="Print the IDs of threads needing a reply, one per line",
    )
    fetch_parser.add_argument(
        "--exclude-urls", action="store_true", help="Leave comment URLs out of the output"
    )
    fetch_parser.set_defaults(handler=cmd_reviews_fetch)

    wait_parser = add_command(
        reviews_sub, "wait", help="Wait for new reviews and CI checks to complete"
    )
    wait_parser.add_argument(
        "pr", nargs="?", default=None, help="PR number (default: PR of the current branch)"
    )
    wait_parser.add_argument(
        "--timeout", help="How long to wait, e.g. 90s, 5m, 1h (default: GH_HELPER_TIMEOUT or 5m)"
    )
    wait_parser.add_argument(
        "--poll-interval", help="Time between polls (default: GH_HELPER_POLL_INTERVAL or 30s)"
    )
    wait_parser.add_argument(
        "--exclude-reviews", action="store_true", help="Only wait for CI checks"
    )
    wait_parser.add_argument(
        "--exclude-checks", action="store_true", help="Only wait for new reviews"
    )
    wait_parser.add_argument(
        "--request-review",
        action="store_true",
        help=f"Post a '{REVIEW_REQUEST_COMMENT}' comment before waiting for reviews",
    )
    wait_parser.add_argument(
        "--async",
        dest="async_mode",
        action="store_true",
        help="Check once for new reviews and exit instead of waiting",
    )
    wait_parser.add_argument(
        "--detailed",
        action="store_true",
        help="With --async, report threads, approvals, CI and mergeability",
    )
    wait_parser.set_defaults(handler=cmd_reviews_wait)

    # 'threads' subcommand
    threads_parser = subparsers.add_parser("threads", help="Review thread operations")
    threads_sub = threads_parser.add_subparsers(dest="action", required=True)

    show_parser = add_command(threads_sub, "show", help="Show review threads in detail")
    show_parser.add_argument("threads", nargs="+", metavar="THREAD", help="Thread ID")
    show_parser.add_argument(
        "--exclude-urls", action="store_true", help="Leave comment URLs out of the output"
    )
    show_parser.set_defaults(handler=cmd_threads_show)

    reply_parser = add_command(
        threads_sub,
        "reply",
        help="Reply to review threads",
        description=(
            "Reply to one or more threads. Give each thread as THREAD_ID or "
            "THREAD_ID:message; threads without their own message use --message "
            "or text piped on stdin."
        ),
    )
    reply_parser.add_argument("threads", nargs="+", metavar="THREAD", help="THREAD_ID[:message]")
    reply_parser.add_argument("--message", "-m", help="Default reply message")
    reply_parser.add_argument("--commit-hash", help="Commit that addresses the feedback")
    reply_parser.add_argument("--mention", help="User to @-mention in the reply")
    reply_parser.add_argument(
        "--resolve", action="store_true", help="Resolve each thread after replying"
    )
    add_concurrency_arguments(reply_parser)
    reply_parser.set_defaults(handler=cmd_threads_reply)

    resolve_parser = add_command(threads_sub, "resolve", help="Resolve review threads")
    resolve_parser.add_argument("threads", nargs="+", metavar="THREAD", help="Thread ID")
    add_concurrency_arguments(resolve_parser)
    resolve_parser.set_defaults(handler=cmd_threads_resolve)

    # 'labels' subcommand
    labels_parser = subparsers.add_parser("labels", help="Bulk label operations")
    labels_sub = labels_parser.add_subparsers(dest="action", required=True)
    for action, help_text in (
        ("add", "Add labels to issues and PRs"),
        ("remove", "Remove labels from issues and PRs"),
    ):
        action_parser = add_command(labels_sub, action, help=help_text)
        action_parser.add_argument("labels", help="Comma-separated label names")
        action_parser.add_argument(
            "--items",
            required=True,
            help="Comma-separated items, e.g. 254,issue/238,pull/267",
        )
        action_parser.add_argument(
            "--dry-run", action="store_true", help="Show what would change without changing it"
        )
        add_concurrency_arguments(action_parser)
        action_parser.set_defaults(handler=cmd_labels)

    from_issues_parser = add_command(
        labels_sub, "add-from-issues", help="Add the labels of linked issues to a PR"
    )
    from_issues_parser.add_argument(
        "--pr", help="PR number (default: PR of the current branch)"
    )
    from_issues_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would change without changing it"
    )
    from_issues_parser.set_defaults(handler=cmd_labels_from_issues)

    # 'issues' subcommand
    issues_parser = subparsers.add_parser("issues", help="Issue operations")
    issues_sub = issues_parser.add_subparsers(dest="action", required=True)

    create_parser = add_command(issues_sub, "create", help="Create an issue")
    create_parser.add_argument("--title", "-t", required=True, help="Issue title")
    body_group = create_parser.add_mutually_exclusive_group()
    body_group.add_argument("--body", "-b", help="Issue body")
    body_group.add_argument(
        "--body-file", "-F", metavar="FILE", help="Read the body from FILE ('-' for stdin)"
    )
    create_parser.add_argument("--label", "-l", help="Comma-separated label names")
    create_parser.add_argument("--assignee", "-a", help="Comma-separated user logins")
    create_parser.add_argument("--milestone", "-m", help="Milestone title")
    create_parser.add_argument("--project", "-p", help="Project title")
    create_parser.add_argument("--parent", type=issue_number, help="Parent issue number")
    create_parser.set_defaults(handler=cmd_issues_create)

    issue_show_parser = add_command(issues_sub, "show", help="Show an issue")
    issue_show_parser.add_argument("number", type=issue_number, help="Issue number")
    issue_show_parser.add_argument(
        "--include-sub", action="store_true", help="Include sub-issues and their progress"
    )
    issue_show_parser.add_argument(
        "--detailed", action="store_true", help="Fetch every sub-issue in full"
    )
    add_concurrency_arguments(issue_show_parser)
    issue_show_parser.set_defaults(handler=cmd_issues_show)

    edit_parser = add_command(
        issues_sub,
        "edit",
        help="Change an issue's place in the sub-issue hierarchy",
        description="Perform exactly one hierarchy change per call.",
    )
    edit_parser.add_argument("number", type=issue_number, help="Issue number")
    edit_parser.add_argument("--parent", type=issue_number, help="Make the issue a sub-issue of this one")
    edit_parser.add_argument(
        "--overwrite", action="store_true", help="Replace an existing parent"
    )
    edit_parser.add_argument(
        "--unlink-parent", action="store_true", help="Detach the issue from its parent"
    )
    edit_parser.add_argument("--after", type=issue_number, help="Move after this sibling")
    edit_parser.add_argument("--before", type=issue_number, help="Move before this sibling")
    edit_parser.add_argument("--position", choices=["first", "last"], help="Move to an end")
    edit_parser.add_argument("--add-subs", metavar="ISSUES", help="Comma-separated sub-issues to add")
    edit_parser.add_argument(
        "--remove-subs", metavar="ISSUES", help="Comma-separated sub-issues to remove"
    )
    edit_parser.set_defaults(handler=cmd_issues_edit)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the gh-helper CLI."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    setup_logging(log_file=config.log_file, verbose=args.verbose)

    try:
        exit_code = args.handler(args, config)
    except GitHubAuthError as e:
        print(f"\n{e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except (GitHubError, WaitPollingError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except subprocess.CalledProcessError as e:
        print(f"Error: {(e.stderr or str(e)).strip()}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        sys.exit(EXIT_CANCELLED)
    finally:
        clear_pr_context()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
