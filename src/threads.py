"""Bulk operations on pull request review threads.

Replies and resolutions fan out over the bounded parallel executor; a
failure on one thread is reported in that thread's result and never stops
the others.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.github_client import GitHubClient
from src.interfaces import ReviewThread
from src.logger import get_logger
from src.parallel import DEFAULT_MAX_CONCURRENCY, execute_parallel, execute_parallel_with_errors

logger = get_logger(__name__)

DEFAULT_COMMIT_MESSAGE = "Thank you for the feedback!"


@dataclass
class ThreadInput:
    """A thread to reply to, with an optional per-thread message."""

    id: str
    custom_message: str = ""


@dataclass
class ReplyResult:
    thread_id: str
    status: str
    message: str = ""
    comment_id: str = ""
    url: str = ""
    resolved: bool = False
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"threadId": self.thread_id, "status": self.status}
        if self.comment_id:
            data["commentId"] = self.comment_id
        if self.url:
            data["url"] = self.url
        data["message"] = self.message
        if self.resolved:
            data["resolved"] = True
        if self.error:
            data["error"] = self.error
        return data


def parse_thread_inputs(args: list[str]) -> list[ThreadInput]:
    """Parse ``THREAD_ID[:message]`` arguments.

    Only the first colon separates the ID, so messages may contain colons.
    """
    inputs = []
    for arg in args:
        thread_id, _, message = arg.partition(":")
        if not thread_id.strip():
            raise ValueError(f"Missing thread ID in {arg!r}")
        inputs.append(ThreadInput(id=thread_id.strip(), custom_message=message.strip()))
    return inputs


def needs_default_message(inputs: list[ThreadInput]) -> bool:
    return any(not i.custom_message for i in inputs)


def build_reply_text(message: str, commit_hash: str = "", mention: str = "") -> str:
    """Compose the final reply body.

    Appends a "Fixed in commit" line when a commit is given, prefixes an
    @-mention, and expands ``{commit}`` placeholders.
    """
    text = message
    if commit_hash:
        text = f"{text.strip()}\n\nFixed in commit {commit_hash}."
    if mention:
        text = f"@{mention.lstrip('@')} {text}"
    return text.replace("{commit}", commit_hash)


def bulk_reply(
    client: GitHubClient,
    inputs: list[ThreadInput],
    default_message: str = "",
    *,
    commit_hash: str = "",
    mention: str = "",
    auto_resolve: bool = False,
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[ReplyResult]:
    """Reply to many threads, optionally resolving each after replying.

    Raises:
        ValueError: If some thread ends up with no message to send
    """
    if not default_message and commit_hash:
        default_message = DEFAULT_COMMIT_MESSAGE
    for thread in inputs:
        if not thread.custom_message and not default_message:
            raise ValueError(
                f"No message provided for thread {thread.id} "
                "(use --message, THREAD_ID:message, or pipe content to stdin)"
            )

    def reply(thread: ThreadInput) -> ReplyResult:
        message = thread.custom_message or default_message
        result = ReplyResult(thread_id=thread.id, status="success", message=message)
        body = build_reply_text(message, commit_hash, mention)
        try:
            result.comment_id, result.url = client.reply_to_thread(thread.id, body)
        except Exception as e:
            logger.warning(f"Failed to reply to thread {thread.id}: {e}")
            result.status = "failed"
            result.error = str(e)
            return result

        if auto_resolve:
            try:
                client.resolve_thread(thread.id)
                result.resolved = True
            except Exception as e:
                # The reply went through; only resolution failed
                logger.warning(f"Replied but failed to resolve thread {thread.id}: {e}")
        return result

    results = execute_parallel(inputs, reply, parallel, max_concurrency)
    logger.info(f"Replied to {count_status(results, 'success')}/{len(results)} thread(s)")
    return results


def bulk_resolve(
    client: GitHubClient,
    thread_ids: list[str],
    *,
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[dict[str, Any]]:
    """Resolve many threads; each entry reports success or the error."""
    resolved_at = datetime.now(UTC).isoformat(timespec="seconds")
    outcomes = execute_parallel_with_errors(
        thread_ids, client.resolve_thread, parallel, max_concurrency
    )

    results = []
    for thread_id, outcome in zip(thread_ids, outcomes, strict=True):
        if outcome.ok:
            results.append({"id": thread_id, "isResolved": True, "resolvedAt": resolved_at})
        else:
            logger.warning(f"Failed to resolve thread {thread_id}: {outcome.error}")
            results.append({"id": thread_id, "isResolved": False, "error": str(outcome.error)})
    return results


def count_status(results: list[ReplyResult], status: str) -> int:
    return sum(1 for r in results if r.status == status)


def summarize_replies(results: list[ReplyResult]) -> dict[str, Any]:
    """Build the bulk reply report."""
    return {
        "bulkReplyResults": [r.to_dict() for r in results],
        "summary": {
            "total": len(results),
            "successful": count_status(results, "success"),
            "failed": count_status(results, "failed"),
            "resolved": sum(1 for r in results if r.resolved),
        },
    }


def thread_detail(thread: ReviewThread, current_user: str) -> dict[str, Any]:
    """Build the 'threads show' view of a thread.

    Only the first comment carries the diff hunk. A thread is flagged as
    needing a reply while it is unresolved and someone other than the
    current user spoke last.
    """
    comments = []
    for i, c in enumerate(thread.comments):
        comment: dict[str, Any] = {
            "id": c.id,
            "author": {"login": c.author},
            "createdAt": c.created_at,
            "body": c.body,
        }
        if c.url:
            comment["url"] = c.url
        if i == 0 and c.diff_hunk:
            comment["diffHunk"] = c.diff_hunk
        comments.append(comment)

    data: dict[str, Any] = {
        "id": thread.id,
        "isResolved": thread.is_resolved,
        "path": thread.path,
        "line": thread.line,
    }
    if thread.url:
        data["url"] = thread.url
    data["subjectType"] = thread.subject_type
    data["comments"] = {"nodes": comments, "totalCount": thread.comment_count}

    if not thread.is_resolved and thread.last_comment_by and thread.last_comment_by != current_user:
        data["needsReply"] = True
        data["lastCommentBy"] = thread.last_comment_by
    return data
