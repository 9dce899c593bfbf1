"""Review reports: the fetch view, the one-shot new-review check and detailed status.

Everything here shapes data the client already fetched; nothing in this
module talks to GitHub.
"""

import re
from datetime import UTC, datetime
from typing import Any

from src.interfaces import PRDetails, Review, ReviewData, ReviewMarker, ReviewThread
from src.logger import get_logger
from src.review_state import is_new_review, latest_marker

logger = get_logger(__name__)

SEVERITY_CRITICAL = "critical"
SEVERITY_HIGH = "high"
SEVERITY_INFO = "info"

CRITICAL_PATTERNS = [
    re.compile(p)
    for p in (
        r"panic",
        r"crash",
        r"security",
        r"vulnerability",
        r"injection",
        r"leak",
        r"exposed",
        r"hardcoded.*password",
        r"hardcoded.*credential",
    )
]
HIGH_PATTERNS = [
    re.compile(p)
    for p in (
        r"bug",
        r"error",
        r"broken",
        r"incorrect",
        r"wrong",
        r"fail",
        r"nil.*handling",
        r"null.*reference",
    )
]

ACTION_WORDS = (
    "should",
    "must",
    "need to",
    "please",
    "consider",
    "fix",
    "update",
    "change",
    "remove",
    "add",
)
ISSUE_WORDS = (
    "issue",
    "problem",
    "concern",
    "bug",
    "error",
    "incorrect",
    "wrong",
    "missing",
    "todo",
    "fixme",
)
ACTION_ITEM_MIN_CHARS = 21
ACTION_ITEM_MAX_CHARS = 199

# Headers Gemini Code Assist puts on its PR comments
SUMMARY_HEADER = "## Summary of Changes"
REVIEW_HEADER = "## Code Review"

REQUIRED_APPROVALS = 1
PREVIEW_CHARS = 100


def classify_severity(body: str) -> str:
    """Rate review feedback as critical, high or info.

    Explicit markers such as ``![critical]`` win over keywords.
    """
    lower = body.lower()
    if "![critical]" in body or "critical" in lower:
        return SEVERITY_CRITICAL
    if "![high]" in body or "high-severity" in lower or "high-priority" in lower:
        return SEVERITY_HIGH
    if any(p.search(lower) for p in CRITICAL_PATTERNS):
        return SEVERITY_CRITICAL
    if any(p.search(lower) for p in HIGH_PATTERNS):
        return SEVERITY_HIGH
    return SEVERITY_INFO


def extract_action_items(body: str) -> list[str]:
    """Pick out lines of a review body that ask for a change or name a problem.

    Lines must be a sentence-sized length; duplicates (ignoring case) are dropped.
    """
    items: list[str] = []
    seen: set[str] = set()
    for line in body.splitlines():
        text = line.strip()
        if not ACTION_ITEM_MIN_CHARS <= len(text) <= ACTION_ITEM_MAX_CHARS:
            continue
        lower = text.lower()
        if not any(w in lower for w in ACTION_WORDS + ISSUE_WORDS):
            continue
        if lower in seen:
            continue
        seen.add(lower)
        items.append(text)
    return items


def review_to_dict(review: Review, include_body: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": review.id,
        "author": {"login": review.author},
        "state": review.state,
        "createdAt": review.created_at,
    }
    if not include_body:
        return data
    data["severity"] = classify_severity(review.body)
    if review.body:
        data["body"] = review.body
    action_items = extract_action_items(review.body)
    if action_items:
        data["actionItems"] = action_items
    if review.comments_count:
        data["commentsCount"] = review.comments_count
    return data


def unresolved_threads(data: ReviewData) -> list[ReviewThread]:
    return [t for t in data.threads or [] if not t.is_resolved]


def fetch_report(
    data: ReviewData, include_bodies: bool = True, fetched_at: datetime | None = None
) -> dict[str, Any]:
    """Build the 'reviews fetch' view of a PR."""
    fetched_at = fetched_at or datetime.now(UTC)
    report: dict[str, Any] = {
        "number": data.number,
        "title": data.title,
        "state": data.state,
        "mergeable": data.mergeable,
        "mergeStateStatus": data.merge_state_status,
        "currentUser": data.current_user,
        "fetchedAt": fetched_at.isoformat(timespec="seconds"),
        "reviews": [review_to_dict(r, include_bodies) for r in data.reviews],
        "reviewPageInfo": data.review_page.to_dict(),
    }
    if not include_bodies:
        report["reviewBodiesFetched"] = False

    if data.threads is not None:
        unresolved = unresolved_threads(data)
        report["reviewThreads"] = {
            "totalCount": len(data.threads),
            "unresolvedCount": len(unresolved),
            "needingReply": [t.to_dict() for t in unresolved],
        }
        if data.thread_page is not None:
            report["threadPageInfo"] = data.thread_page.to_dict()
    return report


def new_reviews_report(reviews: list[Review], marker: ReviewMarker | None) -> dict[str, Any]:
    """Report reviews newer than ``marker`` (all reviews when there is none).

    The returned ``latestReview`` is the marker to record for the next check.
    """
    if marker is None:
        new = list(reviews)
    else:
        new = [r for r in reviews if is_new_review(r, marker)]
        logger.debug(f"{len(new)} new review(s) since {marker.id} at {marker.created_at}")

    report: dict[str, Any] = {
        "totalReviews": len(reviews),
        "previousReview": marker.to_dict() if marker else None,
        "hasNewReviews": bool(new) if marker else None,
        "reviews": [
            {
                "id": r.id,
                "author": r.author,
                "state": r.state,
                "createdAt": r.created_at,
                "preview": preview(r.body),
            }
            for r in new
        ],
    }
    newest = latest_marker(reviews)
    report["latestReview"] = newest.to_dict() if newest else None
    return report


def preview(body: str) -> str:
    if len(body) > PREVIEW_CHARS:
        return body[:PREVIEW_CHARS] + "..."
    return body


def detailed_status(details: PRDetails) -> dict[str, Any]:
    """Summarize threads, approvals, CI, mergeability and bot comments of a PR.

    Each check carries a pass/fail (or pending) status so a caller can see at
    a glance what still blocks the PR.
    """
    resolved = [t for t in details.threads if t.is_resolved]
    unresolved = len(details.threads) - len(resolved)
    last_resolved = max(
        (t.comments[-1].created_at for t in resolved if t.comments), default=""
    )

    timeline = {"prCreated": details.created_at, "lastPush": details.last_push_at}
    if last_resolved:
        timeline["lastReviewThreadResolved"] = last_resolved

    checks: dict[str, Any] = {
        "reviewThreads": {
            "status": "fail" if unresolved else "pass",
            "resolved": len(resolved),
            "unresolved": unresolved,
        },
        "reviews": approval_status(details.reviews),
        "ciStatus": ci_status(details),
        "mergeability": mergeability_status(details),
    }
    comments = comment_analysis(details)
    if comments is not None:
        checks["geminiComments"] = comments

    return {
        "detailedStatus": {
            "pr": details.number,
            "title": details.title,
            "timeline": timeline,
            "checks": checks,
        }
    }


def approval_status(reviews: list[Review]) -> dict[str, Any]:
    """Count approvals and change requests using each author's latest review."""
    latest: dict[str, Review] = {}
    for review in reviews:
        current = latest.get(review.author)
        if current is None or review.created_at > current.created_at:
            latest[review.author] = review

    approved = sum(1 for r in latest.values() if r.state == "APPROVED")
    changes_requested = sum(1 for r in latest.values() if r.state == "CHANGES_REQUESTED")
    passing = changes_requested == 0 and approved >= REQUIRED_APPROVALS
    return {
        "status": "pass" if passing else "fail",
        "required": REQUIRED_APPROVALS,
        "approved": approved,
        "changesRequested": changes_requested,
    }


def ci_status(details: PRDetails) -> dict[str, Any]:
    """Classify status-check contexts; only required ones decide fail or pending."""
    status = "pass"
    required: list[str] = []
    passed: list[str] = []
    failed: list[str] = []

    for context in details.contexts or []:
        if context.is_required:
            required.append(context.name)
        if context.state == "SUCCESS":
            passed.append(context.name)
        elif context.state in ("FAILURE", "ERROR"):
            failed.append(context.name)
            if context.is_required:
                status = "fail"
        elif context.state == "PENDING" and context.is_required and status != "fail":
            status = "pending"

    return {"status": status, "required": required, "passed": passed, "failed": failed}


def mergeability_status(details: PRDetails) -> dict[str, Any]:
    mergeable = details.mergeable.value
    status = {"CONFLICTING": "fail", "UNKNOWN": "pending"}.get(mergeable, "pass")
    return {
        "status": status,
        "conflicts": mergeable == "CONFLICTING",
        "state": details.merge_state_status,
    }


def comment_analysis(details: PRDetails) -> dict[str, Any] | None:
    """Classify PR comments as bot summaries, bot reviews or plain comments."""
    if not details.comments:
        return None

    comments = []
    for comment in details.comments:
        if SUMMARY_HEADER in comment.body:
            kind = "summary"
        elif REVIEW_HEADER in comment.body:
            kind = "review"
        else:
            kind = "comment"
        comments.append({"type": kind, "timestamp": comment.created_at, "body": comment.body})

    return {
        "hasSummaryComment": any(c["type"] == "summary" for c in comments),
        "hasReviewComment": any(c["type"] == "review" for c in comments),
        "lastCommentIsSummary": comments[-1]["type"] == "summary",
        "comments": comments,
    }
