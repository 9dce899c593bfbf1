"""Normalized data types for the GitHub objects gh-helper works with.

GraphQL responses are parsed into these types once, at the client boundary;
every other module consumes these types rather than raw response dicts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MergeableState(str, Enum):
    """GitHub's ``PullRequest.mergeable`` value."""

    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> "MergeableState":
        try:
            return cls(value) if value else cls.UNKNOWN
        except ValueError:
            return cls.UNKNOWN


class RollupState(str, Enum):
    """Aggregate state of a commit's status-check rollup."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    ERROR = "ERROR"
    PENDING = "PENDING"
    EXPECTED = "EXPECTED"

    @property
    def is_terminal(self) -> bool:
        """Whether CI has reached a final outcome."""
        return self in (RollupState.SUCCESS, RollupState.FAILURE, RollupState.ERROR)

    @classmethod
    def parse(cls, value: str | None) -> "RollupState | None":
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING


@dataclass
class Review:
    """A pull request review.

    Attributes:
        id: GraphQL node ID
        author: Login of the review author ("" for deleted users)
        state: Review state (APPROVED, COMMENTED, CHANGES_REQUESTED, ...)
        created_at: ISO-8601 timestamp as returned by GitHub
        body: Review body text
        comments_count: Inline comments attached to the review, when fetched
    """

    id: str
    author: str
    state: str
    created_at: str
    body: str = ""
    comments_count: int = 0

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "Review":
        author = node.get("author") or {}
        return cls(
            id=node.get("id", ""),
            author=author.get("login", ""),
            state=node.get("state", ""),
            created_at=node.get("createdAt", ""),
            body=node.get("body") or "",
            comments_count=len((node.get("comments") or {}).get("nodes") or []),
        )


@dataclass(frozen=True)
class ReviewMarker:
    """The last review observed for a PR, used to detect newer arrivals."""

    id: str
    created_at: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewMarker":
        return cls(id=str(data["id"]), created_at=str(data["createdAt"]))


@dataclass
class PRStatusSnapshot:
    """One poll's view of a pull request's reviews, CI and mergeability.

    Attributes:
        number: Pull request number
        title: Pull request title
        mergeable: Mergeability as reported by GitHub
        merge_state_status: Raw mergeStateStatus (CLEAN, BLOCKED, HAS_HOOKS, ...)
        rollup_state: Status-check rollup of the head commit, None when absent
        reviews: Most recent reviews, oldest first
    """

    number: int
    title: str = ""
    mergeable: MergeableState = MergeableState.UNKNOWN
    merge_state_status: str = ""
    rollup_state: RollupState | None = None
    reviews: list[Review] = field(default_factory=list)

    @classmethod
    def from_pull_request(cls, pr: dict[str, Any]) -> "PRStatusSnapshot":
        """Build a snapshot from a ``repository.pullRequest`` GraphQL node."""
        reviews = [Review.from_node(n) for n in (pr.get("reviews") or {}).get("nodes") or [] if n]

        rollup_state = None
        commit_nodes = (pr.get("commits") or {}).get("nodes") or []
        if commit_nodes:
            commit = (commit_nodes[-1] or {}).get("commit") or {}
            rollup = commit.get("statusCheckRollup")
            if rollup:
                rollup_state = RollupState.parse(rollup.get("state"))

        return cls(
            number=int(pr.get("number") or 0),
            title=pr.get("title") or "",
            mergeable=MergeableState.parse(pr.get("mergeable")),
            merge_state_status=pr.get("mergeStateStatus") or "",
            rollup_state=rollup_state,
            reviews=reviews,
        )




@dataclass
class PageInfo:
    """Relay pagination metadata of one connection."""

    has_next_page: bool = False
    has_previous_page: bool = False
    start_cursor: str = ""
    end_cursor: str = ""
    total_count: int = 0

    @classmethod
    def from_connection(cls, connection: dict[str, Any]) -> "PageInfo":
        page = connection.get("pageInfo") or {}
        return cls(
            has_next_page=bool(page.get("hasNextPage")),
            has_previous_page=bool(page.get("hasPreviousPage")),
            start_cursor=page.get("startCursor") or "",
            end_cursor=page.get("endCursor") or "",
            total_count=int(connection.get("totalCount") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasNextPage": self.has_next_page,
            "hasPreviousPage": self.has_previous_page,
            "startCursor": self.start_cursor,
            "endCursor": self.end_cursor,
            "totalCount": self.total_count,
        }


@dataclass
class ThreadComment:
    """A comment inside a review thread."""

    id: str
    author: str
    body: str
    created_at: str
    url: str = ""
    diff_hunk: str = ""

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "ThreadComment":
        author = node.get("author") or {}
        return cls(
            id=node.get("id", ""),
            author=author.get("login", ""),
            body=node.get("body") or "",
            created_at=node.get("createdAt", ""),
            url=node.get("url") or "",
            diff_hunk=node.get("diffHunk") or "",
        )


@dataclass
class ReviewThread:
    """A pull request review thread.

    Unresolved threads need a reply: the expected workflow is to reply with a
    fix or explanation, then resolve the thread.
    """

    id: str
    path: str
    line: int | None
    is_resolved: bool
    is_outdated: bool = False
    subject_type: str = ""
    comments: list[ThreadComment] = field(default_factory=list)
    comment_count: int = 0

    @property
    def needs_reply(self) -> bool:
        return not self.is_resolved

    @property
    def url(self) -> str:
        return self.comments[0].url if self.comments else ""

    @property
    def last_comment_by(self) -> str:
        return self.comments[-1].author if self.comments else ""

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "ReviewThread":
        connection = node.get("comments") or {}
        comments = [ThreadComment.from_node(c) for c in connection.get("nodes") or [] if c]
        return cls(
            id=node.get("id", ""),
            path=node.get("path") or "",
            line=node.get("line"),
            is_resolved=bool(node.get("isResolved")),
            is_outdated=bool(node.get("isOutdated")),
            subject_type=node.get("subjectType") or "",
            comments=comments,
            comment_count=int(connection.get("totalCount") or len(comments)),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "path": self.path,
            "line": self.line,
            "isResolved": self.is_resolved,
            "isOutdated": self.is_outdated,
        }
        if self.url:
            data["url"] = self.url
        if self.comments:
            data["lastCommentBy"] = self.last_comment_by
            comments = []
            for c in self.comments:
                comment = {"id": c.id, "author": c.author, "createdAt": c.created_at, "body": c.body}
                if c.url:
                    comment["url"] = c.url
                comments.append(comment)
            data["comments"] = comments
        return data


@dataclass
class ReviewData:
    """Reviews and review threads of a PR fetched in one query.

    Attributes:
        number: Pull request number
        title: Pull request title
        state: OPEN, CLOSED or MERGED
        mergeable: Raw mergeable value
        merge_state_status: Raw mergeStateStatus value
        current_user: Login of the authenticated viewer
        reviews: Submitted reviews, oldest first (pending reviews dropped)
        threads: Review threads, None when threads were not requested
        review_page: Pagination of the reviews connection
        thread_page: Pagination of the threads connection, None when not requested
    """

    number: int
    title: str = ""
    state: str = ""
    mergeable: str = ""
    merge_state_status: str = ""
    current_user: str = ""
    reviews: list[Review] = field(default_factory=list)
    threads: list[ReviewThread] | None = None
    review_page: PageInfo = field(default_factory=PageInfo)
    thread_page: PageInfo | None = None


@dataclass
class StatusContext:
    """One entry of a commit's status-check rollup, normalized to a state.

    Check runs report a status and a conclusion instead of a state; a
    completed run maps its conclusion onto SUCCESS, FAILURE or ERROR and a
    run without a conclusion is PENDING.
    """

    name: str
    state: str
    is_required: bool = False

    FAILED_CONCLUSIONS = frozenset({"FAILURE", "TIMED_OUT", "CANCELLED", "ACTION_REQUIRED"})

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "StatusContext | None":
        if node.get("__typename") == "CheckRun":
            conclusion = node.get("conclusion") or ""
            if not conclusion:
                state = "PENDING"
            elif conclusion == "SUCCESS":
                state = "SUCCESS"
            elif conclusion in cls.FAILED_CONCLUSIONS:
                state = "FAILURE"
            else:
                state = "ERROR"
            name = node.get("name") or ""
        else:
            state = node.get("state") or ""
            name = node.get("context") or ""
        if not name:
            return None
        return cls(name=name, state=state, is_required=bool(node.get("isRequired")))


@dataclass
class PRComment:
    """A top-level (conversation) comment on a pull request."""

    author: str
    body: str
    created_at: str

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "PRComment":
        author = node.get("author") or {}
        return cls(
            author=author.get("login", ""),
            body=node.get("body") or "",
            created_at=node.get("createdAt", ""),
        )


@dataclass
class PRDetails:
    """Everything needed for a one-shot status report on a pull request.

    Attributes:
        contexts: Status-check contexts of the head commit, None without a rollup
        last_push_at: Time of the latest commit or force push
    """

    number: int
    title: str = ""
    created_at: str = ""
    last_push_at: str = ""
    mergeable: MergeableState = MergeableState.UNKNOWN
    merge_state_status: str = ""
    reviews: list[Review] = field(default_factory=list)
    threads: list[ReviewThread] = field(default_factory=list)
    contexts: list[StatusContext] | None = None
    comments: list[PRComment] = field(default_factory=list)

    @classmethod
    def from_pull_request(cls, pr: dict[str, Any]) -> "PRDetails":
        last_push_at = ""
        for item in (pr.get("timelineItems") or {}).get("nodes") or []:
            if not item:
                continue
            if item.get("__typename") == "HeadRefForcePushedEvent":
                last_push_at = item.get("createdAt") or ""
            else:
                last_push_at = ((item.get("commit") or {}).get("committedDate")) or ""

        contexts = None
        commit_nodes = (pr.get("commits") or {}).get("nodes") or []
        if commit_nodes:
            rollup = ((commit_nodes[-1] or {}).get("commit") or {}).get("statusCheckRollup")
            if rollup:
                contexts = []
                for node in (rollup.get("contexts") or {}).get("nodes") or []:
                    context = StatusContext.from_node(node or {})
                    if context is not None:
                        contexts.append(context)

        def nodes(key: str) -> list[dict[str, Any]]:
            return [n for n in (pr.get(key) or {}).get("nodes") or [] if n]

        return cls(
            number=int(pr.get("number") or 0),
            title=pr.get("title") or "",
            created_at=pr.get("createdAt") or "",
            last_push_at=last_push_at,
            mergeable=MergeableState.parse(pr.get("mergeable")),
            merge_state_status=pr.get("mergeStateStatus") or "",
            reviews=[Review.from_node(n) for n in nodes("reviews")],
            threads=[ReviewThread.from_node(n) for n in nodes("reviewThreads")],
            contexts=contexts,
            comments=[PRComment.from_node(n) for n in nodes("comments")],
        )


@dataclass
class Issue:
    """An issue, optionally with its parent and sub-issues.

    Attributes:
        sub_issues: Direct sub-issues in their priority order, when fetched
        sub_issue_count: Total number of sub-issues, which may exceed the fetched page
    """

    id: str
    number: int
    title: str = ""
    state: str = ""
    url: str = ""
    body: str = ""
    closed: bool = False
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    parent: "Issue | None" = None
    sub_issues: list["Issue"] = field(default_factory=list)
    sub_issue_count: int = 0

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "Issue":
        parent = node.get("parent")
        sub_connection = node.get("subIssues") or {}
        return cls(
            id=node.get("id", ""),
            number=int(node.get("number") or 0),
            title=node.get("title") or "",
            state=node.get("state") or "",
            url=node.get("url") or "",
            body=node.get("body") or "",
            closed=bool(node.get("closed")),
            labels=[n["name"] for n in (node.get("labels") or {}).get("nodes") or [] if n],
            assignees=[n["login"] for n in (node.get("assignees") or {}).get("nodes") or [] if n],
            created_at=node.get("createdAt") or "",
            updated_at=node.get("updatedAt") or "",
            parent=cls.from_node(parent) if parent else None,
            sub_issues=[cls.from_node(n) for n in sub_connection.get("nodes") or [] if n],
            sub_issue_count=int(sub_connection.get("totalCount") or 0),
        )

    def summary(self) -> dict[str, Any]:
        return {"number": self.number, "title": self.title, "url": self.url, "state": self.state}


@dataclass
class LabelableItem:
    """An issue or pull request that labels can be attached to."""

    id: str
    number: int
    type_name: str
    title: str = ""
    labels: list[str] = field(default_factory=list)

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "LabelableItem":
        labels = [n["name"] for n in (node.get("labels") or {}).get("nodes") or [] if n]
        return cls(
            id=node.get("id", ""),
            number=int(node.get("number") or 0),
            type_name=node.get("__typename", ""),
            title=node.get("title") or "",
            labels=labels,
        )
