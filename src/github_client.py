"""GitHub GraphQL client built on the gh CLI.

All API traffic goes through ``gh api graphql`` so that gh's own
authentication (``gh auth login``) works out of the box; an explicit token
from config takes precedence when set.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.interfaces import (
    Issue,
    LabelableItem,
    PageInfo,
    PRDetails,
    PRStatusSnapshot,
    Review,
    ReviewData,
    ReviewThread,
)
from src.logger import get_logger, is_debug_mode
from src.utils.gh import get_gh_env

logger = get_logger(__name__)

# Reviews fetched per status poll
REVIEW_LIMIT = 15

PR_STATUS_QUERY = """
query($owner: String!, $repo: String!, $prNumber: Int!, $reviewLimit: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      number
      title
      mergeable
      mergeStateStatus
      reviews(last: $reviewLimit) {
        nodes {
          id
          author { login }
          createdAt
          state
          body
        }
      }
      commits(last: 1) {
        nodes {
          commit {
            statusCheckRollup {
              state
            }
          }
        }
      }
    }
  }
}
"""

PAGE_INFO_FIELDS = """
fragment PageInfoFields on PageInfo {
  hasNextPage
  hasPreviousPage
  startCursor
  endCursor
}
"""

REVIEW_FIELDS = """
fragment ReviewFields on PullRequestReview {
  id
  author { login }
  createdAt
  state
  body @include(if: $includeBodies)
  comments(first: 50) @include(if: $includeBodies) {
    nodes { id }
  }
}
"""

THREAD_FIELDS = """
fragment ThreadFields on PullRequestReviewThread {
  id
  path
  line
  isResolved
  isOutdated
  subjectType
  comments(first: 20) {
    totalCount
    nodes {
      id
      url @skip(if: $excludeUrls)
      body
      author { login }
      createdAt
      diffHunk
    }
  }
}
"""

# The reviews window is "first/after" when paging forward, otherwise "last/before"
REVIEW_DATA_QUERY = (
    PAGE_INFO_FIELDS
    + REVIEW_FIELDS
    + THREAD_FIELDS
    + """
query(
  $owner: String!, $repo: String!, $prNumber: Int!,
  $reviewLimit: Int!, $reviewCursor: String,
  $threadLimit: Int!, $threadCursor: String,
  $includeThreads: Boolean!, $includeBodies: Boolean!, $excludeUrls: Boolean!
) {
  viewer {
    login
  }
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      number
      title
      state
      mergeable
      mergeStateStatus
      reviews(%s) {
        totalCount
        pageInfo { ...PageInfoFields }
        nodes { ...ReviewFields }
      }
      reviewThreads(first: $threadLimit, after: $threadCursor) @include(if: $includeThreads) {
        totalCount
        pageInfo { ...PageInfoFields }
        nodes { ...ThreadFields }
      }
    }
  }
}
"""
)

THREAD_NODES_QUERY = (
    THREAD_FIELDS
    + """
query($ids: [ID!]!, $excludeUrls: Boolean!) {
  viewer {
    login
  }
  nodes(ids: $ids) {
    id
    ...ThreadFields
  }
}
"""
)

PR_DETAILS_QUERY = (
    THREAD_FIELDS
    + """
query($owner: String!, $repo: String!, $prNumber: Int!, $excludeUrls: Boolean!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      number
      title
      createdAt
      mergeable
      mergeStateStatus
      timelineItems(last: 1, itemTypes: [HEAD_REF_FORCE_PUSHED_EVENT, PULL_REQUEST_COMMIT]) {
        nodes {
          __typename
          ... on HeadRefForcePushedEvent { createdAt }
          ... on PullRequestCommit { commit { committedDate } }
        }
      }
      reviews(last: 50) {
        nodes {
          id
          author { login }
          createdAt
          state
        }
      }
      reviewThreads(first: 100) {
        nodes { ...ThreadFields }
      }
      commits(last: 1) {
        nodes {
          commit {
            statusCheckRollup {
              state
              contexts(first: 100) {
                nodes {
                  __typename
                  ... on CheckRun {
                    name
                    status
                    conclusion
                    isRequired(pullRequestNumber: $prNumber)
                  }
                  ... on StatusContext {
                    context
                    state
                    isRequired(pullRequestNumber: $prNumber)
                  }
                }
              }
            }
          }
        }
      }
      comments(last: 50) {
        nodes {
          author { login }
          body
          createdAt
        }
      }
    }
  }
}
"""
)

ISSUE_FIELDS = """
fragment IssueFields on Issue {
  id
  number
  title
  state
  url
  closed
}
"""

ISSUE_DETAIL_QUERY = (
    ISSUE_FIELDS
    + """
query($owner: String!, $repo: String!, $number: Int!, $includeSub: Boolean!) {
  repository(owner: $owner, name: $repo) {
    issue(number: $number) {
      ...IssueFields
      body
      createdAt
      updatedAt
      labels(first: 100) { nodes { name } }
      assignees(first: 20) { nodes { login } }
      parent { ...IssueFields }
      subIssues(first: 100) @include(if: $includeSub) {
        totalCount
        nodes { ...IssueFields }
      }
    }
  }
}
"""
)

LABELABLE_FIELDS = """
fragment LabelableFields on Labelable {
  __typename
  ... on Issue { id number title }
  ... on PullRequest { id number title }
  labels(first: 100) {
    nodes { name }
  }
}
"""


class GitHubError(Exception):
    """Base class for GitHub API failures."""


class NetworkError(GitHubError):
    """Raised when a gh call fails due to network connectivity issues.

    Distinguishes transient failures (TLS timeouts, connection refused, DNS
    hiccups) from permanent ones (bad token, invalid query). Only these are
    retried.
    """


class GitHubAuthError(GitHubError):
    """Raised when gh cannot authenticate against the host."""


class PullRequestNotFoundError(GitHubError):
    """Raised when the requested pull request does not exist."""


class GraphQLError(GitHubError):
    """Raised when a GraphQL response carries an ``errors`` array."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__(f"GraphQL errors: {', '.join(messages)}")
        self.messages = messages


NETWORK_ERROR_PATTERNS = (
    "tls handshake timeout",
    "connection timeout",
    "network error",
    "connection refused",
    "connection reset",
    "temporary failure",
    "i/o timeout",
    "dial tcp",
    "no such host",
)

AUTH_ERROR_PATTERNS = (
    "gh auth login",
    "authentication",
    "unauthorized",
    "401",
    "not logged in",
    "no token",
)


@dataclass
class ReviewFetchOptions:
    """What fetch_review_data should include.

    Attributes:
        include_threads: Fetch review threads
        include_bodies: Fetch review bodies and inline comments
        review_limit: Reviews per page
        thread_limit: Threads per page
        reviews_after: Cursor to page reviews forward from
        reviews_before: Cursor to page reviews backward from
        threads_after: Cursor to page threads forward from
        needs_reply_only: Keep only threads that still need a reply
        exclude_urls: Leave comment URLs out of the response
    """

    include_threads: bool = True
    include_bodies: bool = True
    review_limit: int = 20
    thread_limit: int = 50
    reviews_after: str = ""
    reviews_before: str = ""
    threads_after: str = ""
    needs_reply_only: bool = False
    exclude_urls: bool = False


class GitHubClient:
    """GitHub client scoped to a single repository."""

    def __init__(self, repo: str, token: str | None = None) -> None:
        """Initialize the client.

        Args:
            repo: Repository in 'owner/repo' or 'hostname/owner/repo' format
            token: Token for the host, or None to use gh auth login credentials
        """
        self.hostname, self.owner, self.repo = self._parse_repo(repo)
        self.token = token
        logger.debug(f"GitHubClient initialized for {self.hostname}/{self.owner}/{self.repo}")

    @property
    def name_with_owner(self) -> str:
        return f"{self.owner}/{self.repo}"

    @staticmethod
    def _parse_repo(repo: str) -> tuple[str, str, str]:
        """Parse repository string into hostname, owner, and repo name.

        Raises:
            ValueError: If the string has no owner/repo part
        """
        parts = [p for p in repo.strip().strip("/").split("/") if p]
        if len(parts) == 3 and "." in parts[0]:
            return parts[0], parts[1], parts[2]
        if len(parts) == 2:
            return "github.com", parts[0], parts[1]
        raise ValueError(f"Repository must be 'owner/repo' or 'hostname/owner/repo', got {repo!r}")

    # Pull requests

    def fetch_pr_status(self, pr_number: int) -> PRStatusSnapshot:
        """Fetch mergeability, recent reviews and CI rollup of a PR in one query.

        Raises:
            GitHubError: If the query fails or the PR does not exist
        """
        response = self._execute_graphql_query(
            PR_STATUS_QUERY,
            {
                "owner": self.owner,
                "repo": self.repo,
                "prNumber": pr_number,
                "reviewLimit": REVIEW_LIMIT,
            },
        )
        pr = self._pull_request_node(response, pr_number)
        snapshot = PRStatusSnapshot.from_pull_request(pr)
        logger.debug(
            f"PR #{pr_number}: mergeable={snapshot.mergeable.value}, "
            f"mergeState={snapshot.merge_state_status}, "
            f"rollup={snapshot.rollup_state.value if snapshot.rollup_state else None}, "
            f"reviews={len(snapshot.reviews)}"
        )
        return snapshot

    def get_current_branch_pr(self) -> int | None:
        """Return the number of the PR for the currently checked out branch, if any."""
        try:
            output = self._run_gh_command(["pr", "view", "--json", "number"])
        except subprocess.CalledProcessError as e:
            logger.debug(f"No PR for current branch: {e.stderr}")
            return None
        try:
            return int(json.loads(output)["number"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning(f"Unexpected output from gh pr view: {output[:200]}")
            return None

    def create_pr_comment(self, pr_number: int, body: str) -> None:
        """Post a plain comment on a PR."""
        self._run_gh_command(
            ["pr", "comment", str(pr_number), "--repo", self._repo_ref(), "--body", body]
        )
        logger.info(f"Commented on PR #{pr_number}")

    def fetch_pr_details(self, pr_number: int) -> PRDetails:
        """Fetch timeline, reviews, threads, CI contexts and comments of a PR.

        Raises:
            GitHubError: If the query fails or the PR does not exist
        """
        response = self._execute_graphql_query(
            PR_DETAILS_QUERY,
            {"owner": self.owner, "repo": self.repo, "prNumber": pr_number, "excludeUrls": False},
        )
        return PRDetails.from_pull_request(self._pull_request_node(response, pr_number))

    # Review threads

    def fetch_review_data(
        self, pr_number: int, options: ReviewFetchOptions | None = None
    ) -> ReviewData:
        """Fetch reviews and review threads of a PR in a single query.

        Pending (unsubmitted) reviews are dropped.

        Raises:
            ValueError: If both review cursors are given
            GitHubError: If the query fails or the PR does not exist
        """
        options = options or ReviewFetchOptions()
        if options.reviews_after and options.reviews_before:
            raise ValueError("--reviews-after and --reviews-before are mutually exclusive")
        if options.reviews_after:
            window, cursor = "first: $reviewLimit, after: $reviewCursor", options.reviews_after
        else:
            window, cursor = "last: $reviewLimit, before: $reviewCursor", options.reviews_before

        response = self._execute_graphql_query(
            REVIEW_DATA_QUERY % window,
            {
                "owner": self.owner,
                "repo": self.repo,
                "prNumber": pr_number,
                "reviewLimit": options.review_limit if options.review_limit > 0 else 20,
                "reviewCursor": cursor or None,
                "threadLimit": options.thread_limit if options.thread_limit > 0 else 50,
                "threadCursor": options.threads_after or None,
                "includeThreads": options.include_threads,
                "includeBodies": options.include_bodies,
                "excludeUrls": options.exclude_urls,
            },
        )
        pr = self._pull_request_node(response, pr_number)

        review_connection = pr.get("reviews") or {}
        reviews = [
            Review.from_node(n)
            for n in review_connection.get("nodes") or []
            if n and n.get("state") != "PENDING"
        ]

        threads = None
        thread_page = None
        if options.include_threads:
            thread_connection = pr.get("reviewThreads") or {}
            threads = [ReviewThread.from_node(n) for n in thread_connection.get("nodes") or [] if n]
            if options.needs_reply_only:
                threads = [t for t in threads if t.needs_reply]
            thread_page = PageInfo.from_connection(thread_connection)

        viewer = (response.get("data") or {}).get("viewer") or {}
        logger.debug(
            f"PR #{pr_number}: {len(reviews)} review(s), "
            f"{'-' if threads is None else len(threads)} thread(s)"
        )
        return ReviewData(
            number=int(pr.get("number") or pr_number),
            title=pr.get("title") or "",
            state=pr.get("state") or "",
            mergeable=pr.get("mergeable") or "",
            merge_state_status=pr.get("mergeStateStatus") or "",
            current_user=viewer.get("login", ""),
            reviews=reviews,
            threads=threads,
            review_page=PageInfo.from_connection(review_connection),
            thread_page=thread_page,
        )

    def get_threads(
        self, thread_ids: list[str], exclude_urls: bool = False
    ) -> tuple[list[ReviewThread], str]:
        """Fetch review threads by node ID in one query.

        Returns:
            Tuple of (threads in the order requested, login of the viewer)

        Raises:
            GitHubError: If any ID does not resolve to a review thread
        """
        response = self._execute_graphql_query(
            THREAD_NODES_QUERY, {"ids": thread_ids, "excludeUrls": exclude_urls}
        )
        data = response.get("data") or {}
        nodes = data.get("nodes") or []

        threads = []
        for i, thread_id in enumerate(thread_ids):
            node = nodes[i] if i < len(nodes) else None
            if not node or "isResolved" not in node:
                raise GitHubError(f"Thread not found: {thread_id}")
            threads.append(ReviewThread.from_node(node))
        return threads, (data.get("viewer") or {}).get("login", "")

    def reply_to_thread(self, thread_id: str, body: str) -> tuple[str, str]:
        """Reply to a review thread.

        Returns:
            Tuple of (comment_id, comment_url)

        Raises:
            GitHubError: If the mutation fails or returns no comment
        """
        mutation = """
        mutation($threadId: ID!, $body: String!) {
          addPullRequestReviewThreadReply(input: {
            pullRequestReviewThreadId: $threadId
            body: $body
          }) {
            comment {
              id
              url
            }
          }
        }
        """
        response = self._execute_graphql_query(mutation, {"threadId": thread_id, "body": body})
        payload = (response.get("data") or {}).get("addPullRequestReviewThreadReply") or {}
        comment = payload.get("comment") or {}
        if not comment.get("id"):
            raise GitHubError(f"Reply to thread {thread_id} returned no comment")
        logger.debug(f"Replied to thread {thread_id}: {comment['id']}")
        return comment["id"], comment.get("url", "")

    def resolve_thread(self, thread_id: str) -> None:
        """Mark a review thread as resolved.

        Raises:
            GitHubError: If the mutation fails
        """
        mutation = """
        mutation($threadId: ID!) {
          resolveReviewThread(input: {threadId: $threadId}) {
            thread {
              id
              isResolved
            }
          }
        }
        """
        response = self._execute_graphql_query(mutation, {"threadId": thread_id})
        thread = ((response.get("data") or {}).get("resolveReviewThread") or {}).get("thread")
        if not thread or not thread.get("isResolved"):
            raise GitHubError(f"Thread {thread_id} was not resolved")
        logger.debug(f"Resolved thread {thread_id}")

    # Labels

    def get_label_ids(self) -> dict[str, str]:
        """Map every label name in the repository to its node ID."""
        query = """
        query($owner: String!, $repo: String!) {
          repository(owner: $owner, name: $repo) {
            labels(first: 100) {
              nodes { id name }
            }
          }
        }
        """
        response = self._execute_graphql_query(query, {"owner": self.owner, "repo": self.repo})
        repository = (response.get("data") or {}).get("repository") or {}
        nodes = (repository.get("labels") or {}).get("nodes") or []
        return {n["name"]: n["id"] for n in nodes if n}

    def get_labelable_item(self, number: int, item_type: str | None = None) -> LabelableItem:
        """Look up an issue or pull request by number.

        Args:
            number: Issue or PR number
            item_type: "Issue", "PullRequest", or None to accept either

        Raises:
            GitHubError: If no matching item exists
        """
        query = (
            LABELABLE_FIELDS
            + """
        query($owner: String!, $repo: String!, $number: Int!) {
          repository(owner: $owner, name: $repo) {
            issueOrPullRequest(number: $number) {
              ...LabelableFields
            }
          }
        }
        """
        )
        response = self._execute_graphql_query(
            query, {"owner": self.owner, "repo": self.repo, "number": number}
        )
        repository = (response.get("data") or {}).get("repository") or {}
        node = repository.get("issueOrPullRequest")
        if not node:
            raise GitHubError(f"#{number} not found in {self.name_with_owner}")

        item = LabelableItem.from_node(node)
        if item_type and item.type_name != item_type:
            raise GitHubError(f"#{number} is a {item.type_name}, not a {item_type}")
        return item

    def get_pr_with_linked_issues(
        self, pr_number: int
    ) -> tuple[LabelableItem, list[LabelableItem]]:
        """Look up a PR and the issues it closes when merged.

        Raises:
            GitHubError: If the PR does not exist
        """
        query = (
            LABELABLE_FIELDS
            + """
        query($owner: String!, $repo: String!, $prNumber: Int!) {
          repository(owner: $owner, name: $repo) {
            pullRequest(number: $prNumber) {
              ...LabelableFields
              closingIssuesReferences(first: 10) {
                nodes {
                  ...LabelableFields
                }
              }
            }
          }
        }
        """
        )
        response = self._execute_graphql_query(
            query, {"owner": self.owner, "repo": self.repo, "prNumber": pr_number}
        )
        pr = self._pull_request_node(response, pr_number)
        issues = [
            LabelableItem.from_node(n)
            for n in (pr.get("closingIssuesReferences") or {}).get("nodes") or []
            if n
        ]
        return LabelableItem.from_node(pr), issues

    def add_labels(self, item_id: str, label_ids: list[str]) -> LabelableItem:
        """Add labels to an issue or PR and return its updated state."""
        return self._mutate_labels("addLabelsToLabelable", item_id, label_ids)

    def remove_labels(self, item_id: str, label_ids: list[str]) -> LabelableItem:
        """Remove labels from an issue or PR and return its updated state."""
        return self._mutate_labels("removeLabelsFromLabelable", item_id, label_ids)

    def _mutate_labels(self, mutation_name: str, item_id: str, label_ids: list[str]) -> LabelableItem:
        input_type = mutation_name[0].upper() + mutation_name[1:] + "Input"
        mutation = (
            LABELABLE_FIELDS
            + f"""
        mutation($input: {input_type}!) {{
          {mutation_name}(input: $input) {{
            labelable {{
              ...LabelableFields
            }}
          }}
        }}
        """
        )
        response = self._execute_graphql_query(
            mutation, {"input": {"labelableId": item_id, "labelIds": label_ids}}
        )
        payload = (response.get("data") or {}).get(mutation_name) or {}
        labelable = payload.get("labelable")
        if not labelable:
            raise GitHubError(f"{mutation_name} returned no item for {item_id}")
        return LabelableItem.from_node(labelable)

    # Issues

    def get_repository_id(self) -> str:
        query = """
        query($owner: String!, $repo: String!) {
          repository(owner: $owner, name: $repo) { id }
        }
        """
        response = self._execute_graphql_query(query, {"owner": self.owner, "repo": self.repo})
        repository = (response.get("data") or {}).get("repository")
        if not repository:
            raise GitHubError(f"Repository {self.name_with_owner} not found")
        return repository["id"]

    def get_user_ids(self, logins: list[str]) -> list[str]:
        """Resolve user logins to node IDs in one aliased query.

        Raises:
            GitHubError: If a login does not exist
        """
        if not logins:
            return []
        params = ", ".join(f"$login{i}: String!" for i in range(len(logins)))
        fields = "\n".join(f"user{i}: user(login: $login{i}) {{ id }}" for i in range(len(logins)))
        response = self._execute_graphql_query(
            f"query({params}) {{\n{fields}\n}}",
            {f"login{i}": login for i, login in enumerate(logins)},
        )
        data = response.get("data") or {}
        ids = []
        for i, login in enumerate(logins):
            user = data.get(f"user{i}")
            if not user:
                raise GitHubError(f"User not found: {login}")
            ids.append(user["id"])
        return ids

    def get_milestone_id(self, title: str) -> str:
        """Find an open milestone by title.

        Raises:
            GitHubError: If no open milestone has that title
        """
        query = """
        query($owner: String!, $repo: String!) {
          repository(owner: $owner, name: $repo) {
            milestones(first: 100, states: OPEN) {
              nodes { id title }
            }
          }
        }
        """
        response = self._execute_graphql_query(query, {"owner": self.owner, "repo": self.repo})
        repository = (response.get("data") or {}).get("repository") or {}
        for milestone in (repository.get("milestones") or {}).get("nodes") or []:
            if milestone and milestone.get("title") == title:
                return milestone["id"]
        raise GitHubError(f"Milestone not found: {title}")

    def get_project_id(self, title: str) -> str:
        """Find a project (v2) linked to the repository by title.

        Raises:
            GitHubError: If no linked project has that title
        """
        query = """
        query($owner: String!, $repo: String!) {
          repository(owner: $owner, name: $repo) {
            projectsV2(first: 20) {
              nodes { id title }
            }
          }
        }
        """
        response = self._execute_graphql_query(query, {"owner": self.owner, "repo": self.repo})
        repository = (response.get("data") or {}).get("repository") or {}
        for project in (repository.get("projectsV2") or {}).get("nodes") or []:
            if project and project.get("title") == title:
                return project["id"]
        raise GitHubError(f"Project not found: {title}")

    def create_issue(
        self,
        title: str,
        body: str = "",
        *,
        label_ids: list[str] | None = None,
        assignee_ids: list[str] | None = None,
        milestone_id: str | None = None,
    ) -> Issue:
        """Create an issue in the repository.

        Raises:
            GitHubError: If the mutation fails
        """
        mutation = """
        mutation($input: CreateIssueInput!) {
          createIssue(input: $input) {
            issue {
              id
              number
              title
              state
              url
              createdAt
              labels(first: 100) { nodes { name } }
              assignees(first: 20) { nodes { login } }
            }
          }
        }
        """
        issue_input: dict[str, Any] = {"repositoryId": self.get_repository_id(), "title": title}
        if body:
            issue_input["body"] = body
        if label_ids:
            issue_input["labelIds"] = label_ids
        if assignee_ids:
            issue_input["assigneeIds"] = assignee_ids
        if milestone_id:
            issue_input["milestoneId"] = milestone_id

        response = self._execute_graphql_query(mutation, {"input": issue_input})
        node = ((response.get("data") or {}).get("createIssue") or {}).get("issue")
        if not node:
            raise GitHubError("createIssue returned no issue")
        issue = Issue.from_node(node)
        logger.info(f"Created issue #{issue.number}: {issue.title}")
        return issue

    def add_to_project(self, project_id: str, content_id: str) -> None:
        mutation = """
        mutation($projectId: ID!, $contentId: ID!) {
          addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
            item { id }
          }
        }
        """
        self._execute_graphql_query(mutation, {"projectId": project_id, "contentId": content_id})

    def get_issue(self, number: int, include_sub_issues: bool = False) -> Issue:
        """Fetch an issue with its parent and, optionally, its sub-issues.

        Raises:
            GitHubError: If the issue does not exist
        """
        response = self._execute_graphql_query(
            ISSUE_DETAIL_QUERY,
            {
                "owner": self.owner,
                "repo": self.repo,
                "number": number,
                "includeSub": include_sub_issues,
            },
        )
        repository = (response.get("data") or {}).get("repository") or {}
        node = repository.get("issue")
        if not node:
            raise GitHubError(f"Issue #{number} not found in {self.name_with_owner}")
        return Issue.from_node(node)

    def get_issues(self, numbers: list[int]) -> list[Issue]:
        """Fetch several issues (without parents or sub-issues) in one aliased query.

        Raises:
            GitHubError: If any issue does not exist
        """
        params = ", ".join(f"$number{i}: Int!" for i in range(len(numbers)))
        fields = "\n".join(
            f"issue{i}: issue(number: $number{i}) {{ ...IssueFields }}" for i in range(len(numbers))
        )
        query = (
            ISSUE_FIELDS
            + f"""
        query($owner: String!, $repo: String!, {params}) {{
          repository(owner: $owner, name: $repo) {{
            {fields}
          }}
        }}
        """
        )
        variables: dict[str, Any] = {"owner": self.owner, "repo": self.repo}
        variables.update({f"number{i}": n for i, n in enumerate(numbers)})
        response = self._execute_graphql_query(query, variables)
        repository = (response.get("data") or {}).get("repository") or {}

        issues = []
        for i, number in enumerate(numbers):
            node = repository.get(f"issue{i}")
            if not node:
                raise GitHubError(f"Issue #{number} not found in {self.name_with_owner}")
            issues.append(Issue.from_node(node))
        return issues

    def add_sub_issue(self, parent_id: str, sub_issue_id: str, replace_parent: bool = False) -> None:
        mutation = """
        mutation($input: AddSubIssueInput!) {
          addSubIssue(input: $input) {
            issue { id }
          }
        }
        """
        self._execute_graphql_query(
            mutation,
            {
                "input": {
                    "issueId": parent_id,
                    "subIssueId": sub_issue_id,
                    "replaceParent": replace_parent,
                }
            },
        )

    def remove_sub_issue(self, parent_id: str, sub_issue_id: str) -> None:
        mutation = """
        mutation($input: RemoveSubIssueInput!) {
          removeSubIssue(input: $input) {
            issue { id }
          }
        }
        """
        self._execute_graphql_query(
            mutation, {"input": {"issueId": parent_id, "subIssueId": sub_issue_id}}
        )

    def update_sub_issues(self, mutation_name: str, parent_id: str, sub_issue_ids: list[str]) -> None:
        """Attach or detach many sub-issues in one aliased mutation.

        Args:
            mutation_name: "addSubIssue" or "removeSubIssue"
            parent_id: Node ID of the parent issue
            sub_issue_ids: Node IDs of the sub-issues
        """
        input_type = mutation_name[0].upper() + mutation_name[1:] + "Input"
        params = ", ".join(f"$input{i}: {input_type}!" for i in range(len(sub_issue_ids)))
        fields = "\n".join(
            f"op{i}: {mutation_name}(input: $input{i}) {{ issue {{ id }} }}"
            for i in range(len(sub_issue_ids))
        )
        self._execute_graphql_query(
            f"mutation({params}) {{\n{fields}\n}}",
            {
                f"input{i}": {"issueId": parent_id, "subIssueId": sub_id}
                for i, sub_id in enumerate(sub_issue_ids)
            },
        )

    def reprioritize_sub_issue(
        self,
        parent_id: str,
        sub_issue_id: str,
        *,
        after_id: str | None = None,
        before_id: str | None = None,
    ) -> None:
        mutation = """
        mutation($input: ReprioritizeSubIssueInput!) {
          reprioritizeSubIssue(input: $input) {
            issue { id }
          }
        }
        """
        reprioritize_input = {"issueId": parent_id, "subIssueId": sub_issue_id}
        if after_id:
            reprioritize_input["afterId"] = after_id
        if before_id:
            reprioritize_input["beforeId"] = before_id
        self._execute_graphql_query(mutation, {"input": reprioritize_input})

    def get_sub_issue_edge(self, parent_id: str, last: bool = False) -> str | None:
        """Return the node ID of the first (or last) sub-issue of a parent."""
        window = "last: 1" if last else "first: 1"
        query = f"""
        query($parentId: ID!) {{
          node(id: $parentId) {{
            ... on Issue {{
              subIssues({window}) {{
                nodes {{ id }}
              }}
            }}
          }}
        }}
        """
        response = self._execute_graphql_query(query, {"parentId": parent_id})
        node = (response.get("data") or {}).get("node") or {}
        nodes = (node.get("subIssues") or {}).get("nodes") or []
        return nodes[0]["id"] if nodes and nodes[0] else None

    # Plumbing

    def _repo_ref(self) -> str:
        if self.hostname == "github.com":
            return self.name_with_owner
        return f"{self.hostname}/{self.name_with_owner}"

    def _pull_request_node(self, response: dict[str, Any], pr_number: int) -> dict[str, Any]:
        repository = (response.get("data") or {}).get("repository")
        if not repository:
            raise GitHubError(f"Repository {self.name_with_owner} not found")
        pr = repository.get("pullRequest")
        if not pr:
            raise PullRequestNotFoundError(
                f"PR #{pr_number} not found in {self.name_with_owner}"
            )
        return pr

    @retry(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _execute_graphql_query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Execute a GraphQL query using gh CLI.

        Network errors are retried with exponential backoff before giving up.

        Raises:
            GraphQLError: If the response contains errors
            GitHubError: If the output is not valid JSON
            NetworkError: If connectivity fails on every attempt
        """
        payload = {"query": query, "variables": variables}
        try:
            output = self._run_gh_command(
                ["api", "graphql", "--input", "-"],
                input_data=json.dumps(payload),
            )
        except subprocess.CalledProcessError as e:
            raise GitHubError(f"GitHub API call failed: {(e.stderr or str(e)).strip()}") from e

        try:
            response = json.loads(output)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {e}")
            logger.debug(f"Raw output: {output}")
            raise GitHubError(f"Invalid JSON response from gh CLI: {e}") from e

        if response.get("errors"):
            raise GraphQLError([err.get("message", str(err)) for err in response["errors"]])
        return response

    def _run_gh_command(self, args: list[str], input_data: str | None = None) -> str:
        """Run a gh CLI command with proper error handling.

        Args:
            args: Command arguments (excluding 'gh' itself)
            input_data: Optional data to pass to stdin

        Returns:
            Command output as string

        Raises:
            NetworkError: On connectivity failures
            GitHubAuthError: On authentication failures
            subprocess.CalledProcessError: For any other command failure
            GitHubError: If gh is not installed
        """
        cmd = ["gh"]
        if self.hostname != "github.com" and args and args[0] == "api":
            cmd.extend(["api", "--hostname", self.hostname] + args[1:])
        else:
            cmd.extend(args)
        logger.debug(f"Running command: {' '.join(cmd[:4])}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                input=input_data,
                env={**os.environ, **get_gh_env(self.hostname, self.token)},
            )
        except subprocess.CalledProcessError as e:
            logger.debug(f"Command failed with exit code {e.returncode}: {e.stderr}")
            error_output = (e.stderr or "").lower()

            if any(pattern in error_output for pattern in NETWORK_ERROR_PATTERNS):
                raise NetworkError(f"GitHub API network error: {(e.stderr or '').strip()}") from e

            if any(indicator in error_output for indicator in AUTH_ERROR_PATTERNS):
                detail = f"\nError: {e.stderr}" if is_debug_mode() else ""
                raise GitHubAuthError(
                    f"GitHub authentication failed for {self.hostname}. "
                    f"Set GITHUB_TOKEN or run 'gh auth login'.{detail}"
                ) from e
            raise
        except FileNotFoundError as e:
            raise GitHubError(
                "GitHub CLI (gh) is not installed or not in PATH. "
                "Please install it from https://cli.github.com/"
            ) from e

        logger.debug(f"Command succeeded, output length: {len(result.stdout)} bytes")
        return result.stdout


def detect_current_repo(token: str | None = None) -> str | None:
    """Return ``owner/repo`` for the repository in the current directory.

    Asks gh, which understands remotes and ``gh repo set-default``. Returns
    None outside a repository or when gh cannot tell.
    """
    try:
        result = subprocess.run(
            ["gh", "repo", "view", "--json", "nameWithOwner", "-q", ".nameWithOwner"],
            capture_output=True,
            text=True,
            check=True,
            env={**os.environ, **get_gh_env("github.com", token)},
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        logger.debug(f"Could not detect current repository: {e}")
        return None
    return result.stdout.strip() or None
