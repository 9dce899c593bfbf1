"""Issue creation, inspection and sub-issue hierarchy editing.

An issue can have one parent and an ordered list of sub-issues. ``edit_issue``
performs exactly one hierarchy change per call: set or replace the parent,
unlink it, move the issue within its parent's list, or attach/detach a batch
of sub-issues.
"""

from dataclasses import dataclass, field
from typing import Any

from src.github_client import GitHubClient, GitHubError
from src.interfaces import Issue
from src.logger import get_logger
from src.parallel import DEFAULT_MAX_CONCURRENCY, execute_parallel_with_errors

logger = get_logger(__name__)

POSITIONS = ("first", "last")


@dataclass
class Change:
    """One field changed by an edit."""

    field: str
    new_value: str
    action: str
    old_value: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"field": self.field}
        if self.old_value:
            data["oldValue"] = self.old_value
        data["newValue"] = self.new_value
        data["action"] = self.action
        return data


def parse_issue_numbers(value: str) -> list[int]:
    """Parse a comma-separated list such as ``12,#13, 14``.

    Raises:
        ValueError: If an entry is not an issue number
    """
    numbers = []
    for part in value.split(","):
        text = part.strip().lstrip("#")
        if not text:
            continue
        if not text.isdigit():
            raise ValueError(f"Invalid issue number: {part.strip()!r}")
        numbers.append(int(text))
    return numbers


def create_issue(
    client: GitHubClient,
    title: str,
    body: str = "",
    *,
    labels: list[str] | None = None,
    assignees: list[str] | None = None,
    milestone: str = "",
    project: str = "",
    parent: int | None = None,
) -> dict[str, Any]:
    """Create an issue, then attach it to a project and a parent issue if asked.

    Every name (label, user, milestone, project, parent) is resolved before
    the issue is created. Linking to the project or parent happens after
    creation; a failure there is logged and leaves the new issue in place.

    Raises:
        ValueError: If the title is empty
        GitHubError: If a name cannot be resolved or creation fails
    """
    if not title.strip():
        raise ValueError("An issue title is required")

    label_ids: list[str] = []
    if labels:
        available = client.get_label_ids()
        missing = [label for label in labels if label not in available]
        if missing:
            raise GitHubError(
                f"Label(s) not found in {client.name_with_owner}: {', '.join(missing)}"
            )
        label_ids = [available[label] for label in labels]

    assignee_ids = client.get_user_ids(assignees or [])
    milestone_id = client.get_milestone_id(milestone) if milestone else None
    project_id = client.get_project_id(project) if project else None
    parent_issue = client.get_issue(parent) if parent is not None else None

    issue = client.create_issue(
        title,
        body,
        label_ids=label_ids,
        assignee_ids=assignee_ids,
        milestone_id=milestone_id,
    )

    if project_id:
        try:
            client.add_to_project(project_id, issue.id)
        except GitHubError as e:
            logger.warning(f"Created #{issue.number} but could not add it to project {project}: {e}")

    linked_parent = None
    if parent_issue is not None:
        try:
            client.add_sub_issue(parent_issue.id, issue.id)
            linked_parent = parent_issue
        except GitHubError as e:
            logger.warning(
                f"Created #{issue.number} but could not link it to parent #{parent_issue.number}: {e}"
            )

    data: dict[str, Any] = {
        "number": issue.number,
        "title": issue.title,
        "url": issue.url,
        "state": issue.state,
        "labels": issue.labels,
        "assignees": issue.assignees,
    }
    if linked_parent is not None:
        data["parent"] = {"number": linked_parent.number, "title": linked_parent.title}
    data["createdAt"] = issue.created_at
    return {"issue": data}


def issue_to_dict(issue: Issue) -> dict[str, Any]:
    return {
        "number": issue.number,
        "title": issue.title,
        "state": issue.state,
        "body": issue.body,
        "labels": issue.labels,
        "assignees": issue.assignees,
        "createdAt": issue.created_at,
        "updatedAt": issue.updated_at,
        "url": issue.url,
    }


def show_issue(
    client: GitHubClient,
    number: int,
    *,
    include_sub: bool = False,
    detailed: bool = False,
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> dict[str, Any]:
    """Describe an issue and, optionally, the progress of its sub-issues.

    With ``detailed`` every sub-issue is fetched in full through the parallel
    executor; a sub-issue that fails to load is reported without details.

    Raises:
        ValueError: If detailed is requested without include_sub
        GitHubError: If the issue does not exist
    """
    if detailed and not include_sub:
        raise ValueError("--detailed requires --include-sub")

    issue = client.get_issue(number, include_sub_issues=include_sub)
    result: dict[str, Any] = {"issue": issue_to_dict(issue)}

    if include_sub:
        completed = sum(1 for s in issue.sub_issues if s.closed)
        total = issue.sub_issue_count
        items = [
            {"number": s.number, "title": s.title, "state": s.state, "closed": s.closed}
            for s in issue.sub_issues
        ]

        if detailed and items:
            outcomes = execute_parallel_with_errors(
                [s.number for s in issue.sub_issues], client.get_issue, parallel, max_concurrency
            )
            for item, outcome in zip(items, outcomes, strict=True):
                if outcome.ok:
                    item["details"] = issue_to_dict(outcome.result)
                else:
                    logger.warning(
                        f"Failed to fetch details for sub-issue #{item['number']}: {outcome.error}"
                    )

        result["subIssues"] = {
            "totalCount": total,
            "completedCount": completed,
            "completionPercentage": round(completed / total * 100, 1) if total else 0.0,
            "items": items,
        }
    return {"issueShow": result}


@dataclass
class IssueEdit:
    """A single hierarchy change requested for an issue.

    Attributes:
        parent: New parent issue number
        overwrite: Replace an existing parent instead of failing
        unlink_parent: Detach the issue from its parent
        after: Move the issue after this sibling
        before: Move the issue before this sibling
        position: "first" or "last" among its siblings
        add_subs: Issues to attach as sub-issues
        remove_subs: Sub-issues to detach
    """

    parent: int | None = None
    overwrite: bool = False
    unlink_parent: bool = False
    after: int | None = None
    before: int | None = None
    position: str = ""
    add_subs: list[int] = field(default_factory=list)
    remove_subs: list[int] = field(default_factory=list)

    @property
    def reorders(self) -> bool:
        return self.after is not None or self.before is not None or bool(self.position)

    def validate(self) -> None:
        """Check that exactly one consistent operation is requested.

        Raises:
            ValueError: Describing the first conflicting or missing option
        """
        operations = [
            self.parent is not None or self.unlink_parent,
            self.reorders,
            bool(self.add_subs),
            bool(self.remove_subs),
        ]
        if not any(operations):
            raise ValueError(
                "Specify an operation: --parent, --unlink-parent, --after, --before, "
                "--position, --add-subs or --remove-subs"
            )
        if sum(operations) > 1:
            raise ValueError("Only one operation can be performed per command")

        if self.unlink_parent and self.parent is not None:
            raise ValueError("--unlink-parent cannot be combined with --parent")
        if self.unlink_parent and self.overwrite:
            raise ValueError("--unlink-parent cannot be combined with --overwrite")
        if self.overwrite and self.parent is None:
            raise ValueError("--overwrite requires --parent")
        if self.after is not None and self.before is not None:
            raise ValueError("--after cannot be combined with --before")
        if (self.after is not None or self.before is not None) and self.position:
            raise ValueError("--after/--before cannot be combined with --position")
        if self.position and self.position not in POSITIONS:
            raise ValueError("--position must be 'first' or 'last'")


def edit_issue(client: GitHubClient, number: int, edit: IssueEdit) -> dict[str, Any]:
    """Apply one hierarchy change to issue ``number``.

    Raises:
        ValueError: If the requested edit is invalid
        GitHubError: If an issue is missing or the change is impossible
    """
    edit.validate()

    if edit.parent is not None:
        result = set_parent(client, number, edit.parent, edit.overwrite)
    elif edit.unlink_parent:
        result = unlink_parent(client, number)
    elif edit.reorders:
        result = reorder(client, number, edit)
    elif edit.add_subs:
        result = update_sub_issues(client, number, edit.add_subs, "add")
    else:
        result = update_sub_issues(client, number, edit.remove_subs, "remove")
    return {"issueEdit": result}


def set_parent(client: GitHubClient, number: int, parent: int, overwrite: bool) -> dict[str, Any]:
    child, parent_issue = client.get_issues([number, parent])
    client.add_sub_issue(parent_issue.id, child.id, replace_parent=overwrite)
    logger.info(f"Linked #{number} under #{parent}")
    return {
        "issue": child.summary(),
        "changes": [Change("parent", f"#{parent}", "set").to_dict()],
        "parentChange": {
            "newParent": parent_issue.summary(),
            "action": "replace" if overwrite else "add",
        },
    }


def unlink_parent(client: GitHubClient, number: int) -> dict[str, Any]:
    child = client.get_issue(number)
    if child.parent is None:
        raise GitHubError(f"Issue #{number} has no parent")
    client.remove_sub_issue(child.parent.id, child.id)
    logger.info(f"Unlinked #{number} from #{child.parent.number}")
    return {
        "issue": child.summary(),
        "changes": [
            Change("parent", "none", "unlink", old_value=f"#{child.parent.number}").to_dict()
        ],
        "parentChange": {"oldParent": child.parent.summary(), "action": "remove"},
    }


def reorder(client: GitHubClient, number: int, edit: IssueEdit) -> dict[str, Any]:
    """Move a sub-issue within its parent's list."""
    child = client.get_issue(number)
    if child.parent is None:
        raise GitHubError(f"Issue #{number} is not a sub-issue")
    parent_id = child.parent.id

    after_id = before_id = None
    if edit.after is not None:
        after_id = client.get_issues([edit.after])[0].id
        description = f"moved after #{edit.after}"
    elif edit.before is not None:
        before_id = client.get_issues([edit.before])[0].id
        description = f"moved before #{edit.before}"
    else:
        edge = client.get_sub_issue_edge(parent_id, last=edit.position == "last")
        if edge and edge != child.id:
            if edit.position == "last":
                after_id = edge
            else:
                before_id = edge
        description = f"moved to {edit.position} position"

    if after_id or before_id:
        client.reprioritize_sub_issue(parent_id, child.id, after_id=after_id, before_id=before_id)
    else:
        logger.info(f"#{number} is already in the {edit.position} position")

    return {
        "issue": child.summary(),
        "changes": [Change("position", description, "reorder").to_dict()],
    }


def update_sub_issues(
    client: GitHubClient, number: int, sub_numbers: list[int], action: str
) -> dict[str, Any]:
    """Attach ("add") or detach ("remove") several sub-issues in one mutation."""
    parent, *subs = client.get_issues([number] + sub_numbers)
    mutation_name = "addSubIssue" if action == "add" else "removeSubIssue"
    client.update_sub_issues(mutation_name, parent.id, [s.id for s in subs])

    listed = ", ".join(f"#{n}" for n in sub_numbers)
    verb = "added" if action == "add" else "removed"
    logger.info(f"{verb.capitalize()} {len(sub_numbers)} sub-issue(s) on #{number}")
    return {
        "issue": parent.summary(),
        "changes": [
            Change("sub-issues", f"{verb} {len(sub_numbers)} sub-issues: {listed}", action).to_dict()
        ],
    }
