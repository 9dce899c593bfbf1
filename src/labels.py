"""Bulk label operations for issues and pull requests.

Items are given as specs such as ``254``, ``issue/238`` or ``pull/267``.
Labels and items are resolved up front; any unknown label or missing item
aborts before a single mutation is sent. Mutations then run through the
bounded parallel executor, and each item reports its own outcome.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from src.github_client import GitHubClient, GitHubError
from src.interfaces import LabelableItem
from src.logger import get_logger
from src.parallel import DEFAULT_MAX_CONCURRENCY, execute_parallel

logger = get_logger(__name__)

OPERATIONS = ("add", "remove")

_ITEM_SPEC = re.compile(r"^(?:(issue|pull|pr)/)?(\d+)$")
_ITEM_TYPES = {"issue": "Issue", "pull": "PullRequest", "pr": "PullRequest"}


@dataclass
class LabelOperationResult:
    """Outcome of a label mutation on one item."""

    type: str
    number: int
    operation: str
    status: str = "success"
    labels_changed: list[str] = field(default_factory=list)
    current_labels: list[str] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "number": self.number,
            "operation": self.operation,
        }
        if self.labels_changed:
            key = "labelsRemoved" if self.operation == "remove" else "labelsAdded"
            data[key] = self.labels_changed
        data["currentLabels"] = self.current_labels
        data["status"] = self.status
        if self.error:
            data["error"] = self.error
        return data


def parse_item_spec(spec: str) -> tuple[str | None, int]:
    """Parse an item spec into (type name, number).

    The type name is "Issue", "PullRequest", or None when the spec is a
    bare number and the type should be detected.

    Raises:
        ValueError: If the spec is not in a recognized form
    """
    match = _ITEM_SPEC.match(spec.strip())
    if not match:
        raise ValueError(
            f"Invalid item specification {spec!r} (expected N, issue/N, pull/N or pr/N)"
        )
    prefix, number = match.groups()
    return (_ITEM_TYPES[prefix] if prefix else None), int(number)


def split_list(value: str) -> list[str]:
    """Split a comma-separated option value, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


def resolve_items(client: GitHubClient, item_specs: list[str]) -> list[LabelableItem]:
    """Look up every item spec, dropping duplicates by node ID.

    Raises:
        ValueError: If a spec is malformed
        GitHubError: If an item cannot be found
    """
    parsed = [parse_item_spec(spec) for spec in item_specs]

    items: list[LabelableItem] = []
    seen: set[str] = set()
    for spec, (item_type, number) in zip(item_specs, parsed, strict=True):
        try:
            item = client.get_labelable_item(number, item_type)
        except GitHubError as e:
            raise GitHubError(f"Failed to get item {spec}: {e}") from e
        if item.id in seen:
            logger.debug(f"Skipping duplicate item {spec}")
            continue
        seen.add(item.id)
        items.append(item)
    return items


def apply_labels(
    client: GitHubClient,
    labels: list[str],
    item_specs: list[str],
    operation: str = "add",
    *,
    dry_run: bool = False,
    parallel: bool = True,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> dict[str, Any]:
    """Add or remove labels on many items.

    Args:
        client: GitHub client for the target repository
        labels: Label names to add or remove
        item_specs: Item specs (see parse_item_spec)
        operation: "add" or "remove"
        dry_run: Resolve everything but send no mutations
        parallel: Run mutations concurrently
        max_concurrency: Maximum simultaneous mutations

    Returns:
        Summary with one entry per item and success/failure counts

    Raises:
        ValueError: If the operation, labels or item specs are invalid
        GitHubError: If a label or item cannot be resolved
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown label operation {operation!r}")
    if not labels:
        raise ValueError("At least one label is required")
    if not item_specs:
        raise ValueError("At least one item is required (use --items)")

    available = client.get_label_ids()
    missing = [label for label in labels if label not in available]
    if missing:
        raise GitHubError(
            f"Label(s) not found in {client.name_with_owner}: {', '.join(missing)}"
        )
    label_ids = [available[label] for label in labels]

    items = resolve_items(client, item_specs)

    if dry_run:
        logger.info(f"Dry run: would {operation} {labels} on {len(items)} item(s)")
        results = [
            LabelOperationResult(
                type=item.type_name,
                number=item.number,
                operation=operation,
                status="dry-run",
                labels_changed=list(labels),
                current_labels=item.labels,
            )
            for item in items
        ]
        return summarize_labels(results, labels)

    mutate = client.add_labels if operation == "add" else client.remove_labels

    def label_item(item: LabelableItem) -> LabelOperationResult:
        result = LabelOperationResult(
            type=item.type_name, number=item.number, operation=operation
        )
        try:
            updated = mutate(item.id, label_ids)
        except Exception as e:
            logger.warning(f"Failed to {operation} labels on #{item.number}: {e}")
            result.status = "failed"
            result.error = str(e)
            return result
        result.labels_changed = list(labels)
        result.current_labels = updated.labels
        return result

    results = execute_parallel(items, label_item, parallel, max_concurrency)
    return summarize_labels(results, labels)


def summarize_labels(results: list[LabelOperationResult], labels: list[str]) -> dict[str, Any]:
    successful = sum(1 for r in results if r.status != "failed")
    return {
        "labelsModified": [r.to_dict() for r in results],
        "summary": {
            "totalItems": len(results),
            "labels": list(labels),
            "successful": successful,
            "failed": len(results) - successful,
        },
    }


def add_labels_from_issues(
    client: GitHubClient, pr_number: int, *, dry_run: bool = False
) -> LabelOperationResult | None:
    """Copy the labels of the issues a PR closes onto the PR.

    Returns:
        The operation result, or None when the PR already has every label

    Raises:
        GitHubError: If the PR or one of the labels cannot be found
    """
    pr, issues = client.get_pr_with_linked_issues(pr_number)

    missing: list[str] = []
    for issue in issues:
        for label in issue.labels:
            if label not in pr.labels and label not in missing:
                missing.append(label)
    logger.debug(
        f"PR #{pr_number} links {len(issues)} issue(s); labels to add: {missing or 'none'}"
    )
    if not missing:
        return None

    result = LabelOperationResult(
        type=pr.type_name,
        number=pr.number,
        operation="add-from-issues",
        labels_changed=missing,
        current_labels=pr.labels,
    )
    if dry_run:
        result.status = "dry-run"
        return result

    available = client.get_label_ids()
    unknown = [label for label in missing if label not in available]
    if unknown:
        raise GitHubError(
            f"Label(s) not found in {client.name_with_owner}: {', '.join(unknown)}"
        )
    updated = client.add_labels(pr.id, [available[label] for label in missing])
    result.current_labels = updated.labels
    return result
