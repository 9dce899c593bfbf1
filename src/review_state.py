"""Last-known-review marker persistence.

The marker records the most recent review seen for a pull request so that a
later ``reviews wait`` can tell new reviews from ones already handled. One
JSON file per PR lives under ``<cache_dir>/reviews/``.

There is no file locking: two processes waiting on the same PR can race on
the marker file. gh-helper is a single-operator tool and accepts that.
"""

import json
from pathlib import Path

from src.interfaces import Review, ReviewMarker
from src.logger import get_logger

logger = get_logger(__name__)


def is_new_review(review: Review, marker: ReviewMarker) -> bool:
    """Check whether a review arrived after the marker.

    Reviews can share a timestamp, so an equal timestamp with a different ID
    also counts as new.
    """
    if review.created_at > marker.created_at:
        return True
    return review.created_at == marker.created_at and review.id != marker.id


def has_new_reviews(reviews: list[Review], marker: ReviewMarker | None) -> bool:
    """Check if any review is newer than the marker.

    Without a marker, having any review at all counts as ready.
    """
    if marker is None:
        return len(reviews) > 0
    return any(is_new_review(review, marker) for review in reviews)


def latest_marker(reviews: list[Review]) -> ReviewMarker | None:
    """Build a marker for the most recent review, or None if there are none.

    GitHub returns reviews oldest first; ties on ``created_at`` keep the
    later entry.
    """
    if not reviews:
        return None
    latest = max(enumerate(reviews), key=lambda pair: (pair[1].created_at, pair[0]))[1]
    return ReviewMarker(id=latest.id, created_at=latest.created_at)


class ReviewStateStore:
    """Reads and writes per-PR review markers under a cache directory."""

    def __init__(self, cache_dir: str | Path) -> None:
        self.state_dir = Path(cache_dir) / "reviews"

    def path_for(self, pr_number: int) -> Path:
        return self.state_dir / f"pr-{pr_number}-last-review.json"

    def load(self, pr_number: int) -> ReviewMarker | None:
        """Load the marker for a PR.

        Returns:
            The stored marker, or None when no usable marker exists
        """
        path = self.path_for(pr_number)
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            logger.debug(f"No review marker for PR #{pr_number}")
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable review marker {path}: {e}")
            return None

        try:
            return ReviewMarker.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed review marker {path}: {e}")
            return None

    def save(self, pr_number: int, marker: ReviewMarker) -> None:
        """Persist the marker for a PR, creating the state directory if needed.

        Raises:
            OSError: If the file cannot be written
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(pr_number)
        path.write_text(json.dumps(marker.to_dict(), indent=2) + "\n")
        logger.debug(f"Saved review marker for PR #{pr_number}: {marker.id} at {marker.created_at}")
