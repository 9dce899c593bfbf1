"""Normalized GitHub data types."""

from src.interfaces.github import (
    Issue,
    LabelableItem,
    MergeableState,
    PageInfo,
    PRComment,
    PRDetails,
    PRStatusSnapshot,
    Review,
    ReviewData,
    ReviewMarker,
    ReviewThread,
    RollupState,
    StatusContext,
    ThreadComment,
)

__all__ = [
    "Issue",
    "LabelableItem",
    "MergeableState",
    "PageInfo",
    "PRComment",
    "PRDetails",
    "PRStatusSnapshot",
    "Review",
    "ReviewData",
    "ReviewMarker",
    "ReviewThread",
    "RollupState",
    "StatusContext",
    "ThreadComment",
]
