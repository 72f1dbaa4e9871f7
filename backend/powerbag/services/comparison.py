"""Naming and preview/published comparison helpers."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Iterable

# asset reference field -> embedded snapshot field, per content node
_REFERENCE_FIELDS = (
    ("image_asset", "embedded_image_asset"),
    ("audio_asset", "embedded_audio_asset"),
    ("video_asset", "embedded_video_asset"),
)

BAG_COLUMNS = ("first_column", "second_column", "third_column")


def unique_name(base: str, existing: Iterable[str]) -> str:
    """Return ``"base (n)"`` for the smallest n >= 1 not already taken."""

    taken = set(existing)
    n = 1
    while f"{base} ({n})" in taken:
        n += 1
    return f"{base} ({n})"


def _canonical_node(node: dict[str, Any]) -> dict[str, Any]:
    result = dict(node)
    for ref_field, embedded_field in _REFERENCE_FIELDS:
        embedded = result.pop(embedded_field, None)
        ref = result.get(ref_field)
        if ref is None and embedded:
            ref = embedded.get("asset_id")
        if ref is not None:
            result[ref_field] = str(ref)
        else:
            result.pop(ref_field, None)
    return {key: value for key, value in result.items() if value is not None}


def canonical_bags(bags: dict[str, Any] | None) -> dict[str, list[dict[str, Any]]]:
    bags = bags or {}
    return {
        column: [_canonical_node(bag) for bag in bags.get(column) or []]
        for column in BAG_COLUMNS
    }


def canonical_stories(stories: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    result = []
    for story in stories or []:
        node = _canonical_node(story)
        node["events"] = [_canonical_node(event) for event in story.get("events") or []]
        node.setdefault("selected_bags", [])
        result.append(node)
    return result


def bags_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    return canonical_bags(a) == canonical_bags(b)


def stories_equal(a: list[dict[str, Any]] | None, b: list[dict[str, Any]] | None) -> bool:
    return canonical_stories(a) == canonical_stories(b)


def deep_copy_content(bags: dict[str, Any] | None, stories: list[dict[str, Any]] | None):
    """Verbatim copy of storyline content, asset references included."""

    bags_copy = copy.deepcopy(bags) if bags else {column: [] for column in BAG_COLUMNS}
    return bags_copy, copy.deepcopy(stories or [])


def _naive(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def diff_collection(preview, published) -> dict[str, bool]:
    if published is None:
        return {"name_changed": True, "description_changed": True, "changed": True}
    name_changed = preview.name != published.name
    description_changed = (preview.description or "") != (published.description or "")
    return {
        "name_changed": name_changed,
        "description_changed": description_changed,
        "changed": name_changed or description_changed,
    }


def classify_storyline(preview, published) -> tuple[str, list[str]]:
    """Return ``(state, changed fields)`` for a preview storyline and its twin."""

    if published is None:
        return "new", []
    changes = []
    if preview.title != published.title:
        changes.append("title")
    if not bags_equal(preview.bags, published.bags):
        changes.append("bags")
    if not stories_equal(preview.stories, published.stories):
        changes.append("stories")
    preview_updated = _naive(preview.updated_at)
    published_updated = _naive(published.updated_at)
    if preview_updated and published_updated and preview_updated > published_updated:
        changes.append("updated_at")
    return ("modified" if changes else "unchanged"), changes
