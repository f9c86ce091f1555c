"""Backlog import feed in Tracker's "Import API URL" XML format.

Tracker polls the configured URL and offers every ``external_story`` as an
importable story. Each open GitHub issue becomes one entry; pull requests
are left out.

See https://www.pivotaltracker.com/help/articles/other_integration
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from typing import Any

from .diffing import has_label
from .logging import get_logger
from .ports import OpenIssueSource

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
BUG_LABEL = "bug"
STORY_TYPE_BUG = "bug"
STORY_TYPE_FEATURE = "feature"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def story_type_for(issue: Mapping[str, Any]) -> str:
    return STORY_TYPE_BUG if has_label(dict(issue), BUG_LABEL) else STORY_TYPE_FEATURE


def _external_story(issue: Mapping[str, Any]) -> ET.Element:
    story = ET.Element("external_story")
    # Tracker ignores comments, the URL is there for humans reading the feed
    story.append(ET.Comment(_text(issue.get("html_url"))))
    user = issue.get("user") or {}
    fields = (
        ("external_id", issue.get("number")),
        ("name", issue.get("title")),
        ("description", issue.get("body")),
        ("requested_by", user.get("login") if isinstance(user, Mapping) else None),
        ("story_type", story_type_for(issue)),
        ("created_at", issue.get("created_at")),
    )
    for tag, value in fields:
        ET.SubElement(story, tag).text = _text(value)
    return story


def render_import_xml(issues: Iterable[Mapping[str, Any]]) -> str:
    root = ET.Element("external_stories", {"type": "array"})
    for issue in issues:
        if issue.get("pull_request"):
            continue
        root.append(_external_story(issue))
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def build_import_feed(source: OpenIssueSource) -> str:
    """Fetch open issues and render the feed; fetch errors propagate."""
    logger = get_logger()
    with logger.timed_operation("build_import_feed"):
        issues = source.list_open_issues()
        feed = render_import_xml(issues)
    logger.log_operation("build_import_feed", issue_count=len(issues))
    return feed


__all__ = ["render_import_xml", "build_import_feed", "story_type_for"]
