import xml.etree.ElementTree as ET

import pytest
from conftest import load_fixture

from storyrelay.github_rest import GitHubAPIError
from storyrelay.tracker_import import build_import_feed, render_import_xml, story_type_for


class _Source:
    def __init__(self, issues=None, error=None):
        self.issues = issues or []
        self.error = error
        self.calls = 0

    def list_open_issues(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.issues


def _stories(xml_text):
    root = ET.fromstring(xml_text.split("\n", 1)[1])
    return root, root.findall("external_story")


def test_feed_lists_issues_and_skips_pull_requests():
    feed = render_import_xml(load_fixture("github_list_issues_response"))

    assert feed.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
    root, stories = _stories(feed)
    assert root.tag == "external_stories"
    assert root.get("type") == "array"
    assert [s.findtext("external_id") for s in stories] == ["7", "6", "4"]


def test_story_fields():
    feed = render_import_xml(load_fixture("github_list_issues_response"))
    _, stories = _stories(feed)
    bug, feature, no_body = stories

    assert bug.findtext("name") == "Crash when saving & quitting"
    assert bug.findtext("description") == "Steps:\n1. save\n2. quit <fast>"
    assert bug.findtext("requested_by") == "octocat"
    assert bug.findtext("story_type") == "bug"
    assert bug.findtext("created_at") == "2021-01-11T17:25:13Z"
    assert feature.findtext("story_type") == "feature"
    assert feature.findtext("requested_by") == "hubot"
    assert no_body.findtext("description") == ""


def test_special_characters_are_escaped():
    feed = render_import_xml(load_fixture("github_list_issues_response"))

    assert "saving &amp; quitting" in feed
    assert "&lt;fast&gt;" in feed


def test_issue_url_is_kept_as_comment():
    feed = render_import_xml(load_fixture("github_list_issues_response"))

    assert "<!--https://github.com/acme/widgets/issues/7-->" in feed
    assert "pull/5" not in feed


def test_empty_feed():
    root, stories = _stories(render_import_xml([]))

    assert root.get("type") == "array"
    assert stories == []


@pytest.mark.parametrize(
    "labels,expected",
    [
        ([{"name": "bug"}], "bug"),
        ([{"name": "Bug"}], "feature"),
        ([{"name": "enhancement"}], "feature"),
        ([], "feature"),
    ],
)
def test_story_type_for(labels, expected):
    assert story_type_for({"labels": labels}) == expected


def test_build_import_feed_uses_source():
    source = _Source(load_fixture("github_list_issues_response"))

    feed = build_import_feed(source)

    assert source.calls == 1
    assert feed.count("<external_story>") == 3


def test_build_import_feed_propagates_fetch_errors():
    source = _Source(error=GitHubAPIError("GitHub API GET failed with 500", status=500))

    with pytest.raises(GitHubAPIError):
        build_import_feed(source)
