import pytest
from conftest import DummyResponse, DummySession

from storyrelay.github_rest import GitHubAPIError, GitHubRestClient
from storyrelay.models import MutationRequest


def test_fetch_snapshot_reads_labels_in_order():
    session = DummySession(
        [
            DummyResponse(
                200,
                {
                    "number": 42,
                    "title": "Demo",
                    "state": "open",
                    "labels": [{"name": "enhancement"}, {"name": "priority/backlog"}],
                },
            )
        ]
    )
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session)

    snapshot = client.fetch_snapshot(42)

    assert snapshot.number == 42
    assert snapshot.labels == ("enhancement", "priority/backlog")
    assert snapshot.state == "open"
    method, url, meta = session.request_log[0]
    assert method == "GET"
    assert url == "https://api.github.com/repos/acme/widgets/issues/42"
    assert meta["headers"]["Authorization"] == "Bearer tkn"


def test_apply_mutation_patches_only_set_fields():
    session = DummySession([DummyResponse(200, {"number": 42})])
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session)

    client.apply_mutation(42, MutationRequest(assignees=[], state="closed"))

    method, url, meta = session.request_log[0]
    assert method == "PATCH"
    assert url.endswith("/repos/acme/widgets/issues/42")
    assert meta["json"] == {"assignees": [], "state": "closed"}



def test_rest_client_raises_on_error():
    session = DummySession([DummyResponse(500, {"message": "boom"})])
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session)

    with pytest.raises(GitHubAPIError) as excinfo:
        client.fetch_snapshot(1)
    assert excinfo.value.status == 500
    # no retries
    assert len(session.request_log) == 1


def test_list_open_issues_paginates():
    first_page = [{"number": n} for n in range(100)]
    session = DummySession(
        [DummyResponse(200, first_page), DummyResponse(200, [{"number": 100}])]
    )
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session)

    issues = client.list_open_issues()

    assert len(issues) == 101
    assert [entry[2]["params"]["page"] for entry in session.request_log] == [1, 2]
    assert session.request_log[0][2]["params"]["state"] == "open"
    assert session.request_log[0][2]["params"]["per_page"] == 100


def test_non_json_body_is_an_error():
    session = DummySession([DummyResponse(200, ValueError("no json"))])
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session)

    with pytest.raises(GitHubAPIError, match="non-JSON"):
        client.get_issue(3)
