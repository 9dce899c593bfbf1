"""Tests for GitHub client issue functionality."""

from unittest.mock import patch

import pytest

from src.github_client import GitHubError


def issue_node(number, closed=False):
    return {
        "id": f"I_{number}",
        "number": number,
        "title": f"Issue {number}",
        "state": "CLOSED" if closed else "OPEN",
        "url": f"https://github.com/owner/repo/issues/{number}",
        "closed": closed,
    }


@pytest.mark.unit
class TestGetIssue:
    """Tests for GitHubClient.get_issue()."""

    def test_with_sub_issues(self, github_client):
        response = {
            "data": {
                "repository": {
                    "issue": {
                        **issue_node(1),
                        "body": "Epic",
                        "labels": {"nodes": [{"name": "epic"}]},
                        "assignees": {"nodes": []},
                        "parent": None,
                        "subIssues": {
                            "totalCount": 2,
                            "nodes": [issue_node(2, closed=True), issue_node(3)],
                        },
                    }
                }
            }
        }

        with patch.object(
            github_client, "_execute_graphql_query", return_value=response
        ) as mock_query:
            issue = github_client.get_issue(1, include_sub_issues=True)

        assert issue.labels == ["epic"]
        assert issue.parent is None
        assert [s.number for s in issue.sub_issues] == [2, 3]
        assert mock_query.call_args[0][1]["includeSub"] is True

    def test_missing_issue_raises(self, github_client):
        response = {"data": {"repository": {"issue": None}}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            with pytest.raises(GitHubError, match="Issue #5 not found in owner/repo"):
                github_client.get_issue(5)


@pytest.mark.unit
class TestGetIssues:
    """Tests for GitHubClient.get_issues()."""

    def test_aliased_lookup_keeps_order(self, github_client):
        response = {"data": {"repository": {"issue0": issue_node(7), "issue1": issue_node(3)}}}

        with patch.object(
            github_client, "_execute_graphql_query", return_value=response
        ) as mock_query:
            issues = github_client.get_issues([7, 3])

        assert [i.id for i in issues] == ["I_7", "I_3"]
        query, variables = mock_query.call_args[0]
        assert "issue1: issue(number: $number1)" in query
        assert variables["number0"] == 7
        assert variables["number1"] == 3

    def test_missing_issue_raises(self, github_client):
        response = {"data": {"repository": {"issue0": issue_node(7), "issue1": None}}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            with pytest.raises(GitHubError, match="Issue #99 not found"):
                github_client.get_issues([7, 99])


@pytest.mark.unit
class TestNameResolution:
    """Tests for resolving users, milestones and projects."""

    def test_user_ids(self, github_client):
        response = {"data": {"user0": {"id": "U_a"}, "user1": {"id": "U_b"}}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            assert github_client.get_user_ids(["alice", "bob"]) == ["U_a", "U_b"]

    def test_unknown_user_raises(self, github_client):
        response = {"data": {"user0": None}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            with pytest.raises(GitHubError, match="User not found: ghost"):
                github_client.get_user_ids(["ghost"])

    def test_no_users_skips_query(self, github_client):
        with patch.object(github_client, "_execute_graphql_query") as mock_query:
            assert github_client.get_user_ids([]) == []

        mock_query.assert_not_called()

    def test_milestone(self, github_client):
        response = {
            "data": {
                "repository": {
                    "milestones": {"nodes": [{"id": "M_1", "title": "v1"}, {"id": "M_2", "title": "v2"}]}
                }
            }
        }

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            assert github_client.get_milestone_id("v2") == "M_2"
            with pytest.raises(GitHubError, match="Milestone not found: v3"):
                github_client.get_milestone_id("v3")

    def test_project(self, github_client):
        response = {"data": {"repository": {"projectsV2": {"nodes": [{"id": "P_1", "title": "Roadmap"}]}}}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            assert github_client.get_project_id("Roadmap") == "P_1"
            with pytest.raises(GitHubError, match="Project not found: Backlog"):
                github_client.get_project_id("Backlog")


@pytest.mark.unit
class TestCreateIssue:
    """Tests for GitHubClient.create_issue()."""

    def test_builds_input(self, github_client):
        created = {"data": {"createIssue": {"issue": {**issue_node(10), "createdAt": "2024-01-01"}}}}

        with (
            patch.object(github_client, "get_repository_id", return_value="R_1"),
            patch.object(
                github_client, "_execute_graphql_query", return_value=created
            ) as mock_query,
        ):
            issue = github_client.create_issue("Bug", "Body", label_ids=["L_1"], milestone_id="M_1")

        assert issue.number == 10
        assert mock_query.call_args[0][1] == {
            "input": {
                "repositoryId": "R_1",
                "title": "Bug",
                "body": "Body",
                "labelIds": ["L_1"],
                "milestoneId": "M_1",
            }
        }

    def test_empty_result_raises(self, github_client):
        with (
            patch.object(github_client, "get_repository_id", return_value="R_1"),
            patch.object(
                github_client, "_execute_graphql_query", return_value={"data": {"createIssue": None}}
            ),
        ):
            with pytest.raises(GitHubError, match="createIssue returned no issue"):
                github_client.create_issue("Bug")


@pytest.mark.unit
class TestSubIssueMutations:
    """Tests for sub-issue mutations."""

    def test_add_sub_issue_with_replace(self, github_client):
        with patch.object(github_client, "_execute_graphql_query", return_value={}) as mock_query:
            github_client.add_sub_issue("I_1", "I_2", replace_parent=True)

        assert mock_query.call_args[0][1] == {
            "input": {"issueId": "I_1", "subIssueId": "I_2", "replaceParent": True}
        }

    def test_batch_update_uses_aliases(self, github_client):
        with patch.object(github_client, "_execute_graphql_query", return_value={}) as mock_query:
            github_client.update_sub_issues("removeSubIssue", "I_1", ["I_2", "I_3"])

        query, variables = mock_query.call_args[0]
        assert "$input1: RemoveSubIssueInput!" in query
        assert "op1: removeSubIssue(input: $input1)" in query
        assert variables["input1"] == {"issueId": "I_1", "subIssueId": "I_3"}

    def test_reprioritize_sends_only_given_anchor(self, github_client):
        with patch.object(github_client, "_execute_graphql_query", return_value={}) as mock_query:
            github_client.reprioritize_sub_issue("I_1", "I_2", before_id="I_3")

        assert mock_query.call_args[0][1] == {
            "input": {"issueId": "I_1", "subIssueId": "I_2", "beforeId": "I_3"}
        }

    @pytest.mark.parametrize("last,window", [(False, "first: 1"), (True, "last: 1")])
    def test_sub_issue_edge(self, github_client, last, window):
        response = {"data": {"node": {"subIssues": {"nodes": [{"id": "I_9"}]}}}}

        with patch.object(
            github_client, "_execute_graphql_query", return_value=response
        ) as mock_query:
            assert github_client.get_sub_issue_edge("I_1", last=last) == "I_9"

        assert f"subIssues({window})" in mock_query.call_args[0][0]

    def test_sub_issue_edge_without_children(self, github_client):
        response = {"data": {"node": {"subIssues": {"nodes": []}}}}

        with patch.object(github_client, "_execute_graphql_query", return_value=response):
            assert github_client.get_sub_issue_edge("I_1") is None
