from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import requests

from taskboard.adapters.tracker.file_provider import FileTrackerProvider
from taskboard.adapters.tracker.github_provider import GitHubTrackerProvider
from taskboard.adapters.tracker.providers import build_provider_from_config
from taskboard.domain.board import SyncCandidate, TaskOrigin
from taskboard.ports.tracker.provider import TrackerProviderError


class DummyResponse:
    def __init__(self, status_code: int, payload: Any, *, headers: dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = json.dumps(payload)

    def json(self) -> Any:
        return self._payload


class MalformedResponse(DummyResponse):
    def __init__(self) -> None:
        super().__init__(200, None)
        self.text = "<html>rate limited</html>"

    def json(self) -> Any:
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


class DummySession:
    def __init__(self, responses: list[DummyResponse]) -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, Any] | None, dict[str, str] | None]] = []

    def get(self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None, timeout: int | None = None) -> DummyResponse:
        self.calls.append((url, params, headers))
        if not self._responses:
            raise AssertionError("no more responses queued")
        return self._responses.pop(0)


class FailingSession:
    def get(self, *args: Any, **kwargs: Any) -> DummyResponse:
        raise requests.ConnectionError("network down")


def _write_snapshot(tmp_path: Path, name: str, payload: Any) -> Path:
    snapshot = tmp_path / name
    snapshot.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return snapshot


def _issue(number: int, title: str, **extra: Any) -> dict[str, Any]:
    payload = {
        "number": number,
        "title": title,
        "html_url": f"https://github.com/acme/app/issues/{number}",
        "labels": [{"name": "bug"}],
        "body": "details",
    }
    payload.update(extra)
    return payload


def test_file_provider_reads_items_and_bare_lists(tmp_path: Path) -> None:
    items = [{"external_ref": "gh#1", "title": "One", "type": "issue"}]
    _write_snapshot(tmp_path, "wrapped.json", {"items": items})
    _write_snapshot(tmp_path, "bare.json", items)

    assert list(FileTrackerProvider(tmp_path, {"path": "wrapped.json"}).fetch()) == items
    assert list(FileTrackerProvider(tmp_path, {"path": "bare.json"}).fetch()) == items


def test_file_provider_errors(tmp_path: Path) -> None:
    with pytest.raises(TrackerProviderError):
        FileTrackerProvider(tmp_path, {})
    with pytest.raises(TrackerProviderError):
        list(FileTrackerProvider(tmp_path, {"path": "missing.json"}).fetch())
    (tmp_path / "broken.json").write_text("{nope", encoding="utf-8")
    with pytest.raises(TrackerProviderError):
        list(FileTrackerProvider(tmp_path, {"path": "broken.json"}).fetch())
    _write_snapshot(tmp_path, "wrong.json", {"tasks": []})
    with pytest.raises(TrackerProviderError):
        list(FileTrackerProvider(tmp_path, {"path": "wrong.json"}).fetch())


def test_github_provider_snapshot(tmp_path: Path) -> None:
    snapshot = _write_snapshot(
        tmp_path,
        "issues.json",
        [
            _issue(1, "Crash on save"),
            _issue(2, "Add dark mode", pull_request={"url": "x"}, review_requested=True),
            _issue(3, "   "),
        ],
    )
    provider = GitHubTrackerProvider({"owner": "acme", "repo": "app", "snapshot_path": str(snapshot)})

    items = list(provider.fetch())

    assert len(items) == 3
    issue, pull, invalid = items
    assert isinstance(issue, SyncCandidate)
    assert issue.external_ref == "github:acme/app#1"
    assert issue.type is TaskOrigin.TRACKER_ISSUE
    assert issue.labels == ("bug",)
    assert issue.url == "https://github.com/acme/app/issues/1"
    assert isinstance(pull, SyncCandidate)
    assert pull.type is TaskOrigin.TRACKER_PR
    assert pull.review_requested is True
    assert isinstance(invalid, dict)


def test_github_provider_hands_over_mistyped_issues_raw(tmp_path: Path) -> None:
    snapshot = _write_snapshot(
        tmp_path,
        "issues.json",
        [_issue(1, "Odd body", body=7), _issue(2, "Odd label", labels=[{"name": 3}]), _issue(3, "Fine")],
    )

    items = list(GitHubTrackerProvider({"owner": "acme", "repo": "app", "snapshot_path": str(snapshot)}).fetch())

    assert [type(item) for item in items] == [dict, dict, SyncCandidate]
    assert items[0]["external_ref"] == "github:acme/app#1"


def test_github_provider_can_skip_pull_requests(tmp_path: Path) -> None:
    snapshot = _write_snapshot(
        tmp_path,
        "issues.json",
        {"issues": [_issue(1, "Issue"), _issue(2, "PR", pull_request={"url": "x"})]},
    )
    provider = GitHubTrackerProvider({"snapshot_path": str(snapshot), "include_pull_requests": False})

    items = list(provider.fetch())

    assert [item.title for item in items] == ["Issue"]
    assert items[0].external_ref == "github:#1"


def test_github_provider_follows_pagination(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GH_TOKEN", "secret")
    session = DummySession(
        [
            DummyResponse(
                200,
                [_issue(1, "First")],
                headers={"Link": '<https://api.github.com/repos/acme/app/issues?page=2>; rel="next"'},
            ),
            DummyResponse(200, [_issue(2, "Second")]),
        ]
    )
    provider = GitHubTrackerProvider(
        {"owner": "acme", "repo": "app", "token_env": "GH_TOKEN", "labels": "bug, ui"},
        session=session,
    )

    items = list(provider.fetch())

    assert [item.title for item in items] == ["First", "Second"]
    first_url, first_params, first_headers = session.calls[0]
    assert first_url == "https://api.github.com/repos/acme/app/issues"
    assert first_params == {"state": "open", "per_page": 100, "labels": "bug,ui"}
    assert first_headers is not None and first_headers["Authorization"] == "Bearer secret"
    assert session.calls[1][0] == "https://api.github.com/repos/acme/app/issues?page=2"
    assert session.calls[1][1] == {}


def test_github_provider_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GH_TOKEN", raising=False)
    with pytest.raises(TrackerProviderError):
        GitHubTrackerProvider({"owner": "acme"}, session=DummySession([])).fetch()
    with pytest.raises(TrackerProviderError):
        GitHubTrackerProvider({"owner": "acme", "repo": "app", "token_env": "GH_TOKEN"}, session=DummySession([])).fetch()

    monkeypatch.setenv("GH_TOKEN", "secret")
    with pytest.raises(TrackerProviderError):
        GitHubTrackerProvider(
            {"owner": "acme", "repo": "app", "token_env": "GH_TOKEN"},
            session=DummySession([DummyResponse(401, {"message": "Bad credentials"})]),
        ).fetch()
    with pytest.raises(TrackerProviderError):
        GitHubTrackerProvider(
            {"owner": "acme", "repo": "app", "token_env": "GH_TOKEN"},
            session=FailingSession(),
        ).fetch()
    with pytest.raises(TrackerProviderError, match="invalid JSON"):
        GitHubTrackerProvider(
            {"owner": "acme", "repo": "app", "token_env": "GH_TOKEN"},
            session=DummySession([MalformedResponse()]),
        ).fetch()


def test_build_provider_from_config_resolves_paths_and_masks_secrets(tmp_path: Path) -> None:
    _write_snapshot(tmp_path, "items.json", [])

    result = build_provider_from_config(
        tmp_path,
        {"type": "File", "options": {"path": "items.json", "token": "abc", "nested": {"key": "k"}}},
    )

    assert isinstance(result.provider, FileTrackerProvider)
    assert result.report_config["type"] == "file"
    assert result.report_config["options"]["path"] == str((tmp_path / "items.json").resolve())
    assert result.report_config["options"]["token"] == "***"
    assert result.report_config["options"]["nested"] == {"key": "***"}


def test_build_provider_from_config_rejects_bad_configs(tmp_path: Path) -> None:
    with pytest.raises(TrackerProviderError):
        build_provider_from_config(tmp_path, {"options": {}})
    with pytest.raises(TrackerProviderError):
        build_provider_from_config(tmp_path, {"type": "file", "options": {}})
    with pytest.raises(TrackerProviderError):
        build_provider_from_config(tmp_path, {"type": "gitlab", "options": {}})
    with pytest.raises(TrackerProviderError):
        build_provider_from_config(tmp_path, {"type": "file", "options": []})

    github = build_provider_from_config(tmp_path, {"type": "github", "options": {"owner": "acme", "repo": "app"}})
    assert isinstance(github.provider, GitHubTrackerProvider)
