"""GitHub issues and pull requests as sync candidates."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import requests

from taskboard.adapters.tracker.utils import read_snapshot
from taskboard.domain.board import SyncCandidate, TaskOrigin, ValidationError
from taskboard.ports.tracker.provider import TrackerProvider, TrackerProviderError

API_ROOT = "https://api.github.com"


@dataclass
class GitHubAuthConfig:
    token_env: str | None

    def resolve(self) -> str:
        if not self.token_env:
            raise TrackerProviderError("github provider requires token_env for API usage")
        token = os.environ.get(self.token_env)
        if not token:
            raise TrackerProviderError(
                f"github provider token missing in environment variable '{self.token_env}'"
            )
        return token


class GitHubTrackerProvider(TrackerProvider):
    def __init__(self, options: Dict[str, Any], session: requests.Session | None = None) -> None:
        self._owner = options.get("owner")
        self._repo = options.get("repo")
        self._state = options.get("state", "open")
        self._assignee = options.get("assignee")
        labels = options.get("labels")
        if isinstance(labels, str):
            self._labels = [label.strip() for label in labels.split(",") if label.strip()]
        elif isinstance(labels, list):
            self._labels = [str(label).strip() for label in labels if str(label).strip()]
        else:
            self._labels = []
        self._include_prs = bool(options.get("include_pull_requests", True))
        snapshot = options.get("snapshot_path") or options.get("path")
        self._snapshot_path = str(snapshot) if snapshot else None
        self._auth_config = GitHubAuthConfig(token_env=options.get("token_env"))
        self._session = session or requests.Session()

    def fetch(self) -> Iterable[SyncCandidate | Dict[str, Any]]:
        if self._snapshot_path:
            payload = read_snapshot(self._snapshot_path)
            issues = payload.get("issues", payload) if isinstance(payload, dict) else payload
            if not isinstance(issues, list):
                raise TrackerProviderError("github snapshot must hold a list of issues")
            return self._normalise_issues(issues)
        if not self._owner or not self._repo:
            raise TrackerProviderError("github provider requires 'owner' and 'repo'")
        token = self._auth_config.resolve()
        return self._fetch_remote(token)

    def _fetch_remote(self, token: str) -> List[SyncCandidate | Dict[str, Any]]:
        url: str | None = f"{API_ROOT}/repos/{self._owner}/{self._repo}/issues"
        params: Dict[str, Any] = {"state": self._state, "per_page": 100}
        if self._labels:
            params["labels"] = ",".join(self._labels)
        if self._assignee:
            params["assignee"] = self._assignee
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
        }
        issues: List[dict[str, Any]] = []
        while url:
            try:
                response = self._session.get(url, params=params, headers=headers, timeout=30)
            except requests.RequestException as exc:
                raise TrackerProviderError(f"github provider request failed: {exc}") from exc
            params = {}  # subsequent pages use link headers only
            if response.status_code >= 400:
                raise TrackerProviderError(
                    f"github provider request failed: {response.status_code} {response.text}"
                )
            try:
                page_items = response.json()
            except ValueError as exc:
                raise TrackerProviderError(f"github provider returned invalid JSON: {exc}") from exc
            if isinstance(page_items, list):
                issues.extend(page_items)
            url = _next_link(response.headers.get("Link"))
        return self._normalise_issues(issues)

    def _normalise_issues(self, issues: Iterable[Any]) -> List[SyncCandidate | Dict[str, Any]]:
        candidates: List[SyncCandidate | Dict[str, Any]] = []
        for issue in issues:
            if not isinstance(issue, dict):
                continue
            is_pr = bool(issue.get("pull_request"))
            if is_pr and not self._include_prs:
                continue
            number = issue.get("number") or issue.get("id")
            if number is None:
                continue
            labels = issue.get("labels")
            label_names: List[Any] = []
            if isinstance(labels, list):
                label_names = [label.get("name") if isinstance(label, dict) else label for label in labels]
            payload = {
                "external_ref": self._ref_key(issue, number),
                "title": str(issue.get("title") or ""),
                "type": (TaskOrigin.TRACKER_PR if is_pr else TaskOrigin.TRACKER_ISSUE).value,
                "labels": label_names,
                "url": issue.get("html_url") or issue.get("url"),
                "description": issue.get("body") or None,
                "review_requested": bool(issue.get("review_requested", False)),
            }
            try:
                candidates.append(SyncCandidate.from_mapping(payload))
            except ValidationError:
                # handed over raw so the sync summary counts it as invalid
                candidates.append(payload)
        return candidates

    def _ref_key(self, issue: Dict[str, Any], number: Any) -> str:
        owner, repo = self._owner, self._repo
        repository = issue.get("repository")
        if isinstance(repository, dict) and repository.get("full_name"):
            owner, _, repo = str(repository["full_name"]).partition("/")
        if owner and repo:
            return f"github:{owner}/{repo}#{number}"
        return f"github:#{number}"


def _next_link(link_header: str | None) -> str | None:
    if not link_header:
        return None
    parts = [part.strip() for part in link_header.split(",")]
    for part in parts:
        if "rel=\"next\"" in part:
            url_part, _ = part.split(";", 1)
            return url_part.strip(" <>")
    return None
