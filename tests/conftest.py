from __future__ import annotations

import json
import re
from typing import Any, Dict, List

import httpx
import pytest

from codegate.ai_client import AIReviewEngine
from codegate.config import AIConfig, GitHubConfig
from codegate.github_client import GitHubRepositoryClient
from codegate.stores import InMemoryCommentIdStore

OWNER = "octo"
REPO = "demo"
BOT_LOGIN = "codegate-bot"

_REPO_PREFIX = f"/repos/{OWNER}/{REPO}"


def pull_detail(number: int, **overrides: Any) -> Dict[str, Any]:
    detail = {
        "number": number,
        "title": f"Add feature {number}",
        "body": "Implements DEMO-12",
        "state": "open",
        "merged_at": None,
        "user": {"login": "alice"},
        "head": {"ref": f"feature-{number}", "sha": f"sha{number}"},
        "base": {"ref": "main"},
        "additions": 120,
        "deletions": 30,
        "changed_files": 4,
        "labels": [{"name": "enhancement"}],
        "updated_at": "2026-10-01T12:00:00Z",
        "mergeable": True,
        "mergeable_state": "clean",
    }
    detail.update(overrides)
    return detail


class FakeGitHub:
    """In-memory double of the GitHub REST endpoints the client uses."""

    def __init__(self) -> None:
        self.pulls: Dict[int, Dict[str, Any]] = {7: pull_detail(7)}
        self.files: Dict[int, List[Dict[str, Any]]] = {
            7: [
                {
                    "filename": "src/Calculator.java",
                    "status": "modified",
                    "additions": 10,
                    "deletions": 2,
                    "patch": "@@ -1,3 +1,9 @@\n+public class Calculator {\n+    int add(int a, int b) { return a + b; }\n+}",
                },
                {"filename": "README.md", "status": "modified", "additions": 3, "deletions": 1, "patch": "+Usage notes"},
            ]
        }
        self.comments: List[Dict[str, Any]] = []
        self.rejected_schemes: set[str] = set()
        self.merge_response: tuple[int, Dict[str, Any]] = (
            200,
            {"sha": "mergedsha", "merged": True, "message": "Pull Request successfully merged"},
        )
        self.merge_calls: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.transport_failures: Dict[tuple[str, str], type[httpx.TransportError]] = {}
        self._next_comment_id = 1000

    def comments_with(self, marker: str) -> List[Dict[str, Any]]:
        return [comment for comment in self.comments if marker in comment["body"]]

    def add_comment(self, pr_number: int, body: str, login: str = BOT_LOGIN) -> Dict[str, Any]:
        self._next_comment_id += 1
        comment = {"id": self._next_comment_id, "pr": pr_number, "body": body, "user": {"login": login}}
        self.comments.append(comment)
        return comment

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        failure = self.transport_failures.get((request.method, request.url.path))
        if failure is not None:
            raise failure(f"{request.method} {request.url.path} failed", request=request)
        scheme = request.headers.get("Authorization", "").split(" ", 1)[0].lower()
        if scheme in self.rejected_schemes:
            return httpx.Response(403, json={"message": "Resource not accessible by personal access token"})

        path = request.url.path
        method = request.method
        body = json.loads(request.content) if request.content else None

        if method == "GET" and path == "/user":
            return httpx.Response(200, json={"login": BOT_LOGIN})
        if method == "GET" and path == _REPO_PREFIX:
            return httpx.Response(200, json={"full_name": f"{OWNER}/{REPO}"})
        if method == "GET" and path == f"{_REPO_PREFIX}/pulls":
            ordered = sorted(self.pulls.values(), key=lambda pr: pr["updated_at"], reverse=True)
            return httpx.Response(200, json=ordered)

        if match := re.fullmatch(rf"{_REPO_PREFIX}/pulls/(\d+)", path):
            pr = self.pulls.get(int(match.group(1)))
            if pr is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=pr)
        if match := re.fullmatch(rf"{_REPO_PREFIX}/pulls/(\d+)/files", path):
            page = int(request.url.params.get("page", "1"))
            files = self.files.get(int(match.group(1)), []) if page == 1 else []
            return httpx.Response(200, json=files)
        if match := re.fullmatch(rf"{_REPO_PREFIX}/pulls/(\d+)/merge", path):
            self.merge_calls.append({"pr": int(match.group(1)), **(body or {})})
            status, payload = self.merge_response
            return httpx.Response(status, json=payload)
        if path.startswith(f"{_REPO_PREFIX}/compare/"):
            return httpx.Response(200, json={"behind_by": 2, "ahead_by": 5})

        if match := re.fullmatch(rf"{_REPO_PREFIX}/issues/(\d+)/comments", path):
            pr_number = int(match.group(1))
            if method == "POST":
                return httpx.Response(201, json=self.add_comment(pr_number, body["body"]))
            return httpx.Response(200, json=[c for c in self.comments if c["pr"] == pr_number])
        if match := re.fullmatch(rf"{_REPO_PREFIX}/issues/comments/(\d+)", path):
            comment_id = int(match.group(1))
            for comment in self.comments:
                if comment["id"] == comment_id:
                    comment["body"] = body["body"]
                    return httpx.Response(200, json=comment)
            return httpx.Response(404, json={"message": "Not Found"})

        return httpx.Response(404, json={"message": f"Unhandled {method} {path}"})


def openai_envelope(text: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def ai_client_replying(text: str, calls: List[httpx.Request] | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(200, json=openai_envelope(text))

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


REVIEW_REPLY = """Here is the review:
```json
{
  "summary": "Adds a calculator.",
  "overallScore": 78,
  "categories": {"codeQuality": 80, "security": 90, "performance": 75, "maintainability": 70, "testability": 60},
  "suggestions": [{"type": "bug", "severity": "high", "file": "src/Calculator.java", "line": 2, "message": "Overflow", "suggestion": "Use Math.addExact"}],
  "recommendation": "COMMENT"
}
```"""


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def github_http(fake_github: FakeGitHub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_github.handler), base_url="https://api.github.com")


@pytest.fixture
def github_config() -> GitHubConfig:
    return GitHubConfig(token="ghp_test", owner=OWNER, repo=REPO)


@pytest.fixture
def comment_ids() -> InMemoryCommentIdStore:
    return InMemoryCommentIdStore()


@pytest.fixture
def repository(github_config, github_http, comment_ids) -> GitHubRepositoryClient:
    return GitHubRepositoryClient(github_config, comment_ids=comment_ids, client=github_http)


@pytest.fixture
def engine_factory():
    """Build AI engines that answer every prompt with ``reply``."""

    def _factory(reply: str = REVIEW_REPLY, calls: List[httpx.Request] | None = None):
        def _build(config: AIConfig) -> AIReviewEngine:
            return AIReviewEngine(config, client=ai_client_replying(reply, calls))

        return _build

    return _factory
