"""
Shared pytest fixtures for the docfetch test suite.

Provides small file trees, throwaway git repositories and a stub HTTP site.
"""

import shutil
import subprocess
from pathlib import Path

import httpx
import pytest


# =============================================================================
# FILE TREES
# =============================================================================


@pytest.fixture
def content_dir(tmp_path):
    """A directory with a text, a markdown and a nested json file."""
    root = tmp_path / "content"
    (root / "nested").mkdir(parents=True)
    (root / "a.txt").write_text("Hello, World!")
    (root / "a.md").write_text("# Markdown Test")
    (root / "nested" / "a.json").write_text('{"key": "value"}')
    return root


# =============================================================================
# GIT REPOSITORIES
# =============================================================================


def _git(repo: Path, *args: str) -> None:
    subprocess.run(
        [
            "git",
            "-c", "user.name=Test User",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            *args,
        ],
        cwd=repo,
        check=True,
        capture_output=True,
    )


@pytest.fixture(scope="module")
def git_repo(tmp_path_factory):
    """
    A repository with three files committed on `main` and one extra file
    committed on `feature`. `main` is left checked out.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path_factory.mktemp("git") / "repo"
    (repo / "nested").mkdir(parents=True)

    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")

    (repo / "test.txt").write_text("Hello, World!")
    (repo / "test.md").write_text("# Markdown Test")
    (repo / "nested" / "test.json").write_text('{"key": "value"}')
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "Initial commit")

    _git(repo, "checkout", "-q", "-b", "feature")
    (repo / "feature.txt").write_text("Feature branch content")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "Add feature file")
    _git(repo, "checkout", "-q", "main")

    return repo


# =============================================================================
# HTTP
# =============================================================================


def html_page(title: str = "Test Page", links: list[str] | None = None, description: str | None = None) -> str:
    meta = f'<meta name="description" content="{description}">' if description else ""
    anchors = "".join(f'<a href="{href}">link</a>' for href in links or [])
    return f"<html><head><title>{title}</title>{meta}</head><body>{anchors}</body></html>"


class StubSite:
    """
    Routes requests by URL path to canned responses and records every request.

    A route value may be a string (served as text/html), an httpx.Response
    factory, or an exception instance to raise.
    """

    def __init__(self, routes: dict[str, object] | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    @property
    def requested_paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return await route(request)
        return httpx.Response(200, text=route, headers={"content-type": "text/html"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def site():
    return StubSite()


@pytest.fixture
def make_page():
    return html_page
