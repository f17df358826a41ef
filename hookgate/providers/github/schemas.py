"""GitHub webhook payload schemas (minimal, unknown fields ignored).

See https://docs.github.com/en/webhooks/webhook-events-and-payloads
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class Repository(BaseModel):
    id: int
    name: str
    full_name: str  # "octocat/hello-world"
    private: bool


class User(BaseModel):
    login: str
    id: int
    type: str  # "User", "Organization", "Bot", ...


class Account(BaseModel):
    login: str
    id: int
    node_id: str | None = None
    avatar_url: str | None = None
    type: Literal["User", "Organization"]


class GitActor(BaseModel):
    name: str
    email: str
    username: str | None = None


class Commit(BaseModel):
    id: str  # 40 character SHA
    message: str
    timestamp: str
    url: str
    author: GitActor
    committer: GitActor
    added: list[str] | None = None
    removed: list[str] | None = None
    modified: list[str] | None = None


class Pusher(BaseModel):
    name: str
    email: str | None = None


# ---------------------------------------------------------------------------
# push
# ---------------------------------------------------------------------------


class PushEvent(BaseModel):
    """Commits pushed to a branch or tag."""

    ref: str  # "refs/heads/main", "refs/tags/v1.0.0"
    before: str
    after: str
    created: bool
    deleted: bool
    forced: bool
    base_ref: str | None
    compare: str
    commits: list[Commit]  # at most 20
    head_commit: Commit | None
    repository: Repository
    pusher: Pusher
    sender: User


# ---------------------------------------------------------------------------
# pull_request
# ---------------------------------------------------------------------------


class BranchRef(BaseModel):
    label: str  # "owner:branch"
    ref: str
    sha: str


class PullRequest(BaseModel):
    id: int
    number: int
    state: Literal["open", "closed"]
    locked: bool
    title: str
    body: str | None
    created_at: str
    updated_at: str
    closed_at: str | None
    merged_at: str | None
    merge_commit_sha: str | None
    draft: bool
    head: BranchRef
    base: BranchRef
    user: User


class PullRequestEvent(BaseModel):
    action: str
    number: int
    pull_request: PullRequest
    repository: Repository
    sender: User


# ---------------------------------------------------------------------------
# issues
# ---------------------------------------------------------------------------


class Label(BaseModel):
    id: int
    name: str
    color: str


class Issue(BaseModel):
    id: int
    number: int
    title: str
    body: str | None
    state: Literal["open", "closed"]
    locked: bool
    created_at: str
    updated_at: str
    closed_at: str | None
    user: User
    labels: list[Label]


class IssuesEvent(BaseModel):
    action: str
    issue: Issue
    repository: Repository
    sender: User


# ---------------------------------------------------------------------------
# installation / installation_repositories
# ---------------------------------------------------------------------------


class Installation(BaseModel):
    id: int
    account: Account
    repository_selection: Literal["all", "selected"]
    access_tokens_url: str
    repositories_url: str
    html_url: str
    app_id: int
    app_slug: str | None = None
    target_id: int
    target_type: Literal["User", "Organization"]
    permissions: dict[str, str] | None = None
    events: list[str]
    created_at: str | int
    updated_at: str | int
    single_file_name: str | None = None
    has_multiple_single_files: bool | None = None
    single_file_paths: list[str] | None = None
    suspended_by: User | None = None
    suspended_at: str | None = None


class InstallationRepository(BaseModel):
    id: int
    node_id: str
    name: str
    full_name: str
    private: bool


class InstallationEvent(BaseModel):
    action: Literal["created", "deleted", "suspend", "unsuspend", "new_permissions_accepted"]
    installation: Installation
    repositories: list[InstallationRepository] | None = None
    sender: User


class InstallationRepositoriesEvent(BaseModel):
    action: Literal["added", "removed"]
    installation: Installation
    repository_selection: Literal["all", "selected"]
    repositories_added: list[InstallationRepository]
    repositories_removed: list[InstallationRepository]
    sender: User
    requester: User | None = None


GITHUB_SCHEMAS = {
    "push": PushEvent,
    "pull_request": PullRequestEvent,
    "issues": IssuesEvent,
    "installation": InstallationEvent,
    "installation_repositories": InstallationRepositoriesEvent,
}
