"""GitHub client - repository trees and raw `SKILL.md` content.

Every lookup tries the conventional branches in order (``main`` then
``master``). A branch that fails with a transport error or a non-2xx status is
skipped; when every branch fails the lookup returns None. Successful results
are cached with a TTL read from settings on every lookup.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .cache import TTLCache
from .config import Settings
from .constants import (
    BRANCH_FALLBACKS,
    DEFAULT_REMOTE_SKILLS_DIR,
    GITHUB_API_BASE,
    GITHUB_RAW_BASE,
    SKILL_MANIFEST_FILENAME,
)
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TreeItem:
    path: str
    type: str  # "blob" | "tree"
    sha: str


@dataclass
class RepoTree:
    """Recursive file tree of one repository branch."""

    source: str
    branch: str
    sha: str = ""
    items: List[TreeItem] = field(default_factory=list)

    @classmethod
    def from_payload(cls, source: str, branch: str, payload: Dict[str, Any]) -> "RepoTree":
        items = []
        for raw in payload.get("tree") or []:
            if not isinstance(raw, dict):
                continue
            path = raw.get("path")
            if not isinstance(path, str):
                continue
            items.append(
                TreeItem(path=path, type=str(raw.get("type", "")), sha=str(raw.get("sha", "")))
            )
        return cls(source=source, branch=branch, sha=str(payload.get("sha") or ""), items=items)

    def skill_folders(self) -> List[str]:
        """Folders that directly contain a `SKILL.md` blob ("" is the repo root)."""
        folders = []
        suffix = "/" + SKILL_MANIFEST_FILENAME
        for item in self.items:
            if item.type != "blob":
                continue
            if item.path == SKILL_MANIFEST_FILENAME:
                folders.append("")
            elif item.path.endswith(suffix):
                folders.append(item.path[: -len(suffix)])
        return folders

    def folder_hashes(self) -> Dict[str, str]:
        """Map each skill folder to the content hash of its tree entry."""
        trees = {item.path: item.sha for item in self.items if item.type == "tree"}
        hashes: Dict[str, str] = {}
        for folder in self.skill_folders():
            if folder == "":
                if self.sha:
                    hashes[folder] = self.sha
            elif folder in trees:
                hashes[folder] = trees[folder]
        return hashes


class GitHubClient:
    """Async access to the GitHub trees API and raw content host."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock=None,
    ):
        self.settings = settings
        self._transport = transport
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self.tree_cache: TTLCache[RepoTree] = TTLCache(self._cache_ttl, **cache_kwargs)
        self.content_cache: TTLCache[str] = TTLCache(self._cache_ttl, **cache_kwargs)

    def _cache_ttl(self) -> float:
        return self.settings.cache_ttl_seconds

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return httpx.AsyncClient(
            timeout=self.settings.http_timeout_seconds,
            headers=headers,
            transport=self._transport,
        )

    async def fetch_tree(self, source: str) -> Optional[RepoTree]:
        """Fetch the recursive tree for ``owner/repo``, with branch fallback."""
        cached = self.tree_cache.get(source)
        if cached is not None:
            return cached

        async with self._client() as client:
            for branch in BRANCH_FALLBACKS:
                url = f"{GITHUB_API_BASE}/repos/{source}/git/trees/{branch}?recursive=1"
                try:
                    response = await client.get(url)
                except httpx.HTTPError as e:
                    logger.debug("[github] tree %s@%s failed: %s", source, branch, e)
                    continue
                if not response.is_success:
                    logger.debug(
                        "[github] tree %s@%s returned %s", source, branch, response.status_code
                    )
                    continue
                try:
                    payload = response.json()
                except ValueError:
                    continue
                if not isinstance(payload, dict):
                    continue

                tree = RepoTree.from_payload(source, branch, payload)
                self.tree_cache.set(source, tree)
                return tree

        logger.warning("[github] could not fetch tree for %s on any branch", source)
        return None

    async def fetch_skill_md(self, source: str, skill_name: str) -> Optional[str]:
        """Fetch ``skills/<skill_name>/SKILL.md`` from ``source``."""
        path = f"{DEFAULT_REMOTE_SKILLS_DIR}/{skill_name}/{SKILL_MANIFEST_FILENAME}"
        return await self.fetch_file(source, path, cache_key=f"{source}/{skill_name}")

    async def fetch_file(
        self, source: str, path: str, cache_key: Optional[str] = None
    ) -> Optional[str]:
        """Fetch a raw file by repository path, with branch fallback."""
        key = cache_key or f"{source}:{path}"
        cached = self.content_cache.get(key)
        if cached is not None:
            return cached

        async with self._client() as client:
            for branch in BRANCH_FALLBACKS:
                url = f"{GITHUB_RAW_BASE}/{source}/{branch}/{path}"
                try:
                    response = await client.get(url)
                except httpx.HTTPError:
                    continue
                if response.is_success:
                    self.content_cache.set(key, response.text)
                    return response.text

        return None

    async def fetch_repo_skill_list(self, source: str) -> List[str]:
        """Folder names of every skill in the repository."""
        tree = await self.fetch_tree(source)
        if tree is None:
            return []
        return [folder.split("/")[-1] for folder in tree.skill_folders() if folder]
