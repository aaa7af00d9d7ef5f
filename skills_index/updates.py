"""Remote update detection.

Installed skills record the content hash of their remote folder at install
time (``skillFolderHash`` in the global lock file). An update exists when the
repository tree now reports a different hash for that folder.
"""

import asyncio
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from .constants import DEFAULT_REMOTE_SKILLS_DIR
from .github import GitHubClient, RepoTree
from .lock_file import folder_of_skill_path
from .logging import get_logger
from .models import InstalledSkill, UpdateCandidate, UpdateCheckResponse, UpdateRecord

logger = get_logger(__name__)


class UpdateCheckError(RuntimeError):
    """Raised when a user-initiated update check cannot complete."""


def update_candidates(skills: Iterable[InstalledSkill]) -> List[UpdateCandidate]:
    """Skills that can be diffed against their remote folder.

    Requires a source and a remote folder hash. Project-local lock hashes
    (``computedHash``) are local content hashes and are not comparable.
    """
    candidates = []
    for skill in skills:
        if not skill.source or not skill.hash:
            continue
        if skill.lock_origin != "global":
            continue
        candidates.append(
            UpdateCandidate(
                name=skill.folder_name,
                source=skill.source,
                skill_folder_hash=skill.hash,
                skill_path=skill.skill_path,
            )
        )
    return candidates


def expected_folder(candidate: UpdateCandidate) -> str:
    """Repository folder a candidate was installed from."""
    if candidate.skill_path:
        return folder_of_skill_path(candidate.skill_path)
    return f"{DEFAULT_REMOTE_SKILLS_DIR}/{candidate.name}"


class UpdateState:
    """Owns the last-known update result.

    Writers replace the response object wholesale; readers holding an older
    response never see it change.
    """

    def __init__(self) -> None:
        self._result: Optional[UpdateCheckResponse] = None

    @property
    def result(self) -> Optional[UpdateCheckResponse]:
        return self._result

    def replace(self, response: UpdateCheckResponse) -> None:
        self._result = response

    def clear_skill(self, name: str) -> None:
        """Drop one skill's record, keeping the others in order."""
        if self._result is None:
            return
        self._result = UpdateCheckResponse(
            updates=tuple(u for u in self._result.updates if u.name != name),
            errors=self._result.errors,
        )

    def has_update(self, name: str) -> bool:
        if self._result is None:
            return False
        return any(u.name == name for u in self._result.updates)

    def clear(self) -> None:
        self._result = None


class UpdateDetector:
    """Batch update checks, one tree fetch per distinct source repository."""

    def __init__(self, github: GitHubClient, state: Optional[UpdateState] = None):
        self.github = github
        self.state = state or UpdateState()

    async def check(
        self, candidates: Sequence[UpdateCandidate], force_refresh: bool = False
    ) -> UpdateCheckResponse:
        eligible = [c for c in candidates if c.source and c.skill_folder_hash]
        by_source: Dict[str, List[UpdateCandidate]] = OrderedDict()
        for candidate in eligible:
            by_source.setdefault(candidate.source, []).append(candidate)

        if force_refresh:
            for source in by_source:
                self.github.tree_cache.delete(source)

        sources = list(by_source)
        trees = await asyncio.gather(
            *(self.github.fetch_tree(source) for source in sources),
            return_exceptions=True,
        )

        hashes_by_source: Dict[str, Dict[str, str]] = {}
        for source, tree in zip(sources, trees):
            if isinstance(tree, BaseException):
                logger.warning("[updates] tree fetch for %s failed: %s", source, tree)
                continue
            if tree is None:
                continue
            hashes_by_source[source] = self._folder_hashes(tree)

        updates: List[UpdateRecord] = []
        for candidate in eligible:
            hashes = hashes_by_source.get(candidate.source)
            if not hashes:
                continue
            remote_hash = hashes.get(expected_folder(candidate))
            if remote_hash is None:
                continue
            if remote_hash != candidate.skill_folder_hash:
                updates.append(
                    UpdateRecord(
                        name=candidate.name, source=candidate.source, new_hash=remote_hash
                    )
                )

        logger.info(
            "[updates] checked %d skill(s) across %d source(s): %d update(s)",
            len(candidates),
            len(sources),
            len(updates),
        )

        response = UpdateCheckResponse(updates=tuple(updates), errors=())
        self.state.replace(response)
        return response

    def _folder_hashes(self, tree: RepoTree) -> Dict[str, str]:
        return tree.folder_hashes()
