"""
Mission Context

Per-mission state shared by the coordinator and the PR tools: who created
the mission, who has contributed prompts since the last commit, and the
pull request opened for the mission.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Contributor:
    id: str
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class PullRequestInfo:
    number: int
    url: str


class MissionContext:
    """
    Co-author tracking and PR bookkeeping for one mission.

    The creator is the primary commit author and is never listed as a
    co-author. Contributors accumulate until :meth:`clear_contributors`
    is called after a commit.
    """

    def __init__(self, mission_id: str, creator: Contributor):
        self.mission_id = mission_id
        self.creator = creator
        self._contributors: Dict[str, Contributor] = {}
        self.pull_request: Optional[PullRequestInfo] = None

    @property
    def contributors(self) -> List[Contributor]:
        return list(self._contributors.values())

    def add_contributor(self, contributor: Contributor) -> None:
        if contributor.id == self.creator.id:
            return
        if contributor.id not in self._contributors:
            logger.debug("Contributor added", contributor_id=contributor.id, name=contributor.name)
        self._contributors[contributor.id] = contributor

    def co_author_trailers(self) -> List[str]:
        """``Co-authored-by`` trailers for contributors with a known email."""
        return [
            f"Co-authored-by: {c.name} <{c.email}>"
            for c in self._contributors.values()
            if c.email
        ]

    def commit_message(self, title: str) -> str:
        trailers = self.co_author_trailers()
        if not trailers:
            return title
        return title + "\n\n" + "\n".join(trailers)

    def clear_contributors(self) -> None:
        self._contributors.clear()

    def record_pull_request(self, number: int, url: str) -> PullRequestInfo:
        self.pull_request = PullRequestInfo(number=number, url=url)
        return self.pull_request
