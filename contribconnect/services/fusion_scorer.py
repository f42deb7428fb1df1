"""Cultural alignment scoring for repository candidates."""

from __future__ import annotations

from typing import Iterable, Sequence

from contribconnect.models.cultural import CulturalTag, ScoredProject
from contribconnect.models.repository import RepositoryCandidate
from contribconnect.services.culture_mapper import map_to_cultural_tags


class FusionScorer:
    """Rank candidates by how much of their tag set the requester shares.

    ``cultural_score = |matched| / max(|project_tags|, 1)`` where
    ``matched = project_tags & (requester_tags | related_tags)``.

    This is a heuristic similarity, not a statistical estimator. It does not
    normalise for tag-set size and carries no technical-fit weighting;
    technical fit is applied before scoring by filtering the search on
    language.
    """

    def project_tags(self, candidate: RepositoryCandidate) -> frozenset[CulturalTag]:
        tokens = [*candidate.topics]
        if candidate.language:
            tokens.insert(0, candidate.language)
        return map_to_cultural_tags(tokens)

    def score_one(
        self,
        candidate: RepositoryCandidate,
        reference_tags: frozenset[CulturalTag],
    ) -> ScoredProject:
        project_tags = self.project_tags(candidate)
        matched = project_tags & reference_tags
        return ScoredProject(
            candidate=candidate,
            cultural_score=len(matched) / max(len(project_tags), 1),
            project_tags=project_tags,
            matched_tags=matched,
        )

    def score(
        self,
        candidates: Sequence[RepositoryCandidate],
        requester_tags: Iterable[CulturalTag],
        related_tags: Iterable[CulturalTag] = (),
    ) -> list[ScoredProject]:
        """Score every candidate; highest score first, ties by stars descending."""

        reference = frozenset(requester_tags) | frozenset(related_tags)
        scored = [self.score_one(candidate, reference) for candidate in candidates]
        return sorted(scored, key=lambda item: (-item.cultural_score, -item.candidate.stars))
