"""Cluster normalisation and duplicate detection against existing proposals.

overlap_percentage(cluster, proposal) answers "how much of this existing
proposal is already covered by the new cluster":

    |cluster ∩ proposal| × 100 / |proposal|, rounded half up

Only proposals outside archived/rejected are compared, only overlaps above
zero are reported, and results are sorted by overlap descending.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.models import db
from app.models.topics import INACTIVE_PROPOSAL_STATUSES, TopicProposal

logger = logging.getLogger(__name__)


def _as_int_set(ids) -> set[int]:
    out = set()
    for raw in ids or []:
        try:
            out.add(int(raw))
        except (TypeError, ValueError):
            continue
    return out


def overlap_percentage(cluster_story_ids, proposal_story_ids) -> int:
    """Share of the proposal's stories that the cluster contains, 0-100."""
    proposal_set = _as_int_set(proposal_story_ids)
    if not proposal_set:
        return 0
    shared = _as_int_set(cluster_story_ids) & proposal_set
    # half up: 1/8 -> 13, not 12
    return (200 * len(shared) + len(proposal_set)) // (2 * len(proposal_set))


def compare_with_proposals(cluster_story_ids, proposals) -> list[dict]:
    """Pure comparison against in-memory proposals (objects or dicts)."""
    cluster_set = _as_int_set(cluster_story_ids)
    similar = []
    for proposal in proposals:
        get = proposal.get if isinstance(proposal, dict) else lambda k, p=proposal: getattr(p, k)
        if get("status") in INACTIVE_PROPOSAL_STATUSES:
            continue
        proposal_ids = _as_int_set(get("source_story_ids"))
        pct = overlap_percentage(cluster_set, proposal_ids)
        if pct <= 0:
            continue
        similar.append({
            "proposal_id": get("id"),
            "title": get("title"),
            "status": get("status"),
            "overlap_count": len(cluster_set & proposal_ids),
            "overlap_percentage": pct,
        })
    similar.sort(key=lambda s: (-s["overlap_percentage"], s["proposal_id"] or 0))
    return similar


def find_similar_proposals(project_id: int, cluster_story_ids) -> list[dict]:
    """Compare a cluster against every active proposal in the project."""
    if not cluster_story_ids:
        return []
    proposals = db.session.execute(
        select(TopicProposal).where(
            TopicProposal.project_id == project_id,
            TopicProposal.status.notin_(INACTIVE_PROPOSAL_STATUSES),
        )
    ).scalars().all()
    return compare_with_proposals(cluster_story_ids, proposals)


def normalize_clusters(raw_clusters, known_story_ids) -> list[dict]:
    """
    Coerce provider output into well-formed clusters.

    - relevance_score clamped into [0, 100]
    - unknown story ids dropped
    - a story already claimed by an earlier cluster is dropped from later
      ones, so clusters partition the input
    - clusters left with no stories are discarded

    Provider order is preserved.
    """
    known = _as_int_set(known_story_ids)
    claimed: set[int] = set()
    clusters = []
    for raw in raw_clusters or []:
        if not isinstance(raw, dict):
            continue
        story_ids = []
        for sid in raw.get("story_ids") or []:
            try:
                sid = int(sid)
            except (TypeError, ValueError):
                continue
            if sid in known and sid not in claimed:
                story_ids.append(sid)
                claimed.add(sid)
        if not story_ids:
            continue
        try:
            score = float(raw.get("relevance_score") or 0)
        except (TypeError, ValueError):
            score = 0.0
        clusters.append({
            "theme": str(raw.get("theme") or "Untitled theme"),
            "keywords": [str(k) for k in (raw.get("keywords") or [])],
            "relevance_score": int(round(max(0.0, min(100.0, score)))),
            "story_ids": story_ids,
            "audience_relevance": raw.get("audience_relevance") or "",
        })
    dropped = len(raw_clusters or []) - len(clusters)
    if dropped:
        logger.debug("normalize_clusters dropped %d empty/invalid clusters", dropped)
    return clusters


def select_clusters(clusters: list[dict], cluster_ids=None, max_proposals: int = 5) -> list[dict]:
    """
    Pick clusters by index, keep provider order, then cap at ``max_proposals``.

    Out-of-range and repeated indices are ignored; clusters past the cap
    are silently not processed.
    """
    if cluster_ids is None:
        chosen = list(clusters)
    else:
        picked = set()
        for idx in cluster_ids:
            try:
                idx = int(idx)
            except (TypeError, ValueError):
                continue
            if 0 <= idx < len(clusters):
                picked.add(idx)
        chosen = [clusters[idx] for idx in sorted(picked)]
    return chosen[:max(0, int(max_proposals))]
