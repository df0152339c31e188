"""Tests for flagged stories, cluster preview, proposal generation and scheduling."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.ai.clustering import LocalStubTopicProvider, ProviderResponseError
from app.core.exceptions import InvalidTransition, NotFoundError, PermissionDenied, ValidationError
from app.models import db
from app.models.production import Episode
from app.models.topics import FlaggedStory, TopicProposal
import app.services.topic_proposal_service as tps
import app.services.workflow_template_service as wts


class CountingProvider(LocalStubTopicProvider):
    """Local provider that counts clustering calls and can fail on a theme."""

    def __init__(self, fail_theme=None):
        self.cluster_calls = 0
        self.fail_theme = fail_theme

    def cluster_stories(self, stories, audience):
        self.cluster_calls += 1
        return super().cluster_stories(stories, audience)

    def generate_proposal(self, cluster, *args):
        if cluster["theme"] == self.fail_theme:
            raise RuntimeError("provider timeout")
        return super().generate_proposal(cluster, *args)


def _flag(project, editor, title, category="housing"):
    return tps.flag_story(project.id, {"title": title, "category": category,
                                       "summary": f"{title} summary"}, editor)


@pytest.fixture()
def stories(project, editor):
    return [
        _flag(project, editor, "Rents hit record high"),
        _flag(project, editor, "First-time buyers priced out"),
        _flag(project, editor, "Council housing waitlists grow"),
        _flag(project, editor, "Energy price cap rises", category="energy"),
        _flag(project, editor, "Heat pump grants expand", category="energy"),
    ]


class TestFlaggedStories:
    def test_flag_and_list(self, project, editor):
        story = tps.flag_story(project.id, {"title": "  Rail strike  ",
                                            "published_at": "2024-03-01T08:00:00Z"}, editor)
        assert story.title == "Rail strike"
        assert story.flagged_by == "editor-1"
        assert story.published_at.year == 2024
        assert [s.id for s in tps.list_flagged_stories(project.id)] == [story.id]

    def test_title_required(self, project, editor):
        with pytest.raises(ValidationError):
            tps.flag_story(project.id, {"title": ""}, editor)

    def test_viewer_cannot_flag(self, project, viewer):
        with pytest.raises(PermissionDenied):
            tps.flag_story(project.id, {"title": "x"}, viewer)

    def test_window_excludes_old_stories(self, project, stories):
        old = db.session.get(FlaggedStory, stories[0].id)
        old.flagged_at = datetime.now(timezone.utc) - timedelta(days=30)
        db.session.commit()
        ids = {s["id"] for s in tps.get_stories_for_clustering(project.id)}
        assert old.id not in ids
        assert len(ids) == 4

    def test_category_filter(self, project, stories):
        found = tps.get_stories_for_clustering(project.id, categories=["energy"])
        assert {s["category"] for s in found} == {"energy"}


class TestPreview:
    def test_too_few_stories(self, project, audience, editor):
        _flag(project, editor, "Lonely story")
        result = tps.preview_clusters(project.id, audience.id, provider=CountingProvider())
        assert result["clusters"] == []
        assert result["from_cache"] is False
        assert "at least 2" in result["message"]

    def test_clusters_partition_and_cache(self, project, audience, stories):
        provider = CountingProvider()
        first = tps.preview_clusters(project.id, audience.id, provider=provider)
        assert first["from_cache"] is False
        assert [c["cluster_id"] for c in first["clusters"]] == [0, 1]
        assert first["clusters"][0]["theme"] == "Housing Developments"
        assert len(first["clusters"][0]["stories"]) == 3
        all_ids = [sid for c in first["clusters"] for sid in c["story_ids"]]
        assert sorted(all_ids) == sorted(s.id for s in stories)

        second = tps.preview_clusters(project.id, audience.id, provider=provider)
        assert second["from_cache"] is True
        assert provider.cluster_calls == 1

        tps.preview_clusters(project.id, audience.id, provider=provider, force_refresh=True)
        assert provider.cluster_calls == 2

    def test_flagging_invalidates_cache(self, project, audience, editor, stories):
        provider = CountingProvider()
        tps.preview_clusters(project.id, audience.id, provider=provider)
        _flag(project, editor, "Mortgage rates fall")
        result = tps.preview_clusters(project.id, audience.id, provider=provider)
        assert result["from_cache"] is False
        assert provider.cluster_calls == 2

    def test_similar_proposals_reported(self, project, audience, stories):
        db.session.add(TopicProposal(project_id=project.id, title="Rent squeeze", status="approved",
                                     source_story_ids=[stories[0].id, stories[1].id]))
        db.session.commit()
        result = tps.preview_clusters(project.id, audience.id, provider=CountingProvider())
        housing = result["clusters"][0]
        assert housing["similar_proposals"][0]["overlap_percentage"] == 100
        assert result["clusters"][1]["similar_proposals"] == []

    def test_audience_from_other_project(self, project, other_project, audience, stories):
        with pytest.raises(NotFoundError):
            tps.preview_clusters(other_project.id, audience.id, provider=CountingProvider())


class TestGenerate:
    def _data(self, project, audience, **extra):
        return {"project_id": project.id, "audience_profile_id": audience.id, **extra}

    def test_one_draft_per_cluster(self, project, audience, editor, stories):
        created = tps.generate_proposals(self._data(project, audience, duration_type="short"),
                                         editor, provider=CountingProvider())
        assert len(created) == 2
        housing = created[0]
        assert housing.status == "draft"
        assert housing.title == "Understanding Housing Developments"
        assert sorted(housing.source_story_ids) == sorted(s.id for s in stories[:3])
        assert housing.duration_seconds == 90
        assert housing.generated_by == "manual"
        assert housing.research_citations

    def test_cluster_selection_and_cap(self, project, audience, editor, stories):
        created = tps.generate_proposals(self._data(project, audience, cluster_ids=[1]),
                                         editor, provider=CountingProvider())
        assert [p.cluster_theme for p in created] == ["Energy Developments"]

        capped = tps.generate_proposals(self._data(project, audience, max_proposals=1),
                                        editor, provider=CountingProvider())
        assert len(capped) == 1

    def test_failed_cluster_is_skipped(self, project, audience, editor, stories):
        provider = CountingProvider(fail_theme="Housing Developments")
        created = tps.generate_proposals(self._data(project, audience), editor, provider=provider)
        assert [p.cluster_theme for p in created] == ["Energy Developments"]

    def test_all_clusters_fail(self, project, audience, editor, stories):
        provider = CountingProvider(fail_theme="Energy Developments")
        with pytest.raises(ValidationError):
            tps.generate_proposals(self._data(project, audience, cluster_ids=[1]),
                                   editor, provider=provider)
        assert db.session.query(TopicProposal).count() == 0

    def test_validation(self, project, audience, editor, stories):
        with pytest.raises(ValidationError):
            tps.generate_proposals(self._data(project, audience, duration_type="epic"),
                                   editor, provider=CountingProvider())

    def test_too_few_stories(self, project, audience, editor):
        _flag(project, editor, "Only one")
        with pytest.raises(ValidationError):
            tps.generate_proposals(self._data(project, audience), editor, provider=CountingProvider())


class TestLifecycle:
    @pytest.fixture()
    def proposal(self, project, audience, editor, stories):
        return tps.generate_proposals(
            {"project_id": project.id, "audience_profile_id": audience.id, "cluster_ids": [0]},
            editor, provider=CountingProvider(),
        )[0]

    def test_review_then_approve(self, proposal, editor):
        tps.set_proposal_status(proposal.id, "reviewed", editor)
        tps.set_proposal_status(proposal.id, "approved", editor)
        assert proposal.status == "approved"
        assert proposal.reviewed_by == "editor-1"

    def test_illegal_transition(self, proposal, editor):
        tps.set_proposal_status(proposal.id, "approved", editor)
        with pytest.raises(InvalidTransition):
            tps.set_proposal_status(proposal.id, "draft", editor)
        with pytest.raises(ValidationError):
            tps.set_proposal_status(proposal.id, "published", editor)

    def test_update_fields(self, proposal, editor):
        tps.update_proposal(proposal.id, {"title": "Generation Rent", "hook": "Why now?"}, editor)
        assert proposal.title == "Generation Rent"
        with pytest.raises(ValidationError):
            tps.update_proposal(proposal.id, {"title": " "}, editor)

    def test_list_by_status(self, project, proposal, editor):
        assert [p.id for p in tps.list_proposals(project.id, "draft")] == [proposal.id]
        assert tps.list_proposals(project.id, "approved") == []

    def test_schedule_requires_approval(self, project, proposal, editor):
        wts.seed_default_templates(project.id)
        with pytest.raises(InvalidTransition):
            tps.schedule_proposal(proposal.id, {"tx_date": "2024-03-15"}, editor)

    def test_schedule_approved(self, project, proposal, editor):
        wts.seed_default_templates(project.id)
        tps.set_proposal_status(proposal.id, "approved", editor)
        episode = tps.schedule_proposal(proposal.id, {"tx_date": "2024-03-15"}, editor)

        assert episode.title == proposal.title
        assert episode.topic_proposal_id == proposal.id
        assert proposal.linked_episode_id == episode.id
        assert proposal.scheduled_tx_date == date(2024, 3, 15)
        with pytest.raises(ValidationError):
            tps.schedule_proposal(proposal.id, {"tx_date": "2024-03-22"}, editor)
        assert db.session.query(Episode).count() == 1


class TestAutoGenerate:
    def test_runs_per_project(self, project, other_project, audience, stories):
        results = tps.auto_generate_topics(provider=CountingProvider())
        assert results == {"projects": 1, "proposals": 2, "skipped": 1, "failed": 0}
        assert {p.generated_by for p in tps.list_proposals(project.id)} == {"auto"}


class RewritingProvider(LocalStubTopicProvider):
    """Returns fixed proposal text and records the stories it was given."""

    def __init__(self, error=None):
        self.error = error
        self.seen_story_ids = None

    def generate_proposal(self, cluster, stories, *args):
        if self.error:
            raise self.error
        self.seen_story_ids = [s["id"] for s in stories]
        return {
            "title": "Generation Rent, revisited",
            "hook": "Three numbers explain it.",
            "audience_care_statement": "Rent is their biggest bill.",
            "talking_points": [{"point": "Rents", "supporting_detail": "", "duration_estimate_seconds": 60}],
            "research_suggestions": [
                {"query": "rent statistics", "type": "statistic", "reason": "again"},
                {"query": "ONS rental index", "type": "statistic", "reason": "new"},
            ],
        }


class TestResynthesize:
    @pytest.fixture()
    def proposal(self, project, audience, editor, stories):
        proposal = tps.generate_proposals(
            {"project_id": project.id, "audience_profile_id": audience.id, "cluster_ids": [0]},
            editor, provider=CountingProvider(),
        )[0]
        tps.set_proposal_status(proposal.id, "reviewed", editor)
        return proposal

    def test_rewrites_content_and_keeps_links(self, proposal, editor):
        story_ids = list(proposal.source_story_ids)
        theme = proposal.cluster_theme
        proposal.research_citations = [{"query": "rent statistics", "type": "statistic"}]
        db.session.commit()

        provider = RewritingProvider()
        tps.resynthesize_proposal(proposal.id, editor, provider=provider)

        assert proposal.title == "Generation Rent, revisited"
        assert proposal.hook == "Three numbers explain it."
        assert proposal.audience_care_statement == "Rent is their biggest bill."
        assert [p["point"] for p in proposal.talking_points] == ["Rents"]
        assert proposal.status == "reviewed"
        assert proposal.source_story_ids == story_ids
        assert proposal.cluster_theme == theme
        assert sorted(provider.seen_story_ids) == sorted(story_ids)
        assert [c["query"] for c in proposal.research_citations] == ["rent statistics", "ONS rental index"]

    def test_no_source_stories_left(self, proposal, editor):
        db.session.query(FlaggedStory).delete()
        db.session.commit()
        with pytest.raises(ValidationError):
            tps.resynthesize_proposal(proposal.id, editor, provider=RewritingProvider())

    def test_unusable_reply_leaves_proposal_alone(self, proposal, editor):
        title = proposal.title
        provider = RewritingProvider(error=ProviderResponseError("no JSON object"))
        with pytest.raises(ValidationError):
            tps.resynthesize_proposal(proposal.id, editor, provider=provider)
        assert proposal.title == title

    def test_viewer_forbidden(self, proposal, viewer):
        with pytest.raises(PermissionDenied):
            tps.resynthesize_proposal(proposal.id, viewer, provider=RewritingProvider())

    def test_unknown_proposal(self, editor):
        with pytest.raises(NotFoundError):
            tps.resynthesize_proposal(999, editor, provider=RewritingProvider())
