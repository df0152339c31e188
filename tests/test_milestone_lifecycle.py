"""Tests for the milestone lifecycle and dashboard queries.

Status machine:
    pending → in_progress → completed
    pending | in_progress → skipped
    completed / skipped → (terminal)
"""

from datetime import date, timedelta

import pytest

from app.core.exceptions import InvalidTransition, PermissionDenied, ValidationError
from app.models import db
from app.models.production import MILESTONE_TRANSITIONS, ProductionMilestone
import app.services.episode_service as eps
import app.services.milestone_service as ms
import app.services.workflow_template_service as wts


@pytest.fixture()
def episode(project, editor):
    wts.seed_default_templates(project.id)
    return eps.schedule_episode(
        {"project_id": project.id, "title": "Budget day", "tx_date": date.today() + timedelta(days=2),
         "timeline_type": "breaking_news"},
        editor,
    )


def _at(episode, status="pending", days_from_today=-1):
    """A milestone forced into a state and deadline (bypasses guards)."""
    m = episode.milestones.first()
    m.status = status
    m.deadline_date = date.today() + timedelta(days=days_from_today)
    db.session.commit()
    return m


class TestTransitions:
    def test_overdue_then_complete(self, episode, editor):
        m = _at(episode, days_from_today=-1)
        assert m.is_overdue() is True
        assert m.to_dict()["urgency"] == "overdue"

        ms.complete_milestone(m.id, editor, notes="Signed off late")

        assert m.status == "completed"
        assert m.is_overdue() is False
        assert m.completed_by == "editor-1"
        assert m.completed_at is not None
        assert m.notes == "Signed off late"
        assert m.to_dict()["urgency"] is None

    def test_start_then_complete(self, episode, editor):
        m = episode.milestones.first()
        ms.start_milestone(m.id, editor)
        assert m.status == "in_progress"
        ms.complete_milestone(m.id, editor)
        assert m.status == "completed"

    @pytest.mark.parametrize("terminal", ["completed", "skipped"])
    def test_terminal_states_reject_everything(self, episode, editor, terminal):
        m = _at(episode, status=terminal)
        assert MILESTONE_TRANSITIONS[terminal] == []
        with pytest.raises(InvalidTransition):
            ms.start_milestone(m.id, editor)
        with pytest.raises(InvalidTransition):
            ms.complete_milestone(m.id, editor)
        with pytest.raises(InvalidTransition):
            ms.skip_milestone(m.id, editor)

    def test_skip_from_in_progress(self, episode, editor):
        m = _at(episode, status="in_progress", days_from_today=1)
        ms.skip_milestone(m.id, editor, notes="Client waived review")
        assert m.status == "skipped"
        assert m.notes == "Client waived review"

    def test_viewer_cannot_complete(self, episode, viewer):
        with pytest.raises(PermissionDenied):
            ms.complete_milestone(episode.milestones.first().id, viewer)


class TestUpdate:
    def test_deadline_date_not_editable(self, episode, editor):
        m = episode.milestones.first()
        with pytest.raises(ValidationError):
            ms.update_milestone(m.id, {"deadline_date": "2030-01-01"}, editor)

    def test_update_time_and_notes(self, episode, editor):
        m = episode.milestones.first()
        ms.update_milestone(m.id, {"deadline_time": "07:45", "notes": "Early call"}, editor)
        assert m.deadline_time == "07:45"
        assert m.notes == "Early call"

    def test_bad_time(self, episode, editor):
        with pytest.raises(ValidationError):
            ms.update_milestone(episode.milestones.first().id, {"deadline_time": "7:45am"}, editor)

    def test_status_goes_through_guard(self, episode, editor):
        m = _at(episode, status="skipped")
        with pytest.raises(InvalidTransition):
            ms.update_milestone(m.id, {"status": "in_progress"}, editor)

    def test_status_completed_stamps(self, episode, editor):
        m = episode.milestones.first()
        ms.update_milestone(m.id, {"status": "completed"}, editor)
        assert db.session.get(ProductionMilestone, m.id).completed_by == "editor-1"

    def test_completing_keeps_other_edits(self, episode, editor):
        m = episode.milestones.first()
        ms.update_milestone(m.id, {
            "status": "completed", "deadline_time": "16:30",
            "label": "Signed off", "notes": "Approved on call",
        }, editor)
        db.session.expire_all()
        saved = db.session.get(ProductionMilestone, m.id)
        assert saved.status == "completed"
        assert saved.completed_at is not None
        assert saved.deadline_time == "16:30"
        assert saved.label == "Signed off"
        assert saved.notes == "Approved on call"

    def test_rejected_transition_applies_nothing(self, episode, editor):
        m = _at(episode, status="skipped")
        with pytest.raises(InvalidTransition):
            ms.update_milestone(m.id, {"status": "completed", "label": "Changed"}, editor)
        db.session.rollback()
        assert db.session.get(ProductionMilestone, m.id).label != "Changed"


class TestDashboards:
    def test_overdue_and_upcoming(self, project, episode, editor):
        overdue = _at(episode, days_from_today=-3)

        overdue_ids = [m.id for m in ms.get_overdue_milestones(project.id)]
        upcoming_ids = [m.id for m in ms.get_upcoming_milestones(project.id, days=7)]

        assert overdue_ids == [overdue.id]
        assert overdue.id not in upcoming_ids
        assert len(upcoming_ids) == episode.milestones.count() - 1

        ms.complete_milestone(overdue.id, editor)
        assert ms.get_overdue_milestones(project.id) == []

    def test_list_episode_milestones_ordered_by_deadline(self, episode):
        deadlines = [m.deadline_date for m in ms.list_episode_milestones(episode.id)]
        assert deadlines == sorted(deadlines)
