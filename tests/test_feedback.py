"""Tests for version-anchored, threaded feedback."""

from datetime import date

import pytest

from app.core.exceptions import NotFoundError, PermissionDenied, ResolveNotApplicable, ValidationError
import app.services.content_service as cs
import app.services.episode_service as eps
import app.services.feedback_service as fs
import app.services.workflow_template_service as wts

BODY = "The rent crisis is spreading beyond the capital."


@pytest.fixture()
def content(project, editor):
    wts.seed_default_templates(project.id)
    episode = eps.schedule_episode(
        {"project_id": project.id, "title": "Rents", "tx_date": date(2024, 3, 15)}, editor,
    )
    content, version = cs.save_content_version(episode.id, "article", {"body": BODY}, editor)
    return content, version


def _add(content, version, auth, **data):
    data.setdefault("comment", "Needs a source")
    return fs.add_feedback(content.id, {"version_id": version.id, **data}, auth)


class TestAddFeedback:
    def test_highlight_captures_text(self, content, editor):
        c, v = content
        fb = _add(c, v, editor, highlight_start=4, highlight_end=15)
        assert fb.highlighted_text == "rent crisis"
        assert fb.feedback_type == "comment"
        assert fb.author_user_id == "editor-1"

    @pytest.mark.parametrize("start,end", [(5, 2), (-1, 3), (0, len(BODY) + 1), (3, None)])
    def test_bad_highlight_rejected(self, content, editor, start, end):
        c, v = content
        with pytest.raises(ValidationError):
            _add(c, v, editor, highlight_start=start, highlight_end=end)

    def test_full_body_highlight_allowed(self, content, editor):
        c, v = content
        fb = _add(c, v, editor, highlight_start=0, highlight_end=len(BODY))
        assert fb.highlighted_text == BODY

    def test_highlight_stays_on_its_version(self, content, editor):
        c, v1 = content
        fb = _add(c, v1, editor, highlight_start=4, highlight_end=15)
        cs.save_content_version(c.episode_id, "article", {"body": "Short."}, editor)
        assert fb.version_id == v1.id
        assert fb.highlighted_text == "rent crisis"

    def test_requires_comment_and_known_type(self, content, editor):
        c, v = content
        with pytest.raises(ValidationError):
            _add(c, v, editor, comment="   ")
        with pytest.raises(ValidationError):
            _add(c, v, editor, feedback_type="praise")

    def test_requires_version_of_same_content(self, content, editor):
        c, _ = content
        with pytest.raises(ValidationError):
            fs.add_feedback(c.id, {"comment": "x"}, editor)
        with pytest.raises(NotFoundError):
            fs.add_feedback(9999, {"comment": "x", "version_id": 1}, editor)

    def test_client_feedback_flag(self, content, client_user):
        c, v = content
        fb = _add(c, v, client_user, comment="Can we soften the headline?")
        assert fb.is_client_feedback is True

    def test_reply_to_reply_is_reparented(self, content, editor, viewer):
        c, v = content
        root = _add(c, v, editor)
        reply = _add(c, v, viewer, comment="Added one", parent_feedback_id=root.id)
        nested = _add(c, v, editor, comment="Thanks", parent_feedback_id=reply.id)
        assert reply.parent_feedback_id == root.id
        assert nested.parent_feedback_id == root.id

        threads = fs.list_feedback(c.id)
        assert len(threads) == 1
        assert [r["comment"] for r in threads[0]["replies"]] == ["Added one", "Thanks"]


class TestResolve:
    def test_resolve_and_unresolve(self, content, editor):
        c, v = content
        fb = _add(c, v, editor, feedback_type="revision_request")
        assert cs.count_unresolved_feedback(c.id) == 1

        fs.resolve_feedback(fb.id, editor)
        assert fb.is_resolved is True
        assert fb.resolved_by == "editor-1"
        assert cs.count_unresolved_feedback(c.id) == 0

        fs.unresolve_feedback(fb.id, editor)
        assert fb.is_resolved is False
        assert fb.resolved_at is None
        assert cs.count_unresolved_feedback(c.id) == 1

    @pytest.mark.parametrize("feedback_type", ["comment", "approval"])
    def test_only_revision_requests_resolve(self, content, editor, feedback_type):
        c, v = content
        fb = _add(c, v, editor, feedback_type=feedback_type)
        with pytest.raises(ResolveNotApplicable):
            fs.resolve_feedback(fb.id, editor)

    def test_viewer_cannot_resolve(self, content, editor, viewer):
        c, v = content
        fb = _add(c, v, editor, feedback_type="revision_request")
        with pytest.raises(PermissionDenied):
            fs.resolve_feedback(fb.id, viewer)

    def test_unresolved_count_ignores_replies(self, content, editor):
        c, v = content
        root = _add(c, v, editor, feedback_type="revision_request")
        _add(c, v, editor, feedback_type="revision_request", parent_feedback_id=root.id)
        _add(c, v, editor, feedback_type="comment")
        assert cs.count_unresolved_feedback(c.id) == 1
        assert cs.get_episode_content(c.episode_id, "article")["unresolved_feedback_count"] == 1
        assert len(fs.list_feedback(c.id, unresolved_only=True)) == 1

    def test_revision_request_does_not_move_status(self, content, editor):
        c, v = content
        cs.submit_for_review(c.episode_id, "article", editor)
        _add(c, v, editor, feedback_type="revision_request")
        assert cs.find_content(c.episode_id, "article").status == "in_review"
