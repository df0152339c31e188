"""Tests for threaded proposal comments and their resolve / re-open cycle."""

import pytest

from app.core.authorization import AuthorizationContext
from app.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from app.models import db
from app.models.topics import ProposalComment, TopicProposal
import app.services.proposal_comment_service as pcs


@pytest.fixture()
def proposal(project):
    p = TopicProposal(project_id=project.id, title="Generation Rent", status="draft")
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture()
def owner():
    return AuthorizationContext(user_id="owner-1", role="owner")


class TestAddComment:
    def test_editor_comment_defaults_to_internal(self, proposal, editor):
        comment = pcs.add_comment(proposal.id, {"content": "  Strong angle  "}, editor)
        assert comment.content == "Strong angle"
        assert comment.comment_type == "internal"
        assert comment.author_user_id == "editor-1"
        assert comment.is_resolved is False

    def test_client_comment_defaults_to_client_feedback(self, proposal, client_user):
        comment = pcs.add_comment(proposal.id, {"content": "Can we add Germany?"}, client_user)
        assert comment.comment_type == "client_feedback"

    def test_reply_to_reply_attaches_to_root(self, proposal, editor, viewer):
        root = pcs.add_comment(proposal.id, {"content": "Hook is weak"}, editor)
        reply = pcs.add_comment(proposal.id, {"content": "Agreed", "parent_comment_id": root.id}, viewer)
        nested = pcs.add_comment(proposal.id, {"content": "Fixed", "parent_comment_id": reply.id}, editor)
        assert reply.parent_comment_id == root.id
        assert nested.parent_comment_id == root.id

    @pytest.mark.parametrize("data", [
        {"content": "   "},
        {"content": None},
        {"content": "x" * (pcs.MAX_COMMENT_LENGTH + 1)},
        {"content": "ok", "comment_type": "praise"},
    ])
    def test_invalid_payload(self, proposal, editor, data):
        with pytest.raises(ValidationError):
            pcs.add_comment(proposal.id, data, editor)

    def test_parent_on_other_proposal(self, project, proposal, editor):
        other = TopicProposal(project_id=project.id, title="Heat pumps", status="draft")
        db.session.add(other)
        db.session.commit()
        foreign = pcs.add_comment(other.id, {"content": "Elsewhere"}, editor)
        with pytest.raises(ValidationError):
            pcs.add_comment(proposal.id, {"content": "Hi", "parent_comment_id": foreign.id}, editor)

    def test_unknown_proposal(self, editor):
        with pytest.raises(NotFoundError):
            pcs.add_comment(999, {"content": "Hello"}, editor)


class TestListAndCount:
    def test_threads_and_unresolved_filter(self, proposal, editor, client_user):
        first = pcs.add_comment(proposal.id, {"content": "One"}, editor)
        pcs.add_comment(proposal.id, {"content": "Reply", "parent_comment_id": first.id}, client_user)
        second = pcs.add_comment(proposal.id, {"content": "Two", "comment_type": "revision_request"},
                                 client_user)

        threads = pcs.list_comments(proposal.id)
        assert [t["id"] for t in threads] == [first.id, second.id]
        assert [r["content"] for r in threads[0]["replies"]] == ["Reply"]

        pcs.resolve_comment(first.id, editor)
        open_threads = pcs.list_comments(proposal.id, unresolved_only=True)
        assert [t["id"] for t in open_threads] == [second.id]

    def test_counts(self, proposal, editor, client_user):
        first = pcs.add_comment(proposal.id, {"content": "One"}, editor)
        pcs.add_comment(proposal.id, {"content": "Redo", "comment_type": "revision_request"}, client_user)
        pcs.add_comment(proposal.id, {"content": "Redo too", "comment_type": "revision_request"},
                        client_user)
        pcs.resolve_comment(first.id, editor)
        assert pcs.count_comments(proposal.id) == {"total": 3, "unresolved": 2, "revision_requests": 2}


class TestEditAndDelete:
    def test_author_edits_own_comment(self, proposal, viewer):
        comment = pcs.add_comment(proposal.id, {"content": "Typo"}, viewer)
        pcs.update_comment(comment.id, {"content": "Fixed typo"}, viewer)
        assert comment.content == "Fixed typo"

    def test_editor_edits_any_comment(self, proposal, editor, client_user):
        comment = pcs.add_comment(proposal.id, {"content": "Please cut"}, client_user)
        pcs.update_comment(comment.id, {"comment_type": "revision_request"}, editor)
        assert comment.comment_type == "revision_request"

    def test_other_viewer_cannot_edit(self, proposal, viewer, client_user):
        comment = pcs.add_comment(proposal.id, {"content": "Mine"}, client_user)
        with pytest.raises(PermissionDenied):
            pcs.update_comment(comment.id, {"content": "Theirs"}, viewer)
        assert comment.content == "Mine"

    def test_delete_by_author_removes_replies(self, proposal, editor, viewer):
        root = pcs.add_comment(proposal.id, {"content": "Root"}, editor)
        pcs.add_comment(proposal.id, {"content": "Reply", "parent_comment_id": root.id}, viewer)
        pcs.delete_comment(root.id, editor)
        assert db.session.query(ProposalComment).count() == 0

    def test_delete_requires_author_or_owner(self, proposal, editor, viewer, owner):
        comment = pcs.add_comment(proposal.id, {"content": "Keep"}, viewer)
        with pytest.raises(PermissionDenied):
            pcs.delete_comment(comment.id, editor)
        pcs.delete_comment(comment.id, owner)
        with pytest.raises(NotFoundError):
            pcs.get_comment(comment.id)


class TestResolve:
    def test_resolve_and_reopen(self, proposal, editor, client_user):
        comment = pcs.add_comment(proposal.id, {"content": "Add a chart"}, client_user)
        pcs.resolve_comment(comment.id, editor)
        assert comment.is_resolved is True
        assert comment.resolved_by == "editor-1"
        assert comment.resolved_at is not None

        pcs.unresolve_comment(comment.id, editor)
        assert comment.is_resolved is False
        assert comment.resolved_by is None
        assert comment.resolved_at is None

    def test_viewer_cannot_resolve(self, proposal, editor, viewer):
        comment = pcs.add_comment(proposal.id, {"content": "Internal note"}, editor)
        with pytest.raises(PermissionDenied):
            pcs.resolve_comment(comment.id, viewer)
        assert comment.is_resolved is False
