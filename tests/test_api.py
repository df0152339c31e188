"""
HTTP-level tests: routing, auth headers and error-code mapping.

Service rules are covered in the service test modules; these tests check
that each blueprint wires them to the right status codes and payloads.
"""

from datetime import date, timedelta

import pytest

import app.services.workflow_template_service as wts

API = "/api/v1"


@pytest.fixture()
def seeded(project):
    wts.seed_default_templates(project.id)
    return project


def _schedule(client, project, headers, **extra):
    body = {"title": "Rents", "tx_date": "2024-03-15", **extra}
    return client.post(f"{API}/projects/{project.id}/episodes", json=body, headers=headers)


def _content_url(episode_id, suffix=""):
    return f"{API}/episodes/{episode_id}/content/video_script{suffix}"


class TestHealth:
    def test_ready(self, client):
        res = client.get(f"{API}/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get(f"{API}/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["cache"]["backend"] == "memory"

    def test_unknown_route(self, client):
        res = client.get(f"{API}/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestTemplatesApi:
    def test_create_and_list(self, client, project, editor_headers):
        res = client.post(
            f"{API}/projects/{project.id}/workflow-templates",
            json={
                "name": "Two-step",
                "timeline_type": "normal",
                "milestone_offsets": [
                    {"milestone_type": "script_approval", "day_offset": -2},
                    {"milestone_type": "final_delivery", "day_offset": 0},
                ],
            },
            headers=editor_headers,
        )
        assert res.status_code == 201
        assert res.get_json()["name"] == "Two-step"

        listed = client.get(f"{API}/projects/{project.id}/workflow-templates").get_json()
        assert [t["name"] for t in listed] == ["Two-step"]

    def test_missing_offsets_is_400(self, client, project, editor_headers):
        res = client.post(f"{API}/projects/{project.id}/workflow-templates",
                          json={"name": "x", "timeline_type": "normal"}, headers=editor_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_viewer_forbidden(self, client, project, viewer_headers):
        res = client.post(
            f"{API}/projects/{project.id}/workflow-templates",
            json={"name": "x", "timeline_type": "normal",
                  "milestone_offsets": [{"milestone_type": "final_delivery", "day_offset": 0}]},
            headers=viewer_headers,
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_missing_template(self, client):
        res = client.get(f"{API}/workflow-templates/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestEpisodesApi:
    def test_schedule(self, client, seeded, editor_headers):
        res = _schedule(client, seeded, editor_headers)
        assert res.status_code == 201
        body = res.get_json()
        assert body["tx_date"] == "2024-03-15"
        assert len(body["milestones"]) >= 1
        assert {"is_overdue", "urgency"} <= set(body["milestones"][0])

    def test_no_template_is_422(self, client, project, editor_headers):
        res = _schedule(client, project, editor_headers)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_NO_TEMPLATE"

    def test_bad_date_is_422(self, client, seeded, editor_headers):
        res = _schedule(client, seeded, editor_headers, tx_date="15/03/2024")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_BUSINESS_RULE"

    def test_missing_title_is_400(self, client, seeded, editor_headers):
        res = _schedule(client, seeded, editor_headers, title="")
        assert res.status_code == 400

    @pytest.mark.parametrize("field", ["template_id", "topic_proposal_id", "episode_number"])
    def test_non_integer_id_is_400(self, client, seeded, editor_headers, field):
        res = _schedule(client, seeded, editor_headers, **{field: "abc"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert field in res.get_json()["error"]

    def test_regenerate_with_string_template_is_400(self, client, seeded, editor_headers):
        episode = _schedule(client, seeded, editor_headers).get_json()
        res = client.post(f"{API}/episodes/{episode['id']}/regenerate-milestones",
                          json={"template_id": "1"}, headers=editor_headers)
        assert res.status_code == 400

    def test_anonymous_is_viewer(self, client, seeded):
        assert _schedule(client, seeded, {}).status_code == 403

    def test_wrong_content_type_header(self, client, seeded, editor_headers):
        res = client.post(f"{API}/projects/{seeded.id}/episodes", data="title=x",
                          content_type="application/x-www-form-urlencoded", headers=editor_headers)
        assert res.status_code == 415

    def test_milestone_flow(self, client, seeded, editor_headers):
        tx = (date.today() + timedelta(days=30)).isoformat()
        episode = _schedule(client, seeded, editor_headers, tx_date=tx).get_json()
        milestone_id = episode["milestones"][0]["id"]

        res = client.post(f"{API}/milestones/{milestone_id}/complete",
                          json={"notes": "done"}, headers=editor_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "completed"

        res = client.post(f"{API}/milestones/{milestone_id}/start", headers=editor_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

        listed = client.get(f"{API}/episodes/{episode['id']}/milestones").get_json()
        assert {m["id"]: m["status"] for m in listed}[milestone_id] == "completed"

    def test_reschedule_and_cancel(self, client, seeded, editor_headers):
        episode = _schedule(client, seeded, editor_headers).get_json()
        res = client.post(f"{API}/episodes/{episode['id']}/reschedule",
                          json={"new_tx_date": "2024-03-22"}, headers=editor_headers)
        assert res.status_code == 200
        assert res.get_json()["tx_date"] == "2024-03-22"

        res = client.post(f"{API}/episodes/{episode['id']}/cancel", headers=editor_headers)
        assert res.status_code == 200
        assert res.get_json()["production_status"] == "cancelled"

    def test_summary_and_dashboards(self, client, seeded, editor_headers):
        _schedule(client, seeded, editor_headers)
        assert client.get(f"{API}/projects/{seeded.id}/episodes/summary").status_code == 200
        assert client.get(f"{API}/projects/{seeded.id}/milestones/upcoming?days=7").status_code == 200
        overdue = client.get(f"{API}/projects/{seeded.id}/milestones/overdue")
        assert overdue.status_code == 200
        assert all(m["is_overdue"] for m in overdue.get_json())

    def test_negative_days(self, client, seeded):
        res = client.get(f"{API}/projects/{seeded.id}/milestones/upcoming?days=-1")
        assert res.status_code == 400


class TestContentApi:
    @pytest.fixture()
    def episode_id(self, client, seeded, editor_headers):
        return _schedule(client, seeded, editor_headers).get_json()["id"]

    def _save(self, client, episode_id, headers, body="Draft", **extra):
        return client.post(_content_url(episode_id, "/save"), json={"body": body, **extra},
                           headers=headers)

    def test_get_before_any_save(self, client, episode_id):
        res = client.get(_content_url(episode_id))
        assert res.status_code == 200
        assert res.get_json()["content"] is None

    def test_save_and_versions(self, client, episode_id, editor_headers):
        res = self._save(client, episode_id, editor_headers, body="one two three")
        assert res.status_code == 201
        assert res.get_json()["version"]["word_count"] == 3
        self._save(client, episode_id, editor_headers, body="four")

        versions = client.get(_content_url(episode_id, "/versions")).get_json()
        assert [v["version_number"] for v in versions] == [2, 1]
        assert "body" not in versions[0]
        v1 = client.get(_content_url(episode_id, "/versions/1")).get_json()
        assert v1["body"] == "one two three"

    def test_stale_expected_version(self, client, episode_id, editor_headers):
        self._save(client, episode_id, editor_headers)
        res = self._save(client, episode_id, editor_headers, expected_version=0)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_string_expected_version_is_400(self, client, episode_id, editor_headers):
        self._save(client, episode_id, editor_headers)
        res = self._save(client, episode_id, editor_headers, expected_version="abc")
        assert res.status_code == 400
        res = client.post(_content_url(episode_id, "/submit"),
                          json={"body": "v2", "expected_version": "1"}, headers=editor_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        content = client.get(_content_url(episode_id)).get_json()["content"]
        assert content["current_version"] == 1
        assert content["status"] == "draft"

    def test_unknown_content_type(self, client, episode_id, editor_headers):
        res = client.post(f"{API}/episodes/{episode_id}/content/podcast/save",
                          json={"body": "x"}, headers=editor_headers)
        assert res.status_code == 422

    def test_lock_flow(self, client, episode_id, editor_headers):
        for body in ("v1", "v2"):
            self._save(client, episode_id, editor_headers, body=body)
        res = client.post(_content_url(episode_id, "/submit"), json={"body": "v3"},
                          headers=editor_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "in_review"
        assert client.post(_content_url(episode_id, "/approve"), headers=editor_headers).status_code == 200
        res = client.post(_content_url(episode_id, "/lock"), headers=editor_headers)
        assert res.get_json()["status"] == "locked"

        res = self._save(client, episode_id, editor_headers, body="v4")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONTENT_LOCKED"
        assert client.get(_content_url(episode_id)).get_json()["content"]["current_version"] == 3

    def test_viewer_cannot_approve(self, client, episode_id, editor_headers, viewer_headers):
        self._save(client, episode_id, editor_headers)
        client.post(_content_url(episode_id, "/submit"), headers=editor_headers)
        res = client.post(_content_url(episode_id, "/approve"), headers=viewer_headers)
        assert res.status_code == 403

    def test_feedback_round_trip(self, client, episode_id, editor_headers, viewer_headers):
        version = self._save(client, episode_id, editor_headers, body="Open on rents").get_json()["version"]
        res = client.post(
            _content_url(episode_id, "/feedback"),
            json={"version_id": version["id"], "comment": "Cite ONS",
                  "feedback_type": "revision_request", "highlight_start": 8, "highlight_end": 13},
            headers={**viewer_headers, "X-Client-User": "true"},
        )
        assert res.status_code == 201
        fb = res.get_json()
        assert fb["highlighted_text"] == "rents"
        assert fb["is_client_feedback"] is True

        assert client.get(_content_url(episode_id)).get_json()["unresolved_feedback_count"] == 1
        assert client.post(f"{API}/feedback/{fb['id']}/resolve", headers=viewer_headers).status_code == 403
        res = client.post(f"{API}/feedback/{fb['id']}/resolve", headers=editor_headers)
        assert res.get_json()["is_resolved"] is True
        unresolved = client.get(_content_url(episode_id, "/feedback?unresolved=true")).get_json()
        assert unresolved == []

    def test_resolve_comment_is_422(self, client, episode_id, editor_headers):
        version = self._save(client, episode_id, editor_headers).get_json()["version"]
        fb = client.post(_content_url(episode_id, "/feedback"),
                         json={"version_id": version["id"], "comment": "Nice"},
                         headers=editor_headers).get_json()
        res = client.post(f"{API}/feedback/{fb['id']}/resolve", headers=editor_headers)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_RESOLVE_NOT_APPLICABLE"


class TestTopicsApi:
    @pytest.fixture()
    def stories(self, client, project, editor_headers):
        for title, category in [("Rents rise", "housing"), ("Buyers priced out", "housing"),
                                ("Price cap up", "energy")]:
            res = client.post(f"{API}/projects/{project.id}/flagged-stories",
                              json={"title": title, "category": category}, headers=editor_headers)
            assert res.status_code == 201

    def test_preview_and_generate(self, client, project, audience, stories, editor_headers):
        res = client.post(f"{API}/projects/{project.id}/topics/preview-clusters",
                          json={"audience_profile_id": audience.id}, headers=editor_headers)
        assert res.status_code == 200
        preview = res.get_json()
        assert preview["from_cache"] is False
        assert preview["clusters"][0]["theme"] == "Housing Developments"

        res = client.post(f"{API}/projects/{project.id}/topics/generate",
                          json={"audience_profile_id": audience.id, "cluster_ids": [0],
                                "generated_by": "auto"},
                          headers=editor_headers)
        assert res.status_code == 201
        body = res.get_json()
        assert body["count"] == 1
        assert body["proposals"][0]["generated_by"] == "manual"

    def test_generate_rejects_bad_cluster_ids(self, client, project, audience, stories, editor_headers):
        res = client.post(f"{API}/projects/{project.id}/topics/generate",
                          json={"audience_profile_id": audience.id, "cluster_ids": "0"},
                          headers=editor_headers)
        assert res.status_code == 400

    @pytest.mark.parametrize("extra", [
        {"max_proposals": "abc"},
        {"duration_seconds": "90"},
        {"audience_profile_id": "1"},
    ])
    def test_generate_rejects_non_integer_fields(self, client, project, audience, stories,
                                                 editor_headers, extra):
        body = {"audience_profile_id": audience.id, **extra}
        res = client.post(f"{API}/projects/{project.id}/topics/generate", json=body,
                          headers=editor_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_preview_rejects_string_audience(self, client, project, stories, editor_headers):
        res = client.post(f"{API}/projects/{project.id}/topics/preview-clusters",
                          json={"audience_profile_id": "abc"}, headers=editor_headers)
        assert res.status_code == 400

    def test_approve_and_schedule(self, client, project, audience, stories, editor_headers):
        wts.seed_default_templates(project.id)
        proposal = client.post(f"{API}/projects/{project.id}/topics/generate",
                               json={"audience_profile_id": audience.id},
                               headers=editor_headers).get_json()["proposals"][0]
        url = f"{API}/topics/proposals/{proposal['id']}"

        res = client.post(f"{url}/schedule", json={"tx_date": "2024-03-15"}, headers=editor_headers)
        assert res.status_code == 409

        res = client.post(f"{url}/status", json={"status": "approved"}, headers=editor_headers)
        assert res.get_json()["status"] == "approved"
        res = client.post(f"{url}/schedule", json={"tx_date": "2024-03-15", "template_id": "abc"},
                          headers=editor_headers)
        assert res.status_code == 400
        res = client.post(f"{url}/schedule", json={"tx_date": "2024-03-15"}, headers=editor_headers)
        assert res.status_code == 201
        episode = res.get_json()
        assert episode["topic_proposal_id"] == proposal["id"]
        assert client.get(url).get_json()["linked_episode_id"] == episode["id"]

        listed = client.get(f"{API}/projects/{project.id}/topics/proposals?status=approved").get_json()
        assert [p["id"] for p in listed] == [proposal["id"]]

    def test_resynthesize(self, client, project, audience, stories, editor_headers, viewer_headers):
        proposal = client.post(f"{API}/projects/{project.id}/topics/generate",
                               json={"audience_profile_id": audience.id, "cluster_ids": [0]},
                               headers=editor_headers).get_json()["proposals"][0]
        url = f"{API}/topics/proposals/{proposal['id']}/resynthesize"

        assert client.post(url, headers=viewer_headers).status_code == 403
        res = client.post(url, headers=editor_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["title"] == "Understanding Housing Developments"
        assert body["status"] == "draft"
        assert sorted(body["source_story_ids"]) == sorted(proposal["source_story_ids"])
        assert client.post(f"{API}/topics/proposals/999/resynthesize",
                           headers=editor_headers).status_code == 404

    def test_proposal_comments(self, client, project, audience, stories, editor_headers, viewer_headers):
        proposal = client.post(f"{API}/projects/{project.id}/topics/generate",
                               json={"audience_profile_id": audience.id, "cluster_ids": [0]},
                               headers=editor_headers).get_json()["proposals"][0]
        url = f"{API}/topics/proposals/{proposal['id']}/comments"

        res = client.post(url, json={"content": " "}, headers=viewer_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"
        res = client.post(url, json={"content": "Hi", "parent_comment_id": "1"}, headers=viewer_headers)
        assert res.status_code == 400

        res = client.post(url, json={"content": "Add Germany", "comment_type": "revision_request"},
                          headers=viewer_headers)
        assert res.status_code == 201
        comment = res.get_json()
        res = client.post(url, json={"content": "On it", "parent_comment_id": comment["id"]},
                          headers=editor_headers)
        assert res.get_json()["parent_comment_id"] == comment["id"]

        threads = client.get(url).get_json()
        assert len(threads) == 1
        assert len(threads[0]["replies"]) == 1
        assert client.get(f"{url}/count").get_json() == {"total": 2, "unresolved": 2, "revision_requests": 1}

        comment_url = f"{API}/topics/proposal-comments/{comment['id']}"
        assert client.post(f"{comment_url}/resolve", headers=viewer_headers).status_code == 403
        res = client.post(f"{comment_url}/resolve", headers=editor_headers)
        assert res.get_json()["is_resolved"] is True
        assert client.get(f"{url}?unresolved=true").get_json() == []
        res = client.post(f"{comment_url}/unresolve", headers=editor_headers)
        assert res.get_json()["is_resolved"] is False

        res = client.put(comment_url, json={"content": "Add Germany and France"}, headers=viewer_headers)
        assert res.get_json()["content"] == "Add Germany and France"
        assert client.delete(comment_url, headers=editor_headers).status_code == 403
        res = client.delete(comment_url, headers=viewer_headers)
        assert res.get_json() == {"deleted": True, "id": comment["id"]}
        assert client.get(f"{url}/count").get_json()["total"] == 0

    def test_generator_settings(self, client, project, audience, editor_headers, viewer_headers):
        url = f"{API}/projects/{project.id}/topics/settings"
        body = client.get(url).get_json()
        assert body["is_default"] is True
        assert body["stats"]["total"] == 0

        assert client.put(url, json={"time_window_days": 3}, headers=viewer_headers).status_code == 403
        res = client.put(url, json={"time_window_days": 0}, headers=editor_headers)
        assert res.status_code == 422
        assert "time_window_days" in res.get_json()["details"]

        res = client.put(url, json={"time_window_days": 3, "default_audience_profile_id": audience.id},
                         headers=editor_headers)
        assert res.status_code == 200
        assert res.get_json()["settings"]["time_window_days"] == 3
        body = client.get(url).get_json()
        assert body["is_default"] is False
        assert body["settings"]["default_audience_profile_id"] == audience.id
        assert client.get(f"{API}/projects/999/topics/settings").status_code == 404
