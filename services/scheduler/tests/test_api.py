"""
HTTP tests for the scheduler API.

Exercises the meeting endpoints (API key plus X-User-Id) and the public
invitation endpoints (token only) end to end over a temporary SQLite database.
"""

from services.scheduler.tests.scheduler_test_base import (
    ORGANIZER,
    BaseSchedulerAPITest,
)

MEETINGS = "/api/v1/scheduler/meetings"
INVITATIONS = "/api/v1/public/invitations"
JOIN = "/api/v1/public/join"


def meeting_payload(**overrides) -> dict:
    payload = {
        "title": "Design review",
        "description": "Walk through the new flow",
        "date_range_start": "2025-05-09",
        "date_range_end": "2025-05-09",
        "window_start": "09:00",
        "window_end": "17:00",
        "duration_minutes": 60,
        "participant_emails": ["a@example.com", "B@Example.com"],
    }
    payload.update(overrides)
    return payload


class TestHealth(BaseSchedulerAPITest):
    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthentication(BaseSchedulerAPITest):
    def test_missing_api_key(self):
        response = self.client.get(MEETINGS, headers={"X-User-Id": ORGANIZER})

        assert response.status_code == 401
        assert response.json()["type"] == "auth_error"

    def test_invalid_api_key(self):
        response = self.client.get(
            MEETINGS, headers={"X-API-Key": "wrong", "X-User-Id": ORGANIZER}
        )

        assert response.status_code == 401
        assert response.json()["details"]["code"] == "TOKEN_INVALID"

    def test_bearer_token_is_accepted(self):
        response = self.client.get(
            MEETINGS,
            headers={
                "Authorization": f"Bearer {self.headers()['X-API-Key']}",
                "X-User-Id": ORGANIZER,
            },
        )
        assert response.status_code == 200

    def test_missing_user_header(self):
        headers = self.headers()
        del headers["X-User-Id"]

        response = self.client.get(MEETINGS, headers=headers)

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "X-User-Id"


class TestMeetingEndpoints(BaseSchedulerAPITest):
    def setup_method(self, method=None):
        super().setup_method(method)
        response = self.client.post(
            MEETINGS, json=meeting_payload(), headers=self.headers()
        )
        assert response.status_code == 201
        self.meeting = response.json()
        self.tokens = {p["participant_id"]: p["token"] for p in self.meeting["participants"]}

    def url(self, suffix: str = "") -> str:
        return f"{MEETINGS}/{self.meeting['id']}{suffix}"

    def test_create_meeting(self):
        assert self.meeting["status"] == "pending"
        assert self.meeting["organizer_id"] == ORGANIZER
        assert self.meeting["timezone"] == "UTC"
        assert self.meeting["version"] == 1
        assert sorted(self.tokens) == ["a@example.com", "b@example.com"]
        assert all(self.tokens.values())
        first = self.meeting["participants"][0]
        assert first["join_url"] == f"http://localhost:3000/meetings/join/{first['token']}"
        assert all(p["status"] == "pending" for p in self.meeting["participants"])
        assert not any(p["has_responded"] for p in self.meeting["participants"])

    def test_create_rejects_inverted_date_range(self):
        response = self.client.post(
            MEETINGS,
            json=meeting_payload(date_range_start="2025-05-10"),
            headers=self.headers(),
        )

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    def test_create_rejects_bad_email(self):
        response = self.client.post(
            MEETINGS,
            json=meeting_payload(participant_emails=["not-an-email"]),
            headers=self.headers(),
        )
        assert response.status_code == 422

    def test_list_meetings_by_role(self):
        organizing = self.client.get(MEETINGS, headers=self.headers()).json()
        invited = self.client.get(
            MEETINGS,
            params={"role": "participant"},
            headers=self.headers("b@example.com"),
        ).json()

        assert [m["id"] for m in organizing] == [self.meeting["id"]]
        assert [m["id"] for m in invited] == [self.meeting["id"]]

        response = self.client.get(
            MEETINGS, params={"role": "owner"}, headers=self.headers()
        )
        assert response.status_code == 422

    def test_get_meeting_hides_tokens_from_invitees(self):
        as_organizer = self.client.get(self.url(), headers=self.headers()).json()
        as_invitee = self.client.get(
            self.url(), headers=self.headers("a@example.com")
        ).json()

        assert all(p["token"] for p in as_organizer["participants"])
        assert all(p["token"] is None for p in as_invitee["participants"])
        assert all(p["join_url"] is None for p in as_invitee["participants"])

    def test_get_meeting_for_stranger_is_forbidden(self):
        response = self.client.get(self.url(), headers=self.headers("eve@example.com"))

        assert response.status_code == 403
        assert response.json()["type"] == "permission_denied"
        assert response.json()["message"] == "Not a member of this meeting"

    def test_unknown_meeting(self):
        response = self.client.get(f"{MEETINGS}/missing", headers=self.headers())

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    def test_availability_view(self):
        self.client.put(
            f"{INVITATIONS}/{self.tokens['a@example.com']}/availability",
            json={
                "busy_intervals": [
                    {"start": "2025-05-09T10:00:00", "end": "2025-05-09T11:00:00"}
                ]
            },
        )

        response = self.client.get(self.url("/availability"), headers=self.headers())

        assert response.status_code == 200
        view = response.json()
        assert view["total_participants"] == 2
        assert view["responses"]["responded"] == 1
        assert view["responses"]["pending"] == 2
        assert len(view["slots"]) == 8
        # Ranked: fully available slots first, the conflicting hour last
        assert view["slots"][0]["time_label"] == "09:00 - 10:00"
        assert view["slots"][-1]["time_label"] == "10:00 - 11:00"
        assert view["slots"][-1]["summary_label"] == "1 of 2 available (50%)"
        assert view["slots"][0]["date_label"] == "Friday, May 9, 2025"

        strict = self.client.get(
            self.url("/availability"),
            params={"require_response": "true"},
            headers=self.headers(),
        ).json()
        assert strict["slots"][0]["summary_label"] == "1 of 2 available (50%)"

    def test_availability_is_organizer_only(self):
        response = self.client.get(
            self.url("/availability"), headers=self.headers("a@example.com")
        )
        assert response.status_code == 403

    def test_schedule_then_reschedule_conflicts(self):
        body = {"date": "2025-05-09", "start": "13:00", "end": "14:00"}

        response = self.client.post(self.url("/schedule"), json=body, headers=self.headers())

        assert response.status_code == 200
        scheduled = response.json()
        assert scheduled["status"] == "scheduled"
        assert scheduled["scheduled_slot"]["date"] == "2025-05-09"
        assert scheduled["scheduled_slot"]["start"].startswith("2025-05-09T13:00:00")
        assert scheduled["version"] == 2

        again = self.client.post(
            self.url("/schedule"),
            json={"date": "2025-05-09", "start": "14:00", "end": "15:00"},
            headers=self.headers(),
        )
        assert again.status_code == 409
        assert again.json()["details"]["code"] == "SCHEDULE_CONFLICT"

    def test_schedule_rejects_slot_outside_the_grid(self):
        response = self.client.post(
            self.url("/schedule"),
            json={"date": "2025-05-09", "start": "13:30", "end": "14:30"},
            headers=self.headers(),
        )
        assert response.status_code == 422

    def test_only_organizer_can_schedule(self):
        response = self.client.post(
            self.url("/schedule"),
            json={"date": "2025-05-09", "start": "13:00", "end": "14:00"},
            headers=self.headers("a@example.com"),
        )
        assert response.status_code == 403

    def test_cancel_freezes_the_meeting(self):
        response = self.client.post(self.url("/cancel"), headers=self.headers())
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = self.client.post(self.url("/cancel"), headers=self.headers())
        assert again.status_code == 409
        assert again.json()["type"] == "stale_state"

        submit = self.client.put(
            f"{INVITATIONS}/{self.tokens['a@example.com']}/availability",
            json={"busy_intervals": []},
        )
        assert submit.status_code == 409

    def test_invite_and_remove_participants(self):
        response = self.client.post(
            self.url("/participants"),
            json={"emails": ["c@example.com", ORGANIZER]},
            headers=self.headers(),
        )

        assert response.status_code == 200
        ids = [p["participant_id"] for p in response.json()["participants"]]
        assert ids == ["a@example.com", "b@example.com", "c@example.com"]

        response = self.client.delete(
            self.url("/participants/b@example.com"), headers=self.headers()
        )
        assert response.status_code == 200
        ids = [p["participant_id"] for p in response.json()["participants"]]
        assert ids == ["a@example.com", "c@example.com"]

        gone = self.client.get(f"{INVITATIONS}/{self.tokens['b@example.com']}")
        assert gone.status_code == 404

    def test_invite_requires_an_email(self):
        response = self.client.post(
            self.url("/participants"), json={"emails": []}, headers=self.headers()
        )
        assert response.status_code == 422

    def test_delete_meeting(self):
        forbidden = self.client.delete(self.url(), headers=self.headers("a@example.com"))
        assert forbidden.status_code == 403

        response = self.client.delete(self.url(), headers=self.headers())
        assert response.status_code == 204
        assert self.client.get(self.url(), headers=self.headers()).status_code == 404

    def test_calendar_sync_without_provider(self):
        response = self.client.post(
            self.url("/organizer-calendar/sync"), headers=self.headers()
        )
        assert response.status_code == 422


class TestInvitationEndpoints(BaseSchedulerAPITest):
    def setup_method(self, method=None):
        super().setup_method(method)
        meeting = self.client.post(
            MEETINGS,
            json=meeting_payload(timezone="Europe/Berlin"),
            headers=self.headers(),
        ).json()
        self.meeting_id = meeting["id"]
        self.token = next(
            p["token"] for p in meeting["participants"] if p["participant_id"] == "a@example.com"
        )

    def test_view_invitation(self):
        response = self.client.get(f"{INVITATIONS}/{self.token}")

        assert response.status_code == 200
        body = response.json()
        assert body["meeting"]["id"] == self.meeting_id
        assert body["meeting"]["title"] == "Design review"
        assert body["invitation"]["participant_id"] == "a@example.com"
        assert body["invitation"]["token"] is None
        assert body["busy_intervals"] == []

    def test_unknown_token(self):
        response = self.client.get(f"{INVITATIONS}/not-a-token")
        assert response.status_code == 404

    def test_naive_busy_times_use_the_meeting_timezone(self):
        response = self.client.put(
            f"{INVITATIONS}/{self.token}/availability",
            json={
                "busy_intervals": [
                    {"start": "2025-05-09T10:00:00", "end": "2025-05-09T11:00:00"},
                    {"start": "2025-05-09T12:00:00Z", "end": "2025-05-09T13:00:00Z"},
                ]
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["invitation"]["has_responded"] is True
        assert [b["start"] for b in body["busy_intervals"]] == [
            "2025-05-09T10:00:00+02:00",
            "2025-05-09T12:00:00Z",
        ]

    def test_submission_replaces_previous_busy_times(self):
        url = f"{INVITATIONS}/{self.token}/availability"
        self.client.put(
            url,
            json={"busy_intervals": [{"start": "2025-05-09T10:00:00", "end": "2025-05-09T11:00:00"}]},
        )

        response = self.client.put(url, json={"busy_intervals": []})

        assert response.json()["busy_intervals"] == []
        assert response.json()["invitation"]["has_responded"] is True

    def test_inverted_busy_interval_is_rejected(self):
        response = self.client.put(
            f"{INVITATIONS}/{self.token}/availability",
            json={"busy_intervals": [{"start": "2025-05-09T11:00:00", "end": "2025-05-09T10:00:00"}]},
        )
        assert response.status_code == 422

    def test_respond(self):
        response = self.client.post(
            f"{INVITATIONS}/{self.token}/respond", json={"response": "accepted"}
        )

        assert response.status_code == 200
        invitation = response.json()["invitation"]
        assert invitation["status"] == "accepted"
        assert invitation["responded_at"] is not None

        changed = self.client.post(
            f"{INVITATIONS}/{self.token}/respond", json={"response": "declined"}
        )
        assert changed.status_code == 200
        assert changed.json()["invitation"]["status"] == "declined"
        assert changed.json()["invitation"]["has_responded"] is False

    def test_respond_with_unknown_status(self):
        response = self.client.post(
            f"{INVITATIONS}/{self.token}/respond", json={"response": "maybe"}
        )
        assert response.status_code == 422


class TestJoinLinkEndpoints(BaseSchedulerAPITest):
    def setup_method(self, method=None):
        super().setup_method(method)
        meeting = self.client.post(
            MEETINGS, json=meeting_payload(), headers=self.headers()
        ).json()
        self.meeting_id = meeting["id"]

    def create_link(self, user_id: str = ORGANIZER):
        return self.client.post(
            f"{MEETINGS}/{self.meeting_id}/invitation", headers=self.headers(user_id)
        )

    def test_organizer_creates_a_stable_link(self):
        response = self.create_link()

        assert response.status_code == 200
        link = response.json()
        assert link["meeting_id"] == self.meeting_id
        assert link["join_url"] == (
            f"http://localhost:3000/meetings/share/{link['join_token']}"
        )
        assert self.create_link().json() == link

        detail = self.client.get(
            f"{MEETINGS}/{self.meeting_id}", headers=self.headers()
        ).json()
        assert detail["join_token"] == link["join_token"]
        assert detail["join_url"] == link["join_url"]

        as_invitee = self.client.get(
            f"{MEETINGS}/{self.meeting_id}", headers=self.headers("a@example.com")
        ).json()
        assert as_invitee["join_token"] is None
        assert as_invitee["join_url"] is None

    def test_invitee_cannot_create_the_link(self):
        response = self.create_link("a@example.com")

        assert response.status_code == 403
        assert response.json()["type"] == "permission_denied"

    def test_view_shared_meeting(self):
        join_token = self.create_link().json()["join_token"]

        response = self.client.get(f"{JOIN}/{join_token}")

        assert response.status_code == 200
        assert response.json()["id"] == self.meeting_id
        assert "participants" not in response.json()

    def test_join_then_submit_availability(self):
        join_token = self.create_link().json()["join_token"]

        response = self.client.post(f"{JOIN}/{join_token}", json={"email": "Dana@Example.com"})

        assert response.status_code == 201
        invitation = response.json()["invitation"]
        assert invitation["participant_id"] == "dana@example.com"
        assert invitation["status"] == "pending"
        assert invitation["join_url"] == (
            f"http://localhost:3000/meetings/join/{invitation['token']}"
        )

        submitted = self.client.put(
            f"{INVITATIONS}/{invitation['token']}/availability",
            json={"busy_intervals": [{"start": "2025-05-09T10:00:00", "end": "2025-05-09T11:00:00"}]},
        )
        assert submitted.status_code == 200
        assert submitted.json()["invitation"]["has_responded"] is True

        detail = self.client.get(
            f"{MEETINGS}/{self.meeting_id}", headers=self.headers()
        ).json()
        assert "dana@example.com" in [p["participant_id"] for p in detail["participants"]]

    def test_join_as_existing_invitee_conflicts(self):
        join_token = self.create_link().json()["join_token"]

        response = self.client.post(f"{JOIN}/{join_token}", json={"email": "a@example.com"})

        assert response.status_code == 409
        assert response.json()["type"] == "already_invited"
        assert response.json()["details"]["code"] == "ALREADY_EXISTS"
        assert "token" not in str(response.json()["details"])

    def test_join_rejects_bad_email(self):
        join_token = self.create_link().json()["join_token"]

        response = self.client.post(f"{JOIN}/{join_token}", json={"email": "nope"})

        assert response.status_code == 422

    def test_join_after_cancel_is_stale(self):
        join_token = self.create_link().json()["join_token"]
        self.client.post(f"{MEETINGS}/{self.meeting_id}/cancel", headers=self.headers())

        response = self.client.post(f"{JOIN}/{join_token}", json={"email": "dana@example.com"})

        assert response.status_code == 409
        assert response.json()["details"]["code"] == "STALE_STATE"

    def test_unknown_join_token(self):
        assert self.client.get(f"{JOIN}/missing").status_code == 404
        response = self.client.post(f"{JOIN}/missing", json={"email": "dana@example.com"})
        assert response.status_code == 404
