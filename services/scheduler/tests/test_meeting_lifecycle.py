"""
Tests for the meeting state machine driven through MeetingService.

Uses the in-memory repository; the SQL repository has its own suite.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timezone
from itertools import count

import pytest

from services.scheduler.engine import CandidateSlot, TimeInterval
from services.scheduler.errors import (
    AlreadyInvitedError,
    ConcurrentScheduleConflict,
    InvalidRequestError,
    NotFoundError,
    NotMemberError,
    NotOrganizerError,
    StaleStateError,
)
from services.scheduler.lifecycle import (
    InMemoryMeetingRepository,
    InvitationStatus,
    MeetingService,
    MeetingStatus,
    VersionConflict,
)
from services.scheduler.tests.scheduler_test_base import ORGANIZER, make_slot_request

DAY = date(2025, 5, 9)
FIXED_NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(DAY, time(hour, minute))


def slot(hour: int) -> CandidateSlot:
    return CandidateSlot(date=DAY, interval=TimeInterval(at(hour), at(hour + 1)))


class TestMeetingLifecycle:
    def setup_method(self, method):
        self.repository = InMemoryMeetingRepository()
        tokens = count(1)
        self.service = MeetingService(
            self.repository,
            clock=lambda: FIXED_NOW,
            token_factory=lambda: f"token-{next(tokens)}",
        )
        self.meeting = self.service.create_meeting(
            organizer_id=ORGANIZER,
            title="Quarterly planning",
            slot_request=make_slot_request(start=DAY, end=DAY),
            participant_emails=["a@example.com", "b@example.com", "c@example.com"],
        )

    # ---- creation -----------------------------------------------------

    def test_create_starts_pending_at_version_one(self):
        assert self.meeting.status == MeetingStatus.pending
        assert self.meeting.version == 1
        assert self.meeting.scheduled_slot is None
        assert self.meeting.participant_ids == [
            "a@example.com",
            "b@example.com",
            "c@example.com",
        ]
        assert all(
            invitation.status == InvitationStatus.pending
            for invitation in self.meeting.invitations.values()
        )
        assert not any(p.has_responded for p in self.meeting.participants.values())

    def test_create_normalizes_invitees(self):
        meeting = self.service.create_meeting(
            organizer_id="Organizer@Example.com",
            title="  Standup ",
            slot_request=make_slot_request(start=DAY, end=DAY),
            participant_emails=[" A@Example.com", "a@example.com", "", "organizer@example.com"],
        )

        assert meeting.title == "Standup"
        assert meeting.organizer_id == ORGANIZER
        assert meeting.participant_ids == ["a@example.com"]

    def test_create_requires_title(self):
        with pytest.raises(InvalidRequestError):
            self.service.create_meeting(ORGANIZER, "   ", make_slot_request())

    def test_each_invitee_gets_a_distinct_token(self):
        tokens = {i.token for i in self.meeting.invitations.values()}
        assert len(tokens) == 3

        meeting, invitation = self.service.find_invitation("token-2")
        assert meeting.id == self.meeting.id
        assert invitation.participant_id == "b@example.com"

    def test_unknown_token(self):
        with pytest.raises(NotFoundError):
            self.service.find_invitation("nope")

    # ---- participant transitions --------------------------------------

    def test_submit_availability_upserts_and_bumps_version(self):
        meeting = self.service.submit_availability(
            self.meeting.id, "a@example.com", [TimeInterval(at(10, 30), at(10, 45))]
        )
        assert meeting.version == 2
        assert meeting.participants["a@example.com"].has_responded is True

        meeting = self.service.submit_availability(self.meeting.id, "A@example.com", [])
        assert meeting.version == 3
        assert meeting.participants["a@example.com"].busy_intervals == ()

    def test_submit_for_uninvited_participant(self):
        with pytest.raises(NotFoundError):
            self.service.submit_availability(self.meeting.id, "stranger@example.com", [])

    def test_respond_declined_leaves_availability_untouched(self):
        self.service.submit_availability(self.meeting.id, "a@example.com", [])
        before = self.service.get_meeting(self.meeting.id)

        meeting = self.service.respond(self.meeting.id, "a@example.com", "declined")

        invitation = meeting.invitations["a@example.com"]
        assert invitation.status == InvitationStatus.declined
        assert invitation.responded_at == FIXED_NOW
        assert meeting.participants["a@example.com"] == before.participants["a@example.com"]

        meeting = self.service.respond(self.meeting.id, "b@example.com", InvitationStatus.declined)
        assert meeting.participants["b@example.com"].has_responded is False

    @pytest.mark.parametrize("response", ["pending", "maybe", ""])
    def test_respond_rejects_non_final_answers(self, response):
        with pytest.raises(InvalidRequestError):
            self.service.respond(self.meeting.id, "a@example.com", response)

    # ---- schedule / cancel --------------------------------------------

    def test_schedule_sets_slot_and_status(self):
        meeting = self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        assert meeting.status == MeetingStatus.scheduled
        assert meeting.scheduled_slot == slot(10)
        assert meeting.is_frozen

    def test_schedule_accepts_an_annotated_slot(self):
        view = self.service.availability(self.meeting.id)
        best = view.ranked[0]

        meeting = self.service.schedule(self.meeting.id, ORGANIZER, best)

        assert meeting.scheduled_slot == best.slot

    def test_schedule_by_wall_clock(self):
        meeting = self.service.schedule_at(
            self.meeting.id, ORGANIZER, DAY, time(14, 0), time(15, 0)
        )
        assert meeting.scheduled_slot == slot(14)

    def test_schedule_rejects_slot_not_generated_for_the_meeting(self):
        misaligned = CandidateSlot(date=DAY, interval=TimeInterval(at(10, 30), at(11, 30)))
        with pytest.raises(InvalidRequestError):
            self.service.schedule(self.meeting.id, ORGANIZER, misaligned)
        assert self.service.get_meeting(self.meeting.id).status == MeetingStatus.pending

    def test_only_the_organizer_can_schedule_or_cancel(self):
        with pytest.raises(NotOrganizerError):
            self.service.schedule(self.meeting.id, "a@example.com", slot(10))
        with pytest.raises(NotOrganizerError):
            self.service.cancel(self.meeting.id, "a@example.com")

    def test_second_schedule_is_a_conflict(self):
        self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        with pytest.raises(ConcurrentScheduleConflict):
            self.service.schedule(self.meeting.id, ORGANIZER, slot(11))

        meeting = self.service.get_meeting(self.meeting.id)
        assert meeting.scheduled_slot == slot(10)

    def test_schedule_after_stale_read_is_a_conflict(self):
        stale = self.service.get_meeting(self.meeting.id)
        self.service.submit_availability(self.meeting.id, "a@example.com", [])

        updated = stale.schedule(ORGANIZER, slot(10), FIXED_NOW)
        with pytest.raises(VersionConflict):
            self.repository.save(updated, stale.version)

    def test_cancel_is_terminal(self):
        self.service.schedule(self.meeting.id, ORGANIZER, slot(10))
        meeting = self.service.cancel(self.meeting.id, ORGANIZER)
        assert meeting.status == MeetingStatus.cancelled

        with pytest.raises(StaleStateError):
            self.service.cancel(self.meeting.id, ORGANIZER)
        with pytest.raises(StaleStateError) as exc_info:
            self.service.schedule(self.meeting.id, ORGANIZER, slot(11))
        assert not isinstance(exc_info.value, ConcurrentScheduleConflict)

    # ---- freeze ---------------------------------------------------------

    @pytest.mark.parametrize("final_action", ["schedule", "cancel"])
    def test_participant_updates_are_frozen_after_leaving_pending(self, final_action):
        if final_action == "schedule":
            self.service.schedule(self.meeting.id, ORGANIZER, slot(10))
        else:
            self.service.cancel(self.meeting.id, ORGANIZER)
        frozen = self.service.get_meeting(self.meeting.id)

        with pytest.raises(StaleStateError):
            self.service.submit_availability(self.meeting.id, "a@example.com", [])
        with pytest.raises(StaleStateError):
            self.service.respond(self.meeting.id, "a@example.com", "accepted")
        with pytest.raises(StaleStateError):
            self.service.invite_participants(self.meeting.id, ORGANIZER, ["d@example.com"])

        assert self.service.get_meeting(self.meeting.id) == frozen

    # ---- invitations --------------------------------------------------

    def test_invite_adds_new_and_reinvites_existing(self):
        self.service.submit_availability(self.meeting.id, "a@example.com", [])
        self.service.respond(self.meeting.id, "a@example.com", "declined")
        before_token = self.service.get_meeting(self.meeting.id).invitations["a@example.com"].token

        meeting = self.service.invite_participants(
            self.meeting.id, ORGANIZER, ["a@example.com", "D@example.com", ORGANIZER]
        )

        assert meeting.participant_ids == [
            "a@example.com",
            "b@example.com",
            "c@example.com",
            "d@example.com",
        ]
        reinvited = meeting.invitations["a@example.com"]
        assert reinvited.status == InvitationStatus.pending
        assert reinvited.responded_at is None
        assert reinvited.token == before_token
        assert meeting.participants["a@example.com"].has_responded is True

    def test_remove_participant_drops_availability_and_invitation(self):
        meeting = self.service.remove_participant(self.meeting.id, ORGANIZER, "b@example.com")

        assert "b@example.com" not in meeting.invitations
        assert "b@example.com" not in meeting.participants
        view = self.service.availability_for(meeting)
        assert all(a.total_participants == 2 for a in view.annotated)

        with pytest.raises(NotFoundError):
            self.service.remove_participant(self.meeting.id, ORGANIZER, "b@example.com")

    # ---- queries ------------------------------------------------------

    def test_availability_view(self):
        self.service.submit_availability(
            self.meeting.id, "a@example.com", [TimeInterval(at(9), at(12))]
        )
        self.service.respond(self.meeting.id, "b@example.com", "accepted")
        self.service.respond(self.meeting.id, "c@example.com", "declined")

        view = self.service.availability(self.meeting.id)

        assert len(view.annotated) == 8
        assert view.ranked[0].available_count == 3
        assert view.ranked[0].slot == slot(12)
        assert view.displays[0].summary_label == "3 of 3 available (100%)"
        assert view.summary.invited == 3
        assert view.summary.responded == 1
        assert view.summary.accepted == 1
        assert view.summary.declined == 1
        assert view.summary.pending == 1

    def test_list_by_role(self):
        other = self.service.create_meeting(
            "a@example.com", "Other", make_slot_request(), [ORGANIZER]
        )

        assert [m.id for m in self.service.list_meetings(ORGANIZER)] == [self.meeting.id]
        assert [m.id for m in self.service.list_meetings(ORGANIZER, "participant")] == [
            other.id
        ]
        with pytest.raises(InvalidRequestError):
            self.service.list_meetings(ORGANIZER, "observer")

    def test_meeting_maps_are_read_only(self):
        meeting = self.service.get_meeting(self.meeting.id)

        with pytest.raises(TypeError):
            meeting.participants["a@example.com"] = None
        with pytest.raises(TypeError):
            del meeting.invitations["a@example.com"]

        stored = self.service.get_meeting(self.meeting.id)
        assert stored.version == 1
        assert "a@example.com" in stored.participants
        assert "a@example.com" in stored.invitations

    def test_stranger_cannot_read_the_meeting(self):
        assert self.service.get_meeting_for_user(self.meeting.id, "A@example.com")
        assert self.service.get_meeting_for_user(self.meeting.id, ORGANIZER)

        with pytest.raises(NotMemberError) as exc_info:
            self.service.get_meeting_for_user(self.meeting.id, "stranger@example.com")

        assert exc_info.value.message == "Not a member of this meeting"
        assert exc_info.value.status_code == 403

    # ---- shared join link ---------------------------------------------

    def test_join_link_is_minted_once(self):
        meeting = self.service.create_join_link(self.meeting.id, ORGANIZER)
        assert meeting.join_token == "token-4"
        assert meeting.version == 2

        again = self.service.create_join_link(self.meeting.id, ORGANIZER)
        assert again.join_token == "token-4"
        assert again.version == 2

    def test_only_the_organizer_can_create_a_join_link(self):
        with pytest.raises(NotOrganizerError):
            self.service.create_join_link(self.meeting.id, "a@example.com")

    def test_join_adds_a_pending_invitee(self):
        join_token = self.service.create_join_link(self.meeting.id, ORGANIZER).join_token

        meeting, invitation = self.service.join_meeting(join_token, " D@Example.com ")

        assert invitation.participant_id == "d@example.com"
        assert invitation.status == InvitationStatus.pending
        assert invitation.token == "token-5"
        assert meeting.participant_ids[-1] == "d@example.com"
        assert not meeting.participants["d@example.com"].has_responded

        found, by_token = self.service.find_invitation("token-5")
        assert found.id == self.meeting.id
        assert by_token == invitation

    def test_join_with_an_existing_invitation_is_rejected(self):
        join_token = self.service.create_join_link(self.meeting.id, ORGANIZER).join_token

        with pytest.raises(AlreadyInvitedError):
            self.service.join_meeting(join_token, "a@example.com")

    def test_organizer_cannot_join_their_own_meeting(self):
        join_token = self.service.create_join_link(self.meeting.id, ORGANIZER).join_token

        with pytest.raises(InvalidRequestError):
            self.service.join_meeting(join_token, ORGANIZER)

    def test_join_is_closed_once_scheduled(self):
        join_token = self.service.create_join_link(self.meeting.id, ORGANIZER).join_token
        self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        with pytest.raises(StaleStateError):
            self.service.join_meeting(join_token, "d@example.com")
        with pytest.raises(StaleStateError):
            self.service.create_join_link(self.meeting.id, ORGANIZER)

    def test_unknown_join_token(self):
        with pytest.raises(NotFoundError):
            self.service.join_meeting("nope", "d@example.com")

    def test_delete_is_organizer_only(self):
        with pytest.raises(NotOrganizerError):
            self.service.delete_meeting(self.meeting.id, "a@example.com")

        self.service.delete_meeting(self.meeting.id, ORGANIZER)
        with pytest.raises(NotFoundError):
            self.service.get_meeting(self.meeting.id)


class TestConcurrentScheduling:
    def setup_method(self, method):
        self.repository = InMemoryMeetingRepository()
        self.service = MeetingService(self.repository)
        self.meeting = self.service.create_meeting(
            ORGANIZER,
            "Race",
            make_slot_request(start=DAY, end=DAY),
            ["a@example.com", "b@example.com"],
        )

    def test_exactly_one_concurrent_schedule_wins(self):
        workers = 8
        barrier = threading.Barrier(workers)

        def attempt(hour):
            barrier.wait()
            try:
                return self.service.schedule(self.meeting.id, ORGANIZER, slot(hour))
            except ConcurrentScheduleConflict as e:
                return e

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(attempt, range(9, 9 + workers)))

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, ConcurrentScheduleConflict)]
        assert len(winners) == 1
        assert len(losers) == workers - 1

        stored = self.service.get_meeting(self.meeting.id)
        assert stored.status == MeetingStatus.scheduled
        assert stored.scheduled_slot == winners[0].scheduled_slot

    def test_concurrent_submissions_are_all_kept(self):
        emails = ["a@example.com", "b@example.com"]
        barrier = threading.Barrier(len(emails))

        def submit(email):
            barrier.wait()
            return self.service.submit_availability(
                self.meeting.id, email, [TimeInterval(at(9), at(10))]
            )

        with ThreadPoolExecutor(max_workers=len(emails)) as pool:
            list(pool.map(submit, emails))

        stored = self.service.get_meeting(self.meeting.id)
        assert all(stored.participants[e].has_responded for e in emails)
        assert stored.version == 3

    def test_submission_racing_schedule_never_lands_after_freeze(self):
        barrier = threading.Barrier(2)

        def schedule():
            barrier.wait()
            return self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        def submit():
            barrier.wait()
            try:
                return self.service.submit_availability(
                    self.meeting.id, "a@example.com", [TimeInterval(at(10), at(11))]
                )
            except StaleStateError as e:
                return e

        with ThreadPoolExecutor(max_workers=2) as pool:
            scheduled = pool.submit(schedule)
            submitted = pool.submit(submit)
            schedule_result = scheduled.result()
            submit_result = submitted.result()

        stored = self.service.get_meeting(self.meeting.id)
        assert schedule_result.status == MeetingStatus.scheduled
        assert stored.status == MeetingStatus.scheduled
        assert stored.scheduled_slot == slot(10)
        # Either the submission landed before the freeze or it was rejected
        if isinstance(submit_result, StaleStateError):
            assert not stored.participants["a@example.com"].has_responded
            assert stored.version == 2
        else:
            assert stored.participants["a@example.com"].has_responded
            assert stored.version == 3


class InterleavingRepository(InMemoryMeetingRepository):
    """Runs a queued callback right before the next save, as if another request got there first."""

    def __init__(self):
        super().__init__()
        self.before_next_save = None

    def save(self, meeting, expected_version):
        hook, self.before_next_save = self.before_next_save, None
        if hook is not None:
            hook()
        return super().save(meeting, expected_version)


class TestScheduleInterleaving:
    def setup_method(self, method):
        self.repository = InterleavingRepository()
        self.service = MeetingService(self.repository)
        self.meeting = self.service.create_meeting(
            ORGANIZER,
            "Interleaved",
            make_slot_request(start=DAY, end=DAY),
            ["a@example.com", "b@example.com"],
        )

    def test_schedule_lands_after_losing_to_a_submission(self):
        self.repository.before_next_save = lambda: self.service.submit_availability(
            self.meeting.id, "a@example.com", [TimeInterval(at(9), at(10))]
        )

        stored = self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        assert stored.status == MeetingStatus.scheduled
        assert stored.scheduled_slot == slot(10)
        assert stored.participants["a@example.com"].has_responded
        assert stored.version == 3
        assert self.service.get_meeting(self.meeting.id) == stored

    def test_schedule_losing_to_another_schedule_is_a_conflict(self):
        self.repository.before_next_save = lambda: self.service.schedule(
            self.meeting.id, ORGANIZER, slot(9)
        )

        with pytest.raises(ConcurrentScheduleConflict):
            self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        assert self.service.get_meeting(self.meeting.id).scheduled_slot == slot(9)

    def test_schedule_losing_to_a_cancel_is_stale(self):
        self.repository.before_next_save = lambda: self.service.cancel(
            self.meeting.id, ORGANIZER
        )

        with pytest.raises(StaleStateError) as exc_info:
            self.service.schedule(self.meeting.id, ORGANIZER, slot(10))

        assert not isinstance(exc_info.value, ConcurrentScheduleConflict)
        stored = self.service.get_meeting(self.meeting.id)
        assert stored.status == MeetingStatus.cancelled
        assert stored.scheduled_slot is None
