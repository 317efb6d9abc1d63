from datetime import datetime, timedelta, timezone

from app.models import ChatSession, User
from app.services.conversation_service import (
    check_agent_timeouts,
    derive_phone_number,
    find_or_create_group,
    find_or_create_session,
    find_or_create_user,
    update_user_interaction_time,
    update_user_state,
)
from app.services.state_machine import ConversationState

CONTACT = "5215512345678@s.whatsapp.net"


class TestDerivePhoneNumber:
    def test_strips_domain_and_device(self):
        assert derive_phone_number("5215512345678:3@s.whatsapp.net") == "5215512345678"
        assert derive_phone_number(CONTACT) == "5215512345678"


class TestFindOrCreate:
    def test_session_is_created_once(self, db):
        first = find_or_create_session(db, "default")
        second = find_or_create_session(db, "default")
        db.commit()

        assert first.id == second.id
        assert db.query(ChatSession).count() == 1

    def test_new_user_starts_initial(self, db):
        user = find_or_create_user(db, CONTACT, "default", "Ana")
        db.commit()

        assert user.state == ConversationState.INITIAL.value
        assert user.phone_number == "5215512345678"
        assert user.name == "Ana"

    def test_same_key_returns_same_user(self, db):
        first = find_or_create_user(db, CONTACT, "default")
        second = find_or_create_user(db, CONTACT, "default")
        db.commit()

        assert first.id == second.id
        assert db.query(User).count() == 1

    def test_same_contact_in_other_session_is_another_user(self, db):
        first = find_or_create_user(db, CONTACT, "default")
        second = find_or_create_user(db, CONTACT, "ventas")
        db.commit()

        assert first.id != second.id

    def test_updates_name_when_it_changes(self, db):
        find_or_create_user(db, CONTACT, "default", "Ana")
        user = find_or_create_user(db, CONTACT, "default", "Ana María")
        db.commit()

        assert user.name == "Ana María"

    def test_existing_state_is_kept(self, db):
        user = find_or_create_user(db, CONTACT, "default")
        update_user_state(db, user.id, ConversationState.AWAITING_MENU_CHOICE)
        db.commit()

        again = find_or_create_user(db, CONTACT, "default")
        assert again.state == ConversationState.AWAITING_MENU_CHOICE.value

    def test_group_is_created_once(self, db):
        first = find_or_create_group(db, "12036302@g.us", "default")
        second = find_or_create_group(db, "12036302@g.us", "default")
        db.commit()

        assert first.id == second.id


class TestUpdateUserState:
    def test_unconditional_update(self, db):
        user = find_or_create_user(db, CONTACT, "default")
        assert update_user_state(db, user.id, ConversationState.AWAITING_AGENT) is True
        db.commit()

        db.refresh(user)
        assert user.state == ConversationState.AWAITING_AGENT.value

    def test_compare_and_set_applies_when_expected_matches(self, db):
        user = find_or_create_user(db, CONTACT, "default")
        applied = update_user_state(
            db,
            user.id,
            ConversationState.AWAITING_MENU_CHOICE,
            expected_state=ConversationState.INITIAL,
        )
        db.commit()

        assert applied is True
        db.refresh(user)
        assert user.state == ConversationState.AWAITING_MENU_CHOICE.value

    def test_compare_and_set_skips_when_state_moved(self, db):
        user = find_or_create_user(db, CONTACT, "default")
        update_user_state(db, user.id, ConversationState.AWAITING_AGENT)
        applied = update_user_state(
            db,
            user.id,
            ConversationState.AWAITING_MENU_CHOICE,
            expected_state=ConversationState.INITIAL,
        )
        db.commit()

        assert applied is False
        db.refresh(user)
        assert user.state == ConversationState.AWAITING_AGENT.value


class TestCheckAgentTimeouts:
    def _handoff(self, db, contact, minutes_ago, now):
        user = find_or_create_user(db, contact, "default")
        update_user_state(db, user.id, ConversationState.AWAITING_AGENT)
        update_user_interaction_time(db, user.id, now - timedelta(minutes=minutes_ago))
        db.commit()
        return user

    def test_resets_only_stale_handoffs(self, db):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        stale = self._handoff(db, "111@s.whatsapp.net", 31, now)
        fresh = self._handoff(db, "222@s.whatsapp.net", 5, now)

        timed_out = check_agent_timeouts(db, timeout_minutes=30, now=now)
        db.commit()

        assert [item.id for item in timed_out] == [stale.id]
        assert timed_out[0].contact_id == "111@s.whatsapp.net"
        db.refresh(stale)
        db.refresh(fresh)
        assert stale.state == ConversationState.INITIAL.value
        assert fresh.state == ConversationState.AWAITING_AGENT.value

    def test_handoff_without_timestamp_is_left_alone(self, db):
        user = find_or_create_user(db, CONTACT, "default")
        update_user_state(db, user.id, ConversationState.AWAITING_AGENT)
        db.commit()

        assert check_agent_timeouts(db, timeout_minutes=30) == []

    def test_second_sweep_finds_nothing(self, db):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        self._handoff(db, CONTACT, 45, now)

        assert len(check_agent_timeouts(db, timeout_minutes=30, now=now)) == 1
        db.commit()
        assert check_agent_timeouts(db, timeout_minutes=30, now=now) == []

    def test_users_in_other_states_are_ignored(self, db):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        user = find_or_create_user(db, CONTACT, "default")
        update_user_interaction_time(db, user.id, now - timedelta(hours=5))
        db.commit()

        assert check_agent_timeouts(db, timeout_minutes=30, now=now) == []
