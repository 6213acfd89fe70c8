"""Tests for per-call context state, field extraction and TTL expiry."""

import threading

import pytest

from callflow.agents.provider import InMemoryAgentConfigProvider
from callflow.conversation.context_store import ContextStore, FieldSource
from callflow.conversation.errors import AgentNotFoundError, ContextNotInitializedError
from tests.conftest import AGENT_ID, CALL_ID, make_agent, make_field


@pytest.fixture
def initialized(store):
    store.initialize_context(CALL_ID, AGENT_ID)
    return store


def _store_for(fields, clock, locale="AU"):
    provider = InMemoryAgentConfigProvider([make_agent(fields=fields, locale=locale)])
    store = ContextStore(provider, clock=clock, autostart=False)
    store.initialize_context(CALL_ID, AGENT_ID)
    return store


class TestInitializeContext:
    def test_one_unfilled_slot_per_field(self, initialized):
        context = initialized.get_context(CALL_ID)
        assert set(context.fields) == {"email", "phone", "name"}
        assert all(not slot.filled for slot in context.fields.values())
        assert context.failed_attempts == 0
        assert context.interrupt_count == 0
        assert context.locale == "AU"

    def test_initial_routing_path(self, store):
        context = store.initialize_context(CALL_ID, AGENT_ID, ["greeting"])
        assert context.routing_path == ["greeting"]

    def test_unknown_agent_raises(self, store):
        with pytest.raises(AgentNotFoundError, match="Agent nope not found"):
            store.initialize_context(CALL_ID, "nope")

    def test_unsupported_locale_raises(self, clock):
        provider = InMemoryAgentConfigProvider([make_agent(locale="ZZ")])
        store = ContextStore(provider, clock=clock, autostart=False)
        with pytest.raises(ValueError, match="locale"):
            store.initialize_context(CALL_ID, AGENT_ID)

    def test_default_value_seeds_unfilled_slot(self, clock):
        store = _store_for([make_field("country", default_value="Australia")], clock)
        context = store.get_context(CALL_ID)
        assert context.fields["country"].value == "Australia"
        assert context.fields["country"].filled is False

    def test_schema_snapshot_survives_config_change(self, provider, store):
        store.initialize_context(CALL_ID, AGENT_ID)
        provider.register(make_agent(fields=[make_field("other")]))
        assert set(store.get_context(CALL_ID).fields) == {"email", "phone", "name"}
        assert store.get_missing_required_fields(CALL_ID) == ["email", "phone"]


class TestUpdateContext:
    def test_requires_initialization(self, store):
        with pytest.raises(ContextNotInitializedError):
            store.update_context("never-started", "hello")

    def test_email_scenario(self, initialized):
        initialized.update_context(CALL_ID, "my email is a@b.com")
        assert initialized.get_missing_required_fields(CALL_ID) == ["phone"]

    def test_combined_utterance_fills_three_fields(self, initialized):
        context = initialized.update_context(
            CALL_ID, "my name is John, email john@example.com, phone 0412 345 678"
        )
        assert context.fields["name"].value == "John"
        assert context.fields["email"].value == "john@example.com"
        assert context.fields["phone"].raw_value == "0412345678"
        assert all(context.fields[name].source == FieldSource.USER for name in ("name", "email", "phone"))

    def test_phone_main_value_is_spoken_form(self, initialized):
        context = initialized.update_context(CALL_ID, "0412 345 678")
        phone = context.fields["phone"]
        assert phone.value == "zero four one two, three four five, six seven eight"
        assert phone.spoken_value == phone.value
        assert phone.raw_value == "0412345678"

    def test_invalid_phone_left_unfilled(self, initialized):
        initialized.update_context(CALL_ID, "it's 0512 345 678")
        assert not initialized.is_filled(CALL_ID, "phone")

    def test_repeated_utterance_is_idempotent(self, initialized):
        utterance = "I'm Sam, sam@example.com"
        first = initialized.update_context(CALL_ID, utterance)
        second = initialized.update_context(CALL_ID, utterance)
        assert initialized.get_filled_fields(CALL_ID) == ["email", "name"]
        assert {n: f.value for n, f in first.fields.items()} == {n: f.value for n, f in second.fields.items()}

    def test_filled_fields_not_overwritten(self, initialized):
        initialized.update_context(CALL_ID, "a@b.com")
        initialized.update_context(CALL_ID, "actually c@d.com")
        assert initialized.get_all_fields(CALL_ID)["email"] == "a@b.com"

    def test_unstructured_text_never_copied_into_field(self, initialized):
        initialized.update_context(CALL_ID, "just wanted to ask a question")
        assert not initialized.is_filled(CALL_ID, "name")

    def test_records_last_user_response(self, initialized):
        initialized.update_context(CALL_ID, "hello there")
        assert initialized.get_context(CALL_ID).last_user_response == "hello there"

    def test_non_empty_utterance_resets_failed_attempts(self, initialized):
        initialized.increment_failed_attempts(CALL_ID)
        initialized.increment_failed_attempts(CALL_ID)
        initialized.update_context(CALL_ID, "hmm, not sure")
        assert initialized.get_context(CALL_ID).failed_attempts == 0

    def test_empty_utterance_keeps_failed_attempts(self, initialized):
        initialized.increment_failed_attempts(CALL_ID)
        initialized.update_context(CALL_ID, "  ")
        assert initialized.get_context(CALL_ID).failed_attempts == 1

    def test_returns_snapshot_not_live_state(self, initialized):
        snapshot = initialized.update_context(CALL_ID, "a@b.com")
        snapshot.fields["email"].value = "tampered"
        snapshot.routing_path.append("tampered")
        context = initialized.get_context(CALL_ID)
        assert context.fields["email"].value == "a@b.com"
        assert context.routing_path == []


class TestFieldTypes:
    def test_number_field(self, clock):
        store = _store_for([make_field("quantity", "number")], clock)
        store.update_context(CALL_ID, "about 12 of them, maybe 15")
        assert store.get_all_fields(CALL_ID) == {"quantity": 12}

    def test_choice_field(self, clock):
        store = _store_for(
            [make_field("service", "choice", choice_options=["Hot Water", "Blocked Drain"])], clock
        )
        store.update_context(CALL_ID, "I've got a blocked drain")
        assert store.get_all_fields(CALL_ID) == {"service": "Blocked Drain"}

    @pytest.mark.parametrize("field_name", ["postcode", "postCode", "post_code", "zipCode", "postalCode"])
    def test_postcode_field_detected_by_name(self, clock, field_name):
        store = _store_for([make_field(field_name)], clock)
        context = store.update_context(CALL_ID, "it's 3121")
        slot = context.fields[field_name]
        assert slot.raw_value == "3121"
        assert slot.value == "three one two one"

    def test_out_of_range_postcode_left_unfilled(self, clock):
        store = _store_for([make_field("postcode")], clock)
        store.update_context(CALL_ID, "it's 0800")
        assert not store.is_filled(CALL_ID, "postcode")

    def test_full_width_postcode_left_unfilled(self, clock):
        store = _store_for([make_field("postcode")], clock)
        context = store.update_context(CALL_ID, "my postcode is ３０００")
        assert context.fields["postcode"].filled is False
        assert store.get_next_unfilled_field(CALL_ID).field_name == "postcode"

    def test_us_locale_postcode(self, clock):
        store = _store_for([make_field("zipCode")], clock, locale="US")
        context = store.update_context(CALL_ID, "zip is 90210")
        assert context.fields["zipCode"].raw_value == "90210"

    def test_hint_skips_linking_word(self, clock):
        store = _store_for([make_field("name", nlp_extraction_hints=["name"])], clock)
        store.update_context(CALL_ID, "Name is Harriet.")
        assert store.get_all_fields(CALL_ID) == {"name": "Harriet"}

    def test_longest_hint_wins(self, clock):
        store = _store_for(
            [make_field("suburb", nlp_extraction_hints=["in", "i live in"])], clock
        )
        store.update_context(CALL_ID, "I live in Richmond")
        assert store.get_all_fields(CALL_ID) == {"suburb": "Richmond"}

    def test_date_field_uses_hints(self, clock):
        store = _store_for([make_field("visitDay", "date", nlp_extraction_hints=["on"])], clock)
        store.update_context(CALL_ID, "come out on Tuesday please")
        assert store.get_all_fields(CALL_ID) == {"visitDay": "Tuesday"}


class TestAccessors:
    def test_confirm_field(self, initialized):
        initialized.update_context(CALL_ID, "a@b.com")
        assert initialized.confirm_field(CALL_ID, "email") is True
        assert initialized.is_confirmed(CALL_ID, "email")

    def test_confirm_unfilled_field(self, initialized):
        assert initialized.confirm_field(CALL_ID, "phone") is False
        assert not initialized.is_confirmed(CALL_ID, "phone")

    def test_confirm_unknown_field_raises(self, initialized):
        with pytest.raises(ValueError, match="Unknown field"):
            initialized.confirm_field(CALL_ID, "nope")

    def test_spoken_format_prefers_spoken_value(self, initialized):
        initialized.update_context(CALL_ID, "0412345678, a@b.com")
        assert initialized.get_spoken_format(CALL_ID, "phone").startswith("zero four")
        assert initialized.get_spoken_format(CALL_ID, "email") == "a@b.com"

    def test_readers_on_unknown_call(self, store):
        assert store.get_context("missing") is None
        assert store.is_filled("missing", "email") is False
        assert store.get_missing_required_fields("missing") == []
        assert store.get_next_unfilled_field("missing") is None
        assert store.get_spoken_format("missing", "email") is None
        assert store.get_all_fields("missing") == {}

    def test_mutators_on_unknown_call_raise(self, store):
        with pytest.raises(ContextNotInitializedError):
            store.increment_failed_attempts("missing")
        with pytest.raises(ContextNotInitializedError):
            store.update_routing_path("missing", "step")
        with pytest.raises(ContextNotInitializedError):
            store.confirm_field("missing", "email")

    def test_set_and_reset_field(self, initialized):
        initialized.set_field(CALL_ID, "phone", "0412345678", source=FieldSource.SYSTEM)
        slot = initialized.get_context(CALL_ID).fields["phone"]
        assert slot.filled and slot.source == FieldSource.SYSTEM

        initialized.reset_field(CALL_ID, "phone")
        assert not initialized.is_filled(CALL_ID, "phone")
        initialized.update_context(CALL_ID, "0498 765 432")
        assert initialized.get_context(CALL_ID).fields["phone"].raw_value == "0498765432"

    def test_counters_and_routing_path(self, initialized):
        assert initialized.increment_failed_attempts(CALL_ID) == 1
        assert initialized.increment_interrupt_count(CALL_ID) == 1
        initialized.update_routing_path(CALL_ID, "callback")
        initialized.update_routing_path(CALL_ID, "end-call")
        initialized.update_current_step(CALL_ID, "phone", "What's your number?")
        context = initialized.get_context(CALL_ID)
        assert context.routing_path == ["callback", "end-call"]
        assert context.current_step == "phone"
        assert context.last_question == "What's your number?"

    def test_did_user_answer_last_question(self, initialized):
        assert initialized.did_user_answer_last_question(CALL_ID) is False
        initialized.update_current_step(CALL_ID, "email", "What's your email?")
        initialized.update_context(CALL_ID, "a@b.com")
        assert initialized.did_user_answer_last_question(CALL_ID) is True

    def test_confirmation_summary_uses_spoken_forms(self, initialized):
        initialized.update_context(CALL_ID, "this is Jo, 0412345678")
        summary = initialized.get_confirmation_summary(CALL_ID)
        assert summary.startswith("Here's a quick summary of what I have.")
        assert "Phone: zero four one two, three four five, six seven eight." in summary
        assert "Name: Jo." in summary

    def test_stats(self, initialized):
        initialized.update_context(CALL_ID, "a@b.com")
        stats = initialized.get_stats(CALL_ID)
        assert stats["slots_filled"] == 1
        assert stats["slots_required"] == 2
        assert stats["fill_rate"] == 0.5


class TestNextUnfilledField:
    def test_lowest_display_order_first(self, clock):
        store = _store_for(
            [
                make_field("c", display_order=3, nlp_extraction_hints=["c is"]),
                make_field("a", display_order=1, nlp_extraction_hints=["a is"]),
                make_field("b", display_order=2, required=True, nlp_extraction_hints=["b is"]),
            ],
            clock,
        )
        assert store.get_next_unfilled_field(CALL_ID).field_name == "a"
        store.update_context(CALL_ID, "a is x")
        assert store.get_next_unfilled_field(CALL_ID).field_name == "b"
        store.update_context(CALL_ID, "b is y, c is z")
        assert store.get_next_unfilled_field(CALL_ID) is None

    def test_ties_keep_declaration_order(self, clock):
        store = _store_for([make_field("second"), make_field("first")], clock)
        assert store.get_next_unfilled_field(CALL_ID).field_name == "second"


class TestLifecycle:
    def test_clear_context(self, initialized):
        assert initialized.clear_context(CALL_ID) is True
        assert initialized.get_context(CALL_ID) is None
        assert initialized.clear_context(CALL_ID) is False

    def test_active_call_ids(self, store):
        store.initialize_context("CA1", AGENT_ID)
        store.initialize_context("CA2", AGENT_ID)
        store.clear_context("CA1")
        assert store.active_call_ids() == ["CA2"]
        assert len(store) == 1

    def test_sweep_removes_idle_context(self, initialized, clock):
        clock.advance(3601)
        assert initialized.sweep_expired() == [CALL_ID]
        assert initialized.get_context(CALL_ID) is None

    def test_sweep_keeps_recently_updated_context(self, store, clock):
        store.initialize_context("old", AGENT_ID)
        store.initialize_context("fresh", AGENT_ID)
        clock.advance(3000)
        store.update_context("fresh", "hello")
        clock.advance(700)
        assert store.sweep_expired() == ["old"]
        assert store.has_context("fresh")

    def test_context_exactly_at_ttl_survives(self, initialized, clock):
        clock.advance(3600)
        assert initialized.sweep_expired() == []

    def test_background_sweep_thread(self, provider, clock):
        store = ContextStore(provider, clock=clock, sweep_interval_seconds=0.01)
        try:
            assert store.is_sweeping
            store.initialize_context(CALL_ID, AGENT_ID)
            clock.advance(7200)
            swept = threading.Event()
            for _ in range(200):
                if not store.has_context(CALL_ID):
                    swept.set()
                    break
                swept.wait(0.01)
            assert swept.is_set()
        finally:
            store.stop()
        assert not store.is_sweeping

    def test_start_and_stop_are_idempotent(self, provider):
        store = ContextStore(provider, autostart=False)
        assert not store.is_sweeping
        store.start()
        store.start()
        assert store.is_sweeping
        store.stop()
        store.stop()
        assert not store.is_sweeping

    def test_context_manager_stops_sweep(self, provider):
        with ContextStore(provider) as store:
            assert store.is_sweeping
        assert not store.is_sweeping

    def test_instances_do_not_share_state(self, provider):
        first = ContextStore(provider, autostart=False)
        second = ContextStore(provider, autostart=False)
        first.initialize_context(CALL_ID, AGENT_ID)
        assert second.get_context(CALL_ID) is None
        assert len(first) == 1 and len(second) == 0

    def test_concurrent_updates_on_separate_calls(self, store):
        call_ids = [f"CA-{i}" for i in range(20)]
        for call_id in call_ids:
            store.initialize_context(call_id, AGENT_ID)

        def work(call_id):
            for _ in range(25):
                store.increment_interrupt_count(call_id)
            store.update_context(call_id, f"{call_id.lower()}@example.com")

        threads = [threading.Thread(target=work, args=(c,)) for c in call_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for call_id in call_ids:
            context = store.get_context(call_id)
            assert context.interrupt_count == 25
            assert context.fields["email"].value == f"{call_id.lower()}@example.com"
