"""ConversationService 테스트: 시작 조건, 진행, 축출, 쿨다운, 이벤트"""

import random

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.core.conversation.models import (
    ConversationLine,
    ConversationTemplate,
    ConversationTopic,
    RelationshipTone,
    Speaker,
)
from src.core.conversation.registry import TemplateRegistry
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EndReasons, EventTypes
from src.services.conversation_service import (
    ConversationService,
    OrchestratorSettings,
    tile_distance,
)
from src.services.delivery import InMemoryDeliverySink

I, R = Speaker.INITIATOR, Speaker.RESPONDER


class _FixedRng(random.Random):
    """고정값 RNG: random()은 value, choice는 첫 원소, randrange는 roll"""

    def __init__(self, value: float = 0.0, roll: int = 0):
        super().__init__(0)
        self.value = value
        self.roll = roll

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]

    def randrange(self, *args, **kwargs):
        return self.roll


def _template(template_id, topic, lines, **kwargs):
    return ConversationTemplate(
        template_id=template_id,
        topic=topic,
        lines=tuple(ConversationLine(s, t, d) for s, t, d in lines),
        **kwargs,
    )


DEFAULT_TEMPLATES = [
    _template(
        "greet_three",
        ConversationTopic.GREETING,
        [(I, "Quiet in {DISTRICT}.", 0), (R, "For now.", 1), (I, "Stay sharp.", 2)],
    ),
    _template("threat_two", ConversationTopic.THREAT, [(I, "Leave.", 0), (R, "Make me.", 1)]),
    _template("wary_two", ConversationTopic.WARY_ENCOUNTER, [(I, "Hm.", 0), (R, "Hm.", 1)]),
    _template("alliance_two", ConversationTopic.ALLIANCE_AFFIRM, [(I, "Friend.", 0), (R, "Aye.", 1)]),
]


def _make_service(world, templates=None, rng=None, **settings_kw):
    registry = TemplateRegistry(world, random.Random(1))
    registry.load_templates(DEFAULT_TEMPLATES if templates is None else templates)
    bus = EventBus()
    sink = InMemoryDeliverySink()
    service = ConversationService(
        world, registry, bus, sink, OrchestratorSettings(**settings_kw), rng or _FixedRng()
    )
    return service, bus, sink


def _collect(bus, event_type):
    received = []
    bus.subscribe(event_type, received.append)
    return received


def _advance_and_tick(world, service, turns=1):
    delivered = 0
    for _ in range(turns):
        delivered += service.tick(world.advance_turn())
    return delivered


@pytest.fixture()
def guards(add_entity):
    add_entity("g1", "faction_guard", "high", x=1, y=1)
    add_entity("g2", "faction_guard", "low", x=2, y=1)


class TestTileDistance:
    def test_manhattan(self):
        assert tile_distance((1, 1), (4, 2)) == 4
        assert tile_distance((0, 0), (0, 0)) == 0


class TestInitiate:
    def test_starts_and_delivers_first_line(self, world, guards):
        service, _, sink = _make_service(world)
        assert service.try_initiate("g1") is True
        assert service.is_in_conversation("g1")
        assert service.is_in_conversation("g2")
        assert len(service.active_conversations()) == 1

        record = sink.records[0]
        assert record.line_index == 0
        assert record.turn == 100
        assert (record.speaker_id, record.listener_id) == ("g1", "g2")
        assert record.text == "Quiet in Market Row."
        assert record.speaker_name == "City Guard high"
        assert record.listener_name == "City Guard low"
        assert record.tone == RelationshipTone.SAME_FACTION

    def test_roll_above_chance_fails_without_state_change(self, world, guards):
        service, _, sink = _make_service(world, rng=_FixedRng(value=0.5))
        assert service.try_initiate("g1") is False
        assert not service.is_in_conversation("g1")
        assert sink.records == []
        assert service.is_entity_off_cooldown("g1", 100)

    def test_busy_initiator_rejected(self, world, guards):
        service, _, _ = _make_service(world)
        service.try_initiate("g1")
        assert service.try_initiate("g2") is False
        assert len(service.active_conversations()) == 1

    def test_busy_entities_not_chosen_as_partner(self, world, guards, add_entity):
        add_entity("g3", "faction_guard", "mid", x=3, y=1)
        service, _, _ = _make_service(world, min_turns_between_conversations=0)
        service.try_initiate("g1")
        assert service.try_initiate("g3") is False

    def test_capacity_limit(self, world, guards, add_entity):
        add_entity("g3", "faction_guard", "mid", x=5, y=5)
        add_entity("g4", "faction_guard", "low", x=6, y=5)
        service, _, _ = _make_service(world, max_simultaneous_conversations=1)
        assert service.try_initiate("g1") is True
        assert service.try_initiate("g3") is False
        assert not service.is_in_conversation("g3")

    def test_non_conversational_initiator(self, world, add_entity):
        add_entity("m1", "faction_guard", "low", role="merchant")
        add_entity("g2", "faction_guard", "low", x=2)
        service, _, _ = _make_service(world)
        assert service.try_initiate("m1") is False

    def test_non_conversational_partner_excluded(self, world, add_entity):
        add_entity("g1", "faction_guard", "high")
        add_entity("m1", "faction_guard", "low", x=2, role="shopkeeper")
        service, _, _ = _make_service(world)
        assert service.try_initiate("g1") is False

    def test_factionless_initiator(self, world, add_entity):
        add_entity("x", None)
        add_entity("g2", "faction_guard", "low", x=2)
        service, _, _ = _make_service(world)
        assert service.try_initiate("x") is False

    def test_factionless_partner_excluded(self, world, add_entity):
        add_entity("g1", "faction_guard", "high")
        add_entity("x", None, x=2)
        service, _, _ = _make_service(world)
        assert service.try_initiate("g1") is False

    def test_hostile_alert_initiator(self, world, guards):
        world.set_hostile_alert("g1")
        service, _, _ = _make_service(world)
        assert service.try_initiate("g1") is False

    def test_unknown_entity(self, world):
        service, _, _ = _make_service(world)
        assert service.try_initiate("ghost") is False

    def test_range_boundary(self, world, add_entity):
        add_entity("g1", "faction_guard", "high", x=1, y=1)
        add_entity("g2", "faction_guard", "low", x=4, y=2)
        service, _, _ = _make_service(world, conversation_range=4)
        assert service.try_initiate("g1") is True

    def test_out_of_range(self, world, add_entity):
        add_entity("g1", "faction_guard", "high", x=1, y=1)
        add_entity("g2", "faction_guard", "low", x=5, y=2)
        service, _, _ = _make_service(world, conversation_range=4)
        assert service.try_initiate("g1") is False

    def test_no_template_for_topic_leaves_no_state(self, world, guards):
        service, _, sink = _make_service(world, templates=[])
        assert service.try_initiate("g1") is False
        assert not service.is_in_conversation("g1")
        assert service.is_entity_off_cooldown("g1", 100)
        assert sink.records == []

    def test_first_line_delivery_failure_evicts(self, world, guards):
        class _FailingSink(InMemoryDeliverySink):
            def deliver(self, record):
                raise SQLAlchemyError("log table unavailable")

        registry = TemplateRegistry(world, random.Random(1))
        registry.load_templates(DEFAULT_TEMPLATES)
        bus = EventBus()
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service = ConversationService(
            world, registry, bus, _FailingSink(), OrchestratorSettings(), _FixedRng()
        )

        with pytest.raises(SQLAlchemyError):
            service.try_initiate("g1")
        assert service.active_conversations() == ()
        assert not service.is_in_conversation("g1")
        assert not service.is_in_conversation("g2")
        assert ended[0].data["reason"] == EndReasons.DELIVERY_FAILED


class TestPartnerPreference:
    @pytest.fixture()
    def mixed(self, add_entity):
        add_entity("g1", "faction_guard", "high", x=1, y=1)
        add_entity("g2", "faction_guard", "low", x=2, y=1)
        add_entity("r1", "faction_raiders", "low", x=1, y=2)

    def test_same_faction_when_coin_low(self, world, mixed):
        service, _, _ = _make_service(world, rng=_FixedRng(value=0.0))
        service.try_initiate("g1")
        assert service.active_conversations()[0].responder_id == "g2"

    def test_cross_faction_when_coin_high(self, world, mixed):
        world.set_inter_rep("faction_guard", "faction_raiders", -40)
        service, _, _ = _make_service(world, rng=_FixedRng(value=0.9), initiation_chance=1.0)
        service.try_initiate("g1")
        conv = service.active_conversations()[0]
        assert conv.responder_id == "r1"
        assert conv.template.topic == ConversationTopic.THREAT

    def test_only_cross_available(self, world, add_entity):
        add_entity("g1", "faction_guard", "high")
        add_entity("s1", "faction_scribes", "mid", x=2)
        world.set_inter_rep("faction_guard", "faction_scribes", 30)
        service, _, sink = _make_service(world)
        assert service.try_initiate("g1") is True
        assert service.active_conversations()[0].template.topic == ConversationTopic.ALLIANCE_AFFIRM
        assert sink.records[0].tone == RelationshipTone.FRIENDLY


class TestTopicRoll:
    def test_same_faction_weights_from_world(self, world, guards):
        service, _, _ = _make_service(world)
        initiator = service._describe("g1")
        responder = service._describe("g2")
        weights = service.build_topic_weights(
            initiator, responder, world.get_district_for("g1"), 100
        )
        assert [t for t, _ in weights] == [
            ConversationTopic.GREETING,
            ConversationTopic.RUMOR,
            ConversationTopic.STATUS_REPORT,
            ConversationTopic.ORDERS,
            ConversationTopic.QUEST_HINT,
        ]

    def test_roll_97_selects_orders_template(self, world, guards):
        orders = _template("orders_one", ConversationTopic.ORDERS, [(I, "Walls. Now.", 0)])
        service, _, sink = _make_service(world, templates=[orders], rng=_FixedRng(roll=97))
        assert service.try_initiate("g1") is True
        assert sink.records[0].template_id == "orders_one"

    def test_contested_district_context(self, world, add_entity):
        add_entity("g1", "faction_guard", "high", x=11, y=1)
        add_entity("g2", "faction_guard", "low", x=12, y=1)
        service, _, _ = _make_service(world)
        weights = dict(
            service.build_topic_weights(
                service._describe("g1"), service._describe("g2"), world.get_district("docks"), 100
            )
        )
        assert weights[ConversationTopic.TERRITORY_CONTEST] == 30
        assert weights[ConversationTopic.PROSPERITY_LAMENT] == 20
        assert weights[ConversationTopic.RAID_WARNING] == 25


class TestTick:
    def test_creation_turn_skipped(self, world, guards):
        service, _, sink = _make_service(world)
        service.try_initiate("g1")
        assert service.tick(100) == 0
        assert len(sink.records) == 1

    def test_line_schedule(self, world, guards):
        service, bus, sink = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        _advance_and_tick(world, service, 3)

        assert [(r.line_index, r.turn) for r in sink.records] == [(0, 100), (1, 101), (2, 103)]
        assert [r.speaker_id for r in sink.records] == ["g1", "g2", "g1"]
        assert service.active_conversations() == ()
        assert not service.is_in_conversation("g1")
        assert ended[0].data["reason"] == EndReasons.COMPLETED
        assert ended[0].data["lines_delivered"] == 3

    def test_resolved_text_frozen_at_creation(self, world, guards):
        frozen = _template(
            "greet_prosperity",
            ConversationTopic.GREETING,
            [(I, "Trade is {PROSPERITY}.", 0), (R, "{DISTRICT} is {PROSPERITY}.", 1)],
        )
        service, _, sink = _make_service(world, templates=[frozen])
        assert service.try_initiate("g1") is True

        # 생성 이후 월드 변화는 남은 대사에 반영되지 않는다
        market = world.get_district("market")
        market.prosperity = 0.1
        market.display_name = "Burnt Row"
        _advance_and_tick(world, service)

        assert sink.texts() == ["Trade is stable.", "Market Row is stable."]

    def test_single_line_ends_at_creation(self, world, guards):
        single = _template("one", ConversationTopic.GREETING, [(I, "Evening.", 0)])
        service, bus, sink = _make_service(world, templates=[single])
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        assert service.try_initiate("g1") is True
        assert len(sink.records) == 1
        assert service.active_conversations() == ()
        assert not service.is_in_conversation("g2")
        assert ended[0].data["reason"] == EndReasons.COMPLETED

    def test_combat_eviction(self, world, guards):
        service, bus, sink = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        world.set_in_combat("g2")
        assert _advance_and_tick(world, service) == 0
        assert len(sink.records) == 1
        assert ended[0].data["reason"] == EndReasons.COMBAT
        assert not service.is_in_conversation("g1")

    def test_hostile_alert_mid_conversation_evicts(self, world, guards):
        service, bus, _ = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        world.set_hostile_alert("g1")
        _advance_and_tick(world, service)
        assert ended[0].data["reason"] == EndReasons.COMBAT

    def test_invalid_participant_checked_before_combat(self, world, guards):
        service, bus, _ = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        world.get_entity("g2").active = False
        world.set_in_combat("g2")
        _advance_and_tick(world, service)
        assert ended[0].data["reason"] == EndReasons.PARTICIPANT_INVALID

    def test_removed_participant(self, world, guards):
        service, bus, _ = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        world.remove_entity("g1")
        _advance_and_tick(world, service)
        assert ended[0].data["reason"] == EndReasons.PARTICIPANT_INVALID
        assert not service.is_in_conversation("g2")

    def test_stale_cooldowns_purged(self, world, guards):
        single = _template("one", ConversationTopic.GREETING, [(I, "Evening.", 0)])
        service, _, _ = _make_service(world, templates=[single], cooldown_cleanup_chance=1.0)
        service.try_initiate("g1")
        assert not service.is_entity_off_cooldown("g2", 101)
        world.remove_entity("g2")
        _advance_and_tick(world, service)
        assert service.is_entity_off_cooldown("g2", 101)
        assert not service.is_entity_off_cooldown("g1", 101)


class TestCooldowns:
    def test_entity_cooldown(self, world, guards):
        single = _template("one", ConversationTopic.GREETING, [(I, "Evening.", 0)])
        service, _, _ = _make_service(
            world, templates=[single], min_turns_between_conversations=8
        )
        assert service.try_initiate("g1") is True
        _advance_and_tick(world, service, 7)
        assert service.try_initiate("g1") is False
        assert service.try_initiate("g2") is False
        _advance_and_tick(world, service)
        assert world.current_turn() == 108
        assert service.try_initiate("g1") is True

    def test_template_cooldown_recorded_at_initiation(self, world, guards):
        gated = _template(
            "gated", ConversationTopic.GREETING, [(I, "Evening.", 0)], cooldown_turns=20
        )
        service, _, _ = _make_service(
            world, templates=[gated], min_turns_between_conversations=0
        )
        assert service.try_initiate("g1") is True
        assert not service.is_template_cooldown_expired("gated", 100, 20)
        assert service.try_initiate("g2") is False
        assert service.is_template_cooldown_expired("gated", 120, 20)

    def test_unfired_template_is_expired(self, world):
        service, _, _ = _make_service(world)
        assert service.is_template_cooldown_expired("never", 0, 50)


class TestInterrupt:
    def test_interrupt_ends_and_is_idempotent(self, world, guards):
        service, bus, _ = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        assert service.interrupt("g2") == 1
        assert service.interrupt("g2") == 0
        assert service.active_conversations() == ()
        assert ended[0].data["reason"] == EndReasons.INTERRUPTED

    def test_interrupt_idle_entity_noop(self, world, guards):
        service, _, _ = _make_service(world)
        service.try_initiate("g1")
        assert service.interrupt("nobody") == 0
        assert len(service.active_conversations()) == 1

    def test_combat_event_via_bus(self, world, guards):
        service, bus, _ = _make_service(world)
        bus.subscribe(EventTypes.ENTITY_COMBAT_STARTED, service.on_combat_event)
        service.try_initiate("g1")
        bus.emit(
            GameEvent(
                event_type=EventTypes.ENTITY_COMBAT_STARTED,
                data={"entity_id": "g1"},
                source="combat",
            )
        )
        assert not service.is_in_conversation("g1")

    def test_combat_event_without_entity_ignored(self, world, guards):
        service, _, _ = _make_service(world)
        service.try_initiate("g1")
        service.on_combat_event(
            GameEvent(event_type=EventTypes.ENTITY_ALERT_HOSTILE, data={}, source="combat")
        )
        assert len(service.active_conversations()) == 1


class TestClearAll:
    def test_clear_resets_everything(self, world, guards):
        service, bus, _ = _make_service(world)
        ended = _collect(bus, EventTypes.CONVERSATION_ENDED)
        service.try_initiate("g1")
        service.clear_all()
        assert service.active_conversations() == ()
        assert not service.is_in_conversation("g1")
        assert service.is_entity_off_cooldown("g1", 100)
        assert ended[0].data["reason"] == EndReasons.CLEARED
        assert service.try_initiate("g1") is True


class TestEvents:
    def test_started_and_line_events(self, world, guards):
        service, bus, _ = _make_service(world)
        started = _collect(bus, EventTypes.CONVERSATION_STARTED)
        lines = _collect(bus, EventTypes.CONVERSATION_LINE_DELIVERED)
        service.try_initiate("g1")
        _advance_and_tick(world, service)

        assert started[0].data == {
            "conversation_id": 0,
            "initiator_id": "g1",
            "responder_id": "g2",
            "topic": "greeting",
            "template_id": "greet_three",
            "turn": 100,
        }
        assert [e.data["line_index"] for e in lines] == [0, 1]
        assert [e.key for e in lines] == ["0:0", "0:1"]

    def test_conversation_ids_increase(self, world, guards, add_entity):
        add_entity("g3", "faction_guard", "high", x=5, y=5)
        add_entity("g4", "faction_guard", "low", x=6, y=5)
        service, _, _ = _make_service(world)
        service.try_initiate("g1")
        service.try_initiate("g3")
        ids = [c.conversation_id for c in service.active_conversations()]
        assert ids == [0, 1]


class TestInvariantsUnderLoad:
    def test_capacity_and_exclusivity(self, world, add_entity):
        factions = ["faction_guard", "faction_scribes", "faction_raiders"]
        ranks = ["high", "mid", "low"]
        for i in range(12):
            add_entity(f"e{i}", factions[i % 3], ranks[i % 3], x=i % 6, y=i // 6)
        world.set_inter_rep("faction_guard", "faction_raiders", -40)
        world.set_inter_rep("faction_guard", "faction_scribes", 30)

        service, _, _ = _make_service(
            world,
            rng=random.Random(42),
            initiation_chance=1.0,
            min_turns_between_conversations=2,
            max_simultaneous_conversations=3,
        )
        for _ in range(40):
            for entity_id in list(world.active_entities()):
                if not service.is_in_conversation(entity_id):
                    service.try_initiate(entity_id)
            active = service.active_conversations()
            assert len(active) <= 3
            participants = [p for c in active for p in (c.initiator_id, c.responder_id)]
            assert len(participants) == len(set(participants))
            assert set(participants) == {
                e for e in world.active_entities() if service.is_in_conversation(e)
            }
            service.tick(world.advance_turn())
