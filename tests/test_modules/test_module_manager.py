"""ModuleManager 테스트"""

from unittest.mock import MagicMock

from src.core.event_bus import EventBus, GameEvent
from src.modules.base import GameContext, GameModule
from src.modules.module_manager import ModuleManager


# --- 테스트용 모듈 ---


class AlphaModule(GameModule):
    def __init__(self, consumes=None):
        super().__init__()
        self.enable_called = False
        self.disable_called = False
        self.turns_processed = 0
        self.idle_seen = []
        self._consumes = set(consumes or [])

    @property
    def name(self):
        return "alpha"

    def on_enable(self):
        self.enable_called = True

    def on_disable(self):
        self.disable_called = True

    def on_turn(self, context):
        self.turns_processed += 1

    def on_entity_idle(self, entity_id, context):
        self.idle_seen.append(entity_id)
        return entity_id in self._consumes


class BetaModule(GameModule):
    """alpha에 의존하는 모듈"""

    def __init__(self):
        super().__init__()
        self.enable_called = False
        self.disable_called = False
        self.idle_seen = []

    @property
    def name(self):
        return "beta"

    @property
    def dependencies(self):
        return ["alpha"]

    def on_enable(self):
        self.enable_called = True

    def on_disable(self):
        self.disable_called = True

    def on_turn(self, context):
        pass

    def on_entity_idle(self, entity_id, context):
        self.idle_seen.append(entity_id)
        return True


class GammaModule(GameModule):
    """beta에 의존 (alpha → beta → gamma 체인)"""

    def __init__(self):
        super().__init__()
        self.disable_called = False

    @property
    def name(self):
        return "gamma"

    @property
    def dependencies(self):
        return ["beta"]

    def on_enable(self):
        pass

    def on_disable(self):
        self.disable_called = True

    def on_turn(self, context):
        pass


def make_context():
    return GameContext(current_turn=1, db_session=MagicMock())


class TestRegister:
    def test_register_module(self):
        mm = ModuleManager()
        mm.register(AlphaModule())
        assert "alpha" in mm.modules
        assert mm.get("alpha") is mm.modules["alpha"]

    def test_register_overwrites(self):
        mm = ModuleManager()
        m1 = AlphaModule()
        m2 = AlphaModule()
        mm.register(m1)
        mm.register(m2)
        assert mm.modules["alpha"] is m2

    def test_get_unknown(self):
        assert ModuleManager().get("nope") is None


class TestEnable:
    def test_enable_success(self):
        mm = ModuleManager()
        m = AlphaModule()
        mm.register(m)
        assert mm.enable("alpha") is True
        assert mm.is_enabled("alpha") is True
        assert m.enable_called is True
        assert mm.get_enabled_modules() == [m]

    def test_enable_nonexistent(self):
        assert ModuleManager().enable("nonexistent") is False

    def test_enable_already_enabled(self):
        mm = ModuleManager()
        mm.register(AlphaModule())
        mm.enable("alpha")
        assert mm.enable("alpha") is True

    def test_enable_with_dependency_met(self):
        mm = ModuleManager()
        mm.register(AlphaModule())
        mm.register(BetaModule())
        mm.enable("alpha")
        assert mm.enable("beta") is True

    def test_enable_with_dependency_not_met(self):
        mm = ModuleManager()
        mm.register(BetaModule())
        assert mm.enable("beta") is False

    def test_enable_with_dependency_not_enabled(self):
        mm = ModuleManager()
        mm.register(AlphaModule())
        b = BetaModule()
        mm.register(b)
        assert mm.enable("beta") is False
        assert b.enable_called is False


class TestDisable:
    def test_disable_success(self):
        mm = ModuleManager()
        m = AlphaModule()
        mm.register(m)
        mm.enable("alpha")
        assert mm.disable("alpha") is True
        assert mm.is_enabled("alpha") is False
        assert m.disable_called is True

    def test_disable_nonexistent(self):
        assert ModuleManager().disable("nonexistent") is False

    def test_disable_already_disabled(self):
        mm = ModuleManager()
        mm.register(AlphaModule())
        assert mm.disable("alpha") is True

    def test_deep_cascade_disable(self):
        """alpha → beta → gamma 체인 cascade"""
        mm = ModuleManager()
        mm.register(AlphaModule())
        b = BetaModule()
        g = GammaModule()
        mm.register(b)
        mm.register(g)
        mm.enable("alpha")
        mm.enable("beta")
        mm.enable("gamma")
        mm.disable("alpha")
        assert not mm.is_enabled("beta")
        assert not mm.is_enabled("gamma")
        assert b.disable_called is True
        assert g.disable_called is True


class TestProcessTurn:
    def test_only_enabled_modules_process(self):
        mm = ModuleManager()
        m = AlphaModule()
        mm.register(m)
        mm.register(BetaModule())
        mm.enable("alpha")
        mm.process_turn(make_context())
        assert m.turns_processed == 1

    def test_process_turn_resets_chain(self):
        bus = EventBus()
        mm = ModuleManager(bus)
        mm.register(AlphaModule())
        mm.enable("alpha")

        assert bus.emit(GameEvent(event_type="test", data={}, source="test")) is True
        assert bus.emit(GameEvent(event_type="test", data={}, source="test")) is False
        mm.process_turn(make_context())
        assert bus.emit(GameEvent(event_type="test", data={}, source="test")) is True


class TestProcessEntityIdle:
    def test_first_consumer_wins(self):
        mm = ModuleManager()
        a = AlphaModule(consumes={"g1"})
        b = BetaModule()
        mm.register(a)
        mm.register(b)
        mm.enable("alpha")
        mm.enable("beta")

        assert mm.process_entity_idle("g1", make_context()) is True
        assert a.idle_seen == ["g1"]
        assert b.idle_seen == []

    def test_falls_through_to_next_module(self):
        mm = ModuleManager()
        a = AlphaModule()
        b = BetaModule()
        mm.register(a)
        mm.register(b)
        mm.enable("alpha")
        mm.enable("beta")

        assert mm.process_entity_idle("g2", make_context()) is True
        assert a.idle_seen == ["g2"]
        assert b.idle_seen == ["g2"]

    def test_disabled_modules_skipped(self):
        mm = ModuleManager()
        a = AlphaModule(consumes={"g1"})
        mm.register(a)
        assert mm.process_entity_idle("g1", make_context()) is False
        assert a.idle_seen == []


class TestIsEnabled:
    def test_not_registered(self):
        assert ModuleManager().is_enabled("unknown") is False

    def test_has_event_bus(self):
        bus = EventBus()
        assert ModuleManager(bus).event_bus is bus
        assert ModuleManager().event_bus is not None
