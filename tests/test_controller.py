"""Tests for multitab.control.controller.TabController."""

from __future__ import annotations

from multitab.control.controller import Action, Direction, TabController
from multitab.control.keys import KeyEvent
from multitab.pty.manager import PTYManager
from multitab.session.wire import EventType, Wire


def _key(name: str, character: str | None = None) -> KeyEvent:
    return KeyEvent(key=name, character=character)


def _drain(q) -> list:
    events = []
    while not q.empty():
        events.append(q.get_nowait())
    return events


class TestStart:
    def test_first_tab_is_active(self, controller: TabController, spawner) -> None:
        session = controller.start()
        assert session.name == "Shell 1"
        assert controller.active_id == session.id
        assert (spawner.last.cols, spawner.last.rows) == (80, 20)

    def test_snapshot(self, controller: TabController, spawner) -> None:
        controller.start()
        spawner.last.emit_data("a\nb\nc")
        tabs = controller.snapshot(visible_rows=2)
        assert len(tabs) == 1
        assert tabs[0].active is True
        assert tabs[0].index == 0
        assert tabs[0].lines == ["b", "c"]


class TestCommands:
    def test_new_tab_becomes_active(self, controller: TabController) -> None:
        controller.start()
        assert controller.handle_key(_key("ctrl+t")) is Action.NEW_TAB
        sessions = controller.manager.list_sessions()
        assert [s.name for s in sessions] == ["Shell 1", "Shell 2"]
        assert controller.active_id == sessions[1].id

    def test_next_prev_cycle(self, controller: TabController) -> None:
        controller.start()
        controller.create_tab()
        controller.create_tab()
        ids = [s.id for s in controller.manager.list_sessions()]
        assert controller.active_id == ids[2]

        controller.handle_key(_key("ctrl+right"))
        assert controller.active_id == ids[0]
        controller.handle_key(_key("ctrl+left"))
        assert controller.active_id == ids[2]
        controller.handle_key(_key("ctrl+left"))
        assert controller.active_id == ids[1]

    def test_cycling_full_circle_returns_home(self, controller: TabController) -> None:
        controller.start()
        for _ in range(3):
            controller.create_tab()
        start = controller.active_id
        for _ in range(4):
            controller.switch_tab(Direction.NEXT)
        assert controller.active_id == start
        for _ in range(4):
            controller.switch_tab(Direction.PREV)
        assert controller.active_id == start

    def test_switch_with_one_tab_is_noop(self, controller: TabController, spawner) -> None:
        session = controller.start()
        assert controller.handle_key(_key("ctrl+right")) is Action.NEXT_TAB
        assert controller.active_id == session.id
        assert spawner.last.resizes == []

    def test_close_active_activates_last_remaining(self, controller: TabController) -> None:
        controller.start()
        controller.create_tab()
        controller.create_tab()
        ids = [s.id for s in controller.manager.list_sessions()]
        controller.switch_tab(Direction.NEXT)  # -> first tab
        assert controller.active_id == ids[0]

        assert controller.handle_key(_key("ctrl+w")) is Action.CLOSE_TAB
        assert ids[0] not in controller.manager
        assert controller.active_id == ids[2]

    def test_close_background_tab_keeps_active(self, controller: TabController) -> None:
        first = controller.start()
        second = controller.create_tab()
        assert second is not None
        controller.close_tab(first.id)
        assert controller.active_id == second.id

    def test_close_unknown_tab_is_noop(self, controller: TabController) -> None:
        session = controller.start()
        controller.close_tab("tab-404")
        assert controller.active_id == session.id
        assert len(controller.manager) == 1

    def test_close_last_tab_quits(
        self, controller: TabController, wire: Wire, quit_calls: list[int]
    ) -> None:
        q = wire.subscribe()
        controller.start()
        controller.handle_key(_key("ctrl+w"))
        assert controller.closed is True
        assert controller.active_id is None
        assert quit_calls == [1]
        assert controller.manager.closed is True
        assert _drain(q)[-1] is None

    def test_quit(self, controller: TabController, spawner, quit_calls: list[int]) -> None:
        controller.start()
        controller.create_tab()
        assert controller.handle_key(_key("ctrl+q")) is Action.QUIT
        assert quit_calls == [1]
        assert len(controller.manager) == 0
        assert all(h.kill_count == 1 for h in spawner.handles)

    def test_quit_runs_once(self, controller: TabController, quit_calls: list[int]) -> None:
        controller.start()
        controller.quit()
        controller.quit()
        assert quit_calls == [1]

    def test_input_after_quit_ignored(self, controller: TabController, spawner) -> None:
        controller.start()
        handle = spawner.last
        controller.quit()
        assert controller.handle_key(_key("a", "a")) is Action.IGNORED
        assert controller.handle_key(_key("ctrl+t")) is Action.IGNORED
        assert controller.send_text("echo") is Action.IGNORED
        assert handle.written == []
        assert len(spawner.handles) == 1


class TestSpawnFailure:
    def test_new_tab_failure_reports_and_keeps_active(
        self, manager: PTYManager, wire: Wire, spawner
    ) -> None:
        controller = TabController(manager, wire=wire)
        first = controller.start()
        q = wire.subscribe()

        spawner.broken.add("/bin/fake-sh")
        assert controller.create_tab() is None

        assert controller.active_id == first.id
        assert len(manager) == 1
        events = _drain(q)
        assert len(events) == 1
        assert events[0].type == EventType.ERROR
        assert events[0].session_id is None
        assert "cannot start /bin/fake-sh" in events[0].data["error"]

    def test_failed_number_is_not_reused(self, manager: PTYManager, spawner) -> None:
        controller = TabController(manager)
        controller.start()
        spawner.broken.add("/bin/fake-sh")
        controller.create_tab()
        spawner.broken.clear()
        session = controller.create_tab()
        assert session is not None
        assert session.id == "tab-3"
        assert session.name == "Shell 3"


class TestInput:
    def test_printable_goes_to_active(self, controller: TabController, spawner) -> None:
        controller.start()
        assert controller.handle_key(_key("l", "l")) is Action.WRITE
        assert controller.handle_key(_key("enter", "\r")) is Action.WRITE
        assert spawner.last.written == ["l", "\r"]

    def test_ctrl_c_is_forwarded(self, controller: TabController, spawner) -> None:
        controller.start()
        assert controller.handle_key(_key("ctrl+c")) is Action.WRITE
        assert spawner.last.written == ["\x03"]
        assert controller.closed is False

    def test_arrows_translated(self, controller: TabController, spawner) -> None:
        controller.start()
        controller.handle_key(_key("up"))
        controller.handle_key(_key("backspace"))
        assert spawner.last.written == ["\x1b[A", "\x7f"]

    def test_empty_key_dropped(self, controller: TabController, spawner) -> None:
        controller.start()
        assert controller.handle_key(_key("f24")) is Action.DROPPED
        assert spawner.last.written == []

    def test_input_only_reaches_active(self, controller: TabController, spawner) -> None:
        controller.start()
        first = spawner.last
        controller.create_tab()
        second = spawner.last
        controller.send_text("pwd\r")
        assert second.written == ["pwd\r"]
        assert first.written == []

    def test_paste_sent_unchanged(self, controller: TabController, spawner) -> None:
        controller.start()
        controller.send_text("line one\nline two")
        assert spawner.last.written == ["line one\nline two"]


class TestResize:
    def test_resize_reaches_active(self, controller: TabController, spawner) -> None:
        controller.start()
        controller.resize(120, 40)
        assert spawner.last.resizes == [(120, 40)]
        assert controller.size == (120, 40)

    def test_background_tab_resized_on_activation(
        self, controller: TabController, spawner
    ) -> None:
        controller.start()
        first = spawner.last
        controller.create_tab()
        second = spawner.last

        controller.resize(100, 30)
        assert second.resizes == [(100, 30)]
        assert first.resizes == []

        controller.switch_tab(Direction.PREV)
        assert first.resizes == [(100, 30)]

    def test_non_positive_size_ignored(self, controller: TabController, spawner) -> None:
        controller.start()
        controller.resize(0, 10)
        controller.resize(10, -1)
        assert spawner.last.resizes == []
        assert controller.size == (80, 20)


class TestEndToEnd:
    def test_typical_session(
        self, controller: TabController, wire: Wire, spawner, quit_calls: list[int]
    ) -> None:
        q = wire.subscribe()

        # Start: one tab at the reported size
        shell1 = controller.start()
        h1 = spawner.last
        assert shell1.name == "Shell 1"
        assert (h1.cols, h1.rows) == (80, 20)

        # Type a command; the fake shell answers
        for ch in "echo hi":
            controller.handle_key(_key(ch, ch))
        controller.handle_key(_key("enter", "\r"))
        assert "".join(h1.written) == "echo hi\r"
        h1.emit_data("hi\r\n")
        assert "hi" in shell1.buffer.text

        # New tab, then back to the first
        controller.handle_key(_key("ctrl+t"))
        shell2 = controller.manager.list_sessions()[1]
        assert shell2.name == "Shell 2"
        assert controller.active_id == shell2.id
        controller.handle_key(_key("ctrl+left"))
        assert controller.active_id == shell1.id

        # Close Shell 1; Shell 2 is all that is left
        controller.handle_key(_key("ctrl+w"))
        assert [s.id for s in controller.manager.list_sessions()] == [shell2.id]
        assert controller.active_id == shell2.id
        assert h1.kill_count == 1

        # A flood of output is clamped to the floor
        spawner.last.emit_data("x" * 60_000)
        assert len(shell2.buffer) == 40_000

        data_events = [e for e in _drain(q) if e is not None and e.type == EventType.DATA]
        assert [e.session_id for e in data_events] == [shell1.id, shell2.id]
        assert quit_calls == []
