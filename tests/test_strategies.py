"""Tests for fallback strategy chains."""

import pytest

from conftest import FakeSurface, FakeStrudelPage
from strudel_bridge.agent import editor_chains
from strudel_bridge.agent.editor_chains import build_editor_chains
from strudel_bridge.agent.strategies import Strategy, StrategyChain
from strudel_bridge.protocol.errors import StrategyExhaustedError


class Recorder:
    """Builds strategies that log each invocation."""

    def __init__(self):
        self.invoked = []

    def returning(self, name, value):
        async def attempt(payload):
            self.invoked.append(name)
            return value
        return Strategy(name, attempt)

    def raising(self, name):
        async def attempt(payload):
            self.invoked.append(name)
            raise RuntimeError(f"{name} exploded")
        return Strategy(name, attempt)


class TestStrategyChain:
    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self):
        rec = Recorder()
        chain = StrategyChain("apply", [rec.returning("a", True), rec.returning("b", True)])

        result = await chain.run("code")

        assert result.success
        assert result.strategy == "a"
        assert rec.invoked == ["a"]

    @pytest.mark.asyncio
    async def test_last_strategy_wins_after_failures(self):
        rec = Recorder()
        chain = StrategyChain("evaluate", [
            rec.returning("a", False),
            rec.raising("b"),
            rec.returning("c", None),
            rec.returning("d", True),
            rec.returning("e", True),
        ])

        result = await chain.run()

        assert result.success
        assert result.strategy == "d"
        assert rec.invoked == ["a", "b", "c", "d"]
        assert result.attempted == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_exhaustion_tries_each_once(self):
        rec = Recorder()
        chain = StrategyChain("stop", [rec.raising("a"), rec.returning("b", False), rec.raising("c")])

        result = await chain.run()

        assert not result.success
        assert rec.invoked == ["a", "b", "c"]
        assert result.error == "No stop strategy succeeded (tried: a, b, c)"
        with pytest.raises(StrategyExhaustedError):
            result.raise_for_status()

    @pytest.mark.asyncio
    async def test_custom_acceptance(self):
        rec = Recorder()
        chain = StrategyChain(
            "read",
            [rec.returning("a", None), rec.returning("b", "")],
            accept=lambda value: value is not None,
        )

        result = await chain.run()

        assert result.success
        assert result.value == ""
        assert result.strategy == "b"

    def test_names_and_len(self):
        rec = Recorder()
        chain = StrategyChain("apply", [rec.returning("a", True), rec.returning("b", True)])
        assert chain.names == ["a", "b"]
        assert len(chain) == 2


class TestEditorChains:
    def test_priority_order(self):
        chains = build_editor_chains(FakeSurface())

        assert chains.apply.names == [
            "codemirror_dispatch",
            "content_editable_events",
            "exec_command_insert",
            "codemirror5_set_value",
            "textarea_value",
        ]
        assert chains.evaluate.names == ["global_eval_function", "play_button", "keyboard_shortcut"]
        assert chains.stop.names == ["global_stop_function", "stop_button"]
        assert chains.read.names == [
            "codemirror_state",
            "content_text",
            "codemirror5_get_value",
            "textarea_value",
        ]

    @pytest.mark.asyncio
    async def test_apply_passes_selector_and_code(self):
        surface = FakeStrudelPage()
        await surface.locate_editor()
        chains = build_editor_chains(surface)

        result = await chains.apply.run('s("bd")')

        assert result.strategy == "codemirror_dispatch"
        assert surface.content == 's("bd")'
        assert (editor_chains.CODEMIRROR_DISPATCH, [".cm-editor", 's("bd")']) in surface.calls

    @pytest.mark.asyncio
    async def test_apply_falls_back_to_textarea(self):
        surface = FakeSurface(editor="textarea", responses={
            editor_chains.CODEMIRROR_DISPATCH: False,
            editor_chains.CONTENT_EDITABLE_EVENTS: RuntimeError("no .cm-content"),
            editor_chains.TEXTAREA_SET_VALUE: True,
        })
        await surface.locate_editor()

        result = await build_editor_chains(surface).apply.run("n(1)")

        assert result.strategy == "textarea_value"

    @pytest.mark.asyncio
    async def test_keyboard_shortcut_last_resort(self):
        surface = FakeSurface()
        await surface.locate_editor()

        result = await build_editor_chains(surface).evaluate.run("n(1)")

        assert result.strategy == "keyboard_shortcut"
        assert surface.keys == ["Control+Enter"]

    @pytest.mark.asyncio
    async def test_read_accepts_empty_editor(self):
        surface = FakeSurface(responses={editor_chains.CONTENT_TEXT: ""})

        result = await build_editor_chains(surface).read.run()

        assert result.success
        assert result.strategy == "content_text"
        assert result.value == ""
