"""Tests for the replay entry point."""

import json

import pytest

import main
from demand_intake.channels.payloads import text_payload
from demand_intake.engine import IdleSweeper
from tests.conftest import SENDER


class TestReplay:
    @pytest.mark.asyncio
    async def test_replay_runs_the_idle_sweeper(self, tmp_path, monkeypatch, capsys):
        calls = []
        start, stop = IdleSweeper.start, IdleSweeper.stop

        def recording_start(self):
            calls.append("start")
            start(self)

        async def recording_stop(self):
            calls.append("stop")
            await stop(self)

        monkeypatch.setattr(IdleSweeper, "start", recording_start)
        monkeypatch.setattr(IdleSweeper, "stop", recording_stop)

        path = tmp_path / "payloads.jsonl"
        lines = [json.dumps(text_payload(SENDER, "oi", message_id="WAMID.1")), "", "{not json"]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        await main._replay(path)

        assert calls == ["start", "stop"]
        out = capsys.readouterr().out
        assert f"-> {SENDER}: Bom" in out or f"-> {SENDER}: Boa" in out
