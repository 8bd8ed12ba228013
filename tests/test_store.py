"""Tests for the JSON-file session store."""

from __future__ import annotations

import asyncio
import json

import pytest

from coach.errors import DataError, UpstreamFailure
from coach.store import JsonSessionStore

from conftest import SAMPLE_PGN, raw_game


@pytest.fixture()
def json_store(tmp_path):
    return JsonSessionStore(tmp_path)


class TestAnalyses:

    def test_round_trip(self, json_store, tmp_path):
        async def run():
            analysis_id = await json_store.create_analysis("alice", SAMPLE_PGN, raw_game(3), 1)
            return analysis_id, await json_store.get_analysis_by_id(analysis_id)

        analysis_id, record = asyncio.run(run())
        assert (tmp_path / "analyses" / f"{analysis_id}.json").is_file()
        assert record["username"] == "alice"
        assert record["pgn"] == SAMPLE_PGN
        assert record["last_viewed_move"] == 1
        assert len(record["analysis"]) == 3
        assert record["comments"] == []

    def test_missing_id(self, json_store):
        assert asyncio.run(json_store.get_analysis_by_id("nope")) is None

    @pytest.mark.parametrize("bad_id", ["../secrets", "a/b", "", None])
    def test_unsafe_ids_never_touch_disk(self, json_store, bad_id):
        assert asyncio.run(json_store.get_analysis_by_id(bad_id)) is None

    def test_updates(self, json_store):
        async def run():
            analysis_id = await json_store.create_analysis("alice", SAMPLE_PGN, [])
            await json_store.update_analysis(analysis_id, raw_game(5), 2)
            await json_store.update_last_viewed(analysis_id, 4)
            return await json_store.get_analysis_by_id(analysis_id)

        record = asyncio.run(run())
        assert len(record["analysis"]) == 5
        assert record["last_viewed_move"] == 4
        assert record["updated_at"] >= record["created_at"]

    def test_update_replaces_move_text(self, json_store):
        async def run():
            analysis_id = await json_store.create_analysis("alice", SAMPLE_PGN, raw_game(10))
            await json_store.update_analysis(analysis_id, raw_game(3), 0, pgn="1. d4 d5 2. c4")
            return await json_store.get_analysis_by_id(analysis_id)

        record = asyncio.run(run())
        assert record["pgn"] == "1. d4 d5 2. c4"
        assert len(record["analysis"]) == 3

    def test_concurrent_updates_keep_both_fields(self, json_store, tmp_path):
        async def run():
            analysis_id = await json_store.create_analysis("alice", SAMPLE_PGN, [])
            for i in range(20):
                await asyncio.gather(
                    json_store.update_analysis(analysis_id, raw_game(5), 0),
                    json_store.update_last_viewed(analysis_id, i),
                )
                record = await json_store.get_analysis_by_id(analysis_id)
                assert len(record["analysis"]) == 5
            return analysis_id

        analysis_id = asyncio.run(run())
        assert not list((tmp_path / "analyses").glob("*.tmp"))
        assert (tmp_path / "analyses" / f"{analysis_id}.json").is_file()

    def test_update_unknown_id(self, json_store):
        with pytest.raises(DataError):
            asyncio.run(json_store.update_last_viewed("missing", 3))

    def test_corrupt_file_is_backed_up(self, json_store, tmp_path):
        folder = tmp_path / "analyses"
        folder.mkdir()
        (folder / "broken.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(DataError):
            asyncio.run(json_store.get_analysis_by_id("broken"))
        assert (folder / "broken.bak").read_text(encoding="utf-8") == "{not json"

    def test_non_object_file_is_corrupt(self, json_store, tmp_path):
        folder = tmp_path / "analyses"
        folder.mkdir()
        (folder / "listy.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(DataError):
            asyncio.run(json_store.get_analysis_by_id("listy"))


class TestFinishedGames:

    def test_saves_record_and_pgn(self, json_store, tmp_path):
        game_id = asyncio.run(json_store.save_finished_game("bob", SAMPLE_PGN, 800, "1-0", "Knightly Nora"))

        record = json.loads((tmp_path / "games" / f"{game_id}.json").read_text(encoding="utf-8"))
        assert record["result"] == "1-0"
        assert record["elo"] == 800
        assert record["bot_name"] == "Knightly Nora"

        pgn_files = list((tmp_path / "games").glob("game_*.pgn"))
        assert len(pgn_files) == 1
        assert pgn_files[0].read_text(encoding="utf-8").strip() == SAMPLE_PGN
        assert not list((tmp_path / "games").glob("*.tmp"))

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = JsonSessionStore(blocker)
        with pytest.raises(UpstreamFailure):
            asyncio.run(store.save_finished_game("bob", SAMPLE_PGN, 800, "1-0", "Bot"))


class TestHistory:

    def test_list_analyses_per_user(self, json_store):
        async def run():
            first = await json_store.create_analysis("alice", SAMPLE_PGN, raw_game(2))
            await json_store.create_analysis("bob", SAMPLE_PGN, raw_game(4))
            second = await json_store.create_analysis("alice", "1. d4", raw_game(1))
            await json_store.update_last_viewed(first, 1)
            return first, second, await json_store.list_analyses("alice")

        first, second, history = asyncio.run(run())
        assert [h["id"] for h in history] == [first, second]
        assert history[0]["total_moves"] == 2
        assert history[0]["last_viewed_move"] == 1
        assert "analysis" not in history[0]

    def test_list_skips_corrupt_records(self, json_store, tmp_path):
        async def run():
            analysis_id = await json_store.create_analysis("alice", SAMPLE_PGN, [])
            (tmp_path / "analyses" / "broken.json").write_text("{nope", encoding="utf-8")
            return analysis_id, await json_store.list_analyses("alice")

        analysis_id, history = asyncio.run(run())
        assert [h["id"] for h in history] == [analysis_id]

    def test_empty_history(self, json_store):
        assert asyncio.run(json_store.list_analyses("nobody")) == []
        assert asyncio.run(json_store.list_games("nobody")) == []

    def test_list_games_per_user(self, json_store):
        async def run():
            game_id = await json_store.save_finished_game("bob", SAMPLE_PGN, 800, "0-1", "Bot")
            await json_store.save_finished_game("carol", SAMPLE_PGN, 400, "1-0", "Bot")
            return game_id, await json_store.list_games("bob")

        game_id, games = asyncio.run(run())
        assert len(games) == 1
        assert games[0]["id"] == game_id
        assert games[0]["result"] == "0-1"
        assert games[0]["elo"] == 800
