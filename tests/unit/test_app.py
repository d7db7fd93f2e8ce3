"""Run wiring tests"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import ListSink

from harvester.app import build_parser, load_input, main, run_harvest
from harvester.core.exceptions import InvalidInputException
from harvester.crawlers.crawler import HarvestReport
from harvester.crawlers.queue import InMemoryRequestQueue
from harvester.crawlers.session import SessionPool


class TestLoadInput:
    def test_from_mapping(self):
        assert load_input({"zpids": ["1"]}).zpids == ["1"]

    def test_from_file(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"search": "Denver", "max_items": 5}), encoding="utf-8")

        run_input = load_input(path)

        assert run_input.search == "Denver"
        assert run_input.max_items == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidInputException):
            load_input(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(InvalidInputException):
            load_input(path)

    def test_schema_violation(self):
        with pytest.raises(InvalidInputException) as exc:
            load_input({"type": "sale"})
        assert exc.value.details["errors"]


class TestMain:
    def test_usage(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2

    def test_parser(self):
        args = build_parser().parse_args(["input.json", "--debug"])
        assert args.input == "input.json"
        assert args.debug is True

    def test_report_printed_and_debug_forwarded(self, tmp_path, capsys):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"zpids": ["1"]}), encoding="utf-8")
        report = HarvestReport(extracted=1, any_errors=False, handled=2, failed=0, elapsed=0.5)

        with patch("harvester.app.run_harvest", new=AsyncMock(return_value=report)) as run:
            assert main([str(path), "--debug"]) == 0

        assert run.await_args.args[0].debug_log is True
        assert json.loads(capsys.readouterr().out)["extracted"] == 1

    def test_invalid_input(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text("{}", encoding="utf-8")
        assert main([str(path)]) == 2


class TestRunHarvest:
    @pytest.mark.asyncio
    async def test_owned_browser_closes_discarded_session_contexts(self):
        report = HarvestReport(extracted=0, any_errors=False, handled=1, failed=0, elapsed=0.1)
        provider = MagicMock()
        provider.release_session = AsyncMock()

        with patch("harvester.crawlers.playwright.PlaywrightPageProvider", return_value=provider), \
                patch("harvester.crawlers.playwright.shutdown_shared_browser", AsyncMock()) as shutdown, \
                patch("harvester.app.ListingCrawler") as crawler_cls:
            crawler_cls.return_value.run = AsyncMock(return_value=report)
            result = await run_harvest(load_input({"zpids": ["1"]}), queue=InMemoryRequestQueue(), sink=ListSink())

        assert result is report
        sessions = crawler_cls.call_args.args[3]
        assert sessions.on_discard is provider.release_session
        shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_pages_leave_sessions_alone(self):
        report = HarvestReport(extracted=0, any_errors=False, handled=1, failed=0, elapsed=0.1)
        sessions = SessionPool(size=1, proxy_urls=[])

        with patch("harvester.app.ListingCrawler") as crawler_cls:
            crawler_cls.return_value.run = AsyncMock(return_value=report)
            await run_harvest(load_input({"zpids": ["1"]}), pages=MagicMock(), queue=InMemoryRequestQueue(),
                              sink=ListSink(), sessions=sessions)

        assert crawler_cls.call_args.args[3] is sessions
        assert sessions.on_discard is None
