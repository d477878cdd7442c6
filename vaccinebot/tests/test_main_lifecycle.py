from __future__ import annotations

import json
import os
from unittest.mock import AsyncMock, Mock, patch

import pytest

import main
from vaccinebot.config import Settings


def _settings(tmp_path) -> Settings:
    return Settings(
        telegram_token="TEST_TOKEN",
        state_file=str(tmp_path / "data" / "data.json"),
        log_dir=str(tmp_path / "data" / "logs"),
    )


def test_main_runs_once(tmp_path) -> None:
    settings = _settings(tmp_path)

    with (
        patch("main.load_settings", return_value=settings),
        patch("main._setup_logging") as setup_logging,
        patch("main.run", new=AsyncMock()) as run,
        patch("main.argparse.ArgumentParser.parse_args", return_value=type("Args", (), {"once": True})()),
    ):
        assert main.main() == 0

    setup_logging.assert_called_once_with(settings.log_dir)
    run.assert_awaited_once_with(settings, once=True)


def test_main_aborts_without_token() -> None:
    with (
        patch("main.load_settings", side_effect=RuntimeError("Missing required environment variable: TELEGRAM_TOKEN")),
        patch("main.run", new=AsyncMock()) as run,
        patch("main.argparse.ArgumentParser.parse_args", return_value=type("Args", (), {"once": False})()),
    ):
        with pytest.raises(RuntimeError, match="TELEGRAM_TOKEN"):
            main.main()

    run.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_once_checks_and_saves_state(tmp_path) -> None:
    settings = _settings(tmp_path)
    orchestrator = Mock()
    orchestrator.check_all = AsyncMock(return_value=[])

    with patch("main.build_orchestrator", return_value=orchestrator):
        await main.run(settings, once=True)

    orchestrator.check_all.assert_awaited_once_with()
    orchestrator.resume.assert_not_called()
    with open(settings.state_file, encoding="utf-8") as f:
        assert json.load(f) == {"activeChats": [], "lastSuccesses": []}


def test_setup_logging_creates_per_run_file(tmp_path) -> None:
    log_dir = str(tmp_path / "logs")

    with patch("main.logging.basicConfig") as basic_config:
        main._setup_logging(log_dir)

    handlers = basic_config.call_args.kwargs["handlers"]
    assert len(handlers) == 2
    file_name = os.path.basename(handlers[1].baseFilename)
    assert file_name.endswith(" log.txt")
    assert ":" not in file_name
    for handler in handlers:
        handler.close()
