import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import PersistenceError, SyncAlreadyRunningError
from schemas.api import SyncSummary
from scripts import run_sync as cli


def _patched_database():
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = AsyncMock()
    session_maker.return_value.__aexit__.return_value = False
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return session_maker, engine


def test_parse_args():
    assert cli.parse_args([]).force is False
    assert cli.parse_args(["--force"]).force is True


@pytest.mark.asyncio
async def test_run_sync_prints_summary(capsys):
    session_maker, engine = _patched_database()
    with patch.object(cli, "async_session_maker", session_maker), patch.object(cli, "engine", engine), \
            patch.object(cli, "SyncRunner") as mock_runner_cls:
        mock_runner_cls.return_value.sync_from_terviseamet = AsyncMock(
            return_value=SyncSummary(feeds_checked=7, feeds_unchanged=7)
        )

        exit_code = await cli.run_sync(force=True)

    assert exit_code == 0
    mock_runner_cls.return_value.sync_from_terviseamet.assert_awaited_once_with(force=True)
    printed = json.loads(capsys.readouterr().out)
    assert printed["feedsChecked"] == 7
    assert printed["feedsUnchanged"] == 7
    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("error, expected", [
    (SyncAlreadyRunningError("busy"), 2),
    (PersistenceError("database unavailable"), 1),
])
async def test_run_sync_exit_codes(error, expected):
    session_maker, engine = _patched_database()
    with patch.object(cli, "async_session_maker", session_maker), patch.object(cli, "engine", engine), \
            patch.object(cli, "SyncRunner") as mock_runner_cls:
        mock_runner_cls.return_value.sync_from_terviseamet = AsyncMock(side_effect=error)

        assert await cli.run_sync(force=False) == expected
