"""Tests for the command-line entry point (workflows patched)."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from opradraft import cli
from opradraft.core.errors import NotFoundError
from opradraft.core.types import DiscoveryResult, ProcessResult
from opradraft.pipeline.municipalities import DiscoveryOutcome


class TestSplitCounty:
    def test_multi_word_names(self):
        assert cli._split_county(["Jersey", "City", "--county", "Hudson"]) == ("Jersey City", "Hudson")

    def test_no_county(self):
        assert cli._split_county(["Hoboken"]) == ("Hoboken", None)

    def test_empty_county(self):
        assert cli._split_county(["Hoboken", "--county"]) == ("Hoboken", None)


class TestMain:
    def test_no_args_prints_usage(self, capsys):
        with patch("sys.argv", ["opradraft"]), pytest.raises(SystemExit) as exc:
            cli.main()
        assert exc.value.code == 1
        assert "Usage: opradraft" in capsys.readouterr().out

    def test_help_exits_zero(self):
        with patch("sys.argv", ["opradraft", "--help"]), pytest.raises(SystemExit) as exc:
            cli.main()
        assert exc.value.code == 0

    def test_process(self, capsys):
        services = MagicMock()
        services.processor.process = AsyncMock(return_value=ProcessResult(ordinance_id="ord-1", chunk_count=7))
        with (
            patch("sys.argv", ["opradraft", "process", "ord-1"]),
            patch("opradraft.pipeline.services.get_services", return_value=services),
        ):
            cli.main()
        assert "Indexed 7 chunks for ordinance ord-1" in capsys.readouterr().out

    def test_domain_error_exits_nonzero(self, capsys):
        services = MagicMock()
        services.processor.process = AsyncMock(side_effect=NotFoundError("Ordinance ord-9 not found"))
        with (
            patch("sys.argv", ["opradraft", "process", "ord-9"]),
            patch("opradraft.pipeline.services.get_services", return_value=services),
            pytest.raises(SystemExit) as exc,
        ):
            cli.main()
        assert exc.value.code == 1
        assert "Error (not_found): Ordinance ord-9 not found" in capsys.readouterr().out

    def test_discover_miss_exits_two(self, capsys):
        outcome = DiscoveryOutcome(municipality_id="m-1", result=DiscoveryResult(success=False, reasoning=["[fast_path] none"]))
        with (
            patch("sys.argv", ["opradraft", "discover", "Hoboken", "--county", "Hudson"]),
            patch("opradraft.pipeline.services.get_services", return_value=MagicMock()),
            patch("opradraft.pipeline.municipalities.discover_municipality", AsyncMock(return_value=outcome)) as mock_discover,
            pytest.raises(SystemExit) as exc,
        ):
            cli.main()
        assert exc.value.code == 2
        assert mock_discover.call_args.args[1:] == ("Hoboken", "Hudson")
        out = capsys.readouterr().out
        assert "[fast_path] none" in out
        assert "No ordinance found." in out
