"""Unit tests for CLI interface.

Tests CLI commands, argument parsing, and output formatting.
Focus: Fast, isolated tests with the gateway built over fake adapters.
"""

import re
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from aigate import __version__
from aigate.cli.main import app
from aigate.llm.base import ProviderError
from aigate.llm.routing import Gateway

# Create CLI runner
runner = CliRunner()


def strip_ansi(text: str) -> str:
    """Strip ANSI escape codes from text."""
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


@pytest.fixture
def patch_gateway(make_router):
    """Patch Gateway.from_settings to return a gateway over the given adapters."""

    def _patch(adapters):
        gateway = Gateway(make_router(adapters))
        return patch("aigate.llm.routing.Gateway.from_settings", return_value=gateway)

    return _patch


@pytest.mark.unit
class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        output = strip_ansi(result.stdout)
        assert "serve" in output
        assert "complete" in output
        assert "providers" in output

    def test_cli_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in strip_ansi(result.stdout)


@pytest.mark.unit
class TestCompleteCommand:
    """Test `aigate complete`."""

    def test_complete_prints_text(self, patch_gateway, fake_adapter_class) -> None:
        adapter = fake_adapter_class("a", fragments=["Hello", " there"])

        with patch_gateway([adapter]):
            result = runner.invoke(app, ["complete", "Hi", "--system", "Be brief"])

        assert result.exit_code == 0
        assert "Hello there" in strip_ansi(result.stdout)
        assert adapter.last_request.system_prompt == "Be brief"
        assert adapter.closed is True

    def test_complete_stream(self, patch_gateway, fake_adapter_class) -> None:
        adapter = fake_adapter_class("a", fragments=["Hel", "lo"])

        with patch_gateway([adapter]):
            result = runner.invoke(app, ["complete", "Hi", "--stream"])

        assert result.exit_code == 0
        assert "Hello" in strip_ansi(result.stdout)
        assert adapter.stream_calls == 1

    def test_complete_preferred_provider(self, patch_gateway, fake_adapter_class) -> None:
        a, b = fake_adapter_class("a"), fake_adapter_class("b")

        with patch_gateway([a, b]):
            result = runner.invoke(app, ["complete", "Hi", "--provider", "b"])

        assert result.exit_code == 0
        assert a.complete_calls == 0
        assert b.complete_calls == 1

    def test_complete_failure_exits_1(self, patch_gateway, fake_adapter_class) -> None:
        adapter = fake_adapter_class("a", error=ProviderError("down"))

        with patch_gateway([adapter]):
            result = runner.invoke(app, ["complete", "Hi"])

        assert result.exit_code == 1

    def test_complete_rejects_bad_temperature(self) -> None:
        result = runner.invoke(app, ["complete", "Hi", "--temperature", "3.0"])

        assert result.exit_code != 0


@pytest.mark.unit
class TestProvidersCommand:
    """Test `aigate providers`."""

    def test_lists_providers(self, patch_gateway, fake_adapter_class) -> None:
        adapters = [fake_adapter_class("a"), fake_adapter_class("b", available=False)]

        with patch_gateway(adapters):
            result = runner.invoke(app, ["providers"])

        assert result.exit_code == 0
        output = strip_ansi(result.stdout)
        assert "a-model" in output
        assert "no credentials" in output
        assert "Primary provider: a" in output

    def test_no_available_providers(self, patch_gateway, fake_adapter_class) -> None:
        with patch_gateway([fake_adapter_class("a", available=False)]):
            result = runner.invoke(app, ["providers"])

        assert result.exit_code == 0
        assert "No provider is available" in strip_ansi(result.stdout)


@pytest.mark.unit
class TestServeCommand:
    """Test `aigate serve`."""

    def test_serve_runs_uvicorn(self) -> None:
        with patch("aigate.api.server.run_server") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9000"])

        assert result.exit_code == 0
        mock_run.assert_called_once_with(host="127.0.0.1", port=9000, reload=False)
