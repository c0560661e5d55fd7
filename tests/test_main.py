"""Tests for stablecoin_pay.main entry point."""

from __future__ import annotations

from unittest.mock import patch


def test_main_calls_uvicorn_run(monkeypatch) -> None:
    """main() hands the app factory and server settings to uvicorn."""
    monkeypatch.setenv("STABLEPAY_SERVER__PORT", "8123")
    monkeypatch.delenv("STABLEPAY_RELOAD", raising=False)
    with patch("stablecoin_pay.main.uvicorn.run") as mock_run:
        from stablecoin_pay.main import main

        main()
        mock_run.assert_called_once()
        args, kwargs = mock_run.call_args
        assert args[0] == "stablecoin_pay.api.app:create_app"
        assert kwargs["factory"] is True
        assert kwargs["port"] == 8123
        assert kwargs["reload"] is False


def test_reload_flag(monkeypatch) -> None:
    monkeypatch.setenv("STABLEPAY_RELOAD", "true")
    with patch("stablecoin_pay.main.uvicorn.run") as mock_run:
        from stablecoin_pay.main import main

        main()
        assert mock_run.call_args.kwargs["reload"] is True
