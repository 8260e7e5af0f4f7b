"""Tests for CLI commands: help, queue, study, seed, stats, serve, vocab and config."""

import json
import logging
import random
from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from mneme.application.config import AppConfig
from mneme.application.session_service import StudySessionService
from mneme.application.stats import StudyStatsService
from mneme.domain.study.models import CardState, ScheduleResult
from mneme.domain.study.ports import Scheduler
from mneme.interface.cli import app

runner = CliRunner()


@pytest.fixture
def memory_config():
    with patch("mneme.interface.cli.resolve_config") as mock_resolve:
        mock_resolve.return_value = AppConfig(backend="memory")
        yield mock_resolve


@pytest.fixture
def study_service(repo, now):
    scheduler = MagicMock(spec=Scheduler)
    scheduler.schedule.side_effect = lambda card, rating, when: ScheduleResult(
        card=replace(card, state=CardState.REVIEW, due=when + timedelta(days=1)),
        stability=1.0,
        difficulty=5.0,
        elapsed_days=0,
        scheduled_days=1,
    )
    service = StudySessionService(repo, scheduler, rng=random.Random(0), clock=lambda: now)
    with patch("mneme.application.factory.get_study_service", return_value=service):
        yield service


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "multi-mode spaced-repetition vocabulary study" in result.stdout
    assert "study" in result.stdout
    assert "queue" in result.stdout
    assert "config" in result.stdout


# --- Queue ---


def test_queue_empty(memory_config):
    result = runner.invoke(app, ["queue"])
    assert result.exit_code == 0
    assert "Relearning: 0" in result.stdout
    assert "New:        0 (of 0 available)" in result.stdout
    assert "Running low on new cards" in result.stdout


def test_queue_passes_overrides(memory_config):
    runner.invoke(app, ["queue", "--daily-limit", "5", "--backend", "memory"])
    memory_config.assert_called_once_with({"backend": "memory", "daily_new_limit": 5})


def test_queue_with_cards(memory_config, study_service, make_card):
    make_card(CardState.REVIEW)
    make_card(CardState.NEW)

    result = runner.invoke(app, ["queue", "--user", "u1"])

    assert result.exit_code == 0
    assert "Review:     1" in result.stdout
    assert "Quota: 0/20 used, 20 remaining" in result.stdout


# --- Study ---


def test_study_nothing_due(memory_config):
    result = runner.invoke(app, ["study"])
    assert result.exit_code == 0
    assert "Nothing to study right now." in result.stdout


def test_study_session(memory_config, study_service, repo, make_card):
    card = make_card(CardState.REVIEW, word="abandon")

    # Fail the first mode twice, then pass both modes
    result = runner.invoke(app, ["study", "--user", "u1"], input="n\nn\ny\ny\n")

    assert result.exit_code == 0, result.output
    assert "abandon" in result.stdout
    assert "(retry)" in result.stdout
    assert "Card done: Good" in result.stdout
    assert "Session complete: 1 cards." in result.stdout
    assert repo.cards[card.id].state == CardState.REVIEW
    assert len(repo.review_logs) == 1


def test_study_invalid_choice_reprompts(memory_config, study_service, make_card):
    make_card(CardState.REVIEW)

    result = runner.invoke(app, ["study", "--user", "u1"], input="x\ny\ny\n")

    assert result.exit_code == 0
    assert "Please answer y, n, h or q." in result.stdout
    assert "Card done: Easy" in result.stdout


def test_study_quit(memory_config, study_service, repo, make_card):
    make_card(CardState.REVIEW)

    result = runner.invoke(app, ["study", "--user", "u1"], input="y\nq\n")

    assert result.exit_code == 0
    assert "Session abandoned." in result.stdout
    assert repo.review_logs == []


# --- Seed ---


@patch("mneme.application.factory.get_study_service")
def test_seed_command(mock_factory, memory_config):
    service = MagicMock()
    service.seed = AsyncMock(return_value=3)
    mock_factory.return_value = service

    result = runner.invoke(app, ["seed", "--deck", "oxford", "--limit", "10"])

    assert result.exit_code == 0
    assert "Added 3 cards from 'oxford'." in result.stdout
    service.seed.assert_awaited_once_with("local", "oxford", 10)


@patch("mneme.application.factory.get_study_service")
def test_seed_nothing_added(mock_factory, memory_config):
    service = MagicMock()
    service.seed = AsyncMock(return_value=0)
    mock_factory.return_value = service

    result = runner.invoke(app, ["seed", "--deck", "oxford"])

    assert result.exit_code == 0
    assert "No new vocabulary to add." in result.stdout


def test_seed_requires_deck(memory_config):
    result = runner.invoke(app, ["seed"])
    assert result.exit_code != 0


# --- Stats ---


def test_stats_json(memory_config, repo, make_card):
    make_card(CardState.REVIEW)
    make_card(CardState.NEW)

    with patch(
        "mneme.application.factory.get_stats_service", return_value=StudyStatsService(repo)
    ):
        result = runner.invoke(app, ["stats", "--user", "u1", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["total_cards"] == 2
    assert data["cards_by_state"]["review"] == 1
    assert data["streak"] == 0


def test_stats_text(memory_config):
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total cards: 0" in result.stdout
    assert "Streak: 0 days" in result.stdout


# --- Serve ---


@patch("uvicorn.run")
def test_serve_command(mock_run, memory_config, tmp_path):
    memory_config.return_value = AppConfig(backend="memory", log_dir=tmp_path / "logs")
    root = logging.getLogger()
    handlers_before = list(root.handlers)
    try:
        result = runner.invoke(app, ["serve", "--port", "9000"])
    finally:
        for handler in set(root.handlers) - set(handlers_before):
            root.removeHandler(handler)
            handler.close()

    assert result.exit_code == 0
    mock_run.assert_called_once_with(
        "mneme.server:app", host="127.0.0.1", port=9000, reload=False
    )
    assert (tmp_path / "logs" / "server.log").exists()


# --- Vocab ---


@patch("mneme.application.factory.get_repository")
def test_vocab_import(mock_get_repo, memory_config, repo, tmp_path):
    mock_get_repo.return_value = repo
    path = tmp_path / "words.yaml"
    path.write_text("deck: toeic\nwords:\n  - word: invoice\n  - word: ledger\n", encoding="utf-8")

    result = runner.invoke(app, ["vocab", "import", str(path)])

    assert result.exit_code == 0
    assert "Imported 2 entries." in result.stdout
    assert sorted(v.word for v in repo.vocabulary.values()) == ["invoice", "ledger"]
    assert {v.tag for v in repo.vocabulary.values()} == {"toeic"}


def test_vocab_import_bad_file(memory_config, tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("- colour: black\n", encoding="utf-8")

    result = runner.invoke(app, ["vocab", "import", str(path)])

    assert result.exit_code == 1
    assert "Could not load" in result.stdout


def test_vocab_import_missing_file(memory_config, tmp_path):
    result = runner.invoke(app, ["vocab", "import", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


# --- Config ---


@patch("mneme.interface.cli.resolve_config")
def test_config_show_command(mock_resolve_config):
    mock_config = MagicMock()
    mock_config.model_dump.return_value = {"backend": "memory", "daily_new_limit": 20}
    mock_resolve_config.return_value = mock_config

    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"backend": "memory", "daily_new_limit": 20}
    mock_config.model_dump.assert_called_once_with(mode="json")
