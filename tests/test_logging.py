from __future__ import annotations

from pathlib import Path

import pytest

from infraplan.logging import configure_logging, get_logger


def test_repeated_configuration_keeps_one_console_handler() -> None:
    configure_logging()
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1


def test_verbose_lines_name_the_component(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=True)

    get_logger("builder").debug("Pruning unreferenced modules: identity")

    assert "[infraplan] DEBUG builder: Pruning unreferenced modules: identity" in capsys.readouterr().err


def test_log_file_captures_debug_even_when_console_is_quiet(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log_path = tmp_path / "logs" / "infraplan.log"
    configure_logging(log_file=log_path)

    get_logger("scheduler").debug("Tier 0: logs, identity")

    assert "Tier 0" not in capsys.readouterr().err
    assert "infraplan.scheduler: Tier 0: logs, identity" in log_path.read_text(encoding="utf-8")
