"""Runs the self-checks each module ships under __main__."""

import importlib

import pytest


@pytest.mark.parametrize(
    "module_name",
    [
        "analysis_worker",
        "beat_detector",
        "cursor_feed",
        "judge",
        "play_session",
        "score_engine",
        "target_scheduler",
        "timing_model",
    ],
)
def test_module_self_check(module_name):
    importlib.import_module(module_name)._run_unit_tests()


@pytest.mark.parametrize(
    "module_name",
    [
        "analysis_worker",
        "beat_detector",
        "cursor_feed",
        "gameplay_models",
        "judge",
        "play_session",
        "score_engine",
        "target_scheduler",
        "timing_model",
    ],
)
def test_module_opens_with_banner(module_name):
    source_path = importlib.import_module(module_name).__file__
    with open(source_path, encoding="utf-8") as source_file:
        first_lines = [source_file.readline().rstrip("\n") for _ in range(3)]
    assert first_lines == ["# -*- coding: utf-8 -*-", "########################", f"# {module_name}.py"]
