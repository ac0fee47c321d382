#!/usr/bin/env python3
"""
main.py 煙霧測試：小網格、少量步數
"""

import os
import sys

import pytest

import init
import main
from config import config


def test_initialize_taichi_once_is_idempotent():
    # 測試階段已以CPU初始化，之後的請求直接返回已啟用的後端
    assert init.is_taichi_initialized()
    assert init.initialize_taichi_once(arch="gpu") == "cpu"


def test_resolve_arch_rejects_unknown():
    with pytest.raises(ValueError):
        init.resolve_arch("opengl-es")


@pytest.fixture
def small_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "NX", 24)
    monkeypatch.setattr(config, "NY", 24)
    monkeypatch.setattr(config, "MAX_STEPS", 4)
    monkeypatch.setattr(config, "OUTPUT_FREQ", 2)
    monkeypatch.setattr(config, "DIAG_FREQ", 1)
    monkeypatch.setattr(config, "TAICHI_ARCH", "cpu")
    monkeypatch.setattr(config, "RESULTS_DIR", str(tmp_path / "results"))
    return tmp_path


def test_fluid_simulation_run(small_config):
    sim = main.FluidSimulation()
    try:
        assert sim.run(save_output=True, show_progress=True)
        assert sim.solver.tick_count == 4
        # 第2、4步各輸出四個場
        assert len(sim.saved_files) == 8
        assert all(os.path.exists(p) for p in sim.saved_files)
        assert sim.diagnostics.get_summary()['samples'] == 4
        assert sim.final_state().shape == (24, 24, 4)
    finally:
        sim.cleanup()


def test_cancel_stops_run(small_config):
    sim = main.FluidSimulation(steps=3)
    try:
        sim.cancel.set()
        assert sim.run(save_output=False) is False
        assert sim.solver.tick_count == 0
    finally:
        sim.cleanup()


def test_main_help(monkeypatch, small_config, capsys):
    monkeypatch.setattr(main, "apply_overrides", lambda module: [])
    monkeypatch.setattr(sys, "argv", ["main.py", "--help"])
    assert main.main() == 0
    assert "python main.py debug" in capsys.readouterr().out


def test_main_debug(monkeypatch, small_config):
    monkeypatch.setattr(main, "apply_overrides", lambda module: [])
    monkeypatch.setattr(sys, "argv", ["main.py", "debug", "2"])
    assert main.main() == 0
