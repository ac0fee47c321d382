#!/usr/bin/env python3
"""
fluid_diagnostics.py / field_snapshot.py 測試套件
"""

import os

import numpy as np
import pytest

from src.core.simulation_parameters import SimulationParameters
from src.core.stable_fluid_solver import FieldId, StableFluidSolver
from src.visualization.field_snapshot import field_to_image, save_field_image, save_solver_snapshot
from src.visualization.fluid_diagnostics import CircularBuffer, FluidDiagnostics, mean_abs_interior


@pytest.fixture
def still_solver(dye_blob):
    """靜止流體 + 中心染料團"""
    solver = StableFluidSolver(SimulationParameters(width=32, height=32))
    solver.initialize(initial_velocity=np.zeros((32, 32, 2), dtype=np.float32),
                      initial_dye=dye_blob(32, 32, center=(16, 16)))
    yield solver
    solver.teardown()


@pytest.fixture
def stirred_solver():
    solver = StableFluidSolver(SimulationParameters(width=32, height=32, pressure_iterations=200))
    solver.initialize()
    yield solver
    solver.teardown()


class TestCircularBuffer:
    def test_capacity(self):
        buf = CircularBuffer(max_size=3)
        for i in range(5):
            buf.add(float(i), {'tick': i})
        assert len(buf) == 3
        times, data = buf.get_recent(2)
        assert times == [3.0, 4.0]
        assert [d['tick'] for d in data] == [3, 4]


def test_mean_abs_interior():
    field = np.zeros((6, 6))
    field[0, :] = 100.0
    field[2:4, 2:4] = -1.0
    assert mean_abs_interior(field, margin=1) == pytest.approx(4.0 / 16.0)
    assert mean_abs_interior(field, margin=0) > 1.0


class TestFluidDiagnostics:
    """診斷監控測試"""

    def test_still_fluid(self, still_solver):
        diagnostics = FluidDiagnostics(still_solver)
        still_solver.run(3, 0.05)
        diag = diagnostics.update_diagnostics()

        assert diag['tick'] == 3
        assert diag['kinetic_energy'] == 0.0
        assert diag['max_speed'] == 0.0
        assert diag['dye_mass_drift'] == 0.0
        assert diag['residual_divergence'] == 0.0
        assert diag['projection_ratio'] == 0.0
        diagnostics.release()

    def test_dye_mass_tracked(self, still_solver):
        diagnostics = FluidDiagnostics(still_solver)
        first = diagnostics.update_diagnostics(0)
        still_solver.step(0.05)
        second = diagnostics.update_diagnostics(1)
        np.testing.assert_allclose(first['dye_mass'], second['dye_mass'])
        assert len(diagnostics.history) == 2
        diagnostics.release()

    def test_projection_reduces_residual(self, stirred_solver):
        diagnostics = FluidDiagnostics(stirred_solver, margin=4)
        stirred_solver.step(0.0)
        diag = diagnostics.update_diagnostics()

        assert diag['mean_abs_divergence'] > 0.0
        assert diag['residual_divergence'] < diag['mean_abs_divergence']
        assert 0.0 < diag['projection_ratio'] < 1.0

        summary = diagnostics.get_summary()
        assert summary['samples'] == 1
        assert summary['last_tick'] == 1
        diagnostics.release()

    def test_empty_summary(self, still_solver):
        assert FluidDiagnostics(still_solver).get_summary() == {'samples': 0}


class TestFieldSnapshot:
    """快照輸出測試"""

    def test_image_shapes(self):
        dye = np.random.default_rng(0).random((20, 10, 4)).astype(np.float32)
        image, kwargs = field_to_image(FieldId.DYE, dye)
        assert image.shape == (10, 20, 3)
        assert kwargs == {}

        velocity = np.ones((20, 10, 2), dtype=np.float32)
        image, kwargs = field_to_image("velocity", velocity)
        assert image.shape == (10, 20)
        np.testing.assert_allclose(image, np.sqrt(2.0))

        pressure = np.zeros((20, 10), dtype=np.float32)
        image, kwargs = field_to_image(FieldId.PRESSURE, pressure)
        assert kwargs['vmin'] == -1.0 and kwargs['vmax'] == 1.0

    def test_save_field_image(self, tmp_path):
        filename = str(tmp_path / "nested" / "pressure.png")
        path = save_field_image(FieldId.PRESSURE, np.random.default_rng(1).normal(size=(16, 16)), filename)
        assert path == filename
        assert os.path.getsize(path) > 0

    def test_save_solver_snapshot(self, still_solver, tmp_path):
        still_solver.step(0.05)
        saved = save_solver_snapshot(still_solver, str(tmp_path), tick=1)
        assert len(saved) == len(FieldId)
        assert all(os.path.exists(p) for p in saved)
        assert os.path.basename(saved[-1]) == "dye_000001.png"
