# fluid_diagnostics.py
"""
流體診斷監控系統
只透過求解器的唯讀呈現介面取得資料，提供動能、染料守恆、散度殘差等統計
"""

import time
from collections import deque
from datetime import datetime
from typing import Dict, Optional

import numpy as np

from src.core import fluid_stages as stages
from src.core.fields import Field, FieldKind
from src.core.stable_fluid_solver import FieldId, StableFluidSolver


class CircularBuffer:
    """循環緩衝區 - 高效歷史數據管理"""
    def __init__(self, max_size=1000):
        self.max_size = max_size
        self.data = deque(maxlen=max_size)
        self.timestamps = deque(maxlen=max_size)

    def add(self, timestamp, data_dict):
        self.timestamps.append(timestamp)
        self.data.append(data_dict.copy())

    def get_recent(self, n=10):
        """獲取最近n個數據點"""
        return list(self.timestamps)[-n:], list(self.data)[-n:]

    def get_all(self):
        return list(self.timestamps), list(self.data)

    def __len__(self):
        return len(self.data)


def mean_abs_interior(field: np.ndarray, margin: int = 1) -> float:
    """內部格點 (去除 margin 圈邊界) 的平均絕對值"""
    if margin > 0:
        field = field[margin:-margin, margin:-margin]
    return float(np.mean(np.abs(field)))


class FluidDiagnostics:
    """穩定流體診斷監控"""

    def __init__(self, solver: StableFluidSolver, history_size: int = 1000, margin: int = 1):
        self.solver = solver
        self.margin = margin
        self.history = CircularBuffer(max_size=history_size)

        self.initial_dye_mass: Optional[np.ndarray] = None
        self._scratch_velocity: Optional[Field] = None
        self._scratch_divergence: Optional[Field] = None
        self.calculation_times = []

    def _ensure_scratch(self):
        if self._scratch_velocity is None:
            w, h = self.solver.shape
            self._scratch_velocity = Field(w, h, FieldKind.VEC2, "diag_velocity")
            self._scratch_divergence = Field(w, h, FieldKind.SCALAR, "diag_divergence")

    def residual_divergence(self, velocity: np.ndarray) -> np.ndarray:
        """以與求解器相同的散度算子計算投影後殘差"""
        self._ensure_scratch()
        self._scratch_velocity.from_numpy(velocity)
        stages.compute_divergence(self._scratch_velocity, self._scratch_divergence)
        return self._scratch_divergence.to_numpy()

    def update_diagnostics(self, tick: Optional[int] = None) -> Dict:
        """計算當前狀態的診斷量並寫入歷史"""
        start = time.time()
        tick = self.solver.tick_count if tick is None else tick

        velocity = self.solver.present(FieldId.VELOCITY)
        pressure = self.solver.present(FieldId.PRESSURE)
        divergence = self.solver.present(FieldId.DIVERGENCE)
        dye = self.solver.present(FieldId.DYE)

        speed = np.linalg.norm(velocity, axis=-1)
        dye_mass = dye.reshape(-1, dye.shape[-1]).sum(axis=0)
        if self.initial_dye_mass is None:
            self.initial_dye_mass = dye_mass.copy()

        residual = self.residual_divergence(velocity)
        before = mean_abs_interior(divergence, self.margin)
        after = mean_abs_interior(residual, self.margin)

        with np.errstate(divide='ignore', invalid='ignore'):
            mass_drift = np.where(self.initial_dye_mass != 0.0,
                                  (dye_mass - self.initial_dye_mass) / self.initial_dye_mass, 0.0)

        diagnostics = {
            'tick': tick,
            'timestamp': datetime.now().isoformat(),
            'kinetic_energy': float(0.5 * np.sum(speed ** 2)),
            'max_speed': float(speed.max()),
            'dye_mass': dye_mass.tolist(),
            'dye_mass_drift': float(np.max(np.abs(mass_drift))),
            'mean_abs_divergence': before,
            'residual_divergence': after,
            'projection_ratio': after / before if before > 0.0 else 0.0,
            'pressure_range': (float(pressure.min()), float(pressure.max())),
        }

        self.history.add(time.time(), diagnostics)
        self.calculation_times.append(time.time() - start)
        return diagnostics

    def get_summary(self) -> Dict:
        """歷史摘要"""
        _, data = self.history.get_all()
        if not data:
            return {'samples': 0}
        ratios = [d['projection_ratio'] for d in data]
        return {
            'samples': len(data),
            'last_tick': data[-1]['tick'],
            'max_speed': max(d['max_speed'] for d in data),
            'max_dye_mass_drift': max(d['dye_mass_drift'] for d in data),
            'mean_projection_ratio': float(np.mean(ratios)),
            'avg_calculation_time': float(np.mean(self.calculation_times)) if self.calculation_times else 0.0,
        }

    def release(self):
        for scratch in (self._scratch_velocity, self._scratch_divergence):
            if scratch is not None:
                scratch.release()
        self._scratch_velocity = None
        self._scratch_divergence = None
