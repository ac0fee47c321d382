"""
穩定流體階段函數

每個階段在派發kernel前檢查綁定：
- 寫入目標不可為任何讀取來源 (避免同一派發中讀寫同一場)
- 所有參與的場形狀一致
- 場型別符合該階段的需求

每個階段返回一個 StageBinding 記錄，求解器據此保存每個時間步的綁定。
"""

import math
from dataclasses import dataclass
from typing import Tuple

from error_handling import ConfigurationError
from src.core.fields import DoubleBuffer, Field, FieldKind, ensure_same_shape
from src.core import fluid_algorithms as algorithms
from src.physics.cursor_interaction import CursorState

EPSILON = 1e-8


@dataclass(frozen=True)
class StageBinding:
    """單一階段的讀寫綁定"""
    stage: str
    reads: Tuple[Field, ...]
    write: Field

    def aliases(self) -> bool:
        return any(r is self.write for r in self.reads)


def _bind(stage: str, reads: Tuple[Field, ...], write: Field) -> StageBinding:
    for source in reads:
        if source is write:
            raise ConfigurationError(
                f"{stage}: 寫入目標 '{write.name}' 同時也是讀取來源",
                {"stage": stage, "field": write.name}
            )
    ensure_same_shape(*reads, write, stage=stage)
    return StageBinding(stage, tuple(reads), write)


def _require_kind(stage: str, field: Field, *kinds: FieldKind) -> None:
    if field.kind not in kinds:
        expected = "/".join(k.name for k in kinds)
        raise ConfigurationError(f"{stage}: 場 '{field.name}' 型別為 {field.kind.name}，需要 {expected}")


def copy_field(source: Field, target: Field, stage: str = "copy") -> StageBinding:
    binding = _bind(stage, (source,), target)
    if source.kind != target.kind:
        raise ConfigurationError(f"{stage}: 型別不一致 {source.kind.name} → {target.kind.name}")
    algorithms.copy_kernel(source.data, target.data)
    return binding


def advect(velocity: Field, source: Field, target: Field, dt: float, scale: float,
           stage: str = "advection") -> StageBinding:
    """半拉格朗日平流：target[x] = source(x - dt·scale·u(x))"""
    _require_kind(stage, velocity, FieldKind.VEC2)
    if source.kind != target.kind:
        raise ConfigurationError(f"{stage}: 來源與目標型別不一致 {source.kind.name} → {target.kind.name}")
    binding = _bind(stage, (velocity, source), target)
    algorithms.advect_kernel(velocity.data, source.data, target.data, float(dt) * float(scale))
    return binding


def advect_dye(velocity: Field, dye: Field, target: Field, dt: float, scale: float) -> StageBinding:
    """染料平流：與速度平流相同的回溯，必須使用已投影的速度"""
    return advect(velocity, dye, target, dt, scale, stage="field_advection")


def apply_interaction_force(source: Field, target: Field, cursor: CursorState,
                            attenuation: float, radius: float, scale: float = 1.0,
                            epsilon: float = EPSILON) -> StageBinding:
    """
    游標外力注入

    target = source + (v / scale) · attenuation · exp(-d² / max(r², epsilon))
    游標未啟用或速度為零時，此階段等同複製。
    """
    stage = "interaction_force"
    _require_kind(stage, source, FieldKind.VEC2)
    _require_kind(stage, target, FieldKind.VEC2)

    vx, vy = cursor.velocity
    if not cursor.active or (vx == 0.0 and vy == 0.0):
        return copy_field(source, target, stage)

    binding = _bind(stage, (source,), target)

    # 游標速度為網格單位，速度場為顯示單位
    gain = attenuation / max(scale, epsilon)
    inv_radius_sq = 1.0 / max(radius * radius, epsilon)
    cx, cy = cursor.position
    algorithms.interaction_force_kernel(source.data, target.data,
                                        float(cx), float(cy),
                                        float(vx * gain), float(vy * gain),
                                        inv_radius_sq)
    return binding


def compute_divergence(velocity: Field, target: Field) -> StageBinding:
    stage = "divergence"
    _require_kind(stage, velocity, FieldKind.VEC2)
    _require_kind(stage, target, FieldKind.SCALAR)
    binding = _bind(stage, (velocity,), target)
    algorithms.divergence_kernel(velocity.data, target.data)
    return binding


def jacobi_pressure_step(pressure: Field, divergence: Field, target: Field,
                         alpha: float, beta: float, scale: float) -> StageBinding:
    stage = "pressure_solve"
    for f in (pressure, divergence, target):
        _require_kind(stage, f, FieldKind.SCALAR)
    binding = _bind(stage, (pressure, divergence), target)
    algorithms.jacobi_pressure_kernel(pressure.data, divergence.data, target.data,
                                      float(alpha), float(beta), 1.0 / max(scale, EPSILON))
    return binding


def solve_pressure(pressure: DoubleBuffer, divergence: Field, iterations: int,
                   alpha: float, beta: float, scale: float):
    """
    固定次數的Jacobi迭代

    從 pressure.current 的現有值開始 (跨時間步暖啟動)，每次迭代後交換緩衝，
    結束時 pressure.current 為最後一次迭代的結果。返回每次迭代的綁定。
    """
    if iterations < 1:
        raise ConfigurationError(f"壓力迭代次數必須 ≥ 1: {iterations}")
    bindings = []
    for _ in range(iterations):
        bindings.append(jacobi_pressure_step(pressure.current, divergence, pressure.other,
                                             alpha, beta, scale))
        pressure.swap()
    return bindings


def subtract_pressure_gradient(velocity: Field, pressure: Field, target: Field,
                               scale: float) -> StageBinding:
    stage = "velocity_projection"
    _require_kind(stage, velocity, FieldKind.VEC2)
    _require_kind(stage, pressure, FieldKind.SCALAR)
    _require_kind(stage, target, FieldKind.VEC2)
    binding = _bind(stage, (velocity, pressure), target)
    algorithms.subtract_gradient_kernel(velocity.data, pressure.data, target.data, float(scale))
    return binding


def check_timestep(dt: float, scale: float) -> None:
    """每步外部輸入檢查：dt ≥ 0 且 scale > 0，皆須為有限值"""
    if not math.isfinite(dt) or dt < 0.0:
        raise ConfigurationError(f"時間步長必須為非負有限值: {dt}")
    if not math.isfinite(scale) or scale <= 0.0:
        raise ConfigurationError(f"顯示比例必須為正有限值: {scale}")
