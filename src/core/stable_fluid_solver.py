# stable_fluid_solver.py - 穩定流體模擬協調器
"""
穩定流體 (Stable Fluids) 時間步協調器

狀態機:
    UNINITIALIZED → READY → STEPPING (循環) → DISPOSED

每個時間步的固定順序:
    1. Advection            速度自平流          velocity: current → other, swap
    2. InteractionForce     游標外力注入        velocity: current → other, swap
    3. Divergence           散度                velocity.current → divergence
    4. PressureSolve (×N)   Jacobi壓力求解      pressure: current → other, swap ×N
    5. VelocityProjection   減去壓力梯度        velocity: current → other, swap
    6. FieldAdvection       以投影後速度平流染料 dye: current → other, swap

順序是正確性要求：投影必須在散度/壓力之後，染料必須使用投影後的速度。
每個階段是一次完整的平行派發，階段之間才檢查取消請求。

失敗處理:
- 時間步開始時保存各場的 current 到檢查點
- 取消或階段例外 → 由檢查點還原，前一時間步仍為權威狀態
- 數值異常 (NaN/Inf) → 記錄到錯誤處理器、還原，返回 False，不重試
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from error_handling import (ConfigurationError, GlobalErrorHandler, InvalidStateError,
                            NumericAnomaly, get_error_handler)
from src.core import fluid_stages as stages
from src.core.fields import DoubleBuffer, Field, FieldKind
from src.core.fluid_protocol import validate_collaborators
from src.core.fluid_stages import StageBinding
from src.core.numerical_stability import NumericalStabilityMonitor
from src.core.simulation_parameters import SimulationParameters
from src.physics.cursor_interaction import CursorState
from src.physics.noise_seeding import seed_field as default_seed_field

logger = logging.getLogger('StableFluid.Solver')


class SimulationState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STEPPING = "stepping"
    DISPOSED = "disposed"


class FieldId(Enum):
    """可呈現的場"""
    VELOCITY = "velocity"
    DIVERGENCE = "divergence"
    PRESSURE = "pressure"
    DYE = "dye"


@dataclass(frozen=True)
class TickContext:
    """單一時間步的外部輸入"""
    tick: int
    dt: float
    scale: float


class TickCancelled(Exception):
    """階段邊界上偵測到取消請求"""


class StableFluidSolver:
    """
    穩定流體求解器

    Attributes:
        velocity: 速度雙緩衝 (vec2)
        pressure: 壓力雙緩衝 (scalar)，跨時間步保留作為Jacobi暖啟動
        dye: 染料雙緩衝 (vec4 RGBA)
        divergence: 散度場 (scalar)，只在當前時間步的壓力求解中使用
    """

    def __init__(self,
                 parameters: Optional[SimulationParameters] = None,
                 seed_field: Callable[..., Field] = default_seed_field,
                 sample_cursor: Optional[Callable[[TickContext], CursorState]] = None,
                 error_handler: Optional[GlobalErrorHandler] = None):
        self.parameters = (parameters or SimulationParameters()).validate()
        if not validate_collaborators(seed_field, sample_cursor):
            raise ConfigurationError("種子或游標協作者必須為可呼叫物件")
        self._seed_field = seed_field
        self._sample_cursor = sample_cursor
        self.error_handler = error_handler or get_error_handler()
        self.monitor = NumericalStabilityMonitor()

        self._state = SimulationState.UNINITIALIZED
        self._tick = 0
        self._discarded_ticks = 0
        self._last_bindings: List[StageBinding] = []
        self._last_cursor = CursorState.idle()
        self._last_step_time = 0.0

        self.velocity: Optional[DoubleBuffer] = None
        self.pressure: Optional[DoubleBuffer] = None
        self.dye: Optional[DoubleBuffer] = None
        self.divergence: Optional[Field] = None
        self._checkpoints: Dict[FieldId, Field] = {}

        # 呈現目標 → 存取函數
        self._presenters: Dict[FieldId, Callable[[], Field]] = {
            FieldId.VELOCITY: lambda: self.velocity.current,
            FieldId.DIVERGENCE: lambda: self.divergence,
            FieldId.PRESSURE: lambda: self.pressure.current,
            FieldId.DYE: lambda: self.dye.current,
        }

    # ========== 屬性 ==========

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def discarded_ticks(self) -> int:
        return self._discarded_ticks

    @property
    def shape(self):
        return self.parameters.width, self.parameters.height

    @property
    def last_bindings(self) -> List[StageBinding]:
        """最近一次完成的時間步中，每個階段的讀寫綁定"""
        return list(self._last_bindings)

    @property
    def last_cursor(self) -> CursorState:
        return self._last_cursor

    @property
    def last_step_time(self) -> float:
        return self._last_step_time

    # ========== 生命週期 ==========

    def initialize(self, initial_velocity: Optional[np.ndarray] = None,
                   initial_dye: Optional[np.ndarray] = None) -> None:
        """
        配置所有場並設定初始值 (UNINITIALIZED → READY)

        Args:
            initial_velocity: (W, H, 2) 陣列；省略時由種子協作者產生
            initial_dye: (W, H, 4) 陣列；省略時依 seed_dye 產生噪聲或置零
        """
        if self._state != SimulationState.UNINITIALIZED:
            raise InvalidStateError(f"只能在 UNINITIALIZED 狀態初始化，目前為 {self._state.value}")

        p = self.parameters
        w, h = p.width, p.height
        start = time.time()

        try:
            self.velocity = DoubleBuffer(w, h, FieldKind.VEC2, "velocity")
            self.pressure = DoubleBuffer(w, h, FieldKind.SCALAR, "pressure")
            self.dye = DoubleBuffer(w, h, FieldKind.VEC4, "dye")
            self.divergence = Field(w, h, FieldKind.SCALAR, "divergence")
            self._checkpoints = {
                FieldId.VELOCITY: Field(w, h, FieldKind.VEC2, "velocity_checkpoint"),
                FieldId.PRESSURE: Field(w, h, FieldKind.SCALAR, "pressure_checkpoint"),
                FieldId.DYE: Field(w, h, FieldKind.VEC4, "dye_checkpoint"),
                FieldId.DIVERGENCE: Field(w, h, FieldKind.SCALAR, "divergence_checkpoint"),
            }

            self.pressure.fill(0.0)
            self.divergence.fill(0.0)
            self.velocity.fill(0.0)
            self.dye.fill(0.0)

            if initial_velocity is not None:
                self.velocity.current.from_numpy(initial_velocity)
            else:
                self._seed_into(self.velocity.current, p.velocity_seed_min, p.velocity_seed_max,
                                p.velocity_noise_scale)

            if initial_dye is not None:
                self.dye.current.from_numpy(initial_dye)
            elif p.seed_dye:
                self._seed_into(self.dye.current, 0.0, 1.0, p.dye_noise_scale)
                self._set_dye_alpha(1.0)
        except Exception:
            self._release_fields()
            raise

        self._state = SimulationState.READY
        logger.info(f"✅ 流體求解器就緒 {w}×{h} "
                    f"(Jacobi×{p.pressure_iterations}, {time.time() - start:.2f}s)")

    def _seed_into(self, target: Field, low: float, high: float, scale: float) -> None:
        seed = self._seed_field(target.width, target.height, low, high, scale,
                                components=target.components)
        try:
            target.copy_from(seed)
        finally:
            seed.release()

    def _set_dye_alpha(self, value: float) -> None:
        data = self.dye.current.to_numpy()
        data[..., 3] = value
        self.dye.current.from_numpy(data)

    def teardown(self) -> None:
        """釋放所有場 (任何狀態 → DISPOSED)，重複呼叫無作用"""
        if self._state == SimulationState.DISPOSED:
            return
        self._release_fields()
        self._state = SimulationState.DISPOSED
        logger.info(f"🧹 流體求解器已釋放 (共 {self._tick} 步)")

    def _release_fields(self) -> None:
        for buffer in (self.velocity, self.pressure, self.dye):
            if buffer is not None:
                buffer.release()
        if self.divergence is not None:
            self.divergence.release()
        for checkpoint in self._checkpoints.values():
            checkpoint.release()
        self._checkpoints = {}

    # ========== 時間步 ==========

    def _require_steppable(self) -> None:
        if self._state == SimulationState.DISPOSED:
            raise InvalidStateError("求解器已釋放，不能再推進")
        if self._state == SimulationState.UNINITIALIZED:
            raise InvalidStateError("求解器尚未初始化，請先呼叫 initialize()")

    def step(self, dt: float, scale: Optional[float] = None, cancel=None) -> bool:
        """
        推進一個時間步

        Args:
            dt: 時間步長 (秒，≥ 0)
            scale: 網格/顯示比例；省略時使用參數中的 display_scale
            cancel: 具有 is_set() 的物件 (例如 threading.Event)，於階段邊界檢查

        Returns:
            True 表示時間步完成；False 表示被取消或因數值異常被丟棄
        """
        self._require_steppable()
        scale = self.parameters.display_scale if scale is None else scale
        stages.check_timestep(dt, scale)

        context = TickContext(tick=self._tick, dt=float(dt), scale=float(scale))
        cursor = self._sample_cursor(context) if self._sample_cursor is not None else CursorState.idle()

        start = time.time()
        self._save_checkpoint()
        self._state = SimulationState.STEPPING
        try:
            bindings = self._run_pipeline(context, cursor, cancel)
            if self.parameters.check_stability:
                self._check_stability()
        except TickCancelled:
            self._restore_checkpoint()
            logger.info(f"⏹️  第{self._tick}步已取消，保留前一步狀態")
            return False
        except NumericAnomaly as anomaly:
            self._restore_checkpoint()
            self._discarded_ticks += 1
            self.error_handler.handle_error(anomaly, {"tick": self._tick})
            return False
        except Exception:
            self._restore_checkpoint()
            raise

        self._last_bindings = bindings
        self._last_cursor = cursor
        self._tick += 1
        self._last_step_time = time.time() - start
        return True

    def _run_pipeline(self, ctx: TickContext, cursor: CursorState, cancel) -> List[StageBinding]:
        p = self.parameters
        velocity, pressure, dye = self.velocity, self.pressure, self.dye
        bindings: List[StageBinding] = []

        def boundary():
            if cancel is not None and cancel.is_set():
                raise TickCancelled()

        # 1. 速度自平流
        bindings.append(stages.advect(velocity.current, velocity.current, velocity.other,
                                      ctx.dt, ctx.scale))
        velocity.swap()
        boundary()

        # 2. 游標外力
        bindings.append(stages.apply_interaction_force(velocity.current, velocity.other, cursor,
                                                       p.attenuation, p.force_radius, ctx.scale,
                                                       p.epsilon))
        velocity.swap()
        boundary()

        # 3. 散度
        bindings.append(stages.compute_divergence(velocity.current, self.divergence))
        boundary()

        # 4. 壓力求解 (以上一步壓力暖啟動)
        bindings.extend(stages.solve_pressure(pressure, self.divergence, p.pressure_iterations,
                                              p.alpha, p.beta, ctx.scale))
        boundary()

        # 5. 投影
        bindings.append(stages.subtract_pressure_gradient(velocity.current, pressure.current,
                                                          velocity.other, ctx.scale))
        velocity.swap()
        boundary()

        # 6. 染料平流 (使用投影後的速度)
        bindings.append(stages.advect_dye(velocity.current, dye.current, dye.other,
                                          ctx.dt, ctx.scale))
        dye.swap()

        return bindings

    def _check_stability(self) -> None:
        report = self.monitor.scan(
            (self.velocity.current, self.pressure.current, self.dye.current, self.divergence),
            tick=self._tick
        )
        if report:
            raise NumericAnomaly(f"第{self._tick}步產生非有限值: {report}",
                                 {"fields": report, "tick": self._tick})

    def _save_checkpoint(self) -> None:
        for field_id, checkpoint in self._checkpoints.items():
            stages.copy_field(self._presenters[field_id](), checkpoint, stage="checkpoint")

    def _restore_checkpoint(self) -> None:
        for field_id, checkpoint in self._checkpoints.items():
            stages.copy_field(checkpoint, self._presenters[field_id](), stage="rollback")
        # 還原後狀態仍與上一個完成的時間步一致
        self._state = SimulationState.READY if self._tick == 0 else SimulationState.STEPPING

    def run(self, steps: int, dt: float, scale: Optional[float] = None,
            callback: Optional[Callable[[int, bool], None]] = None) -> int:
        """連續推進 steps 步，返回成功完成的步數"""
        completed = 0
        for _ in range(steps):
            ok = self.step(dt, scale)
            completed += int(ok)
            if callback is not None:
                callback(self._tick, ok)
        return completed

    # ========== 呈現 ==========

    def present(self, field_id: FieldId) -> np.ndarray:
        """返回指定場當前緩衝的唯讀numpy副本"""
        self._require_steppable()
        field = self._presenters[FieldId(field_id)]()
        view = field.to_numpy()
        view.flags.writeable = False
        return view

    def get_diagnostics(self) -> dict:
        return {
            'state': self._state.value,
            'tick': self._tick,
            'discarded_ticks': self._discarded_ticks,
            'grid': self.shape,
            'pressure_iterations': self.parameters.pressure_iterations,
            'last_step_time': self._last_step_time,
            'cursor_active': self._last_cursor.active,
            'cursor_speed': self._last_cursor.speed,
        }
