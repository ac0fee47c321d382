# cursor_interaction.py
"""
游標互動輸入

將顯示座標下的指標位置轉為網格座標與瞬時速度：
- 網格位置 = 顯示位置 × scale
- 速度 = (目前位置 - 前一位置) / dt
- 第一次取樣 (沒有前一位置)、dt = 0 或放開指標時速度為零
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

Vec2 = Tuple[float, float]


@dataclass(frozen=True)
class CursorState:
    """單一時間步的游標狀態 (網格座標)"""
    position: Vec2 = (0.0, 0.0)
    previous_position: Optional[Vec2] = None
    velocity: Vec2 = (0.0, 0.0)
    active: bool = False

    @classmethod
    def idle(cls) -> "CursorState":
        return cls()

    @property
    def speed(self) -> float:
        return math.hypot(*self.velocity)


class CursorTracker:
    """
    指標事件 → CursorState

    每個時間步呼叫 update() 一次；pointer=None 代表指標放開或沒有輸入。
    """

    def __init__(self):
        self._previous: Optional[Vec2] = None
        self._state = CursorState.idle()

    @property
    def state(self) -> CursorState:
        return self._state

    def update(self, pointer: Optional[Vec2], dt: float, scale: float) -> CursorState:
        if pointer is None:
            # 放開後速度歸零，下一次按下重新開始
            self._previous = None
            self._state = CursorState(position=self._state.position, active=False)
            return self._state

        position = (pointer[0] * scale, pointer[1] * scale)
        previous = self._previous
        if previous is None or dt <= 0.0:
            velocity = (0.0, 0.0)
        else:
            velocity = ((position[0] - previous[0]) / dt, (position[1] - previous[1]) / dt)

        self._state = CursorState(position=position, previous_position=previous,
                                  velocity=velocity, active=True)
        self._previous = position
        return self._state

    def release(self) -> CursorState:
        return self.update(None, 0.0, 1.0)


class ScriptedCursor:
    """
    腳本化游標 - 沿圓形軌跡移動的指標

    供無視窗執行 (CLI/基準測試) 時作為輸入協作者。顯示座標中心為
    (center_x, center_y)，每 period 秒繞行一圈；press_ticks 之後放開。
    """

    def __init__(self, center: Vec2, radius: float, period: float = 4.0,
                 press_ticks: Optional[int] = None):
        self.center = center
        self.radius = radius
        self.period = period
        self.press_ticks = press_ticks
        self.elapsed = 0.0
        self.tracker = CursorTracker()

    def pointer_at(self, t: float) -> Vec2:
        angle = 2.0 * math.pi * t / self.period
        return (self.center[0] + self.radius * math.cos(angle),
                self.center[1] + self.radius * math.sin(angle))

    def __call__(self, tick_context) -> CursorState:
        self.elapsed += tick_context.dt
        if self.press_ticks is not None and tick_context.tick >= self.press_ticks:
            return self.tracker.update(None, tick_context.dt, tick_context.scale)
        return self.tracker.update(self.pointer_at(self.elapsed), tick_context.dt, tick_context.scale)
