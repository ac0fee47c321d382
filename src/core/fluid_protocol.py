"""
外部協作者介面協議

求解器核心只透過以下協議與外部溝通：
- FieldSeeder: seed_field(width, height, min, max, scale, components=...) -> Field
- CursorSampler: sample_cursor(tick_context) -> CursorState

呈現 (present) 由求解器本身提供唯讀視圖，不需協議。
"""

from typing import Any, Optional, Protocol, runtime_checkable

from src.core.fields import Field
from src.physics.cursor_interaction import CursorState


@runtime_checkable
class FieldSeeder(Protocol):
    """
    種子場產生器

    返回 [min, max] 範圍內的平滑偽隨機場；相同的內部噪聲原點狀態
    產生相同的輸出。只在求解器進入 READY 時呼叫。
    """

    def __call__(self, width: int, height: int, min_value: float, max_value: float,
                 scale: float = 1.0, components: int = 1) -> Field:
        ...


@runtime_checkable
class CursorSampler(Protocol):
    """
    游標取樣器

    每個時間步呼叫一次，返回網格座標下的位置與速度；
    速度可以在任何時間步為零。
    """

    def __call__(self, tick_context: Any) -> CursorState:
        ...


def validate_collaborators(seed_field: Any, sample_cursor: Optional[Any] = None) -> bool:
    """
    驗證協作者是否符合協議

    Returns:
        True if 符合, False otherwise
    """
    if not isinstance(seed_field, FieldSeeder):
        return False
    if sample_cursor is not None and not isinstance(sample_cursor, CursorSampler):
        return False
    return True
