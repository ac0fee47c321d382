"""
網格場與雙緩衝
==============

Field: 固定 (W, H) 的二維取樣網格，元素為 scalar / vec2 / vec4。
       以 ti.ndarray 配置，釋放時只需丟棄參考，由執行期回收記憶體。
DoubleBuffer: 兩個同形狀的 Field 槽位加上一個 0/1 索引，
              交換只是翻轉索引，不搬移資料。

索引慣例為 field[x, y]，x ∈ [0, W)，y ∈ [0, H)。
越界讀取的夾取規則實作於 fluid_algorithms 的 ti.func 中。
"""

from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
import taichi as ti

from error_handling import ConfigurationError, InvalidStateError


class FieldKind(Enum):
    """場元素型別 (值為分量數)"""
    SCALAR = 1   # 壓力、散度
    VEC2 = 2     # 速度
    VEC4 = 4     # 染料/顏色 RGBA


class Field:
    """二維網格場"""

    def __init__(self, width: int, height: int, kind: FieldKind = FieldKind.SCALAR, name: str = ""):
        if not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
            raise ConfigurationError(f"網格尺寸必須為整數: {width!r}×{height!r}")
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"網格尺寸必須為正值: {width}×{height}",
                                     {"width": width, "height": height})

        self.width = int(width)
        self.height = int(height)
        self.kind = kind
        self.name = name or kind.name.lower()

        if kind == FieldKind.SCALAR:
            self._data = ti.ndarray(ti.f32, shape=(self.width, self.height))
        else:
            self._data = ti.Vector.ndarray(kind.value, ti.f32, shape=(self.width, self.height))

    # ========== 屬性 ==========

    @property
    def data(self):
        """底層Taichi ndarray (供kernel綁定)"""
        if self._data is None:
            raise InvalidStateError(f"場 '{self.name}' 已釋放")
        return self._data

    @property
    def shape(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def components(self) -> int:
        return self.kind.value

    @property
    def released(self) -> bool:
        return self._data is None

    # ========== 資料存取 ==========

    def array_shape(self) -> Tuple[int, ...]:
        """對應numpy陣列形狀"""
        if self.kind == FieldKind.SCALAR:
            return self.width, self.height
        return self.width, self.height, self.components

    def fill(self, value: float) -> None:
        self.data.fill(value)

    def from_numpy(self, array: np.ndarray) -> None:
        array = np.asarray(array, dtype=np.float32)
        if array.shape != self.array_shape():
            raise ConfigurationError(
                f"場 '{self.name}' 形狀不匹配: {array.shape} vs {self.array_shape()}",
                {"field": self.name}
            )
        self.data.from_numpy(np.ascontiguousarray(array))

    def to_numpy(self) -> np.ndarray:
        return self.data.to_numpy()

    def copy_from(self, other: "Field") -> None:
        """從另一個同形狀、同型別的場複製資料"""
        if other is self:
            return
        if other.shape != self.shape or other.kind != self.kind:
            raise ConfigurationError(
                f"無法複製 '{other.name}' {other.shape}/{other.kind.name} → "
                f"'{self.name}' {self.shape}/{self.kind.name}"
            )
        self.data.copy_from(other.data)

    def release(self) -> None:
        """丟棄ndarray參考，裝置記憶體交由執行期回收"""
        self._data = None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"Field({self.name!r}, {self.width}x{self.height}, {self.kind.name}, {state})"


class DoubleBuffer:
    """雙緩衝：current 供讀取，other 供寫入，swap() 翻轉索引"""

    def __init__(self, width: int, height: int, kind: FieldKind, name: str = ""):
        self.name = name or kind.name.lower()
        self._slots = (
            Field(width, height, kind, f"{self.name}[0]"),
            Field(width, height, kind, f"{self.name}[1]"),
        )
        self._index = 0

    @property
    def current(self) -> Field:
        return self._slots[self._index]

    @property
    def other(self) -> Field:
        return self._slots[1 - self._index]

    @property
    def index(self) -> int:
        return self._index

    @property
    def shape(self) -> Tuple[int, int]:
        return self._slots[0].shape

    @property
    def kind(self) -> FieldKind:
        return self._slots[0].kind

    @property
    def released(self) -> bool:
        return self._slots[0].released

    def swap(self) -> None:
        self._index ^= 1

    def fill(self, value: Union[float, int] = 0.0) -> None:
        for slot in self._slots:
            slot.fill(value)

    def release(self) -> None:
        for slot in self._slots:
            slot.release()

    def __repr__(self) -> str:
        return f"DoubleBuffer({self.name!r}, {self.shape[0]}x{self.shape[1]}, {self.kind.name}, index={self._index})"


def ensure_same_shape(*fields: Field, stage: Optional[str] = None) -> Tuple[int, int]:
    """確認所有參與同一階段的場形狀一致"""
    shape = fields[0].shape
    for f in fields[1:]:
        if f.shape != shape:
            where = f"{stage}: " if stage else ""
            raise ConfigurationError(
                f"{where}場形狀不一致 '{fields[0].name}' {shape} vs '{f.name}' {f.shape}",
                {"stage": stage}
            )
    return shape
