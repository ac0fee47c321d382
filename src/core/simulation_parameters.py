"""
模擬參數結構

初始化時一次綁定的型別化參數，明確傳入每個階段，不在執行期以名稱查找。
每步的外部輸入 (dt, scale) 另由 step() 傳入。
"""

import math
from dataclasses import dataclass, asdict, replace
from typing import Dict, Any

from error_handling import ConfigurationError


@dataclass(frozen=True)
class SimulationParameters:
    """穩定流體模擬參數"""
    width: int = 128
    height: int = 128
    pressure_iterations: int = 20       # Jacobi固定迭代次數
    alpha: float = 1.0                  # Jacobi鄰居權重
    beta: float = 0.25                  # Jacobi正規化係數
    attenuation: float = 1.0            # 注入衰減 (0, 1]
    force_radius: float = 4.0           # 注入高斯半徑 (格點)
    display_scale: float = 1.0          # 網格/顯示比例，step()未指定時使用
    velocity_seed_min: float = -1.0
    velocity_seed_max: float = 1.0
    velocity_noise_scale: float = 4.0
    seed_dye: bool = True
    dye_noise_scale: float = 6.0
    check_stability: bool = True
    epsilon: float = 1e-8               # 除法下限 (半徑²、比例)

    def validate(self) -> "SimulationParameters":
        """檢查參數合法性，不合法時拋出 ConfigurationError"""
        if not isinstance(self.width, int) or not isinstance(self.height, int):
            raise ConfigurationError(f"網格尺寸必須為整數: {self.width!r}×{self.height!r}")
        if self.width <= 0 or self.height <= 0:
            raise ConfigurationError(f"網格尺寸必須為正值: {self.width}×{self.height}",
                                     {"width": self.width, "height": self.height})
        if self.pressure_iterations < 1:
            raise ConfigurationError(f"壓力迭代次數必須 ≥ 1: {self.pressure_iterations}")
        if not (0.0 < self.attenuation <= 1.0):
            raise ConfigurationError(f"衰減係數必須在 (0, 1]: {self.attenuation}")
        if not (self.force_radius > 0.0):
            raise ConfigurationError(f"外力半徑必須為正值: {self.force_radius}")
        if not math.isfinite(self.display_scale) or self.display_scale <= 0.0:
            raise ConfigurationError(f"顯示比例必須為正有限值: {self.display_scale}")
        if not (math.isfinite(self.alpha) and math.isfinite(self.beta)) or self.beta == 0.0:
            raise ConfigurationError(f"Jacobi權重非法: alpha={self.alpha}, beta={self.beta}")
        if self.velocity_seed_min > self.velocity_seed_max:
            raise ConfigurationError(
                f"速度種子範圍錯誤: [{self.velocity_seed_min}, {self.velocity_seed_max}]")
        if not math.isfinite(self.epsilon) or self.epsilon <= 0.0:
            raise ConfigurationError(f"數值下限必須為正有限值: {self.epsilon}")
        return self

    @classmethod
    def from_config(cls, config_module) -> "SimulationParameters":
        """由 config 模組 (可能已套用YAML覆寫) 建立參數"""
        return cls(
            width=int(config_module.NX),
            height=int(config_module.NY),
            pressure_iterations=int(config_module.PRESSURE_ITERATIONS),
            alpha=float(config_module.PRESSURE_ALPHA),
            beta=float(config_module.PRESSURE_BETA),
            attenuation=float(config_module.FORCE_ATTENUATION),
            force_radius=float(config_module.FORCE_RADIUS),
            display_scale=float(config_module.DISPLAY_SCALE),
            velocity_seed_min=float(config_module.VELOCITY_SEED_MIN),
            velocity_seed_max=float(config_module.VELOCITY_SEED_MAX),
            velocity_noise_scale=float(config_module.VELOCITY_NOISE_SCALE),
            seed_dye=bool(config_module.SEED_DYE),
            dye_noise_scale=float(config_module.DYE_NOISE_SCALE),
            check_stability=bool(config_module.CHECK_STABILITY),
            epsilon=float(config_module.EPSILON),
        ).validate()

    def with_overrides(self, **changes) -> "SimulationParameters":
        return replace(self, **changes).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
