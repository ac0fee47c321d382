# field_snapshot.py
"""
場快照輸出 - 將呈現的場存成PNG
染料直接以RGB顯示，速度以大小著色，純量場以對稱色階顯示
"""

import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from src.core.stable_fluid_solver import FieldId


def field_to_image(field_id: FieldId, data: np.ndarray):
    """將場資料轉為 imshow 可用的影像與色階參數，返回 (image, kwargs)"""
    field_id = FieldId(field_id)
    # 場以 [x, y] 索引，影像以 [row, col] 顯示
    if field_id == FieldId.DYE:
        rgb = np.clip(data[..., :3], 0.0, 1.0)
        return np.transpose(rgb, (1, 0, 2)), {}
    if field_id == FieldId.VELOCITY:
        magnitude = np.linalg.norm(data, axis=-1)
        return magnitude.T, {'cmap': 'viridis', 'vmin': 0.0}
    limit = float(np.max(np.abs(data))) or 1.0
    return data.T, {'cmap': 'coolwarm', 'vmin': -limit, 'vmax': limit}


def save_field_image(field_id: FieldId, data: np.ndarray, filename: str,
                     title: str = None, dpi: int = 100) -> str:
    """儲存單一場的快照"""
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    image, kwargs = field_to_image(field_id, data)
    fig, ax = plt.subplots(figsize=(5, 5))
    try:
        im = ax.imshow(image, origin='lower', interpolation='nearest', **kwargs)
        if FieldId(field_id) != FieldId.DYE:
            fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
        ax.set_title(title or FieldId(field_id).value)
        ax.set_axis_off()
        fig.savefig(filename, dpi=dpi, bbox_inches='tight')
    finally:
        plt.close(fig)
    return filename


def save_solver_snapshot(solver, directory: str, tick: int, field_ids=None) -> list:
    """儲存求解器目前所有 (或指定) 場的快照，返回檔名列表"""
    field_ids = field_ids or list(FieldId)
    saved = []
    for field_id in field_ids:
        field_id = FieldId(field_id)
        filename = os.path.join(directory, f"{field_id.value}_{tick:06d}.png")
        saved.append(save_field_image(field_id, solver.present(field_id), filename,
                                      title=f"{field_id.value} @ tick {tick}"))
    return saved
