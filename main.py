# main.py
"""
Stable Fluids Simulation
穩定流體主程式 - 無視窗執行，以腳本化游標攪動噪聲初始化的流場
"""


# 標準庫導入
import logging
import os
import signal
import sys
import threading
import time

# 第三方庫導入
import numpy as np

# 本地模組導入
from config import config
from config.config_manager import apply_overrides
from error_handling import configure_logging, get_error_handler
from init import initialize_taichi_once
from src.core.simulation_parameters import SimulationParameters
from src.core.stable_fluid_solver import FieldId, StableFluidSolver
from src.physics.cursor_interaction import ScriptedCursor
from src.visualization.field_snapshot import save_solver_snapshot
from src.visualization.fluid_diagnostics import FluidDiagnostics

logger = logging.getLogger('StableFluid.Main')


class FluidSimulation:
    def __init__(self, steps=None, results_dir=None, arch=None):
        """
        初始化穩定流體模擬
        steps: 預設步數 (省略時使用 config.MAX_STEPS)
        results_dir: 快照輸出目錄
        arch: Taichi後端 (省略時使用 config.TAICHI_ARCH)
        """
        self.max_steps = steps if steps is not None else config.MAX_STEPS
        self.results_dir = results_dir or config.RESULTS_DIR
        self.dt = 1.0 / config.TARGET_FPS
        self.saved_files = []

        ok, errors = config.validate_core_parameters()
        if not ok:
            for err in errors:
                print(f"❌ {err}")
            raise SystemExit(1)

        self.arch = initialize_taichi_once(arch or config.TAICHI_ARCH)
        self.parameters = SimulationParameters.from_config(config)

        # 顯示座標下的游標軌跡：繞網格中心一圈
        display_w = self.parameters.width / self.parameters.display_scale
        display_h = self.parameters.height / self.parameters.display_scale
        self.cursor = ScriptedCursor(center=(display_w / 2, display_h / 2),
                                     radius=min(display_w, display_h) / 4)

        self.solver = StableFluidSolver(self.parameters, sample_cursor=self.cursor)
        self.solver.initialize()
        self.diagnostics = FluidDiagnostics(self.solver)
        self.cancel = threading.Event()

        print(f"🔧 配置摘要: {self.parameters.width}×{self.parameters.height}網格, "
              f"Jacobi×{self.parameters.pressure_iterations}, arch={self.arch}")

    def _install_interrupt_handler(self):
        """Ctrl+C 只設定取消旗標，當前時間步在階段邊界被丟棄"""
        def handler(signum, frame):
            print("\n⚠️  檢測到用戶中斷 (Ctrl+C)，正在安全停止...")
            self.cancel.set()
        try:
            return signal.signal(signal.SIGINT, handler)
        except ValueError:
            # 非主執行緒無法安裝信號處理
            return None

    def _print_progress(self, step, diag, start_time):
        elapsed = time.time() - start_time
        rate = step / elapsed if elapsed > 0 else 0.0
        print(f"📊 步數 {step:,}/{self.max_steps:,} | {rate:.1f} 步/秒")
        print(f"🌊 流場: 最大速度={diag['max_speed']:.4f} | 動能={diag['kinetic_energy']:.3f}")
        print(f"🧮 散度: 投影前={diag['mean_abs_divergence']:.3e} → 投影後={diag['residual_divergence']:.3e}")

    def run(self, save_output=True, show_progress=True):
        """運行模擬，返回是否成功完成所有步數"""
        print(f"\n{'='*60}")
        print(f"🚀 穩定流體模擬開始")
        print(f"{'='*60}")
        print(f"📊 預計步數: {self.max_steps:,} 步 (dt={self.dt:.4f}s)")
        print(f"{'='*60}")

        previous_handler = self._install_interrupt_handler()
        start_time = time.time()
        completed = True

        try:
            for step in range(1, self.max_steps + 1):
                if not self.solver.step(self.dt, cancel=self.cancel):
                    if self.cancel.is_set():
                        print(f"✋ 模擬在第 {step:,} 步中斷")
                        completed = False
                        break
                    print(f"⚠️  第 {step:,} 步因數值異常被丟棄")
                    continue

                if config.DIAG_FREQ > 0 and step % config.DIAG_FREQ == 0:
                    diag = self.diagnostics.update_diagnostics(step)
                    if show_progress:
                        self._print_progress(step, diag, start_time)

                if save_output and config.OUTPUT_FREQ > 0 and step % config.OUTPUT_FREQ == 0:
                    self.saved_files.extend(save_solver_snapshot(self.solver, self.results_dir, step))
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGINT, previous_handler)

        elapsed = time.time() - start_time
        summary = self.diagnostics.get_summary()
        print(f"\n{'='*60}")
        print(f"✅ 模擬結束: {self.solver.tick_count:,} 步完成, "
              f"{self.solver.discarded_ticks} 步丟棄, 耗時 {elapsed:.1f}s")
        if summary.get('samples', 0):
            print(f"📈 平均投影比例 (殘差/原散度): {summary['mean_projection_ratio']:.3f}")
        if self.saved_files:
            print(f"📁 快照已保存到 {self.results_dir}/ ({len(self.saved_files)} 個檔案)")
        print(f"{'='*60}")

        errors = get_error_handler().get_error_statistics()
        if errors.get("total_errors", 0):
            log_path = os.path.join(self.results_dir, "error_log.json")
            os.makedirs(self.results_dir, exist_ok=True)
            get_error_handler().export_error_log(log_path)
        return completed

    def final_state(self):
        """最終染料場 (唯讀)"""
        return self.solver.present(FieldId.DYE)

    def cleanup(self):
        self.diagnostics.release()
        self.solver.teardown()


def run_debug_simulation(max_steps=60):
    """Debug模式：詳細日誌、每步診斷、不輸出快照"""
    print(f"{'='*60}")
    print(f"🔍 DEBUG模式啟動")
    print(f"{'='*60}")
    config.DIAG_FREQ = 1
    sim = FluidSimulation(steps=max_steps)
    try:
        sim.run(save_output=False, show_progress=True)
        dye = sim.final_state()
        print(f"🎨 染料總量 (RGBA): {np.round(dye.reshape(-1, 4).sum(axis=0), 3).tolist()}")
        print(f"🔍 求解器狀態: {sim.solver.get_diagnostics()}")
    finally:
        sim.cleanup()
    return sim


def main():
    """主函數"""
    apply_overrides(config)

    if len(sys.argv) > 1 and sys.argv[1] == "debug":
        # Debug模式：python main.py debug [步數]
        configure_logging(logging.DEBUG)
        max_steps = int(sys.argv[2]) if len(sys.argv) > 2 else 60
        print(f"🔍 Debug模式 - 最大步數: {max_steps:,}")
        run_debug_simulation(max_steps=max_steps)
        print("✅ Debug模擬完成")
        return 0

    configure_logging(logging.INFO)
    if len(sys.argv) > 1 and sys.argv[1] in ("-h", "--help", "help"):
        print("🌊 穩定流體模擬系統")
        print("💡 使用說明:")
        print("   🚀 python main.py [步數]        - 正常模式 (輸出快照到 results/)")
        print("   🔍 python main.py debug [步數]  - 調試模式")
        return 0

    max_steps = int(sys.argv[1]) if len(sys.argv) > 1 else None
    sim = FluidSimulation(steps=max_steps)
    try:
        success = sim.run(save_output=True)
    finally:
        sim.cleanup()

    if success:
        print("\n🎉 模擬成功完成！")
        print(f"📊 查看 {sim.results_dir}/ 目錄獲取結果文件")
        return 0
    print("\n⚠️  模擬未完成")
    return 1


if __name__ == "__main__":
    sys.exit(main())
