"""驾驶员疲劳监测系统入口文件"""

import argparse
import logging
import sys

import cv2

from display.renderer import DisplayRenderer
from monitor.config import load_config
from monitor.errors import MonitorStartError
from monitor.factory import build_controller

logger = logging.getLogger(__name__)

WINDOW_NAME = "驾驶员疲劳监测"


class MonitorApp:
    """本地窗口版监测程序，由 OpenCV 窗口循环驱动检测迭代。"""

    def __init__(self, config_path=None, overrides=None):
        self.config = load_config(config_path)
        if overrides:
            self.config.update(overrides)

        self.controller = build_controller(self.config)
        self.renderer = DisplayRenderer()

    def run(self):
        """启动监测并进入窗口循环，返回进程退出码。"""
        try:
            self.controller.prepare()
        except MonitorStartError as e:
            logger.error("监测启动失败: %s", e)
            return 1

        try:
            self._main_loop()
        finally:
            self.stop()
        return 0

    def _main_loop(self):
        """窗口主循环：每次刷新调用一次 step()，节流由控制器负责。"""
        while True:
            self.controller.step()

            frame, face, snapshot = self.controller.latest()
            if frame is not None:
                cv2.imshow(WINDOW_NAME, self.renderer.render(frame, face, snapshot))

            # 按 q 退出
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break

    def stop(self):
        """停止监测、关闭所有窗口并释放检测器。"""
        self.controller.close()
        cv2.destroyAllWindows()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="驾驶员疲劳监测系统")
    parser.add_argument("--config", type=str, default=None, help="JSON 参数配置文件路径")
    parser.add_argument("--driver-id", type=str, default=None, help="上报告警使用的司机 ID")
    parser.add_argument("--alert-url", type=str, default=None, help="告警接收 REST 地址")
    parser.add_argument("--camera", type=int, default=None, help="摄像头编号")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="日志级别",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "driver_id": args.driver_id,
        "alert_url": args.alert_url,
        "camera_index": args.camera,
    }
    app = MonitorApp(config_path=args.config, overrides=overrides)
    sys.exit(app.run())


if __name__ == "__main__":
    main()
