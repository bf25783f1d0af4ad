"""Flask Web 服务 - 驾驶员疲劳监测系统"""

import datetime
import logging
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from display.renderer import DisplayRenderer
from models.data_models import AlertPhase, DriverState, MonitorSnapshot
from monitor.config import load_config
from monitor.errors import MonitorStartError
from monitor.factory import build_controller

logger = logging.getLogger(__name__)

app = Flask(__name__)


class WebMonitorSystem:
    """Web 版监测系统，后台线程运行检测循环，提供 MJPEG 视频流和实时数据 API。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, controller=None, config=None):
        self.config = config if config is not None else load_config()
        self.controller = controller if controller is not None else build_controller(self.config)
        self.controller.on_update = self._check_state_changes
        self.renderer = DisplayRenderer()
        self._logs = []
        self._log_lock = threading.Lock()
        self._prev = MonitorSnapshot(face_detected=True)

    def start(self):
        """启动摄像头和检测线程，返回 (是否成功, 提示信息)。"""
        if self.controller.is_monitoring:
            return True, "监测已在运行"
        try:
            self.controller.start()
        except MonitorStartError as e:
            logger.error("监测启动失败: %s", e)
            self._add_log("danger", f"监测启动失败: {e}")
            return False, str(e)
        self._prev = MonitorSnapshot(face_detected=True)
        self._add_log("info", "系统启动，摄像头已开启")
        return True, "摄像头启动成功"

    def stop(self):
        """停止检测。"""
        was_monitoring = self.controller.is_monitoring
        self.controller.stop()
        if was_monitoring:
            self._add_log("info", "系统已停止")

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def _check_state_changes(self, data: MonitorSnapshot):
        """比较相邻两次快照，状态变化时记录日志。"""
        prev = self._prev

        if data.face_detected and not prev.face_detected:
            self._add_log("info", "检测到人脸")
        elif not data.face_detected and prev.face_detected:
            self._add_log("warning", "人脸丢失")

        if data.face_detected:
            if data.eyes_closed and not prev.eyes_closed:
                self._add_log("warning", f"闭眼检测中 (EAR={data.ear:.2f})")
            elif not data.eyes_closed and prev.eyes_closed:
                self._add_log("info", "睁眼恢复")

        if data.alert_phase is AlertPhase.CLOSED_WARNING and prev.alert_phase is not AlertPhase.CLOSED_WARNING:
            self._add_log("warning", f"⚠️ 闭眼已超过 {data.eyes_closed_duration:.1f} 秒")
        if data.alert_phase is AlertPhase.CLOSED_ALARM and prev.alert_phase is not AlertPhase.CLOSED_ALARM:
            self._add_log("danger", f"🚨 疲劳驾驶警报！闭眼 {data.eyes_closed_duration:.1f} 秒")

        if data.driver_state is not prev.driver_state and data.face_detected:
            if data.driver_state is DriverState.TENSION:
                self._add_log("warning", "检测到紧张状态")
            elif data.driver_state is DriverState.SLEEPING:
                self._add_log("danger", "检测到睡眠状态")

        self._prev = data

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    def get_frame(self):
        """渲染最近一帧并编码为 JPEG，没有帧时返回 None。"""
        frame, face, snapshot = self.controller.latest()
        if frame is None:
            return None
        rendered = self.renderer.render(frame, face, snapshot)
        ok, jpeg = cv2.imencode(".jpg", rendered, [cv2.IMWRITE_JPEG_QUALITY, 80])
        if not ok:
            return None
        return jpeg.tobytes()

    def get_data(self):
        return self.controller.snapshot().to_dict()

    def update_config(self, config):
        """动态更新阈值配置。"""
        self.controller.update_config(config)
        self._add_log("info", "配置已更新")


# 全局监测系统实例
system = WebMonitorSystem()


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok, message = system.start()
    return jsonify({"success": ok, "message": message}), (200 if ok else 503)


@app.route("/api/stop", methods=["POST"])
def api_stop():
    system.stop()
    return jsonify({"success": True, "message": "检测已停止"})


@app.route("/api/data")
def api_data():
    return jsonify(system.get_data())


@app.route("/api/config", methods=["GET", "POST"])
def api_config():
    if request.method == "GET":
        return jsonify(system.controller.config.to_dict())
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "message": "请求体必须是 JSON 对象"}), 400
    try:
        system.update_config(data)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return jsonify({"success": True, "message": "配置已更新"})


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = system.get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/video_feed")
def video_feed():
    def generate():
        while system.controller.is_monitoring:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
