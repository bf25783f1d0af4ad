"""监测会话启动阶段的异常"""


class MonitorStartError(Exception):
    """监测无法启动（调用方可见的错误）"""


class CameraUnavailableError(MonitorStartError):
    """摄像头无法打开或权限被拒绝"""


class DetectorLoadError(MonitorStartError):
    """人脸关键点检测模型加载失败"""
