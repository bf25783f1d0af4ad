"""告警上报模块：把告警记录发送到外部接收端，发送失败只记录日志"""

import json
import logging
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from models.data_models import AlertRecord

logger = logging.getLogger(__name__)


class HttpAlertSink:
    """以 JSON POST 方式把告警发送到 REST 接口"""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def send(self, record: AlertRecord) -> None:
        body = json.dumps(record.to_payload()).encode("utf-8")
        request = urllib.request.Request(
            self.url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        # 4xx/5xx 由 urlopen 抛出 HTTPError
        with urllib.request.urlopen(request, timeout=self.timeout) as resp:
            resp.read()


class LogAlertSink:
    """只写日志的接收端，未配置 REST 地址时使用"""

    def send(self, record: AlertRecord) -> None:
        logger.warning(
            "告警 [%s/%s] 司机=%s 状态=%s 闭眼=%.1fs",
            record.alert_type.value,
            record.severity,
            record.driver_id,
            record.driver_state.value,
            record.eye_closed_duration,
        )


class AlertDispatcher:
    """
    发后即忘的告警分发器。

    background=True 时在单个后台线程中依次发送，检测循环不会被网络阻塞；
    任何发送异常都只记录日志，不影响本地告警状态。
    """

    def __init__(self, sink, background: bool = True):
        self._sink = sink
        self._executor: Optional[ThreadPoolExecutor] = None
        if background:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert-sink")
        self.failures = 0

    def dispatch(self, record: AlertRecord) -> None:
        if self._executor is None:
            self._deliver(record)
            return
        try:
            self._executor.submit(self._deliver, record)
        except RuntimeError:
            logger.error("告警分发器已关闭，丢弃告警: %s", record.alert_type.value)

    def _deliver(self, record: AlertRecord) -> None:
        try:
            self._sink.send(record)
        except Exception:
            self.failures += 1
            logger.exception("发送告警失败: %s", record.alert_type.value)

    def close(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
