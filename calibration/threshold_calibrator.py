"""阈值校准模块，利用标注图像统计 EAR 分布并为当前摄像头/光照优化闭眼阈值"""

import argparse
import json
import logging
import math
import os
from datetime import datetime
from typing import List, Optional, Tuple

import cv2
import numpy as np
from sklearn.metrics import accuracy_score, recall_score, roc_curve

from detectors.eye_analyzer import (
    LEFT_EYE_INDICES,
    RIGHT_EYE_INDICES,
    calculate_average_ear,
    calculate_ear,
    get_eye_landmarks,
)
from detectors.face_detector import _load_mediapipe
from models.data_models import CalibrationResult
from monitor.config import MonitorConfig, load_config

logger = logging.getLogger(__name__)

# 子目录 -> 标签
_LABEL_DIRS = {
    "open": "open",
    "closed": "closed",
}

_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp")


def compute_stats(values: list) -> dict:
    """
    计算一组数值的统计信息。

    Args:
        values: 非空浮点数列表

    Returns:
        {"mean": float, "std": float, "min": float, "max": float}
    """
    n = len(values)
    mean = sum(values) / n
    std = math.sqrt(sum((x - mean) ** 2 for x in values) / n)
    return {
        "mean": mean,
        "std": std,
        "min": min(values),
        "max": max(values),
    }


class ThresholdCalibrator:
    """加载标注图像，统计 EAR 分布，通过 ROC 分析输出最优闭眼阈值"""

    DEFAULT_EAR_THRESHOLD = MonitorConfig.ear_closed_threshold

    def __init__(self):
        self._ear_data: List[Tuple[float, str]] = []  # (ear_value, label)
        self._dataset_path: Optional[str] = None
        self._calibration_result: Optional[CalibrationResult] = None

    def load_dataset(self, dataset_path: str) -> None:
        """
        加载数据集并提取 EAR 值。

        Args:
            dataset_path: 数据集根目录，包含 open/ 和 closed/ 子目录
        """
        if not os.path.isdir(dataset_path):
            raise ValueError(f"数据集路径无效: {dataset_path}")

        self._dataset_path = dataset_path
        mp = _load_mediapipe()
        face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=True,
            max_num_faces=1,
            min_detection_confidence=0.5,
            refine_landmarks=True,
        )

        try:
            for subdir, label in _LABEL_DIRS.items():
                dir_path = os.path.join(dataset_path, subdir)
                if not os.path.isdir(dir_path):
                    logger.warning("子目录不存在: %s", dir_path)
                    continue
                self._process_images(dir_path, label, face_mesh)
        finally:
            face_mesh.close()

        logger.info("数据集加载完成: EAR 样本 %d 条", len(self._ear_data))

    def _process_images(self, dir_path: str, label: str, face_mesh) -> None:
        """处理目录中的图像，提取 EAR 值"""
        for filename in sorted(os.listdir(dir_path)):
            if not filename.lower().endswith(_IMAGE_EXTENSIONS):
                continue
            ear = self._extract_ear_from_image(os.path.join(dir_path, filename), face_mesh)
            if ear is not None:
                self._ear_data.append((ear, label))

    def _extract_ear_from_image(self, filepath: str, face_mesh) -> Optional[float]:
        """从单张图像提取 EAR 值，无人脸时返回 None"""
        image = cv2.imread(filepath)
        if image is None:
            logger.warning("无法读取图像: %s", filepath)
            return None

        h, w = image.shape[:2]
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        results = face_mesh.process(rgb)

        if not results.multi_face_landmarks:
            return None

        face = results.multi_face_landmarks[0]
        keypoints = [(lm.x * w, lm.y * h) for lm in face.landmark]

        left_ear = calculate_ear(get_eye_landmarks(keypoints, LEFT_EYE_INDICES))
        right_ear = calculate_ear(get_eye_landmarks(keypoints, RIGHT_EYE_INDICES))
        return calculate_average_ear(left_ear, right_ear)

    def add_samples(self, values: List[float], label: str) -> None:
        """直接追加已计算好的 EAR 样本（例如现场录制的数据）"""
        if label not in _LABEL_DIRS.values():
            raise ValueError(f"不支持的标签: {label}")
        self._ear_data.extend((float(v), label) for v in values)
        self._calibration_result = None

    def compute_statistics(self) -> dict:
        """
        按标签统计 EAR 分布。

        Returns:
            {"open": {mean, std, min, max}, "closed": {...}}
        """
        groups: dict = {}
        for value, label in self._ear_data:
            groups.setdefault(label, []).append(value)
        return {label: compute_stats(values) for label, values in groups.items()}

    def optimize_threshold(self) -> CalibrationResult:
        """
        基于 ROC 曲线输出最优 EAR 闭眼阈值。

        使用 Youden's J statistic (max(tpr - fpr)) 确定最优阈值；
        数据不足（缺少任一类别）时返回默认阈值。
        """
        stats = self.compute_statistics()

        optimal, acc, rec = self.DEFAULT_EAR_THRESHOLD, 0.0, 0.0
        if self._ear_data:
            values = np.array([v for v, _ in self._ear_data])
            labels = np.array([1 if lab == "closed" else 0 for _, lab in self._ear_data])

            if len(np.unique(labels)) == 2:
                # 闭眼时 EAR 低，用 -EAR 作为 score
                fpr, tpr, thresholds = roc_curve(labels, -values)
                best_idx = int(np.argmax(tpr - fpr))
                # roc_curve 的阈值是 score >= t，换算回 EAR < threshold 需稍微上移
                if np.isfinite(thresholds[best_idx]):
                    optimal = float(np.nextafter(-thresholds[best_idx], np.inf))

                preds = (values < optimal).astype(int)
                acc = float(accuracy_score(labels, preds))
                rec = float(recall_score(labels, preds))

        self._calibration_result = CalibrationResult(
            optimal_ear_threshold=float(optimal),
            ear_accuracy=acc,
            ear_recall=rec,
            ear_distribution=stats,
            sample_count=len(self._ear_data),
            dataset=self._dataset_path,
        )
        return self._calibration_result

    def export_config(self, output_path: str, base_config_path: Optional[str] = None) -> None:
        """
        导出可被 load_config 读取的 JSON 配置文件。

        Args:
            output_path: 输出 JSON 文件路径
            base_config_path: 作为基础的已有配置，其余参数原样保留
        """
        if self._calibration_result is None:
            self.optimize_threshold()

        result = self._calibration_result
        config = load_config(base_config_path).to_dict()
        config["ear_closed_threshold"] = result.optimal_ear_threshold
        config["calibration_info"] = {
            "ear_accuracy": result.ear_accuracy,
            "ear_recall": result.ear_recall,
            "sample_count": result.sample_count,
            "ear_distribution": result.ear_distribution,
            "calibrated_at": datetime.now().isoformat(),
            "dataset": result.dataset,
        }

        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4, ensure_ascii=False)

        logger.info("配置文件已导出: %s", output_path)


def main():
    parser = argparse.ArgumentParser(description="EAR 闭眼阈值校准")
    parser.add_argument("dataset", help="包含 open/ 和 closed/ 子目录的数据集路径")
    parser.add_argument("--output", default="config/calibrated.json", help="输出配置文件路径")
    parser.add_argument("--base-config", default=None, help="作为基础的已有配置文件")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    calibrator = ThresholdCalibrator()
    calibrator.load_dataset(args.dataset)
    result = calibrator.optimize_threshold()
    logger.info(
        "最优 EAR 阈值 %.4f (accuracy=%.3f, recall=%.3f)",
        result.optimal_ear_threshold, result.ear_accuracy, result.ear_recall,
    )
    calibrator.export_config(args.output, base_config_path=args.base_config)


if __name__ == "__main__":
    main()
