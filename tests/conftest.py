import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from hypothesis import settings

from detectors.eye_analyzer import LEFT_EYE_INDICES, RIGHT_EYE_INDICES

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
# Default to dev profile
settings.load_profile("dev")

NUM_KEYPOINTS = 468
EYE_WIDTH = 30.0


def make_keypoints(ear=0.3, shift=(0.0, 0.0), num_points=NUM_KEYPOINTS):
    """生成一组 FaceMesh 关键点，双眼 EAR 恰好为 ear，整体平移 shift。"""
    dx, dy = shift
    pts = [(dx, dy)] * num_points
    half = ear * EYE_WIDTH / 2.0
    for indices, x0 in ((LEFT_EYE_INDICES, 100.0), (RIGHT_EYE_INDICES, 200.0)):
        p1, p2, p3, p4, p5, p6 = indices
        pts[p1] = (x0 + dx, 100.0 + dy)
        pts[p4] = (x0 + EYE_WIDTH + dx, 100.0 + dy)
        pts[p2] = (x0 + 10.0 + dx, 100.0 - half + dy)
        pts[p6] = (x0 + 10.0 + dx, 100.0 + half + dy)
        pts[p3] = (x0 + 20.0 + dx, 100.0 - half + dy)
        pts[p5] = (x0 + 20.0 + dx, 100.0 + half + dy)
    return pts


@pytest.fixture
def keypoint_factory():
    return make_keypoints
