"""一键启动驾驶员疲劳监测 Web 服务"""

import logging
import os
import sys
import threading
import time
import webbrowser

# 确保工作目录为脚本所在目录
os.chdir(os.path.dirname(os.path.abspath(__file__)))

# 添加项目根目录到 sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

URL = "http://localhost:5000/api/data"


def open_browser():
    """延迟 1.5 秒后自动打开浏览器"""
    time.sleep(1.5)
    webbrowser.open(URL)


def check_dependencies():
    """检查必要依赖是否已安装，返回缺失的包名列表"""
    missing = []
    for pkg, import_name in [
        ("flask", "flask"),
        ("opencv-python", "cv2"),
        ("mediapipe", "mediapipe"),
        ("numpy", "numpy"),
        ("pygame", "pygame"),
        ("Pillow", "PIL"),
    ]:
        try:
            __import__(import_name)
        except ImportError:
            missing.append(pkg)
    return missing


if __name__ == "__main__":
    print("=" * 50)
    print("  驾驶员疲劳监测系统 - 启动中...")
    print("=" * 50)

    missing = check_dependencies()
    if missing:
        print("缺少以下依赖，请先运行 pip install -e . 安装:")
        print(", ".join(missing))
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    threading.Thread(target=open_browser, daemon=True).start()

    print("\n系统已启动！")
    print(f"数据接口: {URL}")
    print("开始监测: POST http://localhost:5000/api/start")
    print("按 Ctrl+C 停止服务\n")

    from web_app import app
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
