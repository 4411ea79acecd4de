# 部署入口文件 —— 从 backend 目录导入 Flask 应用工厂
import sys
import os

# 将 backend 目录加入 Python 路径，这样 import 能找到 backend 下的模块
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app import create_app
from config import load_settings
from logging_config import setup_logging

settings = load_settings()
setup_logging(settings.log_level)
app = create_app(settings)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=settings.port)
