"""
Order Book Relay 初始化模块
自动加载环境变量
"""

from dotenv import load_dotenv

# 自动加载 .env 文件中的环境变量
load_dotenv()

__version__ = "1.0.0"
