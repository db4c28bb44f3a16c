"""
Pytest Root Configuration

确保项目根目录在 Python 路径中，main.py 和 orderbook_relay 包都可以直接导入。
"""

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent.absolute()

if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
