from pathlib import Path

# 项目根目录
BASE_PATH = Path(__file__).resolve().parent.parent

# 日志文件路径
LOG_DIR = BASE_PATH / 'log'

# SQLite 本地数据库路径
SQLITE_DIR = BASE_PATH / 'data'
