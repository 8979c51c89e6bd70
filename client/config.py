# client/config.py
import os

class Config:
    BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:5000")  # 本地后端
    TIMEOUT = 10  # 请求超时
    DOWNLOAD_TIMEOUT = int(os.getenv("DOWNLOAD_TIMEOUT", "300"))  # 打包下载可能较慢
    CHUNK_SIZE = 64 * 1024
    UPLOAD_BATCH = int(os.getenv("UPLOAD_BATCH", "64"))  # 目录上传每次请求的文件数
    TOKEN_PATH = os.getenv("TOKEN_PATH", "./.token_cache.json")
