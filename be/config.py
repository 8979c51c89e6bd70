import os
from datetime import timedelta


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'super-secret')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET', 'jwt-secret')
    # 登录 token 有效期 7 天
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=int(os.getenv('JWT_EXPIRES_DAYS', '7')))

    # SQLite数据库
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///cloud.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 存储后端选择：local 或 s3
    STORAGE_BACKEND = os.getenv('STORAGE_BACKEND', 'local')
    LOCAL_STORAGE_DIR = os.getenv('LOCAL_STORAGE_DIR', './uploads')

    # S3 / MinIO
    AWS_ACCESS_KEY = os.getenv('AWS_ACCESS_KEY', 'test-key')
    AWS_SECRET_KEY = os.getenv('AWS_SECRET_KEY', 'test-secret')
    AWS_REGION = os.getenv('AWS_REGION', 'us-east-1')
    S3_BUCKET = os.getenv('S3_BUCKET', 'cloud-drive-bucket')
    S3_ENDPOINT_URL = os.getenv('S3_ENDPOINT_URL')  # MinIO: http://127.0.0.1:9000

    # 预览链接有效期（秒）
    PRESIGNED_URL_TTL = int(os.getenv('PRESIGNED_URL_TTL', '300'))
    PREVIEW_MIME_TYPES = (
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/svg+xml',
        'application/pdf',
        'text/plain',
        'video/mp4',
        'audio/mpeg',
    )

    # 打包下载时的临时目录，None 表示系统临时目录
    ARCHIVE_TMP_DIR = os.getenv('ARCHIVE_TMP_DIR')
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_UPLOAD_BYTES', str(1024 * 1024 * 1024)))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
