from flask import current_app


def build_storage(config):
    """根据配置选择存储后端"""
    backend = config.get("STORAGE_BACKEND", "local")
    if backend == "s3":
        from services.storage.s3_storage import S3Storage
        return S3Storage(
            bucket_name=config["S3_BUCKET"],
            endpoint_url=config.get("S3_ENDPOINT_URL"),
            aws_access_key_id=config.get("AWS_ACCESS_KEY"),
            aws_secret_access_key=config.get("AWS_SECRET_KEY"),
            region_name=config.get("AWS_REGION"),
        )
    if backend == "local":
        from services.storage.local_storage import LocalStorage
        return LocalStorage(root=config.get("LOCAL_STORAGE_DIR", "./uploads"))
    raise ValueError(f"unknown STORAGE_BACKEND: {backend}")


def get_storage():
    """当前应用使用的对象存储（create_app 时放入 app.extensions）"""
    return current_app.extensions["object_store"]
