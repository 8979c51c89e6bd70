import uuid
from datetime import datetime, timezone
from common.db import db


def utcnow():
    return datetime.now(timezone.utc)


class BaseModel(db.Model):
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)


def new_token():
    """文件夹/文件对外标识；文件的 token 同时是对象存储的 key"""
    return str(uuid.uuid4())
