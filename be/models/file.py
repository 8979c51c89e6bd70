from models.base import BaseModel
from common.db import db

class File(BaseModel):
    __tablename__ = 'files'

    # uuid 即对象存储中的 key
    uuid = db.Column(db.String(36), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    folder_uuid = db.Column(db.String(36), db.ForeignKey('folders.uuid'), nullable=True, index=True)  # 文件所属目录
    mime_type = db.Column(db.String(255), default='application/octet-stream', nullable=False)
    size = db.Column(db.BigInteger, default=0, nullable=False)
    is_private = db.Column(db.Boolean, default=True, nullable=False)

    @classmethod
    def find_owned(cls, file_uuid: str, owner_id: int):
        return cls.query.filter_by(uuid=file_uuid, owner_id=owner_id).first()

    @classmethod
    def owned_by(cls, owner_id: int):
        return cls.query.filter_by(owner_id=owner_id).order_by(cls.id).all()

    @classmethod
    def in_folder(cls, folder_uuid, owner_id: int):
        return cls.query.filter_by(folder_uuid=folder_uuid, owner_id=owner_id).order_by(cls.id).all()

    @classmethod
    def count_in_folder(cls, folder_uuid: str):
        return cls.query.filter_by(folder_uuid=folder_uuid).count()

    def to_dict(self):
        return {
            "uuid": self.uuid,
            "name": self.name,
            "type": self.mime_type,
            "size": self.size,
            "privacy": self.is_private,
            "folder": self.folder_uuid or "home",
            "date": int(self.created_at.timestamp() * 1000) if self.created_at else None,
        }
