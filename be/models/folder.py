from models.base import BaseModel, new_token
from common.db import db


class Folder(BaseModel):
    """文件夹表 - parent_uuid 为空表示位于根目录（home）"""
    __tablename__ = 'folders'

    uuid = db.Column(db.String(36), unique=True, nullable=False, index=True, default=new_token)
    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    parent_uuid = db.Column(db.String(36), db.ForeignKey('folders.uuid'), nullable=True, index=True)
    is_private = db.Column(db.Boolean, default=True, nullable=False)
    size = db.Column(db.BigInteger, default=0, nullable=False)  # 累计大小，仅供参考

    # 同一目录下文件夹不重名；根目录下 parent_uuid 为 NULL，需要单独的部分索引
    __table_args__ = (
        db.UniqueConstraint('owner_id', 'parent_uuid', 'name', name='uq_folder_sibling_name'),
        db.Index(
            'uq_folder_root_name', 'owner_id', 'name', unique=True,
            sqlite_where=db.text('parent_uuid IS NULL'),
            postgresql_where=db.text('parent_uuid IS NULL'),
        ),
    )

    @classmethod
    def find_owned(cls, folder_uuid: str, owner_id: int):
        return cls.query.filter_by(uuid=folder_uuid, owner_id=owner_id).first()

    @classmethod
    def children_of(cls, parent_uuid, owner_id: int):
        """直接子文件夹，parent_uuid=None 表示根目录"""
        return cls.query.filter_by(parent_uuid=parent_uuid, owner_id=owner_id).order_by(cls.id).all()

    @classmethod
    def find_child(cls, parent_uuid, owner_id: int, name: str):
        return cls.query.filter_by(parent_uuid=parent_uuid, owner_id=owner_id, name=name).first()

    @classmethod
    def count_children(cls, parent_uuid: str):
        return cls.query.filter_by(parent_uuid=parent_uuid).count()

    def to_dict(self):
        return {
            "uuid": self.uuid,
            "name": self.name,
            "size": self.size,
            "privacy": self.is_private,
            "parent": self.parent_uuid or "home",
            "date": int(self.created_at.timestamp() * 1000) if self.created_at else None,
        }

    def __repr__(self):
        return f'<Folder {self.uuid[:8]}... name={self.name}>'
