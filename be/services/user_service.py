from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash

from models.user import User
from common.db import db
from services.coordinator import ConsistencyCoordinator
from services.storage.factory import get_storage

# JWT 黑名单（内存存储，重启失效）
jwt_blacklist = set()

class UserService:
    @staticmethod
    def register(username, password, email=None):
        username = (username or "").strip()
        if not username or not password:
            return None, "用户名和密码不能为空"
        if User.query.filter_by(username=username).first():
            return None, "用户名已存在"
        hashed = generate_password_hash(password)
        user = User(username=username, password=hashed, email=email or None)
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            # 并发注册同名用户
            db.session.rollback()
            return None, "用户名已存在"
        current_app.logger.info("user registered: %s", user.id)
        return user, None

    @staticmethod
    def login(username, password):
        user = User.query.filter_by(username=username).first()
        if not user or not check_password_hash(user.password, password):
            return None
        return user

    @staticmethod
    def logout(jti):
        """将JWT ID加入黑名单"""
        jwt_blacklist.add(jti)
        return True

    @staticmethod
    def is_token_revoked(jti):
        return jti in jwt_blacklist

    @staticmethod
    def change_password(user_id, old_password, new_password):
        user = db.session.get(User, int(user_id))
        if not user or not check_password_hash(user.password, old_password):
            return False, "原密码错误"
        if not new_password:
            return False, "新密码不能为空"
        user.password = generate_password_hash(new_password)
        db.session.commit()
        return True, None

    @staticmethod
    def delete_account(user_id):
        """级联删除该用户的所有文件夹、文件（含对象存储中的内容）和账号本身"""
        user = db.session.get(User, int(user_id))
        if not user:
            return None
        report = ConsistencyCoordinator(get_storage()).delete_account(user.id)
        current_app.logger.info("account %s deleted: %s", user_id, report.to_dict())
        return report

    @staticmethod
    def get_profile(user_id):
        user = db.session.get(User, int(user_id))
        if not user:
            return None
        return user.to_dict()
