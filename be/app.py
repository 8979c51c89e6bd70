import logging

import click
from flask import Flask, request
from flask_jwt_extended import JWTManager
from common.db import db
from common.errors import register_error_handlers, Unauthenticated
from common.response import fail
from models.user import User
from routes.auth_routes import auth_bp
from routes.file_routes import file_bp
from routes.folder_routes import folder_bp
from services.coordinator import ConsistencyCoordinator
from services.storage.factory import build_storage
from services.user_service import UserService


def _unauthenticated(msg):
    return fail(msg, code=401, status=401, kind=Unauthenticated.kind)


def init_jwt(app):
    jwt = JWTManager(app)

    # 检查 token 是否在黑名单
    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        jti = jwt_payload["jti"]
        return UserService.is_token_revoked(jti)

    # 用户被删除后，旧 token 也要失效；预签名下载 token 不能当登录 token 用
    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        if jwt_payload.get("scope"):
            return None
        try:
            return db.session.get(User, int(jwt_payload["sub"]))
        except (TypeError, ValueError):
            return None

    @jwt.user_lookup_error_loader
    def user_lookup_error(jwt_header, jwt_payload):
        return _unauthenticated("用户不存在或登录已失效")

    @jwt.unauthorized_loader
    def missing_token(reason):
        return _unauthenticated("未登录")

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return _unauthenticated("登录凭证无效")

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return _unauthenticated("登录已过期")

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return _unauthenticated("已登出")

    return jwt


def register_commands(app):
    @app.cli.command("sweep-orphans")
    @click.option("--apply", is_flag=True, help="删除孤立对象；默认只列出")
    def sweep_orphans(apply):
        """对账对象存储和文件记录，清理没有记录引用的对象"""
        result = ConsistencyCoordinator(app.extensions["object_store"]).sweep_orphans(dry_run=not apply)
        for key in result["orphan_objects"]:
            click.echo(f"orphan  {key}")
        for key in result["missing_objects"]:
            click.echo(f"missing {key}")
        click.echo(
            f"{len(result['orphan_objects'])} orphan objects, "
            f"{len(result['missing_objects'])} records without object, "
            f"{result['deleted']} deleted"
        )


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object('config.Config')
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    init_jwt(app)
    register_error_handlers(app)
    register_commands(app)

    # 根据配置选择存储后端
    app.extensions['object_store'] = app.config.get('OBJECT_STORE') or build_storage(app.config)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(file_bp, url_prefix='/file')
    app.register_blueprint(folder_bp, url_prefix='/folder')

    @app.before_request
    def log_request_info():
        app.logger.debug("%s %s from %s", request.method, request.path, request.remote_addr)

    with app.app_context():
        db.create_all()

    return app

if __name__ == "__main__":
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=True)
