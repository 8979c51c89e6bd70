"""
统一的错误分类。

service 层只抛出这里的异常，由 register_error_handlers 转成
{"code": <status>, "msg": <通用提示>, "error": <分类>} 响应。
存储层的原始异常只写日志，不返回给调用方。
"""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from common.db import db
from common.response import fail


class DriveError(Exception):
    status = 500
    kind = "internal"
    message = "服务器内部错误"

    def __init__(self, message=None, detail=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        # detail 只用于日志
        self.detail = detail


class Unauthenticated(DriveError):
    status = 401
    kind = "unauthenticated"
    message = "未登录或登录已失效"


class NotFound(DriveError):
    """不存在，或不属于当前用户（两者对外不可区分）"""
    status = 404
    kind = "not_found"
    message = "资源不存在"


class Forbidden(DriveError):
    status = 403
    kind = "forbidden"
    message = "无权操作"


class InvalidInput(DriveError):
    status = 400
    kind = "invalid_input"
    message = "参数错误"


class AlreadyExists(InvalidInput):
    status = 409
    kind = "already_exists"
    message = "名称已存在"


class EmptySubtree(InvalidInput):
    kind = "empty_subtree"
    message = "文件夹为空"


class StoreUnavailable(DriveError):
    kind = "store_unavailable"
    message = "存储服务暂不可用"


class OperationIncomplete(StoreUnavailable):
    """非事务操作中途失败：部分条目已修改，重试同一操作是安全的"""
    kind = "operation_incomplete"
    message = "操作未完成，请重试"


class InconsistentState(DriveError):
    kind = "inconsistent_state"


class ArchiveCancelled(DriveError):
    kind = "archive_cancelled"
    message = "打包已取消"


def register_error_handlers(app):
    @app.errorhandler(DriveError)
    def handle_drive_error(err):
        if isinstance(err, InconsistentState):
            current_app.logger.error("inconsistent state: %s (%s)", err.message, err.detail)
            # 内部细节不外泄
            return fail(DriveError.message, code=err.status, status=err.status, kind=err.kind)
        if err.status >= 500:
            current_app.logger.error("%s: %s (%s)", err.kind, err.message, err.detail)
        return fail(err.message, code=err.status, status=err.status, kind=err.kind)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        current_app.logger.error("metadata store error: %s", err)
        return fail(StoreUnavailable.message, code=500, status=500, kind=StoreUnavailable.kind)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return fail(err.description or err.name, code=err.code, status=err.code, kind="http")

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        current_app.logger.exception("unhandled error")
        return fail(DriveError.message, code=500, status=500, kind=DriveError.kind)
