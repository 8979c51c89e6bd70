# services/file_service.py
from flask import current_app

from common.errors import InconsistentState, InvalidInput, NotFound, StoreUnavailable
from models.file import File
from services.access_policy import require_mutate, require_read
from services.coordinator import ConsistencyCoordinator
from services.storage.base_storage import ObjectMissing, ObjectStoreError
from services.storage.factory import get_storage
from services.storage.local_storage import LocalStorage


class FileService:
    @staticmethod
    def upload(user_id, folder_ref, file_obj):
        if file_obj is None or not file_obj.filename:
            raise InvalidInput("未上传文件")
        record = ConsistencyCoordinator(get_storage()).execute_upload(
            user_id, folder_ref, file_obj.filename, file_obj.mimetype, file_obj.stream
        )
        current_app.logger.info("[上传] %s -> %s (%d bytes)", record.name, record.uuid, record.size)
        return record.to_dict()

    @staticmethod
    def list_all(user_id):
        """用户的全部文件（不分目录）"""
        return [f.to_dict() for f in File.owned_by(user_id)]

    @staticmethod
    def _open(record):
        try:
            return get_storage().get_object(record.uuid)
        except ObjectMissing as e:
            current_app.logger.error("file record %s has no backing object", record.uuid)
            raise InconsistentState(detail=f"missing object {record.uuid}") from e
        except ObjectStoreError as e:
            raise StoreUnavailable(detail=str(e)) from e

    @staticmethod
    def download(user_id, file_uuid):
        """返回 (记录, 内容分块迭代器)；私有文件只有所有者能下载"""
        record = require_read(File.query.filter_by(uuid=file_uuid).first(), user_id)
        return record, FileService._open(record)

    @staticmethod
    def preview_url(user_id, file_uuid):
        record = require_read(File.query.filter_by(uuid=file_uuid).first(), user_id)
        mime_type = (record.mime_type or "").lower()
        if mime_type not in current_app.config["PREVIEW_MIME_TYPES"]:
            raise InvalidInput(f"该文件类型不支持预览: {mime_type}")
        try:
            url = get_storage().presigned_get_url(record.uuid, current_app.config["PRESIGNED_URL_TTL"])
        except ObjectStoreError as e:
            raise StoreUnavailable(detail=str(e)) from e
        return {"url": url, "expires_in": current_app.config["PRESIGNED_URL_TTL"]}

    @staticmethod
    def open_presigned(token):
        """本地存储的预签名链接：token 有效即可访问，不需要登录"""
        key = LocalStorage.key_from_token(token)
        record = File.query.filter_by(uuid=key).first() if key else None
        if record is None:
            raise NotFound()
        return record, FileService._open(record)

    @staticmethod
    def remove(user_id, file_uuid):
        record = require_mutate(File.query.filter_by(uuid=file_uuid).first(), user_id)
        report = ConsistencyCoordinator(get_storage()).delete_file(record.uuid, record.owner_id)
        return {"uuid": file_uuid, **report.to_dict()}

    @staticmethod
    def set_privacy(user_id, file_uuid, is_private):
        record = require_mutate(File.query.filter_by(uuid=file_uuid).first(), user_id)
        record = ConsistencyCoordinator(get_storage()).set_file_privacy(record.uuid, is_private, record.owner_id)
        return record.to_dict()
