# services/folder_service.py
from flask import current_app
from sqlalchemy.exc import IntegrityError

from common.db import db
from common.errors import AlreadyExists
from models.base import new_token
from models.folder import Folder
from services.access_policy import require_mutate
from services.archive import ArchiveAssembler
from services.coordinator import ConsistencyCoordinator
from services.folder_tree import FolderTree
from services.storage.factory import get_storage
from utils.paths import HOME, to_parent_uuid, validate_name


class FolderService:
    @staticmethod
    def create(user_id, parent_ref, name):
        name = validate_name(name)
        parent_uuid = to_parent_uuid(parent_ref)
        if parent_uuid is not None:
            FolderTree.get_folder(parent_uuid, user_id)
        folder = Folder(uuid=new_token(), name=name, owner_id=user_id, parent_uuid=parent_uuid, size=0)
        try:
            db.session.add(folder)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise AlreadyExists(f"文件夹已存在: {name}")
        return folder.to_dict()

    @staticmethod
    def list_contents(user_id, folder_ref):
        files, folders = FolderTree.list_contents(folder_ref, user_id)
        return {
            "files": [f.to_dict() for f in files],
            "folders": [f.to_dict() for f in folders],
        }

    @staticmethod
    def path(user_id, folder_ref):
        return FolderTree.resolve_path(folder_ref, user_id)

    @staticmethod
    def _owned_for_mutation(user_id, folder_uuid):
        folder = Folder.query.filter_by(uuid=folder_uuid).first()
        return require_mutate(folder, user_id)

    @staticmethod
    def delete(user_id, folder_uuid):
        folder = FolderService._owned_for_mutation(user_id, folder_uuid)
        plan = FolderTree.plan_recursive_delete(folder.uuid, user_id)
        report = ConsistencyCoordinator(get_storage()).execute_delete(plan)
        return report.to_dict()

    @staticmethod
    def set_privacy(user_id, folder_uuid, is_private):
        folder = FolderService._owned_for_mutation(user_id, folder_uuid)
        plan = FolderTree.plan_privacy_cascade(folder.uuid, is_private, user_id)
        updated = ConsistencyCoordinator(get_storage()).execute_privacy_cascade(plan)
        return {"uuid": folder_uuid, "privacy": is_private, "updated": updated}

    @staticmethod
    def upload(user_id, folder_ref, items):
        """items: [(relative_path, FileStorage), ...]"""
        result = ConsistencyCoordinator(get_storage()).execute_bulk_upload(
            user_id, folder_ref,
            [(path, f.stream, f.mimetype) for path, f in items],
        )
        current_app.logger.info(
            "[目录上传] user %s -> %s: %d files, %d new folders",
            user_id, folder_ref, result["files"], result["folders"],
        )
        return result

    @staticmethod
    def archive(user_id, folder_ref):
        """返回 (zip 临时文件, 下载文件名)

        请求内同步打包，不支持中途取消；需要取消时直接用 ArchiveAssembler.build_archive 的 cancel_event
        """
        snapshot = FolderTree.snapshot_subtree(folder_ref, user_id)
        assembler = ArchiveAssembler(get_storage(), scratch_dir=current_app.config.get("ARCHIVE_TMP_DIR"))
        stream = assembler.build_archive(snapshot)
        name = snapshot["name"] if snapshot["content_ref"] else HOME
        return stream, f"{name}.zip"
