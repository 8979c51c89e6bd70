"""
元数据库与对象存储之间的一致性协调

两边无法放在同一个事务里，约定的顺序是：
- 删除：先（尽力）删对象，再删记录。对象删除失败只记日志，记录照删，
  宁可在存储里留下孤立对象，也不留下指向已删除对象的记录。
- 上传：先写对象，再写记录。对象写失败则不建记录；记录写失败则对象成为孤立对象。
孤立对象可以通过 sweep_orphans 清理。
"""
from typing import BinaryIO, Callable, Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from common.db import db
from common.errors import InconsistentState, NotFound, OperationIncomplete, StoreUnavailable, InvalidInput
from models.base import new_token
from models.file import File
from models.folder import Folder
from models.user import User
from services.folder_tree import FILE, FOLDER, DeletePlan, FolderTree, PrivacyPlan
from services.storage.base_storage import BaseStorage, ObjectStoreError
from utils.paths import split_relative_path, to_parent_uuid, validate_name

DEFAULT_MIME_TYPE = "application/octet-stream"


class DeleteReport:
    def __init__(self):
        self.deleted_folders = 0
        self.deleted_files = 0
        self.failed_object_keys: List[str] = []
        self.freed_bytes = 0

    def to_dict(self):
        return {
            "deleted_folders": self.deleted_folders,
            "deleted_files": self.deleted_files,
            "failed_objects": len(self.failed_object_keys),
        }


class ConsistencyCoordinator:
    def __init__(self, storage: BaseStorage, listener: Optional[Callable[[str, Dict], None]] = None):
        self.storage = storage
        # 调用方传入的变更通知回调，(event, payload)
        self.listener = listener

    def _notify(self, event, payload):
        if self.listener is not None:
            self.listener(event, payload)

    # -------- 删除 --------
    def _delete_objects(self, keys: List[str]) -> List[str]:
        """Best effort. Return keys whose objects may still exist."""
        if not keys:
            return []
        try:
            failed = self.storage.delete_objects(keys)
        except ObjectStoreError as e:
            current_app.logger.warning("object store bulk delete failed (%d keys): %s", len(keys), e)
            return list(keys)
        if failed:
            current_app.logger.warning("object store could not delete %d objects: %s", len(failed), failed)
        return list(failed)

    def execute_delete(self, plan: DeletePlan) -> DeleteReport:
        report = DeleteReport()
        report.failed_object_keys = self._delete_objects(plan.file_keys)

        try:
            for step in plan.steps:
                folder_uuid = step["folder"]
                file_uuids = [f["uuid"] for f in step["files"]]
                step_freed = 0
                if file_uuids:
                    # 已不存在的记录直接跳过，重试时不会失败也不会重复扣减大小
                    query = File.query.filter(File.uuid.in_(file_uuids), File.owner_id == plan.owner_id)
                    step_freed = sum(size or 0 for (size,) in query.with_entities(File.size).all())
                    report.deleted_files += query.delete(synchronize_session=False)

                remaining = Folder.count_children(folder_uuid) + File.count_in_folder(folder_uuid)
                if remaining:
                    db.session.rollback()
                    current_app.logger.error(
                        "refusing to delete non-empty folder %s (%d children left)", folder_uuid, remaining
                    )
                    raise InconsistentState(detail=f"folder {folder_uuid} still has {remaining} children")

                report.deleted_folders += Folder.query.filter_by(
                    uuid=folder_uuid, owner_id=plan.owner_id
                ).delete(synchronize_session=False)
                # 祖先大小随本步一起提交
                self._adjust_sizes(plan.parent_uuid, plan.owner_id, -step_freed)
                db.session.commit()
                report.freed_bytes += step_freed
        except SQLAlchemyError as e:
            db.session.rollback()
            raise OperationIncomplete(detail=str(e)) from e

        current_app.logger.info(
            "deleted folder %s: %d folders, %d files, %d objects left behind",
            plan.root_uuid, report.deleted_folders, report.deleted_files, len(report.failed_object_keys),
        )
        self._notify("deleted", {"folder": plan.root_uuid, "parent": plan.parent_uuid})
        return report

    def delete_file(self, file_uuid: str, user_id) -> DeleteReport:
        record = File.find_owned(file_uuid, user_id)
        if record is None:
            raise NotFound("文件不存在")
        report = DeleteReport()
        report.failed_object_keys = self._delete_objects([record.uuid])
        folder_uuid, size = record.folder_uuid, record.size or 0
        try:
            report.deleted_files = File.query.filter_by(uuid=file_uuid, owner_id=record.owner_id).delete(
                synchronize_session=False
            )
            self._adjust_sizes(folder_uuid, record.owner_id, -size)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(detail=str(e)) from e
        report.freed_bytes = size
        self._notify("deleted", {"file": file_uuid, "parent": folder_uuid})
        return report

    def delete_account(self, user_id) -> DeleteReport:
        """删除用户的全部文件夹、文件，最后删除用户本身"""
        user_id = int(user_id)
        total = DeleteReport()
        for folder in Folder.children_of(None, user_id):
            report = self.execute_delete(FolderTree.plan_recursive_delete(folder.uuid, user_id))
            total.deleted_folders += report.deleted_folders
            total.deleted_files += report.deleted_files
            total.failed_object_keys.extend(report.failed_object_keys)

        root_files = File.in_folder(None, user_id)
        total.failed_object_keys.extend(self._delete_objects([f.uuid for f in root_files]))
        try:
            total.deleted_files += File.query.filter_by(folder_uuid=None, owner_id=user_id).delete(
                synchronize_session=False
            )
            User.query.filter_by(id=user_id).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise OperationIncomplete(detail=str(e)) from e
        self._notify("account_deleted", {"user": user_id})
        return total

    # -------- 上传 --------
    def execute_upload(self, owner_id, target_folder_ref, name: str, mime_type: Optional[str],
                       stream: BinaryIO, size: Optional[int] = None) -> File:
        owner_id = int(owner_id)
        name = validate_name(name)
        folder_uuid = to_parent_uuid(target_folder_ref)
        if folder_uuid is not None:
            FolderTree.get_folder(folder_uuid, owner_id)
        return self._upload(owner_id, folder_uuid, name, mime_type, stream, size)

    def _upload(self, owner_id, folder_uuid, name, mime_type, stream, size):
        mime_type = mime_type or DEFAULT_MIME_TYPE
        if size is None:
            size = _stream_size(stream)
        key = new_token()

        # 先写对象；失败则不建记录
        try:
            self.storage.put_object(key, stream, size, mime_type)
        except ObjectStoreError as e:
            current_app.logger.error("object write failed for %s (%s): %s", key, name, e)
            raise StoreUnavailable(detail=str(e)) from e

        record = File(
            uuid=key,
            name=name,
            owner_id=owner_id,
            folder_uuid=folder_uuid,
            mime_type=mime_type,
            size=size,
        )
        try:
            db.session.add(record)
            self._adjust_sizes(folder_uuid, owner_id, size)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            # 对象已写入但没有记录，留给 sweep_orphans
            current_app.logger.error("metadata insert failed, object %s is now orphaned: %s", key, e)
            raise StoreUnavailable(detail=str(e)) from e

        self._notify("uploaded", {"file": key, "parent": folder_uuid})
        return record

    def execute_bulk_upload(self, owner_id, target_folder_ref, items: Iterable[Tuple[str, BinaryIO, Optional[str]]]):
        """
        上传整个目录：items 为 (relative_path, stream, mime_type)。

        每个不同的目录前缀只调用一次 ensure_path（同一批次内缓存），
        返回 {"files": 上传文件数, "folders": 新建文件夹数}。
        """
        owner_id = int(owner_id)
        start = to_parent_uuid(target_folder_ref)
        if start is not None:
            FolderTree.get_folder(start, owner_id)

        parsed = [(split_relative_path(path), stream, mime) for path, stream, mime in items]
        if not parsed:
            raise InvalidInput("未上传文件")

        resolved = {(): start}
        created: List[str] = []
        files = 0
        for (segments, leaf), stream, mime_type in parsed:
            prefix = tuple(segments)
            if prefix not in resolved:
                resolved[prefix] = FolderTree.ensure_path(segments, owner_id, start, created=created)
            self._upload(owner_id, resolved[prefix], leaf, mime_type, stream, None)
            files += 1

        return {"files": files, "folders": len(created)}

    # -------- 隐私 --------
    def execute_privacy_cascade(self, plan: PrivacyPlan) -> int:
        """
        Apply plan.target_private to every entity in the plan.

        不是原子操作：中途失败时部分条目已经更新，抛出 OperationIncomplete，重试即可。
        """
        updated = 0
        try:
            folder_uuids = plan.uuids(FOLDER)
            file_uuids = plan.uuids(FILE)
            if folder_uuids:
                updated += Folder.query.filter(
                    Folder.uuid.in_(folder_uuids), Folder.owner_id == plan.owner_id
                ).update({Folder.is_private: plan.target_private}, synchronize_session=False)
                db.session.commit()
            if file_uuids:
                updated += File.query.filter(
                    File.uuid.in_(file_uuids), File.owner_id == plan.owner_id
                ).update({File.is_private: plan.target_private}, synchronize_session=False)
                db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise OperationIncomplete(detail=str(e)) from e

        self._notify("privacy_changed", {"folder": plan.root_uuid, "private": plan.target_private})
        return updated

    def set_file_privacy(self, file_uuid, is_private: bool, user_id) -> File:
        record = File.find_owned(file_uuid, user_id)
        if record is None:
            raise NotFound("文件不存在")
        try:
            record.is_private = is_private
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(detail=str(e)) from e
        self._notify("privacy_changed", {"file": file_uuid, "private": is_private})
        return record

    # -------- 维护 --------
    def sweep_orphans(self, dry_run=True) -> Dict:
        """
        对账：找出没有记录引用的对象（删除时对象存储失败、或上传后写记录失败留下的），
        以及对象已丢失的记录。dry_run=False 时删除孤立对象；丢失对象的记录只报告。
        """
        try:
            keys = set(self.storage.list_keys())
        except ObjectStoreError as e:
            raise StoreUnavailable(detail=str(e)) from e
        known = {uuid for (uuid,) in db.session.query(File.uuid).all()}

        orphans = sorted(keys - known)
        missing = sorted(known - keys)
        failed = []
        if orphans and not dry_run:
            failed = self._delete_objects(orphans)
        if missing:
            current_app.logger.error("%d file records have no backing object: %s", len(missing), missing)
        return {
            "orphan_objects": orphans,
            "missing_objects": missing,
            "deleted": 0 if dry_run else len(orphans) - len(failed),
        }

    # -------- 大小统计 --------
    def _adjust_sizes(self, folder_uuid, owner_id, delta):
        """把 delta 累加到 folder_uuid 及其所有祖先上（不低于 0），不提交"""
        if not delta:
            return
        seen = set()
        while folder_uuid is not None and folder_uuid not in seen:
            seen.add(folder_uuid)
            folder = Folder.find_owned(folder_uuid, owner_id)
            if folder is None:
                break
            folder.size = max(0, (folder.size or 0) + delta)
            folder_uuid = folder.parent_uuid


def _stream_size(stream) -> int:
    pos = stream.tell()
    stream.seek(0, 2)
    size = stream.tell() - pos
    stream.seek(pos)
    return size
