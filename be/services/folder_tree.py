"""
文件夹树引擎

只负责查询和生成遍历计划，不修改文件内容也不访问对象存储：
- 列目录 / 解析面包屑路径
- ensure_path：按路径逐级查找或创建文件夹（mkdir -p）
- 递归删除计划、隐私级联计划、打包快照

所有遍历都使用显式栈/队列，层级再深也不会撑爆调用栈。
每次调用都直接读取元数据库，不跨请求缓存树结构。
"""
from collections import deque
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.db import db
from common.errors import NotFound, InvalidInput, InconsistentState, StoreUnavailable
from models.base import new_token
from models.file import File
from models.folder import Folder
from utils.paths import HOME, to_parent_uuid, validate_name

HOME_ENTRY = {"id": HOME, "name": HOME}

FOLDER = "folder"
FILE = "file"


class DeletePlan:
    """
    递归删除计划。

    steps 按深度优先后序排列：每个文件夹都排在它所有后代之后，
    每一步是 {"folder": uuid, "files": [{"uuid", "size"}, ...]}。
    """

    def __init__(self, root_uuid: str, parent_uuid: Optional[str], owner_id: int, steps: List[Dict]):
        self.root_uuid = root_uuid
        self.parent_uuid = parent_uuid
        self.owner_id = owner_id
        self.steps = steps

    @property
    def file_keys(self) -> List[str]:
        return [f["uuid"] for step in self.steps for f in step["files"]]

    @property
    def folder_uuids(self) -> List[str]:
        return [step["folder"] for step in self.steps]

    @property
    def total_size(self) -> int:
        return sum(f["size"] or 0 for step in self.steps for f in step["files"])

    def __repr__(self):
        return f'<DeletePlan root={self.root_uuid[:8]}... folders={len(self.steps)} files={len(self.file_keys)}>'


class PrivacyPlan:
    """隐私级联计划：子树中每个实体恰好出现一次"""

    def __init__(self, root_uuid: str, owner_id: int, target_private: bool, entities: List[Tuple[str, str]]):
        self.root_uuid = root_uuid
        self.owner_id = owner_id
        self.target_private = target_private
        self.entities = entities

    def __iter__(self):
        return iter(self.entities)

    def __len__(self):
        return len(self.entities)

    def uuids(self, kind: str) -> List[str]:
        return [uuid for k, uuid in self.entities if k == kind]


class FolderTree:

    @staticmethod
    def get_folder(folder_ref, user_id) -> Folder:
        folder = Folder.find_owned(folder_ref, user_id) if folder_ref else None
        if folder is None:
            raise NotFound("文件夹不存在")
        return folder

    @staticmethod
    def _require_folder_ref(folder_ref):
        if to_parent_uuid(folder_ref) is None:
            raise InvalidInput("不能对根目录执行该操作")
        return folder_ref

    # -------- 查询 --------
    @staticmethod
    def list_contents(folder_ref, user_id) -> Tuple[List[File], List[Folder]]:
        """Direct children of folder_ref (one level), owned by user_id."""
        parent_uuid = to_parent_uuid(folder_ref)
        if parent_uuid is not None:
            FolderTree.get_folder(parent_uuid, user_id)
        return File.in_folder(parent_uuid, user_id), Folder.children_of(parent_uuid, user_id)

    @staticmethod
    def resolve_path(folder_ref, user_id) -> List[Dict]:
        """
        从根到 folder_ref 的路径（包含自身）：
        [{"id": "home", "name": "home"}, {"id": ..., "name": ...}, ...]

        起点不存在 -> NotFound；祖先缺失或出现环 -> InconsistentState。
        """
        if to_parent_uuid(folder_ref) is None:
            return [dict(HOME_ENTRY)]

        current = FolderTree.get_folder(folder_ref, user_id)
        path = []
        seen = set()
        while current is not None:
            if current.uuid in seen:
                current_app.logger.error("folder cycle detected at %s (user %s)", current.uuid, user_id)
                raise InconsistentState(detail=f"cycle at folder {current.uuid}")
            seen.add(current.uuid)
            path.append({"id": current.uuid, "name": current.name})
            if current.parent_uuid is None:
                break
            parent = Folder.find_owned(current.parent_uuid, user_id)
            if parent is None:
                current_app.logger.error(
                    "folder %s references missing parent %s (user %s)",
                    current.uuid, current.parent_uuid, user_id,
                )
                raise InconsistentState(detail=f"missing ancestor {current.parent_uuid}")
            current = parent

        path.append(dict(HOME_ENTRY))
        path.reverse()
        return path

    # -------- mkdir -p --------
    @staticmethod
    def ensure_path(segments: List[str], user_id, start_parent=None, created: Optional[List[str]] = None):
        """
        按 segments 逐级查找或创建子文件夹，返回最末一级文件夹的 uuid
        （segments 为空时返回起点，根目录为 None）。

        幂等：重复调用不会创建重复的文件夹。
        并发创建同名文件夹时唯一约束会失败，此时回滚并重新读取已存在的那一条。
        新建的 uuid 会追加到 created（若传入）。
        """
        current = to_parent_uuid(start_parent)
        if current is not None:
            FolderTree.get_folder(current, user_id)

        for raw_name in segments:
            name = validate_name(raw_name)
            existing = Folder.find_child(current, user_id, name)
            if existing is not None:
                current = existing.uuid
                continue

            folder, is_new = FolderTree._create_child(current, user_id, name)
            if is_new and created is not None:
                created.append(folder.uuid)
            current = folder.uuid
        return current

    @staticmethod
    def _create_child(parent_uuid, user_id, name):
        folder = Folder(
            uuid=new_token(),
            name=name,
            owner_id=user_id,
            parent_uuid=parent_uuid,
            size=0,
        )
        try:
            db.session.add(folder)
            db.session.commit()
            return folder, True
        except IntegrityError:
            # 其他请求已经创建了同名文件夹
            db.session.rollback()
            existing = Folder.find_child(parent_uuid, user_id, name)
            if existing is not None:
                return existing, False
            # 不是重名冲突：父目录在此期间被删除
            raise NotFound("文件夹不存在")
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailable(detail=str(e)) from e

    # -------- 计划 --------
    @staticmethod
    def plan_recursive_delete(folder_ref, user_id) -> DeletePlan:
        root = FolderTree.get_folder(FolderTree._require_folder_ref(folder_ref), user_id)

        steps = []
        seen = set()
        # (uuid, expanded)：第二次出栈时所有子孙都已输出
        stack = [(root.uuid, False)]
        while stack:
            folder_uuid, expanded = stack.pop()
            if expanded:
                files = File.in_folder(folder_uuid, user_id)
                steps.append({
                    "folder": folder_uuid,
                    "files": [{"uuid": f.uuid, "size": f.size} for f in files],
                })
                continue
            if folder_uuid in seen:
                current_app.logger.error("folder cycle detected at %s (user %s)", folder_uuid, user_id)
                raise InconsistentState(detail=f"cycle at folder {folder_uuid}")
            seen.add(folder_uuid)
            stack.append((folder_uuid, True))
            for child in reversed(Folder.children_of(folder_uuid, user_id)):
                stack.append((child.uuid, False))

        return DeletePlan(root.uuid, root.parent_uuid, int(user_id), steps)

    @staticmethod
    def plan_privacy_cascade(folder_ref, target_private: bool, user_id) -> PrivacyPlan:
        if not isinstance(target_private, bool):
            raise InvalidInput("privacy 参数错误")
        root = FolderTree.get_folder(FolderTree._require_folder_ref(folder_ref), user_id)

        entities = []
        seen = set()
        queue = deque([root.uuid])
        while queue:
            folder_uuid = queue.popleft()
            if folder_uuid in seen:
                continue
            seen.add(folder_uuid)
            entities.append((FOLDER, folder_uuid))
            entities.extend((FILE, f.uuid) for f in File.in_folder(folder_uuid, user_id))
            queue.extend(child.uuid for child in Folder.children_of(folder_uuid, user_id))

        return PrivacyPlan(root.uuid, int(user_id), target_private, entities)

    @staticmethod
    def snapshot_subtree(folder_ref, user_id) -> Dict:
        """
        子树快照，供打包使用。节点格式：
            {"name", "kind": "folder"|"file", "content_ref", "relative_path", "children"/"size"}
        根节点 relative_path 为 ""，其余为相对根节点的路径。
        """
        parent_uuid = to_parent_uuid(folder_ref)
        if parent_uuid is None:
            root = {"name": HOME, "kind": FOLDER, "content_ref": None, "relative_path": "", "children": []}
        else:
            folder = FolderTree.get_folder(parent_uuid, user_id)
            root = {"name": folder.name, "kind": FOLDER, "content_ref": folder.uuid,
                    "relative_path": "", "children": []}

        seen = set()
        stack = [(parent_uuid, root)]
        while stack:
            folder_uuid, node = stack.pop()
            if folder_uuid in seen:
                current_app.logger.error("folder cycle detected at %s (user %s)", folder_uuid, user_id)
                raise InconsistentState(detail=f"cycle at folder {folder_uuid}")
            seen.add(folder_uuid)
            for sub in Folder.children_of(folder_uuid, user_id):
                child = {
                    "name": sub.name,
                    "kind": FOLDER,
                    "content_ref": sub.uuid,
                    "relative_path": _join(node["relative_path"], sub.name),
                    "children": [],
                }
                node["children"].append(child)
                stack.append((sub.uuid, child))
            for f in File.in_folder(folder_uuid, user_id):
                node["children"].append({
                    "name": f.name,
                    "kind": FILE,
                    "content_ref": f.uuid,
                    "relative_path": _join(node["relative_path"], f.name),
                    "size": f.size,
                })
        return root


def _join(base, name):
    return f"{base}/{name}" if base else name
