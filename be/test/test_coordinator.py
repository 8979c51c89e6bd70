import io

import pytest

from common.db import db
from common.errors import InconsistentState, InvalidInput, StoreUnavailable
from models.base import new_token
from models.file import File
from models.folder import Folder
from services.coordinator import ConsistencyCoordinator
from services.folder_tree import FolderTree
from services.storage.base_storage import ObjectStoreError
from services.storage.local_storage import LocalStorage


class FlakyStorage(LocalStorage):
    """可以按需让写入或删除失败的本地存储"""

    def __init__(self, root):
        super().__init__(root)
        self.fail_put = False
        self.fail_delete = False

    def put_object(self, key, stream, size, content_type):
        if self.fail_put:
            raise ObjectStoreError("disk on fire")
        return super().put_object(key, stream, size, content_type)

    def delete_objects(self, keys):
        if self.fail_delete:
            raise ObjectStoreError("store unreachable")
        return super().delete_objects(keys)


@pytest.fixture
def storage(tmp_path):
    return FlakyStorage(str(tmp_path / "objects"))


@pytest.fixture
def events():
    return []


@pytest.fixture
def coordinator(storage, events):
    return ConsistencyCoordinator(storage, listener=lambda event, payload: events.append((event, payload)))


@pytest.fixture
def owner(make_user):
    return make_user("coord")


def upload(coordinator, owner, ref, name, content=b"data"):
    return coordinator.execute_upload(owner, ref, name, "text/plain", io.BytesIO(content))


class TestUpload:

    def test_upload_writes_object_then_record(self, coordinator, storage, owner, events):
        folder = FolderTree.ensure_path(["up"], owner)
        record = upload(coordinator, owner, folder, "a.txt", b"hello")
        assert record.size == 5
        assert storage.read_all(record.uuid) == b"hello"
        assert File.find_owned(record.uuid, owner).folder_uuid == folder
        assert Folder.find_owned(folder, owner).size == 5
        assert events[-1] == ("uploaded", {"file": record.uuid, "parent": folder})

    def test_failed_object_write_creates_no_record(self, coordinator, storage, owner):
        storage.fail_put = True
        with pytest.raises(StoreUnavailable):
            upload(coordinator, owner, "home", "lost.txt")
        assert File.query.filter_by(owner_id=owner, name="lost.txt").count() == 0

    def test_zero_byte_file(self, coordinator, owner):
        record = upload(coordinator, owner, "home", "empty.txt", b"")
        assert record.size == 0

    def test_invalid_name(self, coordinator, owner):
        with pytest.raises(InvalidInput):
            upload(coordinator, owner, "home", "a/b.txt")

    def test_bulk_upload_resolves_each_prefix_once(self, coordinator, owner, monkeypatch):
        calls = []
        original = FolderTree.ensure_path

        def ensure_path(segments, user_id, start_parent=None, created=None):
            calls.append(tuple(segments))
            return original(segments, user_id, start_parent, created=created)

        monkeypatch.setattr(FolderTree, "ensure_path", ensure_path)
        target = original(["bulk"], owner)
        items = [
            ("a/b/1.txt", io.BytesIO(b"1"), "text/plain"),
            ("a/b/2.txt", io.BytesIO(b"22"), "text/plain"),
            ("a/c/3.txt", io.BytesIO(b"333"), None),
            ("top.txt", io.BytesIO(b"t"), "text/plain"),
        ]
        result = coordinator.execute_bulk_upload(owner, target, items)

        assert result == {"files": 4, "folders": 3}
        assert sorted(calls) == [("a", "b"), ("a", "c")]
        a = Folder.find_child(target, owner, "a")
        b = Folder.find_child(a.uuid, owner, "b")
        assert sorted(f.name for f in File.in_folder(b.uuid, owner)) == ["1.txt", "2.txt"]
        assert Folder.find_owned(target, owner).size == 7

    def test_bulk_upload_needs_files(self, coordinator, owner):
        with pytest.raises(InvalidInput):
            coordinator.execute_bulk_upload(owner, "home", [])


class TestDelete:

    @pytest.fixture
    def populated(self, coordinator, owner):
        top = FolderTree.ensure_path(["top"], owner)
        root = FolderTree.ensure_path(["victim"], owner, start_parent=top)
        sub = FolderTree.ensure_path(["sub"], owner, start_parent=root)
        files = [
            upload(coordinator, owner, root, "r.txt", b"abc"),
            upload(coordinator, owner, sub, "s.txt", b"defg"),
        ]
        return top, root, sub, [f.uuid for f in files]

    def test_delete_removes_objects_and_records(self, coordinator, storage, owner, populated, events):
        top, root, sub, keys = populated
        assert Folder.find_owned(top, owner).size == 7

        report = coordinator.execute_delete(FolderTree.plan_recursive_delete(root, owner))

        assert report.deleted_folders == 2
        assert report.deleted_files == 2
        assert report.failed_object_keys == []
        assert Folder.find_owned(root, owner) is None
        assert Folder.find_owned(sub, owner) is None
        assert not any(storage.exists(k) for k in keys)
        assert Folder.find_owned(top, owner).size == 0
        assert events[-1] == ("deleted", {"folder": root, "parent": top})

    def test_store_failure_does_not_block_metadata(self, coordinator, storage, owner, populated):
        top, root, sub, keys = populated
        storage.fail_delete = True

        report = coordinator.execute_delete(FolderTree.plan_recursive_delete(root, owner))

        assert sorted(report.failed_object_keys) == sorted(keys)
        assert Folder.find_owned(root, owner) is None
        assert File.query.filter(File.uuid.in_(keys)).count() == 0
        # 对象留在存储里，之后可以被清理
        swept = coordinator.sweep_orphans(dry_run=True)
        assert sorted(swept["orphan_objects"]) == sorted(keys)

    def test_child_added_after_planning(self, coordinator, owner, populated):
        top, root, sub, keys = populated
        plan = FolderTree.plan_recursive_delete(root, owner)
        late = Folder(uuid=new_token(), name="late", owner_id=owner, parent_uuid=root, size=0)
        db.session.add(late)
        db.session.commit()

        with pytest.raises(InconsistentState):
            coordinator.execute_delete(plan)
        # 已处理的后代被删除，根文件夹保持原样
        assert Folder.find_owned(sub, owner) is None
        assert Folder.find_owned(root, owner) is not None
        # 已提交的那一步（s.txt）已从祖先大小中扣除
        assert Folder.find_owned(top, owner).size == 3

    def test_delete_is_retryable(self, coordinator, owner, populated):
        top, root, sub, keys = populated
        plan = FolderTree.plan_recursive_delete(root, owner)
        coordinator.execute_delete(plan)
        report = coordinator.execute_delete(plan)
        assert report.deleted_folders == 0
        assert report.deleted_files == 0

    def test_delete_single_file(self, coordinator, storage, owner):
        folder = FolderTree.ensure_path(["single"], owner)
        record = upload(coordinator, owner, folder, "one.txt", b"12345")
        key = record.uuid

        report = coordinator.delete_file(key, owner)

        assert report.deleted_files == 1
        assert report.freed_bytes == 5
        assert not storage.exists(key)
        assert Folder.find_owned(folder, owner).size == 0


class TestPrivacy:

    def test_cascade_updates_whole_subtree(self, coordinator, owner, events):
        root = FolderTree.ensure_path(["pub"], owner)
        sub = FolderTree.ensure_path(["inner"], owner, start_parent=root)
        f1 = upload(coordinator, owner, root, "1.txt").uuid
        f2 = upload(coordinator, owner, sub, "2.txt").uuid

        updated = coordinator.execute_privacy_cascade(FolderTree.plan_privacy_cascade(root, False, owner))

        assert updated == 4
        assert not Folder.find_owned(root, owner).is_private
        assert not Folder.find_owned(sub, owner).is_private
        assert not File.find_owned(f1, owner).is_private
        assert not File.find_owned(f2, owner).is_private
        assert events[-1] == ("privacy_changed", {"folder": root, "private": False})

    def test_file_privacy(self, coordinator, owner):
        record = upload(coordinator, owner, "home", "p.txt")
        assert record.is_private
        record = coordinator.set_file_privacy(record.uuid, False, owner)
        assert record.is_private is False


def test_sweep_orphans(coordinator, storage, owner):
    kept = upload(coordinator, owner, "home", "kept.txt").uuid
    orphan = "0badf00d-0000-4000-8000-000000000000"
    storage.put_object(orphan, io.BytesIO(b"x"), 1, "text/plain")

    report = coordinator.sweep_orphans(dry_run=True)
    assert orphan in report["orphan_objects"]
    assert kept not in report["orphan_objects"]
    assert report["deleted"] == 0
    assert storage.exists(orphan)

    report = coordinator.sweep_orphans(dry_run=False)
    assert report["deleted"] == len(report["orphan_objects"])
    assert not storage.exists(orphan)
    assert storage.exists(kept)
