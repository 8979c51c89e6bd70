import pytest

from common.db import db
from common.errors import InconsistentState, InvalidInput, NotFound
from models.base import new_token
from models.file import File
from models.folder import Folder
from services.folder_tree import FILE, FOLDER, FolderTree


def add_file(owner_id, folder_uuid, name, size=1):
    f = File(uuid=new_token(), name=name, owner_id=owner_id, folder_uuid=folder_uuid,
             mime_type="text/plain", size=size)
    db.session.add(f)
    db.session.commit()
    return f.uuid


@pytest.fixture
def owner(make_user):
    return make_user("tree")


class TestResolvePath:

    def test_home(self, owner):
        assert FolderTree.resolve_path("home", owner) == [{"id": "home", "name": "home"}]

    def test_nested(self, owner):
        leaf = FolderTree.ensure_path(["a", "b", "c"], owner)
        path = FolderTree.resolve_path(leaf, owner)
        assert [p["name"] for p in path] == ["home", "a", "b", "c"]
        assert path[-1]["id"] == leaf

    def test_other_users_folder_is_not_found(self, owner, make_user):
        leaf = FolderTree.ensure_path(["private"], owner)
        with pytest.raises(NotFound):
            FolderTree.resolve_path(leaf, make_user("intruder"))

    def test_missing_ancestor(self, owner):
        orphan = Folder(uuid=new_token(), name="orphan", owner_id=owner, parent_uuid=new_token(), size=0)
        db.session.add(orphan)
        db.session.commit()
        with pytest.raises(InconsistentState):
            FolderTree.resolve_path(orphan.uuid, owner)

    def test_cycle(self, owner):
        a_uuid = FolderTree.ensure_path(["loop_a"], owner)
        b_uuid = FolderTree.ensure_path(["loop_b"], owner, start_parent=a_uuid)
        a = Folder.find_owned(a_uuid, owner)
        a.parent_uuid = b_uuid
        db.session.commit()
        with pytest.raises(InconsistentState):
            FolderTree.resolve_path(b_uuid, owner)


class TestEnsurePath:

    def test_idempotent(self, owner):
        created = []
        first = FolderTree.ensure_path(["x", "y"], owner, created=created)
        assert len(created) == 2

        created = []
        second = FolderTree.ensure_path(["x", "y"], owner, created=created)
        assert second == first
        assert created == []
        assert len(Folder.children_of(None, owner)) == 1

    def test_empty_segments_return_start(self, owner):
        assert FolderTree.ensure_path([], owner) is None
        start = FolderTree.ensure_path(["start"], owner)
        assert FolderTree.ensure_path([], owner, start_parent=start) == start

    def test_invalid_segment(self, owner):
        with pytest.raises(InvalidInput):
            FolderTree.ensure_path(["ok", ".."], owner)

    def test_unknown_start(self, owner):
        with pytest.raises(NotFound):
            FolderTree.ensure_path(["a"], owner, start_parent=new_token())

    @pytest.mark.parametrize("segments", [["race_root"], ["batch", "out"]])
    def test_concurrent_creation_resolves_to_one_folder(self, owner, monkeypatch, segments):
        # 先由"另一个请求"建好目标文件夹
        expected = FolderTree.ensure_path(segments, owner)

        # 本请求的查找发生在对方提交之前：第一次找不到最后一级
        original = Folder.find_child
        missed = []

        def find_child(parent_uuid, owner_id, name):
            if name == segments[-1] and not missed:
                missed.append(name)
                return None
            return original(parent_uuid, owner_id, name)

        monkeypatch.setattr(Folder, "find_child", find_child)
        created = []
        result = FolderTree.ensure_path(segments, owner, created=created)

        assert missed == [segments[-1]]
        assert result == expected
        assert created == []
        parent = FolderTree.ensure_path(segments[:-1], owner)
        assert [f.name for f in Folder.children_of(parent, owner)].count(segments[-1]) == 1


class TestPlans:

    @pytest.fixture
    def tree(self, owner):
        """
        root/
          b/
            d/ d.txt
            b.txt
          c/
          root.txt
        """
        root = FolderTree.ensure_path(["root"], owner)
        b = FolderTree.ensure_path(["b"], owner, start_parent=root)
        c = FolderTree.ensure_path(["c"], owner, start_parent=root)
        d = FolderTree.ensure_path(["d"], owner, start_parent=b)
        files = {
            "root.txt": add_file(owner, root, "root.txt", 10),
            "b.txt": add_file(owner, b, "b.txt", 20),
            "d.txt": add_file(owner, d, "d.txt", 30),
        }
        return {"root": root, "b": b, "c": c, "d": d, "files": files}

    def test_delete_plan_is_post_order(self, owner, tree):
        plan = FolderTree.plan_recursive_delete(tree["root"], owner)
        order = plan.folder_uuids
        assert sorted(order) == sorted([tree["root"], tree["b"], tree["c"], tree["d"]])
        assert order.index(tree["d"]) < order.index(tree["b"])
        assert order.index(tree["b"]) < order.index(tree["root"])
        assert order.index(tree["c"]) < order.index(tree["root"])
        assert order[-1] == tree["root"]
        assert sorted(plan.file_keys) == sorted(tree["files"].values())
        assert plan.total_size == 60
        assert plan.parent_uuid is None

    def test_delete_plan_rejects_home(self, owner):
        with pytest.raises(InvalidInput):
            FolderTree.plan_recursive_delete("home", owner)

    def test_delete_plan_for_other_user(self, tree, make_user):
        with pytest.raises(NotFound):
            FolderTree.plan_recursive_delete(tree["root"], make_user("other"))

    def test_privacy_plan_covers_each_entity_once(self, owner, tree):
        plan = FolderTree.plan_privacy_cascade(tree["root"], False, owner)
        entities = list(plan)
        assert len(entities) == len(set(entities)) == 7
        assert sorted(plan.uuids(FOLDER)) == sorted([tree["root"], tree["b"], tree["c"], tree["d"]])
        assert sorted(plan.uuids(FILE)) == sorted(tree["files"].values())
        assert plan.target_private is False

    def test_privacy_plan_requires_bool(self, owner, tree):
        with pytest.raises(InvalidInput):
            FolderTree.plan_privacy_cascade(tree["root"], "1", owner)

    def test_snapshot(self, owner, tree):
        snap = FolderTree.snapshot_subtree(tree["root"], owner)
        assert snap["name"] == "root"
        assert snap["relative_path"] == ""

        paths = {}
        stack = [snap]
        while stack:
            node = stack.pop()
            paths[node["relative_path"]] = node["kind"]
            stack.extend(node.get("children", []))
        assert paths == {
            "": FOLDER,
            "b": FOLDER,
            "c": FOLDER,
            "b/d": FOLDER,
            "b/d/d.txt": FILE,
            "b/b.txt": FILE,
            "root.txt": FILE,
        }


def test_list_contents(owner):
    parent = FolderTree.ensure_path(["listing"], owner)
    FolderTree.ensure_path(["sub"], owner, start_parent=parent)
    add_file(owner, parent, "one.txt")
    files, folders = FolderTree.list_contents(parent, owner)
    assert [f.name for f in files] == ["one.txt"]
    assert [f.name for f in folders] == ["sub"]
