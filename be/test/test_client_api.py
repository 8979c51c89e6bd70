from unittest import mock

import pytest

from client.api.base import APIError
from client.api.drive_api import DriveAPI
from client.config import Config


def response(status, body):
    resp = mock.MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    return resp


@pytest.fixture
def api():
    api = DriveAPI(base_url="http://drive.test", token="t0ken")
    api.session = mock.MagicMock()
    return api


def test_request_unwraps_data(api):
    api.session.request.return_value = response(200, {"code": 0, "msg": "ok", "data": {"files": [], "folders": []}})
    assert api.ls() == {"files": [], "folders": []}
    method, url = api.session.request.call_args[0]
    assert (method, url) == ("GET", "http://drive.test/folder/home/list")


def test_error_envelope(api):
    api.session.request.return_value = response(403, {"code": 403, "msg": "无权操作", "error": "forbidden"})
    with pytest.raises(APIError) as exc:
        api.rmdir("abc")
    assert exc.value.status == 403
    assert exc.value.kind == "forbidden"


def test_privacy_value(api):
    api.session.request.return_value = response(200, {"code": 0, "msg": "ok", "data": {}})
    api.set_folder_privacy("abc", public=True)
    assert api.session.request.call_args[0][1].endswith("/folder/abc/privacy/1")
    api.set_file_privacy("def", public=False)
    assert api.session.request.call_args[0][1].endswith("/file/def/privacy/0")


def test_upload_dir_fields(api, tmp_path):
    root = tmp_path / "docs"
    (root / "imgs").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"A")
    (root / "imgs" / "b.png").write_bytes(b"PNG")
    api.session.request.return_value = response(200, {"code": 0, "msg": "ok", "data": {"files": 2, "folders": 2}})

    assert api.upload_dir(str(root)) == {"files": 2, "folders": 2}

    kwargs = api.session.request.call_args[1]
    paths = sorted(kwargs["data"].values())
    assert paths == ["docs/a.txt", "docs/imgs/b.png"]
    assert set(kwargs["files"]) == {"file_0", "file_1"}


def test_upload_dir_in_batches(api, tmp_path, monkeypatch):
    root = tmp_path / "docs"
    (root / "imgs").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"A")
    (root / "imgs" / "b.png").write_bytes(b"PNG")
    monkeypatch.setattr(Config, "UPLOAD_BATCH", 1)
    api.session.request.side_effect = [
        response(200, {"code": 0, "msg": "ok", "data": {"files": 1, "folders": 1}}),
        response(200, {"code": 0, "msg": "ok", "data": {"files": 1, "folders": 1}}),
    ]

    assert api.upload_dir(str(root)) == {"files": 2, "folders": 2}

    calls = api.session.request.call_args_list
    assert len(calls) == 2
    # 每批重新从 file_0 编号
    assert [set(c[1]["files"]) for c in calls] == [{"file_0"}, {"file_0"}]
    assert sorted(p for c in calls for p in c[1]["data"].values()) == ["docs/a.txt", "docs/imgs/b.png"]
    # 上一批的文件已经关闭
    assert all(f.closed for c in calls for _, f in c[1]["files"].values())


def test_list_files(api):
    api.session.request.return_value = response(200, {"code": 0, "msg": "ok", "data": {"files": [{"uuid": "u1"}]}})
    assert api.list_files() == [{"uuid": "u1"}]
    method, url = api.session.request.call_args[0]
    assert (method, url) == ("GET", "http://drive.test/file/list")


def test_upload_empty_dir(api, tmp_path):
    with pytest.raises(ValueError):
        api.upload_dir(str(tmp_path))
