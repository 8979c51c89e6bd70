import uuid

import pytest
from common.db import db
from services.user_service import UserService
from app import create_app


@pytest.fixture(scope="module")
def test_app(tmp_path_factory):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret",
        "STORAGE_BACKEND": "local",
        "LOCAL_STORAGE_DIR": str(tmp_path_factory.mktemp("objects")),
        "ARCHIVE_TMP_DIR": str(tmp_path_factory.mktemp("archives")),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture(scope="module")
def client(test_app):
    return test_app.test_client()


@pytest.fixture
def make_user(test_app):
    """直接在 service 层创建用户，返回 user_id"""
    def _make(prefix="user"):
        user, err = UserService.register(f"{prefix}_{uuid.uuid4().hex[:6]}", "123456")
        assert err is None, err
        return user.id
    return _make


@pytest.fixture
def login(client):
    """注册并登录一个随机用户，返回 (JWT headers, user_id)"""
    def _login(prefix="user", password="123456"):
        username = f"{prefix}_{uuid.uuid4().hex[:6]}"
        client.post("/auth/register", json={"username": username, "password": password})
        res = client.post("/auth/login", json={"username": username, "password": password})
        data = res.get_json()
        assert data["code"] == 0, f"Login failed: {data}"
        return {"Authorization": f"Bearer {data['data']['token']}"}, data["data"]["user"]["id"]
    return _login
