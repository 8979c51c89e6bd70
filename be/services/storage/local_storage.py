# services/storage/local_storage.py
import os
import re
import uuid
from datetime import timedelta

from flask import url_for
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from services.storage.base_storage import BaseStorage, ObjectStoreError, ObjectMissing

_KEY_RE = re.compile(r"^[0-9a-fA-F-]{8,64}$")
_TOKEN_SCOPE = "raw_object"


class LocalStorage(BaseStorage):
    """本地磁盘对象存储：<root>/<key 前两位>/<key>"""

    def __init__(self, root="./uploads"):
        self.root = root
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key):
        if not key or not _KEY_RE.match(key):
            raise ObjectStoreError(f"invalid object key: {key!r}")
        # 使用 key 的前两位作为子目录，避免单个目录文件过多
        return os.path.join(self.root, key[:2], key)

    def put_object(self, key, stream, size, content_type):
        path = self._path(key)
        tmp_path = f"{path}.{uuid.uuid4().hex}.part"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            written = 0
            with open(tmp_path, "wb") as f:
                for chunk in iter(lambda: stream.read(self.CHUNK_SIZE), b""):
                    f.write(chunk)
                    written += len(chunk)
            if size is not None and written != size:
                raise ObjectStoreError(f"size mismatch for {key}: expected {size}, got {written}")
            os.replace(tmp_path, path)
        except OSError as e:
            raise ObjectStoreError(f"write {key} failed: {e}") from e
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        return key

    def get_object(self, key):
        path = self._path(key)
        try:
            f = open(path, "rb")
        except FileNotFoundError as e:
            raise ObjectMissing(key) from e
        except OSError as e:
            raise ObjectStoreError(f"read {key} failed: {e}") from e
        return self._iter_file(f)

    def _iter_file(self, f):
        with f:
            for chunk in iter(lambda: f.read(self.CHUNK_SIZE), b""):
                yield chunk

    def delete_object(self, key):
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            # 已经不存在，删除是幂等的
            return False
        except OSError as e:
            raise ObjectStoreError(f"delete {key} failed: {e}") from e
        return True

    def delete_objects(self, keys):
        failed = []
        for key in keys:
            try:
                self.delete_object(key)
            except ObjectStoreError:
                failed.append(key)
        return failed

    def presigned_get_url(self, key, ttl_seconds):
        """本地后端没有真正的预签名，用一个短期 JWT 指向 /file/raw/<token>"""
        self._path(key)
        token = create_access_token(
            identity=key,
            expires_delta=timedelta(seconds=ttl_seconds),
            additional_claims={"scope": _TOKEN_SCOPE},
        )
        return url_for("file.raw_object", token=token, _external=True)

    @staticmethod
    def key_from_token(token):
        """解析 presigned_get_url 生成的 token，失败返回 None"""
        try:
            claims = decode_token(token)
        except (PyJWTError, JWTExtendedException):
            return None
        if claims.get("scope") != _TOKEN_SCOPE:
            return None
        return claims.get("sub")

    def list_keys(self):
        if not os.path.isdir(self.root):
            return
        for subdir in sorted(os.listdir(self.root)):
            subdir_path = os.path.join(self.root, subdir)
            if not os.path.isdir(subdir_path):
                continue
            for name in sorted(os.listdir(subdir_path)):
                # 跳过写入中的临时文件
                if name.endswith(".part"):
                    continue
                yield name

    def exists(self, key):
        return os.path.isfile(self._path(key))
