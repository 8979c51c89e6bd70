# services/storage/base_storage.py
from abc import ABC, abstractmethod


class ObjectStoreError(Exception):
    """对象存储访问失败（网络、权限、后端异常等）"""


class ObjectMissing(ObjectStoreError):
    """key 对应的对象不存在"""


class BaseStorage(ABC):
    """
    对象存储能力：按 key 存取文件内容。
    key 就是 File.uuid，各实现不关心目录结构和归属。
    """
    CHUNK_SIZE = 64 * 1024

    @abstractmethod
    def put_object(self, key, stream, size, content_type):
        """Write the whole stream under key. Raise ObjectStoreError on failure."""
        pass

    @abstractmethod
    def get_object(self, key):
        """Return an iterator of bytes chunks. Raise ObjectMissing if absent."""
        pass

    @abstractmethod
    def delete_object(self, key):
        pass

    @abstractmethod
    def delete_objects(self, keys):
        """Bulk delete. Return the list of keys that could not be deleted."""
        pass

    @abstractmethod
    def presigned_get_url(self, key, ttl_seconds):
        pass

    @abstractmethod
    def list_keys(self):
        """Iterate over every key in the store."""
        pass

    @abstractmethod
    def exists(self, key):
        pass

    def read_all(self, key):
        return b"".join(self.get_object(key))
