"""
文件夹打包下载

ZipArchiveWriter 把条目逐个写进临时目录里的一个匿名临时文件，
每次只有一个文件的一个数据块在内存中；ArchiveAssembler 负责遍历快照并从对象存储取数据。
"""
import os
import tempfile
import time
import zipfile
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from flask import current_app

from common.errors import ArchiveCancelled, EmptySubtree, InconsistentState, StoreUnavailable
from services.storage.base_storage import ObjectMissing, ObjectStoreError


class ArchiveWriter(ABC):
    @abstractmethod
    def add_directory(self, path: str):
        pass

    @abstractmethod
    def add_file(self, path: str, chunks: Iterable[bytes]):
        pass

    @abstractmethod
    def finalize(self):
        """Finish the archive and return a readable binary file object positioned at 0."""
        pass

    @abstractmethod
    def abort(self):
        """Discard everything written so far."""
        pass


class ZipArchiveWriter(ArchiveWriter):
    def __init__(self, scratch_dir: Optional[str] = None):
        if scratch_dir:
            os.makedirs(scratch_dir, exist_ok=True)
        # 匿名临时文件，关闭即删除
        self._fh = tempfile.TemporaryFile(prefix="archive-", suffix=".zip", dir=scratch_dir)
        self._zip = zipfile.ZipFile(self._fh, "w", compression=zipfile.ZIP_DEFLATED, allowZip64=True)

    @staticmethod
    def _info(name, is_dir=False):
        info = zipfile.ZipInfo(name, date_time=time.localtime()[:6])
        if is_dir:
            info.external_attr = (0o40755 << 16) | 0x10
        else:
            info.external_attr = 0o644 << 16
            info.compress_type = zipfile.ZIP_DEFLATED
        return info

    def add_directory(self, path):
        self._zip.writestr(self._info(path.rstrip("/") + "/", is_dir=True), b"")

    def add_file(self, path, chunks):
        # 大小未知，直接按 zip64 写
        with self._zip.open(self._info(path), "w", force_zip64=True) as dst:
            for chunk in chunks:
                dst.write(chunk)

    def finalize(self):
        self._zip.close()
        self._fh.seek(0)
        return self._fh

    def abort(self):
        try:
            self._zip.close()
        except (OSError, ValueError, zipfile.BadZipFile):
            # 写到一半的 zip 可能无法正常收尾，临时文件随后直接丢弃
            pass
        finally:
            self._fh.close()


class ArchiveAssembler:
    def __init__(self, storage, scratch_dir: Optional[str] = None, writer_factory=ZipArchiveWriter):
        self.storage = storage
        self.scratch_dir = scratch_dir
        self.writer_factory = writer_factory

    def build_archive(self, snapshot: Dict, cancel_event=None):
        """
        按快照深度优先写入归档，返回可读的临时文件对象（调用方负责关闭）。

        Args:
            snapshot: FolderTree.snapshot_subtree 的结果
            cancel_event: threading.Event，置位后停止读取对象存储并清理临时文件

        Raises:
            EmptySubtree: 根文件夹下没有任何文件和子文件夹
            ArchiveCancelled: 调用方取消
        """
        if not snapshot.get("children"):
            raise EmptySubtree()

        writer = self.writer_factory(self.scratch_dir)
        used = set()
        entries = 0
        try:
            stack = list(reversed(snapshot["children"]))
            while stack:
                if cancel_event is not None and cancel_event.is_set():
                    raise ArchiveCancelled()
                node = stack.pop()
                if node["kind"] == "folder":
                    path = node["relative_path"]
                    used.add(path)
                    writer.add_directory(path)
                    stack.extend(reversed(node["children"]))
                else:
                    path = _unique_path(node["relative_path"], used)
                    used.add(path)
                    writer.add_file(path, self._fetch(node["content_ref"]))
                entries += 1
            stream = writer.finalize()
        except BaseException:
            writer.abort()
            raise

        current_app.logger.info("archive built for %s: %d entries", snapshot.get("content_ref") or "home", entries)
        return stream

    def _fetch(self, key):
        try:
            yield from self.storage.get_object(key)
        except ObjectMissing as e:
            current_app.logger.error("file record %s has no backing object", key)
            raise InconsistentState(detail=f"missing object {key}") from e
        except ObjectStoreError as e:
            raise StoreUnavailable(detail=str(e)) from e


def _unique_path(path, used):
    """同一目录下允许同名文件，打包时追加序号：a.txt -> a (1).txt"""
    if path not in used:
        return path
    base, ext = os.path.splitext(path)
    n = 1
    while f"{base} ({n}){ext}" in used:
        n += 1
    return f"{base} ({n}){ext}"
