"""
网盘文件/文件夹接口

文件夹引用使用 "home"（根目录）或文件夹 uuid。
"""
import os
from contextlib import ExitStack
from typing import Dict, List

from client.api.base import BaseAPI
from client.config import Config

HOME = "home"


class DriveAPI(BaseAPI):

    # ---------- 文件夹 ----------
    def ls(self, folder=HOME) -> Dict:
        return self.request("GET", f"/folder/{folder}/list")

    def path(self, folder=HOME) -> List[Dict]:
        return self.request("GET", f"/folder/{folder}/path")["path"]

    def mkdir(self, name, parent=HOME) -> Dict:
        return self.request("POST", f"/folder/{parent}/create", json={"name": name})

    def rmdir(self, folder_uuid) -> Dict:
        return self.request("DELETE", f"/folder/{folder_uuid}")

    def set_folder_privacy(self, folder_uuid, public: bool) -> Dict:
        return self.request("POST", f"/folder/{folder_uuid}/privacy/{1 if public else 0}")

    def find_folder(self, name, parent=HOME):
        """在 parent 下按名称查找子文件夹，找不到返回 None"""
        for folder in self.ls(parent)["folders"]:
            if folder["name"] == name:
                return folder
        return None

    # ---------- 文件 ----------
    def upload(self, filepath, folder=HOME) -> Dict:
        filename = os.path.basename(filepath)
        with open(filepath, "rb") as f:
            return self.request("POST", f"/file/{folder}/upload", files={"file": (filename, f)})

    def download(self, file_uuid, save_path) -> int:
        return self.download_to(f"/file/{file_uuid}/download", save_path)

    def preview_url(self, file_uuid) -> str:
        return self.request("GET", f"/file/{file_uuid}/preview")["url"]

    def list_files(self) -> List[Dict]:
        """当前用户的全部文件（不分目录）"""
        return self.request("GET", "/file/list")["files"]

    def rm(self, file_uuid) -> Dict:
        return self.request("DELETE", f"/file/{file_uuid}")

    def set_file_privacy(self, file_uuid, public: bool) -> Dict:
        return self.request("POST", f"/file/{file_uuid}/privacy/{1 if public else 0}")

    # ---------- 目录上传 / 打包下载 ----------
    def upload_dir(self, local_dir, folder=HOME) -> Dict:
        """
        上传整个本地目录，目录本身作为 folder 下的一个新文件夹。

        每个文件对应表单字段 file_<i>，相对路径放在 file_<i>_path。
        文件按 Config.UPLOAD_BATCH 分批发送，同一时间只打开一批文件；
        服务端按路径复用已建好的文件夹，所以分批结果可以直接累加。
        """
        local_dir = os.path.abspath(local_dir)
        base = os.path.dirname(local_dir)
        entries = []
        for root, _dirs, names in os.walk(local_dir):
            for name in sorted(names):
                full = os.path.join(root, name)
                entries.append((full, os.path.relpath(full, base).replace(os.sep, "/")))
        if not entries:
            raise ValueError(f"目录为空: {local_dir}")

        batch_size = max(1, Config.UPLOAD_BATCH)
        total = {"files": 0, "folders": 0}
        for start in range(0, len(entries), batch_size):
            with ExitStack() as stack:
                files = {}
                data = {}
                for i, (full, rel) in enumerate(entries[start:start + batch_size]):
                    files[f"file_{i}"] = (os.path.basename(full), stack.enter_context(open(full, "rb")))
                    data[f"file_{i}_path"] = rel
                result = self.request("POST", f"/folder/{folder}/upload", files=files, data=data,
                                      timeout=Config.DOWNLOAD_TIMEOUT)
            total["files"] += result["files"]
            total["folders"] += result["folders"]
        return total

    def download_dir(self, folder, save_path) -> int:
        """下载文件夹的 zip 包"""
        return self.download_to(f"/folder/{folder}/download", save_path)
