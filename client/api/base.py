# client/api/base.py
import requests
from client.config import Config


class APIError(RuntimeError):
    """后端返回的错误：status 为 HTTP 状态码，kind 为错误分类（not_found、forbidden ...）"""

    def __init__(self, status, kind, msg):
        super().__init__(f"API Error [{status} {kind}]: {msg}")
        self.status = status
        self.kind = kind
        self.msg = msg


class BaseAPI:
    def __init__(self, base_url=None, token=None):
        self.base_url = base_url or Config.BASE_URL
        self.session = requests.Session()
        self.token = token

        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def set_token(self, token):
        """更新 token"""
        self.token = token
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _send(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", Config.TIMEOUT)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise RuntimeError(f"HTTP error: {e}") from e

    @staticmethod
    def _raise_for_error(resp):
        try:
            data = resp.json()
        except ValueError:
            raise APIError(resp.status_code, "http", resp.text[:200])
        if resp.status_code >= 400 or data.get("code") != 0:
            raise APIError(resp.status_code, data.get("error", "unknown"), data.get("msg"))
        return data

    def request(self, method, path, **kwargs):
        """封装统一请求逻辑"""
        resp = self._send(method, path, **kwargs)
        return self._raise_for_error(resp).get("data")

    def download_to(self, path, save_path):
        """流式下载到本地文件，返回写入的字节数"""
        resp = self._send("GET", path, stream=True, timeout=Config.DOWNLOAD_TIMEOUT)
        with resp:
            if resp.status_code != 200:
                self._raise_for_error(resp)
            written = 0
            with open(save_path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=Config.CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
        return written
