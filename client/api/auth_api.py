# client/api/auth_api.py
import json
import os
from client.api.base import BaseAPI
from client.config import Config

class AuthAPI(BaseAPI):
    """统一的认证与用户信息接口"""

    # ---------- 身份认证 ----------
    def register(self, username, password, email=None):
        payload = {"username": username, "password": password}
        if email:
            payload["email"] = email
        return self.request("POST", "/auth/register", json=payload)

    def login(self, username, password):
        data = self.request("POST", "/auth/login", json={"username": username, "password": password})
        token = data["token"]
        self.set_token(token)
        self._save_token(token)
        return token

    def logout(self):
        result = self.request("POST", "/auth/logout")
        self._clear_token()
        return result

    # ---------- 用户资料 ----------
    def profile(self):
        return self.request("GET", "/auth/profile")

    def change_password(self, old_pwd, new_pwd):
        return self.request("POST", "/auth/change_password", json={
            "old_password": old_pwd,
            "new_password": new_pwd
        })

    def delete_account(self):
        result = self.request("POST", "/auth/delete_account")
        self._clear_token()
        return result

    # ---------- 本地缓存 ----------
    def _save_token(self, token):
        os.makedirs(os.path.dirname(Config.TOKEN_PATH) or ".", exist_ok=True)
        with open(Config.TOKEN_PATH, "w") as f:
            json.dump({"token": token}, f)

    def _clear_token(self):
        if os.path.exists(Config.TOKEN_PATH):
            os.remove(Config.TOKEN_PATH)

    def load_token(self):
        if os.path.exists(Config.TOKEN_PATH):
            with open(Config.TOKEN_PATH, "r") as f:
                data = json.load(f)
                token = data.get("token")
                if token:
                    self.set_token(token)
                    return token
        return None
