"""
网盘命令行客户端

    python -m client.client login alice 123456
    python -m client.client ls [folder]
    python -m client.client upload-dir ./photos --folder <uuid>
    python -m client.client download-dir <uuid> photos.zip
"""
import argparse

from client.api.auth_api import AuthAPI
from client.api.base import APIError
from client.api.drive_api import DriveAPI, HOME
from client.config import Config


class DriveClient:
    def __init__(self, base_url=None):
        self.base_url = base_url or Config.BASE_URL
        self.auth = AuthAPI(self.base_url)
        self.drive = DriveAPI(self.base_url)
        token = self.auth.load_token()
        if token:
            self._sync_token(token)

    def login(self, username, password):
        token = self.auth.login(username, password)
        self._sync_token(token)
        return token

    def _sync_token(self, token):
        """同步 token 到所有模块"""
        self.drive.set_token(token)


def _print_listing(data):
    for folder in data["folders"]:
        print(f"d {folder['uuid']}  {folder['size']:>12}  {folder['name']}/")
    for f in data["files"]:
        print(f"- {f['uuid']}  {f['size']:>12}  {f['name']}")


def build_parser():
    parser = argparse.ArgumentParser(description="Cloud Drive Client")
    parser.add_argument("--base-url", default=Config.BASE_URL, help="Backend API base url")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register")
    p.add_argument("username")
    p.add_argument("password")
    p.add_argument("--email")

    p = sub.add_parser("login")
    p.add_argument("username")
    p.add_argument("password")

    sub.add_parser("logout")
    sub.add_parser("profile")

    p = sub.add_parser("ls", help="列出文件夹内容")
    p.add_argument("folder", nargs="?", default=HOME)

    sub.add_parser("files", help="列出全部文件")

    p = sub.add_parser("path", help="显示文件夹路径")
    p.add_argument("folder")

    p = sub.add_parser("mkdir")
    p.add_argument("name")
    p.add_argument("--parent", default=HOME)

    p = sub.add_parser("upload")
    p.add_argument("file")
    p.add_argument("--folder", default=HOME)

    p = sub.add_parser("upload-dir")
    p.add_argument("dir")
    p.add_argument("--folder", default=HOME)

    p = sub.add_parser("download")
    p.add_argument("file_uuid")
    p.add_argument("save_path")

    p = sub.add_parser("download-dir")
    p.add_argument("folder")
    p.add_argument("save_path")

    p = sub.add_parser("preview")
    p.add_argument("file_uuid")

    p = sub.add_parser("rm")
    p.add_argument("file_uuid")

    p = sub.add_parser("rmdir")
    p.add_argument("folder_uuid")

    p = sub.add_parser("privacy", help="设置公开(public)或私有(private)")
    p.add_argument("kind", choices=["file", "folder"])
    p.add_argument("uuid")
    p.add_argument("value", choices=["public", "private"])
    return parser


def run(cli, args):
    drive = cli.drive
    if args.command == "register":
        print(cli.auth.register(args.username, args.password, args.email))
    elif args.command == "login":
        cli.login(args.username, args.password)
        print("登录成功")
    elif args.command == "logout":
        cli.auth.logout()
        print("已登出")
    elif args.command == "profile":
        print(cli.auth.profile())
    elif args.command == "ls":
        _print_listing(drive.ls(args.folder))
    elif args.command == "files":
        for f in drive.list_files():
            print(f"- {f['uuid']}  {f['size']:>12}  {f['folder']}  {f['name']}")
    elif args.command == "path":
        print("/".join(p["name"] for p in drive.path(args.folder)))
    elif args.command == "mkdir":
        print(drive.mkdir(args.name, args.parent)["uuid"])
    elif args.command == "upload":
        print(drive.upload(args.file, args.folder)["uuid"])
    elif args.command == "upload-dir":
        result = drive.upload_dir(args.dir, args.folder)
        print(f"上传 {result['files']} 个文件，新建 {result['folders']} 个文件夹")
    elif args.command == "download":
        print(f"{drive.download(args.file_uuid, args.save_path)} bytes -> {args.save_path}")
    elif args.command == "download-dir":
        print(f"{drive.download_dir(args.folder, args.save_path)} bytes -> {args.save_path}")
    elif args.command == "preview":
        print(drive.preview_url(args.file_uuid))
    elif args.command == "rm":
        print(drive.rm(args.file_uuid))
    elif args.command == "rmdir":
        print(drive.rmdir(args.folder_uuid))
    elif args.command == "privacy":
        public = args.value == "public"
        if args.kind == "file":
            print(drive.set_file_privacy(args.uuid, public))
        else:
            print(drive.set_folder_privacy(args.uuid, public))


def main(argv=None):
    args = build_parser().parse_args(argv)
    cli = DriveClient(base_url=args.base_url)
    try:
        run(cli, args)
    except APIError as e:
        raise SystemExit(f"[{e.kind}] {e.msg}")


if __name__ == "__main__":
    main()
