import re

from flask import Blueprint, request, send_file
from flask_jwt_extended import jwt_required, get_jwt_identity
from services.folder_service import FolderService
from common.errors import InvalidInput
from common.request import json_body, parse_privacy
from common.response import success

folder_bp = Blueprint('folder', __name__)

# 目录上传的表单字段：file_<i> 为文件，file_<i>_path 为相对路径
_FILE_FIELD = re.compile(r"^file_(\d+)$")


def _collect_folder_upload():
    items = []
    for key in request.files:
        m = _FILE_FIELD.match(key)
        if not m:
            continue
        path = request.form.get(f"file_{m.group(1)}_path")
        if not path:
            raise InvalidInput(f"缺少 {key} 的相对路径")
        items.append((int(m.group(1)), path, request.files[key]))
    items.sort(key=lambda x: x[0])
    return [(path, f) for _, path, f in items]

@folder_bp.route('/<parent_ref>/create', methods=['POST'])
@jwt_required()
def create_folder(parent_ref):
    user_id = int(get_jwt_identity())
    data = json_body()
    result = FolderService.create(user_id, parent_ref, data.get("name"))
    return success(result, msg="创建成功")

@folder_bp.route('/<folder_ref>/list', methods=['GET'])
@jwt_required()
def list_folder(folder_ref):
    user_id = int(get_jwt_identity())
    return success(FolderService.list_contents(user_id, folder_ref))

@folder_bp.route('/<folder_ref>/path', methods=['GET'])
@jwt_required()
def folder_path(folder_ref):
    user_id = int(get_jwt_identity())
    return success({"path": FolderService.path(user_id, folder_ref)})

@folder_bp.route('/<folder_uuid>', methods=['DELETE'])
@jwt_required()
def remove_folder(folder_uuid):
    user_id = int(get_jwt_identity())
    return success(FolderService.delete(user_id, folder_uuid), msg="删除成功")

@folder_bp.route('/<folder_uuid>/privacy/<privacy>', methods=['POST'])
@jwt_required()
def update_privacy(folder_uuid, privacy):
    user_id = int(get_jwt_identity())
    is_private = parse_privacy(privacy)
    return success(FolderService.set_privacy(user_id, folder_uuid, is_private))

@folder_bp.route('/<folder_ref>/upload', methods=['POST'])
@jwt_required()
def upload_folder(folder_ref):
    user_id = int(get_jwt_identity())
    items = _collect_folder_upload()
    if not items:
        raise InvalidInput("未上传文件")
    result = FolderService.upload(user_id, folder_ref, items)
    return success(result, msg=f"上传 {result['files']} 个文件，新建 {result['folders']} 个文件夹")

@folder_bp.route('/<folder_ref>/download', methods=['GET'])
@jwt_required()
def download_folder(folder_ref):
    user_id = int(get_jwt_identity())
    stream, filename = FolderService.archive(user_id, folder_ref)
    return send_file(stream, mimetype="application/zip", as_attachment=True, download_name=filename)
