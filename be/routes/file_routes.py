from flask import Blueprint, Response, request, stream_with_context
from flask_jwt_extended import jwt_required, get_jwt_identity
from services.file_service import FileService
from common.request import attachment_header, parse_privacy
from common.response import success

file_bp = Blueprint('file', __name__)

# 预签名链接中只能作为附件下载的类型
ATTACHMENT_ONLY_TYPES = {"image/svg+xml"}


def _stream(record, chunks):
    return Response(
        stream_with_context(chunks),
        mimetype="application/octet-stream",
        headers={
            "Content-Disposition": attachment_header(record.name),
            "Content-Length": str(record.size),
        },
    )

@file_bp.route('/<folder_ref>/upload', methods=['POST'])
@jwt_required()
def upload_file(folder_ref):
    user_id = int(get_jwt_identity())
    result = FileService.upload(user_id, folder_ref, request.files.get("file"))
    return success(result, msg="上传成功")

@file_bp.route('/list', methods=['GET'])
@jwt_required()
def list_files():
    user_id = int(get_jwt_identity())
    return success({"files": FileService.list_all(user_id)})

@file_bp.route('/<file_uuid>/download', methods=['GET'])
@jwt_required()
def download_file(file_uuid):
    user_id = int(get_jwt_identity())
    record, chunks = FileService.download(user_id, file_uuid)
    return _stream(record, chunks)

@file_bp.route('/<file_uuid>/preview', methods=['GET'])
@jwt_required()
def preview_file(file_uuid):
    user_id = int(get_jwt_identity())
    return success(FileService.preview_url(user_id, file_uuid))

@file_bp.route('/raw/<token>', methods=['GET'])
def raw_object(token):
    record, chunks = FileService.open_presigned(token)
    resp = _stream(record, chunks)
    mime_type = (record.mime_type or "application/octet-stream").lower()
    resp.headers["Content-Type"] = mime_type
    # SVG 可以带脚本，不在本站源下内联展示
    if mime_type not in ATTACHMENT_ONLY_TYPES:
        resp.headers["Content-Disposition"] = "inline"
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["Content-Security-Policy"] = "default-src 'none'; sandbox"
    return resp

@file_bp.route('/<file_uuid>', methods=['DELETE'])
@jwt_required()
def remove_file(file_uuid):
    user_id = int(get_jwt_identity())
    return success(FileService.remove(user_id, file_uuid), msg="删除成功")

@file_bp.route('/<file_uuid>/privacy/<privacy>', methods=['POST'])
@jwt_required()
def update_privacy(file_uuid, privacy):
    user_id = int(get_jwt_identity())
    is_private = parse_privacy(privacy)
    return success(FileService.set_privacy(user_id, file_uuid, is_private))
