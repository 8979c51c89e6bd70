from urllib.parse import quote

from flask import request

from common.errors import InvalidInput


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("请求体必须是 JSON 对象")
    return data


def str_field(data, key, required=True):
    """取 JSON 中的字符串字段；类型不对按 InvalidInput 处理"""
    value = data.get(key)
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} 必须是字符串")
    return value


def parse_privacy(value):
    """URL 中的隐私参数：'1' 公开，'0' 私有；返回 is_private"""
    if value == "1":
        return False
    if value == "0":
        return True
    raise InvalidInput("privacy 只能是 0 或 1")


def attachment_header(filename):
    """Content-Disposition，非 ASCII 文件名按 RFC 5987 编码"""
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'attachment; filename="{escaped}"'
