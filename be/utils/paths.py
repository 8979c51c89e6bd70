from common.errors import InvalidInput

# 根目录的占位标识
HOME = "home"
MAX_NAME_LENGTH = 255


def to_parent_uuid(ref):
    """'home' -> None，其它原样返回（folder uuid）"""
    if ref is None or ref == HOME:
        return None
    return ref


def validate_name(name):
    """Return the trimmed name, or raise InvalidInput."""
    if not isinstance(name, str):
        raise InvalidInput("名称不能为空")
    name = name.strip()
    if not name:
        raise InvalidInput("名称不能为空")
    if name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidInput(f"非法名称: {name}")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidInput("名称过长")
    return name


def split_relative_path(relative_path):
    """
    'a/b/c.txt' -> (['a', 'b'], 'c.txt')

    空段会被忽略（'a//b' 等同 'a/b'），反斜杠按分隔符处理。
    """
    if not isinstance(relative_path, str):
        raise InvalidInput("路径不能为空")
    parts = [p.strip() for p in relative_path.replace("\\", "/").split("/")]
    parts = [p for p in parts if p]
    if not parts:
        raise InvalidInput("路径不能为空")
    segments = [validate_name(p) for p in parts]
    return segments[:-1], segments[-1]
