"""
访问控制：每个文件/文件夹只看自己的 is_private 标记。

文件夹公开并不会让其中单独设为私有的条目对外可见。
"""
from common.errors import NotFound, Forbidden


def is_owner(item, user_id):
    return item is not None and user_id is not None and item.owner_id == int(user_id)


def authorize_read(item, user_id) -> bool:
    if item is None:
        return False
    return is_owner(item, user_id) or not item.is_private


def authorize_mutate(item, user_id) -> bool:
    # 所有权不可委托
    return is_owner(item, user_id)


def require_read(item, user_id):
    """读权限检查，不可见的条目一律按不存在处理"""
    if not authorize_read(item, user_id):
        raise NotFound()
    return item


def require_mutate(item, user_id):
    """
    写权限检查。

    对调用者不可见的条目返回 NotFound，避免泄露私有条目是否存在；
    公开但不属于调用者的条目返回 Forbidden。
    """
    if authorize_mutate(item, user_id):
        return item
    if authorize_read(item, user_id):
        raise Forbidden()
    raise NotFound()
