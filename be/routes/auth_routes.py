from flask import Blueprint
from flask_jwt_extended import (
    create_access_token,
    jwt_required,
    get_jwt_identity,
    get_jwt
)
from services.user_service import UserService
from common.errors import AlreadyExists, InvalidInput, Unauthenticated, NotFound
from common.request import json_body, str_field
from common.response import success

auth_bp = Blueprint('auth', __name__)

@auth_bp.route('/register', methods=['POST'])
def register():
    data = json_body()
    user, err = UserService.register(
        str_field(data, 'username'), str_field(data, 'password'), str_field(data, 'email', required=False)
    )
    if err == "用户名已存在":
        raise AlreadyExists(err)
    if err:
        raise InvalidInput(err)
    return success({"user_id": user.id, "username": user.username})

@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    user = UserService.login(str_field(data, 'username'), str_field(data, 'password'))
    if not user:
        raise Unauthenticated("用户名或密码错误")
    # identity 必须是字符串
    token = create_access_token(identity=str(user.id))
    return success({"token": token, "user": user.to_dict()})


@auth_bp.route('/profile', methods=['GET'])
@jwt_required()
def profile():
    user_id = int(get_jwt_identity())
    info = UserService.get_profile(user_id)
    if not info:
        raise NotFound("用户不存在")
    return success(info)

@auth_bp.route('/change_password', methods=['POST'])
@jwt_required()
def change_password():
    user_id = int(get_jwt_identity())
    data = json_body()
    ok, err = UserService.change_password(
        user_id, str_field(data, 'old_password'), str_field(data, 'new_password')
    )
    if not ok:
        raise InvalidInput(err)
    return success({"msg": "密码修改成功"})

@auth_bp.route('/delete_account', methods=['POST'])
@jwt_required()
def delete_account():
    user_id = int(get_jwt_identity())
    report = UserService.delete_account(user_id)
    if report is None:
        raise NotFound("用户不存在")
    UserService.logout(get_jwt()["jti"])
    return success({"msg": "账号已删除", **report.to_dict()})

@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    jti = get_jwt()["jti"]
    UserService.logout(jti)
    return success({"msg": "已登出"})
