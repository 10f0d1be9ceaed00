"""
认证与用户相关的 Pydantic Schema
---------------------------------
功能：
- 定义请求体模型，用于 FastAPI 的解析与文档生成
- 必填字段在服务层做校验，缺失时返回统一的参数错误（code=400），而不是 422

使用：
- PhoneLoginRequest: 手机号一键登录
- UpdateProfileRequest: 修改个人信息（仅允许部分字段）
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PhoneLoginRequest(BaseModel):
    """手机号一键登录请求"""
    code: Optional[str] = Field(None, description="wx.login 返回的登录 code")
    phoneCode: Optional[str] = Field(None, description="手机号授权返回的 code")

    model_config = ConfigDict(
        json_schema_extra={"example": {"code": "0a3xxx", "phoneCode": "e31xxx"}}
    )


class UpdateProfileRequest(BaseModel):
    """更新用户信息请求"""
    nickname: Optional[str] = Field(None, max_length=64)
    avatar: Optional[str] = Field(None, max_length=255)
    realName: Optional[str] = Field(None, max_length=32)
    companyName: Optional[str] = Field(None, max_length=128)
