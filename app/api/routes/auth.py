"""
认证接口

注册、登录、登出、找回密码、修改密码、当前会话，以及老师账号开通。
密码校验、token 签发、验证邮件都由 BaaS 认证服务完成，这里只做转发和门户侧的数据写入
（注册时写 student 角色和 profiles 行，登录时写会话 Cookie）。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    SessionContext,
    get_auth_client,
    get_db_session,
    get_optional_session,
    get_role_resolver,
    get_session_context,
)
from app.config import get_settings
from app.exceptions import AuthError
from app.infra.baas_auth import AuthUser, BaaSAuthClient
from app.infra.logging import mask_email
from app.models import ROLE_STUDENT, ROLE_TEACHER, Profile
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    SessionResponse,
    SignUpRequest,
    SignUpResponse,
    UpdatePasswordRequest,
    UserInfo,
)
from app.services.roles import RoleResolver, set_user_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


def auth_error(exc: AuthError) -> HTTPException:
    """认证服务错误 => HTTP 错误（4xx 原样透出，其余按 502）"""
    if exc.status_code in (400, 401, 403, 404, 422, 429):
        code = "UNAUTHORIZED" if exc.status_code == 401 else "AUTH_ERROR"
        return HTTPException(status_code=exc.status_code, detail={"code": code, "detail": exc.message})
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"code": "AUTH_SERVICE_ERROR", "detail": exc.message},
    )


def to_user_info(user: AuthUser) -> UserInfo:
    return UserInfo(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        email_confirmed=user.is_email_confirmed,
        metadata=user.user_metadata,
    )


async def upsert_profile(db: AsyncSession, user_id: str, email: str | None, full_name: str | None) -> Profile:
    profile = await db.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, email=email, full_name=full_name)
        db.add(profile)
    else:
        profile.email = email or profile.email
        profile.full_name = full_name or profile.full_name
    await db.commit()
    return profile


@router.post("/signup", response_model=SignUpResponse, status_code=status.HTTP_201_CREATED)
async def signup_endpoint(
    payload: SignUpRequest,
    db: AsyncSession = Depends(get_db_session),
    auth: BaaSAuthClient = Depends(get_auth_client),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """
    注册学生账号

    认证服务会发送验证邮件，验证前不能登录。
    """
    settings = get_settings()
    full_name = payload.full_name.strip()
    if not full_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "VALIDATION_ERROR", "detail": "Please enter your name."},
        )

    try:
        user = await auth.sign_up(
            payload.email,
            payload.password,
            metadata={"full_name": full_name},
            redirect_to=f"{settings.public_site_url.rstrip('/')}{settings.login_path}",
        )
    except AuthError as exc:
        raise auth_error(exc)

    await set_user_role(db, user.id, ROLE_STUDENT, resolver.cache)
    await upsert_profile(db, user.id, user.email or payload.email, full_name)
    logger.info(f"新用户注册: {user.id} ({mask_email(user.email or payload.email)})")

    return SignUpResponse(
        user=to_user_info(user),
        role=ROLE_STUDENT,
        email_confirmation_required=not user.is_email_confirmed,
    )


@router.post("/login", response_model=LoginResponse)
async def login_endpoint(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    auth: BaaSAuthClient = Depends(get_auth_client),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """邮箱密码登录，成功后写入会话 Cookie"""
    settings = get_settings()
    try:
        session = await auth.sign_in_with_password(payload.email, payload.password)
    except AuthError as exc:
        logger.info(f"登录失败: {mask_email(payload.email)} - {exc.message}")
        raise auth_error(exc)

    if not session.user.is_email_confirmed:
        logger.info(f"邮箱未验证，拒绝登录: {mask_email(session.user.email)}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "EMAIL_NOT_CONFIRMED",
                "detail": "Please verify your email before logging in. Check your inbox for a verification link.",
            },
        )

    role = await resolver.resolve(session.user, db)
    response.set_cookie(
        settings.session_cookie_name,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return LoginResponse(
        user=to_user_info(session.user),
        role=role,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout_endpoint(
    response: Response,
    context: SessionContext | None = Depends(get_optional_session),
    auth: BaaSAuthClient = Depends(get_auth_client),
):
    """登出当前设备，Cookie 无论如何都会清掉"""
    settings = get_settings()
    if context is not None:
        try:
            await auth.sign_out(context.access_token, scope="local")
        except AuthError as exc:
            logger.warning(f"登出失败，仅清除 Cookie: {exc.message}")
    response.delete_cookie(settings.session_cookie_name)
    return MessageResponse(message="Signed out")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password_endpoint(
    payload: ResetPasswordRequest,
    auth: BaaSAuthClient = Depends(get_auth_client),
):
    """发送重置密码邮件，邮件中的链接指向 /reset-password"""
    settings = get_settings()
    try:
        await auth.reset_password_for_email(
            payload.email,
            redirect_to=f"{settings.public_site_url.rstrip('/')}{settings.password_reset_path}",
        )
    except AuthError as exc:
        raise auth_error(exc)
    logger.info(f"已发送重置密码邮件: {mask_email(payload.email)}")
    return MessageResponse(message="Password reset email sent")


@router.post("/update-password", response_model=MessageResponse)
async def update_password_endpoint(
    payload: UpdatePasswordRequest,
    context: SessionContext = Depends(get_session_context),
    auth: BaaSAuthClient = Depends(get_auth_client),
):
    try:
        await auth.update_user(context.access_token, password=payload.password)
    except AuthError as exc:
        raise auth_error(exc)
    return MessageResponse(message="Password updated")


@router.get("/session", response_model=SessionResponse)
async def session_endpoint(
    context: SessionContext | None = Depends(get_optional_session),
):
    if context is None:
        return SessionResponse()
    return SessionResponse(user=to_user_info(context.user), role=context.role)


@admin_router.post("/teacher-role", response_model=MessageResponse)
async def set_teacher_role_endpoint(
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db_session),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    """
    开通老师角色

    系统只有一个老师：只有 teacher_email 对应的账号本人登录后可以调用，
    且只能给自己开通，不能替其他用户开通。
    """
    settings = get_settings()
    email = (context.user.email or "").strip().lower()
    if email != settings.teacher_email.strip().lower():
        logger.warning(f"非指定老师账号尝试开通老师角色: {context.user_id} ({mask_email(context.user.email)})")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "detail": "Only the designated teacher account can hold the teacher role"},
        )

    await set_user_role(db, context.user_id, ROLE_TEACHER, resolver.cache)
    logger.info(f"老师角色已开通: {context.user_id} ({mask_email(context.user.email)})")
    return MessageResponse(message="Teacher role granted")
