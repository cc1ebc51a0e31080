from logging import getLogger
from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials

from plantpal import config

logger = getLogger(__name__)

LOCAL_USER_ID = "local-user"

# auto_error=False: ヘッダが無い場合も開発用フォールバックに回す
security = HTTPBearer(auto_error=False)


def get_firebase_app():
    """Firebase Admin SDK を初期化する (初回のみ)"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if config.FIREBASE_PROJECT_ID and config.FIREBASE_PRIVATE_KEY and config.FIREBASE_CLIENT_EMAIL:
        cred = credentials.Certificate(
            {
                "type": "service_account",
                "project_id": config.FIREBASE_PROJECT_ID,
                "private_key": config.FIREBASE_PRIVATE_KEY,
                "client_email": config.FIREBASE_CLIENT_EMAIL,
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
        return firebase_admin.initialize_app(cred)

    logger.warning(
        "Firebase Admin: 環境変数のサービスアカウントが無いため既定の認証情報を使用します"
    )
    options = {"projectId": config.FIREBASE_PROJECT_ID} if config.FIREBASE_PROJECT_ID else None
    return firebase_admin.initialize_app(credentials.ApplicationDefault(), options)


def verify_token(token: str) -> str:
    decoded = firebase_auth.verify_id_token(token, app=get_firebase_app())
    return decoded["uid"]


def _fallback(reason: str) -> str:
    if not config.AUTH_DEV_FALLBACK:
        raise HTTPException(status_code=401, detail=reason)
    logger.warning(f"{reason} - 開発用に {LOCAL_USER_ID} として扱います")
    return LOCAL_USER_ID


def get_current_user_id(
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Bearer トークンからユーザーIDを取得する。

    AUTH_DEV_FALLBACK が有効な間は、トークンが無い/無効なリクエストも
    local-user として通す。本番環境向けではない。
    """
    if bearer is None or not bearer.credentials:
        return _fallback("No auth token provided")

    token = bearer.credentials
    try:
        return verify_token(token)
    except Exception as e:
        # verify_id_token は失効・改ざん・SDK 初期化失敗などで様々な例外を投げる
        return _fallback(f"Invalid token ({e.__class__.__name__})")
