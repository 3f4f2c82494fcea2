import os
import logging
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from zokzz.auth.service import AccountService
from zokzz.chat.service import ConversationLog
from zokzz.core.errors import CoreError
from zokzz.core.security import verify_token_string
from zokzz.core.store import DocumentStore, MemoryStore
from zokzz.core.supabase_client import SupabaseStore
from zokzz.friendship.service import FriendGraph

load_dotenv()
logger = logging.getLogger(__name__)

security = HTTPBearer()


@lru_cache
def get_store() -> DocumentStore:
    backend = os.getenv("STORE_BACKEND", "memory").lower()

    if backend == "supabase":
        logger.info("store_backend=supabase")
        return SupabaseStore()

    if backend != "memory":
        logger.warning(f"unknown STORE_BACKEND={backend}, using memory")

    logger.info("store_backend=memory")
    return MemoryStore()


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        return verify_token_string(token)
    except CoreError as error:
        raise HTTPException(status_code=error.status_code, detail=error.message)


def get_current_user_id(claims: dict = Depends(verify_token)) -> str:
    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    return user_id


def get_account_service(store: DocumentStore = Depends(get_store)) -> AccountService:
    return AccountService(store)


def get_friend_graph(store: DocumentStore = Depends(get_store)) -> FriendGraph:
    return FriendGraph(store)


def get_conversation_log(store: DocumentStore = Depends(get_store)) -> ConversationLog:
    return ConversationLog(store)
