import os
import logging
from functools import lru_cache
from typing import Any, List, Optional

from dotenv import load_dotenv
from postgrest.exceptions import APIError
from supabase import create_client, Client

from zokzz.core.errors import StoreError
from zokzz.utils.env_helper import env_none_or_str
from zokzz.core.store import (
    ConditionalResult,
    Document,
    generate_push_id,
    join_path,
    split_path,
)


load_dotenv()
logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


@lru_cache
def get_supabase() -> Client:
    supabase_url = env_none_or_str("PUBLIC_SUPABASE_URL")
    supabase_key = env_none_or_str("SECRET_API_KEY")

    if not supabase_url or not supabase_key:
        raise StoreError("PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set.")

    return create_client(supabase_url, supabase_key)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parent_of(path: str) -> str:
    return "/".join(split_path(path)[:-1])


class SupabaseStore:
    """
    Document store kept in a single ``documents`` table (see core/models.py).

    Every written path is its own row. Reading a path assembles the row with
    all rows below it. Range queries return the matched rows only, without
    their descendants.
    """

    def __init__(self, client: Client = None, table: str = None):
        self._client = client
        self.table_name = table or os.getenv("SUPABASE_DOCUMENTS_TABLE", "documents")

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _table(self):
        return self.client.table(self.table_name)

    def read(self, path: str) -> Any:
        path = join_path(path)
        try:
            own = self._table().select("path, value").eq("path", path).execute()
            below = (
                self._table()
                .select("path, value")
                .like("path", f"{_escape_like(path)}/%")
                .execute()
            )
        except APIError as error:
            logger.error(f"store_read_failed path={path} error={error}")
            raise StoreError(f"read failed for {path}") from error

        rows = (own.data or []) + (below.data or [])
        if not rows:
            return None

        base = len(split_path(path))
        rows.sort(key=lambda row: len(split_path(row["path"])))

        tree = None
        for row in rows:
            relative = split_path(row["path"])[base:]
            if not relative:
                tree = row["value"]
                continue

            if not isinstance(tree, dict):
                tree = {}
            node = tree
            for segment in relative[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child
            node[relative[-1]] = row["value"]

        return tree

    def write(self, path: str, value: Any) -> None:
        path = join_path(path)
        if value is None:
            self.delete(path)
            return

        try:
            self._table().delete().like("path", f"{_escape_like(path)}/%").execute()
            self._table().upsert(
                {"path": path, "parent": _parent_of(path), "value": value}
            ).execute()
        except APIError as error:
            logger.error(f"store_write_failed path={path} error={error}")
            raise StoreError(f"write failed for {path}") from error

    def update(self, path: str, fields: dict) -> None:
        path = join_path(path)
        flat = {key: value for key, value in fields.items() if "/" not in key}
        nested = {key: value for key, value in fields.items() if "/" in key}

        try:
            if flat:
                # child rows would shadow the merged fields on read
                for key in flat:
                    child = join_path(path, key)
                    self._table().delete().eq("path", child).execute()
                    self._table().delete().like("path", f"{_escape_like(child)}/%").execute()
                self.client.rpc(
                    "merge_document",
                    {"p_path": path, "p_parent": _parent_of(path), "p_fields": flat},
                ).execute()
        except APIError as error:
            logger.error(f"store_update_failed path={path} error={error}")
            raise StoreError(f"update failed for {path}") from error

        for key, value in nested.items():
            self.write(join_path(path, key), value)

    def delete(self, path: str) -> None:
        path = join_path(path)
        try:
            self._table().delete().eq("path", path).execute()
            self._table().delete().like("path", f"{_escape_like(path)}/%").execute()
        except APIError as error:
            logger.error(f"store_delete_failed path={path} error={error}")
            raise StoreError(f"delete failed for {path}") from error

    def range_query(
        self,
        path: str,
        order_field: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = None,
        last: bool = False,
    ) -> List[Document]:
        path = join_path(path)
        field = f"value->>{order_field}"

        query = self._table().select("path, value").eq("parent", path)
        if start is not None:
            query = query.gte(field, start)
        if end is not None:
            query = query.lte(field, end)

        query = query.order(field, desc=last).order("path", desc=last)
        if limit is not None:
            query = query.limit(limit)

        try:
            rows = query.execute().data or []
        except APIError as error:
            logger.error(f"store_query_failed path={path} field={order_field} error={error}")
            raise StoreError(f"range query failed for {path}") from error

        if last:
            rows.reverse()

        return [Document(split_path(row["path"])[-1], row["value"]) for row in rows]

    def conditional_set(self, path: str, value: Any) -> ConditionalResult:
        path = join_path(path)

        # the holder may release between our failed insert and the read
        for _ in range(3):
            try:
                self._table().insert(
                    {"path": path, "parent": _parent_of(path), "value": value}
                ).execute()
                return ConditionalResult(True, value)
            except APIError as error:
                if error.code != UNIQUE_VIOLATION:
                    logger.error(f"store_conditional_set_failed path={path} error={error}")
                    raise StoreError(f"conditional set failed for {path}") from error

            current = self.read(path)
            if current is not None:
                return ConditionalResult(False, current)

        raise StoreError(f"conditional set did not settle for {path}")

    def push_key(self, path: str) -> str:
        return generate_push_id()
