from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from lesson_corpus.config.schema import RemoteConfig
from lesson_corpus.errors import RemoteSyncError
from lesson_corpus.utils.logging import get_logger

from .remote_store import Payload, RemoteStore

logger = get_logger(__name__)

TABLES = {
    "activities": "activities",
    "lessons": "lessons",
    "lesson_plans": "lesson_plans",
    "eyfs_statements": "eyfs_statements",
    "half_terms": "half_terms",
    "activity_stacks": "activity_stacks",
}

ON_CONFLICT = {
    "activities": "activity,category,lesson_number",
    "lessons": "sheet_name,user_id,academic_year",
    "half_terms": "sheet_name,user_id,academic_year,term_id",
    "lesson_plans": "id",
    "eyfs_statements": "sheet_name,user_id",
    "activity_stacks": "id",
}

PLAN_COLUMNS = {
    "id": "id",
    "date": "date",
    "week": "week",
    "className": "class_name",
    "activities": "activities",
    "duration": "duration",
    "notes": "notes",
    "status": "status",
    "unitId": "unit_id",
    "unitName": "unit_name",
    "lessonNumber": "lesson_number",
    "title": "title",
    "term": "term",
    "time": "time",
    "academicYear": "academic_year",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

STACK_COLUMNS = {
    "id": "id",
    "name": "name",
    "description": "description",
    "activities": "activities",
    "category": "category",
    "totalTime": "total_time",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_row(payload: Payload, columns: Dict[str, str]) -> Dict[str, Any]:
    return {column: payload[field] for field, column in columns.items() if field in payload}


def _from_row(row: Dict[str, Any], columns: Dict[str, str]) -> Payload:
    return {field: row[column] for field, column in columns.items() if row.get(column) is not None}


def _activity_row(payload: Payload) -> Dict[str, Any]:
    return {
        "id": payload.get("id"),
        "activity": payload.get("activity"),
        "description": payload.get("description", ""),
        "time": payload.get("time", 0),
        "video_link": payload.get("videoLink", ""),
        "music_link": payload.get("musicLink", ""),
        "backing_link": payload.get("backingLink", ""),
        "resource_link": payload.get("resourceLink", ""),
        "link": payload.get("link", ""),
        "vocals_link": payload.get("vocalsLink", ""),
        "image_link": payload.get("imageLink", ""),
        "teaching_unit": payload.get("teachingUnit", ""),
        "category": payload.get("category"),
        "level": payload.get("level", ""),
        "year_groups": payload.get("yearGroups", []),
        "unit_name": payload.get("unitName", ""),
        "lesson_number": payload.get("lessonNumber", ""),
        "standards": payload.get("standards", []),
    }


def _activity_payload(row: Dict[str, Any]) -> Payload:
    payload = {
        "id": row.get("id"),
        "activity": row.get("activity"),
        "description": row.get("description") or "",
        "time": row.get("time") or 0,
        "videoLink": row.get("video_link") or "",
        "musicLink": row.get("music_link") or "",
        "backingLink": row.get("backing_link") or "",
        "resourceLink": row.get("resource_link") or "",
        "link": row.get("link") or "",
        "vocalsLink": row.get("vocals_link") or "",
        "imageLink": row.get("image_link") or "",
        "teachingUnit": row.get("teaching_unit") or "",
        "category": row.get("category"),
        "level": row.get("level") or "",
        "yearGroups": row.get("year_groups") or [],
        "unitName": row.get("unit_name") or "",
        "lessonNumber": row.get("lesson_number") or "",
        "standards": row.get("standards") or [],
    }
    return {key: value for key, value in payload.items() if value is not None}


class PostgrestRemoteStore(RemoteStore):
    """
    Remote mirror backed by a PostgREST endpoint (the REST face of a Supabase project).

    Every request is scoped with ``user_id=eq.<tenant>`` and every written row carries the
    tenant id. A fresh ``httpx.AsyncClient`` is opened per call so the store can be used from
    whichever event loop the sync gateway happens to be draining on. Timeouts are left to the
    client configuration.
    """

    def __init__(self, config: RemoteConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.url or not config.api_key or not config.user_id:
            raise ValueError("PostgrestRemoteStore needs url, api_key and user_id")
        self.base_url = config.url.rstrip("/") + config.rest_path
        self.user_id = config.user_id
        self.timeout = config.timeout
        self._headers = {
            "apikey": config.api_key,
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _filters(self, **filters: str) -> Dict[str, str]:
        params = {"select": "*", "user_id": f"eq.{self.user_id}"}
        for column, value in filters.items():
            params[column] = f"eq.{value}"
        return params

    async def _select(self, table: str, order: Optional[str] = None, **filters: str) -> List[Dict[str, Any]]:
        params = self._filters(**filters)
        if order:
            params["order"] = order
        try:
            async with self._client() as client:
                response = await client.get(f"/{TABLES[table]}", params=params)
                response.raise_for_status()
                rows = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteSyncError(f"select {table}", exc) from exc
        logger.debug("remote_select", table=table, rows=len(rows))
        return rows

    async def _upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        for row in rows:
            row["user_id"] = self.user_id
        headers = {"Prefer": "resolution=merge-duplicates,return=minimal"}
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/{TABLES[table]}",
                    params={"on_conflict": ON_CONFLICT[table]},
                    json=rows,
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteSyncError(f"upsert {table}", exc) from exc
        logger.debug("remote_upsert", table=table, rows=len(rows))

    async def _delete(self, table: str, **filters: str) -> None:
        params = self._filters(**filters)
        params.pop("select")
        try:
            async with self._client() as client:
                response = await client.delete(f"/{TABLES[table]}", params=params)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteSyncError(f"delete {table}", exc) from exc

    async def fetch_lessons(self, collection: str, academic_year: str) -> Optional[Payload]:
        rows = await self._select("lessons", sheet_name=collection, academic_year=academic_year)
        if not rows:
            return None
        row = rows[0]
        return {
            "allLessonsData": row.get("data") or {},
            "lessonNumbers": row.get("lesson_numbers") or [],
            "teachingUnits": row.get("teaching_units") or [],
            "lessonStandards": row.get("lesson_standards") or {},
        }

    async def save_lessons(self, collection: str, academic_year: str, payload: Payload) -> None:
        await self._upsert(
            "lessons",
            [
                {
                    "sheet_name": collection,
                    "academic_year": academic_year,
                    "data": payload.get("allLessonsData", {}),
                    "lesson_numbers": payload.get("lessonNumbers", []),
                    "teaching_units": payload.get("teachingUnits", []),
                    "lesson_standards": payload.get("lessonStandards", {}),
                    "updated_at": _now_iso(),
                }
            ],
        )

    async def fetch_half_terms(self, collection: str, academic_year: str) -> List[Payload]:
        rows = await self._select("half_terms", sheet_name=collection, academic_year=academic_year)
        half_terms: List[Payload] = []
        for row in rows:
            payload = {
                "id": row.get("term_id") or row.get("id"),
                "name": row.get("name") or "",
                "months": row.get("months") or "",
                "lessons": row.get("lessons") or [],
                "stacks": row.get("stacks") or [],
                "isComplete": bool(row.get("is_complete")),
            }
            for field, column in (("createdAt", "created_at"), ("updatedAt", "updated_at")):
                if row.get(column):
                    payload[field] = row[column]
            half_terms.append(payload)
        return half_terms

    async def save_half_term(self, collection: str, academic_year: str, half_term: Payload) -> None:
        await self._upsert(
            "half_terms",
            [
                {
                    "sheet_name": collection,
                    "academic_year": academic_year,
                    "term_id": half_term["id"],
                    "name": half_term.get("name", ""),
                    "months": half_term.get("months", ""),
                    "lessons": half_term.get("lessons", []),
                    "stacks": half_term.get("stacks", []),
                    "is_complete": half_term.get("isComplete", False),
                    "updated_at": half_term.get("updatedAt") or _now_iso(),
                }
            ],
        )

    async def fetch_activities(self) -> List[Payload]:
        rows = await self._select("activities")
        return [_activity_payload(row) for row in rows]

    async def save_activities(self, activities: List[Payload]) -> None:
        await self._upsert("activities", [_activity_row(activity) for activity in activities])

    async def delete_activity(self, activity_id: str) -> None:
        await self._delete("activities", id=activity_id)

    async def fetch_stacks(self) -> List[Payload]:
        rows = await self._select("activity_stacks", order="created_at.desc")
        return [_from_row(row, STACK_COLUMNS) for row in rows]

    async def save_stack(self, stack: Payload) -> None:
        await self._upsert("activity_stacks", [_to_row(stack, STACK_COLUMNS)])

    async def delete_stack(self, stack_id: str) -> None:
        await self._delete("activity_stacks", id=stack_id)

    async def fetch_lesson_plans(self) -> List[Payload]:
        rows = await self._select("lesson_plans")
        return [_from_row(row, PLAN_COLUMNS) for row in rows]

    async def save_lesson_plans(self, plans: List[Payload]) -> None:
        await self._upsert("lesson_plans", [_to_row(plan, PLAN_COLUMNS) for plan in plans])

    async def delete_lesson_plan(self, plan_id: str) -> None:
        await self._delete("lesson_plans", id=plan_id)

    async def fetch_standards(self, collection: str) -> Optional[Payload]:
        rows = await self._select("eyfs_statements", sheet_name=collection)
        if not rows:
            return None
        return rows[0].get("all_statements") or None

    async def save_standards(self, collection: str, catalogue: Payload) -> None:
        await self._upsert(
            "eyfs_statements",
            [{"sheet_name": collection, "all_statements": catalogue, "updated_at": _now_iso()}],
        )
