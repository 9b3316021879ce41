"""
Builders de payloads crudos del work tracker para los tests.
"""
from typing import Any, Dict, List, Optional

from opsync.infrastructure.external.work_tracker.client import PageBatch
from opsync.shared.exceptions.sync import PageNotFoundError

PROJECTS_DB = "11111111-2222-3333-4444-555555555555"


async def no_sleep(_seconds: float) -> None:
    return None


class SleepRecorder:
    """Reemplazo de asyncio.sleep que registra las pausas pedidas."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def title(text: str, prop_id: str = "title") -> Dict[str, Any]:
    return {"id": prop_id, "type": "title", "title": [{"plain_text": text}]}


def rich_text(*segments: str, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "rich_text", "rich_text": [{"plain_text": s} for s in segments]}


def select(name: Optional[str], prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "select", "select": {"name": name} if name else None}


def status(name: str, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "status", "status": {"name": name}}


def date(start: Optional[str], end: Optional[str] = None, prop_id: str = "x") -> Dict[str, Any]:
    return {
        "id": prop_id,
        "type": "date",
        "date": {"start": start, "end": end, "time_zone": None} if start else None,
    }


def number(value: Any, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "number", "number": value}


def people(*ids: str, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "people", "people": [{"object": "user", "id": i} for i in ids]}


def relation(*ids: str, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "relation", "relation": [{"id": i} for i in ids]}


def formula(sub_kind: str, value: Any, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "formula", "formula": {"type": sub_kind, sub_kind: value}}


def rollup_number(value: Any, prop_id: str = "x") -> Dict[str, Any]:
    return {"id": prop_id, "type": "rollup", "rollup": {"type": "number", "number": value}}


def page(
    page_id: str,
    properties: Dict[str, Any],
    *,
    database_id: str = PROJECTS_DB,
    archived: bool = False,
    created_time: str = "2024-03-01T10:00:00.000Z",
    last_edited_time: str = "2024-03-02T10:00:00.000Z",
    created_by: str = "creator-1",
) -> Dict[str, Any]:
    return {
        "object": "page",
        "id": page_id,
        "parent": {"type": "database_id", "database_id": database_id},
        "archived": archived,
        "created_time": created_time,
        "last_edited_time": last_edited_time,
        "created_by": {"object": "user", "id": created_by},
        "url": f"https://tracker.example/{page_id}",
        "properties": properties,
    }


def project_page(
    page_id: str = "card-1",
    *,
    name: str = "Landing page",
    status_name: str = "In Progress",
    project_type: str = "Development",
    developers: tuple = ("dev-1",),
    client_id: Optional[str] = "client-1",
    extra: Optional[Dict[str, Any]] = None,
    **page_kwargs: Any,
) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "Name": title(name),
        "Status": select(status_name, prop_id="%7BjDe"),
        "Type": select(project_type, prop_id="XqH%3C"),
        "Developer": people(*developers, prop_id="l%7DQv"),
        "Client": relation(*([client_id] if client_id else []), prop_id="em%7D%3B"),
    }
    properties.update(extra or {})
    return page(page_id, properties, **page_kwargs)


def client_page(page_id: str, name: str, client_type: Optional[str] = "Active", **page_kwargs: Any) -> Dict[str, Any]:
    return page(
        page_id,
        {"Name": title(name), "Type": select(client_type, prop_id="%7Ch%5Cw")},
        **page_kwargs,
    )


def team_member_page(
    page_id: str,
    name: str,
    *,
    company_email: Optional[str] = None,
    personal_email: Optional[str] = None,
    employment_status: str = "Active",
    salary: Optional[float] = None,
    notion_user: Optional[str] = None,
    **page_kwargs: Any,
) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "Name": title(name),
        "Company Email": {"id": "eb%40P", "type": "email", "email": company_email},
        "Email": {"id": "l%60%3Bs", "type": "email", "email": personal_email},
        "Employment Status": select(employment_status, prop_id="LrTw"),
        "Salary": number(salary, prop_id="%7DtKx"),
    }
    if notion_user:
        properties["Notion User"] = people(notion_user, prop_id="S%3DgW")
    return page(page_id, properties, **page_kwargs)


class FakeWorkTracker:
    """
    Work tracker en memoria: collections paginadas por cursor y paginas por id.

    `fail_collections` hace fallar el query de esas collections con el error dado.
    """

    def __init__(self, collections=None, pages=None, fail_collections=None, error=None):
        self.collections: Dict[str, List[Dict[str, Any]]] = collections or {}
        self.pages: Dict[str, Dict[str, Any]] = dict(pages or {})
        for items in self.collections.values():
            for item in items:
                self.pages.setdefault(item["id"], item)
        self.fail_collections = set(fail_collections or ())
        self.error = error
        self.queries: List[tuple] = []
        self.retrieved: List[str] = []

    async def query_collection(self, collection_id, cursor=None, filter=None, page_size=100):
        self.queries.append((collection_id, cursor, filter, page_size))
        if collection_id in self.fail_collections:
            raise self.error
        items = self.collections.get(collection_id, [])
        offset = int(cursor) if cursor else 0
        chunk = items[offset:offset + page_size]
        next_offset = offset + len(chunk)
        has_more = next_offset < len(items)
        return PageBatch(items=chunk, next_cursor=str(next_offset) if has_more else None, has_more=has_more)

    async def retrieve_page(self, page_id):
        self.retrieved.append(page_id)
        if page_id not in self.pages:
            raise PageNotFoundError(page_id)
        return self.pages[page_id]
