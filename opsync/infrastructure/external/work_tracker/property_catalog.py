"""
Catalogo de propiedades bien conocidas por base de datos del work tracker.

Cada entrada es (campo de dominio, id estable, nombre visible, tipo). Se
busca primero por id y luego por nombre, asi un rename o una recreacion de
la propiedad no rompen la extraccion mientras uno de los dos siga valido.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class PropertySpec:
    field: str
    identifier: str
    name: str
    kind: str


PROJECT_PROPERTIES: Tuple[PropertySpec, ...] = (
    # Core
    PropertySpec("name", "title", "Name", "title"),
    PropertySpec("status", "%7BjDe", "Status", "select"),
    PropertySpec("type", "XqH%3C", "Type", "select"),
    # Fechas
    PropertySpec("source_created_at", "OH%3BV", "Created time", "created_time"),
    PropertySpec("source_updated_at", "quje", "Last Updated", "last_edited_time"),
    PropertySpec("dev_due_date", "pD%7BQ", "Dev Due Date", "date"),
    PropertySpec("original_due_date", "tkxZ", "Original Due Date", "date"),
    PropertySpec("qi_start_date", "pOnD", "QI Start Time", "date"),
    PropertySpec("qi_end_date", "QZL%7D", "QI End Time", "date"),
    PropertySpec("status_set_to_qi_date", "mYDg", "Status Set To QI (Time)", "date"),
    PropertySpec("done_date", "PEKf", "Done date", "date"),
    PropertySpec("ready_for_client_date", "W__Q", "Ready for Client Date", "date"),
    PropertySpec("deployment_date", "LTLM", "Deployment date", "date"),
    # Personas
    PropertySpec("developer_ids", "l%7DQv", "Developer", "people"),
    PropertySpec("lead_developer_ids", "k%7BYW", "Lead Developer", "people"),
    PropertySpec("quality_inspector_ids", "%3D%3CLL", "Quality Inspector", "people"),
    PropertySpec("designer_ids", "IQRm", "Designer", "people"),
    PropertySpec("account_manager_ids", "iJO%3E", "Account Manager", "rollup"),
    # Relaciones
    PropertySpec("client_ids", "em%7D%3B", "Client", "relation"),
    PropertySpec("task_ids", "Jxmx", "Tasks", "relation"),
    PropertySpec("qi_entry_ids", "BnWp", "All QI Time Tracker Entries", "relation"),
    # Pushbacks
    PropertySpec("pushback_count", "VmGU", "Push Back Count", "number"),
    PropertySpec("client_pushback_count", "%7CM%5DM", "Client Pushback Count", "number"),
    PropertySpec("quantifiable_client_pushback", "wSLQ", "Quantifiable Client Push Back", "number"),
    # Horas (formulas / rollups)
    PropertySpec("projected_dev_hours", "%3Fknr", "Projected Dev Hours", "rollup"),
    PropertySpec("actual_dev_hours", "%3Eg_X", "Actual Dev Hours (Number)", "formula"),
    PropertySpec("total_project_hours", "cWSl", "Total Project Hours", "formula"),
    PropertySpec("projected_qi_hours", "dOi%40", "Projected QI Hours", "formula"),
    PropertySpec("total_qi_hours", "Q%3DT%3E", "Total QI Hours (Decimal)", "rollup"),
    PropertySpec("buffer_hours", "%3C_%5Ec", "Buffer Hours", "formula"),
    # Atraso
    PropertySpec("days_late", "_c%7BP", "Days Late", "formula"),
    PropertySpec("late_label", "vHpl", "Late?", "formula"),
    # Time tracker
    PropertySpec("time_tracker_project_id", "fTcG", "Time Doctor Project ID", "rich_text"),
    PropertySpec("time_tracker_client_project_id", "lXQC", "Time Doctor (Client) Project ID", "formula"),
)

TASK_DURATION = PropertySpec("duration", "_DxC", "Duration", "number")

TEAM_MEMBER_PROPERTIES: Tuple[PropertySpec, ...] = (
    PropertySpec("name", "title", "Name", "title"),
    PropertySpec("company_email", "eb%40P", "Company Email", "email"),
    PropertySpec("personal_email", "l%60%3Bs", "Email", "email"),
    PropertySpec("phone", "agCw", "Phone", "phone_number"),
    PropertySpec("position", "l%40D%3C", "Position", "rich_text"),
    PropertySpec("departments", "%7B%7DOp", "Department", "multi_select"),
    PropertySpec("level", "sTk%3A", "Level", "select"),
    PropertySpec("country", "gs%3FE", "Country", "select"),
    PropertySpec("tech_stack", "lwRA", "Tech Stack", "multi_select"),
    PropertySpec("lead_ids", "ku%3Dm", "Lead", "people"),
    PropertySpec("employment_status", "LrTw", "Employment Status", "select"),
    PropertySpec("hire_date", "%5DLJl", "Hire Date", "date"),
    PropertySpec("salary", "%7DtKx", "Salary", "number"),
)

# Candidatos para la propiedad people "Notion User" (id o nombre segun la base)
WORK_TRACKER_USER_CANDIDATES: Tuple[str, ...] = ("S%3DgW", "Notion User", "notion_user", "%60_Su")
WORK_TRACKER_USER_NAME = "Notion User"

CLIENT_PROPERTIES: Tuple[PropertySpec, ...] = (
    PropertySpec("name", "title", "Name", "title"),
    PropertySpec("type", "%7Ch%5Cw", "Type", "select"),
    PropertySpec("source_created_at", "FZsJ", "Created", "created_time"),
)

QI_TIME_TRACKER_PROPERTIES: Tuple[PropertySpec, ...] = (
    PropertySpec("project_name", "title", "Project Name", "title"),
    PropertySpec("project_id", "C^un", "Project ID", "rich_text"),
    PropertySpec("project_link", "RGbS", "Project Link", "url"),
    PropertySpec("client_name", "cWVR", "Client Name", "rich_text"),
    PropertySpec("quality_inspector", "~syV", "Quality Inspector", "rich_text"),
    PropertySpec("entry_date", "SM~y", "Date", "date"),
    PropertySpec("time_label", "b^si", "Time", "rich_text"),
    PropertySpec("hours", "%40arI", "Number Of Hours", "number"),
)


CLIENT_RELATION = next(spec for spec in PROJECT_PROPERTIES if spec.field == "client_ids")


def client_relation_filter(client_id: str) -> dict:
    """Filtro de query para las cards de un cliente."""
    return {"property": CLIENT_RELATION.identifier, "relation": {"contains": client_id}}
