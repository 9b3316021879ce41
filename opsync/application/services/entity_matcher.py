"""
Cruce de entidades del time tracker con las entidades locales.

- Usuarios: email (sin distinguir mayusculas) primero, nombre despues.
- Proyectos: id de tarea en la card, luego id de proyecto a nivel cliente,
  luego nombre de cliente (exacto y por substring). Los proyectos internos
  nunca se cruzan por nombre.

Claves ambiguas (dos team members con el mismo email o nombre) no se usan:
un usuario queda sin match antes que con un match arbitrario.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from opsync.core.config import settings
from opsync.domain.entities.records import ProjectCard, TeamMember, TimeTrackerProject, TimeTrackerUser


class MatchStrategy:
    TASK_ID = "task_id"
    CLIENT_PROJECT_ID = "client_project_id"
    CLIENT_NAME_EXACT = "client_name_exact"
    CLIENT_NAME_SUBSTRING = "client_name_substring"


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _unique_index(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    ambiguous = set()
    for key, member_id in pairs:
        if not key or key in ambiguous:
            continue
        if key in index and index[key] != member_id:
            del index[key]
            ambiguous.add(key)
            continue
        index[key] = member_id
    return index


def match_users(
    users: Sequence[TimeTrackerUser],
    members: Sequence[TeamMember],
) -> Dict[str, str]:
    """
    Cruza usuarios del time tracker con team members.

    Returns:
        Dict[str, str]: id externo del usuario -> external_id del team member.
        Los usuarios sin match no aparecen.
    """
    by_email = _unique_index(
        (_key(email), member.external_id)
        for member in members
        for email in {member.email, member.company_email, member.personal_email}
        if email
    )
    by_name = _unique_index((_key(member.name), member.external_id) for member in members)

    matches: Dict[str, str] = {}
    for user in users:
        member_id = by_email.get(_key(user.email)) or by_name.get(_key(user.name))
        if member_id:
            matches[user.external_id] = member_id
    return matches


def is_internal_project(name: Optional[str], keywords: Optional[Sequence[str]] = None) -> bool:
    lowered = _key(name)
    words = keywords if keywords is not None else settings.internal_project_keywords
    return any(word in lowered for word in words)


@dataclass(frozen=True)
class ProjectMatch:
    card_id: Optional[str]
    client_id: Optional[str]
    client_name: Optional[str]
    strategy: str


class CardIndex:
    """Indices de cards por id de tarea y por id de proyecto a nivel cliente."""

    def __init__(self, cards: Sequence[ProjectCard]) -> None:
        self.by_task_id: Dict[str, ProjectCard] = {}
        self.by_client_project_id: Dict[str, ProjectCard] = {}
        for card in cards:
            if card.time_tracker_project_id:
                self.by_task_id.setdefault(card.time_tracker_project_id, card)
            client_project_id = card.time_tracker_client_project_id
            if client_project_id:
                current = self.by_client_project_id.get(client_project_id)
                if current is None or (not current.client_id and card.client_id):
                    self.by_client_project_id[client_project_id] = card

    def lookup(self, project_id: str) -> Tuple[Optional[ProjectCard], Optional[str]]:
        card = self.by_task_id.get(project_id)
        if card is not None:
            return card, MatchStrategy.TASK_ID
        card = self.by_client_project_id.get(project_id)
        if card is not None:
            return card, MatchStrategy.CLIENT_PROJECT_ID
        return None, None


def _match_by_client_name(
    name: str,
    client_names: Dict[str, str],
    min_length: int,
) -> Optional[ProjectMatch]:
    lowered = _key(name)
    if not lowered:
        return None

    for client_id, client_name in client_names.items():
        if _key(client_name) == lowered:
            return ProjectMatch(None, client_id, client_name, MatchStrategy.CLIENT_NAME_EXACT)

    # Substring: ambos nombres deben superar el minimo; gana el cliente mas largo
    if len(lowered) <= min_length:
        return None
    best: Optional[Tuple[str, str]] = None
    for client_id, client_name in client_names.items():
        candidate = _key(client_name)
        if len(candidate) <= min_length:
            continue
        if candidate in lowered or lowered in candidate:
            if best is None or len(candidate) > len(_key(best[1])):
                best = (client_id, client_name)
    if best is not None:
        return ProjectMatch(None, best[0], best[1], MatchStrategy.CLIENT_NAME_SUBSTRING)
    return None


def match_project(
    project: TimeTrackerProject,
    index: CardIndex,
    client_names: Dict[str, str],
    *,
    min_name_length: Optional[int] = None,
    internal_keywords: Optional[Sequence[str]] = None,
) -> Optional[ProjectMatch]:
    """Cruza un proyecto del time tracker con una card y/o un cliente."""
    card, strategy = index.lookup(project.external_id)
    if card is not None:
        client_name = card.client_name or (client_names.get(card.client_id) if card.client_id else None)
        return ProjectMatch(card.external_id, card.client_id, client_name, strategy)

    if is_internal_project(project.name, internal_keywords):
        return None

    min_length = settings.PROJECT_NAME_MATCH_MIN_LENGTH if min_name_length is None else min_name_length
    return _match_by_client_name(project.name or "", client_names, min_length)


def match_projects(
    projects: Sequence[TimeTrackerProject],
    cards: Sequence[ProjectCard],
    client_names: Dict[str, str],
    **kwargs,
) -> Dict[str, ProjectMatch]:
    index = CardIndex(cards)
    matches: Dict[str, ProjectMatch] = {}
    for project in projects:
        match = match_project(project, index, client_names, **kwargs)
        if match is not None:
            matches[project.external_id] = match
    return matches


def resolve_entry_target(
    project_id: str,
    stored: Optional[TimeTrackerProject],
    index: CardIndex,
) -> Tuple[Optional[str], Optional[str]]:
    """
    (card_id, client_id) para un worklog.

    Parte del proyecto almacenado; si no trae cliente, busca la card por id
    de proyecto a nivel cliente y luego por id de tarea, y completa el
    cliente desde la card.
    """
    card_id = stored.card_id if stored else None
    client_id = stored.client_id if stored else None
    if client_id:
        return card_id, client_id

    card = index.by_client_project_id.get(project_id) or index.by_task_id.get(project_id)
    if card is not None:
        card_id = card_id or card.external_id
        client_id = card.client_id
    return card_id, client_id

