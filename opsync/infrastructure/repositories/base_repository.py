"""
Repositorio base con upsert por clave de negocio.

Las entidades de dominio son dataclasses cuyos campos coinciden con las
columnas del modelo ORM; el mapeo se hace por nombre.
"""
from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsync.domain.entities.properties import overflow_from_json, overflow_to_json
from opsync.shared.exceptions.sync import PersistenceError
from opsync.shared.utils.datetime_utils import ensure_utc

E = TypeVar("E")

# Campos que no participan en la comparacion de cambios
_AUDIT_FIELDS = ("last_synced_at",)


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, tuple):
        return list(value)
    return value


class EntityRepository(Generic[E]):
    """
    Repositorio generico para entidades sincronizadas.

    - `upsert` busca por `key_field`; si existe actualiza solo las columnas
      que cambiaron, si no inserta.
    - `updated_at` solo avanza cuando cambia algun dato; `last_synced_at`
      siempre se actualiza.
    - El overflow map se reemplaza completo en cada escritura.
    """

    model: Type = None
    entity_cls: Type[E] = None
    key_field: str = "external_id"

    def __init__(self, db: AsyncSession):
        self.db = db

    def _entity_fields(self) -> List[str]:
        return [f.name for f in dataclasses.fields(self.entity_cls) if not f.name.startswith("_")]

    def to_row(self, entity: E) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for name in self._entity_fields():
            value = getattr(entity, name)
            if name == "overflow":
                value = overflow_to_json(value)
            elif isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            row[name] = value
        return row

    def to_entity(self, model: Any) -> E:
        kwargs: Dict[str, Any] = {}
        for name in self._entity_fields():
            value = getattr(model, name, None)
            if name == "overflow":
                value = overflow_from_json(value)
            elif isinstance(value, datetime):
                value = ensure_utc(value)
            elif isinstance(value, list):
                value = list(value)
            kwargs[name] = value
        return self.entity_cls(**kwargs)

    def _key_of(self, entity: E) -> Any:
        return getattr(entity, self.key_field)

    async def _get_model(self, key: Any) -> Optional[Any]:
        result = await self.db.execute(
            select(self.model).where(getattr(self.model, self.key_field) == key)
        )
        return result.scalars().first()

    async def get(self, key: Any) -> Optional[E]:
        """Obtiene la entidad por su clave de negocio."""
        model = await self._get_model(key)
        return self.to_entity(model) if model is not None else None

    async def list_all(self) -> List[E]:
        result = await self.db.execute(select(self.model).order_by(self.model.id))
        return [self.to_entity(m) for m in result.scalars().all()]

    async def upsert(self, entity: E, synced_at: datetime) -> bool:
        """
        Crea o actualiza la entidad por su clave de negocio.

        Args:
            entity: Entidad de dominio
            synced_at: Marca de la pasada

        Returns:
            bool: True si se inserto o cambio algun dato

        Raises:
            PersistenceError: Si el store rechaza la escritura.
        """
        row = self.to_row(entity)
        row[self.key_field] = self._key_of(entity)
        key = row[self.key_field]
        try:
            existing = await self._get_model(key)
            if existing is None:
                row["last_synced_at"] = synced_at
                self.db.add(self.model(**row, updated_at=synced_at))
                await self.db.flush()
                return True

            changed = False
            for column, value in row.items():
                if column in _AUDIT_FIELDS:
                    continue
                if _comparable(getattr(existing, column)) != _comparable(value):
                    setattr(existing, column, value)
                    changed = True
            existing.last_synced_at = synced_at
            if changed:
                existing.updated_at = synced_at
            await self.db.flush()
            return changed
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Error guardando {self.model.__tablename__} '{key}': {e}",
                entity_id=str(key),
            ) from e
