"""
Entidad de dominio: PropertyValue.

Union etiquetada que representa el valor ya decodificado de una propiedad
del work tracker. Las bolsas crudas se decodifican una sola vez en el
borde (PropertyExtractor); aguas abajo solo se manejan PropertyValue.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from opsync.shared.utils.datetime_utils import parse_datetime


class PropertyKind(str, Enum):
    """Variantes de PropertyValue."""
    TEXT = "text"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    DATE = "date"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ID_LIST = "id_list"
    LIST = "list"


@dataclass(frozen=True)
class DateRange:
    """Fecha estructurada {start, end, time_zone} tal como la expone la fuente."""

    start: Optional[str] = None
    end: Optional[str] = None
    time_zone: Optional[str] = None

    @property
    def start_at(self) -> Optional[datetime]:
        return parse_datetime(self.start)

    @property
    def end_at(self) -> Optional[datetime]:
        return parse_datetime(self.end)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"start": self.start, "end": self.end, "time_zone": self.time_zone}


@dataclass(frozen=True)
class PropertyValue:
    """
    Valor tipado de una propiedad.

    - TEXT / SELECT: str
    - MULTI_SELECT / ID_LIST: tuple[str, ...] en orden de origen
    - DATE: DateRange
    - NUMBER: int | float
    - BOOLEAN: bool
    - LIST: tuple de escalares (urls de archivos, arrays de rollup)
    """

    kind: PropertyKind
    value: Any

    @classmethod
    def text(cls, value: str) -> "PropertyValue":
        return cls(PropertyKind.TEXT, value)

    @classmethod
    def select(cls, value: str) -> "PropertyValue":
        return cls(PropertyKind.SELECT, value)

    @classmethod
    def multi_select(cls, names: List[str]) -> "PropertyValue":
        return cls(PropertyKind.MULTI_SELECT, tuple(names))

    @classmethod
    def date(cls, start: Optional[str], end: Optional[str] = None,
             time_zone: Optional[str] = None) -> "PropertyValue":
        return cls(PropertyKind.DATE, DateRange(start, end, time_zone))

    @classmethod
    def number(cls, value: float) -> "PropertyValue":
        return cls(PropertyKind.NUMBER, value)

    @classmethod
    def boolean(cls, value: bool) -> "PropertyValue":
        return cls(PropertyKind.BOOLEAN, bool(value))

    @classmethod
    def id_list(cls, ids: List[str]) -> "PropertyValue":
        return cls(PropertyKind.ID_LIST, tuple(ids))

    @classmethod
    def list_of(cls, items: List[Any]) -> "PropertyValue":
        return cls(PropertyKind.LIST, tuple(items))

    def as_text(self) -> Optional[str]:
        """Representacion textual (para campos string bien conocidos)."""
        if self.value is None:
            return None
        if self.kind in (PropertyKind.TEXT, PropertyKind.SELECT):
            return self.value
        if self.kind == PropertyKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind == PropertyKind.NUMBER:
            return str(self.value)
        if self.kind == PropertyKind.DATE:
            return self.value.start
        if self.kind in (PropertyKind.MULTI_SELECT, PropertyKind.ID_LIST, PropertyKind.LIST):
            return ", ".join(str(item) for item in self.value)
        return None

    def as_ids(self) -> Tuple[str, ...]:
        if self.kind in (PropertyKind.ID_LIST, PropertyKind.MULTI_SELECT, PropertyKind.LIST):
            return tuple(str(item) for item in self.value)
        return ()

    def as_number(self) -> Optional[float]:
        if self.kind == PropertyKind.NUMBER:
            return self.value
        if self.kind == PropertyKind.TEXT and self.value:
            try:
                return float(self.value)
            except ValueError:
                return None
        return None

    def to_json(self) -> Dict[str, Any]:
        """Serializa a un dict apto para columnas JSON."""
        if self.kind == PropertyKind.DATE:
            value = self.value.to_dict()
        elif isinstance(self.value, tuple):
            value = list(self.value)
        else:
            value = self.value
        return {"kind": self.kind.value, "value": value}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PropertyValue":
        kind = PropertyKind(data["kind"])
        value = data.get("value")
        if kind == PropertyKind.DATE:
            value = DateRange(**(value or {}))
        elif isinstance(value, list):
            value = tuple(value)
        return cls(kind, value)


OverflowMap = Dict[str, PropertyValue]


def overflow_to_json(overflow: OverflowMap) -> Dict[str, Dict[str, Any]]:
    return {key: value.to_json() for key, value in overflow.items()}


def overflow_from_json(raw: Optional[Dict[str, Any]]) -> OverflowMap:
    return {key: PropertyValue.from_json(value) for key, value in (raw or {}).items()}
