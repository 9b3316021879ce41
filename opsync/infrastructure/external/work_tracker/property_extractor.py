"""
Decodificacion de propiedades del work tracker a PropertyValue.

La bolsa de propiedades de una pagina es un dict `clave -> objeto propiedad`
donde la clave puede ser el id estable de la propiedad o su nombre visible.
Cada objeto propiedad trae su `type` y un payload bajo esa misma clave.

Funciones puras: nunca lanzan por una propiedad malformada o ausente;
retornan None y dejan un warning en el log.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from opsync.domain.entities.properties import PropertyKind, PropertyValue

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Tipos computados cuyo valor concreto depende del sub-tipo declarado
_COMPUTED_TYPES = ("formula", "rollup")


def normalize_property_name(name: str) -> str:
    """
    Convierte un nombre de propiedad a snake_case apto para queries.

    >>> normalize_property_name("Push Back Count (QI)")
    'push_back_count_qi'
    """
    return _NON_ALNUM.sub("_", (name or "").lower().strip()).strip("_")


def lookup_property(
    properties: Dict[str, Any],
    identifier: str,
    fallback_name: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Busca por id y, si no esta, por nombre."""
    if not isinstance(properties, dict):
        return None
    prop = properties.get(identifier)
    if prop is None and fallback_name:
        prop = properties.get(fallback_name)
    return prop if isinstance(prop, dict) else None


def extract_property(
    properties: Dict[str, Any],
    identifier: str,
    kind: str,
    fallback_name: Optional[str] = None,
) -> Optional[PropertyValue]:
    """
    Extrae y normaliza una propiedad.

    Args:
        properties: Bolsa de propiedades de la pagina
        identifier: ID de la propiedad (preferido)
        kind: Tipo declarado (title, rich_text, select, date, formula, ...)
        fallback_name: Nombre visible usado si el ID no existe

    Returns:
        Optional[PropertyValue]: Valor normalizado o None si falta / es invalido
    """
    prop = lookup_property(properties, identifier, fallback_name)
    if prop is None:
        return None

    # Drift: la propiedad paso a ser formula/rollup pero se declaro como escalar
    actual_type = prop.get("type")
    if kind not in prop and actual_type in _COMPUTED_TYPES:
        kind = actual_type

    try:
        return decode_property(prop, kind)
    except (AttributeError, TypeError, KeyError, ValueError) as e:
        logger.warning(
            f"No se pudo extraer la propiedad '{fallback_name or identifier}' "
            f"({identifier}, tipo {kind}): {e}"
        )
        return None


def decode_property(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    """Decodifica un objeto propiedad ya localizado segun su tipo declarado."""
    decoder = _DECODERS.get(kind)
    if decoder is None:
        logger.debug(f"Tipo de propiedad no soportado: {kind}")
        return None
    return decoder(prop, kind)


def _join_segments(segments: Any) -> str:
    if not isinstance(segments, list):
        return ""
    return "".join((segment or {}).get("plain_text") or "" for segment in segments)


def _decode_text(prop: Dict[str, Any], kind: str) -> PropertyValue:
    return PropertyValue.text(_join_segments(prop.get(kind)))


def _decode_select(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    option = prop.get(kind)
    if not option or not option.get("name"):
        return None
    return PropertyValue.select(option["name"])


def _decode_multi_select(prop: Dict[str, Any], kind: str) -> PropertyValue:
    options = prop.get("multi_select") or []
    return PropertyValue.multi_select([o["name"] for o in options if o.get("name")])


def _date_from(raw: Optional[Dict[str, Any]]) -> Optional[PropertyValue]:
    if not raw:
        return None
    return PropertyValue.date(raw.get("start"), raw.get("end"), raw.get("time_zone"))


def _decode_date(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    return _date_from(prop.get("date"))


def _decode_id_list(prop: Dict[str, Any], kind: str) -> PropertyValue:
    refs = prop.get(kind) or []
    return PropertyValue.id_list([r["id"] for r in refs if r and r.get("id")])


def _decode_number(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    value = prop.get("number")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"numero invalido: {value!r}")
    return PropertyValue.number(value)


def _decode_checkbox(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    value = prop.get("checkbox")
    return None if value is None else PropertyValue.boolean(value)


def _decode_plain(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    value = prop.get(kind)
    return PropertyValue.text(value) if value else None


def _decode_files(prop: Dict[str, Any], kind: str) -> PropertyValue:
    urls: List[str] = []
    for item in prop.get("files") or []:
        url = (item.get("file") or {}).get("url") or (item.get("external") or {}).get("url")
        if url:
            urls.append(url)
    return PropertyValue.list_of(urls)


def _decode_timestamp(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    value = prop.get(kind)
    return PropertyValue.date(value) if value else None


def _decode_formula(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    formula = prop.get("formula") or {}
    sub_kind = formula.get("type")
    value = formula.get(sub_kind) if sub_kind else None
    if value is None:
        return None
    if sub_kind == "number":
        return PropertyValue.number(value)
    if sub_kind == "string":
        return PropertyValue.text(value)
    if sub_kind == "boolean":
        return PropertyValue.boolean(value)
    if sub_kind == "date":
        return _date_from(value)
    return None


def _decode_rollup(prop: Dict[str, Any], kind: str) -> Optional[PropertyValue]:
    rollup = prop.get("rollup") or {}
    sub_kind = rollup.get("type")
    if sub_kind == "number":
        value = rollup.get("number")
        return None if value is None else PropertyValue.number(value)
    if sub_kind == "date":
        return _date_from(rollup.get("date"))
    if sub_kind == "array":
        return _decode_rollup_array(rollup.get("array") or [])
    return None


def _ids(items: Any) -> List[str]:
    if not isinstance(items, list):
        return []
    ids = []
    for item in items:
        item_id = item.get("id") if isinstance(item, dict) else item
        if item_id:
            ids.append(item_id)
    return ids


def _decode_rollup_array(array: List[Any]) -> PropertyValue:
    """
    Aplana arrays de rollup segun la forma del primer elemento.

    Formas reconocidas:
    1. items {type: people, people: [...]}        -> ids aplanados
    2. items {type: relation, relation: [...]}    -> ids aplanados
    3. usuarios directos {object: user, id}       -> ids
    4. relaciones directas {id} sin object        -> ids
    5. items con campo people (lista o un usuario) -> ids aplanados
    Cualquier otro array -> lista del valor escalar de cada item.
    """
    if not array:
        return PropertyValue.list_of([])

    first = array[0] if isinstance(array[0], dict) else {}

    if first.get("type") == "people" and first.get("people") is not None:
        return PropertyValue.id_list([i for item in array for i in _ids(item.get("people"))])

    if first.get("type") == "relation" and first.get("relation") is not None:
        return PropertyValue.id_list([i for item in array for i in _ids(item.get("relation"))])

    if first.get("object") == "user" or (first.get("id") and "type" not in first):
        return PropertyValue.id_list(_ids(array))

    if first.get("id") and not first.get("object"):
        return PropertyValue.id_list(_ids(array))

    if "people" in first:
        ids: List[str] = []
        for item in array:
            people = item.get("people")
            if isinstance(people, list):
                ids.extend(_ids(people))
            elif isinstance(people, dict) and people.get("id"):
                ids.append(people["id"])
        return PropertyValue.id_list(ids)

    values = []
    for item in array:
        scalar = _scalar_of(item)
        if scalar is not None:
            values.append(scalar)
    return PropertyValue.list_of(values)


def _scalar_of(item: Any) -> Any:
    if not isinstance(item, dict):
        return item
    item_type = item.get("type")
    if not item_type:
        return None
    value = decode_property(item, item_type)
    if value is None:
        return None
    if value.kind in (PropertyKind.NUMBER, PropertyKind.BOOLEAN):
        return value.value
    return value.as_text()


_DECODERS: Dict[str, Callable[[Dict[str, Any], str], Optional[PropertyValue]]] = {
    "title": _decode_text,
    "rich_text": _decode_text,
    "select": _decode_select,
    "status": _decode_select,
    "multi_select": _decode_multi_select,
    "date": _decode_date,
    "people": _decode_id_list,
    "relation": _decode_id_list,
    "number": _decode_number,
    "checkbox": _decode_checkbox,
    "url": _decode_plain,
    "email": _decode_plain,
    "phone_number": _decode_plain,
    "files": _decode_files,
    "created_time": _decode_timestamp,
    "last_edited_time": _decode_timestamp,
    "formula": _decode_formula,
    "rollup": _decode_rollup,
}
