"""
validators.py -- Validacion de slugs y metadata de posts del blog.

Cada funcion validate_* retorna una tupla (es_valido, mensaje_de_error).
Si es_valido es True, el mensaje sera una cadena vacia. Los builders
deciden que hacer con el error (normalmente levantar ValueError antes
de tocar la red).

Uso:
    from sitekeeper.utils.validators import slugify, validate_slug

    valido, error = validate_slug("mi-primer-post")
    slug = slugify("¿Cómo publicar sin servidor?")  # "como-publicar-sin-servidor"
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any


# Solo letras minusculas, numeros y guiones entre palabras.
# Validos: "hola-mundo", "post-1". Invalidos: "Hola", "post_1", "a--b"
SLUG_PATTERN: re.Pattern[str] = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# El slug es nombre de directorio en public/blogs/ y parte de la URL
MAX_SLUG_LENGTH: int = 80

MAX_TITLE_LENGTH: int = 200

# Fechas: "2026-10-18", "2026-10-18T12:00", "2026-10-18T12:00:00+08:00"
DATE_PATTERN: re.Pattern[str] = re.compile(
    r"^\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?)?$"
)


def slugify(text: str) -> str:
    """
    Convierte un texto libre en slug.

    Ejemplos:
        "Building AI Agents"     → "building-ai-agents"
        "¿Cómo usar Claude?"     → "como-usar-claude"
        "Post #1: My First!!!"   → "post-1-my-first"
    """
    # NFD separa acentos de su letra para poder descartarlos
    slug = unicodedata.normalize("NFD", text)
    slug = "".join(c for c in slug if unicodedata.category(c) != "Mn")
    slug = slug.lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")

    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rsplit("-", 1)[0]

    return slug


def validate_slug(slug: str) -> tuple[bool, str]:
    """
    Valida que un slug sirva como URL y como nombre de directorio.

    Returns:
        Tupla (es_valido, mensaje_de_error).
    """
    if not isinstance(slug, str):
        return False, "El slug debe ser texto, no " + type(slug).__name__

    if not slug:
        return False, "Falta el slug: es el nombre del directorio en public/blogs/"

    if len(slug) > MAX_SLUG_LENGTH:
        return False, f"Slug de {len(slug)} caracteres; se admiten hasta {MAX_SLUG_LENGTH}"

    if not SLUG_PATTERN.match(slug):
        sobrantes = "".join(sorted(set(re.sub(r"[a-z0-9-]", "", slug))))
        motivo = f"caracteres no permitidos '{sobrantes}'" if sobrantes else "guiones sueltos"
        return False, (
            f"Slug '{slug}' no sirve como URL ({motivo}). "
            "Usa a-z, 0-9 y un solo guion entre palabras, o slugify(titulo)."
        )

    return True, ""


def validate_post_meta(data: dict[str, Any]) -> tuple[bool, str]:
    """
    Valida la metadata de un post antes de publicarlo.

    Verifica:
    - slug valido
    - titulo no vacio y de longitud razonable
    - fecha ISO 8601 (si viene)
    - tags como lista de textos

    Returns:
        Tupla (es_valido, mensaje_de_error).
    """
    if not isinstance(data, dict):
        return False, "La metadata debe ser un diccionario, no " + type(data).__name__

    valido, error = validate_slug(data.get("slug", ""))
    if not valido:
        return False, error

    titulo = data.get("title")
    if not isinstance(titulo, str) or not titulo.strip():
        return False, "El titulo no puede estar vacio"
    if len(titulo) > MAX_TITLE_LENGTH:
        return False, f"El titulo es demasiado largo ({len(titulo)} chars, max {MAX_TITLE_LENGTH})"

    fecha = data.get("date", "")
    if fecha and (not isinstance(fecha, str) or not DATE_PATTERN.match(fecha)):
        return False, f"Formato de fecha invalido: '{fecha}'. Se espera ISO 8601"

    tags = data.get("tags", [])
    if not isinstance(tags, list):
        return False, "Los tags deben ser una lista"
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            return False, f"Tag invalido encontrado: '{tag}'"

    return True, ""
