"""
test_blog.py — Tests para BlogBuilder y BlogPost.

Cubre publicación nueva, edición, renombre y borrado, incluyendo
el reemplazo de placeholders local-image:{id} por URLs finales.
"""

from __future__ import annotations

import json

import pytest

from sitekeeper.builders.base import StagedUpload
from sitekeeper.builders.blog import INDEX_PATH, BlogBuilder, BlogPost, post_paths


IMG = StagedUpload(b"foto-del-post", "foto.jpg")
COVER = StagedUpload(b"portada", "cover.png")


def _index(change_set):
    return json.loads(change_set.get(INDEX_PATH).content.decode("utf-8"))


def _post(**kwargs) -> BlogPost:
    datos = {"slug": "hola-mundo", "title": "Hola mundo", "date": "2026-10-18"}
    datos.update(kwargs)
    return BlogPost(**datos)


class TestBlogPost:

    def test_to_meta_sin_contenido(self):
        meta = _post(content="# Hola", tags=["a"]).to_meta()
        assert "content" not in meta
        assert meta["tags"] == ["a"]

    def test_from_meta_ignora_campos_desconocidos(self):
        post = BlogPost.from_meta({"slug": "x", "title": "X", "views": 10}, "texto")
        assert post.content == "texto"
        assert post.slug == "x"

    def test_asset_urls(self):
        post = _post(
            content="![a](/blogs/hola-mundo/a.png) y ![b](https://cdn.com/b.png)",
            cover="/blogs/hola-mundo/c.png",
        )
        assert post.asset_urls() == ["/blogs/hola-mundo/a.png", "/blogs/hola-mundo/c.png"]


class TestBuildPublish:

    def test_post_nuevo_con_placeholders(self):
        post = _post(content="Mira: ![x](local-image:img1) y otra vez ![y](local-image:img2)")

        cs, final, index = BlogBuilder().build_publish(
            post, [], images={"img1": IMG, "img2": IMG}, cover=COVER,
        )

        url = f"/blogs/hola-mundo/{IMG.hashed_name}"
        assert final.content == f"Mira: ![x]({url}) y otra vez ![y]({url})"
        assert final.cover == f"/blogs/hola-mundo/{COVER.hashed_name}"

        md_path, config_path = post_paths("hola-mundo")
        assert cs.paths[:2] == [md_path, config_path]
        assert f"public{url}" in cs
        assert f"public{final.cover}" in cs
        assert INDEX_PATH in cs
        assert cs.deletes == []
        assert cs.message == "chore: publish blog post hola-mundo"
        assert index == [final.to_meta()]

    def test_placeholder_sin_upload(self):
        post = _post(content="![x](local-image:falta)")
        with pytest.raises(ValueError, match="falta"):
            BlogBuilder().build_publish(post, [])

    def test_metadata_invalida(self):
        with pytest.raises(ValueError, match="slug"):
            BlogBuilder().build_publish(_post(slug="Hola Mundo"), [])

    def test_edicion_borra_imagen_que_ya_no_se_usa(self):
        previous = _post(content="![a](/blogs/hola-mundo/vieja.png)")
        editado = _post(content="![b](local-image:nueva)")

        cs, _, _ = BlogBuilder().build_publish(
            editado, [previous.to_meta()], images={"nueva": IMG}, previous=previous,
        )

        assert [d.path for d in cs.deletes] == ["public/blogs/hola-mundo/vieja.png"]
        assert cs.message == "chore: update blog post hola-mundo"

    def test_indice_ordenado_y_sin_duplicados(self):
        index = [
            {"slug": "viejo", "title": "Viejo", "date": "2025-01-01"},
            {"slug": "hola-mundo", "title": "Versión anterior", "date": "2026-10-18"},
            {"slug": "nuevo", "title": "Nuevo", "date": "2026-12-01"},
        ]
        cs, _, nuevo = BlogBuilder().build_publish(_post(), index)
        assert [e["slug"] for e in nuevo] == ["nuevo", "hola-mundo", "viejo"]
        assert _index(cs) == nuevo
        assert [e["title"] for e in nuevo if e["slug"] == "hola-mundo"] == ["Hola mundo"]

    def test_indice_compara_fechas_con_zona_horaria(self):
        # 10:00+08:00 son las 02:00Z, antes que las 05:00Z
        index = [
            {"slug": "oriente", "title": "Oriente", "date": "2026-10-18T10:00:00+08:00"},
            {"slug": "sin-fecha", "title": "Sin fecha"},
            {"slug": "utc", "title": "UTC", "date": "2026-10-18T05:00:00Z"},
        ]
        _, _, nuevo = BlogBuilder().build_publish(_post(date="2026-10-17"), index)
        assert [e["slug"] for e in nuevo] == ["utc", "oriente", "hola-mundo", "sin-fecha"]

    def test_renombre(self):
        previous = _post(slug="borrador", content="![a](/blogs/borrador/a.png)")
        renombrado = _post(slug="version-final", content="![a](/blogs/borrador/a.png)")

        cs, _, index = BlogBuilder().build_publish(
            renombrado, [previous.to_meta()], previous=previous,
        )

        viejo_md, viejo_config = post_paths("borrador")
        assert cs.get(viejo_md).is_delete
        assert cs.get(viejo_config).is_delete
        # La imagen sigue referenciada desde el markdown nuevo
        assert "public/blogs/borrador/a.png" not in cs
        assert [e["slug"] for e in index] == ["version-final"]


class TestBuildDelete:

    def test_borra_archivos_e_imagenes(self):
        previous = _post(content="![a](/blogs/hola-mundo/a.png)", cover="/blogs/hola-mundo/c.png")
        index = [previous.to_meta(), {"slug": "otro", "title": "Otro"}]

        cs, nuevo = BlogBuilder().build_delete("hola-mundo", index, previous)

        assert [e["slug"] for e in nuevo] == ["otro"]
        assert sorted(d.path for d in cs.deletes) == sorted([
            *post_paths("hola-mundo"),
            "public/blogs/hola-mundo/a.png",
            "public/blogs/hola-mundo/c.png",
        ])
        assert cs.writes[0].path == INDEX_PATH
        assert cs.message == "chore: delete blog post hola-mundo"

    def test_slug_inexistente(self):
        with pytest.raises(ValueError, match="No existe"):
            BlogBuilder().build_delete("fantasma", [])
