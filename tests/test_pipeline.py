"""
test_pipeline.py — Tests para GitPipeline.

Verifica la secuencia completa contra un GitHub falso:
- Orden estricto: ref → commit → blobs → tree → commit → ref
- Un blob por write, deletes como sha=None en el tree
- Commit con un solo parent (el tip leído)
- 401 a mitad de camino invalida el token cacheado
- Preflight: change-set vacío o repo sin configurar no tocan la red
"""

from __future__ import annotations

import hashlib
from dataclasses import replace

import pytest

from conftest import REPO_API
from sitekeeper.auth.token_broker import TokenBroker
from sitekeeper.errors import (
    NotAuthenticated,
    PipelineStageFailure,
    RepoUnavailable,
    UpstreamAuthError,
)
from sitekeeper.publishing.changes import ChangeSet, FileChange
from sitekeeper.publishing.github_client import GitHubClient
from sitekeeper.publishing.pipeline import GitPipeline


def _pipeline(vault, github, http, **kwargs) -> GitPipeline:
    broker = TokenBroker(vault, github, http=http)
    client = GitHubClient(github, http=http)
    return GitPipeline(client, broker, **kwargs)


@pytest.fixture
def pipeline(unlocked_vault, github_config, api) -> GitPipeline:
    return _pipeline(unlocked_vault, github_config, api)


class TestPublish:

    def test_secuencia_texto_y_binario(self, pipeline, api):
        """Un write de texto + uno binario de 10 bytes → 7 llamadas en orden."""
        change_set = ChangeSet("chore: test", [
            FileChange.text("src/config/site-content.json", '{"title": "hola"}'),
            FileChange.binary("public/favicon.png", bytes(range(10))),
        ])

        result = pipeline.publish(change_set)

        llamadas = [(c.method, c.url.removeprefix(REPO_API)) for c in api.repo_calls()]
        assert llamadas[:2] == [
            ("GET", "/git/ref/heads/main"),
            ("GET", "/git/commits/parent-sha"),
        ]
        assert llamadas[2:4] == [("POST", "/git/blobs"), ("POST", "/git/blobs")]
        assert llamadas[4:] == [
            ("POST", "/git/trees"),
            ("POST", "/git/commits"),
            ("PATCH", "/git/refs/heads/main"),
        ]

        ref_update = api.repo_calls()[-1]
        assert ref_update.json == {"sha": "commit-sha", "force": True}
        assert result.commit_sha == "commit-sha"
        assert result.parent_sha == "parent-sha"
        assert result.tree_sha == "tree-sha"
        assert result.branch == "main"

    def test_tree_con_writes_y_deletes(self, pipeline, api):
        change_set = ChangeSet("chore: mix", [
            FileChange.text("a.json", "[]"),
            FileChange.binary("public/images/x.png", b"x"),
            FileChange.binary("public/images/y.png", b"y"),
            FileChange.delete("public/images/viejo.png"),
            FileChange.delete("public/images/otro.png"),
        ])

        result = pipeline.publish(change_set)

        assert api.count("POST", "/git/blobs") == 3
        tree_call = next(c for c in api.calls if c.url.endswith("/git/trees"))
        assert tree_call.json["base_tree"] == "base-tree"
        items = tree_call.json["tree"]
        assert [i["path"] for i in items] == change_set.paths
        assert all(i["mode"] == "100644" and i["type"] == "blob" for i in items)
        assert all(i["sha"] for i in items[:3])
        assert [i["sha"] for i in items[3:]] == [None, None]

        commit_call = next(
            c for c in api.calls if c.method == "POST" and c.url.endswith("/git/commits")
        )
        assert commit_call.json["parents"] == ["parent-sha"]
        assert commit_call.json["tree"] == "tree-sha"
        assert commit_call.json["message"] == "chore: mix"

        assert result.written == ["a.json", "public/images/x.png", "public/images/y.png"]
        assert result.deleted == ["public/images/viejo.png", "public/images/otro.png"]

    def test_blob_sha_corresponde_a_su_path(self, pipeline, api):
        """Con varios workers cada item del tree recibe el SHA de su propio blob."""
        writes = [FileChange.binary(f"f{i}.bin", bytes([i]) * 8) for i in range(6)]
        pipeline.publish(ChangeSet("chore: many", writes))

        esperados = {}
        for call in api.calls:
            if call.url.endswith("/git/blobs"):
                digest = hashlib.sha1(call.json["content"].encode("ascii")).hexdigest()
                esperados[call.json["content"]] = f"blob-{digest[:10]}"

        tree = next(c for c in api.calls if c.url.endswith("/git/trees")).json["tree"]
        for item, change in zip(tree, writes):
            assert item["sha"] == esperados[change.to_base64()]

    def test_blobs_en_paralelo_llevan_su_propio_token(self, pipeline, api):
        """El Session compartido no guarda auth: cada POST trae su header."""
        writes = [FileChange.text(f"f{i}.txt", str(i)) for i in range(6)]
        pipeline.publish(ChangeSet("chore: many", writes))

        blobs = [c for c in api.calls if c.url.endswith("/git/blobs")]
        assert len(blobs) == 6
        assert {c.headers["Authorization"] for c in blobs} == {"Bearer ghs_test"}

    def test_solo_deletes(self, pipeline, api):
        pipeline.publish(ChangeSet("chore: rm", [FileChange.delete("old.txt")]))
        assert api.count("POST", "/git/blobs") == 0
        assert api.count("PATCH", "/git/refs/heads/main") == 1

    def test_sin_force(self, unlocked_vault, github_config, api):
        pipeline = _pipeline(unlocked_vault, github_config, api, force_update=False)
        pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert api.repo_calls()[-1].json["force"] is False

    def test_un_solo_worker(self, unlocked_vault, github_config, api):
        pipeline = _pipeline(unlocked_vault, github_config, api, blob_workers=1)
        result = pipeline.publish(ChangeSet("x", [
            FileChange.text("a.txt", "a"), FileChange.text("b.txt", "b"),
        ]))
        assert result.written == ["a.txt", "b.txt"]


class TestPreflight:

    def test_change_set_vacio(self, pipeline, api):
        with pytest.raises(ValueError, match="vacío"):
            pipeline.publish(ChangeSet("nada"))
        assert api.calls == []

    @pytest.mark.parametrize("owner,repo", [("-", "-"), ("", "site"), ("octo", "")])
    def test_repo_sin_configurar(self, unlocked_vault, github_config, api, owner, repo):
        github = replace(github_config, owner=owner, repo=repo)
        pipeline = _pipeline(unlocked_vault, github, api)
        with pytest.raises(RepoUnavailable):
            pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert api.calls == []

    def test_vault_bloqueado(self, pipeline, unlocked_vault, api):
        unlocked_vault.lock()
        with pytest.raises(NotAuthenticated):
            pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert api.calls == []


class TestFallas:

    def test_401_invalida_token(self, pipeline, api):
        api.add("POST", "/git/trees", {"message": "Bad credentials"}, status=401)
        with pytest.raises(UpstreamAuthError):
            pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert pipeline._broker.session.token is None
        assert api.count("POST", "/git/commits") == 0

    def test_branch_inexistente(self, pipeline, api):
        api.add("GET", "/git/ref/heads/main", {"message": "Not Found"}, status=404)
        with pytest.raises(RepoUnavailable):
            pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert api.count("POST", "/git/blobs") == 0

    def test_falla_de_commit_no_mueve_ref(self, pipeline, api):
        api.add("POST", "/git/commits", {"message": "boom"}, status=500)
        with pytest.raises(PipelineStageFailure) as exc_info:
            pipeline.publish(ChangeSet("x", [FileChange.text("a.txt", "a")]))
        assert exc_info.value.stage == "CommitCreation"
        assert api.count("PATCH", "/git/refs/heads/main") == 0
        # El token sigue siendo válido para reintentar
        assert pipeline._broker.session.token is not None
