"""
Tests for archive assembly and unpacking
"""
import hashlib
import json
import logging
import zipfile

import pytest


def _project(tmp_path, data):
    from fusepack.config import Project, validate_project
    return Project(validate_project(data), tmp_path / "project.yaml")


def _targets(project, sprite_vars=None):
    from fusepack.pipeline.scope import CompiledTarget

    sprite_vars = sprite_vars or {}
    targets = [CompiledTarget("Stage", True, project.spec.stage)]
    for spec in project.spec.targets:
        targets.append(CompiledTarget(spec.name, False, spec, variables=sprite_vars.get(spec.name, [])))
    return targets


class TestVariableTables:
    """Symbolic names are re-keyed by opaque ids."""

    def test_ids_and_display_names(self):
        from fusepack.packaging.archive import variable_tables
        from fusepack.script.model import Declaration, Variable, VariableKind

        decls = [
            Declaration(Variable("score"), 0),
            Declaration(Variable("hi", export_name="High Score"), 10),
            Declaration(Variable("items", kind=VariableKind.LIST), ["a"]),
        ]
        variables, lists, source_names = variable_tables(decls)
        assert sorted(v[0] for v in variables.values()) == ["High Score", "score"]
        assert list(lists.values()) == [["items", ["a"]]]
        assert list(source_names.values()) == ["hi"]
        assert variables[next(iter(source_names))] == ["High Score", 10]
        for key in [*variables, *lists]:
            assert key not in ("score", "hi", "items")
            assert len(key) == 20

    def test_list_default_must_be_list(self):
        from fusepack.packaging.archive import variable_tables
        from fusepack.script.model import Declaration, Variable, VariableKind

        _, lists, _ = variable_tables([Declaration(Variable("xs", kind=VariableKind.LIST), 3)])
        assert list(lists.values()) == [["xs", []]]


class TestAssemble:
    """Manifest construction."""

    def test_stage_first_and_defaults(self, tmp_path):
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import ContentAddressedAssetStore

        project = _project(tmp_path, {
            "extensions": ["pen"],
            "stage": {},
            "targets": [{"name": "A"}, {"name": "B", "layerOrder": 7}],
        })
        manifest = ArchiveAssembler(ContentAddressedAssetStore()).assemble(project, _targets(project))
        data = manifest.to_dict()

        stage, a, b = data["targets"]
        assert stage["isStage"] is True
        assert stage["name"] == "Stage"
        assert stage["layerOrder"] == 0
        assert stage["tempo"] == 60
        assert stage["videoState"] == "on"
        assert stage["textToSpeechLanguage"] is None
        assert "rotationStyle" not in stage
        assert "sourceNames" not in stage
        assert (a["layerOrder"], b["layerOrder"]) == (1, 7)
        assert a["rotationStyle"] == "all around"
        assert a["direction"] == 90
        assert a["draggable"] is False
        assert data["monitors"] == []
        assert data["extensions"] == ["pen"]
        assert data["meta"]["semver"] == "3.0.0"
        assert data["meta"]["platform"]["name"] == "TurboWarp"

    def test_placeholder_costume(self, tmp_path):
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import EMPTY_SVG, ContentAddressedAssetStore

        project = _project(tmp_path, {"stage": {}, "targets": [{"name": "A"}]})
        store = ContentAddressedAssetStore()
        manifest = ArchiveAssembler(store).assemble(project, _targets(project))

        expected = hashlib.md5(EMPTY_SVG.encode("utf-8")).hexdigest() + ".svg"
        for target in manifest.targets:
            (costume,) = target.costumes
            assert costume.name == "empty"
            assert costume.md5ext == expected
            assert (costume.rotation_center_x, costume.rotation_center_y) == (0, 0)
        assert len(store) == 1

    def test_assets_resolved_and_deduplicated(self, tmp_path):
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import ContentAddressedAssetStore

        (tmp_path / "cat.svg").write_bytes(b"<svg>cat</svg>")
        (tmp_path / "cat_copy.svg").write_bytes(b"<svg>cat</svg>")
        (tmp_path / "meow.wav").write_bytes(b"RIFF")
        project = _project(tmp_path, {
            "stage": {"backdrops": [{"path": "cat.svg", "name": "bg"}]},
            "targets": [
                {"name": "A", "costumes": [{"path": "cat.svg", "x": 5, "y": 6}], "sounds": [{"path": "meow.wav"}]},
                {"name": "B", "costumes": [{"path": "cat_copy.svg", "name": "twin"}]},
            ],
        })
        store = ContentAddressedAssetStore()
        manifest = ArchiveAssembler(store, max_workers=2).assemble(project, _targets(project))

        stage, a, b = manifest.targets
        assert stage.costumes[0].md5ext == a.costumes[0].md5ext == b.costumes[0].md5ext
        assert a.costumes[0].name == "cat"
        assert (a.costumes[0].rotation_center_x, a.costumes[0].rotation_center_y) == (5, 6)
        assert a.sounds[0].to_dict()["rate"] == 48000
        assert a.sounds[0].to_dict()["format"] == "wav"
        assert len(store) == 2
        assert manifest.asset_keys() == [a.costumes[0].md5ext, a.sounds[0].md5ext]

    def test_missing_asset_aborts(self, tmp_path):
        from fusepack.errors import ResolutionFailure
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import ContentAddressedAssetStore

        project = _project(tmp_path, {"stage": {}, "targets": [{"name": "A", "costumes": [{"path": "gone.png"}]}]})
        with pytest.raises(ResolutionFailure) as exc:
            ArchiveAssembler(ContentAddressedAssetStore()).assemble(project, _targets(project))
        assert "gone.png" in exc.value.path


class TestWriteAndUnpack:
    """Container round trip."""

    def test_zip_contents(self, tmp_path):
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import ContentAddressedAssetStore

        project = _project(tmp_path, {"stage": {}, "targets": [{"name": "A"}, {"name": "B"}]})
        assembler = ArchiveAssembler(ContentAddressedAssetStore())
        out = assembler.write(assembler.assemble(project, _targets(project)), tmp_path / "build" / "game.sb3")

        with zipfile.ZipFile(out) as zf:
            names = zf.namelist()
            assert names[0] == "project.json"
            assert len(names) == 2
            assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in zf.infolist())
            data = json.loads(zf.read("project.json"))
        assert [t["name"] for t in data["targets"]] == ["Stage", "A", "B"]

    def test_failed_write_leaves_nothing(self, tmp_path):
        from fusepack.errors import ResolutionFailure
        from fusepack.packaging.archive import ArchiveAssembler
        from fusepack.packaging.asset_store import ContentAddressedAssetStore
        from fusepack.packaging.manifest import ArchiveManifest, CostumeEntry, TargetRecord

        manifest = ArchiveManifest(targets=[
            TargetRecord("Stage", is_stage=True, costumes=[CostumeEntry("x", "deadbeef", "png")]),
        ])
        with pytest.raises(ResolutionFailure):
            ArchiveAssembler(ContentAddressedAssetStore()).write(manifest, tmp_path / "game.sb3")
        assert list(tmp_path.iterdir()) == []

    def test_unpack(self, tmp_path):
        from fusepack.packaging.archive import ArchiveAssembler, Unpacker
        from fusepack.packaging.asset_store import ContentAddressedAssetStore

        (tmp_path / "cat.svg").write_bytes(b"<svg>cat</svg>")
        project = _project(tmp_path, {"stage": {}, "targets": [{"name": "A", "costumes": [{"path": "cat.svg"}]}]})
        assembler = ArchiveAssembler(ContentAddressedAssetStore())
        out = assembler.write(assembler.assemble(project, _targets(project)), tmp_path / "game.sb3")

        with Unpacker(out) as unpacker:
            manifest = unpacker.manifest
            paths = unpacker.extract_all(tmp_path / "out")

        assert [t.name for t in manifest.targets] == ["Stage", "A"]
        key = manifest.targets[1].costumes[0].md5ext
        assert paths[key] == tmp_path / "out" / "assets" / key
        assert paths[key].read_bytes() == b"<svg>cat</svg>"
        assert len(paths) == 2

    def test_missing_project_json(self, tmp_path):
        from fusepack.errors import ResolutionFailure
        from fusepack.packaging.archive import Unpacker

        path = tmp_path / "bad.sb3"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("other.txt", "hi")
        with pytest.raises(ResolutionFailure, match="project.json"):
            Unpacker(path).open()

    def test_not_a_zip(self, tmp_path):
        from fusepack.errors import ResolutionFailure
        from fusepack.packaging.archive import Unpacker

        path = tmp_path / "bad.sb3"
        path.write_bytes(b"not a zip")
        with pytest.raises(ResolutionFailure):
            Unpacker(path).open()

    def test_missing_blob_warns(self, tmp_path, caplog):
        from fusepack.packaging.archive import Unpacker

        key = "0" * 32 + ".png"
        project = {"targets": [{"isStage": True, "name": "Stage", "costumes": [
            {"assetId": "0" * 32, "name": "bg", "md5ext": key, "dataFormat": "png"},
        ]}]}
        path = tmp_path / "game.sb3"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("project.json", json.dumps(project))

        with caplog.at_level(logging.WARNING, logger="fusepack.packaging.archive"):
            with Unpacker(path) as unpacker:
                assert key not in unpacker.store
        assert "missing" in caplog.text
