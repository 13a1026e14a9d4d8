from __future__ import annotations

import asyncio

import pytest

from cpxscore.core.checklists import ChecklistResolver, StaticChecklistRegistry
from cpxscore.core.errors import ChecklistUnavailable, PipelineInputError
from cpxscore.data.models import SECTION_IDS, EvidenceChecklist, EvidenceChecklistItem
from cpxscore.data.storage import SessionStore


def _checklist(prefix: str, count: int = 1) -> EvidenceChecklist:
    return EvidenceChecklist(
        sections={
            "history": [
                EvidenceChecklistItem(id=f"{prefix}-{index}", title=f"{prefix} {index}", criteria="asked")
                for index in range(count)
            ]
        }
    )


@pytest.fixture()
def store(tmp_path) -> SessionStore:
    store = SessionStore(tmp_path / "cpxscore.db")
    store.initialize()
    return store


def test_bundled_checklists_cover_all_sections():
    registry = StaticChecklistRegistry()

    names = registry.case_names()

    assert "base" in names
    assert "가슴통증" in names
    for name in names:
        checklist = registry.get(name)
        assert list(checklist.sections) == list(SECTION_IDS)
        assert checklist.item_count > 0


def test_registry_resolves_aliases_and_falls_back_to_base():
    registry = StaticChecklistRegistry()

    assert registry.get("chest pain") is registry.get("가슴통증")
    assert registry.get("unknown case") is registry.get("base")


def test_registry_without_base_raises():
    registry = StaticChecklistRegistry(base_case=None)

    with pytest.raises(LookupError):
        registry.get("unknown case")


def test_resolver_priority_scenario_then_checklist_then_case(store):
    store.save_scenario("scn-1", _checklist("SCN").model_dump())
    store.save_checklist("chk-1", _checklist("CHK"))
    resolver = ChecklistResolver(store)

    from_scenario = asyncio.run(resolver.resolve("가슴통증", "chk-1", "scn-1"))
    from_checklist = asyncio.run(resolver.resolve("가슴통증", "chk-1", None))
    from_case = asyncio.run(resolver.resolve("가슴통증", None, None))

    assert from_scenario.items("history")[0].id == "SCN-0"
    assert from_checklist.items("history")[0].id == "CHK-0"
    assert from_case == StaticChecklistRegistry().get("가슴통증")


def test_resolver_does_not_fall_through_when_chosen_source_is_missing(store):
    resolver = ChecklistResolver(store)

    with pytest.raises(ChecklistUnavailable, match="scenario 'missing'"):
        asyncio.run(resolver.resolve("가슴통증", None, "missing"))
    with pytest.raises(ChecklistUnavailable, match="checklist 'missing'"):
        asyncio.run(resolver.resolve("가슴통증", "missing", None))


def test_resolver_requires_an_identifier(store):
    with pytest.raises(PipelineInputError):
        asyncio.run(ChecklistResolver(store).resolve())


def test_resolver_without_store_or_base():
    resolver = ChecklistResolver(None, StaticChecklistRegistry(base_case=None))

    with pytest.raises(ChecklistUnavailable):
        asyncio.run(resolver.resolve(checklist_id="chk-1"))
    with pytest.raises(ChecklistUnavailable):
        asyncio.run(resolver.resolve(case_name="unknown case"))


def test_fetch_checklist_returns_latest_version(store):
    assert store.save_checklist("chk-1", _checklist("V1")) == 1
    assert store.save_checklist("chk-1", _checklist("V2", count=2)) == 2

    latest = store.fetch_checklist("chk-1")

    assert latest is not None
    assert [item.id for item in latest.items("history")] == ["V2-0", "V2-1"]


def test_scenario_snapshot_drops_excluded_items(store):
    store.save_scenario(
        "scn-1",
        _checklist("S", count=3).model_dump(),
        included_map={"S-1": False, "S-2": True},
    )

    snapshot = store.fetch_scenario_snapshot("scn-1")

    assert snapshot is not None
    assert [item.id for item in snapshot.items("history")] == ["S-0", "S-2"]


def test_legacy_export_names_are_accepted():
    payload = {
        "HistoryEvidenceChecklist": [{"id": "H-1", "title": "onset", "criteria": "asked onset"}],
        "PhysicalexamEvidenceChecklist": [{"id": "P-1", "title": "pulse", "criteria": "checked pulse"}],
    }

    checklist = EvidenceChecklist.from_payload(payload)

    assert checklist.items("history")[0].id == "H-1"
    assert checklist.items("physical_exam")[0].id == "P-1"
    assert checklist.items("ppi") == []


def test_checklist_rejects_duplicate_ids_and_unknown_sections():
    item = {"id": "H-1", "title": "onset", "criteria": "asked onset"}

    with pytest.raises(ValueError):
        EvidenceChecklist.model_validate({"sections": {"history": [item, item]}})
    with pytest.raises(ValueError):
        EvidenceChecklist.model_validate({"sections": {"closing": [item]}})
