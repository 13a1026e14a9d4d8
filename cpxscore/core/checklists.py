"""Checklist resolution from scenario snapshots, versioned records, or static bundles."""

from __future__ import annotations

import asyncio
import json
from importlib import resources
from typing import Any, Dict, List, Optional

from ..data.models import EvidenceChecklist
from ..data.storage import SessionStore
from ..logging import get_logger
from .errors import ChecklistUnavailable, PipelineInputError

LOGGER = get_logger(__name__)

BASE_CASE = "base"


class StaticChecklistRegistry:
    """Case-name lookup over the JSON checklists bundled with the package.

    Files are indexed on first use; each checklist is validated the first time
    its case is requested and memoized afterwards.
    """

    def __init__(self, package: str = "cpxscore.data.checklists", base_case: Optional[str] = BASE_CASE) -> None:
        self.package = package
        self.base_case = base_case
        self._payloads: Optional[Dict[str, Dict[str, Any]]] = None
        self._aliases: Dict[str, str] = {}
        self._cache: Dict[str, EvidenceChecklist] = {}

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        if self._payloads is not None:
            return self._payloads
        payloads: Dict[str, Dict[str, Any]] = {}
        for entry in sorted(resources.files(self.package).iterdir(), key=lambda item: item.name):
            if not entry.name.endswith(".json"):
                continue
            payload = json.loads(entry.read_text(encoding="utf-8"))
            case_name = payload.get("case_name") or entry.name[: -len(".json")]
            payloads[case_name] = payload
            for alias in payload.get("aliases", []):
                self._aliases[alias] = case_name
        self._payloads = payloads
        return payloads

    def case_names(self) -> List[str]:
        return sorted(set(self._load_index()) | set(self._cache))

    def register(self, case_name: str, checklist: EvidenceChecklist) -> None:
        self._cache[case_name] = checklist

    def _canonical_name(self, case_name: str) -> Optional[str]:
        payloads = self._load_index()
        if case_name in self._cache or case_name in payloads:
            return case_name
        return self._aliases.get(case_name)

    def get(self, case_name: str) -> EvidenceChecklist:
        name = self._canonical_name(case_name)
        if name is None:
            if self.base_case is None or self._canonical_name(self.base_case) is None:
                raise LookupError(f"No static checklist for case '{case_name}' and no base checklist")
            LOGGER.info("No static checklist for case '%s'; using '%s'", case_name, self.base_case)
            name = self.base_case
        if name not in self._cache:
            self._cache[name] = EvidenceChecklist.from_payload(self._load_index()[name])
        return self._cache[name]


class ChecklistResolver:
    """Pick exactly one checklist source per run: scenario, checklist id, then case name."""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        registry: Optional[StaticChecklistRegistry] = None,
    ) -> None:
        self.store = store
        self.registry = registry or StaticChecklistRegistry()

    def _require_store(self) -> SessionStore:
        if self.store is None:
            raise ChecklistUnavailable("No checklist store configured")
        return self.store

    async def resolve(
        self,
        case_name: Optional[str] = None,
        checklist_id: Optional[str] = None,
        scenario_id: Optional[str] = None,
    ) -> EvidenceChecklist:
        if not (scenario_id or checklist_id or case_name):
            raise PipelineInputError("A case name, checklist id, or scenario id is required")

        if scenario_id:
            source = f"scenario '{scenario_id}'"
        elif checklist_id:
            source = f"checklist '{checklist_id}'"
        else:
            source = f"case '{case_name}'"

        try:
            if scenario_id:
                store = self._require_store()
                checklist = await asyncio.to_thread(store.fetch_scenario_snapshot, scenario_id)
            elif checklist_id:
                store = self._require_store()
                checklist = await asyncio.to_thread(store.fetch_checklist, checklist_id)
            else:
                checklist = self.registry.get(case_name)  # type: ignore[arg-type]
        except ChecklistUnavailable:
            raise
        except Exception as exc:
            raise ChecklistUnavailable(f"Failed to load checklist for {source}: {exc}") from exc

        if checklist is None:
            raise ChecklistUnavailable(f"No checklist found for {source}")
        LOGGER.info("Resolved checklist for %s with %d items", source, checklist.item_count)
        return checklist


__all__ = ["BASE_CASE", "ChecklistResolver", "StaticChecklistRegistry"]
