"""Stateful controller for incremental preliminary context disclosure."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from backforge_core.preliminary.application import narrow_process_tool
from backforge_core.preliminary.kinds import (
    KIND_SPECS,
    REFERENCED_KINDS,
    REFERENCING_KINDS,
    REQUEST_TYPE_TO_KIND,
)
from backforge_core.preliminary.validators import ID_VALIDATORS
from backforge_schemas.artifacts import Artifact
from backforge_schemas.conversation import ToolSpec
from backforge_schemas.pipeline import PipelineState
from backforge_schemas.preliminary import (
    COMPLETE_REQUEST_TYPE,
    PreliminaryIssue,
    PreliminaryItem,
    PreliminaryValidation,
)
from backforge_schemas.primitives import PreliminaryKind


@dataclass(slots=True)
class KindState:
    """Disclosure state of one kind within a generation task."""

    all: dict[str, PreliminaryItem]
    local: dict[str, PreliminaryItem] = field(default_factory=dict)
    exhausted: bool = False


class PreliminaryController:
    """Track what context the model has seen and what it may still request.

    One controller serves exactly one generation task. Concurrent tasks build
    their own controllers from the same universe.
    """

    def __init__(
        self,
        kinds: Iterable[PreliminaryKind],
        all_items: Mapping[PreliminaryKind, Iterable[Artifact]],
        local_items: Mapping[PreliminaryKind, Iterable[str]] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            kinds: Kinds enabled for this task.
            all_items: Universe of artifacts per kind.
            local_items: Identifiers already disclosed per kind.

        Raises:
            ValueError: If a pre-disclosed identifier is not in the universe.
        """
        self._kinds = [PreliminaryKind(kind) for kind in dict.fromkeys(kinds)]
        self._states: dict[PreliminaryKind, KindState] = {}
        for kind in self._kinds:
            spec = KIND_SPECS[kind]
            items = {
                spec.identify(artifact): PreliminaryItem(
                    id=spec.identify(artifact), artifact=artifact
                )
                for artifact in all_items.get(kind, ())
                if spec.selects(artifact)
            }
            self._states[kind] = KindState(all=items)
        for kind, ids in (local_items or {}).items():
            state = self._states.get(PreliminaryKind(kind))
            if state is None:
                continue
            for item_id in ids:
                if item_id not in state.all:
                    raise ValueError(f"{item_id} is not an available {kind} item")
                state.local[item_id] = state.all[item_id]
        self._complement()

    @classmethod
    def from_state(
        cls,
        kinds: Iterable[PreliminaryKind],
        state: PipelineState,
        local_items: Mapping[PreliminaryKind, Iterable[str]] | None = None,
    ) -> PreliminaryController:
        """Build a controller whose universe comes from pipeline snapshots.

        Args:
            kinds: Kinds enabled for this task.
            state: Pipeline state providing current and previous snapshots.
            local_items: Identifiers already disclosed per kind.

        Returns:
            PreliminaryController: Controller seeded from the state.
        """
        universe: dict[PreliminaryKind, list[Artifact]] = {}
        for kind in kinds:
            spec = KIND_SPECS[PreliminaryKind(kind)]
            snapshot = (
                state.previous_snapshot(spec.phase)
                if spec.previous
                else state.snapshot(spec.phase)
            )
            universe[spec.kind] = [] if snapshot is None else list(snapshot.artifacts)
        return cls(kinds, universe, local_items)

    @property
    def kinds(self) -> list[PreliminaryKind]:
        """Kinds enabled for this task, including exhausted ones."""
        return list(self._kinds)

    def get_kinds(self) -> list[PreliminaryKind]:
        """Return the kinds the model may still request.

        Exhausted kinds and kinds with nothing to offer are excluded.

        Returns:
            list[PreliminaryKind]: Requestable kinds in enabled order.
        """
        return [
            kind
            for kind in self._kinds
            if not self._states[kind].exhausted and self._states[kind].all
        ]

    def get_all(self, kind: PreliminaryKind) -> list[PreliminaryItem]:
        """Return the universe of a kind."""
        return list(self._state(kind).all.values())

    def get_local(self, kind: PreliminaryKind) -> list[PreliminaryItem]:
        """Return the items of a kind already disclosed."""
        return list(self._state(kind).local.values())

    def get_loaded(
        self, ids: Iterable[str]
    ) -> list[tuple[PreliminaryKind, PreliminaryItem]]:
        """Look up disclosed items by identifier across all kinds.

        Args:
            ids: Identifiers to look up.

        Returns:
            list[tuple[PreliminaryKind, PreliminaryItem]]: Matching items with
            their kind, in request order.
        """
        wanted = list(dict.fromkeys(ids))
        found: list[tuple[PreliminaryKind, PreliminaryItem]] = []
        for item_id in wanted:
            for kind in self._kinds:
                item = self._states[kind].local.get(item_id)
                if item is not None:
                    found.append((kind, item))
        return found

    def is_exhausted(self, kind: PreliminaryKind) -> bool:
        """Return whether a kind has been exhausted."""
        return self._state(kind).exhausted

    def kind_for_request_type(self, request_type: str) -> PreliminaryKind | None:
        """Map a ``get<Kind>`` discriminator back to an enabled kind."""
        kind = REQUEST_TYPE_TO_KIND.get(request_type)
        if kind is None or kind not in self._states:
            return None
        return kind

    def validate(
        self, kind: PreliminaryKind | str, ids: Iterable[str]
    ) -> PreliminaryValidation:
        """Validate a request and, when valid, disclose the requested items.

        Every identifier outside the universe yields one issue listing the
        full set of valid identifiers. Valid requests are merged into
        ``local``; the kind becomes exhausted when the request is empty or
        asks for nothing beyond what was already disclosed.

        Args:
            kind: Kind requested (enum value or ``get<Kind>`` type).
            ids: Requested identifiers.

        Returns:
            PreliminaryValidation: Accepted identifiers or issues.
        """
        requested = list(ids)
        resolved = self._resolve_kind(kind)
        if resolved is None or resolved not in self.get_kinds():
            return PreliminaryValidation(
                kind=resolved, issues=[self._unavailable_kind_issue(kind)]
            )

        spec = KIND_SPECS[resolved]
        state = self._states[resolved]
        issues = ID_VALIDATORS[resolved](requested, state.all, state.local)
        if issues:
            return PreliminaryValidation(kind=resolved, issues=issues)

        normalized = list(dict.fromkeys(spec.normalize(raw) for raw in requested))
        before = set(state.local)
        fresh = [item_id for item_id in normalized if item_id not in before]
        for item_id in fresh:
            state.local[item_id] = state.all[item_id]
        complemented = self._complement()
        if not fresh:
            state.exhausted = True
        return PreliminaryValidation(
            kind=resolved,
            accepted=normalized,
            loaded=[*fresh, *complemented],
            exhausted=state.exhausted,
        )

    def fix_application(self, tool: ToolSpec) -> ToolSpec:
        """Narrow the process tool to the currently requestable kinds.

        Call immediately before every model invocation. The result depends
        only on controller state, so repeated calls are identical.

        Args:
            tool: Process tool to narrow.

        Returns:
            ToolSpec: Narrowed copy of the tool.
        """
        return narrow_process_tool(
            tool,
            {kind: list(self._states[kind].all) for kind in self.get_kinds()},
        )

    def describe(self) -> str:
        """Render loaded and available items for the system context.

        Returns:
            str: Markdown block listing LOADED and AVAILABLE identifiers per
            kind, followed by the content of every loaded item.
        """
        sections: list[str] = []
        contents: list[str] = []
        for kind in self._kinds:
            spec = KIND_SPECS[kind]
            state = self._states[kind]
            loaded = list(state.local)
            available = [item_id for item_id in state.all if item_id not in state.local]
            lines = [
                f"## {spec.label.capitalize()}s",
                f"LOADED: {', '.join(loaded) if loaded else '(none)'}",
                f"AVAILABLE: {', '.join(available) if available else '(none)'}",
            ]
            if state.exhausted or not state.all:
                lines.append(f"Do not call {spec.request_type}; nothing more to load.")
            sections.append("\n".join(lines))
            for item in state.local.values():
                contents.append(
                    f"### {spec.label}: {item.id}\n{item.artifact.content}"
                )
        return "\n\n".join([*sections, *contents])

    def _state(self, kind: PreliminaryKind) -> KindState:
        state = self._states.get(PreliminaryKind(kind))
        if state is None:
            raise KeyError(f"kind {kind} is not enabled for this controller")
        return state

    def _resolve_kind(self, kind: PreliminaryKind | str) -> PreliminaryKind | None:
        if isinstance(kind, PreliminaryKind):
            return kind if kind in self._states else None
        if kind in REQUEST_TYPE_TO_KIND:
            return self.kind_for_request_type(kind)
        try:
            resolved = PreliminaryKind(kind)
        except ValueError:
            return None
        return resolved if resolved in self._states else None

    def _unavailable_kind_issue(self, kind: PreliminaryKind | str) -> PreliminaryIssue:
        requestable = [KIND_SPECS[item].request_type for item in self.get_kinds()]
        value = (
            KIND_SPECS[kind].request_type
            if isinstance(kind, PreliminaryKind)
            else str(kind)
        )
        return PreliminaryIssue(
            path="$input.request.type",
            expected=" | ".join([COMPLETE_REQUEST_TYPE, *requestable]),
            value=value,
            description=(
                f'Request type "{value}" is not available. Either request one of '
                "the other listed types or complete the task."
            ),
        )

    def _complement(self) -> list[str]:
        """Disclose items referenced by loaded operations and schemas.

        Returns:
            list[str]: Identifiers newly disclosed by complementing.
        """
        added: list[str] = []
        for previous in (False, True):
            pending = [
                item
                for kind in self._generation_kinds(REFERENCING_KINDS, previous)
                for item in self._states[kind].local.values()
            ]
            seen = {item.id for item in pending}
            while pending:
                item = pending.pop(0)
                for reference in item.artifact.references:
                    for kind in self._generation_kinds(REFERENCED_KINDS, previous):
                        state = self._states[kind]
                        target = state.all.get(reference)
                        if target is None:
                            continue
                        if reference not in state.local:
                            state.local[reference] = target
                            added.append(reference)
                        if (
                            KIND_SPECS[kind].current_kind
                            == PreliminaryKind.INTERFACE_SCHEMAS
                            and target.id not in seen
                        ):
                            seen.add(target.id)
                            pending.append(target)
                        break
        return added

    def _generation_kinds(
        self, current_kinds: Iterable[PreliminaryKind], previous: bool
    ) -> list[PreliminaryKind]:
        kinds: list[PreliminaryKind] = []
        for current in current_kinds:
            kind = (
                PreliminaryKind(f"previous_{current.value}") if previous else current
            )
            if kind in self._states:
                kinds.append(kind)
        return kinds

