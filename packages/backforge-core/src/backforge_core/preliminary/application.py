"""Function-calling schema for the preliminary ``process`` tool."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping

from backforge_core.ports.preliminary import (
    PreliminaryError,
    PreliminaryErrorCode,
    PreliminaryErrorInfo,
)
from backforge_core.preliminary.kinds import KIND_SPECS
from backforge_schemas.conversation import ToolSpec
from backforge_schemas.preliminary import (
    COMPLETE_REQUEST_TYPE,
    PROCESS_TOOL_NAME,
    CompletePayload,
)
from backforge_schemas.primitives import JsonValue, PreliminaryKind

COMPLETE_ARM_NAME = "Complete"
_DEFS_KEY = "$defs"
_REF_PREFIX = f"#/{_DEFS_KEY}/"


def build_process_tool(
    complete_model: type[CompletePayload],
    kinds: Iterable[PreliminaryKind],
    *,
    description: str = "",
) -> ToolSpec:
    """Build the ``process`` tool offering completion or context requests.

    The ``request`` property is a discriminated union keyed by ``type`` with one
    ``complete`` arm plus one ``get<Kind>`` arm per kind.

    Args:
        complete_model: Model describing the ``complete`` arm.
        kinds: Kinds to offer request arms for.
        description: Tool description shown to the model.

    Returns:
        ToolSpec: Unnarrowed tool; narrow it with ``fix_application``.
    """
    complete_schema = complete_model.model_json_schema(
        ref_template=_REF_PREFIX + "{model}"
    )
    defs: dict[str, JsonValue] = dict(complete_schema.pop(_DEFS_KEY, {}))
    defs[COMPLETE_ARM_NAME] = complete_schema
    one_of: list[JsonValue] = [{"$ref": _REF_PREFIX + COMPLETE_ARM_NAME}]
    mapping: dict[str, JsonValue] = {
        COMPLETE_REQUEST_TYPE: _REF_PREFIX + COMPLETE_ARM_NAME
    }
    for kind in kinds:
        spec = KIND_SPECS[PreliminaryKind(kind)]
        defs[spec.arm_name] = {
            "type": "object",
            "description": f"Load {spec.label}s into the conversation context.",
            "properties": {
                "type": {"type": "string", "const": spec.request_type},
                "ids": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": f"Identifiers of the {spec.label}s to load.",
                },
            },
            "required": ["type", "ids"],
        }
        one_of.append({"$ref": _REF_PREFIX + spec.arm_name})
        mapping[spec.request_type] = _REF_PREFIX + spec.arm_name
    parameters: dict[str, JsonValue] = {
        "type": "object",
        "properties": {
            "thinking": {
                "type": "string",
                "description": "Why you are requesting context or completing.",
            },
            "request": {
                "oneOf": one_of,
                "discriminator": {"propertyName": "type", "mapping": mapping},
            },
        },
        "required": ["thinking", "request"],
        _DEFS_KEY: defs,
    }
    return ToolSpec(
        name=PROCESS_TOOL_NAME, description=description, parameters=parameters
    )


def narrow_process_tool(
    tool: ToolSpec,
    requestable: Mapping[PreliminaryKind, list[str]],
) -> ToolSpec:
    """Restrict the request union to ``complete`` plus the requestable kinds.

    Args:
        tool: Tool built by ``build_process_tool`` (narrowed or not).
        requestable: Kinds still requestable, with the identifiers allowed.

    Returns:
        ToolSpec: A new, narrowed tool. The input is not mutated.

    Raises:
        PreliminaryError: If the tool does not have the process-tool shape.
    """
    parameters = copy.deepcopy(tool.parameters)
    try:
        request = parameters["properties"]["request"]  # type: ignore[index]
        defs = parameters[_DEFS_KEY]
        mapping = request["discriminator"]["mapping"]  # type: ignore[index]
        one_of = request["oneOf"]  # type: ignore[index]
    except (KeyError, TypeError) as exc:
        raise PreliminaryError(
            PreliminaryErrorInfo(
                code=PreliminaryErrorCode.INVALID_SCHEMA,
                message=f"Tool {tool.name} is not a preliminary process tool",
            )
        ) from exc
    if not isinstance(mapping, dict) or not isinstance(defs, dict):
        raise PreliminaryError(
            PreliminaryErrorInfo(
                code=PreliminaryErrorCode.INVALID_SCHEMA,
                message=f"Tool {tool.name} has a malformed request union",
            )
        )

    allowed = {
        KIND_SPECS[PreliminaryKind(kind)].request_type: ids
        for kind, ids in requestable.items()
    }
    kept_refs: set[str] = set()
    for request_type, ref in list(mapping.items()):
        arm_name = str(ref).removeprefix(_REF_PREFIX)
        if request_type == COMPLETE_REQUEST_TYPE:
            kept_refs.add(str(ref))
            continue
        if request_type not in allowed:
            del mapping[request_type]
            defs.pop(arm_name, None)
            continue
        kept_refs.add(str(ref))
        arm = defs.get(arm_name)
        if isinstance(arm, dict):
            arm["properties"]["ids"]["items"] = {  # type: ignore[index]
                "type": "string",
                "enum": list(allowed[request_type]),
            }
    request["oneOf"] = [  # type: ignore[index]
        entry
        for entry in one_of  # type: ignore[union-attr]
        if isinstance(entry, dict) and entry.get("$ref") in kept_refs
    ]
    return ToolSpec(name=tool.name, description=tool.description, parameters=parameters)
