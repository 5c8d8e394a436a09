from __future__ import annotations

import logging
import re
import types
from enum import Enum
from typing import Any, Literal, Protocol, Union, get_args, get_origin

from pydantic import BaseModel

from taskflow_api.contracts import (
    FALLBACK_PARAMETERS,
    OPERATION_EXTRAS,
    OPERATION_FIELDS,
    SERVICE_CONTRACTS,
    OperationFields,
    describe_field,
)
from taskflow_api.schemas import ActionType, InputExtraction, ParameterDetail

logger = logging.getLogger(__name__)

ESSENTIAL_INPUTS: tuple[str, ...] = ("taskId", "roleId", "projectPath")
MAX_OPTIONAL_PER_ACTION = 2

DEFAULT_ACTION_INPUTS: dict[ActionType, tuple[str, ...]] = {
    ActionType.VALIDATION: ("validationTarget", "validationCriteria"),
    ActionType.ANALYSIS: ("analysisScope", "analysisFocus"),
    ActionType.DECISION: ("decisionCriteria", "options"),
    ActionType.FILE_OPERATION: ("filePath", "fileOperation"),
    ActionType.COMMAND: ("command", "workingDirectory"),
    ActionType.DELEGATION: ("toRole", "message"),
    ActionType.REPORTING: ("reportType",),
}

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")


class ActionLike(Protocol):
    action_type: ActionType
    action_data: dict[str, Any]


class RequiredInputExtractor:
    def __init__(
        self,
        *,
        contracts: dict[str, type[BaseModel]] | None = None,
        operation_fields: dict[str, dict[str, OperationFields]] | None = None,
        operation_extras: dict[tuple[str, str], tuple[str, ...]] | None = None,
    ) -> None:
        self._contracts = SERVICE_CONTRACTS if contracts is None else contracts
        self._operation_fields = OPERATION_FIELDS if operation_fields is None else operation_fields
        self._operation_extras = OPERATION_EXTRAS if operation_extras is None else operation_extras

    def extract(self, service_name: str, operation: str | None = None) -> InputExtraction:
        contract = self._contracts.get(service_name)
        mapped = self._mapped_fields(service_name, operation)

        if contract is None:
            required = list(mapped.required) if mapped is not None else list(FALLBACK_PARAMETERS)
            logger.warning("no contract declared for %s, using fallback parameters", service_name)
            return InputExtraction(
                service_name=service_name,
                operation=operation,
                required=required,
                details={name: self._mapped_detail(name, "fallback-parameter") for name in required},
                schema_found=False,
                extraction_method="fallback-parameters",
            )

        try:
            declared = self._introspect(contract)
        except Exception:
            logger.warning("introspection of %s failed, using operation mapping", service_name, exc_info=True)
            required = _unique([*(mapped.required if mapped else ()), *self._extras(service_name, operation)])
            return InputExtraction(
                service_name=service_name,
                operation=operation,
                required=required,
                details={name: self._mapped_detail(name, "mapped-parameter") for name in required},
                schema_found=True,
                extraction_method="operation-mapping-fallback",
            )

        if mapped is not None:
            required_names = list(mapped.required)
            optional_names = [name for name in mapped.optional if name not in required_names]
        else:
            required_names = [name for name, detail in declared.items() if detail.required]
            optional_names = [name for name, detail in declared.items() if not detail.required]

        required_names = _unique([*required_names, *self._extras(service_name, operation)])
        optional_names = [name for name in optional_names if name not in required_names]

        details: dict[str, ParameterDetail] = {}
        for name in required_names:
            detail = declared.get(name)
            details[name] = (
                detail.model_copy(update={"required": True}) if detail else self._mapped_detail(name, "mapped-parameter")
            )
        for name in optional_names:
            detail = declared.get(name)
            details[name] = (
                detail.model_copy(update={"required": False})
                if detail
                else self._mapped_detail(name, "mapped-parameter", required=False)
            )

        return InputExtraction(
            service_name=service_name,
            operation=operation,
            required=required_names,
            optional=optional_names,
            details=details,
            schema_found=True,
            extraction_method="contract-introspection",
        )

    def extract_for_actions(self, actions: list[ActionLike]) -> list[str]:
        inputs: dict[str, None] = {}

        for action in actions:
            data = action.action_data or {}
            service_name = data.get("service_name") or data.get("serviceName")
            if action.action_type == ActionType.SERVICE_CALL and service_name:
                extraction = self.extract(str(service_name), data.get("operation"))
                for name in extraction.required:
                    inputs[name] = None
                for name in extraction.optional[:MAX_OPTIONAL_PER_ACTION]:
                    inputs[name] = None
            else:
                for name in DEFAULT_ACTION_INPUTS.get(action.action_type, ()):
                    inputs[name] = None

            for name in find_placeholders(data):
                inputs[name] = None

        for name in ESSENTIAL_INPUTS:
            inputs[name] = None
        return list(inputs)

    def _mapped_fields(self, service_name: str, operation: str | None) -> OperationFields | None:
        if not operation:
            return None
        return self._operation_fields.get(service_name, {}).get(operation)

    def _extras(self, service_name: str, operation: str | None) -> tuple[str, ...]:
        if not operation:
            return ()
        return self._operation_extras.get((service_name, operation), ())

    @staticmethod
    def _introspect(contract: type[BaseModel]) -> dict[str, ParameterDetail]:
        declared: dict[str, ParameterDetail] = {}
        for field_name, info in contract.model_fields.items():
            name = info.alias or field_name
            type_name = _type_name(info.annotation)
            declared[name] = ParameterDetail(
                type=type_name,
                description=describe_field(name, type_name),
                required=info.is_required(),
                default=None if info.is_required() else info.get_default(call_default_factory=True),
            )
        return declared

    @staticmethod
    def _mapped_detail(name: str, type_name: str, *, required: bool = True) -> ParameterDetail:
        return ParameterDetail(type=type_name, description=describe_field(name), required=required)


def find_placeholders(value: Any) -> list[str]:
    """Collect ``{{name}}`` markers from a nested action payload in order."""
    found: dict[str, None] = {}
    if isinstance(value, str):
        for match in _PLACEHOLDER_RE.finditer(value):
            found[match.group(1)] = None
    elif isinstance(value, dict):
        for item in value.values():
            for name in find_placeholders(item):
                found[name] = None
    elif isinstance(value, (list, tuple)):
        for item in value:
            for name in find_placeholders(item):
                found[name] = None
    return list(found)


def _type_name(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return _type_name(members[0])
        return "union"
    if origin is Literal:
        return "enum"
    if origin in (list, tuple, set):
        return "array"
    if origin is dict:
        return "object"
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return "enum"
        if issubclass(annotation, BaseModel) or annotation is dict:
            return "object"
        if issubclass(annotation, bool):
            return "boolean"
        if issubclass(annotation, (int, float)):
            return "number"
        if issubclass(annotation, str):
            return "string"
    return "any"


def _unique(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))
