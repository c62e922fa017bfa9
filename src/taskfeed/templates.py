# src/taskfeed/templates.py
"""Incident template system -- loading, lookup, and validation.

Provides TemplateRegistry for the catalog of incident templates. A template
names the departments an incident fans out to, the forms each department is
expected to file, and whether the incident holds production.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from taskfeed.db_base import VALID_PRIORITIES
from taskfeed.errors import NotFoundError
from taskfeed.templates_data import department_name

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
_VALID_BUTTON_TYPES: frozenset[str] = frozenset({"report_issue", "add_task", "request_purchase"})
_VALID_RULE_ACTIONS: frozenset[str] = frozenset({"create_work_order", "alert_personnel", "notify", "store_only"})
_VALID_RULE_OPERATORS: frozenset[str] = frozenset({"equals", "not_equals", "contains"})

MANUAL_TEMPLATE_ID = "manual"

ButtonType = Literal["report_issue", "add_task", "request_purchase"]
RuleAction = Literal["create_work_order", "alert_personnel", "notify", "store_only"]
RuleOperator = Literal["equals", "not_equals", "contains"]

# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------
# Templates are configuration data; posts copy them into a snapshot at
# creation so later edits never reach existing incidents.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuggestedForm:
    """A form a department is expected (or merely invited) to file."""

    form_id: str
    form_type: str
    route: str = ""
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"form_id": self.form_id, "form_type": self.form_type, "route": self.route, "required": self.required}


@dataclass(frozen=True)
class WorkflowRule:
    """An action run when a post is created, optionally gated on one form_data field.

    Without ``condition_field`` the rule always fires. ``contains`` compares
    against the field's string form; a missing field contains nothing.
    """

    action: RuleAction
    condition_field: str | None = None
    operator: RuleOperator = "equals"
    value: Any = None
    work_order_priority: str = "medium"
    alert_personnel: tuple[str, ...] = ()

    def matches(self, form_data: dict[str, Any]) -> bool:
        if self.condition_field is None:
            return True
        actual = form_data.get(self.condition_field)
        if self.operator == "equals":
            return bool(actual == self.value)
        if self.operator == "not_equals":
            return bool(actual != self.value)
        return actual is not None and str(self.value) in str(actual)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"action": self.action}
        if self.condition_field is not None:
            d["condition"] = {"field": self.condition_field, "operator": self.operator, "value": self.value}
        if self.action == "create_work_order":
            d["work_order_priority"] = self.work_order_priority
        if self.alert_personnel:
            d["alert_personnel"] = list(self.alert_personnel)
        return d


@dataclass(frozen=True)
class IncidentTemplate:
    """Definition of an incident kind and its department fan-out."""

    id: str
    name: str
    description: str = ""
    button_type: ButtonType = "report_issue"
    triggering_department: str = "any"
    assigned_departments: tuple[str, ...] = ()
    is_production_hold: bool = False
    photo_required: bool = False
    department_forms: dict[str, tuple[SuggestedForm, ...]] = field(default_factory=dict)
    workflow_rules: tuple[WorkflowRule, ...] = ()

    def __post_init__(self) -> None:
        if not _ID_PATTERN.match(self.id):
            msg = f"Invalid template id '{self.id}': must match ^[a-z][a-z0-9_]{{0,63}}$"
            raise ValueError(msg)
        if self.button_type not in _VALID_BUTTON_TYPES:
            allowed = sorted(_VALID_BUTTON_TYPES)
            msg = f"Invalid button type '{self.button_type}' for template '{self.id}': must be one of {allowed}"
            raise ValueError(msg)

    def forms_for(self, department_code: str) -> tuple[SuggestedForm, ...]:
        return self.department_forms.get(department_code, ())

    def requires_signoff(self, department_code: str) -> bool:
        """A department's task needs a second actor iff any of its suggested forms is required."""
        return any(f.required for f in self.forms_for(department_code))

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dict accepted by ``TemplateRegistry.parse_template``."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "button_type": self.button_type,
            "triggering_department": self.triggering_department,
            "assigned_departments": list(self.assigned_departments),
            "is_production_hold": self.is_production_hold,
            "photo_required": self.photo_required,
            "department_forms": {
                code: [f.to_dict() for f in forms] for code, forms in self.department_forms.items()
            },
            "workflow_rules": [r.to_dict() for r in self.workflow_rules],
        }

    def describe_departments(self) -> list[dict[str, Any]]:
        """Per-department summary used by ``template-info``."""
        return [
            {
                "department_code": code,
                "department_name": department_name(code),
                "requires_signoff": self.requires_signoff(code),
                "forms": [f.to_dict() for f in self.forms_for(code)],
            }
            for code in self.assigned_departments
        ]


# ---------------------------------------------------------------------------
# TemplateRegistry
# ---------------------------------------------------------------------------


class TemplateRegistry:
    """Ordered catalog of incident templates.

    Registration order is preserved and decides ties in ``lookup``. Overrides
    loaded from the project directory replace a built-in in place.
    """

    MAX_DEPARTMENTS = 32
    MAX_FORMS_PER_DEPARTMENT = 32
    MAX_RULES = 16

    def __init__(self) -> None:
        self._templates: dict[str, IncidentTemplate] = {}
        self._loaded = False

    # -- Parsing (from dict/JSON) -------------------------------------------

    @staticmethod
    def parse_template(raw: dict[str, Any]) -> IncidentTemplate:
        """Parse an incident template from a JSON-compatible dict.

        An empty department list is accepted here; ``create_post`` rejects it.

        Raises:
            ValueError: If fields are missing, mistyped, duplicated, or exceed size limits.
        """
        if not isinstance(raw, dict):
            msg = f"Template must be a JSON object, got {type(raw).__name__}"
            raise ValueError(msg)
        template_id = raw.get("id")
        if not isinstance(template_id, str) or not _ID_PATTERN.match(template_id):
            msg = f"Invalid template id '{template_id}': must match ^[a-z][a-z0-9_]{{0,63}}$"
            raise ValueError(msg)
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            msg = f"Template '{template_id}': 'name' must be a non-empty string"
            raise ValueError(msg)

        raw_departments = raw.get("assigned_departments", [])
        if not isinstance(raw_departments, list):
            msg = f"Template '{template_id}': 'assigned_departments' must be a list, got {type(raw_departments).__name__}"
            raise ValueError(msg)
        if len(raw_departments) > TemplateRegistry.MAX_DEPARTMENTS:
            msg = f"Template '{template_id}' has {len(raw_departments)} departments (max {TemplateRegistry.MAX_DEPARTMENTS})"
            raise ValueError(msg)
        seen: set[str] = set()
        for code in raw_departments:
            if not isinstance(code, str) or not code:
                msg = f"Template '{template_id}': department codes must be non-empty strings"
                raise ValueError(msg)
            if code in seen:
                msg = f"Template '{template_id}': duplicate department '{code}'"
                raise ValueError(msg)
            seen.add(code)

        raw_forms = raw.get("department_forms", {})
        if raw_forms is None:
            raw_forms = {}
        if not isinstance(raw_forms, dict):
            msg = f"Template '{template_id}': 'department_forms' must be an object, got {type(raw_forms).__name__}"
            raise ValueError(msg)
        department_forms: dict[str, tuple[SuggestedForm, ...]] = {}
        for code, forms in raw_forms.items():
            if not isinstance(forms, list):
                msg = f"Template '{template_id}': forms for department '{code}' must be a list"
                raise ValueError(msg)
            if len(forms) > TemplateRegistry.MAX_FORMS_PER_DEPARTMENT:
                msg = f"Template '{template_id}': department '{code}' has too many forms"
                raise ValueError(msg)
            parsed: list[SuggestedForm] = []
            for i, f in enumerate(forms):
                if not isinstance(f, dict) or not isinstance(f.get("form_id"), str):
                    msg = f"Template '{template_id}': form {i} for department '{code}' must be a dict with 'form_id'"
                    raise ValueError(msg)
                required = f.get("required", False)
                if not isinstance(required, bool):
                    msg = f"Template '{template_id}': form '{f['form_id']}' has non-boolean 'required'"
                    raise ValueError(msg)
                parsed.append(
                    SuggestedForm(
                        form_id=f["form_id"],
                        form_type=str(f.get("form_type", f["form_id"])),
                        route=str(f.get("route", "")),
                        required=required,
                    )
                )
            department_forms[code] = tuple(parsed)

        for flag in ("is_production_hold", "photo_required"):
            if not isinstance(raw.get(flag, False), bool):
                msg = f"Template '{template_id}': '{flag}' must be a boolean"
                raise ValueError(msg)

        raw_rules = raw.get("workflow_rules") or []
        if not isinstance(raw_rules, list):
            msg = f"Template '{template_id}': 'workflow_rules' must be a list, got {type(raw_rules).__name__}"
            raise ValueError(msg)
        if len(raw_rules) > TemplateRegistry.MAX_RULES:
            msg = f"Template '{template_id}' has {len(raw_rules)} workflow rules (max {TemplateRegistry.MAX_RULES})"
            raise ValueError(msg)
        rules = tuple(TemplateRegistry._parse_rule(template_id, i, r) for i, r in enumerate(raw_rules))

        logger.debug("Parsing incident template: %s", template_id)
        return IncidentTemplate(
            id=template_id,
            name=name,
            description=str(raw.get("description", "")),
            button_type=raw.get("button_type", "report_issue"),
            triggering_department=str(raw.get("triggering_department", "any")),
            assigned_departments=tuple(raw_departments),
            is_production_hold=raw.get("is_production_hold", False),
            photo_required=raw.get("photo_required", False),
            department_forms=department_forms,
            workflow_rules=rules,
        )

    @staticmethod
    def _parse_rule(template_id: str, index: int, raw: Any) -> WorkflowRule:
        if not isinstance(raw, dict):
            msg = f"Template '{template_id}': workflow rule {index} must be an object"
            raise ValueError(msg)
        action = raw.get("action")
        if action not in _VALID_RULE_ACTIONS:
            allowed = sorted(_VALID_RULE_ACTIONS)
            msg = f"Template '{template_id}': rule {index} has unknown action '{action}', must be one of {allowed}"
            raise ValueError(msg)

        condition = raw.get("condition")
        condition_field: str | None = None
        operator = "equals"
        value: Any = None
        if condition is not None:
            if not isinstance(condition, dict) or not isinstance(condition.get("field"), str) or not condition["field"]:
                msg = f"Template '{template_id}': rule {index} condition must be an object with a 'field'"
                raise ValueError(msg)
            operator = condition.get("operator", "equals")
            if operator not in _VALID_RULE_OPERATORS:
                msg = f"Template '{template_id}': rule {index} has unknown operator '{operator}'"
                raise ValueError(msg)
            condition_field = condition["field"]
            value = condition.get("value")

        priority = raw.get("work_order_priority", "medium")
        if priority not in VALID_PRIORITIES:
            msg = f"Template '{template_id}': rule {index} has invalid work_order_priority '{priority}'"
            raise ValueError(msg)
        personnel = raw.get("alert_personnel", [])
        if not isinstance(personnel, list) or not all(isinstance(p, str) for p in personnel):
            msg = f"Template '{template_id}': rule {index} 'alert_personnel' must be a list of strings"
            raise ValueError(msg)

        return WorkflowRule(
            action=action,
            condition_field=condition_field,
            operator=operator,
            value=value,
            work_order_priority=priority,
            alert_personnel=tuple(personnel),
        )

    # -- Registration (internal) --------------------------------------------

    def _register(self, tpl: IncidentTemplate) -> None:
        logger.debug("Registering template: %s (%d departments)", tpl.id, len(tpl.assigned_departments))
        self._templates[tpl.id] = tpl

    # -- Queries ------------------------------------------------------------

    def get(self, template_id: str) -> IncidentTemplate | None:
        """Get a template by id."""
        return self._templates.get(template_id)

    def list_templates(self) -> list[IncidentTemplate]:
        """All templates in registration order."""
        return list(self._templates.values())

    def lookup(self, name: str) -> IncidentTemplate:
        """Resolve a free-text template name.

        Exact name (or id) wins; otherwise the first template in registration
        order whose name contains the query, or is contained in it,
        case-insensitively.

        Raises:
            NotFoundError: If nothing matches.
        """
        query = name.strip()
        if query:
            for tpl in self._templates.values():
                if tpl.name == query or tpl.id == query:
                    return tpl
            folded = query.casefold()
            for tpl in self._templates.values():
                tpl_name = tpl.name.casefold()
                if folded in tpl_name or tpl_name in folded:
                    return tpl
        raise NotFoundError(f"No incident template matches '{name}'", template=name)

    # -- Loading ------------------------------------------------------------

    def load(self, taskfeed_dir: Path | None = None) -> None:
        """Load templates from both layers.

        Layer 1: Built-in templates from templates_data.BUILT_IN_TEMPLATES
        Layer 2: Project-local templates from .taskfeed/templates/*.json

        Idempotent: second call is a no-op.
        """
        if self._loaded:
            return

        from taskfeed.templates_data import BUILT_IN_TEMPLATES

        for template_id, raw in BUILT_IN_TEMPLATES.items():
            try:
                self._register(self.parse_template(raw))
            except ValueError as exc:
                logger.warning("Skipping invalid built-in template %s: %s", template_id, exc)

        if taskfeed_dir is not None:
            templates_dir = taskfeed_dir / "templates"
            if templates_dir.is_dir():
                for tpl_file in sorted(templates_dir.glob("*.json")):
                    try:
                        tpl = self.parse_template(json.loads(tpl_file.read_text()))
                    except (ValueError, OSError) as exc:
                        logger.warning("Skipping invalid template file %s: %s", tpl_file.name, exc)
                        continue
                    overrides = tpl.id in self._templates
                    self._register(tpl)
                    logger.info("Loaded project-local template%s: %s", " override" if overrides else "", tpl.id)

        self._loaded = True
        logger.info("Template loading complete: %d templates", len(self._templates))
