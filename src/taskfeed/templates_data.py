# src/taskfeed/templates_data.py
"""Built-in incident template definitions and department directory.

This module is pure data; parsing and lookup live in templates.py.

Each template is a JSON-compatible dict matching the shape accepted by
``TemplateRegistry.parse_template()``. Dict order is registration order, which
decides ties in fuzzy name lookup, so do not reorder entries casually.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Department directory
# ---------------------------------------------------------------------------

MAINT = "1001"
SANI = "1002"
PROD = "1003"
QUAL = "1004"
SAFE = "1005"
HR = "1006"
WARE = "1008"
IT = "1009"

DEPARTMENT_NAMES: dict[str, str] = {
    "1000": "Projects / Offices",
    MAINT: "Maintenance",
    SANI: "Sanitation",
    PROD: "Production",
    QUAL: "Quality",
    SAFE: "Safety",
    HR: "HR",
    WARE: "Warehouse",
    IT: "IT / Technology",
}

_ALL_OPERATIONAL = [QUAL, SAFE, SANI, MAINT, PROD]


def department_name(code: str) -> str:
    """Display name for a department code; unknown codes display as themselves."""
    return DEPARTMENT_NAMES.get(code, code)


def _sf(form_id: str, form_type: str, route: str, required: bool = False) -> dict[str, Any]:
    return {"form_id": form_id, "form_type": form_type, "route": route, "required": required}


# Suggested forms reused across templates
_NCR = _sf("ncr", "NCR", "/quality/ncr")
_NCR_REQ = _sf("ncr", "NCR", "/quality/ncr", True)
_HOLD_RELEASE = _sf("holdrelease", "Hold & Release", "/quality/holdrelease")
_HOLD_RELEASE_REQ = _sf("holdrelease", "Hold & Release", "/quality/holdrelease", True)
_FM_INVESTIGATION = _sf("foreignmaterial", "Foreign Material Investigation", "/quality/foreignmaterial")
_FM_INVESTIGATION_REQ = _sf("foreignmaterial", "Foreign Material Investigation", "/quality/foreignmaterial", True)
_DEVIATION = _sf("deviation", "Deviation Report", "/quality/deviation")
_LINE_CHECK = _sf("productionlinecheck", "Production Line Check", "/quality/productionlinecheck")
_EMERGENCY_WO = _sf("emergencywo", "Emergency Work Order", "/cmms/work-orders/new")
_EMERGENCY_WO_REQ = _sf("emergencywo", "Emergency Work Order", "/cmms/work-orders/new", True)
_EQUIPMENT_CLEANING = _sf("equipmentcleaning", "Equipment Cleaning", "/sanitation/equipmentcleaning")
_SPILL_CLEANUP_REQ = _sf("spillcleanup", "Spill Cleanup", "/sanitation/spillcleanup", True)
_HAZARD_ID = _sf("hazardid", "Hazard Identification", "/safety/hazardid")
_CONDITION_MONITORING = _sf("conditionmonitoring", "Condition Monitoring", "/cmms/condition")

# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

BUILT_IN_TEMPLATES: dict[str, dict[str, Any]] = {
    "foreign_material": {
        "id": "foreign_material",
        "name": "Foreign Material",
        "description": "Glass, plastic, metal, or other foreign material found in product or production area",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": _ALL_OPERATIONAL,
        "photo_required": True,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [
                _FM_INVESTIGATION_REQ,
                _NCR_REQ,
                _HOLD_RELEASE_REQ,
                _sf("roomhygienelog", "Room Hygiene Log", "/quality/roomhygienelog"),
            ],
            SAFE: [_HAZARD_ID, _sf("incidentreport", "Incident Report", "/safety/incidentreport")],
            SANI: [_sf("spillcleanup", "Spill Cleanup", "/sanitation/spillcleanup"), _EQUIPMENT_CLEANING],
            MAINT: [_EMERGENCY_WO_REQ],
            PROD: [_LINE_CHECK],
        },
    },
    "broken_glove": {
        "id": "broken_glove",
        "name": "Broken Glove",
        "description": "Glove fragment found — potential foreign material contamination",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": _ALL_OPERATIONAL,
        "photo_required": True,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [_FM_INVESTIGATION_REQ, _NCR_REQ, _HOLD_RELEASE_REQ, _DEVIATION],
            SAFE: [_HAZARD_ID],
            SANI: [_EQUIPMENT_CLEANING],
            MAINT: [_CONDITION_MONITORING],
            PROD: [_LINE_CHECK],
        },
    },
    "employee_injury": {
        "id": "employee_injury",
        "name": "Employee Injury",
        "description": "Employee injured on the job — blood or bodily fluid contamination risk",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": _ALL_OPERATIONAL,
        "photo_required": False,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [_FM_INVESTIGATION, _NCR, _HOLD_RELEASE],
            SAFE: [
                _sf("accidentinvestigation", "Accident Investigation", "/safety/accidentinvestigation", True),
                _sf("firstaid", "First Aid Log", "/safety/firstaid", True),
                _sf("incidentreport", "Incident Report", "/safety/incidentreport", True),
            ],
            SANI: [_SPILL_CLEANUP_REQ, _EQUIPMENT_CLEANING],
            MAINT: [_EMERGENCY_WO],
            PROD: [_LINE_CHECK],
        },
    },
    "chemical_spill": {
        "id": "chemical_spill",
        "name": "Chemical Spill",
        "description": "Chemical spill in production or storage area",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": _ALL_OPERATIONAL,
        "photo_required": True,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [_NCR, _HOLD_RELEASE, _DEVIATION],
            SAFE: [
                _sf("incidentreport", "Incident Report", "/safety/incidentreport", True),
                _sf("hazardid", "Hazard Identification", "/safety/hazardid", True),
            ],
            SANI: [
                _SPILL_CLEANUP_REQ,
                _sf("chemicals", "Chemical Usage Log", "/sanitation/chemicals", True),
                _EQUIPMENT_CLEANING,
            ],
            MAINT: [_EMERGENCY_WO],
            PROD: [],
        },
    },
    "metal_detector_reject": {
        "id": "metal_detector_reject",
        "name": "Metal Detector Reject",
        "description": "Product rejected by metal detector — confirmed or suspected contamination",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": [QUAL, MAINT, PROD],
        "photo_required": True,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [
                _sf("metaldetectorlog", "Metal Detector Log", "/quality/metaldetectorlog", True),
                _FM_INVESTIGATION_REQ,
                _NCR_REQ,
                _HOLD_RELEASE,
            ],
            MAINT: [_EMERGENCY_WO, _CONDITION_MONITORING],
            PROD: [_LINE_CHECK],
        },
    },
    "temperature_deviation": {
        "id": "temperature_deviation",
        "name": "Temperature Deviation",
        "description": "Temperature out of spec in cooler, freezer, or cooking process",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": [QUAL, MAINT, PROD],
        "photo_required": False,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [
                _sf("temperaturelog", "Temperature Log", "/quality/temperaturelog", True),
                _sf("ccplog", "CCP Monitoring Log", "/quality/ccplog", True),
                _sf("deviation", "Deviation Report", "/quality/deviation", True),
                _HOLD_RELEASE,
            ],
            MAINT: [_EMERGENCY_WO_REQ],
            PROD: [_LINE_CHECK],
        },
    },
    "pest_sighting": {
        "id": "pest_sighting",
        "name": "Pest Sighting",
        "description": "Pest or evidence of pest activity found in facility",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": [QUAL, SANI, MAINT],
        "photo_required": True,
        "is_production_hold": False,
        "department_forms": {
            QUAL: [_NCR, _sf("roomhygienelog", "Room Hygiene Log", "/quality/roomhygienelog")],
            SANI: [_sf("dailytasks", "Sanitation Daily Tasks", "/sanitation/dailytasks", True)],
            MAINT: [_EMERGENCY_WO],
        },
    },
    "allergen_changeover": {
        "id": "allergen_changeover",
        "name": "Allergen Changeover",
        "description": "Line changeover between allergen-containing products",
        "button_type": "add_task",
        "triggering_department": "any",
        "assigned_departments": [QUAL, SANI, PROD],
        "photo_required": False,
        "is_production_hold": True,
        "department_forms": {
            QUAL: [
                _sf("allergenchangeover", "Allergen Changeover", "/quality/allergenchangeover", True),
                _sf("atpswab", "ATP Swab Log", "/quality/atpswab"),
                _sf("environmentalswab", "Environmental Swab Log", "/quality/environmentalswab"),
            ],
            SANI: [
                _sf("equipmentcleaning", "Equipment Cleaning", "/sanitation/equipmentcleaning", True),
                _sf("preopverification", "Pre-Op Verification", "/sanitation/preopverification", True),
            ],
            PROD: [_LINE_CHECK],
        },
    },
    "equipment_breakdown": {
        "id": "equipment_breakdown",
        "name": "Equipment Breakdown",
        "description": "Equipment malfunction or failure affecting production",
        "button_type": "report_issue",
        "triggering_department": "any",
        "assigned_departments": [MAINT, PROD, QUAL],
        "photo_required": True,
        "is_production_hold": True,
        "department_forms": {
            MAINT: [_EMERGENCY_WO_REQ, _sf("downtimereport", "Downtime Report", "/cmms/downtime", True)],
            PROD: [_LINE_CHECK],
            QUAL: [_DEVIATION],
        },
    },
    "customer_complaint": {
        "id": "customer_complaint",
        "name": "Customer Complaint",
        "description": "Customer reported quality issue with product",
        "button_type": "report_issue",
        "triggering_department": QUAL,
        "assigned_departments": [QUAL],
        "photo_required": False,
        "is_production_hold": False,
        "department_forms": {
            QUAL: [
                _sf("customercomplaint", "Customer Complaint", "/quality/customercomplaint", True),
                _NCR,
                _sf("capa", "CAPA", "/quality/capa"),
                _sf("rootcause", "Root Cause Analysis", "/quality/rootcause"),
            ],
        },
    },
}
