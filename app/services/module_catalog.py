from dataclasses import dataclass

from app.models.lifecycle import ModuleKind


@dataclass(frozen=True)
class ModuleDefinition:
    name: str
    kinds: frozenset
    order: int
    required: bool = False


_CORE = frozenset({ModuleKind.fra, ModuleKind.fsd, ModuleKind.dsear})

MODULE_CATALOG: dict[str, ModuleDefinition] = {
    # Shared assessment modules
    "A1_DOC_CONTROL": ModuleDefinition(
        "A1 - Document Control & Governance", _CORE, 1, required=True
    ),
    "A2_BUILDING_PROFILE": ModuleDefinition("A2 - Building Profile", _CORE, 2),
    "A3_PERSONS_AT_RISK": ModuleDefinition(
        "A3 - Occupancy & Persons at Risk", _CORE, 3
    ),
    "A4_MANAGEMENT_CONTROLS": ModuleDefinition(
        "A4 - Management Systems", frozenset({ModuleKind.fra}), 4
    ),
    "A5_EMERGENCY_ARRANGEMENTS": ModuleDefinition(
        "A5 - Emergency Arrangements", frozenset({ModuleKind.fra}), 5
    ),
    "A7_REVIEW_ASSURANCE": ModuleDefinition(
        "A7 - Review & Assurance", frozenset({ModuleKind.fra}), 7
    ),
    # Fire risk assessment
    "FRA_1_HAZARDS": ModuleDefinition(
        "FRA-1 - Hazards & Ignition Sources", frozenset({ModuleKind.fra}), 10
    ),
    "FRA_2_ESCAPE_ASIS": ModuleDefinition(
        "FRA-2 - Means of Escape (As-Is)", frozenset({ModuleKind.fra}), 11
    ),
    "FRA_3_PROTECTION_ASIS": ModuleDefinition(
        "FRA-3 - Fire Protection (As-Is)", frozenset({ModuleKind.fra}), 12
    ),
    "FRA_5_EXTERNAL_FIRE_SPREAD": ModuleDefinition(
        "FRA-5 - External Fire Spread", frozenset({ModuleKind.fra}), 13
    ),
    "FRA_4_SIGNIFICANT_FINDINGS": ModuleDefinition(
        "FRA-4 - Significant Findings (Summary)",
        frozenset({ModuleKind.fra}),
        14,
        required=True,
    ),
    # Fire strategy document
    "FSD_1_REG_BASIS": ModuleDefinition(
        "FSD-1 - Regulatory Basis", frozenset({ModuleKind.fsd}), 20, required=True
    ),
    "FSD_2_EVAC_STRATEGY": ModuleDefinition(
        "FSD-2 - Evacuation Strategy", frozenset({ModuleKind.fsd}), 21
    ),
    "FSD_3_ESCAPE_DESIGN": ModuleDefinition(
        "FSD-3 - Escape Design", frozenset({ModuleKind.fsd}), 22
    ),
    "FSD_4_PASSIVE_PROTECTION": ModuleDefinition(
        "FSD-4 - Passive Fire Protection", frozenset({ModuleKind.fsd}), 23
    ),
    "FSD_5_ACTIVE_SYSTEMS": ModuleDefinition(
        "FSD-5 - Active Fire Systems", frozenset({ModuleKind.fsd}), 24
    ),
    "FSD_6_FRS_ACCESS": ModuleDefinition(
        "FSD-6 - Fire & Rescue Service Access", frozenset({ModuleKind.fsd}), 25
    ),
    "FSD_7_DRAWINGS": ModuleDefinition(
        "FSD-7 - Drawings & Schedules", frozenset({ModuleKind.fsd}), 26
    ),
    "FSD_8_SMOKE_CONTROL": ModuleDefinition(
        "FSD-8 - Smoke Control", frozenset({ModuleKind.fsd}), 27
    ),
    "FSD_9_CONSTRUCTION_PHASE": ModuleDefinition(
        "FSD-9 - Construction Phase", frozenset({ModuleKind.fsd}), 28
    ),
    # Explosive atmospheres
    "DSEAR_1_DANGEROUS_SUBSTANCES": ModuleDefinition(
        "DSEAR-1 - Dangerous Substances Register",
        frozenset({ModuleKind.dsear}),
        30,
        required=True,
    ),
    "DSEAR_2_PROCESS_RELEASES": ModuleDefinition(
        "DSEAR-2 - Process & Release Assessment", frozenset({ModuleKind.dsear}), 31
    ),
    "DSEAR_3_HAZARDOUS_AREA_CLASSIFICATION": ModuleDefinition(
        "DSEAR-3 - Hazardous Area Classification", frozenset({ModuleKind.dsear}), 32
    ),
    "DSEAR_4_IGNITION_SOURCES": ModuleDefinition(
        "DSEAR-4 - Ignition Source Control", frozenset({ModuleKind.dsear}), 33
    ),
    "DSEAR_5_EXPLOSION_PROTECTION": ModuleDefinition(
        "DSEAR-5 - Explosion Protection & Mitigation", frozenset({ModuleKind.dsear}), 34
    ),
    "DSEAR_6_RISK_ASSESSMENT": ModuleDefinition(
        "DSEAR-6 - Risk Assessment Table", frozenset({ModuleKind.dsear}), 35
    ),
    "DSEAR_10_HIERARCHY_OF_CONTROL": ModuleDefinition(
        "DSEAR-10 - Hierarchy of Control", frozenset({ModuleKind.dsear}), 36
    ),
    "DSEAR_11_EXPLOSION_EMERGENCY_RESPONSE": ModuleDefinition(
        "DSEAR-11 - Explosion Emergency Response", frozenset({ModuleKind.dsear}), 37
    ),
    # Risk engineering survey
    "RE_01_DOC_CONTROL": ModuleDefinition(
        "RE-01 - Document Control", frozenset({ModuleKind.re}), 40, required=True
    ),
    "RE_02_CONSTRUCTION": ModuleDefinition(
        "RE-02 - Construction", frozenset({ModuleKind.re}), 41
    ),
    "RE_03_OCCUPANCY": ModuleDefinition(
        "RE-03 - Occupancy", frozenset({ModuleKind.re}), 42
    ),
    "RE_06_FIRE_PROTECTION": ModuleDefinition(
        "RE-06 - Fire Protection", frozenset({ModuleKind.re}), 43
    ),
    "RE_07_NATURAL_HAZARDS": ModuleDefinition(
        "RE-07 - Natural Hazards", frozenset({ModuleKind.re}), 44
    ),
    "RE_08_UTILITIES": ModuleDefinition(
        "RE-08 - Utilities", frozenset({ModuleKind.re}), 45
    ),
    "RE_09_MANAGEMENT": ModuleDefinition(
        "RE-09 - Management", frozenset({ModuleKind.re}), 46
    ),
    "RE_10_SITE_PHOTOS": ModuleDefinition(
        "RE-10 - Site Photos", frozenset({ModuleKind.re}), 47
    ),
    "RE_12_LOSS_VALUES": ModuleDefinition(
        "RE-12 - Loss Values", frozenset({ModuleKind.re}), 48
    ),
    "RE_13_RECOMMENDATIONS": ModuleDefinition(
        "RE-13 - Recommendations", frozenset({ModuleKind.re}), 49
    ),
}


def get_module_name(module_key: str) -> str:
    definition = MODULE_CATALOG.get(module_key)
    return definition.name if definition else module_key


def module_order(module_key: str) -> int:
    definition = MODULE_CATALOG.get(module_key)
    return definition.order if definition else 999


def modules_for_kinds(kinds) -> list[str]:
    keys = [
        key
        for key, definition in MODULE_CATALOG.items()
        if definition.kinds & set(kinds)
    ]
    return sorted(keys, key=module_order)


def required_modules_for_kinds(kinds) -> list[str]:
    return [key for key in modules_for_kinds(kinds) if MODULE_CATALOG[key].required]
