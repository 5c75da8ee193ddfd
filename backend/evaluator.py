"""
Graduation requirement evaluation.

evaluate() is a pure function of (selected courses, requirement config):
it never mutates its inputs, never raises, and rebuilds the report from
scratch on every call.
"""

from data_loader import as_course
from normalizer import safe_float
from requirements import (
    DEFAULT_TOTAL_CREDITS_REQUIRED,
    DevelopmentCategory,
    FlatCategory,
    RequirementConfig,
    RequirementConfigError,
    SubCategorizedCategory,
    parse_requirements,
)


def _degraded_report(raw_config, message: str) -> dict:
    required = DEFAULT_TOTAL_CREDITS_REQUIRED
    if isinstance(raw_config, dict):
        required = safe_float(raw_config.get("totalCreditsRequired"), required)
    return {
        "total": {"required": required, "achieved": 0, "met": False},
        "overallMet": False,
        "categories": {},
        "uncategorized": {"achieved": 0, "courses": []},
        "notes": [],
        "configError": message,
    }


def _bucket(node_id: str, name: str, required: float) -> dict:
    return {"id": node_id, "name": name, "required": required, "achieved": 0.0, "met": False, "courses": []}


def _build_skeleton(config: RequirementConfig) -> dict:
    """Zeroed report nodes mirroring the configuration's shape."""
    categories: dict[str, dict] = {}
    for cat in config.categories:
        node = _bucket(cat.id, cat.name, cat.credits_required)
        node["notes"] = cat.notes
        node["isGeneralDevelopmentCategory"] = isinstance(cat, DevelopmentCategory)
        if isinstance(cat, SubCategorizedCategory):
            node["subCategories"] = {
                sub.id: _bucket(sub.id, sub.name, sub.credits_required)
                for sub in cat.sub_categories
            }
        if isinstance(cat, DevelopmentCategory):
            node["subChecks"] = {}
            for sc in cat.sub_checks:
                entry = _bucket(sc.id, sc.name, sc.credits_required)
                entry.update({
                    "max": sc.credits_max,
                    "kind": sc.kind,
                    "hasOnlyMaxNoRequirement": sc.has_only_max_no_requirement,
                    "includeBasicCategoryIds": list(sc.include_basic_category_ids),
                    "description": sc.description,
                    "achievedCounted": 0.0,
                })
                if sc.sub_sub_checks:
                    entry["subSubChecks"] = {}
                    for ssc in sc.sub_sub_checks:
                        sub_entry = _bucket(ssc.id, ssc.name, ssc.credits_required)
                        sub_entry["achievedCounted"] = 0.0
                        entry["subSubChecks"][ssc.id] = sub_entry
                node["subChecks"][sc.id] = entry
        categories[cat.id] = node
    return categories


def _add(node: dict, course) -> None:
    node["achieved"] += course.credits
    node["courses"].append(course.code)


# ── Classification ────────────────────────────────────────────────────────────

def classify_course(course, categories) -> tuple | None:
    """
    First-match classification over categories in declared order.

    Returns (category, sub_category) for the first flat category or
    subCategory whose rule matches; sub_category is None for flat matches.
    The development category is never matched here; unmatched courses
    return None and fall through to the catch-all.
    """
    for cat in categories:
        if isinstance(cat, FlatCategory):
            if cat.identification.matches(course):
                return cat, None
        elif isinstance(cat, SubCategorizedCategory):
            for sub in cat.sub_categories:
                if sub.identification.matches(course):
                    return cat, sub
    return None


def match_sub_checks(course, sub_checks) -> list[tuple]:
    """
    Multi-match classification of a development course.

    Every subCheck whose rule matches is returned, each paired with the
    subSubChecks (also multi-match) it matches. A subSubCheck is only
    tested under a matching parent.
    """
    matched = []
    for sc in sub_checks:
        if not sc.identification.matches(course):
            continue
        inner = [ssc for ssc in sc.sub_sub_checks if ssc.identification.matches(course)]
        matched.append((sc, inner))
    return matched


# ── Combination and capping ───────────────────────────────────────────────────

def _basic_achieved_lookup(config: RequirementConfig, categories: dict) -> dict[str, float]:
    """subCategory id -> aggregated achieved, across all sub-categorized categories."""
    lookup: dict[str, float] = {}
    for cat in config.categories:
        if not isinstance(cat, SubCategorizedCategory):
            continue
        for sub_id, sub in categories[cat.id]["subCategories"].items():
            lookup.setdefault(sub_id, sub["achieved"])
    return lookup


def _basic_included(sub_check, basic_lookup: dict[str, float], notes: list[str]) -> float:
    total = 0.0
    for bid in sub_check.include_basic_category_ids:
        if bid not in basic_lookup:
            notes.append(f"Sub-check '{sub_check.id}' includes unknown sub-category '{bid}'.")
            continue
        total += basic_lookup[bid]
    return total


def combine_sub_check(entry: dict, sub_check, basic_included: float) -> None:
    """Combine development and basic credit, apply the cap, decide met."""
    combined = entry["achieved"] + basic_included
    if sub_check.credits_max is not None:
        entry["achievedCounted"] = min(combined, sub_check.credits_max)
    else:
        entry["achievedCounted"] = combined
    entry["met"] = entry["achievedCounted"] >= sub_check.credits_required

    for sub_entry in entry.get("subSubChecks", {}).values():
        sub_entry["achievedCounted"] = sub_entry["achieved"]
        sub_entry["met"] = sub_entry["achieved"] >= sub_entry["required"]


def capped_excess(dev_raw: float, credits_max: float, basic_included: float) -> float:
    """
    Development credit that a capped sub-check must give back.

    Basic-derived credit consumes the cap first; whatever development credit
    does not fit in the remainder is excess.
    """
    allowed_dev = max(0.0, credits_max - min(basic_included, credits_max))
    effective_dev = min(dev_raw, allowed_dev)
    return max(0.0, dev_raw - effective_dev)


# ── Entry point ───────────────────────────────────────────────────────────────

def evaluate(selected_courses, config) -> dict:
    """
    Evaluate a course selection against a requirement configuration.

    config may be a RequirementConfig or a raw requirement document. A
    missing or structurally invalid config yields a zeroed report carrying
    configError instead of raising.
    """
    raw_config = config
    if not isinstance(config, RequirementConfig):
        try:
            config = parse_requirements(config)
        except RequirementConfigError as exc:
            return _degraded_report(raw_config, str(exc))

    categories = _build_skeleton(config)
    notes: list[str] = list(config.warnings)
    uncategorized = {"achieved": 0.0, "courses": []}

    dev_cat = config.development_category
    dev_courses = []

    # Step 2: first-match classification, each course visited once.
    for raw_course in selected_courses if selected_courses is not None else []:
        try:
            course = as_course(raw_course)
        except TypeError:
            notes.append(f"Skipped non-course entry: {raw_course!r}")
            continue
        if config.is_excluded(course.code):
            continue

        hit = classify_course(course, config.categories)
        if hit is not None:
            cat, sub = hit
            if sub is not None:
                _add(categories[cat.id]["subCategories"][sub.id], course)
            _add(categories[cat.id], course)
        elif dev_cat is not None:
            dev_courses.append(course)
            _add(categories[dev_cat.id], course)
        else:
            uncategorized["achieved"] += course.credits
            uncategorized["courses"].append(course.code)

    if uncategorized["courses"]:
        notes.append(
            f"{len(uncategorized['courses'])} course(s) matched no category and no "
            "development category is configured; their credits are not counted."
        )

    # Steps 3-5: development sub-checks, combination, cap and clawback.
    if dev_cat is not None and dev_cat.sub_checks:
        dev_status = categories[dev_cat.id]
        for course in dev_courses:
            for sc, inner in match_sub_checks(course, dev_cat.sub_checks):
                entry = dev_status["subChecks"][sc.id]
                _add(entry, course)
                for ssc in inner:
                    _add(entry["subSubChecks"][ssc.id], course)

        basic_lookup = _basic_achieved_lookup(config, categories)
        clawback = 0.0
        for sc in dev_cat.sub_checks:
            entry = dev_status["subChecks"][sc.id]
            basic = _basic_included(sc, basic_lookup, notes)
            combine_sub_check(entry, sc, basic)
            if sc.credits_max is not None:
                clawback += capped_excess(entry["achieved"], sc.credits_max, basic)
        if clawback > 0:
            dev_status["achieved"] = max(0.0, dev_status["achieved"] - clawback)

    # Step 6: met flags and grand total.
    total = 0.0
    for node in categories.values():
        for sub in node.get("subCategories", {}).values():
            sub["met"] = sub["achieved"] >= sub["required"]
        node["met"] = node["achieved"] >= node["required"]
        total += node["achieved"]

    total_met = total >= config.total_credits_required
    return {
        "total": {
            "required": config.total_credits_required,
            "achieved": total,
            "met": total_met,
        },
        # Further graduation conditions would be AND-ed in here.
        "overallMet": total_met,
        "categories": categories,
        "uncategorized": uncategorized,
        "notes": notes,
        "configError": None,
    }
