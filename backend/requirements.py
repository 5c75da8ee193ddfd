import copy
from dataclasses import dataclass, field

from normalizer import safe_float

# Used when a configuration omits totalCreditsRequired.
DEFAULT_TOTAL_CREDITS_REQUIRED = 124

# Sub-check kinds, derived from creditsRequired / creditsMax.
SUB_CHECK_CAPPED = "capped"
SUB_CHECK_UNCAPPED = "uncapped"
SUB_CHECK_REPORT_ONLY = "report_only"

# Built-in configuration, applied when no external requirements file loads.
DEFAULT_GRADUATION_REQUIREMENTS = {
    "version": "1.1.0",
    "description": "Sample: total credits plus introductory / basic / development requirements",
    "exclusionPrefixes": ["OPT"],
    "totalCreditsRequired": 124,
    "categories": [
        {
            "id": "introductory",
            "name": "Introductory",
            "creditsRequired": 14,
            "identification": {"startsWith": ["INT-"]},
        },
        {
            "id": "basic",
            "name": "Basic",
            "creditsRequired": 12,
            "allSubCategoriesMustBeMet": True,
            "subCategories": [
                {
                    "id": "basicMath",
                    "name": "Mathematics",
                    "creditsRequired": 2,
                    "identification": {
                        "courseCodes": ["BSC-1-B1-0204-004", "BSC-1-B1-1030-005", "BSC-1-B1-0204-006"]
                    },
                },
                {
                    "id": "basicInfo",
                    "name": "Information",
                    "creditsRequired": 2,
                    "identification": {
                        "courseCodes": ["BSC-1-B1-1030-001", "BSC-1-B1-0204-002", "BSC-1-B1-0204-003"]
                    },
                },
                {
                    "id": "basicCultureThought",
                    "name": "Culture & Thought",
                    "creditsRequired": 2,
                    "identification": {
                        "courseCodes": ["BSC-1-B1-1030-007", "BSC-1-B1-1030-008", "BSC-1-B1-0204-009"]
                    },
                },
                {
                    "id": "basicSocietyNetwork",
                    "name": "Society & Network",
                    "creditsRequired": 2,
                    "identification": {
                        "courseCodes": ["BSC-1-B1-1030-010", "BSC-1-B1-0204-011", "BSC-1-B1-1030-012"]
                    },
                },
                {
                    "id": "basicEconomyMarket",
                    "name": "Economy & Market",
                    "creditsRequired": 2,
                    "identification": {
                        "courseCodes": ["BSC-1-B1-0204-013", "BSC-1-B1-0204-014", "BSC-1-B1-0204-015"]
                    },
                },
                {
                    "id": "basicMultilingualITComm",
                    "name": "Multilingual IT Communication",
                    "creditsRequired": 2,
                    "identification": {"courseCodes": ["BSC-1-A2-1234-016"]},
                },
            ],
        },
        {
            "id": "development",
            "name": "Development",
            "creditsRequired": 74,
            "notes": "Career-connection courses count for at most 10 credits",
            "isGeneralDevelopmentCategory": True,
            "subChecks": [
                {
                    "id": "devCombinedBasicLiteracy",
                    "name": "Foundational literacy (combined with basic courses)",
                    "creditsRequired": 8,
                    "identification": {"startsWith": ["INF-", "MTH-"]},
                    "includeBasicCategoryIds": ["basicMath", "basicInfo"],
                },
                {
                    "id": "devCombinedMultiInfoComp",
                    "name": "Multilingual information literacy (combined with basic courses)",
                    "creditsRequired": 8,
                    "identification": {"startsWith": ["LAN-"]},
                    "includeBasicCategoryIds": ["basicMultilingualITComm"],
                },
                {
                    "id": "devCareerConnection",
                    "name": "Career connection (counted up to 10 credits)",
                    "creditsMax": 10,
                    "identification": {"startsWith": ["CAR-"]},
                },
            ],
        },
    ],
}


class RequirementConfigError(ValueError):
    """Raised when a requirement document is structurally unusable."""


def _str_tuple(raw) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    try:
        return tuple(str(v) for v in raw if v is not None)
    except TypeError:
        return ()


# ── Identification rules ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class IdentificationRule:
    """Disjunction of code-prefix, exact-code and raw-tag predicates."""

    starts_with: tuple[str, ...] = ()
    course_codes: frozenset[str] = frozenset()
    subject_category_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.starts_with or self.course_codes or self.subject_category_ids)

    def matches(self, course) -> bool:
        code = getattr(course, "code", None)
        if code:
            if any(code.startswith(p) for p in self.starts_with):
                return True
            if code in self.course_codes:
                return True
        if self.subject_category_ids:
            raw_ids = getattr(course, "subject_category_ids", None) or ()
            if any(tag in raw_ids for tag in self.subject_category_ids):
                return True
        return False


def parse_identification(raw) -> IdentificationRule:
    """A missing or non-mapping rule becomes the empty rule, which never matches."""
    if not isinstance(raw, dict):
        return IdentificationRule()
    return IdentificationRule(
        starts_with=_str_tuple(raw.get("startsWith")),
        course_codes=frozenset(_str_tuple(raw.get("courseCodes"))),
        subject_category_ids=_str_tuple(raw.get("subjectCategoryIdsFromRaw")),
    )


# ── Configuration nodes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class SubCategory:
    id: str
    name: str
    credits_required: float
    identification: IdentificationRule


@dataclass(frozen=True)
class SubSubCheck:
    id: str
    name: str
    credits_required: float
    identification: IdentificationRule


@dataclass(frozen=True)
class SubCheck:
    id: str
    name: str
    credits_required: float
    identification: IdentificationRule
    credits_max: float | None = None
    include_basic_category_ids: tuple[str, ...] = ()
    sub_sub_checks: tuple[SubSubCheck, ...] = ()
    description: str = ""

    @property
    def kind(self) -> str:
        if self.credits_max is None:
            return SUB_CHECK_UNCAPPED
        if self.credits_required <= 0:
            return SUB_CHECK_REPORT_ONLY
        return SUB_CHECK_CAPPED

    @property
    def has_only_max_no_requirement(self) -> bool:
        return self.kind == SUB_CHECK_REPORT_ONLY


@dataclass(frozen=True)
class _CategoryBase:
    id: str
    name: str
    credits_required: float
    notes: str = ""


@dataclass(frozen=True)
class FlatCategory(_CategoryBase):
    identification: IdentificationRule = field(default_factory=IdentificationRule)


@dataclass(frozen=True)
class SubCategorizedCategory(_CategoryBase):
    sub_categories: tuple[SubCategory, ...] = ()


@dataclass(frozen=True)
class DevelopmentCategory(_CategoryBase):
    """Catch-all bucket for courses no earlier category matched."""

    sub_checks: tuple[SubCheck, ...] = ()


@dataclass(frozen=True)
class RequirementConfig:
    total_credits_required: float
    exclusion_prefixes: tuple[str, ...]
    categories: tuple
    version: str = ""
    description: str = ""
    warnings: tuple[str, ...] = ()

    @property
    def development_category(self) -> DevelopmentCategory | None:
        for cat in self.categories:
            if isinstance(cat, DevelopmentCategory):
                return cat
        return None

    def is_excluded(self, code) -> bool:
        if not code:
            return False
        return any(code.startswith(p) for p in self.exclusion_prefixes)


# ── Parsing ───────────────────────────────────────────────────────────────────

def _node_id(raw: dict, kind: str, index: int) -> str:
    node_id = str(raw.get("id", "") or "").strip()
    if not node_id:
        raise RequirementConfigError(f"{kind} #{index + 1} has no id.")
    return node_id


def _node_name(raw: dict, node_id: str) -> str:
    name = raw.get("name")
    return str(name) if name is not None else node_id


def _require_mapping(raw, kind: str, index: int) -> dict:
    if not isinstance(raw, dict):
        raise RequirementConfigError(f"{kind} #{index + 1} must be an object.")
    return raw


def _node_list(raw: dict, key: str, owner: str) -> list:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise RequirementConfigError(f"{owner}: '{key}' must be a list.")
    return value


def _parse_sub_sub_check(raw, index: int) -> SubSubCheck:
    raw = _require_mapping(raw, "subSubCheck", index)
    node_id = _node_id(raw, "subSubCheck", index)
    return SubSubCheck(
        id=node_id,
        name=_node_name(raw, node_id),
        credits_required=safe_float(raw.get("creditsRequired"), 0.0),
        identification=parse_identification(raw.get("identification")),
    )


def _parse_sub_check(raw, index: int) -> SubCheck:
    raw = _require_mapping(raw, "subCheck", index)
    node_id = _node_id(raw, "subCheck", index)
    return SubCheck(
        id=node_id,
        name=_node_name(raw, node_id),
        credits_required=safe_float(raw.get("creditsRequired"), 0.0),
        identification=parse_identification(raw.get("identification")),
        credits_max=safe_float(raw.get("creditsMax")),
        include_basic_category_ids=_str_tuple(raw.get("includeBasicCategoryIds")),
        sub_sub_checks=tuple(
            _parse_sub_sub_check(s, i)
            for i, s in enumerate(_node_list(raw, "subSubChecks", f"subCheck {node_id!r}"))
        ),
        description=str(raw.get("description", "") or ""),
    )


def _parse_sub_category(raw, index: int) -> SubCategory:
    raw = _require_mapping(raw, "subCategory", index)
    node_id = _node_id(raw, "subCategory", index)
    return SubCategory(
        id=node_id,
        name=_node_name(raw, node_id),
        credits_required=safe_float(raw.get("creditsRequired"), 0.0),
        identification=parse_identification(raw.get("identification")),
    )


def _parse_category(raw, index: int, warnings: list[str]):
    raw = _require_mapping(raw, "category", index)
    node_id = _node_id(raw, "category", index)
    common = {
        "id": node_id,
        "name": _node_name(raw, node_id),
        "credits_required": safe_float(raw.get("creditsRequired"), 0.0),
        "notes": str(raw.get("notes", "") or ""),
    }
    modes = [
        key for key in ("identification", "subCategories", "isGeneralDevelopmentCategory")
        if raw.get(key)
    ]
    if len(modes) > 1:
        warnings.append(
            f"Category '{node_id}' declares {', '.join(modes)}; using {modes[-1]}."
        )

    if raw.get("isGeneralDevelopmentCategory"):
        return DevelopmentCategory(
            **common,
            sub_checks=tuple(
                _parse_sub_check(s, i)
                for i, s in enumerate(_node_list(raw, "subChecks", f"Category {node_id!r}"))
            ),
        )
    if raw.get("subCategories"):
        return SubCategorizedCategory(
            **common,
            sub_categories=tuple(
                _parse_sub_category(s, i)
                for i, s in enumerate(_node_list(raw, "subCategories", f"Category {node_id!r}"))
            ),
        )
    identification = parse_identification(raw.get("identification"))
    if identification.is_empty:
        warnings.append(f"Category '{node_id}' has no usable identification rule; it will never match.")
    return FlatCategory(**common, identification=identification)


def parse_requirements(raw) -> RequirementConfig:
    """
    Structurally validate a raw requirement document and build typed nodes.

    Raises RequirementConfigError when the document has no usable categories
    or a node is malformed. Recoverable oddities are collected in
    RequirementConfig.warnings.
    """
    if not isinstance(raw, dict):
        raise RequirementConfigError("Requirement configuration must be an object.")
    raw_categories = raw.get("categories")
    if not isinstance(raw_categories, list):
        raise RequirementConfigError("Requirement configuration has no 'categories' list.")

    warnings: list[str] = []
    categories = tuple(_parse_category(c, i, warnings) for i, c in enumerate(raw_categories))

    seen: set[str] = set()
    for cat in categories:
        if cat.id in seen:
            raise RequirementConfigError(f"Duplicate category id '{cat.id}'.")
        seen.add(cat.id)

    dev_ids = [c.id for c in categories if isinstance(c, DevelopmentCategory)]
    if len(dev_ids) > 1:
        raise RequirementConfigError(
            f"At most one development category is allowed, found: {dev_ids}."
        )

    return RequirementConfig(
        total_credits_required=safe_float(
            raw.get("totalCreditsRequired"), float(DEFAULT_TOTAL_CREDITS_REQUIRED)
        ),
        exclusion_prefixes=_str_tuple(raw.get("exclusionPrefixes")),
        categories=categories,
        version=str(raw.get("version", "") or ""),
        description=str(raw.get("description", "") or ""),
        warnings=tuple(warnings),
    )


def default_requirements() -> dict:
    """Fresh deep copy of the built-in requirement document."""
    return copy.deepcopy(DEFAULT_GRADUATION_REQUIREMENTS)
