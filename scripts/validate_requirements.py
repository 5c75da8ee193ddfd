"""
Publish gate validator for graduation requirement documents.

Checks structural rules a requirements JSON must pass before it is
installed as data/graduation_requirements.json. Designed to be importable
for tests and runnable as a standalone CLI.

Usage:
    python scripts/validate_requirements.py
    python scripts/validate_requirements.py --path path/to/requirements.json
"""

import argparse
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from requirements import RequirementConfigError, parse_requirements  # noqa: E402

DEFAULT_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "..", "data", "graduation_requirements.json"
)


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single requirements validation run."""

    def __init__(self, source: str):
        self.source = source
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Requirements '{self.source}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def _children(node: dict, key: str) -> list:
    value = node.get(key)
    return value if isinstance(value, list) else []


def _nodes(raw: dict):
    """Yield (kind, node) for every dict node in the four-level tree."""
    for cat in _children(raw, "categories"):
        if not isinstance(cat, dict):
            continue
        yield "category", cat
        for sub in _children(cat, "subCategories"):
            if isinstance(sub, dict):
                yield "subCategory", sub
        for sc in _children(cat, "subChecks"):
            if not isinstance(sc, dict):
                continue
            yield "subCheck", sc
            for ssc in _children(sc, "subSubChecks"):
                if isinstance(ssc, dict):
                    yield "subSubCheck", ssc


def check_structure(raw, result: ValidationResult) -> bool:
    """Document must parse into typed nodes. Returns False when later checks can't run."""
    try:
        parsed = parse_requirements(raw)
    except RequirementConfigError as exc:
        result.error(str(exc))
        return False
    for w in parsed.warnings:
        result.warn(w)
    if not parsed.categories:
        result.warn("No categories defined; every selection evaluates to zero credits.")
    return True


def check_unique_ids(raw: dict, result: ValidationResult) -> None:
    """Node ids must be unique across the whole tree."""
    seen: dict[str, str] = {}
    for kind, node in _nodes(raw):
        node_id = str(node.get("id", "") or "").strip()
        if not node_id:
            continue
        if node_id in seen:
            result.error(f"Duplicate id '{node_id}' ({seen[node_id]} and {kind}).")
        else:
            seen[node_id] = kind


def check_credit_values(raw: dict, result: ValidationResult) -> None:
    """Credit thresholds must be non-negative numbers when present."""
    total = raw.get("totalCreditsRequired")
    if total is None:
        result.warn("totalCreditsRequired is missing; the default of 124 applies.")
    for kind, node in [("document", raw)] + list(_nodes(raw)):
        for key in ("totalCreditsRequired", "creditsRequired", "creditsMax"):
            if key not in node or node[key] is None:
                continue
            val = node[key]
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                result.error(f"{kind} '{node.get('id', '')}' has non-numeric {key}={val!r}.")
            elif val < 0:
                result.error(f"{kind} '{node.get('id', '')}' has negative {key}={val}.")


def check_basic_references(raw: dict, result: ValidationResult) -> None:
    """includeBasicCategoryIds must name existing subCategories."""
    sub_ids = {str(n.get("id")) for kind, n in _nodes(raw) if kind == "subCategory"}
    for kind, node in _nodes(raw):
        if kind != "subCheck":
            continue
        bids = node.get("includeBasicCategoryIds")
        for bid in [bids] if isinstance(bids, str) else _children(node, "includeBasicCategoryIds"):
            if str(bid) not in sub_ids:
                result.error(
                    f"subCheck '{node.get('id', '')}' includes unknown subCategory '{bid}'."
                )


def check_catch_all(raw: dict, result: ValidationResult) -> None:
    """Without a development category unmatched courses are not counted anywhere."""
    cats = [c for c in _children(raw, "categories") if isinstance(c, dict)]
    if cats and not any(c.get("isGeneralDevelopmentCategory") for c in cats):
        result.warn(
            "No development (catch-all) category; unmatched courses will be reported "
            "as uncategorized and excluded from totals."
        )
    for c in cats:
        if c.get("subChecks") and not c.get("isGeneralDevelopmentCategory"):
            result.warn(f"Category '{c.get('id', '')}' has subChecks but is not the development category; they are ignored.")


# ── Entry points ──────────────────────────────────────────────────────────────

def validate_requirements(raw, source: str = "<memory>") -> ValidationResult:
    result = ValidationResult(source)
    if not check_structure(raw, result):
        return result
    check_unique_ids(raw, result)
    check_credit_values(raw, result)
    check_basic_references(raw, result)
    check_catch_all(raw, result)
    return result


def validate_file(path: str) -> ValidationResult:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        result = ValidationResult(path)
        result.error(f"Could not read requirements: {exc}")
        return result
    return validate_requirements(raw, source=path)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Validate a graduation requirements JSON file.")
    parser.add_argument("--path", default=DEFAULT_PATH, help="Requirements JSON path.")
    args = parser.parse_args(argv)

    result = validate_file(args.path)
    print(result.summary())
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
