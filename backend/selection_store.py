"""
Selected-course persistence and plain-text import/export.

Only course codes are persisted; records are re-resolved against the
current catalog on load.
"""

import json
import os
import re
import sys
import threading

import pandas as pd

from data_loader import Course, courses_from_df


def export_selection_codes(courses) -> str:
    """Newline-separated course codes, in selection order."""
    codes = []
    for c in courses or []:
        code = c.code if isinstance(c, Course) else str((c or {}).get("code", "") or "")
        if code:
            codes.append(code)
    return "\n".join(codes)


def _lines(text: str) -> list[str]:
    return [line.strip() for line in re.split(r"\r?\n", text or "") if line.strip()]


def import_selection_codes(text: str, courses_df: pd.DataFrame) -> list[Course]:
    """Catalog courses whose code appears on a line of text, in catalog order."""
    wanted = set(_lines(text))
    if not wanted or courses_df is None or len(courses_df) == 0:
        return []
    return courses_from_df(courses_df[courses_df["code"].isin(wanted)])


def resolve_codes(codes, courses_by_code: dict) -> tuple[list[Course], list[str]]:
    """Map codes to catalog courses in the given order; unknown codes are returned separately."""
    found: list[Course] = []
    missing: list[str] = []
    for code in dict.fromkeys(codes or []):
        course = courses_by_code.get(code)
        if course is None:
            missing.append(code)
        else:
            found.append(course)
    return found, missing


class SelectionStore:
    """JSON-file backed list of selected course codes."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> list[str]:
        if not os.path.exists(self.path):
            return []
        try:
            with self._lock, open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            print(f"[WARN] Failed to load selected courses from {self.path}: {exc}", file=sys.stderr)
            return []
        if not isinstance(raw, list):
            print(f"[WARN] Selected courses file {self.path} is not a list; ignoring.", file=sys.stderr)
            return []
        return [str(c) for c in raw if isinstance(c, str) and c.strip()]

    def save(self, codes) -> bool:
        try:
            with self._lock, open(self.path, "w", encoding="utf-8") as f:
                json.dump(list(codes), f, ensure_ascii=False, indent=2)
        except OSError as exc:
            print(f"[WARN] Failed to save selected courses to {self.path}: {exc}", file=sys.stderr)
            return False
        return True
