import json
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass

import pandas as pd

from normalizer import derive_prefix, derive_quarters, parse_credits


COURSE_COLUMNS = [
    "id", "code", "name", "description", "credits", "prefix", "quarters", "rawCourseData",
]
UNTITLED = "(untitled)"


@dataclass(frozen=True)
class Course:
    """A normalized catalog course. Evaluation reads it and never mutates it."""

    id: str
    code: str
    name: str = UNTITLED
    description: str = ""
    credits: float = 0.0
    prefix: str = ""
    quarters: tuple[str, ...] = ()
    raw_course_data: dict | None = None

    @property
    def subject_category_ids(self) -> list[str]:
        if not isinstance(self.raw_course_data, Mapping):
            return []
        ids = self.raw_course_data.get("subjectCategoryIds")
        if isinstance(ids, (list, tuple)):
            return [str(i) for i in ids]
        return []

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "credits": self.credits,
            "prefix": self.prefix,
            "quarters": list(self.quarters),
            "rawCourseData": self.raw_course_data,
        }


def _clean_str(val, default: str = "") -> str:
    if val is None:
        return default
    try:
        if pd.isna(val):
            return default
    except (TypeError, ValueError):
        pass
    out = str(val).strip()
    return out if out else default


def _raw_data(val) -> dict | None:
    return dict(val) if isinstance(val, Mapping) else None


def as_course(obj) -> Course:
    """
    Coerce a Course, mapping or pandas row into a Course.

    Missing fields take the catalog defaults: credits 0, no raw data.
    Raises TypeError for values that are not course-like at all.
    """
    if isinstance(obj, Course):
        return obj
    if isinstance(obj, pd.Series):
        obj = obj.to_dict()
    if not isinstance(obj, Mapping):
        raise TypeError(f"Not a course record: {obj!r}")

    course_id = _clean_str(obj.get("id"))
    code = _clean_str(obj.get("code"), course_id)
    raw_data = obj.get("rawCourseData", obj.get("raw_course_data"))
    quarters = obj.get("quarters")
    if not isinstance(quarters, (list, tuple)):
        quarters = derive_quarters(code)
    return Course(
        id=course_id or code,
        code=code,
        name=_clean_str(obj.get("name"), UNTITLED),
        description=_clean_str(obj.get("description")),
        credits=parse_credits(obj.get("credits")),
        prefix=_clean_str(obj.get("prefix")) or derive_prefix(code),
        quarters=tuple(quarters),
        raw_course_data=_raw_data(raw_data),
    )


def courses_from_df(courses_df: pd.DataFrame) -> list[Course]:
    if courses_df is None or len(courses_df) == 0:
        return []
    return [as_course(row) for row in courses_df.to_dict(orient="records")]


def _split_tags(val) -> list[str] | None:
    text = _clean_str(val)
    if not text:
        return None
    return [t.strip() for t in text.replace(",", ";").split(";") if t.strip()]


def _read_catalog(path: str) -> pd.DataFrame:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if isinstance(raw, dict):
            raw = raw.get("courses", [])
        if not isinstance(raw, list):
            raise ValueError(f"Catalog {path} must hold a list of courses.")
        return pd.DataFrame([r for r in raw if isinstance(r, dict)])
    if ext == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    if ext in (".xlsx", ".xls"):
        xl = pd.ExcelFile(path)
        sheet = "courses" if "courses" in xl.sheet_names else xl.sheet_names[0]
        return xl.parse(sheet, dtype=str).fillna("")
    raise ValueError(f"Unsupported catalog format: {path}")


def normalize_courses_df(courses_df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize raw catalog rows into COURSE_COLUMNS.

    Drops rows without an id and keeps the first row of each duplicated id.
    Flat sources (CSV/Excel) may carry subjectCategoryIds as a ';'-separated
    column, which is folded into rawCourseData.
    """
    if courses_df is None or len(courses_df) == 0:
        return pd.DataFrame(columns=COURSE_COLUMNS)
    if "id" not in courses_df.columns:
        raise ValueError("Catalog has no 'id' column.")

    df = courses_df.copy()
    df["id"] = df["id"].apply(_clean_str)
    missing_id = df["id"] == ""
    if missing_id.any():
        print(f"[WARN] Dropped {int(missing_id.sum())} catalog row(s) without an id.", file=sys.stderr)
        df = df[~missing_id].copy()

    dupes = df["id"].duplicated(keep="first")
    if dupes.any():
        print(
            f"[WARN] Dropped {int(dupes.sum())} duplicate catalog id(s): "
            f"{sorted(set(df.loc[dupes, 'id']))}",
            file=sys.stderr,
        )
        df = df[~dupes].copy()

    for col in ("code", "name", "description", "credits", "rawCourseData", "subjectCategoryIds"):
        if col not in df.columns:
            df[col] = None

    df["code"] = [_clean_str(code, cid) for code, cid in zip(df["code"], df["id"])]
    df["name"] = df["name"].apply(lambda v: _clean_str(v, UNTITLED))
    df["description"] = df["description"].apply(_clean_str)
    df["credits"] = df["credits"].apply(parse_credits)

    raw_data = []
    for raw, tags in zip(df["rawCourseData"], df["subjectCategoryIds"]):
        raw = _raw_data(raw)
        split = _split_tags(tags) if not isinstance(tags, (list, tuple)) else list(tags)
        if raw is None and split:
            raw = {"subjectCategoryIds": split}
        raw_data.append(raw)
    df["rawCourseData"] = pd.Series(raw_data, index=df.index, dtype=object)

    df["prefix"] = df["code"].apply(derive_prefix)
    df["quarters"] = df["code"].apply(derive_quarters)
    return df[COURSE_COLUMNS].reset_index(drop=True)


def load_courses(data_path: str) -> pd.DataFrame:
    """Load and normalize a course catalog file. Raises on file/schema errors."""
    if not os.path.exists(data_path):
        raise FileNotFoundError(f"Catalog not found: {data_path}")
    courses_df = normalize_courses_df(_read_catalog(data_path))
    print(f"[INFO] Loaded {len(courses_df)} courses from {data_path}")
    return courses_df


def load_data(data_path: str) -> dict:
    """Catalog bundle used by the server: DataFrame, Course records and code index."""
    courses_df = load_courses(data_path)
    courses = courses_from_df(courses_df)
    return {
        "courses_df": courses_df,
        "courses": courses,
        "courses_by_code": {c.code: c for c in courses},
        "catalog_codes": set(courses_df["code"].tolist()),
    }
