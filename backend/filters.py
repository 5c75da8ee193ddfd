import pandas as pd

from normalizer import QUARTERS, derive_prefix

# Display labels for course-code prefixes. Unlisted prefixes show as-is.
PREFIX_LABELS = {
    "INT": "Introductory",
    "INF": "Information",
    "MTH": "Mathematics",
    "LAN": "Foreign Languages",
    "BSC": "Basic",
    "OPT": "Outside Graduation Requirements",
    "CAR": "Career Connection",
    "DIGI": "World Understanding [Digital Industries]",
    "ECON": "World Understanding [Economy & Markets]",
    "HUM": "World Understanding [Culture & Thought]",
    "SOC": "World Understanding [Society & Networks]",
    "PRJ": "Graduation Project",
}
OTHER_LABEL = "Other"


def prefix_label(code_or_prefix) -> str:
    """'INT-1-A1-1030-001' or 'INT' → 'Introductory'; no prefix at all → 'Other'."""
    prefix = derive_prefix(code_or_prefix)
    return PREFIX_LABELS.get(prefix, prefix) or OTHER_LABEL


def filter_courses(
    courses_df: pd.DataFrame,
    query: str = "",
    prefix: str = "",
    quarter: str = "",
) -> pd.DataFrame:
    """
    Case-insensitive substring search over name, code and description,
    narrowed by exact prefix and quarter membership. Empty filters pass all.
    """
    if courses_df is None or len(courses_df) == 0:
        return courses_df

    mask = pd.Series(True, index=courses_df.index)
    q = str(query or "").strip().lower()
    if q:
        text_hit = pd.Series(False, index=courses_df.index)
        for col in ("name", "code", "description"):
            if col in courses_df.columns:
                text_hit |= courses_df[col].fillna("").astype(str).str.lower().str.contains(q, regex=False)
        mask &= text_hit

    prefix_key = str(prefix or "").strip().upper()
    if prefix_key:
        mask &= courses_df["prefix"].astype(str) == prefix_key

    quarter_key = str(quarter or "").strip().upper()
    if quarter_key:
        mask &= courses_df["quarters"].apply(
            lambda qs: isinstance(qs, (list, tuple)) and quarter_key in qs
        )

    return courses_df[mask]


def prefix_options(courses_df: pd.DataFrame) -> list[dict]:
    """Distinct non-empty catalog prefixes as {"value", "label"}, sorted by label."""
    if courses_df is None or len(courses_df) == 0 or "prefix" not in courses_df.columns:
        return []
    prefixes = {str(p).strip() for p in courses_df["prefix"].tolist() if str(p or "").strip()}
    options = [{"value": p, "label": prefix_label(p)} for p in prefixes]
    return sorted(options, key=lambda o: (o["label"], o["value"]))


def quarter_options() -> list[str]:
    return list(QUARTERS)
