import copy
import json
import sys
import threading

from requirements import (
    DEFAULT_GRADUATION_REQUIREMENTS,
    RequirementConfig,
    RequirementConfigError,
    parse_requirements,
)


class RequirementStore:
    """
    Holds the active requirement configuration.

    The evaluator never reads this directly; callers take a snapshot with
    get()/parsed() and pass it in. Every stored document has passed
    parse_requirements().
    """

    def __init__(self, default: dict | None = None):
        self._default = copy.deepcopy(default if default is not None else DEFAULT_GRADUATION_REQUIREMENTS)
        parse_requirements(self._default)
        self._lock = threading.Lock()
        self._active = copy.deepcopy(self._default)
        self._parsed = parse_requirements(self._active)
        self.source = "default"

    def get(self) -> dict:
        with self._lock:
            return copy.deepcopy(self._active)

    def parsed(self) -> RequirementConfig:
        with self._lock:
            return self._parsed

    def replace(self, config, source: str = "replaced") -> RequirementConfig:
        """Validate and activate a new document. Raises RequirementConfigError."""
        parsed = parse_requirements(config)
        with self._lock:
            self._active = copy.deepcopy(config)
            self._parsed = parsed
            self.source = source
        for warning in parsed.warnings:
            print(f"[WARN] Requirements ({source}): {warning}", file=sys.stderr)
        return parsed

    def reset(self) -> RequirementConfig:
        return self.replace(copy.deepcopy(self._default), source="default")

    def load(self, path: str) -> bool:
        """
        Activate requirements from a JSON file.

        Any read/parse/validation failure applies the default instead.
        Returns True when the file was applied.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self.replace(raw, source=path)
        except (OSError, ValueError) as exc:
            print(f"[WARN] Failed to load requirements from {path}; applying default: {exc}", file=sys.stderr)
            self.reset()
            return False
        print(f"[OK] Loaded requirements from {path}")
        return True

    def export_json(self) -> str:
        return json.dumps(self.get(), ensure_ascii=False, indent=2)

    def export_to(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.export_json())
            f.write("\n")

    def import_json(self, text: str) -> RequirementConfig:
        """Parse uploaded JSON text and activate it. Raises RequirementConfigError."""
        try:
            raw = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise RequirementConfigError(f"Requirements are not valid JSON: {exc}") from exc
        return self.replace(raw, source="imported")
