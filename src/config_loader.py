import os
import yaml


DEFAULTS = {
    "overdue": {"grace_days": 30},
    "matching": {"mode": "first_match", "precedence": ["company", "candidate"], "near_miss_threshold": 0.85},
    "currency": {"locale": "en-IN"},
    "invoice": {"tax_rate": 18, "due_days": 30},
}


def _config_path() -> str:
    default = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "reconcile.yml")
    return os.getenv("RECONCILE_CONFIG", default)


def load_reconcile_config() -> dict:
    path = _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {k: dict(v) for k, v in DEFAULTS.items()}

    # shallow merge defaults
    merged = {k: dict(v) for k, v in DEFAULTS.items()}
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged
