from pathlib import Path

# Repo root (two levels above fieldsync/infra)
ROOT = Path(__file__).resolve().parents[2]

CONFIG = ROOT / "config.yaml"

# Common output locations
OUT = ROOT / "out"
DB_PATH = OUT / "fieldsync.db"
SOS_AUDIT = OUT / "sos_audit.jsonl"
