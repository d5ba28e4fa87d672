import json
import os
import sys

# Ensure src is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

import yaml

from batch_ops.app import get_app_context
from batch_ops.logging_utils import configure_logging, get_logger


def _load_records(path):
    with open(path, "r", encoding="utf-8") as f:
        if path.endswith((".yaml", ".yml")):
            data = yaml.safe_load(f) or []
        else:
            data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of records")
    return data


def seed(path):
    configure_logging()
    logger = get_logger("seed_records")

    context = get_app_context()
    records = _load_records(path)
    context.mutator.seed(records)
    logger.info(
        "Seeded %d records into %s at %s",
        len(records),
        context.schema.collection,
        context.settings.storage.sqlite_path,
    )
    context.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: seed_records.py <records.json|records.yaml>")
        sys.exit(1)
    seed(sys.argv[1])
