#!/usr/bin/env python3
"""
Tender Harvester - Startup Script

Reads the job input (the key-value store's INPUT record by default), runs the
harvest and writes results to local storage.
"""

import argparse
import asyncio
import json
import os
import sys

from pydantic import ValidationError

from tender_harvester.config import load_config
from tender_harvester.main import run_job
from tender_harvester.scrapers.exceptions import ScrapingError
from tender_harvester.scrapers.models import JobInput
from tender_harvester.storage import open_storage
from tender_harvester.utils.logging import setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Harvest tender opportunities from procurement portals.")
    parser.add_argument("--input", help="Path to a JSON job input file (default: INPUT record in local storage)")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--storage-dir", help="Local storage directory")
    parser.add_argument("--source", help="Override the input's source key")
    parser.add_argument("--max-items", type=int, help="Override the input's maxItems")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    os.environ.setdefault("LOG_LEVEL", "INFO")
    args = parse_args(argv)

    config = load_config(args.config)
    logger = setup_logging(config=config.logging)
    dataset, kv_store = open_storage(config.storage, args.storage_dir)

    if args.input:
        with open(args.input, "r", encoding="utf-8") as f:
            raw_input = json.load(f)
    else:
        raw_input = kv_store.get_value(config.storage.input_key, {}) or {}

    if args.source:
        raw_input["source"] = args.source
    if args.max_items is not None:
        raw_input["maxItems"] = args.max_items

    try:
        job_input = JobInput.model_validate(raw_input)
    except ValidationError as e:
        logger.error("Invalid job input", error=str(e))
        return 2

    try:
        asyncio.run(run_job(job_input, config, dataset=dataset, kv_store=kv_store))
    except ScrapingError as e:
        logger.error("Run failed", error=e.message)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
