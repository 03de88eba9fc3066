"""
logging_config.py — Logging for the Order Engine

Every record goes to stdout and to ORDER_ENGINE_LOG_FILE, tagged with the
process id. httpx/httpcore request lines are only shown from WARNING up.
"""

import logging
import os
import sys

LOG_FILE = os.environ.get("ORDER_ENGINE_LOG_FILE", "order_engine.log")


def setup_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ]
    )
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
