#!/usr/bin/env python3

import argparse
import json
import logging
import sys

import requests

from .config import Settings
from .runner import ClientRunner


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr (stdout for containerized environments)."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def run_client(args, config: Settings):
    set_logging_config('binlogclient', log_level_str=config.log_level)
    runner = ClientRunner(config)
    runner.run()


def print_status(args, config: Settings):
    if not config.http_host or not config.http_port:
        raise Exception("http server is disabled, set http_host and http_port in config")
    host = 'localhost' if config.http_host == '0.0.0.0' else config.http_host
    response = requests.get(f'http://{host}:{config.http_port}/status', timeout=args.timeout)
    response.raise_for_status()
    print(json.dumps(response.json(), indent=2))


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "mode", help="run mode",
        type=str,
        choices=["run", "status"])
    parser.add_argument("--config", help="config file path", default='config.yaml', type=str)
    parser.add_argument("--timeout", help="status request timeout, seconds", default=5.0, type=float)
    args = parser.parse_args()

    config = Settings()
    config.load(args.config)

    if args.mode == 'run':
        run_client(args, config)
    if args.mode == 'status':
        print_status(args, config)


if __name__ == '__main__':
    main()
