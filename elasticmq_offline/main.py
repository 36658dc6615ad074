#!/usr/bin/env python3

import argparse
import logging
import sys

from .config import Settings
from .offline import ElasticMqOffline
from .runner import Runner


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr."""
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


def run(args, config: Settings):
    set_logging_config('elasticmq', log_level_str=config.log_level)
    offline = ElasticMqOffline(config, bin_dir=args.bin_dir)
    runner = Runner(config, offline)
    try:
        runner.run()
    finally:
        offline.close()


def show_config(args, config: Settings):
    offline = ElasticMqOffline(config, bin_dir=args.bin_dir)
    print(f'stage: {config.stage}')
    print(f'stages: {", ".join(config.elasticmq.stages) or "-"}')
    print(f'noStart: {config.elasticmq.no_start}')
    print(f'port: {offline.port}')
    print(f'bin_dir: {offline.bin_dir}')
    print(f'will_start: {offline.should_execute() and not config.elasticmq.no_start}')


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='elasticmq-offline',
        description='Run the ElasticMQ emulator for local serverless development',
    )
    parser.add_argument(
        "mode", help="run mode",
        type=str,
        choices=["run", "show_config"])
    parser.add_argument("--config", help="serverless config file path", default='serverless.yml', type=str)
    parser.add_argument("--stage", help="active stage, overrides provider.stage", type=str)
    parser.add_argument("--bin-dir", help="directory containing the elasticmq server jar", type=str, default=None)
    parser.add_argument("--log-level", help="log level", type=str, default=Settings.DEFAULT_LOG_LEVEL)
    parser.add_argument("--http-host", help="host for the http control server", type=str, default="")
    parser.add_argument("--http-port", help="port for the http control server", type=int, default=0)
    args = parser.parse_args(argv)

    config = Settings()
    config.log_level = args.log_level
    config.http_host = args.http_host
    config.http_port = args.http_port
    config.load(args.config, stage=args.stage)

    if args.mode == 'run':
        run(args, config)
    if args.mode == 'show_config':
        show_config(args, config)


if __name__ == '__main__':
    main()
