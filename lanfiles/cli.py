from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

import uvicorn

from .config import Settings, settings
from .logging_config import setup_logging
from .main import create_app
from .services.network import access_urls


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='lanfiles', description='Share a directory on the local network with a browser file manager.')
    p.add_argument('-p', '--port', type=int, default=defaults.app_port, help=f'Port to listen on (default: {defaults.app_port}).')
    p.add_argument('-d', '--dir', default=defaults.served_dir, help='Directory to serve (default: current directory).')
    p.add_argument('--host', default=defaults.app_host, help=f'Host to bind (default: {defaults.app_host}).')
    p.add_argument(
        '--upload-policy',
        choices=['verbatim', 'timestamped'],
        default=defaults.upload_policy,
        help='Where uploaded files are placed (default: %(default)s).',
    )
    p.add_argument('--log-level', default=defaults.log_level, help='Logging level (default: %(default)s).')
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser(settings).parse_args(argv)
    config = settings.model_copy(
        update={
            'app_port': args.port,
            'app_host': args.host,
            'served_dir': args.dir,
            'upload_policy': args.upload_policy,
            'log_level': args.log_level,
        }
    )

    try:
        app = create_app(config)
    except OSError as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return 1

    setup_logging(config)
    served = app.state.file_ops.root
    print(f'Starting server on port {config.app_port} serving directory {served}')
    print('Access URLs:')
    for url in access_urls(config.app_port):
        print(f'  - {url}')

    # uvicorn logs bind failures and exits non-zero on its own
    uvicorn.run(app, host=config.app_host, port=config.app_port, log_config=None, log_level=config.log_level.lower())
    return 0


if __name__ == '__main__':
    sys.exit(main())
