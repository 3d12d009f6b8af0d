from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Optional, Sequence

from abserve import __version__
from abserve.config import AppConfig, ConfigLoader, ConfigLoadRequest, ServerSettings, parse_listen
from abserve.content import ContentCache, FifoPollSource, OneShotSource
from abserve.logging import init_logging
from abserve.server import HttpServer, build_app

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

PROG = "abserve"


class UsageError(Exception):
    pass


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog=PROG,
        usage="%(prog)s [-h] [-p <fifo>] [-d <directory>] [-l [address][:port]] [--] [<path>]",
        description="Cache and serve input (from memory) at http://<address>:<port>/[<path>].",
        add_help=False,
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="URL path of the resource (default: /)",
    )
    parser.add_argument(
        "-p",
        "--poll",
        metavar="<fifo>",
        default=None,
        help="ignore input and cache <fifo> (which must be a FIFO) on loop instead",
    )
    parser.add_argument(
        "-d",
        "--directory",
        metavar="<directory>",
        default=None,
        help="serve everything else from <directory>",
    )
    parser.add_argument(
        "-l",
        "--listen",
        metavar="<address>:<port>",
        default=None,
        help="listen on <address>:<port> (default: :8080)",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="<file>",
        default=None,
        help="read settings from a YAML file",
    )
    parser.add_argument(
        "--env-file",
        metavar="<file>",
        default=None,
        help="load environment overrides from a dotenv file",
    )
    parser.add_argument("-h", "--help", action="store_true", help="print this")
    parser.add_argument("--version", action="store_true", help="print version")
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    server: dict[str, Any] = {}
    if args.path is not None:
        server["path"] = args.path
    if args.poll is not None:
        server["poll"] = args.poll
    if args.directory is not None:
        server["directory"] = args.directory
    if args.listen is not None:
        host, port = parse_listen(args.listen)
        server["host"] = host
        server["port"] = port
    return {"server": server} if server else {}


def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = ConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
        dotenv_path=args.env_file,
        overrides=_cli_overrides(args),
    )
    return loader.load(request)


async def _serve_forever(
    settings: ServerSettings,
    cache: ContentCache,
    poller: Optional[FifoPollSource],
) -> None:
    loop = asyncio.get_running_loop()
    failed: asyncio.Future[None] = loop.create_future()

    def _fail(exc: BaseException) -> None:
        if not failed.done():
            failed.set_exception(exc)

    def _on_poll_error(exc: BaseException) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(_fail, exc)

    if poller is not None:
        poller.start(on_error=_on_poll_error)

    server = HttpServer(build_app(settings, cache), host=settings.host, port=settings.port)
    await server.start()
    try:
        # Only a broken refresh source ends serving.
        await failed
    finally:
        await server.stop()


def serve(config: AppConfig) -> None:
    """Fill the cache, then serve it until interrupted or a fatal error occurs."""
    settings = config.server
    cache = ContentCache()

    poller: Optional[FifoPollSource] = None
    if settings.poll is not None:
        poller = FifoPollSource(cache, settings.poll)
        poller.load()
    else:
        OneShotSource(cache, sys.stdin).load()

    logger.info("Serving resource. path=%s directory=%s", settings.path, settings.directory)
    asyncio.run(_serve_forever(settings, cache, poller))


def _usage_error(parser: argparse.ArgumentParser, message: str) -> int:
    parser.print_usage(sys.stderr)
    sys.stderr.write(f"{PROG}: {message}\n")
    return EXIT_USAGE


def run(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        return _usage_error(parser, str(e))

    if args.help:
        parser.print_help(sys.stderr)
        return EXIT_USAGE
    if args.version:
        sys.stdout.write(f"{PROG} v{__version__}\n")
        sys.stdout.flush()
        return EXIT_USAGE

    try:
        config = _load_config(args)
    except (ValueError, KeyError, TypeError) as e:
        return _usage_error(parser, str(e))
    except OSError as e:
        sys.stderr.write(f"{PROG}: {e}\n")
        return EXIT_FAILURE

    try:
        init_logging(config.logging, prog=PROG)
    except ValueError as e:
        return _usage_error(parser, str(e))

    try:
        serve(config)
    except (OSError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_FAILURE
    return EXIT_FAILURE


def main() -> None:
    try:
        status = run()
    except KeyboardInterrupt:
        status = EXIT_INTERRUPTED
    sys.exit(status)


if __name__ == "__main__":
    main()
