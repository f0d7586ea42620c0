#!/usr/bin/env python3
"""
Page Mirror - save a single web page for offline viewing.

Downloads a page together with its stylesheets, scripts, images, fonts and
icons, rewrites every reference to the local copies, and serves the result.

Usage:
    page-mirror scrape --url https://example.com --concurrency 20
    page-mirror serve --port 8080

Features:
    - Parallel downloads with retries on a bounded worker pool
    - Fonts referenced from stylesheets are localized too
    - Stylesheet URLs templated inside scripts are resolved and downloaded
    - Source map references are stripped
    - Preview server for the mirrored page
"""

import argparse
import asyncio
import logging
import os
import sys
from urllib.parse import urlparse

from page_mirror.mirror import PageScraper, FetchError, StorageError
from page_mirror.utils.constants import (
    DEFAULT_DOCUMENT_NAME,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SERVE_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_WORKERS,
    MAX_WORKERS,
    MIN_WORKERS,
)
from page_mirror.utils.log import (
    create_progress,
    setup_logger,
    print_status,
    print_success,
    print_error,
    print_info,
    print_warning
)
from page_mirror.utils.paths import clean_output_dir, create_output_structure


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='page-mirror',
        description='Mirror a web page for offline viewing',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s scrape --url https://example.com
    %(prog)s scrape --url https://example.com --out home.html --concurrency 25
    %(prog)s serve --port 8080
        """
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    scrape = subparsers.add_parser('scrape', help='Download and localize a page')
    scrape.add_argument(
        '--url', '-u',
        type=str,
        required=True,
        help='URL of the page to mirror (e.g., https://example.com)'
    )
    scrape.add_argument(
        '--output-dir', '-o',
        type=str,
        default=DEFAULT_OUTPUT_DIR,
        help=f'Output directory (default: {DEFAULT_OUTPUT_DIR})'
    )
    scrape.add_argument(
        '--out',
        type=str,
        default=DEFAULT_DOCUMENT_NAME,
        help=f'File name of the saved page (default: {DEFAULT_DOCUMENT_NAME})'
    )
    scrape.add_argument(
        '--concurrency', '-c',
        type=int,
        default=DEFAULT_WORKERS,
        help=f'Number of concurrent downloads, {MIN_WORKERS}-{MAX_WORKERS} '
             f'(default: {DEFAULT_WORKERS})'
    )
    scrape.add_argument(
        '--timeout',
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f'Request timeout in seconds (default: {DEFAULT_TIMEOUT})'
    )
    scrape.add_argument(
        '--no-clean',
        action='store_true',
        help='Keep files from a previous run in the output directory'
    )
    scrape.add_argument(
        '--no-suppress-errors',
        action='store_true',
        help='Do not inject the offline error suppression script'
    )
    scrape.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    scrape.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress output except errors'
    )

    serve = subparsers.add_parser('serve', help='Serve a mirrored page locally')
    serve.add_argument(
        '--output-dir', '-o',
        type=str,
        default=DEFAULT_OUTPUT_DIR,
        help=f'Directory produced by scrape (default: {DEFAULT_OUTPUT_DIR})'
    )
    serve.add_argument(
        '--out',
        type=str,
        default=DEFAULT_DOCUMENT_NAME,
        help=f'File name of the saved page (default: {DEFAULT_DOCUMENT_NAME})'
    )
    serve.add_argument(
        '--host',
        default='127.0.0.1',
        help='Host to bind to (default: 127.0.0.1)'
    )
    serve.add_argument(
        '--port', '-p',
        type=int,
        default=DEFAULT_SERVE_PORT,
        help=f'Port to listen on (default: {DEFAULT_SERVE_PORT})'
    )

    return parser.parse_args(argv)


def validate_url(url: str) -> str:
    """
    Validate and normalize the input URL.

    Args:
        url: URL string to validate

    Returns:
        Normalized URL string

    Raises:
        ValueError: If URL is invalid
    """
    # Add protocol if missing
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    parsed = urlparse(url)

    if not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")

    return url


def validate_concurrency(concurrency: int) -> int:
    """
    Check the worker count.

    Raises:
        ValueError: If it is out of range
    """
    if not MIN_WORKERS <= concurrency <= MAX_WORKERS:
        raise ValueError(f"Concurrency must be between {MIN_WORKERS} and {MAX_WORKERS}.")
    return concurrency


def print_summary(result) -> None:
    """
    Print the run summary.

    Args:
        result: ScrapeResult object
    """
    summary = result.summary
    print("\n" + "=" * 60)
    print_success("MIRROR SUMMARY")
    print("=" * 60)
    print(f"  Page:              {result.url}")
    print(f"  Saved to:          {result.document_path}")
    print(f"  Assets downloaded: {summary.succeeded}")
    print(f"  Failed:            {summary.failed}")
    print(f"  Duration:          {summary.duration_seconds:.2f} seconds")
    print("=" * 60 + "\n")

    failed_primary = [e for e in summary.errors if e['kind'] != 'font']
    for error in failed_primary[:20]:
        print_warning(f"{error['url']} ({error['kind']}): {error['error']}")


async def scrape(args: argparse.Namespace) -> int:
    """
    Run the scrape command.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    url = validate_url(args.url)
    concurrency = validate_concurrency(args.concurrency)
    output_dir = os.path.abspath(args.output_dir)

    if not args.quiet:
        print_status(f"Mirroring {url}")
        print_info(f"Output: {output_dir}")
        print_info(f"Concurrency: {concurrency}")

    if not args.no_clean:
        clean_output_dir(output_dir)
    create_output_structure(output_dir)

    progress = None if args.quiet else create_progress()
    task_id = None

    def on_progress(completed: int, total: int) -> None:
        if progress is not None:
            progress.update(task_id, completed=completed, total=max(total, 1))

    scraper = PageScraper(
        output_dir=output_dir,
        workers=concurrency,
        timeout=args.timeout,
        on_progress=on_progress,
        suppress_errors=not args.no_suppress_errors
    )

    if progress is not None:
        with progress:
            task_id = progress.add_task("Downloading assets", total=None)
            result = await scraper.scrape(url, args.out)
    else:
        result = await scraper.scrape(url, args.out)

    if not args.quiet:
        print_summary(result)

    print_success(f"Static HTML with local assets saved to {result.document_path}")
    return 0


def serve(args: argparse.Namespace) -> int:
    """Run the serve command."""
    from page_mirror.web import run_app

    print_info(f"Starting server on http://{args.host}:{args.port}")
    print_info("Press Ctrl+C to stop the server")
    run_app(
        output_dir=args.output_dir,
        document_name=args.out,
        host=args.host,
        port=args.port
    )
    return 0


def main(argv=None) -> int:
    """
    Main entry point for the page mirror.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    verbose = getattr(args, 'verbose', False)
    quiet = getattr(args, 'quiet', False)
    log_level = logging.DEBUG if verbose else (logging.WARNING if quiet else logging.INFO)
    setup_logger(level=log_level)

    try:
        if args.command == 'serve':
            return serve(args)
        return asyncio.run(scrape(args))

    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 1
    except ValueError as e:
        print_error(f"Invalid input: {e}")
        return 1
    except FileNotFoundError as e:
        print_error(str(e))
        return 1
    except FetchError as e:
        print_error(f"Failed to fetch page: {e}")
        return 1
    except StorageError as e:
        print_error(f"Failed to write output: {e}")
        return 1
    except Exception as e:
        print_error(f"Error: {e}")
        if verbose:
            import traceback
            traceback.print_exc()
        return 1


def run() -> None:
    """Entry point wrapper for running as module."""
    sys.exit(main())


if __name__ == '__main__':
    run()
