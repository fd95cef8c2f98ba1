#!/usr/bin/env python3
"""
Main entry point for the polite web crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from polite_crawler import __version__
from polite_crawler.exceptions import CrawlerError
from polite_crawler.utils.config import Config, ConfigManager
from polite_crawler.utils.logger import setup_logging, log_system_info
from polite_crawler.utils.monitoring import initialize_monitoring, MetricsObserver
from polite_crawler.crawler.events import CompositeObserver, LoggingObserver
from polite_crawler.crawler.robots import RobotsPolicyCache
from polite_crawler.crawler.scheduler import CrawlerScheduler


class CrawlerApp:
    """Main application class for the web crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Not supported on Windows event loops
                signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(signal_handler, s))

    async def run(self, config: Config, max_duration: Optional[float] = None,
                  dry_run: bool = False, json_logs: bool = False) -> int:
        """Run the web crawler."""
        self._shutdown_event = asyncio.Event()
        setup_logging(config.logging, enable_json=json_logs or None)
        log_system_info()
        self.setup_signal_handlers()

        crawler_config = config.crawler
        self.logger.info("=== WEB CRAWLER STARTING ===")
        self.logger.info(f"Start URL: {crawler_config.start_url}")
        self.logger.info(f"Max depth: {crawler_config.max_depth}")
        self.logger.info(f"Workers: {crawler_config.max_concurrent_requests}")
        self.logger.info(f"Domain delay: {crawler_config.domain_delay_millis}ms")
        self.logger.info(f"Respect robots.txt: {crawler_config.respect_robots_txt}")
        self.logger.info(f"Same domain only: {crawler_config.same_domain_only}")

        try:
            monitor = initialize_monitoring(
                config.monitoring.metrics_enabled,
                config.monitoring.prometheus_port
            )
            observer = CompositeObserver([LoggingObserver(), MetricsObserver(monitor)])
            self.scheduler = CrawlerScheduler(crawler_config, observer=observer, monitor=monitor)

            if dry_run:
                self.logger.info("DRY RUN MODE: No crawling will be performed")
                await self._dry_run()
                return 0

            crawl_task = asyncio.create_task(self.scheduler.start_crawling(max_duration=max_duration))
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            done, pending = await asyncio.wait(
                [crawl_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            if shutdown_task in done:
                self.logger.info("Shutdown requested, stopping crawler...")
                await self.scheduler.stop_crawling()
                await crawl_task
            else:
                shutdown_task.cancel()
                # Re-raises InvalidSeedURLError and other fatal errors
                crawl_task.result()

            self.logger.info(f"Summary: {monitor.get_summary()}")

        except CrawlerError as e:
            self.logger.error(f"Crawl aborted: {e}")
            return 1

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.scheduler:
                await self.scheduler.close()
            self.logger.info("=== WEB CRAWLER FINISHED ===")

        return 0

    async def _dry_run(self):
        """Check the start URL's robots.txt and fetch it once without crawling."""
        await self.scheduler.initialize()
        config = self.scheduler.config
        fetcher = self.scheduler.fetcher

        robots = self.scheduler.robots or RobotsPolicyCache(
            fetcher.session, config.user_agent, timeout=config.robots_timeout,
            failure_policy=config.robots_failure_policy
        )
        allowed = await robots.is_allowed(config.start_url)
        self.logger.info(f"robots.txt allows start URL: {allowed}")

        result = await fetcher.fetch(config.start_url)
        if result.ok:
            links = self.scheduler.parser.parse(config.start_url, result.content).links
            self.logger.info(f"✓ Test fetch successful: HTTP {result.status_code}, {len(links)} links")
        else:
            self.logger.warning(f"Test fetch failed: {result.error}")

        self.logger.info("Dry run completed")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Polite breadth-first web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                               # Run with default config.yaml
  python main.py --config my_config.yaml       # Run with custom config
  python main.py --start-url https://x.test/   # Override the seed URL
  python main.py --max-pages 1000              # Stop after 1000 pages
  python main.py --max-duration 3600           # Run for 1 hour max
  python main.py --dry-run                     # Test configuration only
        """
    )

    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--start-url', help='Seed URL to crawl from')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth from the seed')
    parser.add_argument('--max-pages', type=int, help='Maximum number of pages to crawl')
    parser.add_argument('--max-duration', type=float, help='Maximum crawl duration in seconds')
    parser.add_argument('--concurrency', type=int, help='Number of crawl workers')
    parser.add_argument('--no-robots', action='store_true', help='Ignore robots.txt')
    parser.add_argument('--all-domains', action='store_true', help='Follow links to other hosts')
    parser.add_argument('--json-logs', action='store_true', help='Write logs as JSON lines')
    parser.add_argument('--dry-run', action='store_true',
                        help='Test configuration without actually crawling')
    parser.add_argument('--version', action='version', version=f'Polite Crawler {__version__}')

    return parser


def load_app_config(args: argparse.Namespace) -> Config:
    """Load the YAML config and apply command-line overrides."""
    manager = ConfigManager(args.config)
    manager.load_config()
    return manager.apply_overrides(
        start_url=args.start_url,
        max_depth=args.max_depth,
        max_pages=args.max_pages,
        max_concurrent_requests=args.concurrency,
        respect_robots_txt=False if args.no_robots else None,
        same_domain_only=False if args.all_domains else None,
    )


def main(argv=None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    try:
        config = load_app_config(args)
    except CrawlerError as e:
        print(f"Error: {e}")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            config,
            max_duration=args.max_duration,
            dry_run=args.dry_run,
            json_logs=args.json_logs
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
