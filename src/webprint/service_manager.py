"""
Service Manager
Orchestrates the print agent: poller, heartbeat and health monitor
"""

import asyncio
import logging
import time
from typing import Optional

import aiohttp

from .config_manager import ConfigManager
from .job_manager import JobManager
from .print_executor import PrintExecutor
from .queue_client import QueueClient

HEALTH_LOG_INTERVAL = 300


class AgentService:
    """Runs the agent's concurrent tasks against one queue server"""

    def __init__(self, config_manager: ConfigManager, client: Optional[QueueClient] = None,
                 print_executor: Optional[PrintExecutor] = None):
        self.config_manager = config_manager
        self.config = config_manager.get_agent_config()
        self.logger = logging.getLogger(__name__)

        self.client = client or QueueClient.from_config(self.config)
        self.print_executor = print_executor or PrintExecutor(self.config)
        self.job_manager = JobManager(self.config, self.client, self.print_executor)

        # Service state
        self.running = False
        self.start_time = None
        self.tasks = []

    async def run(self):
        """Main agent entry point; returns once stopped"""
        self.running = True
        self.start_time = time.time()
        self._display_startup_info()

        self.tasks = [
            asyncio.create_task(self.job_manager.start_processing(), name="job_processing"),
            asyncio.create_task(self.job_manager.heartbeat_loop(), name="heartbeat"),
            asyncio.create_task(self._monitor_service_health(), name="health_monitor"),
        ]
        self.logger.info(f"Started {len(self.tasks)} agent tasks")

        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            self.logger.info("Agent tasks cancelled")
        finally:
            await self.stop()

    async def run_once(self) -> bool:
        """Ping the server and run a single poll cycle"""
        try:
            try:
                await self.client.ping()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.warning(f"Heartbeat failed: {e}")
            return await self.job_manager.tick()
        finally:
            await self.client.close()

    def _display_startup_info(self):
        self.logger.info("=" * 60)
        self.logger.info("WebPrint Agent")
        self.logger.info(f"Agent ID: {self.config['agent_id']}")
        self.logger.info(f"Queue Server: {self.config['server_url']}")
        self.logger.info(f"Poll Interval: {self.job_manager.poll_interval}s")
        self.logger.info(f"Heartbeat Interval: {self.job_manager.heartbeat_interval}s")
        self.logger.info(f"Report print errors: {self.job_manager.report_print_errors}")
        self.logger.info("=" * 60)

    async def _monitor_service_health(self):
        """Log throughput every few minutes"""
        while self.running:
            await asyncio.sleep(HEALTH_LOG_INTERVAL)

            status = self.job_manager.get_status()
            stats = self.print_executor.get_performance_stats()
            if status["consecutive_errors"]:
                self.logger.warning(f"Queue server unreachable for {status['consecutive_errors']} poll(s)")
            else:
                self.logger.info(
                    f"Agent healthy - "
                    f"Polls: {status['total_polls']}, "
                    f"Printed: {status['jobs_processed']}, "
                    f"Failed: {status['jobs_failed']}, "
                    f"Avg print: {stats['average_processing_ms']:.0f}ms"
                )

    async def stop(self):
        """Stop all agent tasks gracefully"""
        if not self.running:
            return

        self.running = False
        self.job_manager.stop_processing()
        self.logger.info("Stopping WebPrint agent...")

        for task in self.tasks:
            if not task.done():
                self.logger.debug(f"Cancelling task: {task.get_name()}")
                task.cancel()

        if self.tasks:
            try:
                await asyncio.wait_for(asyncio.gather(*self.tasks, return_exceptions=True), timeout=10.0)
            except asyncio.TimeoutError:
                self.logger.warning("Task cancellation timeout")

        await self.client.close()

        if self.start_time:
            self.logger.info(f"Agent uptime: {time.time() - self.start_time:.1f} seconds")
        self.logger.info("WebPrint agent stopped")
