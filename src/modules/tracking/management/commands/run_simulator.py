from __future__ import annotations

import signal
import threading

from django.core.management.base import BaseCommand

from modules.tracking.runtime import TrackingRuntime


class Command(BaseCommand):
    help = "Run the delivery simulator and position broadcaster until interrupted."

    def add_arguments(self, parser):
        parser.add_argument(
            "--duration",
            type=float,
            default=None,
            help="Stop after this many seconds (runs until SIGINT/SIGTERM by default).",
        )

    def handle(self, *args, **options):
        shutdown = threading.Event()

        def _request_shutdown(signum, _frame):
            self.stdout.write(f"Received signal {signum}, shutting down...")
            shutdown.set()

        previous = {
            signum: signal.signal(signum, _request_shutdown)
            for signum in (signal.SIGINT, signal.SIGTERM)
        }

        runtime = TrackingRuntime()
        runtime.start()
        self.stdout.write(
            self.style.SUCCESS(
                f"Simulator running: tracking {len(runtime.simulator.tracked_ids)} orders."
            )
        )
        try:
            shutdown.wait(options["duration"])
        finally:
            runtime.stop()
            for signum, handler in previous.items():
                signal.signal(signum, handler)
        self.stdout.write(self.style.SUCCESS("Simulator stopped."))
