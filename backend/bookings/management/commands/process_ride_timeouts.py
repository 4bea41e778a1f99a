from django.core.management.base import BaseCommand

from services.config import get_setting
from services.dispatch import expire_stale_ride_requests


class Command(BaseCommand):
    help = "Cancel ride requests the driver has not accepted or declined within the response window."

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout",
            type=int,
            default=None,
            help="Seconds a driver has to respond (default: RIDE_RESPONSE_TIMEOUT_SECONDS).",
        )

    def handle(self, *args, **options):
        timeout = options["timeout"]
        if timeout is None:
            timeout = get_setting("RIDE_RESPONSE_TIMEOUT_SECONDS")
        expired_count = expire_stale_ride_requests(timeout_seconds=timeout)

        self.stdout.write(
            self.style.SUCCESS(
                f"Cancelled {expired_count} unanswered ride request(s) (timeout {timeout}s)."
            )
        )
