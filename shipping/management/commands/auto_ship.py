import json

from django.core.management.base import BaseCommand, CommandError

from shipping.credentials import load_carrier_config
from shipping.errors import FulfillmentError
from shipping.services import FulfillmentService


class Command(BaseCommand):
    help = "Ship every confirmed, non-COD order with the default courier"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", default=None, help="Carrier settings tenant")
        parser.add_argument(
            "--force",
            action="store_true",
            help="Run even when auto-ship is disabled in shipping settings",
        )

    def handle(self, *args, **options):
        try:
            config = load_carrier_config(options["tenant"])
        except FulfillmentError as e:
            raise CommandError(e.message)

        if not config.auto_ship_enabled and not options["force"]:
            self.stdout.write("Auto-ship is disabled, nothing to do")
            return

        try:
            batch = FulfillmentService(config).run_auto_ship()
        except FulfillmentError as e:
            raise CommandError(f"{e.code}: {e.message}")

        for row in batch.results:
            if not row["success"]:
                self.stderr.write(json.dumps(row))
        self.stdout.write(self.style.SUCCESS(
            f"Auto-ship: {batch.succeeded}/{batch.total} shipped, {batch.failed} failed, {batch.skipped} skipped"
        ))
