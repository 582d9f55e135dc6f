from django.core.management.base import BaseCommand, CommandError

from shipping.credentials import load_carrier_config
from shipping.errors import FulfillmentError
from shipping.services import FulfillmentService


class Command(BaseCommand):
    help = "Adopt Shiprocket orders missing locally and release stale shipment claims"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", default=None, help="Carrier settings tenant")
        parser.add_argument("--max-pages", type=int, default=50, help="Carrier order pages to scan")

    def handle(self, *args, **options):
        try:
            service = FulfillmentService(load_carrier_config(options["tenant"]))
            report = service.reconcile(max_pages=options["max_pages"])
        except FulfillmentError as e:
            raise CommandError(f"{e.code}: {e.message}")

        if not report["complete"]:
            self.stderr.write("Carrier order list not fully scanned, stale claims were kept; raise --max-pages")
        for error in report["errors"]:
            self.stderr.write(f"Order #{error['order_id']}: {error['error']}")
        self.stdout.write(self.style.SUCCESS(
            f"Adopted {len(report['adopted'])} orders, released {len(report['released'])} stale claims"
        ))
