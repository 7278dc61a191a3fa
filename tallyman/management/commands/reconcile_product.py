"""
Reconcile one product's SKUs from the command line.

Usage:
    python manage.py reconcile_product 42 --stock 120
    python manage.py reconcile_product 42 --price 49.99
    python manage.py reconcile_product 42 --stock 120 --price 49.99
    python manage.py reconcile_product 42 --status
"""

from django.core.management.base import BaseCommand, CommandError

from tallyman.exceptions import TallyError


class Command(BaseCommand):
    help = "Reconcile a product's SKU stock and/or price with the product"

    def add_arguments(self, parser):
        parser.add_argument("product_id", help="Product identifier")
        parser.add_argument(
            "--stock",
            type=int,
            default=None,
            help="Desired total stock across the product's SKUs",
        )
        parser.add_argument(
            "--price",
            default=None,
            help="Unit price every SKU should carry",
        )
        parser.add_argument(
            "--status",
            action="store_true",
            help="Only show the current stock status",
        )

    def handle(self, *args, **options):
        from tallyman.service import Tally

        product_id = options["product_id"]

        if options["status"]:
            try:
                stock_status = Tally.stock_status(product_id)
            except TallyError as e:
                raise CommandError(str(e)) from e
            self._print_status(stock_status)
            return

        if options["stock"] is None and options["price"] is None:
            raise CommandError("Nothing to do: pass --stock, --price or --status.")

        try:
            report = Tally.reconcile(
                product_id,
                total_stock=options["stock"],
                base_price=options["price"],
            )
        except TallyError as e:
            raise CommandError(str(e)) from e

        for label, result in (("price", report.price), ("stock", report.stock)):
            if result is None:
                continue
            if result.skipped:
                self.stdout.write(f"{label}: skipped ({result.skipped})")
                continue
            self.stdout.write(
                f"{label}: {result.updated_count} updated, {len(result.errors)} failed"
            )
            for error in result.errors:
                self.stdout.write(self.style.ERROR(f"   • {error.sku_id}: {error.error}"))

        if report.stock is not None and report.stock.shortfall:
            self.stdout.write(
                self.style.WARNING(f"Shortfall: {report.stock.shortfall} units not removed")
            )

        if report.success:
            self.stdout.write(self.style.SUCCESS(f"Product {product_id} reconciled"))
        else:
            self.stdout.write(
                self.style.WARNING(
                    f"Product {product_id} reconciled with errors "
                    f"({report.failed_count} SKUs failed)"
                )
            )

    def _print_status(self, stock_status):
        self.stdout.write(f"Product {stock_status.product_id}")
        self.stdout.write(f"   • SKUs: {stock_status.sku_count}")
        self.stdout.write(f"   • SKU total: {stock_status.total_stock}")
        self.stdout.write(f"   • Recorded total: {stock_status.recorded_total}")
        self.stdout.write(f"   • Min stock: {stock_status.min_stock}")
        if stock_status.drift:
            self.stdout.write(self.style.WARNING(f"   • Drift: {stock_status.drift}"))
        if stock_status.below_min_stock:
            self.stdout.write(self.style.WARNING("   • Below minimum stock"))
