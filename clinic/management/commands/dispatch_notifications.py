import time

from django.core.management.base import BaseCommand

from clinic.services.notifications import dispatch_due


class Command(BaseCommand):
    help = "Deliver due email/WhatsApp notifications from the outbox."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=100, help="max tasks per batch")
        parser.add_argument("--loop", action="store_true", help="keep polling instead of running one batch")
        parser.add_argument("--interval", type=float, default=30.0, help="seconds between batches with --loop")

    def handle(self, *args, **opts):
        while True:
            counts = dispatch_due(limit=opts["limit"])
            summary = ", ".join(f"{k}={v}" for k, v in counts.items() if v) or "nothing due"
            self.stdout.write(self.style.SUCCESS(f"dispatch: {summary}"))
            if not opts["loop"]:
                break
            time.sleep(opts["interval"])
