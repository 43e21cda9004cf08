from django.core.management.base import BaseCommand

from appointments.scheduler import create_scheduler


class Command(BaseCommand):
    help = "Runs the slot lock sweep and reminder jobs until interrupted"

    def handle(self, *args, **options):
        scheduler = create_scheduler()
        self.stdout.write(self.style.SUCCESS("Booking scheduler started. Press Ctrl+C to stop."))
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            scheduler.shutdown(wait=False)
            self.stdout.write(self.style.SUCCESS("Booking scheduler stopped."))
