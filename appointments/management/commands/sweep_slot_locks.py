from django.core.management.base import BaseCommand

from appointments.services import SlotLockManager


class Command(BaseCommand):
    help = "Deletes expired slot locks once"

    def handle(self, *args, **options):
        deleted = SlotLockManager().sweep_expired()
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} expired slot lock(s)."))
