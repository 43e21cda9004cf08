from django.core.management.base import BaseCommand

from appointments.services import dispatch_due_reminders


class Command(BaseCommand):
    help = "Sends WhatsApp reminders for appointments starting in about 24 hours"

    def handle(self, *args, **options):
        sent = dispatch_due_reminders()
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} reminder(s)."))
