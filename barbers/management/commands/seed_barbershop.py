import os
from datetime import time
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from barbers.models import Barber, Service, WorkSchedule

SERVICES = [
    ("Haircut", "Cut to your style. Includes a drink and a courtesy massage.", 45, "200.00"),
    ("Beard ritual", "Trim, line-up, steam and oil.", 35, "160.00"),
    ("Scrub or face mask", "Facial treatment.", 25, "80.00"),
    ("Eyebrow detailing", "Shaping and definition.", 15, "50.00"),
    ("Full package", "Haircut, beard ritual and face mask.", 120, "490.00"),
]

# (name, phone, is_active, working weekdays; 0 = Monday)
BARBERS = [
    ("Sergey Trifonov", "+5215512345671", False, [0, 1, 2, 3, 4]),
    ("Matvei Efimov", "+5215512345672", True, [0, 1, 2]),
    ("Evgenii Tarasov", "+5215512345673", True, [0, 1, 2, 3, 4]),
]

DEFAULT_SHIFT = {
    "start_time": time(9, 0),
    "end_time": time(18, 0),
    "break_start": time(14, 0),
    "break_end": time(15, 0),
}


class Command(BaseCommand):
    help = "Creates demo services, barbers with weekly schedules, an admin and a client (idempotent)"

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()
        password = os.environ.get("SEED_PASSWORD", "Barbershop#2026")

        admin, created = User.objects.get_or_create(
            phone="+5217712345678",
            defaults={"name": "Shop Admin", "role": User.Role.ADMIN, "is_staff": True, "is_superuser": True},
        )
        if created:
            admin.set_password(password)
            admin.save()
        self.stdout.write(self.style.SUCCESS(f"Admin: {admin.phone}"))

        for name, description, duration, price in SERVICES:
            Service.objects.update_or_create(
                name=name,
                defaults={
                    "description": description,
                    "duration_minutes": duration,
                    "price": Decimal(price),
                    "is_active": True,
                },
            )
        self.stdout.write(self.style.SUCCESS(f"Services: {len(SERVICES)}"))

        for name, phone, is_active, weekdays in BARBERS:
            user, created = User.objects.get_or_create(
                phone=phone,
                defaults={"name": name, "role": User.Role.BARBER},
            )
            if created:
                user.set_password(password)
                user.save()

            barber, _ = Barber.objects.update_or_create(
                user=user,
                defaults={"name": name, "is_active": is_active},
            )
            for day in weekdays:
                schedule = WorkSchedule.objects.filter(barber=barber, day_of_week=day).first()
                if schedule is None:
                    schedule = WorkSchedule(barber=barber, day_of_week=day)
                for field, value in DEFAULT_SHIFT.items():
                    setattr(schedule, field, value)
                schedule.is_active = True
                schedule.save()
            WorkSchedule.objects.filter(barber=barber).exclude(day_of_week__in=weekdays).delete()

            state = "active" if is_active else "inactive"
            self.stdout.write(self.style.SUCCESS(f"Barber: {name} ({state}, days {weekdays})"))

        client, created = User.objects.get_or_create(
            phone="+5215512345699",
            defaults={"name": "Demo Client", "role": User.Role.CLIENT},
        )
        if created:
            client.set_password(password)
            client.save()
        self.stdout.write(self.style.SUCCESS(f"Done! Login with Phone: {client.phone} / Password: {password}"))
