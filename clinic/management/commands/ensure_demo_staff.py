import os

from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password

from clinic.models import User

DEMO_STAFF = [
    # username, role, first name, last name, specialty
    ("admin", "admin", "Clinic", "Admin", ""),
    ("dr.ahmed", "doctor", "Sara", "Ahmed", "Orthodontics"),
    ("dr.khan", "doctor", "Omar", "Khan", "Endodontics"),
    ("reception", "receptionist", "Front", "Desk", ""),
]


class Command(BaseCommand):
    help = "Ensure demo staff accounts exist with a known password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default=os.getenv("DEMO_STAFF_PASSWORD", "Demo@1234"))
        parser.add_argument("--domain", default="dentalcare.local")

    def handle(self, *args, **opts):
        password = make_password(opts["password"])
        for username, role, first, last, specialty in DEMO_STAFF:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={
                    "role": role,
                    "password": password,
                    "first_name": first,
                    "last_name": last,
                    "email": f"{username}@{opts['domain']}",
                    "specialty": specialty,
                    "is_active": True,
                    "is_staff": role == "admin",
                },
            )
            if not created:
                # reset password, role and activation for existing accounts
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"{'created' if created else 'ok'}: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo staff ensured."))
