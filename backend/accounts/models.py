from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    STUDENT = "student"
    PARENT = "parent"
    TUTOR = "tutor"
    ADMIN = "admin"
    ROLES = [
        (STUDENT, "Student"),
        (PARENT, "Parent"),
        (TUTOR, "Tutor"),
        (ADMIN, "Admin"),
    ]
    STAFF_ROLES = {TUTOR, ADMIN}

    display_name = models.CharField(max_length=120, blank=True)
    role = models.CharField(max_length=20, choices=ROLES, default=STUDENT)
    # Stripe customer and saved card used for off-session lesson charges.
    payment_customer_ref = models.CharField(max_length=255, blank=True)
    payment_method_ref = models.CharField(max_length=255, blank=True)

    @property
    def is_staff_role(self) -> bool:
        return self.is_superuser or self.role in self.STAFF_ROLES
