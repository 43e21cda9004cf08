from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class CustomUserManager(BaseUserManager):
    """Custom user manager where phone is the unique identifier"""

    def create_user(self, phone, password=None, **extra_fields):
        if not phone:
            raise ValueError("The Phone field must be set")
        user = self.model(phone=phone, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, phone, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("is_active", True)
        extra_fields.setdefault("role", CustomUser.Role.ADMIN)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(phone, password, **extra_fields)


class CustomUser(AbstractUser):
    """Custom user model with phone login, role-based access and loyalty counters"""

    class Role(models.TextChoices):
        CLIENT = "CLIENT", "Client"
        BARBER = "BARBER", "Barber"
        ADMIN = "ADMIN", "Admin"

    # Remove username, use phone instead
    username = None
    email = models.EmailField(blank=True, null=True)

    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CLIENT)

    # Loyalty, awarded once per completed appointment
    loyalty_points = models.PositiveIntegerField(default=0)
    total_visits = models.PositiveIntegerField(default=0)

    USERNAME_FIELD = "phone"
    REQUIRED_FIELDS = []

    objects = CustomUserManager()

    def __str__(self):
        return f"{self.name} ({self.phone}) - {self.role}"

    @property
    def first_name_or_name(self):
        """First word of the display name, used in message greetings."""
        return self.name.split()[0] if self.name.strip() else self.phone

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
