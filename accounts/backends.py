from django.contrib.auth.backends import ModelBackend
from django.contrib.auth import get_user_model
import re

User = get_user_model()


class PhoneNumberAuthBackend(ModelBackend):
    """
    Custom authentication backend that allows login with phone number
    Supports these formats:
        - +5217712345678
        - 5217712345678
        - +52 771 234 5678 / +52-771-234-5678
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        if username is None:
            username = kwargs.get("phone")

        if username is None or password is None:
            return None

        normalized_phone = self.normalize_phone_number(username)

        if not self.is_valid_phone_number(normalized_phone):
            return None

        try:
            user = User.objects.get(phone=normalized_phone)

            if user.check_password(password) and self.user_can_authenticate(user):
                return user
        except User.DoesNotExist:
            # Run the default password hasher once to reduce timing differences
            User().set_password(password)
            return None

        return None

    @staticmethod
    def normalize_phone_number(phone):
        """
        Normalize phone to E.164 (+<country><number>).
        Accepts: +5217712345678, 5217712345678, "+52 771-234-5678", "(771) ..."
        Returns: +5217712345678
        """
        if not phone:
            return phone

        phone = re.sub(r"[\s\-().]", "", phone.strip())

        if phone.startswith("00"):
            phone = "+" + phone[2:]
        elif not phone.startswith("+"):
            phone = "+" + phone

        return phone

    @staticmethod
    def is_valid_phone_number(phone):
        """
        Validate E.164 phone number: '+' followed by 8 to 15 digits
        """
        return bool(re.match(r"^\+\d{8,15}$", phone or ""))
