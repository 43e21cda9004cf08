from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.backends import PhoneNumberAuthBackend

User = get_user_model()


class LoginSerializer(TokenObtainPairSerializer):
    """
    JWT serializer to login with phone number.
    It leverages the backend's phone normalization logic.
    """

    def validate(self, attrs):
        phone = attrs.get(self.username_field)
        password = attrs.get("password")

        if not phone or not password:
            raise serializers.ValidationError('Must include "phone" and "password".')

        normalized_phone = PhoneNumberAuthBackend.normalize_phone_number(phone)

        try:
            user = User.objects.get(phone=normalized_phone)
        except User.DoesNotExist:
            raise serializers.ValidationError(
                {"detail": "No active account found with the given credentials"}
            )

        if not user.is_active:
            raise serializers.ValidationError(
                {"detail": "No active account found with the given credentials"}
            )

        if not user.check_password(password):
            raise serializers.ValidationError({"detail": "Incorrect password."})

        # SimpleJWT re-authenticates with the normalized phone
        attrs[self.username_field] = normalized_phone

        return super().validate(attrs)

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)

        # Add custom claims
        token["name"] = user.name
        token["role"] = user.role
        barber_profile = getattr(user, "barber_profile", None)
        if barber_profile is not None:
            token["barber_id"] = barber_profile.id
        return token


class UserSummarySerializer(serializers.ModelSerializer):
    """Public profile of the authenticated user, including loyalty counters."""

    class Meta:
        model = User
        fields = ["id", "name", "phone", "email", "role", "loyalty_points", "total_visits"]
        read_only_fields = fields
