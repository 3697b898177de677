from rest_framework import serializers
from django.contrib.auth import authenticate
from .models import User


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration
    """
    password = serializers.CharField(write_only=True, min_length=8)
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = [
            'username', 'email', 'password', 'password_confirm'
        ]
        extra_kwargs = {
            'email': {'required': True},
        }

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError('パスワードが一致しません。')
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)


class UserLoginSerializer(serializers.Serializer):
    """
    Serializer for user login
    """
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        username = attrs.get('username')
        password = attrs.get('password')

        user = authenticate(username=username, password=password)
        if not user:
            raise serializers.ValidationError('ユーザー名またはパスワードが正しくありません。')
        if not user.is_active or user.deleted_at is not None:
            raise serializers.ValidationError('このアカウントは利用できません。')
        attrs['user'] = user
        return attrs


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for user profile information
    """
    full_name = serializers.ReadOnlyField()
    club_name = serializers.CharField(source='club.name', read_only=True, default=None)
    role_display = serializers.CharField(source='get_role_display', read_only=True)
    is_administrator = serializers.SerializerMethodField()
    has_completed_setup = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'first_name', 'last_name',
            'display_name', 'full_name', 'role', 'role_display',
            'club', 'club_name', 'is_administrator', 'has_completed_setup',
            'date_joined'
        ]
        read_only_fields = ['id', 'username', 'role', 'club', 'date_joined']

    def get_is_administrator(self, obj):
        return obj.is_administrator()

    def get_has_completed_setup(self, obj):
        return obj.has_completed_setup()


class ClubSetupSerializer(serializers.Serializer):
    """
    First-time setup: name plus either an existing club or a new one.
    Content checks happen in the setup service.
    """
    last_name = serializers.CharField(required=False, allow_blank=True, default='')
    first_name = serializers.CharField(required=False, allow_blank=True, default='')
    club_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    club_name = serializers.CharField(required=False, allow_blank=True, default='')
    total_budget = serializers.CharField(required=False, allow_blank=True, default='')
