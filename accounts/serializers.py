from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import User, Restaurant


class RestaurantSerializer(serializers.ModelSerializer):
    class Meta:
        model = Restaurant
        fields = ['id', 'name', 'address', 'contact_number', 'email', 'currency']


class UserSerializer(serializers.ModelSerializer):
    restaurant = RestaurantSerializer(read_only=True)
    can_approve_purchase_orders = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'user_type', 'phone',
            'restaurant', 'can_approve_purchase_orders',
        ]
        read_only_fields = ['email', 'user_type']


class RestaurantRegistrationSerializer(serializers.Serializer):
    """Sign-up payload: the restaurant and its owner account"""
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    restaurant_name = serializers.CharField(max_length=200)
    address = serializers.CharField(required=False, allow_blank=True)
    contact_number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    currency = serializers.CharField(max_length=3, required=False, default='PHP')

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('A user with this email already exists.')
        return value

    def validate_password(self, value):
        validate_password(value)
        return value


class StaffMemberSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'first_name', 'last_name', 'user_type', 'phone', 'is_active']

    def validate_user_type(self, value):
        if value == 'admin':
            raise serializers.ValidationError('Admin accounts cannot be created from a restaurant.')
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)
