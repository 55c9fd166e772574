from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class Restaurant(models.Model):
    name = models.CharField(max_length=200)
    address = models.TextField(blank=True)
    contact_number = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    currency = models.CharField(max_length=3, default='PHP')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class UserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('The Email field must be set')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('user_type', 'admin')

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    username = None
    email = models.EmailField(unique=True)

    USER_TYPES = [
        ('owner', 'Owner'),
        ('manager', 'Manager'),
        ('purchaser', 'Purchaser'),
        ('kitchen', 'Kitchen Staff'),
        ('cashier', 'Cashier'),
        ('admin', 'Admin'),
    ]
    APPROVER_TYPES = ('owner', 'manager', 'admin')

    user_type = models.CharField(max_length=20, choices=USER_TYPES, default='kitchen')
    phone = models.CharField(max_length=20, blank=True)
    restaurant = models.ForeignKey(
        Restaurant,
        on_delete=models.CASCADE,
        related_name='staff',
        null=True,
        blank=True,
    )

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    objects = UserManager()

    def __str__(self):
        return f"{self.email} ({self.get_user_type_display()})"

    @property
    def can_approve_purchase_orders(self):
        return self.is_superuser or self.user_type in self.APPROVER_TYPES
